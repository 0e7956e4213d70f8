"""
Smart filter for remote extraction payloads
Keeps only the prescription segments worth sending to the remote model
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Dict, List

from .config import SMART_FILTER

logger = logging.getLogger(__name__)

MEDICATION_KEYWORDS = [
    'thuốc', 'viên', 'lần/ngày', 'mg', 'ml', 'uống', 'liều',
    'tablets', 'capsule', 'injection', 'chai', 'lọ', 'ống',
    'sáng', 'trưa', 'tối', 'chiều', 'trước ăn', 'sau ăn',
]

APPOINTMENT_KEYWORDS = [
    'tái khám', 'khám lại', 'hẹn khám', 'ngày khám', 'lịch khám', 'follow up',
]

INSTRUCTION_KEYWORDS = [
    'lời dặn', 'chú ý', 'lưu ý', 'hướng dẫn', 'cắt chỉ', 'thay băng',
    'uống thuốc', 'đúng giờ', 'không tự ý', 'báo bác sĩ',
    'instructions', 'note', 'warning',
]

PATIENT_KEYWORDS = [
    'họ tên', 'tuổi', 'ngày sinh', 'giới tính', 'địa chỉ',
    'cân nặng', 'chiều cao', 'bệnh nhân', 'patient',
]

DIAGNOSIS_KEYWORDS = ['chẩn đoán', 'bệnh', 'diagnosis', 'triệu chứng']

DOSAGE_HINT = re.compile(r'\d+\s*(?:mg|ml|viên|lần|ngày)', re.IGNORECASE)
DATE_HINT = re.compile(r'\d{1,2}[-/]\d{1,2}[-/]\d{2,4}')
LIST_MARKER = re.compile(r'(?<!\d)\d{1,2}\s*\.\s+(?=\S)')
NOISE_LINE = re.compile(r'^[-=_\s]+$')

SEGMENT_TYPES = ('medication', 'appointment', 'instruction', 'diagnosis', 'patient')


@dataclass
class FilterResult:
    """Classified segments and the compact text built from them"""
    text: str
    classified: Dict[str, List[str]] = field(default_factory=dict)
    stats: Dict[str, int] = field(default_factory=dict)

    @property
    def reduction_rate(self) -> int:
        original = self.stats.get('original_length', 0)
        if not original:
            return 0
        return round((1 - len(self.text) / original) * 100)


def classify_segment(segment: str) -> str:
    """medication, appointment, instruction, diagnosis, patient, other or skip"""
    stripped = segment.strip()
    if len(stripped) < 3 or NOISE_LINE.match(stripped):
        return 'skip'

    lower = stripped.lower()
    has_medication_keyword = any(kw in lower for kw in MEDICATION_KEYWORDS)
    has_number = bool(re.search(r'\d', stripped))

    if any(kw in lower for kw in APPOINTMENT_KEYWORDS) or (DATE_HINT.search(stripped) and 'khám' in lower):
        return 'appointment'
    if (has_medication_keyword and has_number) or DOSAGE_HINT.search(stripped):
        return 'medication'
    if any(kw in lower for kw in INSTRUCTION_KEYWORDS):
        return 'instruction'
    if any(kw in lower for kw in DIAGNOSIS_KEYWORDS):
        return 'diagnosis'
    if any(kw in lower for kw in PATIENT_KEYWORDS):
        return 'patient'
    return 'other'


def split_into_segments(text: str) -> List[str]:
    """Lines, with lines holding several list markers split on the markers"""
    segments = []
    for line in text.split('\n'):
        positions = [m.start() for m in LIST_MARKER.finditer(line)]
        if len(positions) > 1:
            if line[:positions[0]].strip():
                segments.append(line[:positions[0]].strip())
            for start, end in zip(positions, positions[1:] + [len(line)]):
                segments.append(line[start:end].strip())
        elif line.strip():
            segments.append(line.strip())
    return segments


class SmartFilter:
    """Filters normalised prescription text down to the classified segments"""

    def __init__(self, config=None):
        self.config = dict(SMART_FILTER)
        self.config.update(config or {})

    def classify(self, text: str):
        classified = {kind: [] for kind in SEGMENT_TYPES}
        stats = {'total': 0, 'skipped': 0, 'other': 0}
        max_length = self.config['max_segment_length']

        for segment in split_into_segments(text):
            stats['total'] += 1
            kind = classify_segment(segment)
            if kind in ('skip', 'other'):
                stats['skipped' if kind == 'skip' else 'other'] += 1
                continue

            if len(segment) > max_length:
                segment = segment[:max_length] + '...'
            classified[kind].append(segment)

        for kind in SEGMENT_TYPES:
            stats[kind] = len(classified[kind])
        return classified, stats

    def build_text(self, classified: Dict[str, List[str]]) -> str:
        sections = []
        max_meds = self.config['max_medications']

        if classified['patient']:
            sections.append('=== THÔNG TIN BỆNH NHÂN ===\n' +
                            '\n'.join(classified['patient'][:self.config['max_patient_lines']]))
        if classified['diagnosis']:
            sections.append('=== CHẨN ĐOÁN ===\n' +
                            '\n'.join(classified['diagnosis'][:self.config['max_diagnosis_lines']]))
        if classified['medication']:
            block = f'=== THUỐC (Top {max_meds}) ===\n' + '\n'.join(classified['medication'][:max_meds])
            extra = len(classified['medication']) - max_meds
            if extra > 0:
                block += f'\n... và {extra} loại thuốc khác'
            sections.append(block)
        if classified['appointment']:
            sections.append('=== LỊCH KHÁM ===\n' + '\n'.join(classified['appointment']))
        if classified['instruction']:
            sections.append('=== LỜI DẶN ===\n' + '\n'.join(classified['instruction']))

        return '\n\n'.join(sections)

    def process(self, text: str) -> FilterResult:
        classified, stats = self.classify(text or '')
        stats['original_length'] = len(text or '')
        result = FilterResult(text=self.build_text(classified), classified=classified, stats=stats)

        logger.info(
            f"🔍 Filtered {stats['total']} segments: {stats['medication']} medication, "
            f"{stats['appointment']} appointment, {stats['instruction']} instruction "
            f"({stats['original_length']} → {len(result.text)} chars, {result.reduction_rate}%)"
        )
        return result
