"""
Plausibility validator
Scores whether an extraction looks like a real prescription
"""

import re
import json
import logging
from typing import List, Optional

from .config import MEDICAL_KEYWORDS, PLAUSIBILITY_THRESHOLDS
from .exceptions import PlausibilityRejected
from .models import ExtractionResult, ValidationReport
from .structural_parser import is_stop_word

logger = logging.getLogger(__name__)

LEXICAL_NAME = re.compile(r'^[A-Z][A-Za-z0-9\-\s]{2,49}$')


def is_lexically_valid_name(name: Optional[str]) -> bool:
    """Starts upper-case, plain letters/digits/hyphens, not all digits, 3-50 chars"""
    if not name or not LEXICAL_NAME.match(name):
        return False
    if name.replace(' ', '').isdigit():
        return False
    return not is_stop_word(name)


def get_recommendation(confidence: int) -> str:
    if confidence >= 80:
        return 'Đơn thuốc hợp lệ. Bạn có thể tiếp tục tạo lịch nhắc.'
    elif confidence >= PLAUSIBILITY_THRESHOLDS['valid']:
        return 'Đơn thuốc hợp lệ nhưng thiếu một số thông tin. Vui lòng kiểm tra lại.'
    elif confidence >= PLAUSIBILITY_THRESHOLDS['low_confidence']:
        return 'Độ tin cậy thấp. Vui lòng kiểm tra xem đây có phải đơn thuốc không.'
    return 'File này có thể không phải đơn thuốc. Vui lòng upload đúng file đơn thuốc.'


class PrescriptionValidator:
    """0-100 plausibility score from weighted extraction signals"""

    def __init__(self, thresholds=None, keywords=None):
        self.thresholds = dict(PLAUSIBILITY_THRESHOLDS)
        self.thresholds.update(thresholds or {})
        self.keywords = list(keywords or MEDICAL_KEYWORDS)

    def find_medical_keywords(self, result: ExtractionResult, source_text: str = '') -> List[str]:
        haystack = json.dumps(result.to_dict(), ensure_ascii=False, default=str).lower()
        haystack += ' ' + (source_text or '').lower()
        return [kw for kw in self.keywords if kw.lower() in haystack]

    def validate(self, result: ExtractionResult, source_text: str = '') -> ValidationReport:
        report = ValidationReport()
        medications = result.medications

        # Gate: no medication means no prescription
        if not medications:
            report.reasons.append('Không tìm thấy thông tin thuốc')
            report.recommendation = get_recommendation(0)
            return report

        score = 0.0
        count = len(medications)

        if 1 <= count <= self.thresholds['max_medications']:
            score += 20
        else:
            report.warnings.append(f'Số lượng thuốc quá nhiều ({count}). Có thể không phải đơn thuốc.')

        valid_ratio = sum(1 for m in medications if is_lexically_valid_name(m.name)) / count
        score += valid_ratio * 30
        if valid_ratio < 0.5:
            report.warnings.append('Nhiều tên thuốc không hợp lệ. Có thể không phải đơn thuốc.')

        dosage_ratio = sum(1 for m in medications if m.dosage_terms) / count
        score += dosage_ratio * 20

        if result.appointments:
            score += 15
        if result.instructions:
            score += 15

        keywords = self.find_medical_keywords(result, source_text)
        score += min(len(keywords) * 2, 10)

        report.confidence = min(int(round(score)), 100)

        if report.confidence >= self.thresholds['valid']:
            report.is_valid = True
            report.reasons.append('Đây là đơn thuốc hợp lệ')
        elif report.confidence >= self.thresholds['low_confidence']:
            report.is_valid = True
            report.reasons.append('Có thể là đơn thuốc nhưng thiếu thông tin')
            report.warnings.append('Độ tin cậy thấp. Vui lòng kiểm tra lại.')
        else:
            report.reasons.append('Không phải đơn thuốc hoặc không đọc được')
            report.warnings.append('File này có thể không phải đơn thuốc. Vui lòng upload đúng file.')

        report.recommendation = get_recommendation(report.confidence)
        logger.info(f"Plausibility score {report.confidence} (valid={report.is_valid})")
        return report

    def ensure_plausible(self, result: ExtractionResult, source_text: str = '') -> ValidationReport:
        """
        Raises:
            PlausibilityRejected: score below the low-confidence threshold
        """
        report = self.validate(result, source_text)
        if not report.is_valid:
            raise PlausibilityRejected('Likely not a prescription', report=report)
        return report
