"""
Structural parser for prescription text
One extraction contract with two segmentation front-ends:
recognised text (line heuristics) and PDF text-layer items (explicit markers)
"""

import re
import logging
from datetime import date
from typing import Iterable, List, Optional, Tuple

from .config import INVALID_MEDICATION_NAMES, PARSER_SETTINGS
from .models import (
    APPOINTMENT_GENERAL, APPOINTMENT_SPECIALIST,
    AppointmentRecord, ExtractionResult, MedicationRecord, PdfAnnotation,
    PdfContent, RecordSpan, TextSegment, sort_timing_tags
)

logger = logging.getLogger(__name__)

_UNITS = r'(?:mg|ml|mcg|µg|g|kg|IU|UI|mmol|mEq|CFU|%)'

# Field patterns
DOSAGE_PATTERN = re.compile(
    r'\d+\^\d+\s*-\s*\d+\^\d+\s*CFU'
    rf'|\d+(?:[.,]\d+)?\s*{_UNITS}(?!\w)',
    re.IGNORECASE
)
QUANTITY_UNIT_PATTERN = re.compile(
    r'(\d+(?:[.,]\d+)?)\s*(viên|vien|ống|ong|chai|lọ|lo|gói|goi|túi|tui|hộp|hop|'
    r'tablets?|tab|capsules?|cap)(?!\w)',
    re.IGNORECASE
)
STANDALONE_QUANTITY = re.compile(r'^\d+[.,]\d+$')
STANDALONE_UNIT = re.compile(r'^(viên|vien|ống|ong|chai|lọ|lo|gói|goi|túi|tui|hộp|hop)$', re.IGNORECASE)
FREQUENCY_PATTERN = re.compile(
    r'\d+\s*(?:lần|lan|x|times?)\s*/?\s*(?:mỗi ngày|moi ngay|trong ngày|ngày|ngay|a day|per day|daily|day)'
    r'|(?:once|twice|three times|four times)\s+(?:a\s+|per\s+)?(?:day|daily)',
    re.IGNORECASE
)
TIMING_PATTERN = re.compile(
    r'(?<!\w)(?:buổi\s+|buoi\s+)?'
    r'(sáng|sang|trưa|trua|chiều|chieu|tối(?!\s+(?:đa|da)\b)|toi(?!\s+(?:đa|da)\b)|khuya|đêm|dem|'
    r'morning|noon|afternoon|evening|night)(?!\w)',
    re.IGNORECASE
)
DURATION_PATTERN = re.compile(
    r'\d+\s*(?:ngày|ngay|days?|tuần|tuan|weeks?|tháng|thang|months?)(?!\w)',
    re.IGNORECASE
)
INSTRUCTION_PATTERN = re.compile(
    r'trước bữa ăn|truoc bua an|trước ăn|truoc an|sau bữa ăn|sau bua an|sau ăn|sau an|'
    r'khi đói|khi doi|khi no|trong bữa ăn|trong bua an|cùng bữa ăn|cung bua an|'
    r'uống nhiều nước|uong nhieu nuoc|ngậm dưới lưỡi|ngam duoi luoi|'
    r'before meals?|after meals?|with food',
    re.IGNORECASE
)

TIMING_TAGS = {
    'sáng': 'morning', 'sang': 'morning', 'morning': 'morning',
    'trưa': 'noon', 'trua': 'noon', 'noon': 'noon',
    'chiều': 'afternoon', 'chieu': 'afternoon', 'afternoon': 'afternoon',
    'tối': 'evening', 'toi': 'evening', 'evening': 'evening',
    'đêm': 'night', 'dem': 'night', 'khuya': 'night', 'night': 'night',
}

# Structure patterns
NUMBERED_HEAD = re.compile(r'^\d{1,2}\s*[.)]')
NUMBERED_MARKER = re.compile(r'(?<!\d)\d+\.\s+[A-Z]')
SEPARATOR_LINE = re.compile(r'^[-=_]{3,}$')
PDF_SEPARATOR = re.compile(r'^-{10,}$')
PDF_MARKER_NUMBER = re.compile(r'^\d+$')
PDF_INLINE_MARKER = re.compile(r'^(\d{1,2})\.(?:\s+(.+))?$')

SECTION_KEYWORDS = re.compile(
    r'tái khám|tai kham|khám lại|kham lai|hẹn khám|hen kham|follow[- ]?up|'
    r'lời dặn|loi dan|chú ý|chu y|lưu ý|luu y|hướng dẫn\s*:|huong dan\s*:|'
    r'ngày in|ngay in|bác sĩ|bac si',
    re.IGNORECASE
)
APPOINTMENT_KEYWORDS = re.compile(
    r'tái khám|tai kham|khám lại|kham lai|hẹn khám|hen kham|follow[- ]?up|revisit',
    re.IGNORECASE
)
SPECIALIST_KEYWORD = re.compile(r'chuyên khoa|chuyen khoa|specialist', re.IGNORECASE)
INSTRUCTION_KEYWORDS = re.compile(
    r'(?:lời dặn|loi dan|chú ý|chu y|lưu ý|luu y|hướng dẫn|huong dan)\s*:',
    re.IGNORECASE
)
INSTRUCTION_STOP = re.compile(
    r'tái khám|tai kham|khám lại|hẹn khám|ngày in|ngay in|bác sĩ|bac si',
    re.IGNORECASE
)
APPOINTMENT_STOP = re.compile(
    r'lời dặn|loi dan|chú ý|chu y|lưu ý|luu y|hướng dẫn|huong dan|ngày in|ngay in',
    re.IGNORECASE
)

DATE_PATTERN = re.compile(r'(?<!\d)(\d{1,2})\s*[-/.]\s*(\d{1,2})\s*[-/.]\s*(\d{4}|\d{2})(?!\d)')
TIME_PATTERN = re.compile(
    r'(?<!\d)(\d{1,2})\s*[:h]\s*(\d{2})(?!\d)(?:\s*(AM|PM|SA|CH)\b)?',
    re.IGNORECASE
)

# Appointment doctor and location
_CAPITAL = 'A-ZÀ-ÝĂĐĨŨƠƯẠ-Ỹ'
_NAME_WORD = rf'[{_CAPITAL}][^\W\d_]*'
DOCTOR_PATTERN = re.compile(
    r'(?:\b(?:BS|Bs|Dr|DR)\b\.?|[Bb]ác sĩ|[Bb]ac si|BÁC SĨ|BAC SI)\s*:?\s*'
    rf'({_NAME_WORD}(?:\s+{_NAME_WORD}){{0,4}})'
)
LOCATION_PATTERN = re.compile(
    rf'(?:(?i:bệnh viện|benh vien|phòng khám|phong kham)|\bKhoa)\s+[{_CAPITAL}][^\n,.;:\d]{{2,50}}'
)
LOCATION_TAIL = re.compile(
    r'\s+(?:ngày|ngay|lúc|luc|vào|vao|tái khám|tai kham|hẹn|hen|bác sĩ|bac si)(?!\w).*$',
    re.IGNORECASE
)

# Name extraction
NAME_TOKEN = re.compile(r'[A-Z][A-Za-z0-9\-]*')
NAME_DOSE_SUFFIX = re.compile(
    rf'(?:\s+\d+(?:[.,]\d+)?|\s*\d+(?:[.,]\d+)?\s*{_UNITS})+$',
    re.IGNORECASE
)
TOKEN_PUNCTUATION = '.,;:()[]'


def is_stop_word(token: str) -> bool:
    letters = re.sub(r"[^A-Za-z/]", "", token).upper()
    return token.upper() in INVALID_MEDICATION_NAMES or letters in INVALID_MEDICATION_NAMES


def is_valid_medication_name(name: Optional[str]) -> bool:
    """Name has at least three letters and is not a stop word"""
    if not name:
        return False
    name = name.strip()
    if len(name) < 3 or is_stop_word(name):
        return False
    return len(re.findall(r'[A-Za-zÀ-ỹ]', name)) >= 3


def extract_medication_name(text: str) -> Optional[str]:
    """
    First capitalised ASCII token run in a head line
    Leading stop words are skipped, the run is cut at the next stop word and
    trailing strength suffixes are stripped
    """
    text = re.sub(r'^\s*\d{1,2}\s*[.)]\s*', '', text)
    tokens = [token.strip(TOKEN_PUNCTUATION) for token in text.split()]

    run = []
    for token in tokens:
        is_name_token = bool(NAME_TOKEN.fullmatch(token))
        if not run:
            if is_name_token and not is_stop_word(token):
                run.append(token)
            continue
        if not is_name_token or is_stop_word(token):
            break
        run.append(token)

    if not run:
        return None

    name = NAME_DOSE_SUFFIX.sub('', ' '.join(run)).strip(' -')
    if not is_valid_medication_name(name):
        return None
    return name


def extract_dosage_terms(text: str) -> List[str]:
    """Every strength match, whitespace removed, first-seen order"""
    terms = []
    for match in DOSAGE_PATTERN.finditer(text):
        term = re.sub(r'\s+', '', match.group(0))
        if term not in terms:
            terms.append(term)
    return terms


def map_timing_tags(text: str) -> List[str]:
    """Map Vietnamese or English daily periods to canonical timing tags"""
    tags = [TIMING_TAGS[m.group(1).lower()] for m in TIMING_PATTERN.finditer(text)]
    return sort_timing_tags(tags)


def extract_instruction_phrases(text: str) -> List[str]:
    return sorted({m.group(0).lower() for m in INSTRUCTION_PATTERN.finditer(text)})


def first_match(pattern, text: str) -> Optional[str]:
    match = pattern.search(text)
    return match.group(0).strip() if match else None


def normalize_date(day, month, year) -> Optional[str]:
    """dd, mm, yy(yy) -> ISO date, None when not a calendar date"""
    year = int(year)
    if year < 100:
        year += 2000
    try:
        return date(year, int(month), int(day)).isoformat()
    except ValueError:
        return None


def find_date(text: str) -> Optional[str]:
    for match in DATE_PATTERN.finditer(text):
        iso = normalize_date(*match.groups())
        if iso:
            return iso
    return None


def find_time(text: str) -> Optional[str]:
    for match in TIME_PATTERN.finditer(text):
        hour, minute = int(match.group(1)), int(match.group(2))
        meridiem = (match.group(3) or '').upper()
        if meridiem in ('PM', 'CH') and hour < 12:
            hour += 12
        elif meridiem in ('AM', 'SA') and hour == 12:
            hour = 0
        if hour < 24 and minute < 60:
            return f"{hour:02d}:{minute:02d}"
    return None


def find_doctor(lines: Iterable[str]) -> Optional[str]:
    """Doctor name after a BS. / Dr. / Bác sĩ title"""
    for line in lines:
        match = DOCTOR_PATTERN.search(line)
        if match:
            return match.group(1).strip()
    return None


def find_location(lines: Iterable[str]) -> Optional[str]:
    """Hospital, clinic or department name, cut before any date or time wording"""
    for line in lines:
        match = LOCATION_PATTERN.search(line)
        if match:
            return LOCATION_TAIL.sub('', match.group(0)).strip()
    return None


def strip_appointment_noise(text: str) -> str:
    """Window text minus dates, times and keywords"""
    text = DATE_PATTERN.sub(' ', text)
    text = TIME_PATTERN.sub(' ', text)
    text = APPOINTMENT_KEYWORDS.sub(' ', text)
    text = SPECIALIST_KEYWORD.sub(' ', text)
    text = re.sub(r'^\s*(?:ngày|ngay)?\s*:?', ' ', text.strip(), flags=re.IGNORECASE)
    return re.sub(r'\s+', ' ', text).strip(' :-,.')


class TextSegmenter:
    """Line-based segmentation for recognised text"""

    def __init__(self, settings=None):
        self.settings = dict(PARSER_SETTINGS)
        self.settings.update(settings or {})

    def resegment(self, text: str) -> str:
        """Re-split a collapsed text on numbered-list marker positions"""
        positions = [m.start() for m in NUMBERED_MARKER.finditer(text)]
        pieces = [text[:positions[0]]] if positions else [text]
        for start, end in zip(positions, positions[1:] + [len(text)]):
            pieces.append(text[start:end])
        return '\n'.join(piece.strip() for piece in pieces if piece.strip())

    def units(self, text: str) -> List[str]:
        lines = [line.strip() for line in text.split('\n') if line.strip()]
        marker_count = len(NUMBERED_MARKER.findall(text))

        if marker_count > self.settings['resegment_min_markers'] and marker_count > len(lines):
            logger.info(f"Re-segmenting {len(lines)} lines on {marker_count} list markers")
            lines = [line.strip() for line in self.resegment(text).split('\n') if line.strip()]

        # Several numbered items on one line are separate records
        split = []
        for line in lines:
            if len(NUMBERED_MARKER.findall(line)) > 1:
                split.extend(piece for piece in self.resegment(line).split('\n') if piece)
            else:
                split.append(line)
        return split

    def segments(self, lines: List[str]) -> List[TextSegment]:
        return [
            TextSegment(text=line, index=i, kind='numbered' if NUMBERED_HEAD.match(line) else 'line')
            for i, line in enumerate(lines)
        ]

    def _is_boundary(self, segment: TextSegment) -> bool:
        return bool(SEPARATOR_LINE.match(segment.text) or SECTION_KEYWORDS.search(segment.text))

    def spans(self, lines: List[str]) -> List[RecordSpan]:
        segments = self.segments(lines)
        numbered = any(s.kind == 'numbered' for s in segments)
        window = self.settings['continuation_lines'] if numbered else self.settings['unnumbered_lookahead']

        spans = []
        for i, segment in enumerate(segments):
            if numbered and segment.kind != 'numbered':
                continue
            if not numbered and self._is_boundary(segment):
                continue

            continuation = []
            for follower in segments[i + 1:i + 1 + window]:
                if follower.kind == 'numbered' or self._is_boundary(follower):
                    break
                continuation.append(follower.text)

            spans.append(RecordSpan(head=segment.text, continuation=continuation))

        return spans


class PdfItemSegmenter:
    """Marker-based segmentation for PDF text-layer items"""

    def __init__(self, settings=None):
        self.settings = dict(PARSER_SETTINGS)
        self.settings.update(settings or {})

    def units(self, items) -> List[str]:
        """Item texts with inline markers ('1.' or '1. Name') split apart"""
        texts = []
        for item in items:
            text = item.text.strip() if hasattr(item, 'text') else str(item).strip()
            if not text:
                continue
            match = PDF_INLINE_MARKER.match(text)
            if match and self._in_range(match.group(1)):
                texts.extend([match.group(1), '.'])
                if match.group(2):
                    texts.append(match.group(2).strip())
            else:
                texts.append(text)
        return texts

    def _in_range(self, number: str) -> bool:
        return 1 <= int(number) <= self.settings['max_list_number']

    def is_marker(self, texts: List[str], i: int) -> bool:
        return (
            bool(PDF_MARKER_NUMBER.match(texts[i]))
            and self._in_range(texts[i])
            and i + 1 < len(texts)
            and texts[i + 1] == '.'
        )

    def spans(self, texts: List[str]) -> List[RecordSpan]:
        spans = []
        i = 0

        while i < len(texts):
            if not self.is_marker(texts, i):
                i += 1
                continue

            i += 2
            collected = []
            while i < len(texts) and len(collected) < self.settings['max_items_per_record']:
                if PDF_SEPARATOR.match(texts[i]):
                    i += 1
                    break
                if self.is_marker(texts, i):
                    break
                collected.append(texts[i])
                i += 1

            if collected:
                spans.append(self._to_span(collected))

        return spans

    def _to_span(self, collected: List[str]) -> RecordSpan:
        # Strength items printed right after the name belong to its line
        head_size = 1
        while head_size < len(collected) and DOSAGE_PATTERN.fullmatch(collected[head_size]):
            head_size += 1
        return RecordSpan(head=' '.join(collected[:head_size]), continuation=collected[head_size:])


class StructuralParser:
    """
    Extracts medication, appointment and instruction records
    from recognised text or PDF text-layer items
    """

    def __init__(self, settings=None):
        self.settings = dict(PARSER_SETTINGS)
        self.settings.update(settings or {})
        self.text_segmenter = TextSegmenter(self.settings)
        self.pdf_segmenter = PdfItemSegmenter(self.settings)

    def parse_text(self, text: str) -> ExtractionResult:
        units = self.text_segmenter.units(text or '')
        spans = self.text_segmenter.spans(units)
        return self._extract(
            spans, units,
            appointment_window=self.settings['appointment_lines'],
            instruction_window=self.settings['instruction_lines'],
        )

    def parse_pdf(self, content: PdfContent) -> ExtractionResult:
        units = self.pdf_segmenter.units(content.items)
        spans = self.pdf_segmenter.spans(units)
        return self._extract(
            spans, units,
            appointment_window=self.settings['appointment_items'],
            instruction_window=self.settings['instruction_items'],
            annotations=content.annotations,
            standalone_fields=True,
        )

    def _extract(self, spans, units, appointment_window, instruction_window,
                 annotations=(), standalone_fields=False) -> ExtractionResult:
        medications = []
        for span in spans:
            record = self.extract_medication(span, standalone_fields)
            if record is not None:
                medications.append(record)

        appointments = self.extract_appointments(units, appointment_window, annotations)
        instructions = self.extract_instructions(units, instruction_window)

        logger.info(
            f"✅ Parsed {len(medications)} medications, {len(appointments)} appointments, "
            f"{len(instructions)} instructions"
        )
        return ExtractionResult(
            medications=medications,
            appointments=appointments,
            instructions=instructions,
        )

    def extract_medication(self, span: RecordSpan, standalone_fields=False) -> Optional[MedicationRecord]:
        """Fields in fixed order: name, dosage, quantity+unit, then window fields"""
        name = extract_medication_name(span.head)
        if not name:
            logger.debug(f"Dropped record without a name: {span.head[:50]!r}")
            return None

        dosage_terms = extract_dosage_terms(span.head)
        quantity, unit = self._quantity_and_unit(span, standalone_fields)

        window = span.window_text
        record = MedicationRecord(
            name=name,
            dosage_terms=dosage_terms,
            quantity=quantity,
            unit=unit,
            frequency=first_match(FREQUENCY_PATTERN, window),
            timing_tags=map_timing_tags(window),
            duration_text=first_match(DURATION_PATTERN, window),
            instructions=extract_instruction_phrases(window),
        )

        if not record.has_schedule_details():
            logger.debug(f"Dropped {name}: no dosage, frequency, timing or duration")
            return None
        return record

    def _quantity_and_unit(self, span: RecordSpan, standalone_fields) -> Tuple[Optional[str], Optional[str]]:
        match = QUANTITY_UNIT_PATTERN.search(span.head)
        if match:
            return match.group(1), match.group(2)
        if not standalone_fields:
            return None, None

        quantity = next((t for t in span.continuation if STANDALONE_QUANTITY.match(t)), None)
        unit = next((t for t in span.continuation if STANDALONE_UNIT.match(t)), None)
        return quantity, unit

    def _annotation_datetime(self, annotations: Iterable[PdfAnnotation]):
        """Date+time from the annotation layer, plus the other long annotation texts"""
        found = None
        notes = []
        for annotation in annotations:
            text = annotation.text.strip()
            annotation_date, annotation_time = find_date(text), find_time(text)
            if annotation_date and annotation_time:
                found = (annotation_date, annotation_time)
            elif len(text) > 10:
                notes.append(text)
        return found, notes

    def extract_appointments(self, units: List[str], window: int,
                             annotations: Iterable[PdfAnnotation] = ()) -> List[AppointmentRecord]:
        annotation_datetime, annotation_notes = self._annotation_datetime(annotations)
        appointments = []

        for i, unit in enumerate(units):
            if not APPOINTMENT_KEYWORDS.search(unit):
                continue

            kind = APPOINTMENT_SPECIALIST if SPECIALIST_KEYWORD.search(unit) else APPOINTMENT_GENERAL
            context = [unit]
            for follower in units[i + 1:i + 1 + window]:
                if APPOINTMENT_KEYWORDS.search(follower) or APPOINTMENT_STOP.search(follower):
                    break
                context.append(follower)
            context_text = ' '.join(context)

            if kind == APPOINTMENT_GENERAL and annotation_datetime:
                appointment = AppointmentRecord(
                    type=kind,
                    date=annotation_datetime[0],
                    time=annotation_datetime[1],
                    notes='\n'.join(annotation_notes) or None,
                )
            else:
                notes = strip_appointment_noise(context_text)
                appointment = AppointmentRecord(
                    type=kind,
                    date=find_date(context_text),
                    time=find_time(context_text),
                    notes=notes if len(notes) > 10 else None,
                )
            appointment.doctor = find_doctor(context)
            appointment.location = find_location(context)

            if appointment.is_valid():
                appointments.append(appointment)
            else:
                logger.debug(f"Dropped appointment without date, time or notes: {unit[:50]!r}")

        return appointments

    def extract_instructions(self, units: List[str], window: int) -> List[str]:
        instructions = []

        for i, unit in enumerate(units):
            if not INSTRUCTION_KEYWORDS.search(unit):
                continue

            context = [unit]
            for follower in units[i + 1:i + window]:
                if INSTRUCTION_STOP.search(follower) or INSTRUCTION_KEYWORDS.search(follower):
                    break
                context.append(follower)
            context_text = ' '.join(context)

            match = INSTRUCTION_KEYWORDS.search(context_text)
            note = context_text[match.end():]
            stop = INSTRUCTION_STOP.search(note)
            if stop:
                note = note[:stop.start()]
            note = re.sub(r'\s+', ' ', note).strip()

            if len(note) >= 10 and note not in instructions:
                instructions.append(note)

        return instructions


def parse_prescription_text(text: str) -> ExtractionResult:
    """Quick function to parse already-normalised prescription text"""
    return StructuralParser().parse_text(text)
