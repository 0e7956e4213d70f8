"""
Data model shared by every stage of the prescription pipeline
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, List, Optional

from .config import TIMING_ORDER

DOCUMENT_KINDS = ('image', 'pdf-text-layer')

APPOINTMENT_GENERAL = 'general'
APPOINTMENT_SPECIALIST = 'specialist'

METHOD_LOCAL = 'local'
METHOD_LOCAL_ONLY = 'local-only'
METHOD_REMOTE = 'remote'
METHOD_LOCAL_FALLBACK = 'local-fallback'
METHOD_REMOTE_ONLY = 'remote-only'


def sort_timing_tags(tags) -> List[str]:
    """Deduplicate timing tags and put them in daily order"""
    wanted = set(tags)
    return [t for t in TIMING_ORDER if t in wanted]


@dataclass
class RawDocument:
    """Document bytes as uploaded, never persisted by the pipeline"""
    content: bytes
    kind: str
    filename: Optional[str] = None

    def __post_init__(self):
        if self.kind not in DOCUMENT_KINDS:
            raise ValueError(f"Unknown document kind: {self.kind}")


@dataclass
class RecognitionCandidate:
    """One OCR attempt with its heuristic features"""
    text: str
    confidence: float
    strategy_name: str
    line_count: int = 0
    has_numbered_list: bool = False
    has_capitalized_tokens: bool = False
    score: float = 0.0


@dataclass
class TextSegment:
    """A line or a number-delimited block of input text"""
    text: str
    index: int
    kind: str = 'line'


@dataclass
class RecordSpan:
    """Head segment of a candidate record plus its continuation"""
    head: str
    continuation: List[str] = field(default_factory=list)

    @property
    def window_text(self) -> str:
        return ' '.join([self.head] + self.continuation)


@dataclass
class PdfItem:
    text: str
    page: int = 1
    index: int = 0


@dataclass
class PdfAnnotation:
    text: str
    subtype: str = ''
    page: int = 1


@dataclass
class PdfContent:
    """Text-layer items and annotations read from a PDF"""
    items: List[PdfItem] = field(default_factory=list)
    annotations: List[PdfAnnotation] = field(default_factory=list)
    page_count: int = 0

    def as_text(self) -> str:
        """Join items into lines, one line per item"""
        return '\n'.join(item.text for item in self.items)


@dataclass
class MedicationRecord:
    name: str
    dosage_terms: List[str] = field(default_factory=list)
    quantity: Optional[str] = None
    unit: Optional[str] = None
    frequency: Optional[str] = None
    timing_tags: List[str] = field(default_factory=list)
    duration_text: Optional[str] = None
    instructions: List[str] = field(default_factory=list)
    suggestions: List[Dict] = field(default_factory=list)

    def __post_init__(self):
        self.dosage_terms = list(dict.fromkeys(self.dosage_terms))
        self.timing_tags = sort_timing_tags(self.timing_tags)
        self.instructions = sorted(set(self.instructions))

    def has_schedule_details(self) -> bool:
        """A record needs at least one of dosage, frequency, timing or duration"""
        return bool(self.dosage_terms or self.frequency or self.timing_tags or self.duration_text)

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class AppointmentRecord:
    type: str = APPOINTMENT_GENERAL
    date: Optional[str] = None
    time: Optional[str] = None
    notes: Optional[str] = None
    doctor: Optional[str] = None
    location: Optional[str] = None

    def is_valid(self) -> bool:
        return bool(self.date or self.time or (self.notes and len(self.notes) > 10))

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class ExtractionResult:
    medications: List[MedicationRecord] = field(default_factory=list)
    appointments: List[AppointmentRecord] = field(default_factory=list)
    instructions: List[str] = field(default_factory=list)
    method: str = METHOD_LOCAL
    state: Optional[str] = None
    elapsed_ms: float = 0.0
    summary: Optional[str] = None
    remote_error: Optional[str] = None
    local_result: Optional['ExtractionResult'] = None

    @property
    def is_empty(self) -> bool:
        """No valid records: a normal outcome, not an error"""
        return not (self.medications or self.appointments or self.instructions)

    def to_dict(self) -> Dict:
        return {
            'medications': [m.to_dict() for m in self.medications],
            'appointments': [a.to_dict() for a in self.appointments],
            'instructions': list(self.instructions),
            'method': self.method,
            'state': self.state,
            'elapsed_ms': self.elapsed_ms,
            'summary': self.summary,
            'remote_error': self.remote_error,
            'local_result': self.local_result.to_dict() if self.local_result else None,
        }


@dataclass(frozen=True)
class ReminderEvent:
    kind: str
    scheduled_at: datetime
    title: str
    body: str
    subject: str
    repeat: Optional[str] = None
    is_default_schedule: bool = False

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['scheduled_at'] = self.scheduled_at.isoformat()
        return data


@dataclass
class ValidationReport:
    is_valid: bool = False
    confidence: int = 0
    reasons: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    recommendation: str = ''

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class PipelineResult:
    status: str
    extraction: Optional[ExtractionResult] = None
    validation: Optional[ValidationReport] = None
    reminders: List[ReminderEvent] = field(default_factory=list)
    stages: Dict = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'status': self.status,
            'extraction': self.extraction.to_dict() if self.extraction else None,
            'validation': self.validation.to_dict() if self.validation else None,
            'reminders': [r.to_dict() for r in self.reminders],
            'stages': self.stages,
            'error': self.error,
        }
