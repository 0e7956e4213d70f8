"""
Prescription Reminder Module
Turns prescription images and PDFs into medication and follow-up reminders
"""

from .pipeline import PrescriptionPipeline, process_prescription_file
from .models import ExtractionResult, PipelineResult, RawDocument, ReminderEvent

__version__ = "1.0.0"
__all__ = [
    'PrescriptionPipeline',
    'process_prescription_file',
    'ExtractionResult',
    'PipelineResult',
    'RawDocument',
    'ReminderEvent',
]
