"""
Duplicate checker for medications and appointments
"""

import re
import logging
from dataclasses import replace
from typing import Dict, List, Tuple

from .config import TIMING_ORDER
from .models import AppointmentRecord, ExtractionResult, MedicationRecord

logger = logging.getLogger(__name__)


def medication_key(name: str) -> str:
    """Lower-cased name without whitespace or punctuation"""
    if not name:
        return ''
    return re.sub(r'[\W_]+', '', name.lower())


def appointment_key(appointment: AppointmentRecord) -> Tuple:
    return appointment.type, appointment.date, appointment.time


def timing_rank(medication: MedicationRecord) -> int:
    """Index of the earliest timing tag; untimed records sort last"""
    ranks = [TIMING_ORDER.index(tag) for tag in medication.timing_tags if tag in TIMING_ORDER]
    return min(ranks) if ranks else len(TIMING_ORDER)


def merge_medications(first: MedicationRecord, other: MedicationRecord) -> MedicationRecord:
    """
    Sets are unioned, scalars keep the first value and are only filled when empty
    Dosage terms established by the first record are never merged
    """
    return MedicationRecord(
        name=first.name,
        dosage_terms=list(first.dosage_terms or other.dosage_terms),
        quantity=first.quantity or other.quantity,
        unit=first.unit or other.unit,
        frequency=first.frequency or other.frequency,
        timing_tags=first.timing_tags + other.timing_tags,
        duration_text=first.duration_text or other.duration_text,
        instructions=first.instructions + other.instructions,
        suggestions=list(first.suggestions or other.suggestions),
    )


class Deduplicator:
    """Canonicalises and merges duplicate records from either extraction path"""

    def deduplicate_medications(self, medications: List[MedicationRecord]) -> List[MedicationRecord]:
        merged: Dict[str, MedicationRecord] = {}

        for med in medications:
            key = medication_key(med.name)
            if key in merged:
                merged[key] = merge_medications(merged[key], med)
            else:
                merged[key] = replace(
                    med,
                    dosage_terms=list(med.dosage_terms),
                    timing_tags=list(med.timing_tags),
                    instructions=list(med.instructions),
                    suggestions=list(med.suggestions),
                )

        # sorted() is stable, so equal ranks keep first-seen order
        return sorted(merged.values(), key=timing_rank)

    def deduplicate_appointments(self, appointments: List[AppointmentRecord]) -> List[AppointmentRecord]:
        unique = {}
        for appointment in appointments:
            unique.setdefault(appointment_key(appointment), replace(appointment))
        return list(unique.values())

    def deduplicate(self, result: ExtractionResult) -> ExtractionResult:
        medications = self.deduplicate_medications(result.medications)
        appointments = self.deduplicate_appointments(result.appointments)
        instructions = list(dict.fromkeys(result.instructions))

        removed = (len(result.medications) - len(medications)) + \
            (len(result.appointments) - len(appointments))
        if removed:
            logger.info(f"🧹 Merged {removed} duplicate records")

        return replace(
            result,
            medications=medications,
            appointments=appointments,
            instructions=instructions,
        )

    def find_duplicate_medications(self, medications: List[MedicationRecord]) -> List[Dict]:
        duplicates = []
        seen = {}
        for i, med in enumerate(medications):
            key = medication_key(med.name)
            if key in seen:
                duplicates.append({
                    'original': medications[seen[key]],
                    'duplicate': med,
                    'original_index': seen[key],
                    'duplicate_index': i,
                })
            else:
                seen[key] = i
        return duplicates

    def find_duplicate_appointments(self, appointments: List[AppointmentRecord]) -> List[Dict]:
        duplicates = []
        seen = {}
        for i, appointment in enumerate(appointments):
            key = appointment_key(appointment)
            if key in seen:
                duplicates.append({
                    'original': appointments[seen[key]],
                    'duplicate': appointment,
                    'original_index': seen[key],
                    'duplicate_index': i,
                })
            else:
                seen[key] = i
        return duplicates

    def check_duplicates(self, result: ExtractionResult) -> Dict:
        """Report the duplicate pairs without changing the result"""
        med_duplicates = self.find_duplicate_medications(result.medications)
        apt_duplicates = self.find_duplicate_appointments(result.appointments)

        return {
            'medications': {
                'total': len(result.medications),
                'duplicates': med_duplicates,
                'unique': len(result.medications) - len(med_duplicates),
            },
            'appointments': {
                'total': len(result.appointments),
                'duplicates': apt_duplicates,
                'unique': len(result.appointments) - len(apt_duplicates),
            },
        }
