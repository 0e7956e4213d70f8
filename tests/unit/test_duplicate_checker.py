"""
Unit tests for medication and appointment deduplication
"""

from prescription_reminder.duplicate_checker import Deduplicator, medication_key, merge_medications
from prescription_reminder.models import AppointmentRecord, ExtractionResult, MedicationRecord


def test_medication_key_ignores_case_and_punctuation():
    """Test canonical medication key"""
    assert medication_key("Para-cetamol") == "paracetamol"
    assert medication_key(" PARACETAMOL ") == "paracetamol"
    assert medication_key("Vitamin C") == medication_key("vitamin-c")


def test_merge_unions_sets_and_keeps_first_scalars():
    """Test timing and instructions are unioned, scalars come from the first record"""
    first = MedicationRecord(name="Paracetamol", dosage_terms=["500mg"], timing_tags=["evening"],
                             instructions=["sau ăn"], duration_text="5 ngày")
    other = MedicationRecord(name="paracetamol", dosage_terms=["650mg"], timing_tags=["morning"],
                             instructions=["khi đói"], duration_text="7 ngày", frequency="2 lần/ngày")

    merged = merge_medications(first, other)

    assert merged.name == "Paracetamol"
    assert merged.dosage_terms == ["500mg"]
    assert merged.timing_tags == ["morning", "evening"]
    assert merged.instructions == ["khi đói", "sau ăn"]
    assert merged.duration_text == "5 ngày"
    assert merged.frequency == "2 lần/ngày"


def test_merge_takes_dosage_when_first_has_none():
    """Test dosage terms fill in only when the first record has none"""
    first = MedicationRecord(name="Paracetamol", timing_tags=["morning"])
    other = MedicationRecord(name="Paracetamol", dosage_terms=["500mg"])

    assert merge_medications(first, other).dosage_terms == ["500mg"]


def test_deduplicate_medications_sorted_by_timing():
    """Test merged records are ordered by their earliest daily period"""
    medications = [
        MedicationRecord(name="Cetirizine", dosage_terms=["10mg"]),
        MedicationRecord(name="Ibuprofen", dosage_terms=["400mg"], timing_tags=["evening"]),
        MedicationRecord(name="Omeprazole", dosage_terms=["20mg"], timing_tags=["morning"]),
        MedicationRecord(name="IBUPROFEN", dosage_terms=["200mg"], timing_tags=["noon"]),
    ]

    result = Deduplicator().deduplicate_medications(medications)

    assert [m.name for m in result] == ["Omeprazole", "Ibuprofen", "Cetirizine"]
    assert result[1].timing_tags == ["noon", "evening"]
    assert result[1].dosage_terms == ["400mg"]


def test_deduplicate_does_not_mutate_input():
    """Test input records are left untouched"""
    first = MedicationRecord(name="Paracetamol", timing_tags=["evening"])
    second = MedicationRecord(name="Paracetamol", timing_tags=["morning"])

    Deduplicator().deduplicate_medications([first, second])

    assert first.timing_tags == ["evening"]
    assert second.timing_tags == ["morning"]


def test_deduplicate_appointments():
    """Test identical (type, date, time) appointments collapse"""
    appointments = [
        AppointmentRecord(type="general", date="2025-01-20", time="08:30", notes="Mang theo đơn cũ"),
        AppointmentRecord(type="general", date="2025-01-20", time="08:30"),
        AppointmentRecord(type="general", date="2025-01-20", time="14:00"),
        AppointmentRecord(type="specialist", date="2025-01-20", time="08:30"),
    ]

    result = Deduplicator().deduplicate_appointments(appointments)

    assert len(result) == 3
    assert result[0].notes == "Mang theo đơn cũ"


def test_deduplicate_result(sample_extraction):
    """Test full extraction result deduplication"""
    sample_extraction.medications.append(
        MedicationRecord(name="paracetamol", timing_tags=["noon"], dosage_terms=["1g"])
    )
    sample_extraction.appointments.append(
        AppointmentRecord(type="general", date="2025-01-20", time="08:30")
    )
    sample_extraction.instructions.append("Uống nhiều nước, ăn nhẹ")

    result = Deduplicator().deduplicate(sample_extraction)

    assert [m.name for m in result.medications] == ["Paracetamol", "Omeprazole"]
    assert result.medications[0].timing_tags == ["morning", "noon", "evening"]
    assert len(result.appointments) == 1
    assert result.instructions == ["Uống nhiều nước, ăn nhẹ"]
    assert len(sample_extraction.medications) == 3


def test_check_duplicates_report(sample_extraction):
    """Test duplicate report leaves the result unchanged"""
    sample_extraction.medications.append(MedicationRecord(name="OMEPRAZOLE", timing_tags=["night"]))

    report = Deduplicator().check_duplicates(sample_extraction)

    assert report["medications"]["total"] == 3
    assert report["medications"]["unique"] == 2
    assert report["medications"]["duplicates"][0]["original_index"] == 1
    assert report["medications"]["duplicates"][0]["duplicate_index"] == 2
    assert report["appointments"]["duplicates"] == []


def test_empty_result():
    """Test empty extraction"""
    result = Deduplicator().deduplicate(ExtractionResult())
    assert result.is_empty


def test_deduplicate_key_set_ignores_input_order():
    """Test the same canonical names come out for any input ordering"""
    medications = [
        MedicationRecord(name="Paracetamol", timing_tags=["morning"]),
        MedicationRecord(name="Omeprazole", timing_tags=["evening"]),
        MedicationRecord(name="PARACETAMOL", timing_tags=["noon"]),
        MedicationRecord(name="Vitamin-C"),
        MedicationRecord(name="vitamin c", timing_tags=["morning"]),
    ]
    deduplicator = Deduplicator()

    forward = deduplicator.deduplicate_medications(medications)
    backward = deduplicator.deduplicate_medications(list(reversed(medications)))

    def keys(meds):
        return {medication_key(m.name) for m in meds}

    assert keys(forward) == keys(backward) == {"paracetamol", "omeprazole", "vitaminc"}
    assert len(forward) == len(backward) == 3
