"""
Unit tests for the structural parser (text and PDF front-ends)
"""

from prescription_reminder.models import PdfAnnotation, PdfContent, PdfItem, RecordSpan
from prescription_reminder.structural_parser import (
    PdfItemSegmenter,
    StructuralParser,
    TextSegmenter,
    extract_dosage_terms,
    extract_medication_name,
    find_date,
    find_doctor,
    find_location,
    find_time,
    map_timing_tags,
    parse_prescription_text,
)


def test_medication_name_from_numbered_line():
    """Test name is the first capitalised token run"""
    assert extract_medication_name("1. Paracetamol 500mg 10 viên") == "Paracetamol"
    assert extract_medication_name("2. Vitamin C 1000mg") == "Vitamin C"


def test_medication_name_skips_leading_stop_words():
    """Test header-like tokens before the name are skipped"""
    assert extract_medication_name("1. STT Ibuprofen 400mg") == "Ibuprofen"


def test_medication_name_strips_strength_suffix():
    """Test a strength glued to the name is cut off"""
    assert extract_medication_name("Panadol500mg sáng") == "Panadol"
    assert extract_medication_name("Augmentin 625") == "Augmentin"


def test_no_medication_name():
    """Test lines without a capitalised drug token"""
    assert extract_medication_name("uống sau ăn") is None
    assert extract_medication_name("1. STT") is None
    assert extract_medication_name("Ab 5mg") is None


def test_dosage_terms():
    """Test every strength on the line, whitespace removed"""
    assert extract_dosage_terms("Amoxicillin 500mg + Clavulanic 125 mg") == ["500mg", "125mg"]
    assert extract_dosage_terms("Probiotic 10^8 - 10^9 CFU") == ["10^8-10^9CFU"]
    assert extract_dosage_terms("Paracetamol 10 viên") == []


def test_timing_tags_in_daily_order():
    """Test Vietnamese periods map to canonical tags, sorted"""
    assert map_timing_tags("tối, sáng") == ["morning", "evening"]
    assert map_timing_tags("buổi trưa và chiều") == ["noon", "afternoon"]
    assert map_timing_tags("tối đa 4 viên") == []


def test_find_date_and_time():
    """Test date/time formats are normalised"""
    assert find_date("Tái khám ngày 20/01/2025") == "2025-01-20"
    assert find_date("ngày 5-2-25") == "2025-02-05"
    assert find_date("ngày 32/13/2025") is None
    assert find_time("lúc 08:30") == "08:30"
    assert find_time("lúc 2:15 PM") == "14:15"
    assert find_time("8h00 sáng") == "08:00"


def test_parse_numbered_text(sample_prescription_text):
    """Test medications, appointment and instruction from recognised text"""
    result = StructuralParser().parse_text(sample_prescription_text)

    assert [m.name for m in result.medications] == ["Paracetamol", "Amoxicillin"]

    paracetamol, amoxicillin = result.medications
    assert paracetamol.dosage_terms == ["500mg"]
    assert paracetamol.quantity == "10"
    assert paracetamol.unit == "viên"
    assert paracetamol.frequency == "2 lần/ngày"
    assert paracetamol.timing_tags == ["morning", "evening"]
    assert paracetamol.instructions == ["sau ăn"]

    assert amoxicillin.dosage_terms == ["250mg"]
    assert amoxicillin.timing_tags == ["morning", "noon", "evening"]
    assert amoxicillin.duration_text == "5 ngày"

    assert len(result.appointments) == 1
    assert result.appointments[0].type == "general"
    assert result.appointments[0].date == "2025-01-20"
    assert result.appointments[0].time == "08:30"

    assert result.instructions == ["Uống nhiều nước, ăn nhẹ"]


def test_dosage_never_borrowed_from_continuation():
    """Test strength on the following line is not attached to the name"""
    result = parse_prescription_text("1. Paracetamol\nUống 500mg sáng")

    assert len(result.medications) == 1
    assert result.medications[0].dosage_terms == []
    assert result.medications[0].timing_tags == ["morning"]


def test_record_without_schedule_details_dropped():
    """Test a bare name is not a medication record"""
    result = parse_prescription_text("1. Paracetamol\n2. Ibuprofen")
    assert result.medications == []


def test_unnumbered_text_uses_short_lookahead():
    """Test text without numbering still yields records"""
    result = parse_prescription_text("Paracetamol 500mg\nsáng tối")

    assert len(result.medications) == 1
    assert result.medications[0].timing_tags == ["morning", "evening"]


def test_collapsed_text_is_resegmented():
    """Test a single line with many list markers is split apart"""
    text = (
        "1. Paracetamol 500mg sáng 2. Ibuprofen 400mg tối "
        "3. Omeprazole 20mg sáng 4. Cetirizine 10mg tối"
    )
    segmenter = TextSegmenter()
    assert len(segmenter.units(text)) == 4

    result = parse_prescription_text(text)
    assert [m.name for m in result.medications] == [
        "Paracetamol", "Ibuprofen", "Omeprazole", "Cetirizine"
    ]
    assert result.medications[1].timing_tags == ["evening"]


def test_line_with_two_numbered_items_is_split():
    """Test each numbered item on a shared line keeps its own dosage and timing"""
    text = "1. Paracetamol 500mg sáng\n2. Ibuprofen 400mg tối 3. Omeprazole 20mg sáng"

    assert TextSegmenter().units(text) == [
        "1. Paracetamol 500mg sáng",
        "2. Ibuprofen 400mg tối",
        "3. Omeprazole 20mg sáng",
    ]

    ibuprofen, omeprazole = parse_prescription_text(text).medications[1:]
    assert (ibuprofen.name, ibuprofen.dosage_terms, ibuprofen.timing_tags) == ("Ibuprofen", ["400mg"], ["evening"])
    assert (omeprazole.name, omeprazole.dosage_terms, omeprazole.timing_tags) == ("Omeprazole", ["20mg"], ["morning"])


def test_instruction_note_length_boundary():
    """Test a ten character note is kept and a nine character one is not"""
    kept = parse_prescription_text("1. Paracetamol 500mg sáng\nLời dặn: Nghỉ ngơi.")
    dropped = parse_prescription_text("1. Paracetamol 500mg sáng\nLời dặn: Nghỉ ngơi")

    assert kept.instructions == ["Nghỉ ngơi."]
    assert dropped.instructions == []


def test_continuation_stops_at_section_keyword():
    """Test lookahead never crosses into the follow-up section"""
    spans = TextSegmenter().spans([
        "1. Paracetamol 500mg",
        "sáng",
        "Tái khám ngày 20/01/2025",
        "tối",
    ])
    assert spans == [RecordSpan(head="1. Paracetamol 500mg", continuation=["sáng"])]


def test_specialist_appointment():
    """Test specialist follow-ups are typed"""
    result = parse_prescription_text("Tái khám chuyên khoa tim mạch ngày 15/03/2025")

    assert len(result.appointments) == 1
    assert result.appointments[0].type == "specialist"
    assert result.appointments[0].date == "2025-03-15"
    assert result.appointments[0].time is None


def test_appointment_doctor_and_location():
    """Test clinic and doctor lines near a follow-up are attached to it"""
    result = parse_prescription_text(
        "1. Paracetamol 500mg sáng\n"
        "Tái khám ngày 20/01/2025 lúc 08:30\n"
        "Phòng khám Nội tổng quát, tầng 2\n"
        "Bác sĩ: Nguyễn Văn An"
    )

    appointment = result.appointments[0]
    assert appointment.location == "Phòng khám Nội tổng quát"
    assert appointment.doctor == "Nguyễn Văn An"
    assert appointment.to_dict()["doctor"] == "Nguyễn Văn An"


def test_location_cut_before_date_wording():
    """Test trailing date words are not part of the location"""
    assert find_location(["Bệnh viện Bạch Mai ngày mai"]) == "Bệnh viện Bạch Mai"
    assert find_location(["chuyên khoa Tim mạch"]) is None
    assert find_doctor(["BS. Trần Thị Bình"]) == "Trần Thị Bình"
    assert find_doctor(["Tái khám sau 7 ngày"]) is None


def test_appointment_without_details_dropped():
    """Test keyword alone does not make an appointment"""
    assert parse_prescription_text("Tái khám").appointments == []


def test_pdf_segmenter_splits_inline_markers():
    """Test '2.' and '3. Name' items become marker tokens"""
    items = [PdfItem(text="2."), PdfItem(text="3. Ibuprofen 400mg"), PdfItem(text="99.")]
    assert PdfItemSegmenter().units(items) == ["2", ".", "3", ".", "Ibuprofen 400mg", "99."]


def test_pdf_head_includes_following_strength_items():
    """Test standalone strength items join the name"""
    spans = PdfItemSegmenter().spans(["1", ".", "Paracetamol", "500mg", "Uống sáng"])
    assert spans == [RecordSpan(head="Paracetamol 500mg", continuation=["Uống sáng"])]


def test_parse_pdf(sample_pdf_content):
    """Test PDF text-layer parse with standalone fields and annotation date"""
    result = StructuralParser().parse_pdf(sample_pdf_content)

    assert [m.name for m in result.medications] == ["Paracetamol", "Amoxicillin"]

    paracetamol, amoxicillin = result.medications
    assert paracetamol.dosage_terms == ["500mg"]
    assert paracetamol.quantity == "10,00"
    assert paracetamol.unit == "Viên"
    assert paracetamol.timing_tags == ["morning", "evening"]

    assert amoxicillin.frequency == "2 lần/ngày"
    assert amoxicillin.duration_text == "5 ngày"

    assert len(result.appointments) == 1
    assert result.appointments[0].date == "2025-01-20"
    assert result.appointments[0].time == "08:30"

    assert result.instructions == ["Uống nhiều nước, ăn nhẹ"]


def test_pdf_appointment_from_items_without_annotation():
    """Test appointment date read from the items that follow the keyword"""
    content = PdfContent(items=[
        PdfItem(text="Tái khám"), PdfItem(text="Ngày 25/02/2025"), PdfItem(text="09:00"),
    ])
    result = StructuralParser().parse_pdf(content)

    assert len(result.appointments) == 1
    assert result.appointments[0].date == "2025-02-25"
    assert result.appointments[0].time == "09:00"


def test_specialist_appointment_ignores_annotation():
    """Test annotation date only overrides general follow-ups"""
    content = PdfContent(
        items=[PdfItem(text="Tái khám chuyên khoa"), PdfItem(text="ngày 01/03/2025")],
        annotations=[PdfAnnotation(text="20/01/2025 08:30")],
    )
    result = StructuralParser().parse_pdf(content)

    assert result.appointments[0].type == "specialist"
    assert result.appointments[0].date == "2025-03-01"
