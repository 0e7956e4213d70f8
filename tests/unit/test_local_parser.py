"""
Unit tests for the local extraction engine
"""

from prescription_reminder.local_parser import LocalExtractionEngine, extract_locally, summarize
from prescription_reminder.models import ExtractionResult, PdfContent, PdfItem


def test_local_extraction_normalizes_first():
    """Test noisy OCR text is normalised before parsing"""
    result = extract_locally("1. Paracetamol 5OO mg\nUong 2 lan/ngay sang toi")

    assert result.method == "local"
    assert len(result.medications) == 1

    medication = result.medications[0]
    assert medication.name == "Paracetamol"
    assert medication.dosage_terms == ["500mg"]
    assert medication.frequency == "2 lần/ngày"
    assert medication.timing_tags == ["morning", "evening"]


def test_local_extraction_metadata(sample_prescription_text):
    """Test elapsed time and summary are filled"""
    result = LocalExtractionEngine().extract(sample_prescription_text)

    assert result.elapsed_ms >= 0
    assert result.summary == "Tìm thấy 2 loại thuốc, 1 lịch khám, 1 lời dặn"


def test_local_extraction_of_pdf_items():
    """Test PDF items are normalised one by one and parsed with markers"""
    content = PdfContent(items=[
        PdfItem(text="1. Paracetamol 5OO mg", index=0),
        PdfItem(text="Uong sang toi", index=1),
        PdfItem(text="   ", index=2),
        PdfItem(text="Tai kham ngay 20/01/2025 08:30", index=3),
    ], page_count=1)

    result = LocalExtractionEngine().extract(content)

    assert [m.name for m in result.medications] == ["Paracetamol"]
    assert result.medications[0].dosage_terms == ["500mg"]
    assert result.medications[0].timing_tags == ["morning", "evening"]
    assert result.appointments[0].date == "2025-01-20"
    assert result.appointments[0].time == "08:30"


def test_normalize_pdf_content_as_text():
    """Test remote payload text is one line per item"""
    content = PdfContent(items=[PdfItem(text="Uong  sang"), PdfItem(text="Tai kham")])
    assert LocalExtractionEngine().normalize(content) == "Uống sáng\nTái khám"


def test_empty_text_is_not_an_error():
    """Test nothing extracted from empty input"""
    result = extract_locally("")
    assert result.is_empty
    assert result.summary == "Tìm thấy 0 loại thuốc, 0 lịch khám, 0 lời dặn"


def test_summarize():
    """Test Vietnamese summary line"""
    assert summarize(ExtractionResult()) == "Tìm thấy 0 loại thuốc, 0 lịch khám, 0 lời dặn"
