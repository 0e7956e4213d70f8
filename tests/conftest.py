"""
Pytest configuration and shared fixtures for testing.
"""

import io
from datetime import date

import pytest
from PIL import Image, ImageDraw

from prescription_reminder.models import (
    AppointmentRecord, ExtractionResult, MedicationRecord, PdfAnnotation, PdfContent, PdfItem
)


@pytest.fixture
def sample_prescription_text():
    """Recognised prescription text, already normalised"""
    return (
        "ĐƠN THUỐC\n"
        "1. Paracetamol 500mg 10 viên\n"
        "Uống 2 lần/ngày sáng tối sau ăn\n"
        "2. Amoxicillin 250mg\n"
        "Sáng trưa tối trong 5 ngày\n"
        "Lời dặn: Uống nhiều nước, ăn nhẹ\n"
        "Tái khám ngày: 20/01/2025 lúc 08:30"
    )


@pytest.fixture
def short_prescription_text():
    """One medication and one follow-up visit"""
    return (
        "ĐƠN THUỐC\n"
        "1. Paracetamol 500mg 2 lần/ngày sáng tối trong 7 ngày\n"
        "Tái khám ngày: 20-01-2025 08:00"
    )


@pytest.fixture
def sample_pdf_content():
    """Text-layer items as a PDF reader returns them, plus an annotation"""
    texts = [
        "ĐƠN THUỐC",
        "1", ".", "Paracetamol", "500mg", "10,00", "Viên", "Uống sáng tối",
        "----------",
        "2.", "Amoxicillin 250mg", "Uống 2 lần/ngày trong 5 ngày",
        "----------",
        "Tái khám",
        "Lời dặn:",
        "Uống nhiều nước, ăn nhẹ",
    ]
    return PdfContent(
        items=[PdfItem(text=text, page=1, index=i) for i, text in enumerate(texts)],
        annotations=[PdfAnnotation(text="Hẹn 20/01/2025 08:30", subtype="Text", page=1)],
        page_count=1,
    )


@pytest.fixture
def sample_extraction():
    """Extraction with two medications, an appointment and an instruction"""
    return ExtractionResult(
        medications=[
            MedicationRecord(
                name="Paracetamol",
                dosage_terms=["500mg"],
                frequency="2 lần/ngày",
                timing_tags=["morning", "evening"],
                duration_text="7 ngày",
            ),
            MedicationRecord(
                name="Omeprazole",
                dosage_terms=["20mg"],
                timing_tags=["morning"],
                instructions=["trước ăn"],
            ),
        ],
        appointments=[AppointmentRecord(type="general", date="2025-01-20", time="08:30")],
        instructions=["Uống nhiều nước, ăn nhẹ"],
    )


@pytest.fixture
def png_bytes():
    """Small PNG with dark text-like bars on white"""
    image = Image.new("RGB", (120, 60), "white")
    draw = ImageDraw.Draw(image)
    draw.rectangle([10, 10, 100, 18], fill="black")
    draw.rectangle([10, 30, 80, 38], fill="black")
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def start_date():
    return date(2025, 1, 10)
