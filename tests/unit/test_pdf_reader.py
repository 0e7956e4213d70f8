"""
Unit tests for the PDF text-layer reader
"""

import fitz  # PyMuPDF
import pytest

from prescription_reminder.exceptions import DocumentFormatError
from prescription_reminder.pdf_reader import PdfTextLayerReader, read_pdf


def build_pdf(lines, note=None, pages=1):
    """Generate a PDF with one text line per entry and an optional sticky note"""
    doc = fitz.open()
    for _ in range(pages):
        page = doc.new_page()
        for i, line in enumerate(lines):
            page.insert_text((72, 72 + 20 * i), line, fontsize=11)
        if note:
            page.add_text_annot((400, 72), note)
    content = doc.tobytes()
    doc.close()
    return content


def test_read_text_items():
    """Test text items come back in page order"""
    content = read_pdf(build_pdf(["1. Paracetamol 500mg", "Uong sang toi"]))

    texts = [item.text for item in content.items]
    assert texts == ["1. Paracetamol 500mg", "Uong sang toi"]
    assert [item.index for item in content.items] == [0, 1]
    assert content.page_count == 1
    assert content.annotations == []


def test_read_annotations():
    """Test sticky note content is read as an annotation"""
    content = PdfTextLayerReader().read(build_pdf(["Tai kham"], note="Hen 20/01/2025 08:30"))

    assert len(content.annotations) == 1
    assert content.annotations[0].text == "Hen 20/01/2025 08:30"
    assert content.annotations[0].subtype == "Text"
    assert content.annotations[0].page == 1


def test_items_across_pages():
    """Test item indexes keep counting on later pages"""
    content = read_pdf(build_pdf(["Paracetamol 500mg"], pages=2))

    assert content.page_count == 2
    assert [(item.page, item.index) for item in content.items] == [(1, 0), (2, 1)]


def test_as_text_joins_items():
    """Test plain text view of the items"""
    content = read_pdf(build_pdf(["Paracetamol 500mg", "Uong sang"]))
    assert content.as_text() == "Paracetamol 500mg\nUong sang"


@pytest.mark.parametrize("data", [b"", b"definitely not a pdf"])
def test_invalid_pdf(data):
    """Test undecodable bytes are a document format error"""
    with pytest.raises(DocumentFormatError):
        read_pdf(data)
