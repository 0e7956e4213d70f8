"""
PDF text-layer reader
Reads position-ordered text items and annotation texts with PyMuPDF
"""

import logging

import fitz  # PyMuPDF

from .exceptions import DocumentFormatError
from .models import PdfAnnotation, PdfContent, PdfItem

logger = logging.getLogger(__name__)


class PdfTextLayerReader:
    """Extracts text items (one per span) and annotations from a PDF"""

    def read(self, content: bytes) -> PdfContent:
        try:
            doc = fitz.open(stream=content, filetype='pdf')
        except (RuntimeError, ValueError) as e:
            raise DocumentFormatError(f"Could not open PDF: {e}") from e

        try:
            items = []
            annotations = []
            for page_index, page in enumerate(doc, start=1):
                items.extend(self._page_items(page, page_index, start=len(items)))
                annotations.extend(self._page_annotations(page, page_index))

            result = PdfContent(items=items, annotations=annotations, page_count=len(doc))
        finally:
            doc.close()

        logger.info(
            f"📄 Read {len(result.items)} text items and "
            f"{len(result.annotations)} annotations from {result.page_count} pages"
        )
        return result

    def _page_items(self, page, page_number, start=0):
        items = []
        page_dict = page.get_text('dict')

        for block in page_dict.get('blocks', []):
            # Image blocks carry no lines
            for line in block.get('lines', []):
                for span in line.get('spans', []):
                    text = span.get('text', '').strip()
                    if text:
                        items.append(PdfItem(text=text, page=page_number, index=start + len(items)))
        return items

    def _page_annotations(self, page, page_number):
        annotations = []

        for annot in page.annots() or []:
            text = (annot.info or {}).get('content', '').strip()
            if text:
                annotations.append(PdfAnnotation(text=text, subtype=annot.type[1], page=page_number))

        # Filled form fields behave like annotations on printed prescriptions
        for widget in page.widgets() or []:
            value = widget.field_value
            if isinstance(value, str) and value.strip():
                annotations.append(PdfAnnotation(text=value.strip(), subtype='Widget', page=page_number))

        return annotations


def read_pdf(content: bytes) -> PdfContent:
    """Quick function to read a PDF text layer"""
    return PdfTextLayerReader().read(content)
