"""
Local extraction engine
Normalizer + structural parser, no network calls
"""

import time
import logging
from dataclasses import replace
from typing import Union

from .error_correction import PrescriptionTextNormalizer
from .models import METHOD_LOCAL, ExtractionResult, PdfContent
from .structural_parser import StructuralParser

logger = logging.getLogger(__name__)


def summarize(result: ExtractionResult) -> str:
    return (
        f"Tìm thấy {len(result.medications)} loại thuốc, "
        f"{len(result.appointments)} lịch khám, {len(result.instructions)} lời dặn"
    )


class LocalExtractionEngine:
    """Zero-network extraction path for recognised text and PDF text layers"""

    def __init__(self, normalizer=None, parser=None):
        self.normalizer = normalizer or PrescriptionTextNormalizer()
        self.parser = parser or StructuralParser()

    def normalize(self, source: Union[str, PdfContent]) -> str:
        """Normalised plain text of a source, as sent to remote extraction"""
        text = source.as_text() if isinstance(source, PdfContent) else source
        return self.normalizer.normalize(text or '')

    def extract(self, source: Union[str, PdfContent]) -> ExtractionResult:
        logger.info("🔍 Starting local extraction (no API calls)...")
        start = time.perf_counter()

        if isinstance(source, PdfContent):
            result = self.parser.parse_pdf(self._normalize_items(source))
        else:
            result = self.parser.parse_text(self.normalize(source))

        result.method = METHOD_LOCAL
        result.elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
        result.summary = summarize(result)

        logger.info(f"✅ Local extraction finished in {result.elapsed_ms}ms: {result.summary}")
        return result

    def _normalize_items(self, content: PdfContent) -> PdfContent:
        """Item boundaries are kept; each item text is normalised on its own"""
        items = [replace(item, text=self.normalizer.normalize(item.text)) for item in content.items]
        return PdfContent(
            items=[item for item in items if item.text],
            annotations=list(content.annotations),
            page_count=content.page_count,
        )


def extract_locally(text: str) -> ExtractionResult:
    """Quick function for local-only extraction of recognised text"""
    return LocalExtractionEngine().extract(text)
