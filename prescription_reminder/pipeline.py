"""
Main Prescription Pipeline
Orchestrates the complete workflow: OCR / PDF text layer → normalisation →
structural parse (hybrid local/remote) → deduplication → plausibility → reminders
"""

import os
import sys
import json
import logging
from datetime import datetime
from typing import Optional

from .config import DRUG_DB_PATH, HYBRID_SETTINGS, setup_logging
from .duplicate_checker import Deduplicator
from .error_correction import PrescriptionErrorCorrector
from .exceptions import DocumentFormatError, PlausibilityRejected, RecognitionFailure
from .hybrid_parser import HybridParser
from .models import PdfContent, PipelineResult, RawDocument
from .ocr_engine import PrescriptionOCR
from .pdf_reader import PdfTextLayerReader
from .prescription_validator import PrescriptionValidator
from .reminder_scheduler import ReminderScheduler

logger = logging.getLogger(__name__)

STATUS_COMPLETED = 'completed'
STATUS_REJECTED = 'rejected'
STATUS_FAILED = 'failed'


def _default_remote_extractor():
    if not HYBRID_SETTINGS['enable_remote']:
        return None
    from .remote_extraction import GeminiRemoteExtractor
    return GeminiRemoteExtractor()


class PrescriptionPipeline:
    """
    Complete pipeline from a raw prescription document to reminder events
    Never raises: every outcome is a PipelineResult
    """

    def __init__(self, ocr=None, pdf_reader=None, hybrid_parser=None, deduplicator=None,
                 validator=None, scheduler=None, corrector=None, drug_db_path=DRUG_DB_PATH):
        logger.info("🚀 Initializing Prescription Pipeline...")

        self.ocr = ocr or PrescriptionOCR()
        self.pdf_reader = pdf_reader or PdfTextLayerReader()
        self.hybrid_parser = hybrid_parser or HybridParser(remote_extractor=_default_remote_extractor())
        self.deduplicator = deduplicator or Deduplicator()
        self.validator = validator or PrescriptionValidator()
        self.scheduler = scheduler or ReminderScheduler()
        self.corrector = corrector or PrescriptionErrorCorrector(drug_db_path=drug_db_path)

        logger.info("✅ Pipeline initialized successfully")

    def _read_source(self, document: RawDocument, stages):
        if document.kind == 'image':
            logger.info("📝 Stage 1: Recognising text...")
            candidate = self.ocr.recognize(document.content)
            stages['ocr'] = {
                'status': STATUS_COMPLETED,
                'strategy': candidate.strategy_name,
                'confidence': candidate.confidence,
                'score': candidate.score,
                'line_count': candidate.line_count,
            }
            return candidate.text

        logger.info("📄 Stage 1: Reading PDF text layer...")
        content = self.pdf_reader.read(document.content)
        stages['pdf'] = {
            'status': STATUS_COMPLETED,
            'items': len(content.items),
            'annotations': len(content.annotations),
            'pages': content.page_count,
        }
        return content

    def process(self, document: RawDocument, start_date=None) -> PipelineResult:
        """Process a prescription document end-to-end"""
        start_time = datetime.now()
        logger.info(f"📄 Processing prescription: {document.filename or document.kind}")
        result = PipelineResult(status='processing')
        stages = result.stages

        try:
            source = self._read_source(document, stages)

            logger.info("🔍 Stage 2: Extracting records...")
            extraction = self.hybrid_parser.parse(source)
            stages['extraction'] = {
                'status': STATUS_COMPLETED,
                'method': extraction.method,
                'state': extraction.state,
                'remote_error': extraction.remote_error,
            }

            logger.info("🧹 Stage 3: Removing duplicates...")
            duplicates = self.deduplicator.check_duplicates(extraction)
            extraction = self.deduplicator.deduplicate(extraction)
            stages['deduplication'] = {
                'status': STATUS_COMPLETED,
                'medication_duplicates': len(duplicates['medications']['duplicates']),
                'appointment_duplicates': len(duplicates['appointments']['duplicates']),
            }

            if self.corrector.available:
                for medication in extraction.medications:
                    medication.suggestions = self.corrector.suggest_drug_names(medication.name)
            result.extraction = extraction

            logger.info("✅ Stage 4: Validating...")
            source_text = source.as_text() if isinstance(source, PdfContent) else source
            result.validation = self.validator.ensure_plausible(extraction, source_text)
            stages['validation'] = {'status': STATUS_COMPLETED, 'confidence': result.validation.confidence}

            logger.info("⏰ Stage 5: Scheduling reminders...")
            result.reminders = self.scheduler.schedule(extraction, start_date)
            stages['reminders'] = {'status': STATUS_COMPLETED, 'count': len(result.reminders)}

            result.status = STATUS_COMPLETED

        except (RecognitionFailure, DocumentFormatError) as e:
            logger.error(f"❌ Could not read document: {e}")
            result.status = STATUS_FAILED
            result.error = str(e)

        except PlausibilityRejected as e:
            logger.warning(f"⚠️  Document rejected: {e}")
            result.status = STATUS_REJECTED
            result.validation = e.report
            result.error = str(e)
            stages['validation'] = {'status': STATUS_REJECTED, 'confidence': e.report.confidence if e.report else 0}

        except Exception as e:
            logger.error(f"❌ Pipeline failed: {e}", exc_info=True)
            result.status = STATUS_FAILED
            result.error = str(e)

        processing_time = (datetime.now() - start_time).total_seconds()
        stages['processing_time_seconds'] = processing_time
        logger.info(f"Pipeline finished with status {result.status} in {processing_time:.2f}s")
        return result


def document_from_path(path: str) -> RawDocument:
    kind = 'pdf-text-layer' if path.lower().endswith('.pdf') else 'image'
    with open(path, 'rb') as f:
        content = f.read()
    return RawDocument(content=content, kind=kind, filename=os.path.basename(path))


# Standalone function
def process_prescription_file(path: str, start_date=None, pipeline: Optional[PrescriptionPipeline] = None):
    """Quick function to process a prescription image or PDF file"""
    pipeline = pipeline or PrescriptionPipeline()
    return pipeline.process(document_from_path(path), start_date=start_date)


def main(argv=None, pipeline: Optional[PrescriptionPipeline] = None) -> int:
    """Process prescription files given on the command line and print JSON results"""
    setup_logging()
    paths = sys.argv[1:] if argv is None else argv
    if not paths:
        print("Usage: python -m prescription_reminder.pipeline <prescription.pdf|image> ...")
        return 2

    pipeline = pipeline or PrescriptionPipeline()
    exit_code = 0
    for path in paths:
        result = process_prescription_file(path, pipeline=pipeline)
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False, default=str))
        if result.status != STATUS_COMPLETED:
            exit_code = 1
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
