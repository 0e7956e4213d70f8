"""
Multi-strategy OCR for prescription text extraction
Runs several Tesseract page-segmentation strategies (plus optional EasyOCR
for handwriting) and keeps the candidate that looks most like a prescription
"""

import re
import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Tuple

import numpy as np
import pytesseract
from PIL import Image

from .config import (
    EASYOCR_CONFIG, OCR_ENGINES, OCR_SCORING, OCR_STRATEGIES, TESSERACT_LANG
)
from .exceptions import RecognitionFailure
from .models import RecognitionCandidate
from .preprocessing import ImagePreprocessor, scoped_temp_image

logger = logging.getLogger(__name__)

NUMBERED_LIST = re.compile(r'\d+\.\s+[A-Z]')
CAPITALIZED_TOKEN = re.compile(r'[A-Z][a-z]{3,}')

EASYOCR_STRATEGY = 'EASYOCR'


def score_candidate(text: str, confidence: float, strategy_name: str) -> RecognitionCandidate:
    """Attach heuristic features and the selection score to one OCR result"""
    line_count = len([line for line in text.split('\n') if line.strip()])
    has_numbered_list = bool(NUMBERED_LIST.search(text))
    has_capitalized_tokens = bool(CAPITALIZED_TOKEN.search(text))

    score = confidence
    if line_count > OCR_SCORING['many_lines_threshold']:
        score += OCR_SCORING['many_lines_bonus']
    if has_numbered_list:
        score += OCR_SCORING['numbered_list_bonus']
    if has_capitalized_tokens:
        score += OCR_SCORING['capitalized_token_bonus']

    return RecognitionCandidate(
        text=text,
        confidence=confidence,
        strategy_name=strategy_name,
        line_count=line_count,
        has_numbered_list=has_numbered_list,
        has_capitalized_tokens=has_capitalized_tokens,
        score=score,
    )


def select_best_candidate(candidates: List[RecognitionCandidate]) -> RecognitionCandidate:
    """Highest score wins; ties go to the earliest strategy"""
    if not candidates:
        raise RecognitionFailure("All OCR strategies failed")
    return max(candidates, key=lambda c: c.score)


def rebuild_lines(data: Dict) -> Tuple[str, float]:
    """
    Rebuild text lines from Tesseract image_to_data output

    Returns:
        (text, mean word confidence 0-100)
    """
    lines = OrderedDict()
    confidences = []

    for i in range(len(data['text'])):
        word = str(data['text'][i]).strip()
        try:
            conf = float(data['conf'][i])
        except (TypeError, ValueError):
            conf = -1.0
        if not word:
            continue

        key = (data['block_num'][i], data['par_num'][i], data['line_num'][i])
        lines.setdefault(key, []).append(word)
        if conf >= 0:
            confidences.append(conf)

    text = '\n'.join(' '.join(words) for words in lines.values())
    confidence = float(np.mean(confidences)) if confidences else 0.0
    return text, confidence


class PrescriptionOCR:
    """
    Strategy-selecting OCR system for medical prescriptions
    Tesseract strategies run in priority order, EasyOCR last when enabled
    """

    def __init__(self, strategies=None, lang=TESSERACT_LANG, use_easyocr=None,
                 preprocessor=None, use_gpu=False):
        self.strategies = list(strategies or OCR_STRATEGIES)
        self.lang = lang
        self.use_easyocr = OCR_ENGINES['easyocr'] if use_easyocr is None else use_easyocr
        self.use_gpu = use_gpu
        self.preprocessor = preprocessor or ImagePreprocessor()
        self._easyocr_reader = None
        self._easyocr_initialized = False

    def _initialize_easyocr(self):
        """Initialize EasyOCR (called lazily on first use)"""
        if self._easyocr_initialized:
            return self._easyocr_reader

        self._easyocr_initialized = True
        try:
            logger.info("🔄 Initializing EasyOCR (may download models on first run, ~100MB)...")
            import easyocr
            self._easyocr_reader = easyocr.Reader(
                EASYOCR_CONFIG['languages'],
                gpu=self.use_gpu or EASYOCR_CONFIG['gpu'],
                verbose=False,
            )
            logger.info("✅ EasyOCR ready (optimized for handwriting)")
        except Exception as e:
            logger.warning(f"⚠️  EasyOCR initialization failed: {e}")
            self._easyocr_reader = None

        return self._easyocr_reader

    def recognize(self, content: bytes) -> RecognitionCandidate:
        """
        Extract text from prescription image bytes

        Returns:
            The best-scoring RecognitionCandidate

        Raises:
            RecognitionFailure: every strategy failed
        """
        with scoped_temp_image(content, self.preprocessor) as image_path:
            candidates = self.run_strategies(image_path)

        best = select_best_candidate(candidates)
        logger.info(
            f"✅ Selected OCR strategy {best.strategy_name} "
            f"(score {best.score:.1f}, {best.line_count} lines)"
        )
        return best

    def run_strategies(self, image_path) -> List[RecognitionCandidate]:
        """Run every strategy, absorbing per-strategy failures"""
        candidates = []

        for name, config in self.strategies:
            try:
                candidates.append(self._extract_with_tesseract(image_path, name, config))
            except Exception as e:
                logger.warning(f"⚠️  OCR strategy {name} failed: {e}")

        if self.use_easyocr:
            try:
                candidate = self._extract_with_easyocr(image_path)
                if candidate is not None:
                    candidates.append(candidate)
            except Exception as e:
                logger.warning(f"⚠️  OCR strategy {EASYOCR_STRATEGY} failed: {e}")

        return candidates

    def _extract_with_tesseract(self, image_path, name, config) -> RecognitionCandidate:
        """Extract text using one Tesseract configuration"""
        with Image.open(image_path) as pil_image:
            data = pytesseract.image_to_data(
                pil_image,
                lang=self.lang,
                config=config,
                output_type=pytesseract.Output.DICT
            )

        text, confidence = rebuild_lines(data)
        candidate = score_candidate(text, confidence, name)
        logger.info(f"Tesseract {name}: {candidate.line_count} lines, confidence {confidence:.1f}")
        return candidate

    def _extract_with_easyocr(self, image_path) -> Optional[RecognitionCandidate]:
        """Extract text using EasyOCR (excellent for handwriting)"""
        reader = self._initialize_easyocr()
        if reader is None:
            return None

        # EasyOCR returns: [([bbox], text, confidence), ...]
        results = reader.readtext(
            image_path,
            detail=1,
            paragraph=False,
            decoder=EASYOCR_CONFIG['decoder'],
            beamWidth=5,
            batch_size=1
        )

        texts = [text for _, text, _ in results if text.strip()]
        confidences = [conf for _, _, conf in results]
        confidence = float(np.mean(confidences)) * 100 if confidences else 0.0

        return score_candidate('\n'.join(texts), confidence, EASYOCR_STRATEGY)


def extract_text_from_image(image_path, use_easyocr=None):
    """Quick function to extract text from a prescription image file"""
    with open(image_path, 'rb') as f:
        content = f.read()
    return PrescriptionOCR(use_easyocr=use_easyocr).recognize(content)
