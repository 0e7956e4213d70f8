"""
OCR Error Correction for Prescription Text
Rule-table normalizer for recognition artifacts plus drug name suggestions
"""

import re
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Pattern, Tuple, Union

import pandas as pd
from rapidfuzz import fuzz, process

from .config import DRUG_DB_PATH

logger = logging.getLogger(__name__)

MAX_PASSES = 6

_DOSE_UNITS = r'(?:mg|ml|mcg|µg|g|kg|IU|UI|mmol|mEq|CFU)'
_PACK_UNITS = r'(?:viên|vien|ống|chai|lọ|gói|goi|túi|tui|hộp|hop)'

_HAS_DIGIT = re.compile(r'\d')

# Canonical separator line between prescription sections
SEPARATOR = '-' * 10


@dataclass(frozen=True)
class CorrectionRule:
    """One declarative rewrite: pattern -> replacement, gated by a precondition"""
    name: str
    pattern: Pattern
    replacement: Union[str, Callable]
    precondition: Optional[Pattern] = None

    def applies_to(self, text: str) -> bool:
        return self.precondition is None or bool(self.precondition.search(text))

    def apply(self, text: str) -> Tuple[str, int]:
        if not self.applies_to(text):
            return text, 0
        return self.pattern.subn(self.replacement, text)


def _rule(name, pattern, replacement, flags=0, precondition=None):
    return CorrectionRule(name, re.compile(pattern, flags), replacement, precondition)


def _keep_case(accented):
    """Replacement that restores diacritics but keeps the source capitalisation"""
    def replace(match):
        source = match.group(0)
        if len(source) > 1 and source.isupper():
            return accented.upper()
        if source[:1].isupper():
            return accented[:1].upper() + accented[1:]
        return accented
    return replace


def _zeros_in_run(match):
    return re.sub(r'[Oo]', '0', match.group(0))


def _repeat(digit):
    """Replacement that turns a whole run of look-alike letters into one digit each"""
    return lambda match: digit * len(match.group(0))


# Fixed vocabulary: unaccented OCR output -> Vietnamese spelling
DIACRITIC_VOCABULARY = [
    # Multi-word section keywords first
    (r'tai\s+kham', 'tái khám'),
    (r'kham\s+lai', 'khám lại'),
    (r'hen\s+kham', 'hẹn khám'),
    (r'chuyen\s+khoa', 'chuyên khoa'),
    (r'loi\s+dan', 'lời dặn'),
    (r'chu\s+y', 'chú ý'),
    (r'luu\s+y', 'lưu ý'),
    (r'huong\s+dan', 'hướng dẫn'),
    (r'khi\s+doi', 'khi đói'),
    # Timing words
    (r'buoi', 'buổi'),
    (r'sang', 'sáng'),
    (r'trua', 'trưa'),
    (r'chieu', 'chiều'),
    (r'toi', 'tối'),
    (r'dem', 'đêm'),
    # Routes of administration
    (r'uong', 'uống'),
    (r'tiem', 'tiêm'),
    (r'boi', 'bôi'),
    (r'nho', 'nhỏ'),
    (r'ngam', 'ngậm'),
    (r'xit', 'xịt'),
    # Meals
    (r'truoc', 'trước'),
    (r'bua', 'bữa'),
    (r'(?:(?<=sau )|(?<=trước )|(?<=bữa ))an', 'ăn'),
    # Units and counts
    (r'(?:(?<=\d)|(?<=\d ))lan', 'lần'),
    (r'ngay', 'ngày'),
    (r'tuan', 'tuần'),
    (r'thang', 'tháng'),
    (r'vien', 'viên'),
    (r'goi', 'gói'),
    (r'tui', 'túi'),
    (r'hop', 'hộp'),
    (r'(?:(?<=\d)|(?<=\d ))ong', 'ống'),
]


# Order matters: digit fixes must run before unit spacing, unit spacing before
# decimal and structure rules, and all of them before diacritic restoration.
NORMALIZATION_RULES: List[CorrectionRule] = [
    # 1. Whitespace and stray characters
    _rule('strip_backticks', r'[`´]', ''),
    _rule('tabs_to_spaces', r'[\t\u00a0]', ' '),
    _rule('collapse_spaces', r' {2,}', ' '),
    _rule('trim_lines', r'^ +| +$', '', re.MULTILINE),
    _rule('long_dashes', r'[—–]', '-'),
    _rule('separator_runs', r'^(?!-{10}$)[-=_]{3,}$', SEPARATOR, re.MULTILINE),

    # 2. Digit/letter confusions next to numerals
    # A numeral run is rewritten in one substitution, so one pass settles it
    _rule('o_to_zero', rf'\d[\dOo]*[Oo](?=\d|\b|\s?{_DOSE_UNITS}\b)', _zeros_in_run,
          precondition=_HAS_DIGIT),
    _rule('l_to_one', r'(?<=\d)[lI|]+(?=\d)|(?<![A-Za-z])[l|]+(?=\d)', _repeat('1'),
          precondition=_HAS_DIGIT),
    _rule('s_to_five', rf'(?<=\d)S+(?=\d)|\bS(?=\d{{2,}}\s?{_DOSE_UNITS}\b)', _repeat('5'),
          precondition=_HAS_DIGIT),
    _rule('b_to_eight', r'(?<=\d)B+(?=\d)', _repeat('8'), precondition=_HAS_DIGIT),
    _rule('g_to_six', r'(?<=\d)G+(?=\d)', _repeat('6'), precondition=_HAS_DIGIT),
    _rule('z_to_two', r'(?<=\d)Z+(?=\d)', _repeat('2'), precondition=_HAS_DIGIT),
    _rule('rn_to_m', r'(?<=\d)( ?)rn([gl])\b', r'\1m\2', precondition=_HAS_DIGIT),

    # 3. Spacing around dosage units
    _rule('unit_spacing', rf'(?<=\d) +(?={_DOSE_UNITS}\b|%)', '', re.IGNORECASE,
          precondition=_HAS_DIGIT),
    _rule('unit_case', r'(?<=\d)(MG|Mg|mG|ML|Ml|mL|MCG|Mcg)\b',
          lambda m: m.group(1).lower(), precondition=_HAS_DIGIT),
    _rule('pack_unit_spacing', rf'(?<=\d)(?={_PACK_UNITS}\b)', ' ', re.IGNORECASE,
          precondition=_HAS_DIGIT),

    # 4. Decimal separator
    _rule('decimal_comma', r'(?<=\d),(?=\d{1,2}(?:mg|ml|mcg|g|kg)\b)', '.',
          precondition=_HAS_DIGIT),

    # 5. Record structure
    _rule('numbered_marker_space', r'(?<![\d.,])(\d{1,2})\.(?=[A-ZĐ])', r'\1. ',
          precondition=_HAS_DIGIT),
    _rule('name_dose_split', r'(?<=[a-z])(?=\d+(?:\.\d+)?(?:mg|ml|mcg|µg|g|kg|IU)\b)', ' ',
          precondition=_HAS_DIGIT),
] + [
    # 6. Diacritic restoration
    _rule(f'diacritic_{accented}', rf'\b{pattern}\b', _keep_case(accented), re.IGNORECASE)
    for pattern, accented in DIACRITIC_VOCABULARY
]


def apply_rules(text: str, rules: List[CorrectionRule] = None,
                max_passes: int = MAX_PASSES) -> Tuple[str, int]:
    """
    Run the ordered rule list over text until it stops changing

    Returns:
        (normalized_text, number_of_rewrites)
    """
    rules = NORMALIZATION_RULES if rules is None else rules
    total = 0

    for _ in range(max_passes):
        changed = False
        for rule in rules:
            text, count = rule.apply(text)
            if count:
                total += count
                changed = True
        if not changed:
            return text, total

    logger.warning(f"⚠️  Normalization did not settle after {max_passes} passes")
    return text, total


class PrescriptionTextNormalizer:
    """
    Corrects recognition artifacts in prescription text
    Stage 1: whitespace, Stage 2: digit/letter confusions, Stage 3: unit spacing,
    Stage 4: decimal separators, Stage 5: record structure, Stage 6: diacritics
    """

    def __init__(self, rules: List[CorrectionRule] = None):
        self.rules = list(NORMALIZATION_RULES if rules is None else rules)

    def normalize(self, text: str) -> str:
        """Pure text -> text, idempotent"""
        if not text:
            return ''
        normalized, _ = apply_rules(text, self.rules)
        return normalized

    def correct_text(self, text: str) -> Tuple[str, float]:
        """
        Apply all correction stages

        Returns:
            (corrected_text, confidence_score)
        """
        if not text:
            return '', 0.8

        corrected, corrections = apply_rules(text, self.rules)
        total_words = len(text.split())

        # More corrections = lower confidence in the original
        if total_words > 0:
            confidence = max(0.5, 1.0 - corrections / total_words)
        else:
            confidence = 0.8

        logger.info(f"Made {corrections} corrections, confidence: {confidence:.2f}")
        return corrected, confidence


class PrescriptionErrorCorrector:
    """
    Drug name matching against a vocabulary CSV (drug_name column)
    Missing vocabulary disables suggestions instead of failing
    """

    def __init__(self, drug_db_path=DRUG_DB_PATH):
        self.drug_db_path = drug_db_path
        self.drug_names = []
        self._known = set()
        self._load_drug_database()

    def _load_drug_database(self):
        """Load drug database for fuzzy matching"""
        if not self.drug_db_path:
            return
        try:
            drug_database = pd.read_csv(self.drug_db_path)
            self.drug_names = drug_database['drug_name'].dropna().astype(str).unique().tolist()
            self._known = {name.lower() for name in self.drug_names}
            logger.info(f"✅ Loaded {len(self.drug_names)} drugs from database")
        except (OSError, KeyError, ValueError, pd.errors.ParserError) as e:
            logger.warning(f"⚠️  Could not load drug database: {e}")
            self.drug_names = []
            self._known = set()

    @property
    def available(self) -> bool:
        return bool(self.drug_names)

    def is_known_drug(self, name: str) -> bool:
        return bool(name) and name.lower() in self._known

    def correct_drug_name(self, drug_name: str, top_n=3) -> List[Tuple[str, float]]:
        """
        Get top N drug name matches for a given (possibly incorrect) drug name

        Returns:
            List of (drug_name, score) tuples
        """
        if not self.drug_names or not drug_name:
            return []

        matches = process.extract(
            drug_name,
            self.drug_names,
            scorer=fuzz.ratio,
            limit=top_n
        )

        return [(match[0], match[1]) for match in matches]

    def suggest_drug_names(self, drug_name: str, top_n=3, min_score=75):
        """Suggestions for names that are not an exact vocabulary hit"""
        if not self.available or self.is_known_drug(drug_name):
            return []
        return [
            {'name': name, 'confidence': round(score / 100.0, 2)}
            for name, score in self.correct_drug_name(drug_name, top_n=top_n)
            if score >= min_score
        ]


# Standalone functions
def normalize_prescription_text(text: str) -> str:
    """Quick function to normalize prescription text"""
    return PrescriptionTextNormalizer().normalize(text)

