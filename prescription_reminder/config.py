"""
Configuration for the prescription extraction and reminder pipeline
"""

import os
import logging

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_flag(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name, default):
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _env_float(name, default):
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


# OCR Settings
OCR_ENGINES = {
    'tesseract': True,                                # Printed prescriptions
    'easyocr': _env_flag('OCR_USE_EASYOCR', False),   # Handwriting, slow to load
}

# Tesseract language packs (Vietnamese prescriptions with Latin drug names)
TESSERACT_LANG = os.getenv('OCR_LANG', 'vie+eng')

# Recognition strategies, in priority order (ties go to the earlier one)
# PSM 3: auto, 6: single block, 11: sparse text, 4: single column
# OEM 1: LSTM only, 3: default (LSTM + legacy)
OCR_STRATEGIES = [
    ('AUTO', '--psm 3 --oem 1 -c preserve_interword_spaces=1'),
    ('SINGLE_BLOCK', '--psm 6 --oem 1'),
    ('SPARSE_TEXT', '--psm 11 --oem 1'),
    ('SINGLE_COLUMN', '--psm 4 --oem 1'),
    ('HYBRID_OEM', '--psm 3 --oem 3'),
]

# EasyOCR Settings (optimized for handwriting)
EASYOCR_CONFIG = {
    'languages': ['vi', 'en'],
    'gpu': False,
    'decoder': 'beamsearch',
}

# Candidate scoring bonuses
OCR_SCORING = {
    'many_lines_threshold': 10,
    'many_lines_bonus': 10,
    'numbered_list_bonus': 15,
    'capitalized_token_bonus': 10,
}

# Image Preprocessing
PREPROCESSING = {
    'min_side': 1500,          # Upscale when smaller
    'contrast_alpha': 1.5,
    'contrast_beta': -64,
    'sharpen_sigma': 1.5,
    'median_kernel': 3,
    'binary_threshold': 128,
}

# Temporary artifact cleanup
TEMP_CLEANUP = {
    'max_retries': 5,
    'delay_seconds': 0.5,
}

# Structural parser windows
PARSER_SETTINGS = {
    'continuation_lines': 5,      # Lookahead after a numbered medication line
    'unnumbered_lookahead': 2,    # Lookahead when the text has no numbering
    'appointment_lines': 5,
    'appointment_items': 10,
    'instruction_lines': 10,
    'instruction_items': 20,
    'max_items_per_record': 50,
    'max_list_number': 50,
    'resegment_min_markers': 3,
}

# Hybrid orchestration
HYBRID_SETTINGS = {
    'min_medications_local': _env_int('MIN_MEDICATIONS_LOCAL', 5),
    'min_appointments_local': _env_int('MIN_APPOINTMENTS_LOCAL', 0),
    'enable_remote': _env_flag('REMOTE_EXTRACTION_ENABLED', True),
    'filter_before_remote': True,
}

# Remote (Gemini) extraction
REMOTE_EXTRACTION = {
    'model': os.getenv('GEMINI_MODEL', 'gemini-2.5-flash'),
    'timeout_seconds': _env_float('REMOTE_TIMEOUT_SECONDS', 30.0),
    'temperature': 0.3,
    'max_output_tokens': 4096,
    'max_medications': 10,
}

# Smart filter limits for the remote payload
SMART_FILTER = {
    'max_segment_length': 500,
    'max_medications': 15,
    'max_patient_lines': 3,
    'max_diagnosis_lines': 5,
}

# Plausibility thresholds (0-100)
PLAUSIBILITY_THRESHOLDS = {
    'valid': 60,
    'low_confidence': 40,
    'max_medications': 50,
}

# Canonical daily periods, in daily order
TIMING_ORDER = ['morning', 'noon', 'afternoon', 'evening', 'night']

# Clock time for each period
TIMING_CLOCK = {
    'morning': '07:00',
    'noon': '12:00',
    'afternoon': '17:00',
    'evening': '20:00',
    'night': '22:00',
}

# Canonical time sets for "N times a day"
FREQUENCY_CLOCK = {
    1: ['07:00'],
    2: ['07:00', '20:00'],
    3: ['07:00', '12:00', '20:00'],
    4: ['07:00', '12:00', '17:00', '21:00'],
}

REMINDER_SETTINGS = {
    'default_duration_days': 7,
    'default_appointment_time': '08:00',
    'evening_notice_time': '20:00',
}

# Drug vocabulary for name suggestions (optional CSV with a drug_name column)
DRUG_DB_PATH = os.getenv('DRUG_DB_PATH', os.path.join('data', 'drug_names.csv'))

# Tokens that look like capitalised names but are not drugs
INVALID_MEDICATION_NAMES = {
    'N/A', 'NA', 'NULL', 'UNDEFINED',
    'STT', 'TEN', 'LIEU', 'LUONG', 'SO', 'NGAY', 'THANG', 'NAM',
    'BENH', 'VIEN', 'PHONG', 'KHAM', 'NHAN',
    'THAY', 'BANG', 'CHAI', 'ONG', 'GOI', 'TUI', 'HOP', 'LO', 'HU',
    'SANG', 'TRUA', 'CHIEU', 'TOI', 'KHUYA', 'DEM', 'SOM', 'MUON',
    'UONG', 'DUNG', 'TIEM', 'BOI', 'NHO', 'NGAM', 'XIT', 'SUC', 'RUA', 'THOA',
    'TRUOC', 'SAU', 'TRONG', 'NGOAI', 'AN', 'BUA', 'NGU', 'THUC', 'DAY',
    'LAN', 'TUAN', 'CFU', 'MG', 'ML', 'G', 'KG', 'MCG', 'IU', 'UI', 'CC',
    'MMOL', 'MEQ', 'MOT', 'HAI', 'BA', 'BON', 'BAY', 'TAM', 'CHIN', 'MUOI',
    'PHAT', 'KE', 'DON', 'TOA', 'THUOC', 'DUOC', 'SI', 'BAC',
    'DANH', 'SACH', 'CHI', 'TIET', 'GHI', 'CHU', 'LUU', 'VI', 'CH', 'NG',
    'THU', 'GI', 'VUI', 'KHI',
    'TAB', 'CAP', 'SYP', 'INJ', 'RX', 'BS', 'DR', 'ICD', 'MA', 'HO',
}

# Medical keywords that raise plausibility
MEDICAL_KEYWORDS = [
    'bác sĩ', 'bác sỹ', 'doctor',
    'bệnh viện', 'hospital',
    'phòng khám', 'clinic',
    'đơn thuốc', 'prescription',
    'tái khám', 'follow up',
    'lời dặn', 'instructions',
    'liều lượng', 'dosage',
    'uống', 'medication',
    'chẩn đoán', 'diagnosis',
    'triệu chứng', 'symptoms',
    'điều trị', 'treatment',
]


def setup_logging(level=logging.INFO):
    """Configure root logging for scripts and notebooks"""
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
