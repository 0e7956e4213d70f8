"""
Gemini AI-powered prescription extraction
Sends filtered prescription text to Gemini and maps the JSON answer
onto the same records the local parser produces
"""

import os
import re
import json
import logging
from datetime import date
from typing import Dict, List, Optional

from .config import REMOTE_EXTRACTION
from .exceptions import RemoteExtractionFailure
from .models import (
    APPOINTMENT_GENERAL, APPOINTMENT_SPECIALIST, METHOD_REMOTE,
    AppointmentRecord, ExtractionResult, MedicationRecord
)
from .structural_parser import (
    SPECIALIST_KEYWORD, extract_dosage_terms, find_date, find_time,
    is_valid_medication_name, map_timing_tags
)

logger = logging.getLogger(__name__)

CODE_FENCE = re.compile(r'^```(?:json)?\s*|\s*```$', re.IGNORECASE)
JSON_OBJECT = re.compile(r'\{.*\}', re.DOTALL)


def build_prompt(text: str, max_medications: int = 10) -> str:
    """Fixed Vietnamese instruction template for the extraction request"""
    return f"""
Phân tích văn bản đơn thuốc sau và trích xuất thông tin về thuốc và lịch khám.
Chỉ trích xuất TỐI ĐA {max_medications} LOẠI THUỐC QUAN TRỌNG NHẤT (những thuốc có đầy đủ thông tin liều lượng và tần suất).

Trả về JSON với cấu trúc sau (KHÔNG thêm markdown, chỉ JSON thuần):

{{
  "medications": [
    {{
      "name": "tên thuốc",
      "dosage": "liều lượng",
      "frequency": "tần suất",
      "timing": ["sáng", "trưa", "tối"],
      "duration": "thời gian",
      "instructions": "hướng dẫn"
    }}
  ],
  "appointments": [
    {{
      "type": "general hoặc specialist",
      "date": "YYYY-MM-DD",
      "time": "HH:MM",
      "doctor": "tên bác sĩ",
      "location": "địa điểm",
      "notes": "ghi chú"
    }}
  ],
  "instructions": ["lời dặn của bác sĩ"],
  "summary": "tóm tắt ngắn gọn"
}}

Văn bản:
{text}

LƯU Ý: Chỉ trả về JSON, không thêm markdown hay text khác. Chỉ lấy {max_medications} thuốc quan trọng nhất.
"""


def parse_remote_response(response_text: str) -> Dict:
    """
    Lenient JSON parsing: strip markdown fences, then fall back to the
    outermost {...} substring

    Raises:
        RemoteExtractionFailure: no JSON object could be recovered
    """
    if not response_text or not response_text.strip():
        raise RemoteExtractionFailure("Empty response from remote model")

    cleaned = CODE_FENCE.sub('', response_text.strip())
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError:
        match = JSON_OBJECT.search(cleaned)
        if not match:
            raise RemoteExtractionFailure("Remote response contains no JSON object")
        try:
            payload = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise RemoteExtractionFailure(f"Malformed JSON in remote response: {e}") from e

    if not isinstance(payload, dict):
        raise RemoteExtractionFailure("Remote response is not a JSON object")
    return payload


def _as_text(value) -> str:
    if value is None:
        return ''
    if isinstance(value, (list, tuple)):
        return ' '.join(str(v) for v in value if v)
    return str(value)


def _as_list(value) -> List[str]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value).split(',') if part.strip()]


def medication_from_payload(entry: Dict) -> Optional[MedicationRecord]:
    """Same name and record gates as the local parser"""
    if not isinstance(entry, dict):
        return None

    name = _as_text(entry.get('name') or entry.get('drug_name')).strip()
    if not is_valid_medication_name(name):
        logger.debug(f"Dropped remote medication with invalid name: {name!r}")
        return None

    record = MedicationRecord(
        name=name,
        dosage_terms=extract_dosage_terms(_as_text(entry.get('dosage'))),
        frequency=_as_text(entry.get('frequency')).strip() or None,
        timing_tags=map_timing_tags(_as_text(entry.get('timing'))),
        duration_text=_as_text(entry.get('duration')).strip() or None,
        instructions=[i.lower() for i in _as_list(entry.get('instructions'))],
    )
    if not record.has_schedule_details():
        logger.debug(f"Dropped remote medication {name}: no schedule details")
        return None
    return record


def _iso_date(value) -> Optional[str]:
    text = _as_text(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError:
        return find_date(text)


def appointment_from_payload(entry: Dict) -> Optional[AppointmentRecord]:
    if not isinstance(entry, dict):
        return None

    notes = _as_text(entry.get('notes')).strip() or None
    type_text = f"{_as_text(entry.get('type'))} {notes or ''}"
    kind = APPOINTMENT_SPECIALIST if SPECIALIST_KEYWORD.search(type_text) else APPOINTMENT_GENERAL

    appointment = AppointmentRecord(
        type=kind,
        date=_iso_date(entry.get('date')),
        time=find_time(_as_text(entry.get('time'))),
        notes=notes if notes and len(notes) > 10 else None,
        doctor=_as_text(entry.get('doctor')).strip() or None,
        location=_as_text(entry.get('location')).strip() or None,
    )
    return appointment if appointment.is_valid() else None


def result_from_payload(payload: Dict) -> ExtractionResult:
    medications = [m for m in map(medication_from_payload, payload.get('medications') or []) if m]
    appointments = [a for a in map(appointment_from_payload, payload.get('appointments') or []) if a]

    instructions = []
    for note in _as_list(payload.get('instructions')):
        if len(note) >= 10 and note not in instructions:
            instructions.append(note)

    summary = payload.get('summary')
    return ExtractionResult(
        medications=medications,
        appointments=appointments,
        instructions=instructions,
        method=METHOD_REMOTE,
        summary=str(summary) if summary else None,
    )


class GeminiRemoteExtractor:
    """
    Uses Gemini AI to extract prescription records from filtered text
    One bounded call per document, never retried
    """

    def __init__(self, model_name=None, timeout_seconds=None, api_key=None, config=None):
        self.config = dict(REMOTE_EXTRACTION)
        self.config.update(config or {})
        self.model_name = model_name or self.config['model']
        self.timeout_seconds = timeout_seconds or self.config['timeout_seconds']
        self.gemini_api_key = api_key or os.getenv('GEMINI_API_KEY')
        self.model = None

        # Initialize Gemini
        try:
            import google.generativeai as genai
            if self.gemini_api_key:
                genai.configure(api_key=self.gemini_api_key)
                self.model = genai.GenerativeModel(
                    self.model_name,
                    generation_config={
                        'temperature': self.config['temperature'],
                        'max_output_tokens': self.config['max_output_tokens'],
                    }
                )
                logger.info(f"✅ Gemini AI initialized ({self.model_name})")
            else:
                logger.warning("⚠️  GEMINI_API_KEY not found")
        except Exception as e:
            logger.warning(f"⚠️  Gemini initialization failed: {e}")
            self.model = None

    @property
    def available(self) -> bool:
        return self.model is not None

    def extract(self, text: str) -> ExtractionResult:
        """
        Extract records from prescription text

        Raises:
            RemoteExtractionFailure: missing key, network error, timeout or malformed answer
        """
        if not self.model:
            raise RemoteExtractionFailure("Gemini not available (missing API key or client)")

        prompt = build_prompt(text, self.config['max_medications'])
        try:
            logger.info("🤖 Calling Gemini AI to extract prescription records...")
            response = self.model.generate_content(
                prompt,
                request_options={'timeout': self.timeout_seconds, 'retry': None}
            )
            response_text = response.text
        except Exception as e:
            raise RemoteExtractionFailure(f"Gemini request failed: {e}") from e

        result = result_from_payload(parse_remote_response(response_text))
        logger.info(
            f"✅ Gemini extracted {len(result.medications)} medications, "
            f"{len(result.appointments)} appointments"
        )
        return result
