"""
Reminder scheduler
Turns canonical medication and appointment records into time-stamped reminder events
"""

import re
import logging
from collections import OrderedDict
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

from .config import FREQUENCY_CLOCK, REMINDER_SETTINGS, TIMING_CLOCK
from .models import (
    APPOINTMENT_SPECIALIST, AppointmentRecord, ExtractionResult,
    MedicationRecord, ReminderEvent
)

logger = logging.getLogger(__name__)

KIND_MEDICATION = 'medication'
KIND_APPOINTMENT = 'appointment'
REPEAT_DAILY = 'daily'

FREQUENCY_COUNT = re.compile(r'(\d+)\s*(?:lần|lan|x|times?)(?!\w)', re.IGNORECASE)
FREQUENCY_WORDS = {'once': 1, 'twice': 2, 'three times': 3, 'four times': 4}
FREQUENCY_WORD = re.compile(r'\b(once|twice|three times|four times)\b', re.IGNORECASE)

DURATION_UNITS = [
    (re.compile(r'(\d+)\s*(?:ngày|ngay|days?)(?!\w)', re.IGNORECASE), 1),
    (re.compile(r'(\d+)\s*(?:tuần|tuan|weeks?)(?!\w)', re.IGNORECASE), 7),
    (re.compile(r'(\d+)\s*(?:tháng|thang|months?)(?!\w)', re.IGNORECASE), 30),
]

APPOINTMENT_LABELS = {
    'general': 'Tái khám',
    APPOINTMENT_SPECIALIST: 'Tái khám chuyên khoa',
}


def parse_clock(value: str) -> time:
    hour, minute = value.split(':')
    return time(int(hour), int(minute))


def frequency_per_day(frequency: Optional[str]) -> Optional[int]:
    """Times per day from '2 lần/ngày', '3x/day', 'twice daily'"""
    if not frequency:
        return None
    match = FREQUENCY_COUNT.search(frequency)
    if match:
        return int(match.group(1))
    match = FREQUENCY_WORD.search(frequency)
    if match:
        return FREQUENCY_WORDS[match.group(1).lower()]
    return None


def duration_days(duration_text: Optional[str], default: int = None) -> int:
    """'N ngày' -> N, 'N tuần' -> 7N, 'N tháng' -> 30N, else the default"""
    default = default or REMINDER_SETTINGS['default_duration_days']
    if not duration_text:
        return default
    for pattern, multiplier in DURATION_UNITS:
        match = pattern.search(duration_text)
        if match and int(match.group(1)) > 0:
            return int(match.group(1)) * multiplier
    return default


def medication_times(medication: MedicationRecord) -> Tuple[List[str], bool]:
    """
    Clock times for one medication and whether they come from the frequency fallback

    Returns:
        (times, is_default_schedule); empty times when neither timing nor a
        canonical frequency is known
    """
    if medication.timing_tags:
        return [TIMING_CLOCK[tag] for tag in medication.timing_tags], False

    count = frequency_per_day(medication.frequency)
    if count in FREQUENCY_CLOCK:
        return list(FREQUENCY_CLOCK[count]), True

    return [], False


def medication_body(medication: MedicationRecord) -> str:
    body = f"Đã đến giờ uống thuốc {medication.name}"
    if medication.dosage_terms:
        body += f" ({' '.join(medication.dosage_terms)})"
    if medication.quantity and medication.unit:
        body += f" - {medication.quantity} {medication.unit}"
    if medication.instructions:
        body += f"\n{', '.join(medication.instructions)}"
    return body


class ReminderScheduler:
    """Pure function of (ExtractionResult, start date) -> sorted reminder events"""

    def __init__(self, settings=None):
        self.settings = dict(REMINDER_SETTINGS)
        self.settings.update(settings or {})

    def medication_reminders(self, medication: MedicationRecord, start: date) -> List[ReminderEvent]:
        times, is_default = medication_times(medication)
        if not times:
            logger.debug(f"No timing or frequency for {medication.name}, no reminders")
            return []

        days = duration_days(medication.duration_text, self.settings['default_duration_days'])
        title = f"Uống thuốc: {medication.name}"
        body = medication_body(medication)

        events = []
        for day in range(days):
            current = start + timedelta(days=day)
            for clock in times:
                events.append(ReminderEvent(
                    kind=KIND_MEDICATION,
                    scheduled_at=datetime.combine(current, parse_clock(clock)),
                    title=title,
                    body=body,
                    subject=medication.name,
                    repeat=REPEAT_DAILY,
                    is_default_schedule=is_default,
                ))

        logger.info(f"💊 {medication.name}: {len(times)} reminders/day x {days} days")
        return events

    def appointment_reminders(self, appointment: AppointmentRecord) -> List[ReminderEvent]:
        if not appointment.date:
            return []
        try:
            day = date.fromisoformat(appointment.date)
        except ValueError:
            logger.warning(f"⚠️  Unparseable appointment date: {appointment.date}")
            return []

        clock = appointment.time or self.settings['default_appointment_time']
        at = datetime.combine(day, parse_clock(clock))
        notice = parse_clock(self.settings['evening_notice_time'])
        label = APPOINTMENT_LABELS.get(appointment.type, 'Tái khám')
        title = f"Nhắc tái khám: {label}"
        doctor = f"Bác sĩ {appointment.doctor}" if appointment.doctor else None
        notes = ''.join(f"\n{part}" for part in (appointment.location, doctor, appointment.notes) if part)

        schedule = [
            (at - timedelta(hours=1),
             f"Bạn có lịch {label} lúc {clock} hôm nay.{notes}"),
            (datetime.combine(day - timedelta(days=1), notice),
             f"Nhắc nhở: Ngày mai bạn có lịch {label} lúc {clock}.{notes}"),
            (datetime.combine(day - timedelta(days=3), notice),
             f"Nhắc nhở: Còn 3 ngày nữa bạn có lịch {label} vào {appointment.date} lúc {clock}.{notes}"),
        ]
        return [
            ReminderEvent(
                kind=KIND_APPOINTMENT,
                scheduled_at=scheduled_at,
                title=title,
                body=body,
                subject=appointment.type,
            )
            for scheduled_at, body in schedule
        ]

    def schedule(self, result: ExtractionResult, start_date=None) -> List[ReminderEvent]:
        start = start_date or date.today()
        if isinstance(start, datetime):
            start = start.date()

        events = []
        for medication in result.medications:
            events.extend(self.medication_reminders(medication, start))
        for appointment in result.appointments:
            events.extend(self.appointment_reminders(appointment))

        events.sort(key=lambda e: e.scheduled_at)
        logger.info(f"✅ Scheduled {len(events)} reminders")
        return events


def group_by_date(events: List[ReminderEvent]) -> Dict[str, List[ReminderEvent]]:
    """Events keyed by ISO date, in chronological order"""
    grouped = OrderedDict()
    for event in sorted(events, key=lambda e: e.scheduled_at):
        grouped.setdefault(event.scheduled_at.date().isoformat(), []).append(event)
    return grouped


def filter_by_date_range(events: List[ReminderEvent], start, end) -> List[ReminderEvent]:
    """Events whose date falls within [start, end], inclusive"""
    start = start.date() if isinstance(start, datetime) else start
    end = end.date() if isinstance(end, datetime) else end
    return [e for e in events if start <= e.scheduled_at.date() <= end]
