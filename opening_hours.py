"""
opening_hours.py
Weekly opening schedules and day-level availability checks for restaurants
"""

import json
import logging
import re
from typing import Dict, Optional, Any
from datetime import datetime

from models import DayHours

logger = logging.getLogger(__name__)

# Index matches datetime.weekday(): Monday is 0
DAYS_OF_WEEK = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']

TIME_PATTERN = re.compile(r'^([01]?[0-9]|2[0-3]):[0-5][0-9]$')

WeeklySchedule = Dict[str, DayHours]


def weekday_name(moment: datetime) -> str:
    """Lowercase weekday name for a datetime"""
    return DAYS_OF_WEEK[moment.weekday()]


def is_open_on_day(schedule: Optional[WeeklySchedule], weekday: str) -> bool:
    """Whether a restaurant opens at some point on the given weekday.

    Only day-level closure is considered; open/close times are not compared
    against the current time. A restaurant without schedule data, or without
    an entry for the day, counts as open so it is never silently excluded.
    """
    if not schedule:
        return True

    day_hours = schedule.get(weekday)
    if day_hours is None:
        return True

    return not day_hours.is_closed


def default_opening_hours() -> WeeklySchedule:
    """Open every day 09:00-22:00"""
    return {day: DayHours() for day in DAYS_OF_WEEK}


def schedule_with_closed_days(closed_days) -> WeeklySchedule:
    """Default schedule with the given weekdays marked closed"""
    closed = {d.strip().lower() for d in closed_days if d and d.strip()}
    unknown = closed - set(DAYS_OF_WEEK)
    if unknown:
        raise ValueError(f"Unknown weekday(s): {', '.join(sorted(unknown))}")

    schedule = default_opening_hours()
    for day in closed:
        schedule[day].is_closed = True
    return schedule


def is_valid_time(value: Any) -> bool:
    return isinstance(value, str) and bool(TIME_PATTERN.match(value))


def validate_opening_hours(raw: Any) -> bool:
    """Check a raw schedule dict has exactly the seven weekdays in the expected shape"""
    if not isinstance(raw, dict) or set(raw.keys()) != set(DAYS_OF_WEEK):
        return False

    for day in DAYS_OF_WEEK:
        day_hours = raw[day]
        if not isinstance(day_hours, dict):
            return False
        if not isinstance(day_hours.get('is_closed'), bool):
            return False
        if not day_hours['is_closed']:
            if not is_valid_time(day_hours.get('open')) or not is_valid_time(day_hours.get('close')):
                return False

    return True


def parse_opening_hours(raw: Any) -> Optional[WeeklySchedule]:
    """Parse a stored schedule (JSON string or dict) into DayHours entries.

    Empty or malformed data yields None, which availability checks treat as
    always open.
    """
    if raw is None or raw == '':
        return None

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring unparseable opening hours: {e}")
            return None

    if not raw:
        return None

    if not validate_opening_hours(raw):
        logger.warning("Ignoring malformed opening hours schedule")
        return None

    return {
        day: DayHours(
            open=raw[day].get('open', '09:00'),
            close=raw[day].get('close', '22:00'),
            is_closed=raw[day]['is_closed'],
        )
        for day in DAYS_OF_WEEK
    }


def serialize_opening_hours(schedule: Optional[WeeklySchedule]) -> str:
    if not schedule:
        return '{}'
    return json.dumps({day: hours.to_dict() for day, hours in schedule.items()})
