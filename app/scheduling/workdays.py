"""
Workday calendar.

Pure date arithmetic over an organization's work week and holiday list.
Offsets are computed in closed form with numpy's business-day calendar
rather than by walking the calendar one day at a time.

Weekday indices follow the scheduling convention: 0 = Sunday ... 6 = Saturday.
Invalid dates never raise; they yield None (or 0 for counts).
"""
from datetime import date, timedelta
from typing import Iterable, Optional

import numpy as np

from app.datetime_utils import parse_iso_date
from app.logging_config import get_logger
from app.scheduling.config import SchedulingConfig
from app.scheduling.records import OrgSettings

logger = get_logger(__name__)

ONE_DAY = timedelta(days=1)


def _to_count(value) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


class WorkCalendar:
    """Work-day arithmetic for one work week + holiday configuration."""

    def __init__(self, work_days: Optional[Iterable[int]] = None, holidays: Iterable = ()):
        if work_days is None:
            work_days = SchedulingConfig.DEFAULT_WORK_DAYS
        self.work_days = frozenset(d for d in work_days if isinstance(d, int) and 0 <= d <= 6)
        self.holidays = frozenset(
            d for d in (parse_iso_date(h) for h in holidays) if d is not None
        )

        # numpy weekmasks run Monday..Sunday
        weekmask = [1 if (i + 1) % 7 in self.work_days else 0 for i in range(7)]
        if any(weekmask):
            self._busdaycal = np.busdaycalendar(
                weekmask=weekmask,
                holidays=[np.datetime64(h, 'D') for h in sorted(self.holidays)],
            )
        else:
            # No working weekdays at all: every offset is undefined
            self._busdaycal = None

    @classmethod
    def from_settings(cls, settings=None) -> 'WorkCalendar':
        """Build a calendar from OrgSettings, a raw settings dict, or None (Mon-Fri)."""
        if isinstance(settings, WorkCalendar):
            return settings
        if not isinstance(settings, OrgSettings):
            settings = OrgSettings.from_dict(settings)
        return cls(work_days=settings.work_days, holidays=settings.holidays)

    @property
    def is_pathological(self) -> bool:
        return self._busdaycal is None

    def _offset(self, day: date, offset: int, roll: str) -> Optional[date]:
        if self._busdaycal is None:
            logger.warning("Work calendar has no working weekdays", day=day.isoformat(), offset=offset)
            return None
        try:
            result = np.busday_offset(np.datetime64(day, 'D'), offset, roll=roll, busdaycal=self._busdaycal)
            return result.item()
        except (ValueError, OverflowError) as exc:
            logger.warning("Work-day offset out of range", day=day.isoformat(), offset=offset, error=str(exc))
            return None

    def _count(self, start: date, end_exclusive: date) -> int:
        """Number of work days in [start, end_exclusive)."""
        if self._busdaycal is None or end_exclusive <= start:
            return 0
        return int(np.busday_count(
            np.datetime64(start, 'D'),
            np.datetime64(end_exclusive, 'D'),
            busdaycal=self._busdaycal,
        ))

    def is_work_day(self, day_like) -> bool:
        """True iff the weekday is a working day and the date is not a holiday."""
        day = parse_iso_date(day_like)
        if day is None:
            return False
        weekday = (day.weekday() + 1) % 7
        if weekday not in self.work_days:
            return False
        return day not in self.holidays

    def next_work_day(self, day_like) -> Optional[date]:
        """First work day on or after the input."""
        day = parse_iso_date(day_like)
        if day is None:
            return None
        return self._offset(day, 0, 'forward')

    def add_work_days(self, day_like, count) -> Optional[date]:
        """
        Advance `count` work days from the input.

        The input is not normalized first: the result is the count-th work day
        strictly after the input, so add_work_days(d, 0) == d and the input is
        never returned for count > 0.
        """
        day = parse_iso_date(day_like)
        if day is None:
            return None
        total = _to_count(count)
        if total == 0:
            return day
        # Rolling backward first makes the offset count strictly after the input
        return self._offset(day, total, 'backward')

    def subtract_work_days(self, day_like, count) -> Optional[date]:
        """Mirror of add_work_days: the count-th work day strictly before the input."""
        day = parse_iso_date(day_like)
        if day is None:
            return None
        total = _to_count(count)
        if total == 0:
            return day
        return self._offset(day, -total, 'forward')

    def business_days_between_inclusive(self, start_like, end_like) -> int:
        """Work days in [start, end]; 0 if end < start, otherwise at least 1."""
        start = parse_iso_date(start_like)
        end = parse_iso_date(end_like)
        if start is None or end is None:
            return 0
        if end < start:
            return 0
        return max(1, self._count(start, end + ONE_DAY))

    def workday_diff(self, from_like, to_like) -> int:
        """
        Signed number of work-day steps from one date to another.

        Positive when `to` is later. Clamped to MAX_WORKDAY_STEPS, in which case
        the result is degraded and a warning is logged.
        """
        start = parse_iso_date(from_like)
        end = parse_iso_date(to_like)
        if start is None or end is None or start == end:
            return 0

        if end > start:
            delta = self._count(start + ONE_DAY, end + ONE_DAY)
        else:
            delta = -self._count(end, start)

        limit = SchedulingConfig.MAX_WORKDAY_STEPS
        if abs(delta) > limit:
            logger.warning(
                "Work-day difference exceeds guard, result is degraded",
                from_date=start.isoformat(),
                to_date=end.isoformat(),
                delta=delta,
                limit=limit,
            )
            delta = limit if delta > 0 else -limit
        return delta

    def shift_by_workdays(self, day_like, delta) -> Optional[date]:
        """Move a date by a signed number of work days; zero leaves it unchanged."""
        day = parse_iso_date(day_like)
        if day is None or not delta:
            return day
        if delta > 0:
            return self.add_work_days(day, delta)
        return self.subtract_work_days(day, abs(delta))

    def calculate_target_completion_date(self, start_like, build_days) -> Optional[date]:
        """Next work day on/after start, plus build_days - 1 work days."""
        start = self.next_work_day(start_like)
        if start is None:
            return None
        days = max(1, _to_count(build_days) or 1)
        return self.add_work_days(start, days - 1)


def make_work_calendar(org_settings=None) -> WorkCalendar:
    """Shorthand used by the engine modules."""
    return WorkCalendar.from_settings(org_settings)
