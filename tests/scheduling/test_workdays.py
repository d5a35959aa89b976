"""
Tests for the work-day calendar.
January 2024: Monday the 1st, Friday the 5th, weekend 6-7, Monday the 8th.
"""
import pytest
from datetime import date, datetime

from app.scheduling.records import OrgSettings
from app.scheduling.workdays import WorkCalendar, make_work_calendar

MON = date(2024, 1, 1)
WED = date(2024, 1, 3)
FRI = date(2024, 1, 5)
SAT = date(2024, 1, 6)
SUN = date(2024, 1, 7)
NEXT_MON = date(2024, 1, 8)
NEXT_TUE = date(2024, 1, 9)


@pytest.fixture
def calendar():
    """Mon-Fri, no holidays."""
    return WorkCalendar()


@pytest.fixture
def holiday_calendar():
    """Mon-Fri with Monday 2024-01-08 off."""
    return WorkCalendar(holidays=['2024-01-08'])


# ==============================================================================
# IS WORK DAY / NEXT WORK DAY
# ==============================================================================

class TestIsWorkDay:
    """Tests for is_work_day."""

    def test_weekday_is_work_day(self, calendar):
        """Test that a Monday is a work day on the default calendar."""
        assert calendar.is_work_day(MON) is True

    def test_weekend_is_not_work_day(self, calendar):
        """Test that Saturday and Sunday are not work days."""
        assert calendar.is_work_day(SAT) is False
        assert calendar.is_work_day(SUN) is False

    def test_holiday_is_not_work_day(self, holiday_calendar):
        """Test that a holiday on a working weekday is not a work day."""
        assert holiday_calendar.is_work_day(NEXT_MON) is False

    def test_accepts_iso_strings_and_datetimes(self, calendar):
        """Test that date-like inputs are parsed."""
        assert calendar.is_work_day('2024-01-01') is True
        assert calendar.is_work_day(datetime(2024, 1, 6, 9, 30)) is False

    def test_invalid_input_is_not_work_day(self, calendar):
        """Test that unparseable input never raises."""
        assert calendar.is_work_day('not-a-date') is False
        assert calendar.is_work_day(None) is False


class TestNextWorkDay:
    """Tests for next_work_day."""

    def test_work_day_returns_itself(self, calendar):
        """Test that a work day is returned unchanged."""
        assert calendar.next_work_day(MON) == MON

    def test_weekend_rolls_to_monday(self, calendar):
        """Test that Saturday rolls forward to Monday."""
        assert calendar.next_work_day(SAT) == NEXT_MON

    def test_skips_holiday(self, holiday_calendar):
        """Test that a weekend before a holiday Monday rolls to Tuesday."""
        assert holiday_calendar.next_work_day(SAT) == NEXT_TUE

    def test_invalid_returns_none(self, calendar):
        """Test that an invalid date yields None."""
        assert calendar.next_work_day('2024-02-30') is None


# ==============================================================================
# ADD / SUBTRACT
# ==============================================================================

class TestAddWorkDays:
    """Tests for add_work_days."""

    def test_zero_returns_input(self, calendar):
        """Test that adding zero work days returns the input, even on a weekend."""
        assert calendar.add_work_days(MON, 0) == MON
        assert calendar.add_work_days(SAT, 0) == SAT

    def test_friday_plus_one_is_monday(self, calendar):
        """Test that Friday + 1 work day is the following Monday."""
        assert calendar.add_work_days(FRI, 1) == NEXT_MON

    def test_never_returns_input_for_positive_count(self, calendar):
        """Test that a positive count always moves past the input."""
        assert calendar.add_work_days(MON, 1) == date(2024, 1, 2)

    def test_weekend_input_is_not_normalized_first(self, calendar):
        """Test that Saturday + 1 counts Monday as the first step."""
        assert calendar.add_work_days(SAT, 1) == NEXT_MON

    def test_skips_holidays(self, holiday_calendar):
        """Test that holidays are not counted."""
        assert holiday_calendar.add_work_days(FRI, 1) == NEXT_TUE

    def test_multiple_weeks(self, calendar):
        """Test a longer offset across two weekends."""
        assert calendar.add_work_days(MON, 10) == date(2024, 1, 15)

    def test_invalid_returns_none(self, calendar):
        """Test that an invalid date yields None."""
        assert calendar.add_work_days('garbage', 3) is None


class TestSubtractWorkDays:
    """Tests for subtract_work_days."""

    def test_monday_minus_one_is_friday(self, calendar):
        """Test that Monday - 1 work day is the previous Friday."""
        assert calendar.subtract_work_days(NEXT_MON, 1) == FRI

    def test_sunday_minus_one_is_friday(self, calendar):
        """Test that stepping back from Sunday lands on Friday."""
        assert calendar.subtract_work_days(SUN, 1) == FRI

    def test_zero_returns_input(self, calendar):
        """Test that subtracting zero returns the input."""
        assert calendar.subtract_work_days(SUN, 0) == SUN

    def test_round_trip_on_work_days(self, calendar):
        """Test that add then subtract returns to the original work day."""
        later = calendar.add_work_days(WED, 7)
        assert calendar.subtract_work_days(later, 7) == WED


# ==============================================================================
# COUNTS AND DIFFERENCES
# ==============================================================================

class TestBusinessDaysBetweenInclusive:
    """Tests for business_days_between_inclusive."""

    def test_full_week(self, calendar):
        """Test that Monday through Friday is five work days."""
        assert calendar.business_days_between_inclusive(MON, FRI) == 5

    def test_same_work_day_is_one(self, calendar):
        """Test that a single work day counts as one."""
        assert calendar.business_days_between_inclusive(MON, MON) == 1

    def test_same_weekend_day_floors_to_one(self, calendar):
        """Test the minimum-one floor when start is not after end."""
        assert calendar.business_days_between_inclusive(SAT, SAT) == 1

    def test_end_before_start_is_zero(self, calendar):
        """Test that a reversed range counts zero."""
        assert calendar.business_days_between_inclusive(FRI, MON) == 0

    def test_invalid_is_zero(self, calendar):
        """Test that invalid dates count zero."""
        assert calendar.business_days_between_inclusive(None, FRI) == 0


class TestWorkdayDiff:
    """Tests for workday_diff."""

    def test_forward_difference(self, calendar):
        """Test the number of work-day steps from Monday to the next Monday."""
        assert calendar.workday_diff(MON, NEXT_MON) == 5

    def test_backward_difference_is_negative(self, calendar):
        """Test that going back in time yields a negative count."""
        assert calendar.workday_diff(NEXT_MON, MON) == -5

    def test_same_day_is_zero(self, calendar):
        """Test that identical dates differ by zero."""
        assert calendar.workday_diff(MON, MON) == 0

    def test_diff_round_trips_with_shift(self, calendar):
        """Test that shifting by the difference lands on the target."""
        delta = calendar.workday_diff(WED, NEXT_TUE)
        assert calendar.shift_by_workdays(WED, delta) == NEXT_TUE

    def test_guard_clamps_huge_ranges(self, calendar):
        """Test that differences beyond the guard are clamped instead of failing."""
        assert calendar.workday_diff(date(2000, 1, 3), date(2040, 1, 2)) == 4000
        assert calendar.workday_diff(date(2040, 1, 2), date(2000, 1, 3)) == -4000


class TestShiftAndTarget:
    """Tests for shift_by_workdays and calculate_target_completion_date."""

    def test_shift_negative(self, calendar):
        """Test that a negative shift steps backward."""
        assert calendar.shift_by_workdays(NEXT_MON, -1) == FRI

    def test_shift_zero_is_identity(self, calendar):
        """Test that a zero shift leaves the date alone."""
        assert calendar.shift_by_workdays(SAT, 0) == SAT

    def test_target_completion_from_weekend_start(self, calendar):
        """Test that the start is normalized before counting build days."""
        assert calendar.calculate_target_completion_date(SAT, 5) == date(2024, 1, 12)

    def test_target_completion_minimum_one_day(self, calendar):
        """Test that zero build days still yields the start date."""
        assert calendar.calculate_target_completion_date(MON, 0) == MON


# ==============================================================================
# CONFIGURATION
# ==============================================================================

class TestCalendarConfiguration:
    """Tests for building calendars from org settings."""

    def test_missing_settings_default_to_weekdays(self):
        """Test that None settings give a Mon-Fri calendar."""
        calendar = make_work_calendar(None)
        assert calendar.work_days == frozenset({1, 2, 3, 4, 5})

    def test_six_day_week(self):
        """Test that Saturday can be a working day."""
        calendar = make_work_calendar({'work_days': [1, 2, 3, 4, 5, 6]})
        assert calendar.add_work_days(FRI, 1) == SAT

    def test_invalid_work_days_fall_back(self):
        """Test that an unusable work-day list falls back to Mon-Fri."""
        settings = OrgSettings.from_dict({'work_days': ['x', 9]})
        assert settings.work_days == frozenset({1, 2, 3, 4, 5})

    def test_holiday_formats(self):
        """Test that holidays may be strings or {date} objects; junk is dropped."""
        calendar = make_work_calendar({
            'work_days': [1, 2, 3, 4, 5],
            'holidays': [{'date': '2024-01-08'}, '2024-01-09', '', 'bogus'],
        })
        assert calendar.holidays == frozenset({NEXT_MON, NEXT_TUE})
        assert calendar.add_work_days(FRI, 1) == date(2024, 1, 10)

    def test_calendar_is_passed_through(self):
        """Test that an existing calendar is reused as-is."""
        calendar = WorkCalendar()
        assert make_work_calendar(calendar) is calendar

    def test_no_working_weekdays_is_pathological(self):
        """Test that a calendar with no work days degrades to None instead of looping."""
        calendar = WorkCalendar(work_days=[])
        assert calendar.is_pathological is True
        assert calendar.next_work_day(MON) is None
        assert calendar.add_work_days(MON, 3) is None
        assert calendar.add_work_days(MON, 0) == MON
