"""
Unit Tests for business-day and period maths

Tests cover:
1. Mapping timestamps to the 06:00 business day
2. Current and previous business day
3. Day, week, month and all-time windows
"""

from datetime import date, datetime, timezone

from core.config import Settings
from rankings.models import RankingPeriod
from rankings.periods import (
    business_date,
    current_business_date,
    previous_business_date,
    period_window,
    in_window,
)


SETTINGS = Settings(timezone="Asia/Seoul", business_day_start_hour=6)


class TestBusinessDate:
    """Tests for mapping local timestamps to business days."""

    def test_before_six_belongs_to_previous_day(self):
        """05:59 still counts toward the previous calendar day."""
        assert business_date(datetime(2024, 5, 10, 5, 59), SETTINGS) == date(2024, 5, 9)

    def test_after_six_belongs_to_same_day(self):
        """06:01 counts toward the same calendar day."""
        assert business_date(datetime(2024, 5, 10, 6, 1), SETTINGS) == date(2024, 5, 10)

    def test_exactly_six_starts_new_day(self):
        """The boundary instant belongs to the new business day."""
        assert business_date(datetime(2024, 5, 10, 6, 0), SETTINGS) == date(2024, 5, 10)

    def test_aware_timestamp_converted_to_local_zone(self):
        """Aware timestamps are converted to Seoul time before the boundary applies."""
        # 20:59 UTC on the 9th is 05:59 KST on the 10th
        assert business_date(datetime(2024, 5, 9, 20, 59, tzinfo=timezone.utc), SETTINGS) == date(2024, 5, 9)
        assert business_date(datetime(2024, 5, 9, 21, 1, tzinfo=timezone.utc), SETTINGS) == date(2024, 5, 10)

    def test_month_boundary(self):
        """Early hours on the 1st fall on the last day of the previous month."""
        assert business_date(datetime(2024, 3, 1, 2, 0), SETTINGS) == date(2024, 2, 29)

    def test_previous_business_date(self):
        """Yesterday is one day before the current business day, not the calendar day."""
        now = datetime(2024, 5, 10, 5, 59)
        assert current_business_date(now, SETTINGS) == date(2024, 5, 9)
        assert previous_business_date(now, SETTINGS) == date(2024, 5, 8)


class TestPeriodWindow:
    """Tests for inclusive period windows."""

    def test_day(self):
        """A day window starts and ends on the reference day."""
        assert period_window(RankingPeriod.DAY, date(2024, 5, 10)) == (date(2024, 5, 10), date(2024, 5, 10))

    def test_week_starts_monday(self):
        """Weeks run Monday to Sunday."""
        # 2024-05-10 is a Friday
        assert period_window(RankingPeriod.WEEK, date(2024, 5, 10)) == (date(2024, 5, 6), date(2024, 5, 12))

    def test_month(self):
        """Months are calendar months, leap day included."""
        assert period_window(RankingPeriod.MONTH, date(2024, 2, 14)) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_all_is_unbounded(self):
        """The all-time window has no bounds and contains any date."""
        window = period_window(RankingPeriod.ALL, date(2024, 2, 14))
        assert window == (None, None)
        assert in_window(date(1999, 1, 1), window)
