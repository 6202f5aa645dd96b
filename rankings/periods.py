"""Business-day arithmetic: a ranking day runs from 06:00 local time to 05:59:59 the next morning."""

import calendar
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from core.config import Settings, get_settings

from .models import RankingPeriod


def _local(ts: datetime, settings: Settings) -> datetime:
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(ZoneInfo(settings.timezone))


def business_date(ts: datetime, settings: Optional[Settings] = None) -> date:
    """Map a timestamp to its business day. Naive timestamps are taken as local time."""
    settings = settings or get_settings()
    local = _local(ts, settings)
    return (local - timedelta(hours=settings.business_day_start_hour)).date()


def now_local(settings: Optional[Settings] = None) -> datetime:
    settings = settings or get_settings()
    return datetime.now(ZoneInfo(settings.timezone))


def current_business_date(now: Optional[datetime] = None, settings: Optional[Settings] = None) -> date:
    settings = settings or get_settings()
    return business_date(now or now_local(settings), settings)


def previous_business_date(now: Optional[datetime] = None, settings: Optional[Settings] = None) -> date:
    return current_business_date(now, settings) - timedelta(days=1)


def period_window(period: RankingPeriod, reference: date) -> tuple[Optional[date], Optional[date]]:
    """Inclusive (start, end) business dates; weeks start on Monday."""
    if period == RankingPeriod.DAY:
        return reference, reference
    if period == RankingPeriod.WEEK:
        start = reference - timedelta(days=reference.weekday())
        return start, start + timedelta(days=6)
    if period == RankingPeriod.MONTH:
        last_day = calendar.monthrange(reference.year, reference.month)[1]
        return reference.replace(day=1), reference.replace(day=last_day)
    return None, None


def in_window(day: date, window: tuple[Optional[date], Optional[date]]) -> bool:
    start, end = window
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True
