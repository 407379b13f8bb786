"""
Calendar helpers shared by the resolver and the aggregator.
"""

from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from finance_tracker.models.results import PeriodStatus


MONTH_LABELS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def local_today(timezone: Optional[str] = None) -> date:
    """Today's date in the configured timezone."""
    if timezone is None:
        from finance_tracker.config import get_settings

        timezone = get_settings().app.timezone
    return datetime.now(ZoneInfo(timezone)).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def in_month(value: date, month: int, year: int) -> bool:
    return value.year == year and value.month == month


def same_day_in_month(value: date, month: int, year: int) -> date:
    """Reuse the day-of-month of `value`, clamped to the month's last day."""
    return date(year, month, min(value.day, days_in_month(year, month)))


def period_status(month: int, year: int, today: Optional[date] = None) -> PeriodStatus:
    today = today or local_today()
    if (year, month) < (today.year, today.month):
        return PeriodStatus.PAST
    if (year, month) > (today.year, today.month):
        return PeriodStatus.FUTURE
    return PeriodStatus.CURRENT
