"""
Report windows and civil-day calendar math.

All day boundaries are computed in a fixed UTC offset (UTC+8 by default)
from an injected clock, never from the process's local timezone.

Windows are half-open intervals [start, end):
- today: [today 00:00, now)
- week:  [today 00:00 - 7 days, today 00:00)
- month: [today 00:00 - 30 days, today 00:00)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Protocol, Union


class Period(Enum):
    """Supported report periods."""
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"


PERIOD_DAYS = {
    Period.WEEK: 7,
    Period.MONTH: 30,
}

DEFAULT_UTC_OFFSET_HOURS = 8
DEFAULT_DAILY_REFRESH_MINUTE = 5


def parse_period(value: Union[str, Period]) -> Period:
    """Convert a period string to a Period.

    Raises:
        ValueError: If the value is not one of today/week/month
    """
    if isinstance(value, Period):
        return value
    try:
        return Period(value)
    except ValueError:
        valid = [p.value for p in Period]
        raise ValueError(f"Unsupported period {value!r}, must be one of: {valid}")


class Clock(Protocol):
    """Source of the current instant."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock returning aware UTC datetimes."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval [start, end) for one report period."""
    period: Period
    start: datetime
    end: datetime

    def __post_init__(self):
        """Validate the window is ordered."""
        if self.start > self.end:
            raise ValueError("window start must not be after window end")

    def contains(self, instant: Optional[datetime]) -> bool:
        """True if start <= instant < end."""
        if instant is None:
            return False
        return self.start <= instant < self.end


class CivilCalendar:
    """Day arithmetic in a fixed UTC offset."""

    def __init__(
        self,
        utc_offset_hours: int = DEFAULT_UTC_OFFSET_HOURS,
        daily_refresh_minute: int = DEFAULT_DAILY_REFRESH_MINUTE,
    ):
        self.tz = timezone(timedelta(hours=utc_offset_hours))
        self.daily_refresh_minute = daily_refresh_minute

    def day_start(self, instant: datetime) -> datetime:
        """Civil midnight of the day containing instant, as UTC."""
        local = instant.astimezone(self.tz)
        midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
        return midnight.astimezone(timezone.utc)

    def day_key(self, instant: datetime) -> str:
        """Civil date (YYYY-MM-DD) of instant."""
        return instant.astimezone(self.tz).strftime("%Y-%m-%d")

    def daily_refresh_key(self, instant: datetime) -> str:
        """Key of the daily recompute batch that instant belongs to.

        Until HH:MM = 00:<daily_refresh_minute> the previous day's batch is
        still current.
        """
        local = instant.astimezone(self.tz)
        if local.hour == 0 and local.minute < self.daily_refresh_minute:
            local = local - timedelta(days=1)
        return local.strftime("%Y-%m-%d")

    def window(self, period: Union[str, Period], now: datetime) -> TimeWindow:
        """Compute the report window for period at instant now.

        Raises:
            ValueError: If period is not supported
        """
        period = parse_period(period)
        today_start = self.day_start(now)

        if period is Period.TODAY:
            return TimeWindow(period=period, start=today_start, end=now)

        # Whole civil days; the fixed offset has no DST so timedelta is exact
        start = today_start - timedelta(days=PERIOD_DAYS[period])
        return TimeWindow(period=period, start=start, end=today_start)
