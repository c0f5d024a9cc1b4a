"""
Per-period report cache and refresh policy.

Holds one cached report for each of today / week / month and decides when
each must be recomputed:

- today: stale when missing, when the civil day changed since it was
  computed, or after the refresh interval (5 minutes by default)
- week/month: stale when missing or when the daily refresh key changed.
  The key only advances at 00:05 civil time, not at midnight.

Switching between periods never recomputes. A failed recompute keeps the
previous entry and records an error signal for the period, so there is
always something to render.
"""

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from .aggregator import EMPTY_VIEW_DATA, AggregationResult, UsageAggregator, ViewData
from .windows import CivilCalendar, Clock, Period, parse_period
from usage_monitor.storage.models import PeriodCacheEntry
from usage_monitor.storage.repository import CacheRepository

logger = logging.getLogger(__name__)

DEFAULT_TODAY_INTERVAL = timedelta(minutes=5)

REFRESH_FAILED_MESSAGE = "refresh failed, showing previous data"
LOAD_FAILED_MESSAGE = "load failed"


class CacheState(Enum):
    """Refresh state of one period's cache slot."""
    FRESH = "fresh"
    STALE = "stale"
    REFRESHING = "refreshing"


@dataclass(frozen=True)
class PeriodView:
    """What to display for one period.

    ``data`` is never None: a period that was never computed shows the
    empty placeholder with ``has_data`` False.
    """
    period: str
    data: ViewData
    has_data: bool
    computed_at: Optional[datetime] = None
    error: Optional[str] = None
    warnings: Tuple[str, ...] = field(default_factory=tuple)
    refreshing: bool = False


class RefreshCache:
    """Cache of the three period reports with single-flight recompute.

    Concurrent refreshes of the same period share one in-flight task.
    Different periods refresh independently.
    """

    def __init__(
        self,
        aggregator: UsageAggregator,
        calendar: Optional[CivilCalendar] = None,
        clock: Optional[Clock] = None,
        today_interval: timedelta = DEFAULT_TODAY_INTERVAL,
        repository: Optional[CacheRepository] = None,
    ):
        """Initialize the cache.

        Args:
            aggregator: Computes reports on recompute
            calendar: Civil calendar for day keys (defaults to the aggregator's)
            clock: Time source (defaults to the aggregator's)
            today_interval: Maximum age of a fresh today report
            repository: Optional persistence; entries are loaded now and
                written through on every successful recompute
        """
        self.aggregator = aggregator
        self.calendar = calendar or aggregator.calendar
        self.clock = clock or aggregator.clock
        self.today_interval = today_interval
        self.repository = repository

        self._entries: Dict[str, PeriodCacheEntry] = {}
        self._errors: Dict[str, Optional[str]] = {}
        self._warnings: Dict[str, Tuple[str, ...]] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}

        if repository is not None:
            self._load_persisted()

    def entry(self, period: Union[str, Period]) -> Optional[PeriodCacheEntry]:
        """Current cached entry for a period, if any."""
        return self._entries.get(_period_key(period))

    def is_stale(self, period: Union[str, Period], now: Optional[datetime] = None) -> bool:
        """Whether the period's cached report must be recomputed."""
        key = _period_key(period)
        now = now or self.clock.now()
        entry = self._entries.get(key)
        if entry is None:
            return True

        if key == Period.TODAY.value:
            if entry.day_key != self.calendar.day_key(now):
                return True
            return now - entry.computed_at >= self.today_interval

        return entry.daily_refresh_key != self.calendar.daily_refresh_key(now)

    def state(self, period: Union[str, Period]) -> CacheState:
        """FRESH, STALE, or REFRESHING while a recompute is in flight."""
        key = _period_key(period)
        if key in self._in_flight:
            return CacheState.REFRESHING
        return CacheState.STALE if self.is_stale(key) else CacheState.FRESH

    def view(self, period: Union[str, Period]) -> PeriodView:
        """Select the period's cached report without recomputing."""
        key = _period_key(period)
        entry = self._entries.get(key)
        return PeriodView(
            period=key,
            data=entry.data if entry is not None else EMPTY_VIEW_DATA,
            has_data=entry is not None,
            computed_at=entry.computed_at if entry is not None else None,
            error=self._errors.get(key),
            warnings=self._warnings.get(key, ()),
            refreshing=key in self._in_flight,
        )

    async def refresh(self, period: Union[str, Period], force: bool = False) -> PeriodView:
        """Recompute the period if stale (or forced) and return its view.

        A caller arriving while a recompute for the same period is in flight
        waits for that recompute instead of starting another.
        """
        key = _period_key(period)

        in_flight = self._in_flight.get(key)
        if in_flight is not None:
            await asyncio.shield(in_flight)
            return self.view(key)

        if not force and not self.is_stale(key):
            return self.view(key)

        task = asyncio.ensure_future(self._recompute(key))
        self._in_flight[key] = task
        task.add_done_callback(lambda done: self._clear_in_flight(key, done))

        await asyncio.shield(task)
        return self.view(key)

    async def refresh_all(self, force: bool = False) -> Dict[str, PeriodView]:
        """Refresh every period concurrently; fresh periods are left alone."""
        views = await asyncio.gather(*(self.refresh(p, force=force) for p in Period))
        return {view.period: view for view in views}

    async def _recompute(self, key: str) -> None:
        try:
            result = await self.aggregator.aggregate(key)
        except Exception as e:
            logger.error(f"Aggregator raised while refreshing {key}: {e}", exc_info=True)
            result = AggregationResult(success=False, error=str(e))

        if not result.success:
            has_fallback = key in self._entries
            self._errors[key] = (
                REFRESH_FAILED_MESSAGE if has_fallback
                else (result.error or LOAD_FAILED_MESSAGE)
            )
            logger.warning(
                f"Refresh of {key} failed ({result.error}); "
                f"{'serving previous data' if has_fallback else 'no data to show'}"
            )
            return

        now = self.clock.now()
        is_today = key == Period.TODAY.value
        entry = PeriodCacheEntry(
            period=key,
            data=result.data,
            computed_at=now,
            day_key=self.calendar.day_key(now) if is_today else None,
            daily_refresh_key=None if is_today else self.calendar.daily_refresh_key(now),
        )
        self._entries[key] = entry
        self._errors[key] = None
        self._warnings[key] = result.warnings
        self._persist(entry)

    def _clear_in_flight(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    def _persist(self, entry: PeriodCacheEntry) -> None:
        if self.repository is None:
            return
        try:
            self.repository.save_entry(entry)
        except (sqlite3.Error, OSError) as e:
            logger.warning(f"Could not persist cached {entry.period} report: {e}")

    def _load_persisted(self) -> None:
        try:
            entries = self.repository.load_entries()
        except (sqlite3.Error, OSError) as e:
            logger.warning(f"Could not load cached reports: {e}")
            return

        valid = {p.value for p in Period}
        for period, entry in entries.items():
            if period in valid:
                self._entries[period] = entry


def _period_key(period: Union[str, Period]) -> str:
    return parse_period(period).value
