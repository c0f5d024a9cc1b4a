"""
Data models for storage layer.

Defines the cached report entity persisted between runs.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from usage_monitor.core.aggregator import UsageReport


@dataclass(frozen=True)
class PeriodCacheEntry:
    """One cached report plus the metadata its staleness rule needs.

    ``day_key`` is set for the today period (civil day it was computed
    for); ``daily_refresh_key`` is set for week/month (which daily batch
    produced it). Entries are replaced whole, never updated in place.
    """
    period: str
    data: UsageReport
    computed_at: datetime
    day_key: Optional[str] = None
    daily_refresh_key: Optional[str] = None
