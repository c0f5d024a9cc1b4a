"""
Repository pattern for cached report persistence.

Stores one row per period so a cached report survives between runs.
Rows are written with INSERT OR REPLACE: an entry is always replaced
whole, never updated field by field.
"""

import json
import logging
import sqlite3
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import PeriodCacheEntry
from usage_monitor.core.aggregator import DistributionBucket, ModelAggregate, UsageReport

logger = logging.getLogger(__name__)


class CacheRepository:
    """Repository for reading and writing cached period reports."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def initialize_schema(self) -> None:
        """Create the usage_period_cache table if it doesn't exist."""
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS usage_period_cache (
                    period TEXT PRIMARY KEY,
                    computed_at TEXT NOT NULL,
                    day_key TEXT,
                    daily_refresh_key TEXT,
                    data TEXT NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def save_entry(self, entry: PeriodCacheEntry) -> None:
        """Replace the cached entry for the entry's period.

        Args:
            entry: The cache entry to persist
        """
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                INSERT OR REPLACE INTO usage_period_cache
                (period, computed_at, day_key, daily_refresh_key, data)
                VALUES (?, ?, ?, ?, ?)
            """, (
                entry.period,
                entry.computed_at.isoformat(),
                entry.day_key,
                entry.daily_refresh_key,
                json.dumps(report_to_dict(entry.data)),
            ))
            conn.commit()
        finally:
            conn.close()

    def load_entries(self) -> Dict[str, PeriodCacheEntry]:
        """Load every readable cached entry, keyed by period.

        Rows that cannot be decoded are skipped; a missing table yields an
        empty result.
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                SELECT period, computed_at, day_key, daily_refresh_key, data
                FROM usage_period_cache
            """)
            rows = cursor.fetchall()
        except sqlite3.OperationalError as e:
            if "no such table" in str(e).lower():
                return {}
            raise
        finally:
            conn.close()

        entries = {}
        for row in rows:
            entry = _row_to_entry(row)
            if entry is not None:
                entries[entry.period] = entry
        return entries

    def delete_entry(self, period: str) -> None:
        """Remove the cached entry for a period, if any."""
        conn = get_connection(self.db_path)
        try:
            conn.execute("DELETE FROM usage_period_cache WHERE period = ?", (period,))
            conn.commit()
        except sqlite3.OperationalError as e:
            if "no such table" not in str(e).lower():
                raise
        finally:
            conn.close()


def report_to_dict(report: UsageReport) -> Dict[str, Any]:
    """Convert a report to JSON-compatible primitives."""
    data = asdict(report)
    data["start_time"] = report.start_time.isoformat()
    data["end_time"] = report.end_time.isoformat()
    return data


def report_from_dict(data: Dict[str, Any]) -> UsageReport:
    """Rebuild a report from report_to_dict output.

    Raises:
        KeyError, TypeError, ValueError: If the data is incomplete or invalid
    """
    return UsageReport(
        total=int(data["total"]),
        input=int(data["input"]),
        output=int(data["output"]),
        cache=int(data["cache"]),
        models=tuple(ModelAggregate(**model) for model in data["models"]),
        distribution=tuple(DistributionBucket(**bucket) for bucket in data["distribution"]),
        is_extreme_scenario=bool(data["is_extreme_scenario"]),
        model_count=int(data["model_count"]),
        period=data["period"],
        start_time=datetime.fromisoformat(data["start_time"]),
        end_time=datetime.fromisoformat(data["end_time"]),
        record_count=int(data["record_count"]),
    )


def _row_to_entry(row: tuple) -> Optional[PeriodCacheEntry]:
    period, computed_at, day_key, daily_refresh_key, raw_data = row
    try:
        return PeriodCacheEntry(
            period=period,
            data=report_from_dict(json.loads(raw_data)),
            computed_at=datetime.fromisoformat(computed_at),
            day_key=day_key,
            daily_refresh_key=daily_refresh_key,
        )
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Ignoring unreadable cached entry for {period!r}: {e}")
        return None
