"""
Unit tests for storage layer.

Tests schema creation and cached report persistence.
"""

import json
import os
import tempfile
from datetime import datetime, timezone

from usage_monitor.core.aggregator import DistributionBucket, ModelAggregate, UsageReport
from usage_monitor.storage.db import get_connection
from usage_monitor.storage.models import PeriodCacheEntry
from usage_monitor.storage.repository import CacheRepository, report_from_dict, report_to_dict

COMPUTED_AT = datetime(2026, 2, 15, 3, 0, tzinfo=timezone.utc)


def make_report(period="week", total=300) -> UsageReport:
    models = (
        ModelAggregate(name="opus", input=100, output=100, cache_read=50, cache_create=50,
                       total=total, count=4, color="#2563eb", percent=100),
    )
    return UsageReport(
        total=total,
        input=100,
        output=100,
        cache=100,
        models=models,
        distribution=(DistributionBucket(key="opus", name="opus", percent=100, color="#2563eb", total=total),),
        is_extreme_scenario=False,
        model_count=1,
        period=period,
        start_time=datetime(2026, 2, 7, 16, 0, tzinfo=timezone.utc),
        end_time=datetime(2026, 2, 14, 16, 0, tzinfo=timezone.utc),
        record_count=4,
    )


def make_entry(period="week", total=300) -> PeriodCacheEntry:
    return PeriodCacheEntry(
        period=period,
        data=make_report(period, total),
        computed_at=COMPUTED_AT,
        daily_refresh_key="2026-02-15",
    )


class TestStorageSchema:
    """Test database schema creation and structure."""

    def test_schema_creation(self):
        """Verify table is created correctly."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            CacheRepository(db_path).initialize_schema()

            conn = get_connection(db_path)
            try:
                cursor = conn.execute("PRAGMA table_info(usage_period_cache)")
                column_names = [col[1] for col in cursor.fetchall()]
                assert column_names == [
                    'period', 'computed_at', 'day_key', 'daily_refresh_key', 'data'
                ]
            finally:
                conn.close()

    def test_schema_creation_is_idempotent(self):
        """Test initializing twice keeps existing rows."""
        with tempfile.TemporaryDirectory() as temp_dir:
            repository = CacheRepository(os.path.join(temp_dir, "test.db"))
            repository.initialize_schema()
            repository.save_entry(make_entry())

            repository.initialize_schema()

            assert set(repository.load_entries()) == {"week"}

    def test_parent_directories_created(self):
        """Test the database directory is created on first use."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "nested", "dir", "test.db")
            CacheRepository(db_path).initialize_schema()
            assert os.path.exists(db_path)


class TestCacheEntries:
    """Test cached entry persistence."""

    def test_save_and_load(self):
        """Test an entry is read back unchanged."""
        with tempfile.TemporaryDirectory() as temp_dir:
            repository = CacheRepository(os.path.join(temp_dir, "test.db"))
            repository.initialize_schema()
            entry = make_entry()

            repository.save_entry(entry)
            loaded = repository.load_entries()

            assert loaded["week"] == entry

    def test_save_replaces_period(self):
        """Test saving a period twice keeps only the latest entry."""
        with tempfile.TemporaryDirectory() as temp_dir:
            repository = CacheRepository(os.path.join(temp_dir, "test.db"))
            repository.initialize_schema()

            repository.save_entry(make_entry(total=300))
            repository.save_entry(make_entry(total=500))
            repository.save_entry(make_entry(period="month", total=900))

            loaded = repository.load_entries()
            assert loaded["week"].data.total == 500
            assert loaded["month"].data.total == 900
            assert len(loaded) == 2

    def test_corrupt_row_is_skipped(self):
        """Test unreadable rows do not break loading."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            repository = CacheRepository(db_path)
            repository.initialize_schema()
            repository.save_entry(make_entry())

            conn = get_connection(db_path)
            try:
                conn.execute(
                    "INSERT INTO usage_period_cache VALUES (?, ?, ?, ?, ?)",
                    ("today", COMPUTED_AT.isoformat(), "2026-02-15", None, "{not json"),
                )
                conn.execute(
                    "INSERT INTO usage_period_cache VALUES (?, ?, ?, ?, ?)",
                    ("month", COMPUTED_AT.isoformat(), None, "2026-02-15", json.dumps({"total": 1})),
                )
                conn.commit()
            finally:
                conn.close()

            assert set(repository.load_entries()) == {"week"}

    def test_missing_table_loads_nothing(self):
        """Test loading before the schema exists."""
        with tempfile.TemporaryDirectory() as temp_dir:
            repository = CacheRepository(os.path.join(temp_dir, "test.db"))
            assert repository.load_entries() == {}

    def test_delete_entry(self):
        """Test removing a cached period."""
        with tempfile.TemporaryDirectory() as temp_dir:
            repository = CacheRepository(os.path.join(temp_dir, "test.db"))
            repository.initialize_schema()
            repository.save_entry(make_entry())

            repository.delete_entry("week")
            repository.delete_entry("today")

            assert repository.load_entries() == {}


class TestReportSerialization:
    """Test report conversion to and from JSON primitives."""

    def test_report_dict_is_json_compatible(self):
        """Test datetimes are written as ISO strings."""
        data = report_to_dict(make_report())

        assert data["start_time"] == "2026-02-07T16:00:00+00:00"
        assert data["models"][0]["name"] == "opus"
        json.dumps(data)

    def test_report_from_dict(self):
        """Test decoding restores tuples and datetimes."""
        report = make_report()

        restored = report_from_dict(json.loads(json.dumps(report_to_dict(report))))

        assert restored == report
        assert isinstance(restored.models, tuple)
        assert restored.end_time.tzinfo is not None
