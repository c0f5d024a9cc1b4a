"""
Usage aggregation across the Claude and Codex logs.

Scans both log sources for one report window, reduces them to usage
records, rolls the records up per model series and shapes the result for
display (ranked model table plus a Top-5 + "Others" distribution).

The aggregator is stateless: every call scans, computes and returns.
Errors are returned as failed results, never raised.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .log_parser import is_in_time_window, parse_claude_log
from .model_names import DEFAULT_COLOR, UNKNOWN_MODEL, get_model_color
from .snapshots import SessionSnapshotReducer
from .token_counter import UsageRecord
from .windows import CivilCalendar, Clock, Period, SystemClock, TimeWindow
from usage_monitor.storage.scanner import LogScanner, ScannedFile, ScanRequest, ScanResult

logger = logging.getLogger(__name__)

# Error codes
INVALID_PERIOD = "INVALID_PERIOD"
SCAN_FAILED = "SCAN_FAILED"

DEFAULT_CLAUDE_ROOT = "~/.claude/projects"
DEFAULT_CODEX_ROOT = "~/.codex/sessions"

# Distribution shows every model up to this many, then Top-N + Others
MAX_DISTRIBUTION_MODELS = 5
OTHERS_KEY = "others"
OTHERS_NAME = "Others"


@dataclass
class ModelTotals:
    """Running token totals for one model series during a single pass."""
    name: str
    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_create: int = 0
    total: int = 0
    count: int = 0

    def add(self, record: UsageRecord) -> None:
        """Roll one record into the totals."""
        self.input += record.input
        self.output += record.output
        self.cache_read += record.cache_read
        self.cache_create += record.cache_create
        self.total += record.total
        self.count += 1


@dataclass(frozen=True)
class ModelAggregate:
    """Ranked, display-ready totals for one model series."""
    name: str
    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_create: int = 0
    total: int = 0
    count: int = 0
    color: str = DEFAULT_COLOR
    percent: int = 0


@dataclass(frozen=True)
class DistributionBucket:
    """One slice of the model distribution."""
    key: str
    name: str
    percent: int
    color: str
    total: int
    model_count: int = 1


@dataclass(frozen=True)
class ViewData:
    """Display-ready token usage for one window.

    ``models`` is the complete ranked table; ``distribution`` is the
    bucketed view (all models, or Top-5 plus an "Others" bucket).
    """
    total: int
    input: int
    output: int
    cache: int
    models: Tuple[ModelAggregate, ...]
    distribution: Tuple[DistributionBucket, ...]
    is_extreme_scenario: bool
    model_count: int


@dataclass(frozen=True)
class UsageReport(ViewData):
    """ViewData for a specific period and window."""
    period: str
    start_time: datetime
    end_time: datetime
    record_count: int


EMPTY_VIEW_DATA = ViewData(
    total=0,
    input=0,
    output=0,
    cache=0,
    models=(),
    distribution=(),
    is_extreme_scenario=False,
    model_count=0,
)


@dataclass(frozen=True)
class AggregationResult:
    """Outcome of aggregate(): data on success, an error code otherwise."""
    success: bool
    data: Optional[UsageReport] = None
    error: Optional[str] = None
    warnings: Tuple[str, ...] = field(default_factory=tuple)


class UsageAggregator:
    """Computes usage reports from the Claude and Codex log directories."""

    def __init__(
        self,
        scanner: LogScanner,
        calendar: Optional[CivilCalendar] = None,
        clock: Optional[Clock] = None,
        claude_root: str = DEFAULT_CLAUDE_ROOT,
        codex_root: str = DEFAULT_CODEX_ROOT,
    ):
        self.scanner = scanner
        self.calendar = calendar or CivilCalendar()
        self.clock = clock or SystemClock()
        self.claude_root = claude_root
        self.codex_root = codex_root

    async def aggregate(self, period: Union[str, Period]) -> AggregationResult:
        """Aggregate token usage for today, the last 7 days or the last 30 days.

        Args:
            period: "today", "week" or "month"

        Returns:
            AggregationResult; on failure ``data`` is None and ``error`` holds
            INVALID_PERIOD, the scanner's error, or the exception message
        """
        period_value = period.value if isinstance(period, Period) else period
        if period_value not in [p.value for p in Period]:
            return AggregationResult(success=False, error=INVALID_PERIOD)

        try:
            window = self.calendar.window(period_value, self.clock.now())

            claude_scan, codex_scan = await asyncio.gather(
                self._scan(self.claude_root, window),
                self._scan(self.codex_root, window),
            )

            warnings = []
            for source, scan in (("claude", claude_scan), ("codex", codex_scan)):
                if not scan.success:
                    logger.warning(f"Scan of {source} logs failed: {scan.error}")
                    return AggregationResult(success=False, error=scan.error or SCAN_FAILED)
                if scan.truncated:
                    message = (
                        f"{source} log scan truncated: read {scan.scanned_count} of "
                        f"{scan.total_matched} files, totals may undercount"
                    )
                    logger.warning(message)
                    warnings.append(message)

            records = collect_claude_records(claude_scan.files, window)
            records.extend(collect_codex_records(codex_scan.files, window))

            view = generate_view_data(aggregate_by_model(records))
            report = UsageReport(
                **_view_fields(view),
                period=window.period.value,
                start_time=window.start,
                end_time=window.end,
                record_count=len(records),
            )
            logger.debug(
                f"Aggregated {len(records)} records for {window.period.value}: "
                f"{report.total} tokens across {report.model_count} models"
            )
            return AggregationResult(success=True, data=report, warnings=tuple(warnings))

        except Exception as e:
            logger.error(f"Error aggregating usage for {period_value}: {e}", exc_info=True)
            return AggregationResult(success=False, error=str(e) or SCAN_FAILED)

    async def _scan(self, source_root: str, window: TimeWindow) -> ScanResult:
        request = ScanRequest(
            source_root=source_root,
            window_start=window.start,
            window_end=window.end,
        )
        result = await self.scanner.scan(request)
        if result is None:
            return ScanResult.failure(SCAN_FAILED)
        return result


def collect_claude_records(
    files: Iterable[ScannedFile], window: TimeWindow
) -> List[UsageRecord]:
    """Parse Claude log lines and keep records inside the window.

    File mtime filtering is coarser than line timestamps, so every record is
    checked against the window again here.
    """
    records = []
    for scanned in files:
        for line in scanned.lines:
            record = parse_claude_log(line)
            if record is not None and is_in_time_window(record, window.start, window.end):
                records.append(record)
    return records


def collect_codex_records(
    files: Iterable[ScannedFile], window: TimeWindow
) -> List[UsageRecord]:
    """Reduce Codex cumulative snapshots into one record per session."""
    reducer = SessionSnapshotReducer(window.start, window.end)
    for scanned in files:
        reducer.add_file(scanned.path, scanned.lines)
    return reducer.records()


def aggregate_by_model(records: Iterable[UsageRecord]) -> Dict[str, ModelTotals]:
    """Group records by model series."""
    aggregated: Dict[str, ModelTotals] = {}
    for record in records:
        name = record.model or UNKNOWN_MODEL
        if name not in aggregated:
            aggregated[name] = ModelTotals(name=name)
        aggregated[name].add(record)
    return aggregated


def round_percent(part: int, whole: int) -> int:
    """Percentage rounded half up; 0 when whole is 0."""
    if whole <= 0:
        return 0
    value = Decimal(part) * Decimal(100) / Decimal(whole)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def rank_models(
    aggregated: Dict[str, Union[ModelTotals, ModelAggregate]]
) -> List[Union[ModelTotals, ModelAggregate]]:
    """Non-zero models by total descending, ties by name ascending."""
    non_zero = [model for model in aggregated.values() if model.total > 0]
    return sorted(non_zero, key=lambda model: (-model.total, model.name))


def generate_view_data(
    aggregated: Dict[str, Union[ModelTotals, ModelAggregate]]
) -> ViewData:
    """Shape aggregated models for display.

    Rules:
    - Zero-total models are dropped
    - <= 5 models: the distribution lists every model
    - > 5 models: the distribution lists the Top 5 plus one "Others" bucket,
      included only when the remainder has a positive total

    Args:
        aggregated: Model aggregates keyed by series name

    Returns:
        ViewData with decorated, ranked models
    """
    ranked = rank_models(aggregated)
    total = sum(model.total for model in ranked)

    models = tuple(
        ModelAggregate(
            name=model.name,
            input=model.input,
            output=model.output,
            cache_read=model.cache_read,
            cache_create=model.cache_create,
            total=model.total,
            count=model.count,
            color=get_model_color(model.name),
            percent=round_percent(model.total, total),
        )
        for model in ranked
    )

    is_extreme = len(models) > MAX_DISTRIBUTION_MODELS
    shown = models[:MAX_DISTRIBUTION_MODELS] if is_extreme else models
    distribution = [
        DistributionBucket(
            key=model.name,
            name=model.name,
            percent=model.percent,
            color=model.color,
            total=model.total,
        )
        for model in shown
    ]

    if is_extreme:
        others = models[MAX_DISTRIBUTION_MODELS:]
        others_total = sum(model.total for model in others)
        if others_total > 0:
            distribution.append(DistributionBucket(
                key=OTHERS_KEY,
                name=OTHERS_NAME,
                percent=round_percent(others_total, total),
                color=DEFAULT_COLOR,
                total=others_total,
                model_count=len(others),
            ))

    return ViewData(
        total=total,
        input=sum(model.input for model in models),
        output=sum(model.output for model in models),
        cache=sum(model.cache_read + model.cache_create for model in models),
        models=models,
        distribution=tuple(distribution),
        is_extreme_scenario=is_extreme,
        model_count=len(models),
    )


def format_number(num: int) -> str:
    """Compact token count: 1.2M, 3.4K or the plain number."""
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1_000:
        return f"{num / 1_000:.1f}K"
    return str(num)


def format_percent(percent: int) -> str:
    return f"{percent}%"


def _view_fields(view: ViewData) -> dict:
    return {
        "total": view.total,
        "input": view.input,
        "output": view.output,
        "cache": view.cache,
        "models": view.models,
        "distribution": view.distribution,
        "is_extreme_scenario": view.is_extreme_scenario,
        "model_count": view.model_count,
    }
