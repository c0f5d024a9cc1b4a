"""
Codex session snapshot reduction.

Codex logs report cumulative totals and re-emit the same snapshot many
times, sometimes out of order across rotated files. Summing per-event
deltas double counts, so each session is reduced to two snapshots instead:
the largest one before the window and the largest one inside it. The
windowed usage is their difference.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .log_parser import parse_codex_token_snapshot
from .token_counter import ZERO_SNAPSHOT, CodexSnapshot, UsageRecord

logger = logging.getLogger(__name__)

SESSION_ID_PATTERN = re.compile(
    r"([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})$",
    re.IGNORECASE,
)
UNKNOWN_SESSION = "unknown-codex-session"


def extract_session_id(file_path: str) -> str:
    """Derive the logical session id from a Codex log file name.

    Uses the trailing UUID of the file stem when present, otherwise the
    stem itself. Always lower-cased.
    """
    if not isinstance(file_path, str):
        file_path = ""
    # Accept both separators regardless of platform
    file_name = file_path.replace("\\", "/").split("/")[-1]
    stem = re.sub(r"\.jsonl$", "", file_name, flags=re.IGNORECASE)

    matched = SESSION_ID_PATTERN.search(stem)
    session_id = matched.group(1) if matched else (stem or UNKNOWN_SESSION)
    return session_id.lower()


def pick_max_snapshot(
    current: Optional[CodexSnapshot], incoming: CodexSnapshot
) -> CodexSnapshot:
    """Keep the snapshot with the larger total; on a tie keep the later one."""
    if current is None:
        return incoming
    if incoming.total_tokens > current.total_tokens:
        return incoming
    if incoming.total_tokens == current.total_tokens and _is_later(incoming, current):
        return incoming
    return current


@dataclass
class SessionState:
    """Per-session reduction slots for one aggregation pass."""
    before_window: Optional[CodexSnapshot] = None
    in_window: Optional[CodexSnapshot] = None


class SessionSnapshotReducer:
    """Reduces cumulative Codex snapshots into windowed usage records.

    Feed every candidate file of every session (in any order), then call
    ``records()``. An instance covers exactly one window and one pass.
    """

    def __init__(self, window_start: datetime, window_end: datetime):
        if window_start > window_end:
            raise ValueError("window_start must be before window_end")
        self.window_start = window_start
        self.window_end = window_end
        self.sessions: Dict[str, SessionState] = {}

    def add_snapshot(self, session_id: str, snapshot: CodexSnapshot) -> None:
        """Fold one snapshot into its session's slots."""
        if snapshot.timestamp is None:
            return

        state = self.sessions.setdefault(session_id, SessionState())
        if snapshot.timestamp < self.window_start:
            state.before_window = pick_max_snapshot(state.before_window, snapshot)
        elif snapshot.timestamp < self.window_end:
            state.in_window = pick_max_snapshot(state.in_window, snapshot)

    def add_lines(self, session_id: str, lines: Iterable[str]) -> None:
        """Parse and fold raw log lines; non-snapshot lines are skipped."""
        for line in lines:
            snapshot = parse_codex_token_snapshot(line)
            if snapshot is not None:
                self.add_snapshot(session_id, snapshot)

    def add_file(self, path: str, lines: Iterable[str]) -> None:
        """Fold a log file, grouping it by the session id in its name."""
        self.add_lines(extract_session_id(path), lines)

    def records(self) -> List[UsageRecord]:
        """Emit one usage record per session with positive windowed usage.

        Codex input totals include cached input, so the cached part is moved
        out of ``input`` to match the disjoint token fields used elsewhere.
        """
        records = []
        for state in self.sessions.values():
            if state.in_window is None:
                continue

            current = state.in_window
            before = state.before_window or ZERO_SNAPSHOT

            input_delta = max(0, current.input_total - before.input_total)
            output_delta = max(0, current.output_total - before.output_total)
            cache_read_delta = max(0, current.cache_read_total - before.cache_read_total)
            non_cached_input = max(0, input_delta - cache_read_delta)

            record = UsageRecord(
                timestamp=current.timestamp,
                model=current.model,
                input=non_cached_input,
                output=output_delta,
                cache_read=cache_read_delta,
                cache_create=0,
            )
            if record.total <= 0:
                continue
            records.append(record)

        logger.debug(
            f"Reduced {len(self.sessions)} codex sessions into {len(records)} records"
        )
        return records


def _is_later(incoming: CodexSnapshot, current: CodexSnapshot) -> bool:
    if incoming.timestamp is None:
        return False
    if current.timestamp is None:
        return True
    return incoming.timestamp > current.timestamp
