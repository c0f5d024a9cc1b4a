"""
Token counting and usage records.

Holds the immutable records produced by log parsing and the token total
formula shared by both log sources.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class UsageRecord:
    """One discrete usage event, normalized across log sources.

    Token counts are disjoint: ``input`` never includes cached input, so the
    total is a plain sum of the four fields.
    """
    timestamp: Optional[datetime]
    model: str
    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_create: int = 0

    @property
    def total(self) -> int:
        """Total tokens (input + output + cache read + cache create)."""
        return calculate_total_tokens(self)


@dataclass(frozen=True)
class CodexSnapshot:
    """Cumulative usage reading reported by a Codex session at one instant.

    All values are running totals since the session started. ``input_total``
    already includes ``cache_read_total``.
    """
    timestamp: Optional[datetime]
    model: str
    input_total: int = 0
    output_total: int = 0
    cache_read_total: int = 0
    total_tokens: int = 0


ZERO_SNAPSHOT = CodexSnapshot(timestamp=None, model="codex")


def calculate_total_tokens(record: UsageRecord) -> int:
    """Total = input + output + cache_read + cache_create."""
    return record.input + record.output + record.cache_read + record.cache_create


def to_safe_int(value: Any) -> int:
    """Coerce a raw token count to a non-negative integer.

    Non-numeric and non-finite values become 0; numbers are floored and
    clamped at 0.
    """
    if isinstance(value, bool) or value is None:
        return 0
    try:
        parsed = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    if not math.isfinite(parsed):
        return 0
    return max(0, math.floor(parsed))
