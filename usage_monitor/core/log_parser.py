"""
Log line parsing for the Claude and Codex usage logs.

Each parser takes one raw JSONL line and returns a record, or None when the
line is not a usage line. Malformed input is never an error: corrupted lines
are skipped so a scan can continue past them.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .model_names import CODEX_MODEL, normalize_model_name
from .token_counter import CodexSnapshot, UsageRecord, to_safe_int


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Strings without an offset are taken as UTC. Returns None for anything
    that cannot be parsed.
    """
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_claude_log(line: str) -> Optional[UsageRecord]:
    """Parse one Claude log line.

    Usage lives under ``message.usage``; lines without it are not usage
    lines. Cache counts accept both the current and the legacy field names.

    Args:
        line: Raw JSONL line

    Returns:
        UsageRecord, or None if the line carries no usage
    """
    data = _load_object(line)
    if data is None:
        return None

    message = data.get("message")
    if not isinstance(message, dict):
        return None
    usage = message.get("usage")
    if not isinstance(usage, dict):
        return None

    timestamp = data.get("timestamp") or message.get("timestamp")

    return UsageRecord(
        timestamp=parse_timestamp(timestamp),
        model=normalize_model_name(message.get("model") or "unknown"),
        input=to_safe_int(usage.get("input_tokens")),
        output=to_safe_int(usage.get("output_tokens")),
        cache_read=(
            to_safe_int(usage.get("cache_read_input_tokens"))
            or to_safe_int(usage.get("cache_read_tokens"))
        ),
        cache_create=(
            to_safe_int(usage.get("cache_creation_input_tokens"))
            or to_safe_int(usage.get("cache_creation_tokens"))
        ),
    )


def parse_codex_log(line: str) -> Optional[UsageRecord]:
    """Parse one Codex token_count event as a per-event record.

    Reads ``last_token_usage`` (falling back to ``total_token_usage``).
    The windowed aggregator does not use this flavor because Codex re-emits
    the same event repeatedly; see parse_codex_token_snapshot.
    """
    info = _codex_token_info(line)
    if info is None:
        return None

    usage = info.get("last_token_usage") or info.get("total_token_usage")
    if not isinstance(usage, dict):
        return None

    return UsageRecord(
        timestamp=parse_timestamp(info.get("_timestamp")),
        model=CODEX_MODEL,
        input=to_safe_int(usage.get("input_tokens")),
        output=to_safe_int(usage.get("output_tokens")),
        cache_read=to_safe_int(usage.get("cached_input_tokens")),
        cache_create=0,
    )


def parse_codex_token_snapshot(line: str) -> Optional[CodexSnapshot]:
    """Parse one Codex token_count event as a cumulative snapshot.

    Reads ``total_token_usage``, the running totals since session start.
    When ``total_tokens`` is missing or zero it is derived from the parts.
    """
    info = _codex_token_info(line)
    if info is None:
        return None

    total_usage = info.get("total_token_usage")
    if not isinstance(total_usage, dict):
        return None

    input_total = to_safe_int(total_usage.get("input_tokens"))
    output_total = to_safe_int(total_usage.get("output_tokens"))
    cache_read_total = to_safe_int(total_usage.get("cached_input_tokens"))
    total_tokens = (
        to_safe_int(total_usage.get("total_tokens"))
        or input_total + output_total + cache_read_total
    )

    return CodexSnapshot(
        timestamp=parse_timestamp(info.get("_timestamp")),
        model=CODEX_MODEL,
        input_total=input_total,
        output_total=output_total,
        cache_read_total=cache_read_total,
        total_tokens=total_tokens,
    )


def is_in_time_window(record: UsageRecord, start: datetime, end: datetime) -> bool:
    """Half-open window check: start <= timestamp < end."""
    if record.timestamp is None:
        return False
    return start <= record.timestamp < end


def _load_object(line: str) -> Optional[Dict[str, Any]]:
    """Decode a JSON object line, or None if it is not one."""
    if not isinstance(line, str):
        return None
    try:
        data = json.loads(line)
    except (ValueError, RecursionError):
        return None
    if not isinstance(data, dict):
        return None
    return data


def _codex_token_info(line: str) -> Optional[Dict[str, Any]]:
    """Return the ``payload.info`` object of a token_count event.

    The envelope timestamp is copied into the returned dict under
    ``_timestamp`` so callers see a single mapping.
    """
    data = _load_object(line)
    if data is None or data.get("type") != "event_msg":
        return None

    payload = data.get("payload")
    if not isinstance(payload, dict) or payload.get("type") != "token_count":
        return None

    info = payload.get("info")
    if not isinstance(info, dict) or not info:
        return None

    return {**info, "_timestamp": data.get("timestamp")}
