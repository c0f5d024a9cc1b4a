"""
Configuration management and loading.

Handles log source locations, scan limits, refresh cadence, the civil
timezone and the cache database location.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml

from usage_monitor.core.aggregator import DEFAULT_CLAUDE_ROOT, DEFAULT_CODEX_ROOT
from usage_monitor.core.windows import DEFAULT_DAILY_REFRESH_MINUTE, DEFAULT_UTC_OFFSET_HOURS
from usage_monitor.storage.db import DEFAULT_DB_PATH


@dataclass(frozen=True)
class SourceConfig:
    """Root directories of the two log sources."""
    claude: str = DEFAULT_CLAUDE_ROOT
    codex: str = DEFAULT_CODEX_ROOT

    def __post_init__(self):
        """Validate source roots are non-empty."""
        if not self.claude.strip():
            raise ValueError("sources.claude cannot be empty")
        if not self.codex.strip():
            raise ValueError("sources.codex cannot be empty")


@dataclass(frozen=True)
class ScanConfig:
    """Limits applied by the filesystem scanner."""
    max_files: int = 5000
    max_lines_per_file: int = 10000
    max_depth: int = 10

    def __post_init__(self):
        """Validate scan limits are positive."""
        if self.max_files <= 0:
            raise ValueError("scan.max_files must be > 0")
        if self.max_lines_per_file <= 0:
            raise ValueError("scan.max_lines_per_file must be > 0")
        if self.max_depth <= 0:
            raise ValueError("scan.max_depth must be > 0")


@dataclass(frozen=True)
class RefreshConfig:
    """Refresh cadence for the cached reports."""
    today_interval_minutes: int = 5
    daily_refresh_minute: int = DEFAULT_DAILY_REFRESH_MINUTE

    def __post_init__(self):
        """Validate refresh cadence."""
        if self.today_interval_minutes <= 0:
            raise ValueError("refresh.today_interval_minutes must be > 0")
        if not 0 <= self.daily_refresh_minute < 60:
            raise ValueError("refresh.daily_refresh_minute must be between 0 and 59")


@dataclass(frozen=True)
class CalendarConfig:
    """Civil timezone used for day boundaries."""
    utc_offset_hours: int = DEFAULT_UTC_OFFSET_HOURS

    def __post_init__(self):
        """Validate the offset is a real-world UTC offset."""
        if not -12 <= self.utc_offset_hours <= 14:
            raise ValueError("calendar.utc_offset_hours must be between -12 and 14")


@dataclass(frozen=True)
class CacheConfig:
    """Location of the cached report database."""
    db_path: str = DEFAULT_DB_PATH

    def __post_init__(self):
        if not self.db_path.strip():
            raise ValueError("cache.db_path cannot be empty")


@dataclass(frozen=True)
class MonitorConfig:
    """Complete usage monitor configuration."""
    sources: SourceConfig = field(default_factory=SourceConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    refresh: RefreshConfig = field(default_factory=RefreshConfig)
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)


_SECTIONS = {
    "sources": (SourceConfig, {"claude": str, "codex": str}),
    "scan": (ScanConfig, {"max_files": int, "max_lines_per_file": int, "max_depth": int}),
    "refresh": (RefreshConfig, {"today_interval_minutes": int, "daily_refresh_minute": int}),
    "calendar": (CalendarConfig, {"utc_offset_hours": int}),
    "cache": (CacheConfig, {"db_path": str}),
}


def default_config() -> MonitorConfig:
    """Configuration with every default applied."""
    return MonitorConfig()


def load_monitor_config(path: str) -> MonitorConfig:
    """Load and validate monitor configuration from a YAML file.

    Every section is optional and omitted keys keep their defaults, but
    unknown keys and wrongly typed values are rejected.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated MonitorConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Monitor config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    unknown_keys = set(raw_config.keys()) - set(_SECTIONS)
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    sections = {}
    for name, (section_cls, fields) in _SECTIONS.items():
        if name in raw_config:
            sections[name] = _parse_section(raw_config[name], name, section_cls, fields)

    return MonitorConfig(**sections)


def _parse_section(data: Any, path: str, section_cls: type, fields: Dict[str, type]):
    """Parse and validate one configuration section.

    Args:
        data: Raw section data
        path: Section name for error messages
        section_cls: Dataclass to build
        fields: Allowed keys and their expected types

    Returns:
        Validated section dataclass

    Raises:
        ValueError: If the section is invalid
    """
    if data is None:
        return section_cls()
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")

    unknown_keys = set(data.keys()) - set(fields)
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    values = {}
    for key, expected in fields.items():
        if key not in data:
            continue
        value = data[key]
        # bool is an int subclass; reject it explicitly
        if isinstance(value, bool) or not isinstance(value, expected):
            raise ValueError(f"'{key}' in {path} must be of type {expected.__name__}")
        values[key] = value

    return section_cls(**values)
