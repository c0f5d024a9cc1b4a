"""
Log file scanning.

Defines the scanner contract the aggregator depends on and a filesystem
implementation that walks a log directory, filters files by modification
time and returns their lines.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

INVALID_PATH = "INVALID_PATH"
PERMISSION_DENIED = "PERMISSION_DENIED"


@dataclass(frozen=True)
class ScanRequest:
    """Which directory to scan and the half-open mtime window to keep."""
    source_root: str
    window_start: datetime
    window_end: datetime


@dataclass(frozen=True)
class ScannedFile:
    """One log file returned by a scan."""
    path: str
    lines: Tuple[str, ...]
    mtime: datetime


@dataclass(frozen=True)
class ScanResult:
    """Outcome of one scan.

    When more files matched than the scanner's cap, the most recently
    modified files are kept and ``truncated`` is set.
    """
    success: bool
    files: Tuple[ScannedFile, ...] = field(default_factory=tuple)
    total_matched: int = 0
    scanned_count: int = 0
    truncated: bool = False
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "ScanResult":
        return cls(success=False, error=error)


class LogScanner(Protocol):
    """Collaborator that returns candidate log files for a window."""

    async def scan(self, request: ScanRequest) -> ScanResult:
        ...


class FileSystemScanner:
    """Scans a directory tree for ``.jsonl`` logs modified inside a window.

    Blocking filesystem work runs in a worker thread.
    """

    def __init__(
        self,
        max_files: int = 5000,
        max_lines_per_file: int = 10000,
        max_depth: int = 10,
        suffix: str = ".jsonl",
    ):
        if max_files <= 0:
            raise ValueError("max_files must be > 0")
        if max_lines_per_file <= 0:
            raise ValueError("max_lines_per_file must be > 0")
        if max_depth < 0:
            raise ValueError("max_depth cannot be negative")
        self.max_files = max_files
        self.max_lines_per_file = max_lines_per_file
        self.max_depth = max_depth
        self.suffix = suffix

    async def scan(self, request: ScanRequest) -> ScanResult:
        return await asyncio.to_thread(self.scan_sync, request)

    def scan_sync(self, request: ScanRequest) -> ScanResult:
        """Run a scan on the calling thread."""
        if not isinstance(request.source_root, str) or not request.source_root:
            return ScanResult.failure(INVALID_PATH)

        root = Path(request.source_root).expanduser()
        try:
            if not root.exists():
                # First use: the tool has never written logs here
                return ScanResult(success=True)
            candidates = self._collect_candidates(root, request)
        except PermissionError:
            return ScanResult.failure(PERMISSION_DENIED)
        except OSError as e:
            return ScanResult.failure(str(e))

        # Newest first so a truncated scan only loses the oldest files
        candidates.sort(key=lambda item: item[1], reverse=True)
        selected = candidates[:self.max_files]
        truncated = len(candidates) > self.max_files

        files = []
        for path, mtime in selected:
            lines = self._read_lines(path)
            if lines is None:
                continue
            files.append(ScannedFile(path=str(path), lines=lines, mtime=mtime))

        logger.debug(
            f"Scanned {root}: {len(candidates)} matched, {len(files)} read, truncated={truncated}"
        )
        return ScanResult(
            success=True,
            files=tuple(files),
            total_matched=len(candidates),
            scanned_count=len(selected),
            truncated=truncated,
        )

    def _collect_candidates(
        self, root: Path, request: ScanRequest
    ) -> List[Tuple[Path, datetime]]:
        """Walk root and keep files whose mtime is in [start, end)."""
        # Surface an unreadable root; nested failures are skipped
        os.listdir(root)

        candidates: List[Tuple[Path, datetime]] = []
        root_depth = len(root.parts)

        def _skip(error: OSError) -> None:
            logger.debug(f"Skipping unreadable directory: {error}")

        for dirpath, dirnames, filenames in os.walk(root, onerror=_skip):
            depth = len(Path(dirpath).parts) - root_depth
            if depth >= self.max_depth:
                dirnames[:] = []

            for name in filenames:
                if not name.endswith(self.suffix):
                    continue
                path = Path(dirpath) / name
                try:
                    stat = path.stat()
                except OSError:
                    continue
                if not path.is_file():
                    continue

                mtime = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
                if mtime < request.window_start or mtime >= request.window_end:
                    continue
                candidates.append((path, mtime))

        return candidates

    def _read_lines(self, path: Path) -> Optional[Tuple[str, ...]]:
        """Read non-blank lines, capped per file. None if unreadable."""
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug(f"Skipping unreadable log file {path}: {e}")
            return None

        lines = [line for line in content.split("\n") if line.strip()]
        return tuple(lines[:self.max_lines_per_file])
