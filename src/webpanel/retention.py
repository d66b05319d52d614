"""Age-based eviction of backup archives."""
from __future__ import annotations

import logging
import stat
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from types import MappingProxyType

from .backups import Cadence

LOGGER = logging.getLogger(__name__)

DEFAULT_THRESHOLDS: Mapping[Cadence, timedelta] = MappingProxyType(
    {
        Cadence.DAILY: timedelta(days=7),
        Cadence.WEEKLY: timedelta(days=30),
    }
)


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(slots=True)
class PruneReport:
    """Outcome of a retention sweep over one directory."""

    directory: Path
    removed: list[Path] = field(default_factory=list)
    kept: list[Path] = field(default_factory=list)
    failed: list[tuple[Path, str]] = field(default_factory=list)


@dataclass(slots=True)
class RetentionPolicy:
    """Delete archives older than the threshold for their cadence.

    An archive is stale when ``now - mtime`` is strictly greater than the
    threshold; an archive exactly at the threshold is kept. The sweep is
    best-effort: failures are logged and reported, never raised.
    """

    thresholds: Mapping[Cadence, timedelta] = field(default_factory=lambda: DEFAULT_THRESHOLDS)
    clock: Callable[[], datetime] = _utc_now

    def threshold(self, cadence: Cadence) -> timedelta:
        """Return the maximum age for *cadence*."""
        return self.thresholds[cadence]

    def is_expired(self, modified_at: datetime, cadence: Cadence, *, now: datetime) -> bool:
        """Return True when an entry modified at *modified_at* is stale."""
        return now - modified_at > self.threshold(cadence)

    def prune(self, directory: Path, cadence: Cadence) -> PruneReport:
        """Remove stale files directly inside *directory*."""
        report = PruneReport(directory=directory)
        try:
            entries = sorted(directory.iterdir())
        except OSError as exc:
            LOGGER.warning("Skipping retention sweep of %s: %s", directory, exc)
            return report

        now = self.clock()
        for entry in entries:
            try:
                info = entry.lstat()
            except OSError:
                continue
            if stat.S_ISDIR(info.st_mode):
                continue
            modified_at = datetime.fromtimestamp(info.st_mtime, tz=UTC)
            if not self.is_expired(modified_at, cadence, now=now):
                report.kept.append(entry)
                continue
            try:
                entry.unlink()
            except OSError as exc:
                LOGGER.warning("Failed to remove old backup %s: %s", entry, exc)
                report.failed.append((entry, str(exc)))
                continue
            report.removed.append(entry)
        return report


__all__ = ["DEFAULT_THRESHOLDS", "PruneReport", "RetentionPolicy"]
