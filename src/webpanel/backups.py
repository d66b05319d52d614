"""Timestamped backup archives per subject and cadence.

Archives live under ``<backup root>/<cadence>/<subject>/`` and are named after
the calendar day they were taken on, so a second run on the same day replaces
the earlier archive::

    /backup/daily/example.com/2024-03-10.tar.gz
    /backup/weekly/example.com/2024-03-10-full.tar.gz
    /backup/daily/shop_db/2024-03-10.sql.gz
"""
from __future__ import annotations

import os
import re
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from .errors import ValidationError, WebpanelError

if TYPE_CHECKING:
    from .logging import OperationScope
    from .retention import RetentionPolicy


class BackupError(WebpanelError):
    """Raised when backup operations fail."""


class ArchiveFailedError(BackupError):
    """Raised when the archive producer fails or its output cannot be stored."""


class SourceMissingError(BackupError, ValidationError):
    """Raised when the subject to back up does not exist."""


class Cadence(str, Enum):
    """Backup frequency class."""

    DAILY = "daily"
    WEEKLY = "weekly"

    @property
    def is_full(self) -> bool:
        """Weekly archives are marked as full archives in their file name."""
        return self is Cadence.WEEKLY

    @property
    def cron_schedule(self) -> str:
        """Recurrence expression used when the cadence is scheduled."""
        if self is Cadence.DAILY:
            return "0 1 * * *"
        return "0 2 * * 0"


_ARTIFACT_NAME = re.compile(r"^(?P<day>\d{4}-\d{2}-\d{2})(?P<full>-full)?\.(?P<ext>.+)$")


@dataclass(frozen=True, slots=True)
class BackupArtifact:
    """One archive produced for a subject, cadence and day."""

    subject: str
    cadence: Cadence
    created_at: datetime
    path: Path

    @property
    def full(self) -> bool:
        """Return True for weekly full archives."""
        return self.path.name.split(".", 1)[0].endswith("-full")

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "subject": self.subject,
            "cadence": self.cadence.value,
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "path": str(self.path),
            "full": self.full,
        }


class ArchiveProducer(Protocol):
    """Collaborator that writes an archive of a source to a destination file."""

    extension: str

    def source_exists(self, source: str | Path) -> bool:
        """Return True when *source* can be archived."""
        ...

    def create(self, source: str | Path, destination: Path) -> None:
        """Write the archive for *source* to *destination*."""
        ...


def artifact_name(cadence: Cadence, created_at: datetime, extension: str) -> str:
    """Return the archive file name for *cadence* on the day of *created_at*."""
    day = created_at.strftime("%Y-%m-%d")
    suffix = "-full" if cadence.is_full else ""
    return f"{day}{suffix}.{extension}"


def _local_now() -> datetime:
    return datetime.now().astimezone()


@dataclass(slots=True)
class BackupArchiver:
    """Create archives for one kind of subject and prune stale ones."""

    root: Path
    producer: ArchiveProducer
    retention: RetentionPolicy
    clock: Callable[[], datetime] = _local_now

    def destination_dir(self, subject: str, cadence: Cadence) -> Path:
        """Return the directory holding *subject*'s archives for *cadence*."""
        return self.root / cadence.value / subject

    def run(
        self,
        subject: str,
        cadence: Cadence,
        source: str | Path,
        *,
        op: OperationScope | None = None,
    ) -> BackupArtifact:
        """Archive *source* for *subject* and apply retention afterwards."""
        if not self.producer.source_exists(source):
            raise SourceMissingError(f"Backup source does not exist: {source}")

        directory = self.destination_dir(subject, cadence)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ArchiveFailedError(
                f"Failed to create backup directory {directory}: {exc}"
            ) from exc

        created_at = self.clock()
        destination = directory / artifact_name(cadence, created_at, self.producer.extension)
        partial = directory / f".{destination.name}.partial-{secrets.token_hex(3)}"
        try:
            self.producer.create(source, partial)
            os.replace(partial, destination)
        except OSError as exc:
            raise ArchiveFailedError(f"Failed to store archive {destination}: {exc}") from exc
        finally:
            partial.unlink(missing_ok=True)
        if op is not None:
            op.add_step("backup.archive", status="success", detail=str(destination))

        report = self.retention.prune(directory, cadence)
        if op is not None:
            for path in report.removed:
                op.add_step("backup.prune", status="success", detail=f"{path}:removed")
            for path, reason in report.failed:
                op.add_step("backup.prune", status="warning", detail=f"{path}:{reason}")

        return BackupArtifact(
            subject=subject,
            cadence=cadence,
            created_at=created_at,
            path=destination,
        )

    def list_artifacts(self, subject: str, cadence: Cadence) -> list[BackupArtifact]:
        """Return the archives stored for *subject*, oldest first."""
        directory = self.destination_dir(subject, cadence)
        try:
            entries = sorted(directory.iterdir())
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise BackupError(f"Failed to list backups in {directory}: {exc}") from exc

        artifacts: list[BackupArtifact] = []
        for entry in entries:
            if entry.name.startswith(".") or entry.is_dir():
                continue
            match = _ARTIFACT_NAME.match(entry.name)
            if match is None:
                continue
            created_at = datetime.strptime(match.group("day"), "%Y-%m-%d").astimezone()
            artifacts.append(
                BackupArtifact(subject=subject, cadence=cadence, created_at=created_at, path=entry)
            )
        return artifacts


__all__ = [
    "ArchiveFailedError",
    "ArchiveProducer",
    "BackupArchiver",
    "BackupArtifact",
    "BackupError",
    "Cadence",
    "SourceMissingError",
    "artifact_name",
]
