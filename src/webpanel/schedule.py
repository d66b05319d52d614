"""Recurring backup registration through cron drop-in files.

Each (kind, cadence, subject) triple owns one file in the cron directory; the
file's presence is the "scheduled" state. Recurrence itself is left to the
host's cron daemon.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .backups import Cadence
from .errors import EnvironmentFailure, ValidationError
from .templates import TemplateEngine


class ScheduleError(EnvironmentFailure):
    """Raised when a schedule entry cannot be written or removed."""


class AlreadyScheduledError(ValidationError):
    """Raised when enabling a schedule that already exists."""


class SubjectKind(str, Enum):
    """What a backup subject refers to; doubles as the CLI command group."""

    SITE = "backup"
    DATABASE = "dbbackup"


@dataclass(frozen=True, slots=True)
class ScheduleEntry:
    """A registered recurring backup."""

    subject: str
    cadence: Cadence
    kind: SubjectKind
    command: str
    path: Path


@dataclass(slots=True)
class ScheduleRegistrar:
    """Create and remove cron entries that re-run backups."""

    templates: TemplateEngine
    cron_dir: Path = Path("/etc/cron.d")
    user: str = "root"
    executable: str = "webpanel"

    def entry_name(self, subject: str, cadence: Cadence, kind: SubjectKind) -> str:
        """Return the cron file name for the triple.

        cron ignores drop-in files whose names contain dots, so dots in
        domain names are replaced.
        """
        safe = subject.replace(".", "_").replace("/", "-")
        return f"webpanel-{kind.value}-{cadence.value}-{safe}"

    def entry_path(
        self,
        subject: str,
        cadence: Cadence,
        kind: SubjectKind = SubjectKind.SITE,
    ) -> Path:
        """Return the full path of the cron file."""
        return self.cron_dir / self.entry_name(subject, cadence, kind)

    def command_for(self, subject: str, cadence: Cadence, kind: SubjectKind) -> str:
        """Return the command line cron runs for the triple."""
        return f"{self.executable} {kind.value} run {cadence.value} {subject}"

    def is_scheduled(
        self,
        subject: str,
        cadence: Cadence,
        *,
        kind: SubjectKind = SubjectKind.SITE,
    ) -> bool:
        """Return True when the schedule entry exists."""
        return self.entry_path(subject, cadence, kind).exists()

    def enable(
        self,
        subject: str,
        cadence: Cadence,
        *,
        kind: SubjectKind = SubjectKind.SITE,
    ) -> ScheduleEntry:
        """Register a recurring backup for *subject*."""
        path = self.entry_path(subject, cadence, kind)
        if path.exists():
            raise AlreadyScheduledError(
                f"{cadence.value} {kind.value} is already enabled for {subject}."
            )
        command = self.command_for(subject, cadence, kind)
        context = {
            "subject": subject,
            "cadence": cadence.value,
            "kind": kind.value,
            "schedule": cadence.cron_schedule,
            "user": self.user,
            "command": command,
        }
        self.templates.render_to_path("cron/backup.j2", path, context, mode=0o644)
        return ScheduleEntry(
            subject=subject,
            cadence=cadence,
            kind=kind,
            command=command,
            path=path,
        )

    def disable(
        self,
        subject: str,
        cadence: Cadence,
        *,
        kind: SubjectKind = SubjectKind.SITE,
    ) -> bool:
        """Remove the schedule entry; return whether a file was removed."""
        path = self.entry_path(subject, cadence, kind)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise ScheduleError(f"Failed to remove cron job {path}: {exc}") from exc
        return True


__all__ = [
    "AlreadyScheduledError",
    "ScheduleEntry",
    "ScheduleError",
    "ScheduleRegistrar",
    "SubjectKind",
]
