"""Archive producers used by :class:`~webpanel.backups.BackupArchiver`."""
from __future__ import annotations

import gzip
import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path

from .backups import ArchiveFailedError


@dataclass(slots=True)
class TarArchiveProducer:
    """Gzip-compressed tarball of a directory."""

    compression_level: int | None = None
    tar_bin: str = "tar"
    extension: str = "tar.gz"

    def source_exists(self, source: str | Path) -> bool:
        """Return True when *source* exists on disk."""
        return Path(source).exists()

    def create(self, source: str | Path, destination: Path) -> None:
        """Create a ``.tar.gz`` of *source* at *destination*."""
        source_dir = Path(source)
        tar_bin = shutil.which(self.tar_bin)
        if tar_bin is None:
            raise ArchiveFailedError(f"The '{self.tar_bin}' command is required to create archives.")

        env = os.environ.copy()
        if self.compression_level is not None:
            env["GZIP"] = f"-{self.compression_level}"
        cmd = [
            tar_bin,
            "-czf",
            str(destination),
            "-C",
            str(source_dir.parent),
            source_dir.name,
        ]
        result = subprocess.run(  # noqa: S603 - controlled command execution
            cmd,
            capture_output=True,
            text=True,
            env=env,
            check=False,
        )
        if result.returncode != 0:
            message = result.stderr or result.stdout or "tar command failed"
            raise ArchiveFailedError(f"Failed to create backup archive: {message.strip()}")

        try:
            os.chmod(destination, 0o640)
        except OSError:
            pass


@dataclass(slots=True)
class DatabaseDumpProducer:
    """Gzip-compressed SQL dump of a database.

    The source is the database name; whether it exists is decided by the dump
    tool itself, which fails with a non-zero exit for unknown databases.
    """

    dump_bin: str = "mysqldump"
    user: str = "root"
    compression_level: int | None = None
    extension: str = "sql.gz"

    def source_exists(self, source: str | Path) -> bool:
        """Return True for any non-empty database name."""
        return bool(str(source).strip())

    def create(self, source: str | Path, destination: Path) -> None:
        """Stream ``mysqldump`` output through gzip into *destination*."""
        cmd = [self.dump_bin, "-u", self.user, "--single-transaction", str(source)]
        level = self.compression_level if self.compression_level is not None else 6
        with tempfile.TemporaryFile() as errors:
            try:
                with gzip.open(destination, "wb", compresslevel=level) as handle:
                    process = subprocess.Popen(  # noqa: S603 - controlled command execution
                        cmd,
                        stdout=subprocess.PIPE,
                        stderr=errors,
                    )
                    assert process.stdout is not None
                    with process.stdout:
                        shutil.copyfileobj(process.stdout, handle)
                    returncode = process.wait()
            except FileNotFoundError as exc:
                raise ArchiveFailedError(f"{self.dump_bin} not found: {exc}") from exc
            if returncode != 0:
                errors.seek(0)
                message = errors.read().decode("utf-8", "replace").strip() or "no output"
                raise ArchiveFailedError(
                    f"{self.dump_bin} {source} failed (exit {returncode}): {message}"
                )

        try:
            os.chmod(destination, 0o640)
        except OSError:
            pass


__all__ = ["DatabaseDumpProducer", "TarArchiveProducer"]
