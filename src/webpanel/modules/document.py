"""In-memory representation of one site's Caddy configuration document.

A document holds a single top-level block::

    example.com {
        root * /apps/sites/example.com/public
        import access_log example.com
        import php
    }

Module references are the ``import`` lines inside the block. The document is
kept as the exact list of lines read from disk (split on ``\\n`` so the
trailing newline and any ``\\r`` survive untouched) which means removing an
import restores the file byte for byte.
"""
from __future__ import annotations

import os
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import EnvironmentFailure, NotFoundError

IMPORT_KEYWORD = "import"
IMPORT_INDENT = "    "
CLOSING_BRACE = "}"


class SiteNotFoundError(NotFoundError):
    """Raised when a site has no configuration document."""


class DocumentParseError(EnvironmentFailure):
    """Raised when a configuration document exists but cannot be read."""


class MalformedDocumentError(EnvironmentFailure):
    """Raised when a document lacks the structure required for editing."""


class DocumentIOError(EnvironmentFailure):
    """Raised when a document cannot be written back to disk."""


@dataclass(frozen=True, slots=True)
class ModuleReference:
    """A parsed ``import <module> [param ...]`` line."""

    module: str
    params: tuple[str, ...] = ()

    @classmethod
    def build(cls, module: str, params: Sequence[str] = ()) -> ModuleReference:
        """Return the reference exactly as its import line reads back.

        Params are split on whitespace and empty values are dropped, so the
        result compares equal to :func:`parse_import` of :meth:`to_line`.
        """
        tokens = tuple(token for param in params for token in param.split())
        return cls(module=module, params=tokens)

    def to_line(self) -> str:
        """Return the canonical, indented import line."""
        return IMPORT_INDENT + " ".join((IMPORT_KEYWORD, self.module, *self.params))


def parse_import(line: str) -> ModuleReference | None:
    """Return the reference declared by *line*, or ``None`` for other lines."""
    tokens = line.split()
    if len(tokens) < 2 or tokens[0] != IMPORT_KEYWORD:
        return None
    return ModuleReference(module=tokens[1], params=tuple(tokens[2:]))


def site_path(sites_dir: Path, domain: str) -> Path:
    """Return the document path for *domain* under *sites_dir*."""
    return sites_dir / f"{domain}.conf"


@dataclass(slots=True)
class SiteDocument:
    """Line-oriented editor for a site configuration file."""

    domain: str
    path: Path
    lines: list[str] = field(default_factory=list)

    @classmethod
    def load(cls, domain: str, sites_dir: Path) -> SiteDocument:
        """Read the document for *domain* from *sites_dir*."""
        path = site_path(sites_dir, domain)
        try:
            with path.open(encoding="utf-8", newline="") as handle:
                text = handle.read()
        except FileNotFoundError:
            raise SiteNotFoundError(f"No configuration found for site '{domain}'.") from None
        except (OSError, UnicodeDecodeError) as exc:
            raise DocumentParseError(
                f"Failed to read site configuration {path}: {exc}"
            ) from exc
        return cls(domain=domain, path=path, lines=text.split("\n"))

    @classmethod
    def create(cls, domain: str, sites_dir: Path, text: str) -> SiteDocument:
        """Return an unsaved document for *domain* holding *text*."""
        return cls(domain=domain, path=site_path(sites_dir, domain), lines=text.split("\n"))

    # Queries ---------------------------------------------------------
    def is_module_enabled(self, module: str) -> bool:
        """Return True when an import line names exactly *module*."""
        return any(ref.module == module for ref in self.list_enabled_modules())

    def list_enabled_modules(self) -> list[ModuleReference]:
        """Return every module reference in file order."""
        references: list[ModuleReference] = []
        for line in self.lines:
            reference = parse_import(line)
            if reference is not None:
                references.append(reference)
        return references

    def render(self) -> str:
        """Return the document text."""
        return "\n".join(self.lines)

    # Mutations -------------------------------------------------------
    def insert_import(self, module: str, params: Sequence[str] = ()) -> bool:
        """Insert an import line for *module* before the closing brace.

        Returns ``False`` without touching the document when an identical
        import (same module, same params) is already present. The new line
        takes the line ending of the closing brace line.
        """
        reference = ModuleReference.build(module, params)
        if reference in self.list_enabled_modules():
            return False
        index = self._closing_brace_index()
        ending = "\r" if self.lines[index].endswith("\r") else ""
        self.lines.insert(index, reference.to_line() + ending)
        return True

    def remove_import(self, module: str) -> int:
        """Drop every import line for *module*; return how many were removed."""
        kept: list[str] = []
        removed = 0
        for line in self.lines:
            reference = parse_import(line)
            if reference is not None and reference.module == module:
                removed += 1
                continue
            kept.append(line)
        self.lines = kept
        return removed

    def save(self) -> None:
        """Atomically replace the backing file with the current lines."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_fd, tmp_name = tempfile.mkstemp(
                dir=str(self.path.parent),
                prefix=f".{self.path.name}.",
            )
        except OSError as exc:
            raise DocumentIOError(f"Failed to update {self.path}: {exc}") from exc
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(self.render())
            os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise DocumentIOError(f"Failed to update {self.path}: {exc}") from exc
        finally:
            tmp_path.unlink(missing_ok=True)

    def _closing_brace_index(self) -> int:
        for index, line in enumerate(self.lines):
            if line.rstrip() == CLOSING_BRACE:
                return index
        raise MalformedDocumentError(
            f"Site configuration {self.path} has no closing '}}' line."
        )


__all__ = [
    "DocumentIOError",
    "DocumentParseError",
    "MalformedDocumentError",
    "ModuleReference",
    "SiteDocument",
    "SiteNotFoundError",
    "parse_import",
    "site_path",
]
