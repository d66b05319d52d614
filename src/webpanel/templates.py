"""Jinja2 template rendering with operator overrides.

Built-in templates ship inside the package under ``webpanel/templates``. An
override directory (``templates_dir`` in the config) is searched first so
operators can replace any template by dropping a file with the same relative
name there.
"""
from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
    TemplateError,
)

from .errors import EnvironmentFailure


class TemplateRenderError(EnvironmentFailure):
    """Raised when a template cannot be rendered or written."""


@dataclass(slots=True)
class TemplateEngine:
    """Render named templates to strings or files."""

    environment: Environment

    @classmethod
    def with_overrides(cls, override_dir: Path | None) -> TemplateEngine:
        """Return an engine that prefers templates found in *override_dir*."""
        loaders: list[FileSystemLoader | PackageLoader] = []
        if override_dir is not None:
            override = Path(override_dir).expanduser()
            if override.is_dir():
                loaders.append(FileSystemLoader(str(override)))
        loaders.append(PackageLoader("webpanel", "templates"))
        environment = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        return cls(environment=environment)

    def render_to_string(self, template_name: str, context: Mapping[str, object]) -> str:
        """Render *template_name* with *context*."""
        try:
            template = self.environment.get_template(template_name)
            return template.render(**dict(context))
        except TemplateError as exc:
            raise TemplateRenderError(
                f"Failed to render template '{template_name}': {exc}"
            ) from exc

    def render_to_path(
        self,
        template_name: str,
        destination: Path,
        context: Mapping[str, object],
        *,
        mode: int = 0o644,
    ) -> bool:
        """Render *template_name* into *destination*.

        Returns ``True`` when the file was created or its content changed. The
        write goes through a temporary file in the destination directory so a
        failed write never leaves a truncated file behind.
        """
        content = self.render_to_string(template_name, context)
        if destination.exists():
            try:
                if destination.read_text(encoding="utf-8") == content:
                    return False
            except OSError:
                pass
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            write_atomic(destination, content, mode=mode)
        except OSError as exc:
            raise TemplateRenderError(f"Failed to write {destination}: {exc}") from exc
        return True


def write_atomic(path: Path, content: str, *, mode: int = 0o644) -> None:
    """Replace *path* with *content* using temp-file-then-rename."""
    tmp_fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


__all__ = ["TemplateEngine", "TemplateRenderError", "write_atomic"]
