"""Caddy provider for provisioning and removing site configurations."""
from __future__ import annotations

import shutil
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from ..errors import WebpanelError
from ..modules.document import site_path
from ..templates import TemplateEngine


class CaddyError(WebpanelError):
    """Raised when caddy operations fail."""


@dataclass(slots=True)
class CaddyRenderResult:
    """Outcome of rendering a site configuration document."""

    changed: bool
    validation: subprocess.CompletedProcess[str] | None = None
    reload: subprocess.CompletedProcess[str] | None = None
    validation_error: str | None = None


@dataclass(slots=True)
class CaddyProvider:
    """Render and manage per-site Caddy configuration documents."""

    templates: TemplateEngine
    sites_dir: Path
    web_root: Path
    log_root: Path
    caddyfile: Path = Path("/etc/caddy/Caddyfile")
    caddy_bin: str = "caddy"

    def site_path(self, domain: str) -> Path:
        """Return the configuration document path for *domain*."""
        return site_path(self.sites_dir, domain)

    def site_directory(self, domain: str) -> Path:
        """Return the directory holding the site's files."""
        return self.web_root / domain

    def public_directory(self, domain: str) -> Path:
        """Return the document root served for *domain*."""
        return self.site_directory(domain) / "public"

    def log_directory(self, domain: str) -> Path:
        """Return the directory that receives the site's Caddy logs."""
        return self.log_root / domain

    def site_exists(self, domain: str) -> bool:
        """Return True when the configuration document exists."""
        return self.site_path(domain).exists()

    def list_sites(self) -> list[str]:
        """Return the domains that have a configuration document."""
        if not self.sites_dir.is_dir():
            return []
        return sorted(
            path.stem
            for path in self.sites_dir.glob("*.conf")
            if path.is_file() and not path.name.startswith(".")
        )

    def provision(self, domain: str, *, reload_on_change: bool = True) -> CaddyRenderResult:
        """Create the site's directories, welcome page and base document."""
        public_dir = self.public_directory(domain)
        try:
            public_dir.mkdir(parents=True, exist_ok=True)
            self.log_directory(domain).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CaddyError(f"Failed to create directories for {domain}: {exc}") from exc

        index_path = public_dir / "index.html"
        if not index_path.exists():
            self.templates.render_to_path(
                "site/index.html.j2",
                index_path,
                {"domain": domain},
                mode=0o644,
            )
        return self.render_site(
            domain,
            {"domain": domain, "public_dir": str(public_dir)},
            reload_on_change=reload_on_change,
        )

    def render_site(
        self,
        domain: str,
        context: Mapping[str, object],
        *,
        reload_on_change: bool = True,
    ) -> CaddyRenderResult:
        """Render the base configuration document for *domain*.

        When the document changes the configuration is validated with
        ``caddy validate`` before reloading. Validation failures roll back to
        the previous document to keep Caddy in a working state.
        """
        template_name = "caddy/site.conf.j2"
        destination = self.site_path(domain)
        destination.parent.mkdir(parents=True, exist_ok=True)

        previous: tuple[str, int] | None = None
        if destination.exists():
            previous = (
                destination.read_text(encoding="utf-8"),
                destination.stat().st_mode,
            )

        changed = self.templates.render_to_path(template_name, destination, context, mode=0o644)
        if not changed:
            return CaddyRenderResult(changed=False)

        try:
            validation_result = self.test_config()
        except CaddyError as exc:
            if previous is None:
                destination.unlink(missing_ok=True)
            else:
                content, mode = previous
                destination.write_text(content, encoding="utf-8")
                destination.chmod(mode)
            return CaddyRenderResult(changed=False, validation_error=str(exc))

        reload_result: subprocess.CompletedProcess[str] | None = None
        if reload_on_change:
            reload_result = self.reload()
        return CaddyRenderResult(
            changed=True,
            validation=validation_result,
            reload=reload_result,
        )

    def remove(self, domain: str) -> list[Path]:
        """Remove the site's files, document and log directory."""
        removed: list[Path] = []
        try:
            for directory in (self.site_directory(domain), self.log_directory(domain)):
                if directory.exists():
                    shutil.rmtree(directory)
                    removed.append(directory)
            document = self.site_path(domain)
            if document.exists():
                document.unlink()
                removed.append(document)
        except OSError as exc:
            raise CaddyError(f"Failed to remove site {domain}: {exc}") from exc
        return removed

    def test_config(self) -> subprocess.CompletedProcess[str]:
        """Run ``caddy validate`` against the main Caddyfile."""
        args = ["validate", "--config", str(self.caddyfile), "--adapter", "caddyfile"]
        try:
            return self._run_caddy(args)
        except FileNotFoundError:
            return subprocess.CompletedProcess([self.caddy_bin, *args], returncode=0)

    def reload(self) -> subprocess.CompletedProcess[str]:
        """Reload Caddy to apply configuration changes."""
        args = ["reload", "--config", str(self.caddyfile), "--adapter", "caddyfile"]
        try:
            return self._run_caddy(args)
        except FileNotFoundError:
            return subprocess.CompletedProcess([self.caddy_bin, *args], returncode=0)

    # ------------------------------------------------------------------
    def _run_caddy(self, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
        command = [self.caddy_bin, *args]
        result = subprocess.run(  # noqa: S603, S607
            command,
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            message = (result.stderr or result.stdout or "no output").strip()
            raise CaddyError(
                f"{self.caddy_bin} {args[0]} failed (exit {result.returncode}): {message}"
            )
        return result


__all__ = ["CaddyError", "CaddyProvider", "CaddyRenderResult"]
