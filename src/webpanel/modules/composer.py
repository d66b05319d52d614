"""Enable and disable modules on site configuration documents."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ..errors import EnvironmentFailure, ValidationError
from ..templates import TemplateEngine
from .document import ModuleReference, SiteDocument
from .registry import ModuleRegistry

LOGGER = logging.getLogger(__name__)


class ModuleAlreadyEnabledError(ValidationError):
    """Raised when enabling a module the site already imports."""


class ModuleNotEnabledError(ValidationError):
    """Raised when disabling a module the site does not import."""


class LogDirectoryError(EnvironmentFailure):
    """Raised when the per-site log directory cannot be created."""


@dataclass(slots=True)
class ModuleComposer:
    """Apply module changes to site documents using the registry."""

    registry: ModuleRegistry
    sites_dir: Path
    log_root: Path

    def enable(
        self,
        domain: str,
        module: str,
        params: Sequence[str] = (),
    ) -> ModuleReference:
        """Import *module* into the configuration of *domain*."""
        definition = self.registry.lookup(module)
        document = SiteDocument.load(domain, self.sites_dir)
        if document.is_module_enabled(module):
            raise ModuleAlreadyEnabledError(
                f"Module {module} is already enabled for {domain}."
            )

        reference = ModuleReference.build(module, params)
        missing = definition.missing_params(reference.params)
        if missing:
            LOGGER.warning(
                "Module %s enabled for %s without parameter(s): %s",
                module,
                domain,
                ", ".join(missing),
            )

        if definition.creates_log_dir:
            self._ensure_log_directory(domain)

        document.insert_import(reference.module, reference.params)
        document.save()
        return reference

    def disable(self, domain: str, module: str) -> None:
        """Remove every import of *module* from the configuration of *domain*."""
        self.registry.lookup(module)
        document = SiteDocument.load(domain, self.sites_dir)
        if not document.is_module_enabled(module):
            raise ModuleNotEnabledError(f"Module {module} is not enabled for {domain}.")
        document.remove_import(module)
        document.save()

    def list_enabled(self, domain: str) -> list[str]:
        """Return the names of modules imported by *domain*, in file order."""
        document = SiteDocument.load(domain, self.sites_dir)
        return [reference.module for reference in document.list_enabled_modules()]

    def log_directory(self, domain: str) -> Path:
        """Return the log directory used by logging modules for *domain*."""
        return self.log_root / domain

    def install_snippets(
        self,
        templates: TemplateEngine,
        modules_dir: Path,
        *,
        php_fpm_socket: str,
    ) -> list[Path]:
        """Render every catalog snippet into *modules_dir*.

        Returns the paths whose content changed.
        """
        context = {"log_root": str(self.log_root), "php_fpm_socket": php_fpm_socket}
        changed: list[Path] = []
        for definition in self.registry:
            destination = modules_dir / f"{definition.name}.conf"
            if templates.render_to_path(definition.template, destination, context):
                changed.append(destination)
        return changed

    def _ensure_log_directory(self, domain: str) -> None:
        path = self.log_directory(domain)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LogDirectoryError(f"Failed to create log directory {path}: {exc}") from exc


__all__ = [
    "LogDirectoryError",
    "ModuleAlreadyEnabledError",
    "ModuleComposer",
    "ModuleNotEnabledError",
]
