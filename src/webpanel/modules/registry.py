"""Catalog of configuration modules that can be attached to a site.

A module is a named Caddy snippet. Sites reference it with an
``import <name> [param ...]`` line; the snippet itself is rendered once into
the modules directory by :meth:`ModuleComposer.install_snippets`.
"""
from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from ..errors import ValidationError
from ..templates import TemplateEngine


class UnknownModuleError(ValidationError):
    """Raised when a module name is not part of the catalog."""


@dataclass(frozen=True, slots=True)
class ModuleDefinition:
    """Immutable description of a module."""

    name: str
    template: str
    required_params: tuple[str, ...] = ()
    description: str = ""
    creates_log_dir: bool = False

    def render(self, engine: TemplateEngine, context: Mapping[str, object]) -> str:
        """Return the snippet text for this module."""
        return engine.render_to_string(self.template, context)

    def missing_params(self, params: Iterable[str]) -> tuple[str, ...]:
        """Return the placeholder names that *params* leaves unfilled."""
        supplied = len(list(params))
        return self.required_params[supplied:]


def _definition(name: str, description: str, **kwargs: object) -> ModuleDefinition:
    return ModuleDefinition(
        name=name,
        template=f"caddy/modules/{name}.conf.j2",
        description=description,
        **kwargs,  # type: ignore[arg-type]
    )


DEFAULT_CATALOG: tuple[ModuleDefinition, ...] = (
    _definition("php", "Route requests through PHP-FPM and serve static files."),
    _definition("spa", "Serve a single-page application with an index.html fallback."),
    _definition("security", "Send strict transport and content security headers."),
    _definition("header", "Hide the Server header and advertise webpanel."),
    _definition(
        "restrict",
        "Answer 403 to clients outside the given address ranges.",
        required_params=("allowed_ranges",),
    ),
    _definition(
        "access_log",
        "Write JSON access logs for the site.",
        required_params=("domain",),
        creates_log_dir=True,
    ),
    _definition(
        "error_log",
        "Write JSON error logs for the site.",
        required_params=("domain",),
        creates_log_dir=True,
    ),
)


@dataclass(frozen=True)
class ModuleRegistry:
    """Read-only mapping from module name to :class:`ModuleDefinition`."""

    definitions: Mapping[str, ModuleDefinition] = field(
        default_factory=lambda: ModuleRegistry.build_mapping(DEFAULT_CATALOG)
    )

    @staticmethod
    def build_mapping(definitions: Iterable[ModuleDefinition]) -> Mapping[str, ModuleDefinition]:
        """Index *definitions* by name, rejecting duplicates."""
        mapping: dict[str, ModuleDefinition] = {}
        for definition in definitions:
            if definition.name in mapping:
                raise ValueError(f"Duplicate module definition '{definition.name}'.")
            mapping[definition.name] = definition
        return MappingProxyType(mapping)

    @classmethod
    def from_definitions(cls, definitions: Iterable[ModuleDefinition]) -> ModuleRegistry:
        """Build a registry from an explicit catalog."""
        return cls(definitions=cls.build_mapping(definitions))

    def lookup(self, name: str) -> ModuleDefinition:
        """Return the definition for *name*."""
        try:
            return self.definitions[name]
        except KeyError:
            raise UnknownModuleError(f"Module '{name}' not found.") from None

    def list_names(self) -> list[str]:
        """Return all module names in sorted order."""
        return sorted(self.definitions)

    def __contains__(self, name: object) -> bool:
        return name in self.definitions

    def __iter__(self) -> Iterator[ModuleDefinition]:
        for name in self.list_names():
            yield self.definitions[name]

    def __len__(self) -> int:
        return len(self.definitions)


__all__ = ["DEFAULT_CATALOG", "ModuleDefinition", "ModuleRegistry", "UnknownModuleError"]
