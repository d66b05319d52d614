"""Module composition: catalog, site documents and the composer."""
from __future__ import annotations

from .composer import (
    LogDirectoryError,
    ModuleAlreadyEnabledError,
    ModuleComposer,
    ModuleNotEnabledError,
)
from .document import (
    DocumentIOError,
    DocumentParseError,
    MalformedDocumentError,
    ModuleReference,
    SiteDocument,
    SiteNotFoundError,
)
from .registry import DEFAULT_CATALOG, ModuleDefinition, ModuleRegistry, UnknownModuleError

__all__ = [
    "DEFAULT_CATALOG",
    "DocumentIOError",
    "DocumentParseError",
    "LogDirectoryError",
    "MalformedDocumentError",
    "ModuleAlreadyEnabledError",
    "ModuleComposer",
    "ModuleDefinition",
    "ModuleNotEnabledError",
    "ModuleReference",
    "ModuleRegistry",
    "SiteDocument",
    "SiteNotFoundError",
    "UnknownModuleError",
]
