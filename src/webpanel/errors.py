"""Base exception types shared by webpanel components.

Each component defines its own concrete errors next to the code that raises
them; they all derive from :class:`WebpanelError` so the CLI can map any
failure onto an exit code without knowing the component.
"""
from __future__ import annotations

from .exit_codes import ExitCode


class WebpanelError(RuntimeError):
    """Root of the webpanel error hierarchy."""

    exit_code: ExitCode = ExitCode.PROVIDER


class ValidationError(WebpanelError):
    """Raised for user-correctable input or state-precondition problems."""

    exit_code = ExitCode.VALIDATION


class EnvironmentFailure(WebpanelError):
    """Raised when the host filesystem is not in a usable state."""

    exit_code = ExitCode.ENVIRONMENT


class NotFoundError(ValidationError):
    """Raised when a site, document or other named resource is absent."""


__all__ = ["EnvironmentFailure", "NotFoundError", "ValidationError", "WebpanelError"]
