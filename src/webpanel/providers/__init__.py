"""Provider interfaces for webpanel."""
from __future__ import annotations

from .caddy import CaddyError, CaddyProvider, CaddyRenderResult

__all__ = [
    "CaddyError",
    "CaddyProvider",
    "CaddyRenderResult",
]
