"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from webpanel.templates import TemplateEngine

BASE_DOCUMENT = "example.com {\n    root * /apps/sites/example.com/public\n}\n"


@pytest.fixture
def templates() -> TemplateEngine:
    """Return a template engine using only the built-in templates."""
    return TemplateEngine.with_overrides(None)


@pytest.fixture
def sites_dir(tmp_path: Path) -> Path:
    """Return a sites directory holding a base document for example.com."""
    directory = tmp_path / "config" / "sites"
    directory.mkdir(parents=True)
    (directory / "example.com.conf").write_text(BASE_DOCUMENT, encoding="utf-8")
    return directory
