"""Shared fixtures for pyet tests."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from pyet.cache import TemplateCache
from pyet.compiler import TemplateCompiler
from pyet.options import CompileOptions

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


@pytest.fixture(autouse=True)
def _restore_pyet_logger():
    """Undo logging setup done by CLI invocations."""
    pyet_logger = logging.getLogger("pyet")
    saved = (pyet_logger.handlers[:], pyet_logger.level, pyet_logger.propagate)
    yield
    pyet_logger.handlers, level, pyet_logger.propagate = saved
    pyet_logger.setLevel(level)


@pytest.fixture
def cache() -> TemplateCache:
    """A fresh template cache, isolated from the process default."""
    return TemplateCache()


@pytest.fixture
def compiler(cache: TemplateCache) -> TemplateCompiler:
    return TemplateCompiler(cache)


@pytest.fixture
def write_template(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write a template under tmp_path and return its path."""

    def _write(name: str, text: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def render(compiler: TemplateCompiler) -> Callable[..., str]:
    """Compile and render a template string with keyword options."""

    def _render(template: str, data: dict | None = None, **options: object) -> str:
        return compiler.render(template, data, CompileOptions(**options))

    return _render
