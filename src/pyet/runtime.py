"""Runtime collaborators of compiled templates.

The default escape function, the template source reader and the
:class:`Template` wrapper returned by :func:`pyet.compile`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from markupsafe import escape

from pyet.reporting import rethrow

if TYPE_CHECKING:
    from pathlib import Path

    from pyet.includes import IncludeResolver
    from pyet.loader import Program

__all__ = [
    "Template",
    "escape_xml",
    "read_template",
]

logger = logging.getLogger(__name__)

_BOM = "\ufeff"


def escape_xml(markup: Any) -> str:
    """Escape ``& < > " '`` for XML/HTML output; ``None`` renders as ``''``."""
    if markup is None:
        return ""
    return str(escape(markup))


def read_template(filename: str | Path) -> str:
    """Read a template file as UTF-8, dropping a leading byte-order mark.

    ``OSError`` (including ``FileNotFoundError``) propagates unchanged.
    """
    with open(filename, "rb") as f:
        text = f.read().decode("utf-8")
    if text.startswith(_BOM):
        text = text[len(_BOM) :]
    return text


class Template:
    """A compiled template bound to its escape function and include resolver.

    Calling the template renders it::

        template = pyet.compile("Hello <%= name %>!")
        template({"name": "world"})  # 'Hello world!'

    Each call gets its own ``include(path, include_data=None)`` function, which
    renders another template with ``include_data`` merged over the current data.
    """

    def __init__(self, program: Program, resolver: IncludeResolver) -> None:
        self.program = program
        self.resolver = resolver

    @property
    def source(self) -> str:
        """The generated Python program."""
        return self.program.source

    @property
    def filename(self) -> str | None:
        return self.program.filename

    def __call__(self, data: Mapping[str, Any] | None = None) -> str:
        escape_fn = self.resolver.options.escape
        return self.program(data or {}, escape_fn, self._make_include(data or {}), rethrow)

    def render(self, data: Mapping[str, Any] | None = None) -> str:
        """Render the template with ``data``; same as calling it."""
        return self(data)

    def _make_include(self, data: Mapping[str, Any]):
        resolver = self.resolver
        escape_fn = resolver.options.escape

        def include(path: str, include_data: Mapping[str, Any] | None = None) -> str:
            merged = dict(data)
            if include_data:
                merged.update(include_data)
            with resolver.including(path) as program:
                return program(merged, escape_fn, self._make_include(merged), rethrow)

        return include

    def __repr__(self) -> str:
        return f"<Template {self.filename or '(string)'}>"
