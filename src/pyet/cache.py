"""Compiled-template cache for pyet.

Maps a template filename to its compiled :class:`~pyet.loader.Program`.
Entries live until :meth:`TemplateCache.reset` is called; there is no
eviction.

Usage::

    cache = TemplateCache()
    compiler = TemplateCompiler(cache=cache)
    compiler.compile(None, CompileOptions(filename="page.pyet", cache=True))
    cache.reset()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pyet.loader import Program

__all__ = ["TemplateCache", "default_cache"]

logger = logging.getLogger(__name__)


class TemplateCache:
    """In-process filename → program cache shared by every compile it is given to."""

    def __init__(self) -> None:
        self._programs: dict[str, Program] = {}

    def get(self, filename: str) -> Program | None:
        """Return the cached program for ``filename``, or ``None``."""
        program = self._programs.get(filename)
        logger.debug("Cache %s for %s", "hit" if program is not None else "miss", filename)
        return program

    def set(self, filename: str, program: Program) -> None:
        """Store ``program`` under ``filename``, replacing any previous entry."""
        self._programs[filename] = program
        logger.debug("Cached program for %s", filename)

    def reset(self) -> None:
        """Drop every cached program."""
        count = len(self._programs)
        self._programs.clear()
        logger.info("Cleared %d cached template(s)", count)

    def __contains__(self, filename: object) -> bool:
        return filename in self._programs

    def __len__(self) -> int:
        return len(self._programs)


default_cache = TemplateCache()
