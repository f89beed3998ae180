"""Line-mapped error reporting for compiled templates.

A compiled program tracks the template line it is executing; when it fails,
:func:`rethrow` rewrites the error into a :class:`TemplateRuntimeError`
showing the surrounding template lines.
"""

from __future__ import annotations

from typing import NoReturn

from pyet.exceptions import TemplateRuntimeError

__all__ = [
    "CONTEXT_LINES",
    "DEFAULT_PATH",
    "format_context",
    "rethrow",
]

CONTEXT_LINES = 3
DEFAULT_PATH = "pyet"


def format_context(source: str, lineno: int, context: int = CONTEXT_LINES) -> str:
    """Render the lines around ``lineno`` with the failing one marked.

    Example for ``lineno=5``::

            4| <ul>
         >> 5| <%= item.name %>
            6| </ul>
    """
    lines = source.split("\n")
    start = max(lineno - context, 1)
    end = min(len(lines), lineno + context)
    return "\n".join(
        (" >> " if curr == lineno else "    ") + f"{curr}| {lines[curr - 1]}"
        for curr in range(start, end + 1)
    )


def rethrow(err: BaseException, source: str, filename: str | None, lineno: int) -> NoReturn:
    """Re-raise ``err`` annotated with the template location it came from.

    Args:
        err: The error raised while rendering.
        source: Template text the program was compiled from.
        filename: Template filename, or ``None`` for string templates.
        lineno: 1-based template line that was executing.

    Raises:
        TemplateRuntimeError: Always; chained from ``err``. An error that is
            already a ``TemplateRuntimeError`` (from a nested include) is
            re-raised unchanged.
    """
    if isinstance(err, TemplateRuntimeError):
        raise err

    message = (
        f"{filename or DEFAULT_PATH}:{lineno}\n"
        f"{format_context(source, lineno)}\n\n"
        f"{err}"
    )
    raise TemplateRuntimeError(message, path=filename, lineno=lineno) from err
