"""Custom exception hierarchy for pyet."""

from __future__ import annotations

__all__ = [
    "ConfigError",
    "IncludeError",
    "PyetError",
    "TemplateNotFoundError",
    "TemplateRuntimeError",
    "TemplateSyntaxError",
]


class PyetError(Exception):
    """Base exception for all pyet errors."""


class ConfigError(PyetError):
    """Raised when options are invalid or an include cannot be configured."""


class IncludeError(ConfigError):
    """Raised when an include cannot be resolved at compile or render time."""


class TemplateNotFoundError(PyetError):
    """Raised when a template identifier is missing from the page map."""


class TemplateSyntaxError(PyetError):
    """Raised when the assembled program is not valid Python."""

    def __init__(self, message: str, filename: str | None = None, lineno: int = 0) -> None:
        super().__init__(message)
        self.filename = filename
        self.lineno = lineno


class TemplateRuntimeError(PyetError):
    """Raised when a compiled template fails while rendering.

    ``path`` is the template filename (``None`` for string templates) and
    ``lineno`` the 1-based template line the failure maps back to.
    """

    def __init__(self, message: str, path: str | None = None, lineno: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.lineno = lineno
