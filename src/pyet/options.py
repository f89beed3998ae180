"""Compile options for pyet.

Options are a frozen dataclass resolved once per compile. They can be built
from a plain mapping (CLI flags, data files) or loaded from the ``[options]``
table of a TOML file with sensible defaults for all values.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields, replace
from typing import TYPE_CHECKING, Any

import tomli_w

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from pyet.exceptions import ConfigError
from pyet.grammar import DEFAULT_DELIMITER, Delimiters
from pyet.runtime import escape_xml

if TYPE_CHECKING:
    from pathlib import Path

__all__ = [
    "DEFAULT_LOCALS_NAME",
    "CompileOptions",
    "load_options",
    "save_options",
]

logger = logging.getLogger(__name__)

DEFAULT_LOCALS_NAME = "locals"

# Keys that only make sense in code, never in a TOML file.
_NON_SERIALIZABLE = frozenset({"escape", "pages"})


@dataclass(frozen=True)
class CompileOptions:
    """Configuration fixed for one compile and every include it triggers."""

    delimiter: str = DEFAULT_DELIMITER
    filename: str | None = None
    root: str | None = None
    locals_name: str = DEFAULT_LOCALS_NAME
    strict: bool = False
    implicit_locals: bool | None = None
    debug: bool = False
    compile_debug: bool = True
    cache: bool = False
    rm_whitespace: bool = False
    escape: Callable[[Any], str] = escape_xml
    client: bool = False
    precompile: tuple[str, ...] = ()
    load_only_once: bool = False
    pages: Mapping[str, str] | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        # Validates the delimiter.
        Delimiters(self.delimiter)
        if not self.locals_name.isidentifier():
            raise ConfigError(f"locals_name must be a Python identifier, got {self.locals_name!r}")
        if not callable(self.escape):
            raise ConfigError(f"escape must be callable, got {type(self.escape).__name__}")
        if not isinstance(self.precompile, tuple):
            object.__setattr__(self, "precompile", tuple(self.precompile))

    @property
    def delimiters(self) -> Delimiters:
        return Delimiters(self.delimiter)

    @property
    def with_locals(self) -> bool:
        """Whether data fields are bound as bare names; always off in strict mode."""
        if self.strict:
            return False
        return self.implicit_locals is not False

    @property
    def use_pages(self) -> bool:
        return self.pages is not None

    def evolve(self, **changes: Any) -> CompileOptions:
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> CompileOptions:
        """Build options from a mapping, ignoring unknown keys."""
        known_fields = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in known_fields}
        return cls(**filtered)

    def to_dict(self) -> dict[str, object]:
        """Serializable option values, skipping unset and code-only fields."""
        result: dict[str, object] = {}
        for f in fields(self):
            if f.name in _NON_SERIALIZABLE:
                continue
            value = getattr(self, f.name)
            if value is None:
                continue
            result[f.name] = list(value) if isinstance(value, tuple) else value
        return result


def save_options(options: CompileOptions, path: Path) -> None:
    """Save options to the ``[options]`` table of a TOML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with path.open("wb") as f:
            tomli_w.dump({"options": options.to_dict()}, f)
        logger.info("Saved options to %s", path)
    except OSError as e:
        logger.error("Failed to save options to %s: %s", path, e)
        raise ConfigError(f"Failed to save options to {path}: {e}") from e


def load_options(path: Path) -> CompileOptions:
    """Load options from a TOML file.

    Missing keys get default values; unknown keys are ignored.
    """
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        raw = path.read_bytes()
        data = tomllib.loads(raw.decode("utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        logger.error("Failed to load options from %s: %s", path, e)
        raise ConfigError(f"Failed to load options from {path}: {e}") from e

    section = data.get("options", {})
    if not isinstance(section, dict):
        raise ConfigError(f"[options] in {path} must be a table")

    options = CompileOptions.from_mapping(section)
    logger.info("Loaded options from %s", path)
    return options
