"""Delimiter grammar and tag matcher construction.

Every tag sequence is derived from a single delimiter character ``D``
(``%`` by default)::

    <D=  escaped output       D>   plain close
    <D-  raw output           -D>  close, slurp the following newline
    <D#  comment              _D>  close, slurp following whitespace
    <D_  scriptlet, slurp preceding whitespace
    <D   scriptlet
    <DD  literal "<D"         DD>  literal "D>"
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass

from pyet.exceptions import ConfigError

__all__ = [
    "DEFAULT_DELIMITER",
    "Delimiters",
    "TagMatch",
]

DEFAULT_DELIMITER = "%"

# Opener suffix characters, in the order the tag pattern accepts them.
_OPEN_MODIFIERS = "=-_#"
_CLOSE_MODIFIERS = "-_"


@dataclass(frozen=True)
class TagMatch:
    """A tag located in template text."""

    start: int
    end: int
    open_tag: str
    content: str
    close_tag: str


@dataclass(frozen=True)
class Delimiters:
    """The tag sequences for one delimiter character."""

    delimiter: str = DEFAULT_DELIMITER

    def __post_init__(self) -> None:
        if len(self.delimiter) != 1 or self.delimiter.isspace():
            raise ConfigError(
                f"Delimiter must be a single non-whitespace character, got {self.delimiter!r}"
            )

    @property
    def escaped(self) -> str:
        return f"<{self.delimiter}="

    @property
    def raw(self) -> str:
        return f"<{self.delimiter}-"

    @property
    def comment(self) -> str:
        return f"<{self.delimiter}#"

    @property
    def whitespace_slurping_start(self) -> str:
        return f"<{self.delimiter}_"

    @property
    def scriptlet(self) -> str:
        return f"<{self.delimiter}"

    @property
    def plain_end(self) -> str:
        return f"{self.delimiter}>"

    @property
    def newline_slurping_end(self) -> str:
        return f"-{self.delimiter}>"

    @property
    def whitespace_slurping_end(self) -> str:
        return f"_{self.delimiter}>"

    @property
    def literal_start(self) -> str:
        return f"<{self.delimiter}{self.delimiter}"

    @property
    def literal_end(self) -> str:
        return f"{self.delimiter}{self.delimiter}>"

    @property
    def tag_pattern(self) -> re.Pattern[str]:
        """Matcher for a whole tag: opener, trimmed content, closer."""
        return _tag_pattern(self.delimiter)

    @property
    def literal_pattern(self) -> re.Pattern[str]:
        """Matcher for the doubled-delimiter escape pair."""
        return _literal_pattern(self.delimiter)

    def find_tags(self, text: str) -> list[TagMatch]:
        """Locate every tag in ``text``, left to right.

        ``content`` is returned untrimmed.

        An opener with no matching closer is not a tag and stays literal text.
        """
        return [
            TagMatch(
                start=m.start(),
                end=m.end(),
                open_tag=f"<{self.delimiter}{m.group('open')}",
                content=m.group("content"),
                close_tag=f"{m.group('close')}{self.delimiter}>",
            )
            for m in self.tag_pattern.finditer(text)
        ]

    def unescape_literal(self, match: str) -> str:
        """Map ``<DD`` to ``<D`` and ``DD>`` to ``D>``."""
        return match[:-1] if match.startswith("<") else match[1:]


@functools.lru_cache(maxsize=32)
def _tag_pattern(delimiter: str) -> re.Pattern[str]:
    d = re.escape(delimiter)
    return re.compile(
        rf"<{d}(?!{d})"
        rf"(?P<open>[{re.escape(_OPEN_MODIFIERS)}]?)"
        r"(?P<content>.*?)"
        rf"(?P<close>[{re.escape(_CLOSE_MODIFIERS)}]?){d}>",
        re.DOTALL,
    )


@functools.lru_cache(maxsize=32)
def _literal_pattern(delimiter: str) -> re.Pattern[str]:
    d = re.escape(delimiter)
    return re.compile(rf"<{d}{d}|{d}{d}>")
