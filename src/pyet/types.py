"""Compiler data contracts for pyet.

Frozen dataclasses that flow between compiler stages:
  str → list[Segment] → assembled source → Program
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

__all__ = [
    "Segment",
    "SegmentKind",
]


class SegmentKind(str, Enum):
    """Lexical kind of a template segment."""

    LITERAL = "literal"
    ESCAPED = "escaped"
    RAW = "raw"
    SCRIPTLET = "scriptlet"
    COMMENT = "comment"
    LITERAL_DELIMITER = "literal_delimiter"


@dataclass(frozen=True)
class Segment:
    """One lexical unit of a template, in textual order.

    ``open_tag`` and ``close_tag`` hold the delimiter sequences that bounded a
    fragment (e.g. ``"<%_"`` and ``"-%>"``); both are empty for literal text.
    ``line`` is the 1-based template line at which the segment begins.
    """

    kind: SegmentKind
    text: str
    line: int = 1
    open_tag: str = ""
    close_tag: str = ""

    @property
    def is_fragment(self) -> bool:
        return self.kind not in (SegmentKind.LITERAL, SegmentKind.LITERAL_DELIMITER)
