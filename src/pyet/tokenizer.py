"""Template tokenizer: splits template text into an ordered list of segments.

Whitespace control is applied while segmenting, so the assembler only ever
sees the literal text that should reach the output.
"""

from __future__ import annotations

import logging
import re
import textwrap
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pyet.types import Segment, SegmentKind

if TYPE_CHECKING:
    from pyet.grammar import Delimiters, TagMatch

__all__ = [
    "BLANK_FRAGMENTS",
    "IncludeDirective",
    "match_include_call",
    "match_include_directive",
    "normalize_content",
    "strip_lines",
    "tokenize",
]

logger = logging.getLogger(__name__)

# Fragments that would otherwise print an empty binding.
BLANK_FRAGMENTS = frozenset({"None", "null", "undefined"})

_LINE_BREAKS_RE = re.compile(r"[\r\n]+")
_RM_WHITESPACE_RE = re.compile(r"^\s+|\s+$", re.MULTILINE)
_TRAILING_HSPACE_RE = re.compile(r"[^\S\r\n]+\Z")
_LEADING_HSPACE_NEWLINE_RE = re.compile(r"\A[^\S\r\n]*(?:\r?\n)?")
_LEADING_WHITESPACE_RE = re.compile(r"\A\s*")
_NEWLINE_RE = re.compile(r"\r?\n")

_INCLUDE_DIRECTIVE_RE = re.compile(r"^\s*include\s+([^\s(]\S*)")
_INCLUDE_CALL_RE = re.compile(r"""^\s*include\s*\(\s*["'](.+?)["']""")


@dataclass(frozen=True)
class IncludeDirective:
    """An include found inside a fragment."""

    path: str
    is_call: bool = False


def match_include_directive(content: str) -> IncludeDirective | None:
    """Match the statement form ``include <path>``."""
    m = _INCLUDE_DIRECTIVE_RE.match(content)
    if m is None:
        return None
    return IncludeDirective(path=m.group(1))


def match_include_call(content: str) -> IncludeDirective | None:
    """Match the call form ``include("<path>")``."""
    m = _INCLUDE_CALL_RE.match(content)
    if m is None:
        return None
    return IncludeDirective(path=m.group(1), is_call=True)


def normalize_content(content: str) -> str:
    """Replace a fragment that only names an empty binding with ``''``."""
    if content.strip() in BLANK_FRAGMENTS:
        return "''"
    return content


def strip_lines(template: str) -> str:
    """Strip every line of leading/trailing whitespace and drop blank lines."""
    return _RM_WHITESPACE_RE.sub("", _LINE_BREAKS_RE.sub("\n", template))


def _strip_before(text: str) -> str:
    return _TRAILING_HSPACE_RE.sub("", text)


def _strip_after(text: str) -> str:
    return _LEADING_HSPACE_NEWLINE_RE.sub("", text, count=1)


def _strip_newline_after(text: str) -> str:
    """Drop the first newline within the whitespace run that starts ``text``."""
    run = _LEADING_WHITESPACE_RE.match(text)
    head = run.group(0) if run else ""
    return _NEWLINE_RE.sub("", head, count=1) + text[len(head) :]


def _fragment_kind(open_tag: str, delimiters: Delimiters) -> SegmentKind:
    if open_tag == delimiters.escaped:
        return SegmentKind.ESCAPED
    if open_tag == delimiters.raw:
        return SegmentKind.RAW
    if open_tag == delimiters.comment:
        return SegmentKind.COMMENT
    return SegmentKind.SCRIPTLET


def _split_literal(text: str, line: int, delimiters: Delimiters) -> list[Segment]:
    """Split literal text on the doubled-delimiter escapes."""
    segments: list[Segment] = []
    pos = 0
    for m in delimiters.literal_pattern.finditer(text):
        if m.start() > pos:
            chunk = text[pos : m.start()]
            segments.append(Segment(SegmentKind.LITERAL, chunk, line))
            line += chunk.count("\n")
        segments.append(
            Segment(
                SegmentKind.LITERAL_DELIMITER,
                delimiters.unescape_literal(m.group(0)),
                line,
            )
        )
        pos = m.end()
    if pos < len(text):
        segments.append(Segment(SegmentKind.LITERAL, text[pos:], line))
    return segments


def tokenize(
    template: str,
    delimiters: Delimiters,
    *,
    rm_whitespace: bool = False,
) -> list[Segment]:
    """Segment ``template`` into literal text and fragments.

    Args:
        template: Template source text.
        delimiters: Tag grammar to scan with.
        rm_whitespace: Strip leading/trailing whitespace from every line
            (and drop blank lines) before scanning.

    Returns:
        Segments in textual order. Literal segments carry the text that
        remains after whitespace control; comment segments are kept so the
        caller can see them but never produce output.
    """
    if rm_whitespace:
        template = strip_lines(template)

    tags = delimiters.find_tags(template)

    # Literal spans between tags, rewritten by the tags on either side.
    spans: list[str] = []
    pos = 0
    for tag in tags:
        spans.append(template[pos : tag.start])
        pos = tag.end
    spans.append(template[pos:])

    for i, tag in enumerate(tags):
        if tag.open_tag == delimiters.whitespace_slurping_start:
            spans[i] = _strip_before(spans[i])
        if tag.close_tag == delimiters.whitespace_slurping_end or rm_whitespace:
            spans[i + 1] = _strip_after(spans[i + 1])
        elif tag.close_tag == delimiters.newline_slurping_end:
            spans[i + 1] = _strip_newline_after(spans[i + 1])

    segments: list[Segment] = []
    span_starts = [0] + [tag.end for tag in tags]
    for i, span in enumerate(spans):
        if span:
            # Line of the first character that survived whitespace control.
            original_start = span_starts[i]
            line = template.count("\n", 0, original_start) + 1
            segments.extend(_split_literal(span, line, delimiters))
        if i < len(tags):
            segments.append(_make_fragment(template, tags[i], delimiters))

    logger.debug("Tokenized template into %d segment(s)", len(segments))
    return segments


def _make_fragment(template: str, tag: TagMatch, delimiters: Delimiters) -> Segment:
    return Segment(
        kind=_fragment_kind(tag.open_tag, delimiters),
        text=_fragment_text(template, tag),
        line=template.count("\n", 0, tag.start) + 1,
        open_tag=tag.open_tag,
        close_tag=tag.close_tag,
    )


def _fragment_text(template: str, tag: TagMatch) -> str:
    """Trim fragment content, keeping the relative indentation of multi-line code.

    The first code line is re-indented to the column it sits at in the
    template before dedenting, so a block written across several lines keeps
    its shape whether or not it starts on the tag's own line.
    """
    content = tag.content.strip()
    if "\n" not in content:
        return content
    content_start = tag.start + len(tag.open_tag)
    content_start += len(tag.content) - len(tag.content.lstrip())
    column = content_start - (template.rfind("\n", 0, content_start) + 1)
    return textwrap.dedent(" " * column + content)
