"""Tests for pyet.types module: segment data contracts."""

from __future__ import annotations

import dataclasses

import pytest

from pyet.types import Segment, SegmentKind


class TestSegment:
    def test_frozen(self):
        segment = Segment(SegmentKind.LITERAL, "text")
        with pytest.raises(dataclasses.FrozenInstanceError):
            segment.text = "changed"  # type: ignore[misc]

    def test_defaults(self):
        segment = Segment(SegmentKind.LITERAL, "text")
        assert segment.line == 1
        assert segment.open_tag == ""
        assert segment.close_tag == ""

    def test_literals_are_not_fragments(self):
        assert not Segment(SegmentKind.LITERAL, "a").is_fragment
        assert not Segment(SegmentKind.LITERAL_DELIMITER, "<%").is_fragment

    @pytest.mark.parametrize(
        "kind",
        [SegmentKind.ESCAPED, SegmentKind.RAW, SegmentKind.SCRIPTLET, SegmentKind.COMMENT],
    )
    def test_tags_are_fragments(self, kind: SegmentKind):
        assert Segment(kind, "x").is_fragment


class TestSegmentKind:
    def test_string_values(self):
        assert SegmentKind.ESCAPED == "escaped"
        assert SegmentKind("literal_delimiter") is SegmentKind.LITERAL_DELIMITER
