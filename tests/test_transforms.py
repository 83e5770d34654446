"""Tests for structural body transforms."""

from __future__ import annotations

import pytest

from scriptdesk.models import LineKind, ParsedLine
from scriptdesk.parser.transforms import (
    delete_lines,
    match_speaker_prefix,
    reformat_body,
    split_line,
    split_speaker_prefixes,
)


class TestDeleteLines:
    def test_removes_listed_lines(self):
        assert delete_lines("a\nb\nc\nd", (1, 2)) == "a\nd"

    def test_unknown_numbers_ignored(self):
        assert delete_lines("a\nb", [5]) == "a\nb"


class TestSplitLine:
    def test_splits_and_strips(self):
        assert split_line("アリス こんにちは\n次", 0, 3) == "アリス\nこんにちは\n次"

    def test_line_out_of_range(self):
        with pytest.raises(IndexError):
            split_line("a", 3, 1)

    @pytest.mark.parametrize("offset", [0, 5, 99])
    def test_offset_must_fall_inside(self, offset):
        with pytest.raises(ValueError):
            split_line("hello", 0, offset)

    def test_whitespace_half_rejected(self):
        with pytest.raises(ValueError):
            split_line("ab   ", 0, 3)


class TestSpeakerPrefixes:
    KNOWN = {"アリス", "Bob"}

    def test_ascii_colon(self):
        assert match_speaker_prefix("Bob: hi there", self.KNOWN) == ("Bob", "hi there")

    def test_full_width_colon(self):
        assert match_speaker_prefix("アリス：こんにちは", self.KNOWN) == ("アリス", "こんにちは")

    def test_quote_brackets(self):
        assert match_speaker_prefix("アリス「行こう」", self.KNOWN) == ("アリス", "行こう")

    def test_unknown_name_left_alone(self):
        assert match_speaker_prefix("効果音: ドア", self.KNOWN) is None

    def test_empty_text_left_alone(self):
        assert match_speaker_prefix("アリス「」", self.KNOWN) is None

    def test_split_body(self):
        body = "Bob: hi\n効果音: ドア\nアリス：うん"
        assert split_speaker_prefixes(body, self.KNOWN) == "Bob\nhi\n効果音: ドア\nアリス\nうん"


class TestReformat:
    def test_canonical_blocks(self):
        parsed = [
            ParsedLine(LineKind.LOCATION, "教室", "教室"),
            ParsedLine(LineKind.DIALOGUE, "おはよう", "アリス", speaker="アリス"),
        ]
        assert reformat_body(parsed) == "教室\n\nアリス\nおはよう"
