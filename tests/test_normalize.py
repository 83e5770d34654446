"""Tests for line splitting and export-banner filtering."""

from __future__ import annotations

from scriptdesk.parser.normalize import (
    BannerRules,
    load_banner_rules,
    split_lines,
    strip_banners,
)


class TestSplitLines:
    def test_mixed_line_endings(self):
        assert split_lines("a\r\n\n  b  \rc") == [(0, "a"), (2, "b"), (3, "c")]

    def test_blank_only_input(self):
        assert split_lines("  \n\t\n") == []

    def test_empty_input(self):
        assert split_lines("") == []

    def test_line_numbers_index_physical_lines(self):
        lines = split_lines("\n\nアリス\n\nこんにちは")
        assert lines == [(2, "アリス"), (4, "こんにちは")]


class TestBannerRules:
    def test_bundled_rules_loaded(self):
        rules = load_banner_rules()
        assert "機能一覧" in rules.titles
        assert "sekai viewer" in rules.substrings

    def test_bundled_rules_cached(self):
        assert load_banner_rules() is load_banner_rules()

    def test_custom_file(self, tmp_path):
        path = tmp_path / "banners.yml"
        path.write_text("substrings:\n  - My Export\ntitles:\n  - Index\n", encoding="utf-8")
        rules = load_banner_rules(path)
        assert rules.substrings == ("my export",)
        assert rules.titles == frozenset({"Index"})

    def test_empty_file(self, tmp_path):
        path = tmp_path / "banners.yml"
        path.write_text("", encoding="utf-8")
        assert load_banner_rules(path) == BannerRules()

    def test_extended_lowercases_substrings(self):
        rules = BannerRules().extended(["Reader APP"], ["目次"])
        assert rules.matches_head("reader app v2")
        assert rules.matches_anywhere("目次")

    def test_head_match_is_case_insensitive(self):
        rules = BannerRules(substrings=("sekai viewer",))
        assert rules.matches_head("Sekai Viewer - Main Story")
        assert not rules.matches_anywhere("Sekai Viewer - Main Story")


class TestStripBanners:
    def test_substring_only_in_first_two_lines(self):
        rules = BannerRules(substrings=("sekai viewer",))
        lines = [(0, "Sekai Viewer"), (1, "アリス"), (2, "sekai viewer")]
        assert strip_banners(lines, rules) == [(1, "アリス"), (2, "sekai viewer")]

    def test_titles_dropped_anywhere(self):
        rules = BannerRules(titles=frozenset({"機能一覧"}))
        lines = [(0, "アリス"), (1, "こんにちは"), (2, "機能一覧"), (3, "ボブ")]
        assert strip_banners(lines, rules) == [(0, "アリス"), (1, "こんにちは"), (3, "ボブ")]

    def test_no_rules_keeps_everything(self):
        lines = [(0, "a"), (1, "b")]
        assert strip_banners(lines, BannerRules()) == lines
