"""Tests for the line classifier: speaker pairing, rules, fallback and policies."""

from __future__ import annotations

import pytest

from scriptdesk.exceptions import EmptyResultError
from scriptdesk.models import Classification, LineKind, ParsedLine, SpeakerPolicy
from scriptdesk.parser.classifier import (
    ClassifierInputs,
    ClassifierOptions,
    classify,
    is_plausible_speaker,
    looks_like_speaker_name,
    require_lines,
    serialize_lines,
)
from scriptdesk.parser.normalize import BannerRules


def dialogue(speaker: str, content: str, rule: Classification | None = None) -> ParsedLine:
    return ParsedLine(
        kind=LineKind.DIALOGUE,
        content=content,
        source_line=speaker,
        speaker=speaker,
        source_rule=rule,
    )


def direction(content: str, rule: Classification | None = None) -> ParsedLine:
    return ParsedLine(
        kind=LineKind.DIRECTION, content=content, source_line=content, source_rule=rule
    )


NO_FALLBACK = ClassifierOptions(alternation_fallback=False)


# ---------------------------------------------------------------------------
# Reference transcripts
# ---------------------------------------------------------------------------


class TestReferenceTranscripts:
    def test_banner_title_between_pairs_is_dropped(self):
        parsed = classify(
            "アリス\nこんにちは\n機能一覧\nボブ\nやあ",
            blocked_terms=[],
            line_rules={},
            known_speakers={"アリス", "ボブ"},
        )
        assert parsed == [dialogue("アリス", "こんにちは"), dialogue("ボブ", "やあ")]

    def test_direction_rule_before_dialogue(self):
        rules = {"効果音: ドア": Classification.DIRECTION}
        parsed = classify(
            "効果音: ドア\nアリス\nこんにちは",
            blocked_terms=[],
            line_rules=rules,
            known_speakers={"アリス"},
        )
        assert parsed == [
            direction("効果音: ドア", Classification.DIRECTION),
            dialogue("アリス", "こんにちは"),
        ]

    def test_export_header_dropped(self):
        parsed = classify(
            "Sekai Viewer\nストーリーリーダー 第1話\nアリス\nこんにちは",
            [],
            {},
            {"アリス"},
        )
        assert parsed == [dialogue("アリス", "こんにちは")]

    def test_dialogue_matching_generic_labels_is_kept(self):
        parsed = classify(
            "アリス\nメニュー\nボブ\nStory Reader",
            [],
            {},
            {"アリス", "ボブ"},
        )
        assert parsed == [dialogue("アリス", "メニュー"), dialogue("ボブ", "Story Reader")]

    def test_line_numbers_recorded(self):
        parsed = classify("\nアリス\n\nこんにちは\n雨が降る", [], {}, {"アリス"}, options=NO_FALLBACK)
        assert parsed[0].line_numbers == (1, 3)
        assert parsed[1].line_numbers == (4,)


# ---------------------------------------------------------------------------
# Rules and speakers
# ---------------------------------------------------------------------------


class TestRules:
    def test_location_rule_emits_location(self):
        rules = {"教室": Classification.LOCATION}
        parsed = classify("教室\nアリス\nおはよう", [], rules, {"アリス"})
        assert parsed[0].kind is LineKind.LOCATION
        assert parsed[0].source_rule is Classification.LOCATION
        assert parsed[1] == dialogue("アリス", "おはよう")

    def test_direction_rule_beats_known_speaker(self):
        rules = {"アリス": Classification.DIRECTION}
        parsed = classify("アリス\nこんにちは", [], rules, {"アリス"}, options=NO_FALLBACK)
        assert parsed == [direction("アリス", Classification.DIRECTION), direction("こんにちは")]

    def test_speaker_rule_makes_unknown_line_a_speaker(self):
        rules = {"謎の声": Classification.SPEAKER}
        parsed = classify("謎の声\n誰だ？", [], rules, set(), options=NO_FALLBACK)
        assert parsed == [dialogue("謎の声", "誰だ？", Classification.SPEAKER)]

    def test_ruled_next_line_is_never_dialogue(self):
        rules = {"暗転": Classification.DIRECTION}
        parsed = classify("アリス\n暗転", [], rules, {"アリス"})
        assert parsed == [direction("アリス"), direction("暗転", Classification.DIRECTION)]

    def test_line_before_speaker_is_direction(self):
        parsed = classify("風が吹く\nアリス\n寒いね", [], {}, {"アリス"})
        assert parsed == [direction("風が吹く"), dialogue("アリス", "寒いね")]

    def test_speaker_at_end_of_input_is_direction(self):
        parsed = classify("アリス\nこんにちは\nボブ", [], {}, {"アリス", "ボブ"})
        assert parsed == [dialogue("アリス", "こんにちは"), direction("ボブ")]

    def test_blocked_terms_removed(self):
        parsed = classify("スキップ\nアリス\nこんにちは", ["スキップ"], {}, {"アリス"})
        assert parsed == [dialogue("アリス", "こんにちは")]

    def test_blocked_term_must_match_whole_line(self):
        parsed = classify("スキップする\nアリス\nこんにちは", ["スキップ"], {}, {"アリス"})
        assert parsed[0] == direction("スキップする")


class TestAlternationFallback:
    def test_fallback_pairs_unknown_lines(self):
        parsed = classify("誰か\n何か言う", [], {}, set())
        assert parsed == [dialogue("誰か", "何か言う")]

    def test_fallback_disabled_emits_directions(self):
        parsed = classify("誰か\n何か言う", [], {}, set(), options=NO_FALLBACK)
        assert parsed == [direction("誰か"), direction("何か言う")]

    def test_single_line_is_direction(self):
        assert classify("静寂", [], {}, set()) == [direction("静寂")]


class TestSpeakerPolicy:
    def test_heuristic_accepts_short_name(self):
        options = ClassifierOptions(
            speaker_policy=SpeakerPolicy.HEURISTIC, alternation_fallback=False
        )
        parsed = classify("カイト\nよし、行こう。", [], {}, set(), options=options)
        assert parsed == [dialogue("カイト", "よし、行こう。")]

    def test_known_policy_rejects_unknown_name(self):
        parsed = classify("カイト\nよし、行こう。", [], {}, set(), options=NO_FALLBACK)
        assert parsed == [direction("カイト"), direction("よし、行こう。")]

    @pytest.mark.parametrize(
        "line,expected",
        [
            ("アリス", True),
            ("Alice", True),
            ("", False),
            ("12", False),
            ("二人で歩く。", False),
            ("Alice Smith", False),
            ("あ" * 17, False),
        ],
    )
    def test_looks_like_speaker_name(self, line, expected):
        assert looks_like_speaker_name(line) is expected

    def test_rule_overrides_policy(self):
        rules = {"アリス": Classification.LOCATION}
        options = ClassifierOptions(speaker_policy=SpeakerPolicy.HEURISTIC)
        assert not is_plausible_speaker("アリス", rules, {"アリス"}, options)


# ---------------------------------------------------------------------------
# Results and serialization
# ---------------------------------------------------------------------------


class TestResults:
    def test_empty_input_yields_empty_list(self):
        assert classify("", [], {}, set()) == []

    def test_require_lines_raises_on_empty(self):
        with pytest.raises(EmptyResultError, match="nothing to parse"):
            require_lines(classify("機能一覧", [], {}, set()))

    def test_require_lines_passes_through(self):
        parsed = [direction("静寂")]
        assert require_lines(parsed) is parsed

    def test_serialize_then_classify_is_stable(self):
        rules = {"教室": Classification.LOCATION}
        inputs = ClassifierInputs(
            line_rules=rules, known_speakers=frozenset({"アリス", "ボブ"})
        )
        first = inputs.classify("教室\nアリス\nおはよう\nボブ\nおはよう！\n鐘が鳴る", NO_FALLBACK)
        second = inputs.classify(serialize_lines(first), NO_FALLBACK)
        assert second == first

    def test_serialize_format(self):
        text = serialize_lines([direction("静寂"), dialogue("アリス", "ねえ")])
        assert text == "静寂\n\nアリス\nねえ"

    def test_custom_banners_option(self):
        options = ClassifierOptions(banners=BannerRules(titles=frozenset({"目次"})))
        parsed = classify("目次\n機能一覧", [], {}, set(), options=options)
        assert parsed == [direction("機能一覧")]

    def test_to_dict(self):
        d = dialogue("アリス", "ねえ").to_dict()
        assert d["kind"] == "dialogue"
        assert d["speaker"] == "アリス"
        assert d["source_rule"] is None
