"""Script-line classification engine.

Transcripts from the story viewer alternate "speaker name" / "line of
dialogue" with occasional solitary stage-direction or location captions.
``classify`` walks the normalized lines with a cursor, consuming one line
(a direction or location caption) or two lines (a speaker/dialogue pair)
per step.

Decisions are layered:

1. Explicit line rules. A ``direction`` or ``location`` rule always wins
   and the line is never used as a speaker.
2. Speaker plausibility: an explicit ``speaker`` rule or membership in the
   known-speaker set. Under ``SpeakerPolicy.HEURISTIC`` a short,
   punctuation-free, whitespace-free, non-numeric line also qualifies.
3. Alternation fallback: with no recognizable speaker, two remaining lines
   are still treated as a caption/line pair unless disabled.

The function is pure; overrides arrive by parameter.
"""

from __future__ import annotations

import logging
import unicodedata
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from scriptdesk.exceptions import EmptyResultError
from scriptdesk.models import Classification, LineKind, ParsedLine, SpeakerPolicy
from scriptdesk.parser.normalize import BannerRules, load_banner_rules, split_lines, strip_banners

logger = logging.getLogger(__name__)

_NON_SPEAKER_RULES = frozenset({Classification.DIRECTION, Classification.LOCATION})

_KIND_FOR_RULE = {
    Classification.DIRECTION: LineKind.DIRECTION,
    Classification.LOCATION: LineKind.LOCATION,
}

DEFAULT_MAX_SPEAKER_LENGTH = 16


@dataclass(frozen=True)
class ClassifierOptions:
    """Policy knobs for ``classify``.

    ``banners`` of None means the bundled ``banners.yml``.
    """

    speaker_policy: SpeakerPolicy = SpeakerPolicy.KNOWN
    alternation_fallback: bool = True
    max_speaker_length: int = DEFAULT_MAX_SPEAKER_LENGTH
    banners: BannerRules | None = None


@dataclass(frozen=True)
class ClassifierInputs:
    """Snapshot of the override dictionaries handed to ``classify``."""

    blocked_terms: frozenset[str] = frozenset()
    line_rules: Mapping[str, Classification] = field(default_factory=dict)
    known_speakers: frozenset[str] = frozenset()

    def classify(self, raw_text: str, options: ClassifierOptions | None = None) -> list[ParsedLine]:
        return classify(
            raw_text,
            self.blocked_terms,
            self.line_rules,
            self.known_speakers,
            options=options,
        )


def looks_like_speaker_name(line: str, max_length: int = DEFAULT_MAX_SPEAKER_LENGTH) -> bool:
    """Heuristic speaker test: short, no punctuation, no whitespace, not a number."""
    if not line or len(line) > max_length:
        return False
    if line.isnumeric():
        return False
    for ch in line:
        if ch.isspace():
            return False
        if unicodedata.category(ch)[0] in ("P", "S"):
            return False
    return True


def is_plausible_speaker(
    line: str,
    line_rules: Mapping[str, Classification],
    known_speakers: Iterable[str],
    options: ClassifierOptions | None = None,
) -> bool:
    """Return True when *line* may be used as a speaker label."""
    rule = line_rules.get(line)
    if rule is Classification.SPEAKER:
        return True
    if rule in _NON_SPEAKER_RULES:
        return False
    if line in known_speakers:
        return True
    options = options or ClassifierOptions()
    if options.speaker_policy is SpeakerPolicy.HEURISTIC:
        return looks_like_speaker_name(line, options.max_speaker_length)
    return False


def classify(
    raw_text: str,
    blocked_terms: Iterable[str],
    line_rules: Mapping[str, Classification],
    known_speakers: Iterable[str],
    *,
    options: ClassifierOptions | None = None,
) -> list[ParsedLine]:
    """Segment *raw_text* into typed lines.

    Args:
        raw_text: Pasted transcript.
        blocked_terms: Lines equal to any of these are dropped.
        line_rules: Exact line text -> forced classification.
        known_speakers: Names eligible as speaker labels.
        options: Speaker policy, alternation fallback and banner rules.

    Returns:
        ParsedLine list in input order. May be empty; see ``require_lines``.
    """
    options = options or ClassifierOptions()
    blocked = set(blocked_terms)
    speakers = frozenset(known_speakers)
    banners = options.banners or load_banner_rules()

    normalized = split_lines(raw_text)
    lines = [
        (number, text)
        for number, text in strip_banners(normalized, banners)
        if text not in blocked
    ]

    def plausible(text: str) -> bool:
        return is_plausible_speaker(text, line_rules, speakers, options)

    parsed: list[ParsedLine] = []
    i = 0
    while i < len(lines):
        number, text = lines[i]
        rule = line_rules.get(text)

        if rule in _NON_SPEAKER_RULES:
            parsed.append(
                ParsedLine(
                    kind=_KIND_FOR_RULE[rule],
                    content=text,
                    source_line=text,
                    source_rule=rule,
                    line_numbers=(number,),
                )
            )
            i += 1
            continue

        nxt = lines[i + 1] if i + 1 < len(lines) else None
        next_usable = nxt is not None and line_rules.get(nxt[1]) not in _NON_SPEAKER_RULES

        if next_usable and plausible(text):
            pair = True
        elif nxt is not None and plausible(nxt[1]):
            # Precedes a speaker cue, so it cannot be dialogue content.
            pair = False
        else:
            pair = next_usable and options.alternation_fallback

        if pair:
            next_number, next_text = nxt
            parsed.append(
                ParsedLine(
                    kind=LineKind.DIALOGUE,
                    content=next_text,
                    source_line=text,
                    speaker=text,
                    source_rule=rule,
                    line_numbers=(number, next_number),
                )
            )
            i += 2
        else:
            parsed.append(
                ParsedLine(
                    kind=LineKind.DIRECTION,
                    content=text,
                    source_line=text,
                    source_rule=rule,
                    line_numbers=(number,),
                )
            )
            i += 1

    logger.debug(
        "Classified %d input lines (%d after filtering) into %d parsed lines",
        len(normalized),
        len(lines),
        len(parsed),
    )
    return parsed


def require_lines(parsed: list[ParsedLine]) -> list[ParsedLine]:
    """Return *parsed* unchanged, raising EmptyResultError when it is empty."""
    if not parsed:
        raise EmptyResultError()
    return parsed


def serialize_lines(parsed: Iterable[ParsedLine]) -> str:
    """Reassemble parsed lines into canonical body text.

    Dialogue becomes ``speaker\\ncontent``; other kinds are the bare content.
    Blocks are separated by a blank line.
    """
    blocks = [
        f"{line.speaker}\n{line.content}" if line.is_dialogue else line.content
        for line in parsed
    ]
    return "\n\n".join(blocks)
