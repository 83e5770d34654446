"""Structural body transforms.

Each function takes the current body text and returns a new body; none of
them touch the store. The editor wraps the before/after pair into a
``ReplaceBodyDraft`` history action.

Line numbers refer to ``body.splitlines()``, the same numbering carried by
``ParsedLine.line_numbers``. Rewritten bodies use ``\\n`` line endings.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from scriptdesk.models import ParsedLine
from scriptdesk.parser.classifier import serialize_lines

# "Name: text" / "Name：text" (ASCII or full-width colon)
_COLON_PREFIX_RE = re.compile(r"^(?P<name>[^:：]{1,32}?)\s*[:：]\s*(?P<text>.+)$")

# Name「text」
_QUOTE_PREFIX_RE = re.compile(r"^(?P<name>[^「」]{1,32}?)\s*「(?P<text>.*)」$")


def delete_lines(body: str, line_numbers: Iterable[int]) -> str:
    """Remove the given physical lines from *body*."""
    doomed = set(line_numbers)
    kept = [line for number, line in enumerate(body.splitlines()) if number not in doomed]
    return "\n".join(kept)


def split_line(body: str, line_number: int, offset: int) -> str:
    """Break one physical line in two at character *offset*.

    Both halves are stripped. Used to separate a speaker name that was
    pasted on the same line as its dialogue.

    Raises:
        IndexError: If *line_number* is not a line of *body*.
        ValueError: If *offset* does not fall strictly inside the line's text.
    """
    lines = body.splitlines()
    if not 0 <= line_number < len(lines):
        raise IndexError(f"Line {line_number} is out of range (body has {len(lines)} lines)")

    line = lines[line_number]
    head, tail = line[:offset].strip(), line[offset:].strip()
    if not 0 < offset < len(line) or not head or not tail:
        raise ValueError(f"Offset {offset} does not split line {line_number}: {line!r}")

    lines[line_number : line_number + 1] = [head, tail]
    return "\n".join(lines)


def match_speaker_prefix(line: str, known_speakers: Iterable[str]) -> tuple[str, str] | None:
    """Return ``(speaker, text)`` when *line* starts with a known speaker cue."""
    stripped = line.strip()
    speakers = set(known_speakers)
    for pattern in (_QUOTE_PREFIX_RE, _COLON_PREFIX_RE):
        m = pattern.match(stripped)
        if m and m.group("name").strip() in speakers and m.group("text").strip():
            return m.group("name").strip(), m.group("text").strip()
    return None


def split_speaker_prefixes(body: str, known_speakers: Iterable[str]) -> str:
    """Split every ``Name: text`` style line whose name is a known speaker.

    Lines with unknown names are left alone, so captions such as
    ``効果音: ドア`` survive unless the name is in the speaker directory.
    """
    speakers = set(known_speakers)
    out: list[str] = []
    for line in body.splitlines():
        match = match_speaker_prefix(line, speakers)
        if match:
            out.extend(match)
        else:
            out.append(line)
    return "\n".join(out)


def reformat_body(parsed: Iterable[ParsedLine]) -> str:
    """Rewrite a body in canonical form from its parsed lines."""
    return serialize_lines(parsed)
