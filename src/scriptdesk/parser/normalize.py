"""Line normalization and export-banner filtering.

Transcripts pasted from a story viewer carry a one or two line header
(tool name, site URL) and sometimes menu labels from the page chrome.
``banners.yml`` lists both kinds:

- ``substrings``: case-insensitive fragments, checked against the first
  two non-empty lines only.
- ``titles``: exact labels, dropped anywhere in the paste.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

# Module-level cache of the bundled banner rules
_banner_cache: BannerRules | None = None

DEFAULT_BANNERS_PATH = Path(__file__).parent / "banners.yml"

# Number of leading lines the substring filter looks at
BANNER_HEAD_LINES = 2


@dataclass(frozen=True)
class BannerRules:
    substrings: tuple[str, ...] = ()
    titles: frozenset[str] = field(default_factory=frozenset)

    def extended(
        self, substrings: list[str] | None = None, titles: list[str] | None = None
    ) -> BannerRules:
        """Return a copy with additional substrings and titles."""
        return BannerRules(
            substrings=self.substrings + tuple(s.lower() for s in substrings or ()),
            titles=self.titles | frozenset(titles or ()),
        )

    def matches_head(self, line: str) -> bool:
        lowered = line.lower()
        return line in self.titles or any(s in lowered for s in self.substrings)

    def matches_anywhere(self, line: str) -> bool:
        return line in self.titles


def load_banner_rules(path: Path | None = None) -> BannerRules:
    """Load banner rules from YAML.

    Caches the result at module level when reading the bundled file.

    Args:
        path: Path to a banners YAML file. Defaults to the file
              co-located with this module.

    Returns:
        BannerRules with lowercased substrings.
    """
    global _banner_cache

    if _banner_cache is not None and path is None:
        return _banner_cache

    with open(path or DEFAULT_BANNERS_PATH, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    rules = BannerRules(
        substrings=tuple(str(s).lower() for s in raw.get("substrings") or ()),
        titles=frozenset(str(t) for t in raw.get("titles") or ()),
    )

    if path is None:
        _banner_cache = rules

    return rules


def split_lines(raw_text: str) -> list[tuple[int, str]]:
    """Split on any line ending, trim, and drop empty lines.

    Returns:
        ``(line_number, text)`` pairs; line numbers index the physical
        lines of *raw_text* so callers can edit the body in place.
    """
    numbered: list[tuple[int, str]] = []
    for number, raw in enumerate(raw_text.splitlines()):
        text = raw.strip()
        if text:
            numbered.append((number, text))
    return numbered


def strip_banners(
    lines: list[tuple[int, str]], rules: BannerRules
) -> list[tuple[int, str]]:
    """Drop export-tool header lines and viewer chrome labels."""
    kept: list[tuple[int, str]] = []
    for position, (number, text) in enumerate(lines):
        if position < BANNER_HEAD_LINES and rules.matches_head(text):
            continue
        if rules.matches_anywhere(text):
            continue
        kept.append((number, text))
    return kept
