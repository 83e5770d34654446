"""Transcript parsing: normalization, classification and body transforms."""

from scriptdesk.parser.classifier import (
    ClassifierInputs,
    ClassifierOptions,
    classify,
    is_plausible_speaker,
    looks_like_speaker_name,
    require_lines,
    serialize_lines,
)
from scriptdesk.parser.normalize import BannerRules, load_banner_rules, split_lines

__all__ = [
    "BannerRules",
    "ClassifierInputs",
    "ClassifierOptions",
    "classify",
    "is_plausible_speaker",
    "load_banner_rules",
    "looks_like_speaker_name",
    "require_lines",
    "serialize_lines",
    "split_lines",
]
