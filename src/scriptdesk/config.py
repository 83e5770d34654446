"""Configuration loading for the script editor."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path

from scriptdesk.models import SpeakerPolicy
from scriptdesk.parser.classifier import DEFAULT_MAX_SPEAKER_LENGTH, ClassifierOptions
from scriptdesk.parser.normalize import load_banner_rules

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/editor_config.json")


@dataclass
class EditorConfig:
    """Editor configuration.

    Controls the database location and the classifier policy: speaker
    plausibility, the alternation fallback and extra banner lines.
    """

    db_path: Path = field(default_factory=lambda: Path("data/scripts.db"))
    speaker_policy: SpeakerPolicy = SpeakerPolicy.KNOWN
    alternation_fallback: bool = True
    max_speaker_length: int = DEFAULT_MAX_SPEAKER_LENGTH
    extra_banner_substrings: list[str] = field(default_factory=list)
    extra_banner_titles: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Coerce JSON scalars into their typed forms."""
        if isinstance(self.db_path, str):
            self.db_path = Path(self.db_path)
        if isinstance(self.speaker_policy, str):
            self.speaker_policy = SpeakerPolicy(self.speaker_policy)

    def classifier_options(self) -> ClassifierOptions:
        banners = load_banner_rules()
        if self.extra_banner_substrings or self.extra_banner_titles:
            banners = banners.extended(self.extra_banner_substrings, self.extra_banner_titles)
        return ClassifierOptions(
            speaker_policy=self.speaker_policy,
            alternation_fallback=self.alternation_fallback,
            max_speaker_length=self.max_speaker_length,
            banners=banners,
        )


def load_editor_config(config_path: Path | None = None) -> EditorConfig:
    """Load editor configuration from JSON, falling back to defaults.

    Reads from ``config/editor_config.json`` when *config_path* is ``None``.
    If the file does not exist, returns an ``EditorConfig`` with defaults.
    Keys that are not ``EditorConfig`` fields are ignored.

    Args:
        config_path: Optional explicit path to editor_config.json.

    Returns:
        EditorConfig populated from file.

    Raises:
        ValueError: If ``speaker_policy`` is not a known policy.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    data: dict = {}
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)
    else:
        logger.debug("No config at %s, using defaults", config_path)

    field_names = {f.name for f in fields(EditorConfig)}
    kwargs = {k: v for k, v in data.items() if k in field_names}
    ignored = sorted(set(data) - field_names)
    if ignored:
        logger.warning("Ignoring unknown config keys: %s", ", ".join(ignored))

    return EditorConfig(**kwargs)
