"""Narrative script editor core: line classifier, edit history, range tags."""

__version__ = "0.1.0"

from scriptdesk.models import (
    Classification,
    EpisodeScope,
    LineKind,
    ParsedLine,
    TagAnnotation,
    ThreadScope,
)

__all__ = [
    "Classification",
    "EpisodeScope",
    "LineKind",
    "ParsedLine",
    "TagAnnotation",
    "ThreadScope",
    "__version__",
]
