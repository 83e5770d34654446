"""Data models and enums for the script editor."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Union


class Classification(str, Enum):
    """Literal-line override stored in parser_line_classifications."""

    SPEAKER = "speaker"
    DIRECTION = "direction"
    LOCATION = "location"


class LineKind(str, Enum):
    """Kind of a classified output line."""

    DIALOGUE = "dialogue"
    DIRECTION = "direction"
    LOCATION = "location"


class EntryKind(str, Enum):
    """Kind of a persisted entry row."""

    UTTERANCE = "utterance"
    STAGE = "stage"
    NOTE = "note"


class SpeakerPolicy(str, Enum):
    """How the classifier decides a line may be a speaker label.

    KNOWN accepts explicit speaker rules and known speaker names only.
    HEURISTIC additionally accepts short, punctuation-free, whitespace-free,
    non-numeric lines.
    """

    KNOWN = "known"
    HEURISTIC = "heuristic"


@dataclass(frozen=True)
class ParsedLine:
    """One typed output unit of the classifier.

    ``source_line`` is the raw line that produced ``content`` for
    non-dialogue kinds, or ``speaker`` for dialogue. ``line_numbers`` are
    the physical body lines consumed and do not take part in equality.
    """

    kind: LineKind
    content: str
    source_line: str
    speaker: str = ""
    source_rule: Classification | None = None
    line_numbers: tuple[int, ...] = field(default=(), compare=False)

    @property
    def is_dialogue(self) -> bool:
        return self.kind is LineKind.DIALOGUE

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary with enum values as strings."""
        d = asdict(self)
        d["kind"] = self.kind.value
        d["source_rule"] = self.source_rule.value if self.source_rule else None
        d["line_numbers"] = list(self.line_numbers)
        return d


@dataclass(frozen=True)
class LineRule:
    line_text: str
    classification: Classification


@dataclass(frozen=True)
class ThreadScope:
    """A sub-item (thread) body."""

    thread_id: str

    @property
    def target_id(self) -> str:
        return self.thread_id

    @property
    def label(self) -> str:
        return f"thread:{self.thread_id}"


@dataclass(frozen=True)
class EpisodeScope:
    """An episode body inside a sub-item."""

    episode_id: str

    @property
    def target_id(self) -> str:
        return self.episode_id

    @property
    def label(self) -> str:
        return f"episode:{self.episode_id}"


# The open body buffer and the owner of an annotation are the same thing.
BodyTarget = Union[ThreadScope, EpisodeScope]


@dataclass(frozen=True)
class TagAnnotation:
    """A tag attached to the half-open range [start_offset, end_offset)."""

    id: str
    tag_id: str
    scope: BodyTarget
    start_offset: int
    end_offset: int
    selected_text: str

    @property
    def span(self) -> tuple[int, int]:
        return (self.start_offset, self.end_offset)

    def overlaps(self, start: int, end: int) -> bool:
        return self.start_offset < end and start < self.end_offset


@dataclass(frozen=True)
class Segment:
    """A contiguous slice of a rendered body.

    Plain segments have no annotations; a tagged segment carries every
    annotation sharing its exact range.
    """

    start: int
    end: int
    text: str
    annotations: tuple[TagAnnotation, ...] = ()

    @property
    def is_tagged(self) -> bool:
        return bool(self.annotations)

    @property
    def tag_ids(self) -> list[str]:
        return [a.tag_id for a in self.annotations]


@dataclass
class ThreadRecord:
    """A sub-item row. Optional columns default when absent from the store."""

    id: str
    title: str
    body: str = ""
    node_id: str | None = None
    has_episodes: bool = False
    tags: list[str] = field(default_factory=list)
    sort_order: int = 0
    created_at: str | None = None


@dataclass
class EpisodeRecord:
    """An episode row belonging to a sub-item."""

    id: str
    thread_id: str
    title: str
    body: str = ""
    label: str | None = None
    tags: list[str] = field(default_factory=list)
    sort_order: int = 0
    created_at: str | None = None


@dataclass
class TagPreset:
    id: str
    name: str
    sort_order: int = 0


@dataclass
class SpeakerProfile:
    id: str
    name: str
    icon_url: str | None = None
    speech_balloon_id: str | None = None


@dataclass
class Entry:
    """A parsed line persisted against a body target."""

    kind: EntryKind
    content: str
    speaker_name: str | None = None
    position: int = 0
    id: str | None = None

    @classmethod
    def from_parsed(cls, line: ParsedLine, position: int) -> Entry:
        """Dialogue becomes an utterance, a location caption a note, anything else stage."""
        if line.is_dialogue:
            return cls(EntryKind.UTTERANCE, line.content, line.speaker, position)
        if line.kind is LineKind.LOCATION:
            return cls(EntryKind.NOTE, line.content, None, position)
        return cls(EntryKind.STAGE, line.content, None, position)
