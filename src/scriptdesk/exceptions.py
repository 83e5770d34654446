"""Exception types raised by the classifier, annotator and stores."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from scriptdesk.models import TagAnnotation


class ScriptdeskError(Exception):
    """Base class for every error the editor reports to the user."""


class EmptyResultError(ScriptdeskError):
    """Classification produced zero lines."""

    def __init__(self, message: str = "nothing to parse") -> None:
        super().__init__(message)


class ConflictError(ScriptdeskError):
    """A new annotation partially overlaps an existing one in the same scope."""

    def __init__(self, start: int, end: int, existing: TagAnnotation) -> None:
        self.start = start
        self.end = end
        self.existing = existing
        super().__init__(
            f"Range {start}-{end} overlaps tag {existing.tag_id!r} at "
            f"{existing.start_offset}-{existing.end_offset} "
            f"({existing.selected_text!r})"
        )


class PersistenceError(ScriptdeskError):
    """A backing-store call failed. The message is the driver's, verbatim."""


class InvalidRangeError(ScriptdeskError, ValueError):
    """Annotation offsets fall outside the current body."""


class BlankSelectionError(ScriptdeskError, ValueError):
    """The selected span is whitespace-only."""
