"""Tag annotations over exact character ranges of a rendered body.

Annotations are ``[start, end)`` ranges into the body string as it was
when they were created. Ranges within one scope never partially overlap;
several tags may share one identical range, which renders as a single
highlighted segment carrying one chip per tag.

Bodies are not append-only, so offsets can drift. An annotation whose end
lies past the current body is stale: it is left out of rendering but stays
in the store until the user deletes it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from scriptdesk.exceptions import BlankSelectionError, ConflictError, InvalidRangeError
from scriptdesk.models import BodyTarget, Segment, TagAnnotation
from scriptdesk.store.base import ScriptStore

logger = logging.getLogger(__name__)


def find_conflict(
    annotations: Iterable[TagAnnotation], start: int, end: int, tag_id: str | None = None
) -> TagAnnotation | None:
    """Return the first annotation that blocks a new ``[start, end)`` range.

    Identical ranges do not block each other, except when *tag_id* is
    already attached to that exact range.
    """
    for annotation in annotations:
        if annotation.span == (start, end):
            if tag_id is not None and annotation.tag_id == tag_id:
                return annotation
            continue
        if annotation.overlaps(start, end):
            return annotation
    return None


def visible_annotations(body: str, annotations: Iterable[TagAnnotation]) -> list[TagAnnotation]:
    """Drop stale annotations that no longer fit inside *body*."""
    length = len(body)
    return [a for a in annotations if 0 <= a.start_offset < a.end_offset <= length]


def render_segments(body: str, annotations: Iterable[TagAnnotation]) -> list[Segment]:
    """Cover ``[0, len(body))`` with alternating plain and tagged segments.

    Annotations sharing a range become one segment. Groups are ordered by
    ``(start, end)``; a group starting inside an earlier one is skipped.
    """
    groups: dict[tuple[int, int], list[TagAnnotation]] = {}
    for annotation in visible_annotations(body, annotations):
        groups.setdefault(annotation.span, []).append(annotation)

    segments: list[Segment] = []
    cursor = 0
    for (start, end), members in sorted(groups.items()):
        if start < cursor:
            logger.warning("Skipping overlapping annotation range [%d, %d)", start, end)
            continue
        if start > cursor:
            segments.append(Segment(cursor, start, body[cursor:start]))
        segments.append(Segment(start, end, body[start:end], tuple(members)))
        cursor = end

    if cursor < len(body):
        segments.append(Segment(cursor, len(body), body[cursor:]))
    return segments


class RangeAnnotator:
    """Annotation set of one scope, mirrored from the store.

    Usage::

        annotator = RangeAnnotator(store, ThreadScope(thread_id))
        await annotator.reload()
        annotation_id = await annotator.add(body, 0, 5, tag_id)
        segments = annotator.render(body)
    """

    def __init__(self, store: ScriptStore, scope: BodyTarget) -> None:
        self._store = store
        self.scope = scope
        self._annotations: list[TagAnnotation] = []

    @property
    def annotations(self) -> tuple[TagAnnotation, ...]:
        return tuple(self._annotations)

    async def reload(self) -> None:
        self._annotations = await self._store.load_annotations(self.scope)

    def validate(self, body: str, start: int, end: int, tag_id: str) -> None:
        """Check a new range without touching the store.

        Raises:
            InvalidRangeError: Offsets outside ``0 <= start < end <= len(body)``.
            BlankSelectionError: The span is whitespace-only.
            ConflictError: The span partially overlaps an existing annotation,
                or the same tag already covers this exact span.
        """
        if not 0 <= start < end <= len(body):
            raise InvalidRangeError(
                f"Range {start}-{end} is outside the body (length {len(body)})"
            )
        if not body[start:end].strip():
            raise BlankSelectionError("Selected text is blank")
        conflict = find_conflict(self._annotations, start, end, tag_id)
        if conflict is not None:
            raise ConflictError(start, end, conflict)

    async def add(self, body: str, start: int, end: int, tag_id: str) -> str:
        """Validate, persist and remember a new annotation.

        Returns:
            The new annotation id.
        """
        self.validate(body, start, end, tag_id)
        selected_text = body[start:end]
        annotation_id = await self._store.insert_annotation(
            self.scope, tag_id, start, end, selected_text
        )
        self._annotations.append(
            TagAnnotation(
                id=annotation_id,
                tag_id=tag_id,
                scope=self.scope,
                start_offset=start,
                end_offset=end,
                selected_text=selected_text,
            )
        )
        return annotation_id

    async def delete(self, annotation_id: str) -> None:
        """Remove an annotation from the store and from memory."""
        await self._store.delete_annotation(annotation_id)
        self._annotations = [a for a in self._annotations if a.id != annotation_id]

    def render(self, body: str) -> list[Segment]:
        return render_segments(body, self._annotations)

    def stale(self, body: str) -> list[TagAnnotation]:
        """Annotations hidden from rendering because *body* shrank under them."""
        visible = {a.id for a in visible_annotations(body, self._annotations)}
        return [a for a in self._annotations if a.id not in visible]
