"""Editor session: one open body with its overrides, history and tags.

The session is the seam between user actions and the core. Each public
coroutine performs one logical step and reports the result as an
``ActionOutcome`` rather than raising, so a caller can show the message
and let the user retry by hand. Nothing is retried automatically.

While one action is awaiting the store, further actions are refused
instead of interleaved.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from scriptdesk.editor.annotations import RangeAnnotator
from scriptdesk.editor.buffer import BodyBuffer
from scriptdesk.editor.history import (
    History,
    HistoryAction,
    ReplaceBodyDraft,
    SetFilterTerm,
    SetLineRule,
)
from scriptdesk.editor.overrides import OverrideCache
from scriptdesk.exceptions import EmptyResultError, ScriptdeskError
from scriptdesk.models import BodyTarget, Classification, ParsedLine, Segment
from scriptdesk.parser.classifier import ClassifierOptions, require_lines
from scriptdesk.parser.transforms import (
    delete_lines,
    reformat_body,
    split_line,
    split_speaker_prefixes,
)
from scriptdesk.store.base import ScriptCatalog, ScriptStore

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "Another change is still being saved"


@dataclass
class ActionOutcome:
    """Result of one user action."""

    ok: bool
    message: str = ""
    value: object = None


class EditorSession:
    """Editing state for one user.

    Usage::

        session = EditorSession(store)
        await session.start()
        await session.open(ThreadScope(thread_id))
        session.type_text(pasted)
        await session.reclassify_line("効果音: ドア", Classification.DIRECTION)
        await session.undo()
    """

    def __init__(self, store: ScriptStore, options: ClassifierOptions | None = None) -> None:
        self.store = store
        self.options = options or ClassifierOptions()
        self.overrides = OverrideCache(store)
        self.history = History(self)
        self.buffer: BodyBuffer | None = None
        self.annotator: RangeAnnotator | None = None
        self.parsed: list[ParsedLine] = []
        self._busy = asyncio.Lock()

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def target(self) -> BodyTarget | None:
        return self.buffer.target if self.buffer else None

    @property
    def body(self) -> str:
        return self.buffer.text if self.buffer else ""

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def _require_buffer(self) -> BodyBuffer:
        if self.buffer is None:
            raise ScriptdeskError("No sub-item or episode is open")
        return self.buffer

    def _require_annotator(self) -> RangeAnnotator:
        self._require_buffer()
        if self.annotator is None:
            raise ScriptdeskError("No annotations are loaded")
        return self.annotator

    def _row(self, index: int) -> ParsedLine:
        if not 0 <= index < len(self.parsed):
            raise ScriptdeskError(f"No parsed row {index} (have {len(self.parsed)})")
        return self.parsed[index]

    async def _perform(self, step: Callable[[], Awaitable[ActionOutcome]]) -> ActionOutcome:
        if self._busy.locked():
            return ActionOutcome(False, BUSY_MESSAGE)
        async with self._busy:
            try:
                return await step()
            except ScriptdeskError as exc:
                logger.warning("Action failed: %s", exc)
                return ActionOutcome(False, str(exc))

    async def _commit(self, action: HistoryAction) -> ActionOutcome:
        if await self.history.commit(action):
            return ActionOutcome(True, action.describe())
        return ActionOutcome(True, "Nothing changed")

    # ------------------------------------------------------------------
    # HistoryTarget
    # ------------------------------------------------------------------

    async def apply_filter_term(self, term: str, enabled: bool) -> None:
        await self.overrides.set_filter_term(term, enabled)

    async def apply_line_rule(self, line_text: str, classification: Classification | None) -> None:
        await self.overrides.set_line_rule(line_text, classification)

    def apply_body(self, text: str) -> None:
        self._require_buffer().replace(text)

    def reparse(self) -> None:
        self.parsed = self.overrides.snapshot().classify(self.body, self.options)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> ActionOutcome:
        """Load the override dictionaries."""

        async def step() -> ActionOutcome:
            await self.overrides.reload()
            self.reparse()
            return ActionOutcome(True)

        return await self._perform(step)

    async def open(self, target: BodyTarget) -> ActionOutcome:
        """Switch to another body. History never spans documents."""

        async def step() -> ActionOutcome:
            body = await self.store.load_body(target)
            annotator = RangeAnnotator(self.store, target)
            await annotator.reload()

            if self.buffer is not None and self.buffer.is_dirty:
                logger.warning("Discarding unsaved draft of %s", self.buffer.target.label)
            self.buffer = BodyBuffer(target, body)
            self.annotator = annotator
            self.history.clear()
            self.reparse()
            return ActionOutcome(True, f"Opened {target.label}")

        return await self._perform(step)

    def type_text(self, text: str) -> ActionOutcome:
        """Free-form typing: updates the draft and the parse, not the history.

        Refused while another action is awaiting the store, since that
        action may still replace the body or rely on its offsets.
        """
        if self._busy.locked():
            return ActionOutcome(False, BUSY_MESSAGE)
        try:
            self._require_buffer().type_text(text)
        except ScriptdeskError as exc:
            return ActionOutcome(False, str(exc))
        self.reparse()
        return ActionOutcome(True)

    async def save(self) -> ActionOutcome:
        async def step() -> ActionOutcome:
            buffer = self._require_buffer()
            await self.store.save_body(buffer.target, buffer.text)
            buffer.mark_saved()
            return ActionOutcome(True, f"Saved {buffer.target.label}")

        return await self._perform(step)

    def check_parse(self) -> ActionOutcome:
        """Report an empty classification as 'nothing to parse'."""
        try:
            require_lines(self.parsed)
        except EmptyResultError as exc:
            return ActionOutcome(False, str(exc))
        return ActionOutcome(True, f"{len(self.parsed)} lines", self.parsed)

    # ------------------------------------------------------------------
    # Override edits
    # ------------------------------------------------------------------

    async def set_filter_term(self, term: str, enabled: bool = True) -> ActionOutcome:
        async def step() -> ActionOutcome:
            before = self.overrides.is_blocked(term)
            return await self._commit(SetFilterTerm(term, before, enabled))

        return await self._perform(step)

    async def block_row(self, index: int) -> ActionOutcome:
        """Block the literal line that produced a parsed row."""

        async def step() -> ActionOutcome:
            row = self._row(index)
            return await self._commit(SetFilterTerm(row.source_line, False, True))

        return await self._perform(step)

    async def reclassify_line(
        self, line_text: str, classification: Classification | None
    ) -> ActionOutcome:
        async def step() -> ActionOutcome:
            before = self.overrides.rule_for(line_text)
            return await self._commit(SetLineRule(line_text, before, classification))

        return await self._perform(step)

    async def reclassify_row(
        self, index: int, classification: Classification | None
    ) -> ActionOutcome:
        """Assign a rule to the exact source line of a parsed row."""

        async def step() -> ActionOutcome:
            line_text = self._row(index).source_line
            before = self.overrides.rule_for(line_text)
            return await self._commit(SetLineRule(line_text, before, classification))

        return await self._perform(step)

    # ------------------------------------------------------------------
    # Structural body actions
    # ------------------------------------------------------------------

    async def _replace_body(self, after: str, label: str) -> ActionOutcome:
        before = self._require_buffer().text
        return await self._commit(ReplaceBodyDraft(before, after, label))

    async def delete_parsed_row(self, index: int) -> ActionOutcome:
        async def step() -> ActionOutcome:
            row = self._row(index)
            after = delete_lines(self.body, row.line_numbers)
            return await self._replace_body(after, f"delete row {index}")

        return await self._perform(step)

    async def split_line(self, line_number: int, offset: int) -> ActionOutcome:
        async def step() -> ActionOutcome:
            try:
                after = split_line(self._require_buffer().text, line_number, offset)
            except (IndexError, ValueError) as exc:
                return ActionOutcome(False, str(exc))
            return await self._replace_body(after, f"split line {line_number}")

        return await self._perform(step)

    async def run_speaker_split(self) -> ActionOutcome:
        async def step() -> ActionOutcome:
            body = self._require_buffer().text
            after = split_speaker_prefixes(body, self.overrides.known_speakers)
            return await self._replace_body(after, "split speaker prefixes")

        return await self._perform(step)

    async def reformat(self) -> ActionOutcome:
        """Rewrite the body in canonical speaker/dialogue form."""

        async def step() -> ActionOutcome:
            self._require_buffer()
            after = reformat_body(require_lines(self.parsed))
            return await self._replace_body(after, "reformat body")

        return await self._perform(step)

    async def undo(self) -> ActionOutcome:
        async def step() -> ActionOutcome:
            if await self.history.undo():
                return ActionOutcome(True, f"Undid {self.history.redo_stack[-1].describe()}")
            return ActionOutcome(False, "Nothing to undo")

        return await self._perform(step)

    async def redo(self) -> ActionOutcome:
        async def step() -> ActionOutcome:
            if await self.history.redo():
                return ActionOutcome(True, f"Redid {self.history.undo_stack[-1].describe()}")
            return ActionOutcome(False, "Nothing to redo")

        return await self._perform(step)

    # ------------------------------------------------------------------
    # Annotations
    # ------------------------------------------------------------------

    async def add_annotation(self, start: int, end: int, tag_id: str) -> ActionOutcome:
        async def step() -> ActionOutcome:
            annotator = self._require_annotator()
            annotation_id = await annotator.add(self.body, start, end, tag_id)
            await annotator.reload()
            return ActionOutcome(True, f"Tagged {start}-{end}", annotation_id)

        return await self._perform(step)

    async def delete_annotation(self, annotation_id: str) -> ActionOutcome:
        async def step() -> ActionOutcome:
            annotator = self._require_annotator()
            await annotator.delete(annotation_id)
            await annotator.reload()
            return ActionOutcome(True, f"Removed annotation {annotation_id}")

        return await self._perform(step)

    def segments(self) -> list[Segment]:
        if self.annotator is None:
            return []
        return self.annotator.render(self.body)

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    async def persist_entries(self) -> ActionOutcome:
        """Store the current parse as the target's entry rows."""

        async def step() -> ActionOutcome:
            buffer = self._require_buffer()
            if not isinstance(self.store, ScriptCatalog):
                return ActionOutcome(False, "This store cannot save entries")
            count = await self.store.replace_entries(buffer.target, require_lines(self.parsed))
            return ActionOutcome(True, f"Saved {count} entries", count)

        return await self._perform(step)
