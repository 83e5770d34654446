"""Undo/redo history over reversible classification edits.

Every user edit to the classifier state is a ``HistoryAction``: a small
immutable record holding both the before and the after side. Applying an
action forward installs the after side; applying it backward installs the
before side. The two directions go through the same code path, so each
action type can be tested in isolation against a fake target.

The timeline is linear: a fresh commit after an undo discards the redo
stack. Actions whose before and after sides are equal are never pushed.

Persistence is awaited before an action counts as committed. If the target
raises (``PersistenceError``), neither stack changes and the error
propagates to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol, Union

from scriptdesk.models import Classification

logger = logging.getLogger(__name__)


class HistoryTarget(Protocol):
    """Where actions land: the override cache, the body buffer, the parse."""

    async def apply_filter_term(self, term: str, enabled: bool) -> None: ...

    async def apply_line_rule(self, line_text: str, classification: Classification | None) -> None: ...

    def apply_body(self, text: str) -> None: ...

    def reparse(self) -> None: ...


@dataclass(frozen=True)
class SetFilterTerm:
    term: str
    before_enabled: bool
    after_enabled: bool
    reparse: bool = True

    @property
    def is_noop(self) -> bool:
        return self.before_enabled == self.after_enabled

    async def apply(self, target: HistoryTarget, *, forward: bool) -> None:
        enabled = self.after_enabled if forward else self.before_enabled
        await target.apply_filter_term(self.term, enabled)

    def describe(self) -> str:
        verb = "block" if self.after_enabled else "unblock"
        return f"{verb} {self.term!r}"


@dataclass(frozen=True)
class SetLineRule:
    """Change the rule for one literal line; None means no rule."""

    line_text: str
    before: Classification | None
    after: Classification | None
    reparse: bool = True

    @property
    def is_noop(self) -> bool:
        return self.before == self.after

    async def apply(self, target: HistoryTarget, *, forward: bool) -> None:
        classification = self.after if forward else self.before
        await target.apply_line_rule(self.line_text, classification)

    def describe(self) -> str:
        after = self.after.value if self.after else "no rule"
        return f"mark {self.line_text!r} as {after}"


@dataclass(frozen=True)
class ReplaceBodyDraft:
    """Snapshot pair around a structural body edit."""

    before_body: str
    after_body: str
    label: str = "edit body"

    @property
    def reparse(self) -> bool:
        return True

    @property
    def is_noop(self) -> bool:
        return self.before_body == self.after_body

    async def apply(self, target: HistoryTarget, *, forward: bool) -> None:
        target.apply_body(self.after_body if forward else self.before_body)

    def describe(self) -> str:
        return self.label


HistoryAction = Union[SetFilterTerm, SetLineRule, ReplaceBodyDraft]


class History:
    """Linear undo/redo timeline for one open body buffer.

    Usage::

        history = History(session)
        await history.commit(SetLineRule("効果音: ドア", None, Classification.DIRECTION))
        await history.undo()
        await history.redo()
    """

    def __init__(self, target: HistoryTarget) -> None:
        self._target = target
        self._undo: list[HistoryAction] = []
        self._redo: list[HistoryAction] = []
        self._lock = asyncio.Lock()

    @property
    def undo_stack(self) -> tuple[HistoryAction, ...]:
        return tuple(self._undo)

    @property
    def redo_stack(self) -> tuple[HistoryAction, ...]:
        return tuple(self._redo)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    async def commit(self, action: HistoryAction) -> bool:
        """Apply *action* and record it.

        Returns:
            True if the action was applied and pushed; False for a no-op.

        Raises:
            PersistenceError: If the target could not persist the change.
                Both stacks are left untouched.
        """
        if action.is_noop:
            logger.debug("Skipping no-op action: %s", action.describe())
            return False

        async with self._lock:
            await action.apply(self._target, forward=True)
            self._undo.append(action)
            self._redo.clear()
            self._after_apply(action)

        logger.info("Committed: %s", action.describe())
        return True

    async def undo(self) -> bool:
        """Re-apply the before side of the latest action. False if nothing to undo."""
        async with self._lock:
            if not self._undo:
                return False
            action = self._undo[-1]
            await action.apply(self._target, forward=False)
            self._redo.append(self._undo.pop())
            self._after_apply(action)

        logger.info("Undid: %s", action.describe())
        return True

    async def redo(self) -> bool:
        """Re-apply the after side of the latest undone action. False if nothing to redo."""
        async with self._lock:
            if not self._redo:
                return False
            action = self._redo[-1]
            await action.apply(self._target, forward=True)
            self._undo.append(self._redo.pop())
            self._after_apply(action)

        logger.info("Redid: %s", action.describe())
        return True

    def _after_apply(self, action: HistoryAction) -> None:
        if action.reparse:
            self._target.reparse()
