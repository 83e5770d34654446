"""Draft buffer for the body of the open sub-item or episode.

Free-form typing goes straight into the buffer and is not history-tracked;
only structural actions snapshot the body into a ``ReplaceBodyDraft``.
A two-state machine tracks whether the draft differs from the saved body.
"""

from __future__ import annotations

from statemachine import State, StateMachine

from scriptdesk.models import BodyTarget


class BufferStateSM(StateMachine):
    """Clean/Dirty lifecycle of a body draft.

    States:
        clean -- Draft equals the last saved body.
        dirty -- Draft has unsaved changes.
    """

    clean = State("clean", initial=True, value="clean")
    dirty = State("dirty", value="dirty")

    edit = clean.to(dirty) | dirty.to.itself()
    settle = dirty.to(clean) | clean.to.itself()


class BodyBuffer:
    """Draft text for one body target."""

    def __init__(self, target: BodyTarget, saved_text: str = "") -> None:
        self.target = target
        self.saved_text = saved_text
        self._text = saved_text
        self._sm = BufferStateSM()

    @property
    def text(self) -> str:
        return self._text

    @property
    def state(self) -> str:
        return self._sm.current_state_value

    @property
    def is_dirty(self) -> bool:
        return self.state == "dirty"

    def type_text(self, text: str) -> None:
        """Replace the draft with keystroke-level edits (untracked)."""
        self._set(text)

    def replace(self, text: str) -> None:
        """Replace the draft as part of a history action."""
        self._set(text)

    def mark_saved(self) -> None:
        """Record the current draft as persisted."""
        self.saved_text = self._text
        self._sm.settle()

    def _set(self, text: str) -> None:
        self._text = text
        if text == self.saved_text:
            self._sm.settle()
        else:
            self._sm.edit()
