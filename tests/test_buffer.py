"""Tests for the body draft buffer and its clean/dirty state machine."""

from __future__ import annotations

from scriptdesk.editor.buffer import BodyBuffer
from scriptdesk.models import EpisodeScope


def make_buffer(text: str = "saved") -> BodyBuffer:
    return BodyBuffer(EpisodeScope("ep-1"), text)


class TestBodyBuffer:
    def test_starts_clean(self):
        buf = make_buffer()
        assert buf.text == "saved"
        assert buf.state == "clean"
        assert not buf.is_dirty

    def test_typing_marks_dirty(self):
        buf = make_buffer()
        buf.type_text("saved!")
        assert buf.is_dirty
        buf.type_text("saved!!")
        assert buf.state == "dirty"

    def test_returning_to_saved_text_is_clean(self):
        buf = make_buffer()
        buf.replace("other")
        buf.replace("saved")
        assert not buf.is_dirty

    def test_mark_saved(self):
        buf = make_buffer()
        buf.type_text("new")
        buf.mark_saved()
        assert buf.saved_text == "new"
        assert buf.state == "clean"
        buf.mark_saved()
        assert buf.state == "clean"
