"""Editing core: override cache, undo/redo history, body buffer, tag annotations."""

from scriptdesk.editor.annotations import RangeAnnotator, find_conflict, render_segments
from scriptdesk.editor.buffer import BodyBuffer
from scriptdesk.editor.history import (
    History,
    HistoryAction,
    ReplaceBodyDraft,
    SetFilterTerm,
    SetLineRule,
)
from scriptdesk.editor.overrides import OverrideCache
from scriptdesk.editor.session import ActionOutcome, EditorSession

__all__ = [
    "ActionOutcome",
    "BodyBuffer",
    "EditorSession",
    "History",
    "HistoryAction",
    "OverrideCache",
    "RangeAnnotator",
    "ReplaceBodyDraft",
    "SetFilterTerm",
    "SetLineRule",
    "find_conflict",
    "render_segments",
]
