"""Abstract persistence interface consumed by the editor core.

The editor never talks to a concrete backend directly. Any object that
implements these coroutines can back an editor session; failures must be
raised as ``PersistenceError``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from scriptdesk.models import (
    BodyTarget,
    Classification,
    Entry,
    EpisodeRecord,
    LineRule,
    ParsedLine,
    SpeakerProfile,
    TagAnnotation,
    TagPreset,
    ThreadRecord,
)


@runtime_checkable
class ScriptStore(Protocol):
    # Parser overrides
    async def load_blocked_terms(self) -> list[str]: ...

    async def upsert_blocked_term(self, term: str) -> None: ...

    async def delete_blocked_term(self, term: str) -> None: ...

    async def load_line_rules(self) -> list[LineRule]: ...

    async def upsert_line_rule(self, line_text: str, classification: Classification) -> None: ...

    async def delete_line_rule(self, line_text: str) -> None: ...

    async def load_known_speakers(self) -> list[str]: ...

    # Range annotations
    async def load_annotations(self, scope: BodyTarget) -> list[TagAnnotation]: ...

    async def insert_annotation(
        self,
        scope: BodyTarget,
        tag_id: str,
        start_offset: int,
        end_offset: int,
        selected_text: str,
    ) -> str: ...

    async def delete_annotation(self, annotation_id: str) -> None: ...

    # Bodies
    async def load_body(self, target: BodyTarget) -> str: ...

    async def save_body(self, target: BodyTarget, text: str) -> None: ...


@runtime_checkable
class ScriptCatalog(ScriptStore, Protocol):
    """Directory and entry operations used by the CLI and entry export."""

    async def list_tag_presets(self) -> list[TagPreset]: ...

    async def create_tag_preset(self, name: str) -> str: ...

    async def delete_tag_preset(self, preset_id: str) -> None: ...

    async def list_speakers(self) -> list[SpeakerProfile]: ...

    async def upsert_speaker(self, name: str, icon_url: str | None = None) -> str: ...

    async def create_thread(self, title: str, body: str = "", node_id: str | None = None) -> str: ...

    async def list_threads(self) -> list[ThreadRecord]: ...

    async def create_episode(
        self, thread_id: str, title: str, body: str = "", label: str | None = None
    ) -> str: ...

    async def list_episodes(self, thread_id: str) -> list[EpisodeRecord]: ...

    async def replace_entries(self, target: BodyTarget, parsed: list[ParsedLine]) -> int: ...

    async def load_entries(self, target: BodyTarget) -> list[Entry]: ...
