"""Async SQLite implementation of the script store.

Wraps aiosqlite. Each write method commits immediately; no transaction is
held across a user-visible ``await``. Driver errors are re-raised as
``PersistenceError`` carrying the driver message.

Optional columns that were added to the schema over time are detected once
on ``connect()``; loaders select only what exists and fill defaults for the
rest.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from uuid import uuid4

import aiosqlite

from scriptdesk.exceptions import PersistenceError
from scriptdesk.models import (
    BodyTarget,
    Classification,
    Entry,
    EntryKind,
    EpisodeRecord,
    EpisodeScope,
    LineRule,
    ParsedLine,
    SpeakerProfile,
    TagAnnotation,
    TagPreset,
    ThreadRecord,
    ThreadScope,
)

logger = logging.getLogger(__name__)

_OPTIONAL_COLUMNS = {
    "threads": ("has_episodes", "tags", "sort_order"),
    "subitem_episodes": ("label", "tags", "sort_order"),
    "speaker_profiles": ("speech_balloon_id",),
    "body_tag_presets": ("sort_order",),
}


@dataclass(frozen=True)
class StoreCapabilities:
    """Which optional columns the connected database actually has."""

    columns: dict[str, frozenset[str]]

    def has(self, table: str, column: str) -> bool:
        return column in self.columns.get(table, frozenset())

    def missing(self) -> list[str]:
        return [
            f"{table}.{column}"
            for table, optional in _OPTIONAL_COLUMNS.items()
            for column in optional
            if not self.has(table, column)
        ]


def _scope_column(scope: BodyTarget) -> tuple[str, str]:
    if isinstance(scope, ThreadScope):
        return "thread_id", scope.thread_id
    if isinstance(scope, EpisodeScope):
        return "episode_id", scope.episode_id
    raise TypeError(f"Unsupported scope: {scope!r}")


def _body_table(target: BodyTarget) -> str:
    return "threads" if isinstance(target, ThreadScope) else "subitem_episodes"


def _tags(raw: str | None) -> list[str]:
    return list(json.loads(raw)) if raw else []


class AsyncSqliteStore:
    """Async SQLite-backed ``ScriptStore``.

    The schema is created by ``scriptdesk.database.Database``; this class
    only reads and writes rows.

    Usage::

        async with AsyncSqliteStore("data/scripts.db") as store:
            terms = await store.load_blocked_terms()
            await store.upsert_line_rule("効果音: ドア", Classification.DIRECTION)
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = str(db_path)
        self._db: aiosqlite.Connection | None = None
        self.capabilities = StoreCapabilities(columns={})

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection and detect optional columns."""
        try:
            self._db = await aiosqlite.connect(self.db_path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA foreign_keys=ON")
            self.capabilities = await self._detect_capabilities()
        except aiosqlite.Error as exc:
            raise PersistenceError(f"Opening {self.db_path} failed: {exc}") from exc

        missing = self.capabilities.missing()
        if missing:
            logger.warning("Older schema detected; defaulting columns: %s", ", ".join(missing))

    async def close(self) -> None:
        """Close the connection if open."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> AsyncSqliteStore:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Not connected -- use 'async with' or call connect()")
        return self._db

    async def _detect_capabilities(self) -> StoreCapabilities:
        db = self._ensure_connected()
        columns: dict[str, frozenset[str]] = {}
        for table in _OPTIONAL_COLUMNS:
            cursor = await db.execute(f"PRAGMA table_info({table})")
            rows = await cursor.fetchall()
            columns[table] = frozenset(row[1] for row in rows)
        return StoreCapabilities(columns=columns)

    async def _fetchall(self, operation: str, sql: str, params: tuple = ()) -> list[aiosqlite.Row]:
        db = self._ensure_connected()
        try:
            cursor = await db.execute(sql, params)
            return list(await cursor.fetchall())
        except aiosqlite.Error as exc:
            raise PersistenceError(f"{operation} failed: {exc}") from exc

    @asynccontextmanager
    async def _write(self, operation: str) -> AsyncIterator[aiosqlite.Connection]:
        """Run the body as one committed write; roll back on any failure."""
        db = self._ensure_connected()
        try:
            yield db
            await db.commit()
        except aiosqlite.Error as exc:
            await db.rollback()
            raise PersistenceError(f"{operation} failed: {exc}") from exc
        except BaseException:
            await db.rollback()
            raise

    def _optional(self, table: str, column: str, default: str) -> str:
        """SELECT expression for an optional column, or its default literal."""
        if self.capabilities.has(table, column):
            return column
        return f"{default} AS {column}"

    # ------------------------------------------------------------------
    # Parser overrides
    # ------------------------------------------------------------------

    async def load_blocked_terms(self) -> list[str]:
        rows = await self._fetchall(
            "Loading filter terms",
            "SELECT term FROM parser_filter_terms ORDER BY rowid",
        )
        return [row["term"] for row in rows]

    async def upsert_blocked_term(self, term: str) -> None:
        async with self._write(f"Saving filter term {term!r}") as db:
            await db.execute(
                """INSERT INTO parser_filter_terms (id, term) VALUES (?, ?)
                   ON CONFLICT(term) DO NOTHING""",
                (str(uuid4()), term),
            )
        logger.info("Blocked term %r", term)

    async def delete_blocked_term(self, term: str) -> None:
        async with self._write(f"Deleting filter term {term!r}") as db:
            await db.execute("DELETE FROM parser_filter_terms WHERE term = ?", (term,))
        logger.info("Unblocked term %r", term)

    async def load_line_rules(self) -> list[LineRule]:
        rows = await self._fetchall(
            "Loading line rules",
            "SELECT line_text, classification FROM parser_line_classifications ORDER BY rowid",
        )
        return [LineRule(row["line_text"], Classification(row["classification"])) for row in rows]

    async def upsert_line_rule(self, line_text: str, classification: Classification) -> None:
        async with self._write(f"Saving line rule for {line_text!r}") as db:
            await db.execute(
                """INSERT INTO parser_line_classifications (id, line_text, classification)
                   VALUES (?, ?, ?)
                   ON CONFLICT(line_text) DO UPDATE SET
                       classification = excluded.classification""",
                (str(uuid4()), line_text, Classification(classification).value),
            )
        logger.info("Line rule %r -> %s", line_text, Classification(classification).value)

    async def delete_line_rule(self, line_text: str) -> None:
        async with self._write(f"Deleting line rule for {line_text!r}") as db:
            await db.execute(
                "DELETE FROM parser_line_classifications WHERE line_text = ?", (line_text,)
            )
        logger.info("Cleared line rule %r", line_text)

    async def load_known_speakers(self) -> list[str]:
        rows = await self._fetchall(
            "Loading speakers", "SELECT name FROM speaker_profiles ORDER BY name"
        )
        return [row["name"] for row in rows]

    # ------------------------------------------------------------------
    # Range annotations
    # ------------------------------------------------------------------

    async def load_annotations(self, scope: BodyTarget) -> list[TagAnnotation]:
        column, value = _scope_column(scope)
        rows = await self._fetchall(
            f"Loading annotations for {scope.label}",
            f"""SELECT id, tag_id, start_offset, end_offset, selected_text
                FROM body_tag_annotations
                WHERE {column} = ?
                ORDER BY start_offset, end_offset, rowid""",
            (value,),
        )
        return [
            TagAnnotation(
                id=row["id"],
                tag_id=row["tag_id"],
                scope=scope,
                start_offset=row["start_offset"],
                end_offset=row["end_offset"],
                selected_text=row["selected_text"],
            )
            for row in rows
        ]

    async def insert_annotation(
        self,
        scope: BodyTarget,
        tag_id: str,
        start_offset: int,
        end_offset: int,
        selected_text: str,
    ) -> str:
        column, value = _scope_column(scope)
        annotation_id = str(uuid4())
        async with self._write(f"Saving annotation on {scope.label}") as db:
            await db.execute(
                f"""INSERT INTO body_tag_annotations
                        (id, tag_id, {column}, start_offset, end_offset, selected_text)
                    VALUES (?, ?, ?, ?, ?, ?)""",
                (annotation_id, tag_id, value, start_offset, end_offset, selected_text),
            )
        logger.info(
            "Annotated %s [%d, %d) with tag %s", scope.label, start_offset, end_offset, tag_id
        )
        return annotation_id

    async def delete_annotation(self, annotation_id: str) -> None:
        async with self._write(f"Deleting annotation {annotation_id}") as db:
            await db.execute("DELETE FROM body_tag_annotations WHERE id = ?", (annotation_id,))
        logger.info("Deleted annotation %s", annotation_id)

    # ------------------------------------------------------------------
    # Bodies
    # ------------------------------------------------------------------

    async def load_body(self, target: BodyTarget) -> str:
        rows = await self._fetchall(
            f"Loading body of {target.label}",
            f"SELECT body FROM {_body_table(target)} WHERE id = ?",
            (target.target_id,),
        )
        if not rows:
            raise PersistenceError(f"{target.label} not found")
        return rows[0]["body"]

    async def save_body(self, target: BodyTarget, text: str) -> None:
        async with self._write(f"Saving body of {target.label}") as db:
            cursor = await db.execute(
                f"UPDATE {_body_table(target)} SET body = ? WHERE id = ?",
                (text, target.target_id),
            )
            if cursor.rowcount == 0:
                raise PersistenceError(f"{target.label} not found")
        logger.info("Saved body of %s (%d chars)", target.label, len(text))

    # ------------------------------------------------------------------
    # Directory: tag presets, speakers, threads, episodes
    # ------------------------------------------------------------------

    async def list_tag_presets(self) -> list[TagPreset]:
        sort_order = self._optional("body_tag_presets", "sort_order", "0")
        rows = await self._fetchall(
            "Loading tag presets",
            f"SELECT id, name, {sort_order} FROM body_tag_presets ORDER BY sort_order, name",
        )
        return [TagPreset(row["id"], row["name"], row["sort_order"]) for row in rows]

    async def create_tag_preset(self, name: str) -> str:
        preset_id = str(uuid4())
        async with self._write(f"Creating tag preset {name!r}") as db:
            await db.execute(
                "INSERT INTO body_tag_presets (id, name) VALUES (?, ?)", (preset_id, name)
            )
        return preset_id

    async def delete_tag_preset(self, preset_id: str) -> None:
        async with self._write(f"Deleting tag preset {preset_id}") as db:
            await db.execute("DELETE FROM body_tag_presets WHERE id = ?", (preset_id,))

    async def list_speakers(self) -> list[SpeakerProfile]:
        balloon = self._optional("speaker_profiles", "speech_balloon_id", "NULL")
        rows = await self._fetchall(
            "Loading speakers",
            f"SELECT id, name, icon_url, {balloon} FROM speaker_profiles ORDER BY name",
        )
        return [
            SpeakerProfile(row["id"], row["name"], row["icon_url"], row["speech_balloon_id"])
            for row in rows
        ]

    async def upsert_speaker(self, name: str, icon_url: str | None = None) -> str:
        async with self._write(f"Saving speaker {name!r}") as db:
            await db.execute(
                """INSERT INTO speaker_profiles (id, name, icon_url) VALUES (?, ?, ?)
                   ON CONFLICT(name) DO UPDATE SET
                       icon_url = COALESCE(excluded.icon_url, speaker_profiles.icon_url)""",
                (str(uuid4()), name, icon_url),
            )
            cursor = await db.execute("SELECT id FROM speaker_profiles WHERE name = ?", (name,))
            row = await cursor.fetchone()
        return row["id"]

    async def create_thread(self, title: str, body: str = "", node_id: str | None = None) -> str:
        thread_id = str(uuid4())
        async with self._write(f"Creating sub-item {title!r}") as db:
            await db.execute(
                "INSERT INTO threads (id, node_id, title, body) VALUES (?, ?, ?, ?)",
                (thread_id, node_id, title, body),
            )
        return thread_id

    async def list_threads(self) -> list[ThreadRecord]:
        table = "threads"
        rows = await self._fetchall(
            "Loading sub-items",
            f"""SELECT id, node_id, title, body, created_at,
                       {self._optional(table, "has_episodes", "0")},
                       {self._optional(table, "tags", "'[]'")},
                       {self._optional(table, "sort_order", "0")}
                FROM threads ORDER BY sort_order, created_at""",
        )
        return [
            ThreadRecord(
                id=row["id"],
                title=row["title"],
                body=row["body"],
                node_id=row["node_id"],
                has_episodes=bool(row["has_episodes"]),
                tags=_tags(row["tags"]),
                sort_order=row["sort_order"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    async def create_episode(
        self, thread_id: str, title: str, body: str = "", label: str | None = None
    ) -> str:
        episode_id = str(uuid4())
        async with self._write(f"Creating episode {title!r}") as db:
            if self.capabilities.has("subitem_episodes", "label"):
                await db.execute(
                    """INSERT INTO subitem_episodes (id, thread_id, title, body, label)
                       VALUES (?, ?, ?, ?, ?)""",
                    (episode_id, thread_id, title, body, label),
                )
            else:
                await db.execute(
                    "INSERT INTO subitem_episodes (id, thread_id, title, body) VALUES (?, ?, ?, ?)",
                    (episode_id, thread_id, title, body),
                )
        return episode_id

    async def list_episodes(self, thread_id: str) -> list[EpisodeRecord]:
        table = "subitem_episodes"
        rows = await self._fetchall(
            "Loading episodes",
            f"""SELECT id, thread_id, title, body, created_at,
                       {self._optional(table, "label", "NULL")},
                       {self._optional(table, "tags", "'[]'")},
                       {self._optional(table, "sort_order", "0")}
                FROM subitem_episodes WHERE thread_id = ?
                ORDER BY sort_order, created_at""",
            (thread_id,),
        )
        return [
            EpisodeRecord(
                id=row["id"],
                thread_id=row["thread_id"],
                title=row["title"],
                body=row["body"],
                label=row["label"],
                tags=_tags(row["tags"]),
                sort_order=row["sort_order"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    async def replace_entries(self, target: BodyTarget, parsed: list[ParsedLine]) -> int:
        """Replace every entry of *target* with *parsed*, in order."""
        column, value = _scope_column(target)
        entries = [Entry.from_parsed(line, position) for position, line in enumerate(parsed)]
        async with self._write(f"Saving entries of {target.label}") as db:
            await db.execute(f"DELETE FROM entries WHERE {column} = ?", (value,))
            await db.executemany(
                f"""INSERT INTO entries (id, {column}, kind, speaker_name, content, position)
                    VALUES (?, ?, ?, ?, ?, ?)""",
                [
                    (str(uuid4()), value, e.kind.value, e.speaker_name, e.content, e.position)
                    for e in entries
                ],
            )
        logger.info("Stored %d entries for %s", len(entries), target.label)
        return len(entries)

    async def load_entries(self, target: BodyTarget) -> list[Entry]:
        column, value = _scope_column(target)
        rows = await self._fetchall(
            f"Loading entries of {target.label}",
            f"""SELECT id, kind, speaker_name, content, position FROM entries
                WHERE {column} = ? ORDER BY position""",
            (value,),
        )
        return [
            Entry(
                kind=EntryKind(row["kind"]),
                content=row["content"],
                speaker_name=row["speaker_name"],
                position=row["position"],
                id=row["id"],
            )
            for row in rows
        ]
