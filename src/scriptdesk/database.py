"""SQLite database layer for the script editor.

Manages schema initialization, WAL mode pragmas and the additive column
migrations picked up by databases created by older versions. Runtime reads
and writes go through ``scriptdesk.store.sqlite.AsyncSqliteStore``.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 3

SCHEMA_SQL = """
-- Sub-items. Bodies hold the pasted transcript text.
CREATE TABLE IF NOT EXISTS threads (
    id TEXT PRIMARY KEY,
    node_id TEXT,
    title TEXT NOT NULL,
    has_episodes INTEGER NOT NULL DEFAULT 0,
    tags TEXT NOT NULL DEFAULT '[]',
    body TEXT NOT NULL DEFAULT '',
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE TABLE IF NOT EXISTS subitem_episodes (
    id TEXT PRIMARY KEY,
    thread_id TEXT NOT NULL REFERENCES threads(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    label TEXT,
    tags TEXT NOT NULL DEFAULT '[]',
    body TEXT NOT NULL DEFAULT '',
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

-- Parser overrides
CREATE TABLE IF NOT EXISTS parser_filter_terms (
    id TEXT PRIMARY KEY,
    term TEXT NOT NULL UNIQUE,
    created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE TABLE IF NOT EXISTS parser_line_classifications (
    id TEXT PRIMARY KEY,
    line_text TEXT NOT NULL UNIQUE,
    classification TEXT NOT NULL
        CHECK(classification IN ('speaker', 'direction', 'location')),
    created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

-- Speaker directory
CREATE TABLE IF NOT EXISTS speaker_profiles (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    icon_url TEXT,
    speech_balloon_id TEXT,
    created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

-- Body tags and their range annotations
CREATE TABLE IF NOT EXISTS body_tag_presets (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE TABLE IF NOT EXISTS body_tag_annotations (
    id TEXT PRIMARY KEY,
    tag_id TEXT NOT NULL REFERENCES body_tag_presets(id) ON DELETE CASCADE,
    thread_id TEXT REFERENCES threads(id) ON DELETE CASCADE,
    episode_id TEXT REFERENCES subitem_episodes(id) ON DELETE CASCADE,
    start_offset INTEGER NOT NULL CHECK(start_offset >= 0),
    end_offset INTEGER NOT NULL,
    selected_text TEXT NOT NULL,
    created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
    CHECK(end_offset > start_offset),
    CHECK((thread_id IS NULL) != (episode_id IS NULL))
);

-- Parsed lines persisted verbatim
CREATE TABLE IF NOT EXISTS entries (
    id TEXT PRIMARY KEY,
    thread_id TEXT REFERENCES threads(id) ON DELETE CASCADE,
    episode_id TEXT REFERENCES subitem_episodes(id) ON DELETE CASCADE,
    kind TEXT NOT NULL CHECK(kind IN ('utterance', 'stage', 'note')),
    speaker_name TEXT,
    content TEXT NOT NULL,
    position INTEGER NOT NULL DEFAULT 0,
    created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
    CHECK((thread_id IS NULL) != (episode_id IS NULL))
);
"""

# Columns added after the first release; older files get them via ALTER TABLE.
ADDITIVE_COLUMNS: dict[str, list[tuple[str, str]]] = {
    "threads": [
        ("has_episodes", "INTEGER NOT NULL DEFAULT 0"),
        ("tags", "TEXT NOT NULL DEFAULT '[]'"),
        ("sort_order", "INTEGER NOT NULL DEFAULT 0"),
    ],
    "subitem_episodes": [
        ("label", "TEXT"),
        ("tags", "TEXT NOT NULL DEFAULT '[]'"),
        ("sort_order", "INTEGER NOT NULL DEFAULT 0"),
    ],
    "speaker_profiles": [
        ("speech_balloon_id", "TEXT"),
    ],
    "body_tag_presets": [
        ("sort_order", "INTEGER NOT NULL DEFAULT 0"),
    ],
}

INDEX_SQL = """
CREATE INDEX IF NOT EXISTS idx_threads_sort_order ON threads(sort_order);
CREATE INDEX IF NOT EXISTS idx_subitem_episodes_thread_id ON subitem_episodes(thread_id);
CREATE INDEX IF NOT EXISTS idx_subitem_episodes_sort_order ON subitem_episodes(sort_order);
CREATE INDEX IF NOT EXISTS idx_body_tag_presets_sort_order ON body_tag_presets(sort_order);
CREATE INDEX IF NOT EXISTS idx_annotations_thread_id ON body_tag_annotations(thread_id);
CREATE INDEX IF NOT EXISTS idx_annotations_episode_id ON body_tag_annotations(episode_id);
CREATE INDEX IF NOT EXISTS idx_entries_thread_id ON entries(thread_id);
CREATE INDEX IF NOT EXISTS idx_entries_episode_id ON entries(episode_id);
"""


def table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    """Return the column names of *table* (empty if the table is missing)."""
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return {row[1] for row in rows}


class Database:
    """SQLite database wrapper for the script editor.

    Creates the schema, upgrades older files and offers the summary
    queries used by the CLI.

    Usage:
        with Database("data/scripts.db") as db:
            counts = db.get_table_counts()
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self._setup_pragmas()
        self._setup_schema()

    def _setup_pragmas(self) -> None:
        """Configure SQLite pragmas for performance and reliability."""
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA synchronous=NORMAL")
        self.conn.execute("PRAGMA foreign_keys=ON")

        # Verify WAL mode
        result = self.conn.execute("PRAGMA journal_mode").fetchone()[0]
        if result != "wal":
            logger.warning("WAL mode not enabled, got: %s", result)

    def _setup_schema(self) -> None:
        """Create tables, apply additive migrations, then build indexes."""
        self.conn.executescript(SCHEMA_SQL)
        self._apply_additive_columns()
        self.conn.executescript(INDEX_SQL)
        self.conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")

    def _apply_additive_columns(self) -> None:
        version = self.conn.execute("PRAGMA user_version").fetchone()[0]
        if version >= SCHEMA_VERSION:
            return
        with self.conn:
            for table, columns in ADDITIVE_COLUMNS.items():
                existing = table_columns(self.conn, table)
                for name, ddl in columns:
                    if name not in existing:
                        self.conn.execute(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}")
                        logger.info("Added column %s.%s", table, name)

    def get_table_counts(self) -> dict[str, int]:
        """Return row counts for the tables shown by ``scriptdesk status``."""
        counts: dict[str, int] = {}
        for table in (
            "threads",
            "subitem_episodes",
            "parser_filter_terms",
            "parser_line_classifications",
            "speaker_profiles",
            "body_tag_presets",
            "body_tag_annotations",
            "entries",
        ):
            row = self.conn.execute(f"SELECT COUNT(*) AS cnt FROM {table}").fetchone()
            counts[table] = row["cnt"]
        return counts

    def get_rule_counts(self) -> dict[str, int]:
        """Return line-rule counts grouped by classification."""
        rows = self.conn.execute(
            "SELECT classification, COUNT(*) AS cnt FROM parser_line_classifications "
            "GROUP BY classification"
        ).fetchall()
        return {row["classification"]: row["cnt"] for row in rows}

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object) -> None:
        self.close()
