"""Shared pytest fixtures for scriptdesk tests.

Provides a temporary file-backed database, a connected async store, a
seeded sub-item, an editor session over that store, and a mocked store
for failure-path tests.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from scriptdesk.database import Database
from scriptdesk.editor.session import EditorSession
from scriptdesk.models import ThreadScope
from scriptdesk.store.sqlite import AsyncSqliteStore


@pytest.fixture
def tmp_db(tmp_path: Path) -> Database:
    """Create a temporary SQLite database (file-based for WAL support)."""
    db = Database(tmp_path / "test.db")
    yield db
    db.close()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path to an initialized, empty database file."""
    path = tmp_path / "scripts.db"
    Database(path).close()
    return path


@pytest.fixture
async def store(db_path: Path) -> AsyncSqliteStore:
    """Connected AsyncSqliteStore over the temporary database."""
    async with AsyncSqliteStore(str(db_path)) as s:
        yield s


@pytest.fixture
async def thread(store: AsyncSqliteStore) -> ThreadScope:
    """A sub-item with an empty body."""
    thread_id = await store.create_thread("Main story")
    return ThreadScope(thread_id)


@pytest.fixture
async def session(store: AsyncSqliteStore, thread: ThreadScope) -> EditorSession:
    """EditorSession with overrides loaded and the seeded sub-item open."""
    s = EditorSession(store)
    await s.start()
    await s.open(thread)
    return s


@pytest.fixture
def mock_store() -> MagicMock:
    """Store double whose async methods are AsyncMocks returning empty data."""
    m = MagicMock(spec=AsyncSqliteStore)
    m.load_blocked_terms.return_value = []
    m.load_line_rules.return_value = []
    m.load_known_speakers.return_value = []
    m.load_annotations.return_value = []
    m.load_body.return_value = ""
    m.insert_annotation.return_value = "ann-1"
    return m
