"""Persistence interface and its SQLite implementation."""

from scriptdesk.store.base import ScriptCatalog, ScriptStore
from scriptdesk.store.sqlite import AsyncSqliteStore, StoreCapabilities

__all__ = ["AsyncSqliteStore", "ScriptCatalog", "ScriptStore", "StoreCapabilities"]
