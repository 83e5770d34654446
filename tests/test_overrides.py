"""Tests for OverrideCache against the SQLite store and a failing mock."""

from __future__ import annotations

import pytest

from scriptdesk.editor.overrides import OverrideCache
from scriptdesk.exceptions import PersistenceError
from scriptdesk.models import Classification, LineRule


class TestOverrideCache:
    @pytest.mark.asyncio
    async def test_reload_reads_store(self, store):
        await store.upsert_blocked_term("スキップ")
        await store.upsert_line_rule("教室", Classification.LOCATION)
        await store.upsert_speaker("アリス")

        cache = OverrideCache(store)
        await cache.reload()

        assert cache.blocked_terms == ("スキップ",)
        assert cache.rule_for("教室") is Classification.LOCATION
        assert cache.known_speakers == frozenset({"アリス"})

    @pytest.mark.asyncio
    async def test_set_filter_term_round_trip(self, store):
        cache = OverrideCache(store)
        await cache.set_filter_term("スキップ", True)
        assert cache.is_blocked("スキップ")
        assert await store.load_blocked_terms() == ["スキップ"]

        await cache.set_filter_term("スキップ", False)
        assert not cache.is_blocked("スキップ")
        assert await store.load_blocked_terms() == []

    @pytest.mark.asyncio
    async def test_set_line_rule_none_deletes(self, store):
        cache = OverrideCache(store)
        await cache.set_line_rule("教室", Classification.LOCATION)
        await cache.set_line_rule("教室", Classification.DIRECTION)
        assert cache.line_rules == {"教室": Classification.DIRECTION}

        await cache.set_line_rule("教室", None)
        assert cache.line_rules == {}

    @pytest.mark.asyncio
    async def test_snapshot_is_detached(self, store):
        cache = OverrideCache(store)
        await cache.set_line_rule("教室", Classification.LOCATION)
        snapshot = cache.snapshot()
        await cache.set_line_rule("教室", None)
        assert snapshot.line_rules == {"教室": Classification.LOCATION}

    @pytest.mark.asyncio
    async def test_snapshot_classifies(self, store):
        await store.upsert_speaker("アリス")
        cache = OverrideCache(store)
        await cache.reload()
        parsed = cache.snapshot().classify("アリス\nこんにちは")
        assert parsed[0].speaker == "アリス"


class TestFailingStore:
    @pytest.mark.asyncio
    async def test_failed_reload_keeps_previous_maps(self, mock_store):
        mock_store.load_line_rules.return_value = [LineRule("教室", Classification.LOCATION)]
        cache = OverrideCache(mock_store)
        await cache.reload()

        mock_store.load_known_speakers.side_effect = PersistenceError("Loading speakers failed")
        mock_store.load_line_rules.return_value = []
        with pytest.raises(PersistenceError):
            await cache.reload()

        assert cache.rule_for("教室") is Classification.LOCATION

    @pytest.mark.asyncio
    async def test_failed_write_skips_reload(self, mock_store):
        mock_store.upsert_blocked_term.side_effect = PersistenceError("disk I/O error")
        cache = OverrideCache(mock_store)

        with pytest.raises(PersistenceError, match="disk I/O error"):
            await cache.set_filter_term("x", True)

        mock_store.load_blocked_terms.assert_not_called()
        assert not cache.is_blocked("x")

    @pytest.mark.asyncio
    async def test_failed_reload_restores_blocked_term(self, mock_store):
        mock_store.load_blocked_terms.return_value = ["x"]
        cache = OverrideCache(mock_store)
        await cache.reload()

        mock_store.load_blocked_terms.side_effect = PersistenceError("network down")
        with pytest.raises(PersistenceError, match="network down"):
            await cache.set_filter_term("x", False)

        mock_store.delete_blocked_term.assert_awaited_once_with("x")
        mock_store.upsert_blocked_term.assert_awaited_once_with("x")
        assert cache.is_blocked("x")

    @pytest.mark.asyncio
    async def test_failed_reload_restores_previous_rule(self, mock_store):
        mock_store.load_line_rules.return_value = [LineRule("教室", Classification.LOCATION)]
        cache = OverrideCache(mock_store)
        await cache.reload()

        mock_store.load_known_speakers.side_effect = PersistenceError("network down")
        with pytest.raises(PersistenceError):
            await cache.set_line_rule("教室", Classification.DIRECTION)

        assert [c.args for c in mock_store.upsert_line_rule.await_args_list] == [
            ("教室", Classification.DIRECTION),
            ("教室", Classification.LOCATION),
        ]
        assert cache.rule_for("教室") is Classification.LOCATION
