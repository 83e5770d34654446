"""Process-local cache of the parser override dictionaries.

Blocked terms, line rules and known speakers live in the store. The cache
holds the last loaded copy and is refreshed wholesale after every mutation,
so it never drifts from the persisted rows. A mutation whose reload fails
is written back to its previous value before the error propagates.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable

from scriptdesk.exceptions import PersistenceError
from scriptdesk.models import Classification
from scriptdesk.parser.classifier import ClassifierInputs
from scriptdesk.store.base import ScriptStore

logger = logging.getLogger(__name__)


class OverrideCache:
    """Blocked terms, line rules and known speakers for one editor session.

    Consumers read an immutable ``snapshot()`` instead of the live maps.

    Usage::

        cache = OverrideCache(store)
        await cache.reload()
        await cache.set_line_rule("効果音: ドア", Classification.DIRECTION)
        parsed = cache.snapshot().classify(body)
    """

    def __init__(self, store: ScriptStore) -> None:
        self._store = store
        self._blocked_terms: tuple[str, ...] = ()
        self._line_rules: dict[str, Classification] = {}
        self._known_speakers: frozenset[str] = frozenset()

    @property
    def blocked_terms(self) -> tuple[str, ...]:
        return self._blocked_terms

    @property
    def line_rules(self) -> dict[str, Classification]:
        return dict(self._line_rules)

    @property
    def known_speakers(self) -> frozenset[str]:
        return self._known_speakers

    def is_blocked(self, term: str) -> bool:
        return term in self._blocked_terms

    def rule_for(self, line_text: str) -> Classification | None:
        return self._line_rules.get(line_text)

    def snapshot(self) -> ClassifierInputs:
        return ClassifierInputs(
            blocked_terms=frozenset(self._blocked_terms),
            line_rules=dict(self._line_rules),
            known_speakers=self._known_speakers,
        )

    async def reload(self) -> None:
        """Replace every cached map with fresh store contents.

        All three loads must succeed before anything is swapped in.
        """
        terms = await self._store.load_blocked_terms()
        rules = await self._store.load_line_rules()
        speakers = await self._store.load_known_speakers()

        self._blocked_terms = tuple(dict.fromkeys(terms))
        self._line_rules = {rule.line_text: rule.classification for rule in rules}
        self._known_speakers = frozenset(speakers)
        logger.debug(
            "Loaded %d blocked terms, %d line rules, %d speakers",
            len(self._blocked_terms),
            len(self._line_rules),
            len(self._known_speakers),
        )

    async def set_filter_term(self, term: str, enabled: bool) -> None:
        """Block (enabled) or unblock a literal line, then reload.

        If the reload fails the write is reverted, so the store and the
        cache never disagree about an action that was reported as failed.
        """
        was_blocked = term in self._blocked_terms
        await self._write_term(term, enabled)
        try:
            await self.reload()
        except PersistenceError:
            logger.warning("Reload failed after changing term %r; reverting", term)
            await self._revert(self._write_term(term, was_blocked))
            raise

    async def set_line_rule(self, line_text: str, classification: Classification | None) -> None:
        """Upsert a rule, or delete it when *classification* is None, then reload.

        A failed reload reverts the write, as in ``set_filter_term``.
        """
        before = self._line_rules.get(line_text)
        await self._write_rule(line_text, classification)
        try:
            await self.reload()
        except PersistenceError:
            logger.warning("Reload failed after changing rule %r; reverting", line_text)
            await self._revert(self._write_rule(line_text, before))
            raise

    async def _write_term(self, term: str, enabled: bool) -> None:
        if enabled:
            await self._store.upsert_blocked_term(term)
        else:
            await self._store.delete_blocked_term(term)

    async def _write_rule(self, line_text: str, classification: Classification | None) -> None:
        if classification is None:
            await self._store.delete_line_rule(line_text)
        else:
            await self._store.upsert_line_rule(line_text, Classification(classification))

    async def _revert(self, write: Awaitable[None]) -> None:
        try:
            await write
        except PersistenceError:
            logger.exception("Reverting the override write failed; reload to re-sync")
