"""Process-wide cache of compiled predicates.

Entries are keyed by the trimmed condition text (structured trees use their
canonical JSON in a separate key space). The cache only ever grows: rule sets
are authored by hand and stay small.

Compilation failures are never stored, so a failing text is compiled again on
its next lookup. Lookups are thread-safe; compilation runs outside the lock and
concurrent compilations of the same text converge on the first entry stored.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from typing import Any, TypeAlias

from .dsl import CompiledPredicate, compile_condition
from .logging_setup import get_logger
from .tree import compile_condition_tree, tree_key

_logger = get_logger(__name__)

_Key: TypeAlias = tuple[str, str]


class PredicateCache:
    def __init__(self) -> None:
        self._entries: dict[_Key, CompiledPredicate] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get_or_compile(self, condition: str) -> CompiledPredicate:
        """Return the predicate for ``condition``, compiling it on a miss.

        Raises :class:`~transaction_rules.dsl.RuleCompileError` when the text
        does not compile; nothing is cached in that case.
        """

        text = condition.strip()
        return self._get_or_insert(("text", text), lambda: compile_condition(text))

    def get_or_compile_tree(self, tree: Mapping[str, Any]) -> CompiledPredicate:
        return self._get_or_insert(("tree", tree_key(tree)), lambda: compile_condition_tree(tree))

    def _get_or_insert(
        self, key: _Key, compile_fn: Callable[[], CompiledPredicate]
    ) -> CompiledPredicate:
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                self.hits += 1
                return cached
            self.misses += 1

        predicate = compile_fn()

        with self._lock:
            stored = self._entries.setdefault(key, predicate)
            size = len(self._entries)
        _logger.debug("predicate_cache:stored kind=%s size=%d source=%r", key[0], size, key[1])
        return stored

    def __contains__(self, condition: object) -> bool:
        if not isinstance(condition, str):
            return False
        with self._lock:
            return ("text", condition.strip()) in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0


default_cache = PredicateCache()


__all__ = ["PredicateCache", "default_cache"]
