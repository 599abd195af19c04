"""Pytest configuration for test isolation.

Makes the workspace packages importable without an install (``packages/`` for
``transaction_rules``, ``libs/db/src`` for ``db``, and the repo root for
``tests.helpers``), and keeps tests hermetic:

- the process-wide predicate cache is emptied around every test, so hit/miss
  assertions do not depend on test order;
- rule settings from the developer's environment are removed.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in (str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT))
    if p not in sys.path
]

from transaction_rules.cache import default_cache  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_rule_state(monkeypatch: pytest.MonkeyPatch):
    for name in ("RULES_EVAL_BUDGET_MS", "RULES_MAX_WORKERS", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)
    default_cache.clear()
    yield
    default_cache.clear()
