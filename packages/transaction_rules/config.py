"""Runtime settings read from the environment.

Library functions take explicit keyword arguments; only entrypoints (the CLI)
build a :class:`Settings` from the environment, after loading a local ``.env``
with ``python-dotenv``.

Variables
---------
- ``RULES_EVAL_BUDGET_MS``: time budget of a single predicate call in
  milliseconds. ``0`` disables the budget. Default ``1000``.
- ``RULES_MAX_WORKERS``: threads used by ``reapply_all``. Default ``1``,
  capped at 32.
- ``DATABASE_URL``: SQLAlchemy URL of the rule/transaction store.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_EVAL_BUDGET_SECONDS = 1.0
DEFAULT_MAX_WORKERS = 1
MAX_WORKERS_CAP = 32


def _env_int(environ: Mapping[str, str], name: str) -> int | None:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


def resolve_max_workers(requested: int | None, n_items: int) -> int:
    """Clamp a worker count to ``[1, min(n_items, MAX_WORKERS_CAP)]``."""

    if requested is None or requested < 1:
        requested = DEFAULT_MAX_WORKERS
    return max(1, min(requested, n_items, MAX_WORKERS_CAP))


@dataclass(frozen=True, slots=True)
class Settings:
    eval_budget_seconds: float | None = DEFAULT_EVAL_BUDGET_SECONDS
    max_workers: int = DEFAULT_MAX_WORKERS
    database_url: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ

        budget: float | None = DEFAULT_EVAL_BUDGET_SECONDS
        budget_ms = _env_int(env, "RULES_EVAL_BUDGET_MS")
        if budget_ms is not None and budget_ms >= 0:
            budget = budget_ms / 1000 if budget_ms > 0 else None

        workers = _env_int(env, "RULES_MAX_WORKERS")
        if workers is None or workers < 1:
            workers = DEFAULT_MAX_WORKERS

        url = (env.get("DATABASE_URL") or "").strip() or None
        return cls(
            eval_budget_seconds=budget,
            max_workers=min(workers, MAX_WORKERS_CAP),
            database_url=url,
        )


__all__ = [
    "DEFAULT_EVAL_BUDGET_SECONDS",
    "DEFAULT_MAX_WORKERS",
    "MAX_WORKERS_CAP",
    "Settings",
    "resolve_max_workers",
]
