"""Public API for the ``transaction_rules`` package.

The two operations transport layers build on are :func:`evaluate` and
:func:`reapply_all`. :func:`reapply_rules` runs a pass against a storage
collaborator and :func:`check_rule` gives authoring surfaces synchronous
diagnostics, which the evaluator itself deliberately swallows.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .cache import PredicateCache, default_cache
from .config import DEFAULT_EVAL_BUDGET_SECONDS
from .engine import reapply_all
from .evaluator import evaluate_rule
from .logging_setup import get_logger
from .models import ReapplyResult, Rule, split_rule_definition
from .store import RuleStore

_logger = get_logger(__name__)


def evaluate(
    transaction: Any,
    rule: Rule | Mapping[str, Any] | None,
    *,
    cache: PredicateCache | None = None,
    budget_seconds: float | None = DEFAULT_EVAL_BUDGET_SECONDS,
) -> bool:
    """Return whether ``rule`` matches ``transaction``; never raises for bad rules."""

    return evaluate_rule(transaction, rule, cache=cache, budget_seconds=budget_seconds)


def reapply_rules(
    store: RuleStore,
    *,
    cache: PredicateCache | None = None,
    budget_seconds: float | None = DEFAULT_EVAL_BUDGET_SECONDS,
    max_workers: int = 1,
) -> ReapplyResult:
    """Re-categorize everything in ``store`` and save the transactions that changed."""

    transactions = list(store.list_transactions())
    result = reapply_all(
        transactions,
        store.list_rules(),
        cache=cache,
        budget_seconds=budget_seconds,
        max_workers=max_workers,
    )
    changed = set(result.changed_ids)
    for tx in transactions:
        if tx.id in changed:
            store.save_transaction(tx)
    _logger.info("reapply_rules:saved count=%d", len(changed))
    return result


def check_rule(
    rule_definition: str | Mapping[str, Any],
    *,
    new_category: str | None = None,
    cache: PredicateCache | None = None,
) -> str:
    """Compile a rule definition and return the category it assigns.

    Raises :class:`~transaction_rules.models.MalformedRuleError` or
    :class:`~transaction_rules.dsl.RuleCompileError` with a diagnostic. A
    successful compile is kept in the cache.
    """

    cache = cache if cache is not None else default_cache
    if isinstance(rule_definition, Mapping):
        cache.get_or_compile_tree(rule_definition)
        rule = Rule(rule_definition=dict(rule_definition), new_category=new_category)
        return rule.target_category()
    condition, category = split_rule_definition(rule_definition)
    cache.get_or_compile(condition)
    return category


__all__ = ["check_rule", "evaluate", "reapply_all", "reapply_rules"]
