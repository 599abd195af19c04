"""Categorization engine: re-apply every rule to every transaction.

For each transaction the rules are scanned in their stored order and the first
matching rule decides the category (first match wins). Transactions can be
processed on several threads; each transaction's own rule scan stays
sequential.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, MutableMapping
from typing import Any

from .cache import PredicateCache
from .config import DEFAULT_EVAL_BUDGET_SECONDS, resolve_max_workers
from .evaluator import as_rule, evaluate_rule
from .logging_setup import get_logger
from .models import DEFAULT_CATEGORY, MalformedRuleError, ReapplyResult, Rule
from .pmap import p_map

_logger = get_logger(__name__)


def _get_category(transaction: Any) -> str:
    if isinstance(transaction, MutableMapping):
        return transaction.get("category", DEFAULT_CATEGORY)
    return transaction.category


def _set_category(transaction: Any, category: str) -> None:
    if isinstance(transaction, MutableMapping):
        transaction["category"] = category
    else:
        transaction.category = category


def _get_id(transaction: Any) -> str:
    if isinstance(transaction, MutableMapping):
        return str(transaction.get("id", ""))
    return str(transaction.id)


def _prepare_rules(rules: Iterable[Rule | Mapping[str, Any]]) -> list[tuple[Rule, str]]:
    """Pair each usable rule with its target category, skipping malformed ones."""

    prepared: list[tuple[Rule, str]] = []
    for raw in rules:
        rule = as_rule(raw)
        if rule is None:
            continue
        try:
            prepared.append((rule, rule.target_category()))
        except MalformedRuleError as e:
            _logger.warning(
                "reapply:skip_rule id=%s reason=%s definition=%r", rule.id, e, rule.rule_definition
            )
    return prepared


def reapply_all(
    transactions: Iterable[Any],
    rules: Iterable[Rule | Mapping[str, Any]],
    *,
    cache: PredicateCache | None = None,
    budget_seconds: float | None = DEFAULT_EVAL_BUDGET_SECONDS,
    max_workers: int = 1,
) -> ReapplyResult:
    """Re-categorize ``transactions`` in place using ``rules``.

    Transactions are :class:`~transaction_rules.models.Transaction` models or
    mutable mappings. The returned count covers transactions whose category
    actually changed, so a second run over unchanged inputs reports zero.
    """

    txs = list(transactions)
    rule_list = list(rules)
    prepared = _prepare_rules(rule_list)

    def _apply(tx: Any) -> bool:
        for rule, target in prepared:
            if evaluate_rule(tx, rule, cache=cache, budget_seconds=budget_seconds):
                if _get_category(tx) == target:
                    return False
                _set_category(tx, target)
                return True
        return False

    workers = resolve_max_workers(max_workers, len(txs))
    if workers > 1:
        changed = p_map(txs, _apply, concurrency=workers, thread_name_prefix="reapply")
    else:
        changed = [_apply(tx) for tx in txs]

    changed_ids = tuple(_get_id(tx) for tx, flag in zip(txs, changed, strict=True) if flag)
    _logger.info(
        "reapply:done transactions=%d rules=%d usable_rules=%d updated=%d workers=%d",
        len(txs),
        len(rule_list),
        len(prepared),
        len(changed_ids),
        workers,
    )
    return ReapplyResult(updated_count=len(changed_ids), changed_ids=changed_ids)


__all__ = ["reapply_all"]
