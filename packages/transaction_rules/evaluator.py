"""Rule evaluation: one transaction against one rule.

A broken rule matches nothing. Malformed definitions, conditions that fail to
compile and faults raised while a predicate runs are all logged and reported
as ``False``; none of them reaches the caller, so a single bad rule cannot stop
a categorization pass.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from .cache import PredicateCache, default_cache
from .config import DEFAULT_EVAL_BUDGET_SECONDS
from .dsl import CompiledPredicate, RuleCompileError
from .expressions import EvaluationTimeout
from .logging_setup import get_logger
from .models import MalformedRuleError, Rule, split_rule_definition

_logger = get_logger(__name__)


def _transaction_id(transaction: Any) -> Any:
    if isinstance(transaction, Mapping):
        return transaction.get("id")
    return getattr(transaction, "id", None)


def as_rule(rule: Rule | Mapping[str, Any] | None) -> Rule | None:
    """Return ``rule`` as a :class:`Rule`; mappings (e.g. decoded JSON) are validated.

    An invalid mapping is logged and yields ``None``.
    """

    if rule is None or isinstance(rule, Rule):
        return rule
    try:
        return Rule.model_validate(rule)
    except ValidationError as e:
        _logger.warning("rule:invalid errors=%d first=%s", e.error_count(), e.errors()[0]["msg"])
        return None


def _lookup_predicate(rule: Rule, cache: PredicateCache) -> CompiledPredicate | None:
    definition = rule.rule_definition
    try:
        if isinstance(definition, Mapping):
            return cache.get_or_compile_tree(definition)
        condition, _ = split_rule_definition(definition)
        return cache.get_or_compile(condition)
    except MalformedRuleError as e:
        _logger.warning("rule:malformed id=%s reason=%s definition=%r", rule.id, e, definition)
    except RuleCompileError as e:
        _logger.warning("rule:compile_failed id=%s error=%s", rule.id, e)
    return None


def evaluate_rule(
    transaction: Any,
    rule: Rule | Mapping[str, Any] | None,
    *,
    cache: PredicateCache | None = None,
    budget_seconds: float | None = DEFAULT_EVAL_BUDGET_SECONDS,
) -> bool:
    """Return whether ``rule`` matches ``transaction``.

    ``transaction`` is a :class:`~transaction_rules.models.Transaction` or a
    mapping with the same keys; it is never modified. ``rule`` may likewise be
    a mapping such as ``{"ruleDefinition": ...}``. ``budget_seconds`` bounds
    the predicate call (``None`` disables the bound); running over it counts as
    no match.
    """

    rule = as_rule(rule)
    if rule is None or not rule.rule_definition:
        return False

    predicate = _lookup_predicate(rule, cache if cache is not None else default_cache)
    if predicate is None:
        return False

    try:
        return predicate(transaction, budget_seconds=budget_seconds)
    except EvaluationTimeout as e:
        _logger.warning(
            "rule:timeout id=%s transaction=%s error=%s", rule.id, _transaction_id(transaction), e
        )
    except Exception as e:  # noqa: BLE001 - any fault means "no match"
        _logger.debug(
            "rule:evaluation_failed id=%s transaction=%s error=%s",
            rule.id,
            _transaction_id(transaction),
            e,
            exc_info=True,
        )
    return False


__all__ = ["as_rule", "evaluate_rule"]
