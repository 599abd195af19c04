"""Structured condition trees.

Besides condition text, rules may be stored as nested objects::

    {"operator": "AND", "conditions": [
        {"operator": "==", "field": "transaction.merchant", "value": "Walmart"},
        {"operator": "<=", "field": "transaction.amount", "value": 80},
    ]}

``field`` uses the operand syntax of the rule language (so
``"dayOfWeek(transaction.date)"`` works); ``value`` is a string or number
literal. Supported operators: ``AND``/``OR`` (with ``conditions``), the
comparisons ``== != === !== > < >= <=``, ``contains`` (substring) and
``matches`` (regular expression search, flags from ``flags``, default ``"i"``).

Trees compile into the same expression nodes as condition text.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from .dsl import (
    MAX_NESTING,
    CompiledPredicate,
    RuleCompileError,
    compile_regex,
    make_comparison,
    parse_operand,
)
from .expressions import (
    Expr,
    IncludesCheck,
    LogicalAnd,
    LogicalOr,
    NumberLiteral,
    RegexMatch,
    StringLiteral,
    ValueType,
)

_COMPARISONS = {
    "==": "===",
    "===": "===",
    "!=": "!==",
    "!==": "!==",
    ">": ">",
    "<": "<",
    ">=": ">=",
    "<=": "<=",
}


def tree_key(tree: Mapping[str, Any]) -> str:
    """Canonical text of a tree, used as its cache key and predicate source."""
    try:
        return json.dumps(tree, sort_keys=True, separators=(",", ":"), default=str)
    except RecursionError:
        raise RuleCompileError("condition tree nested too deeply") from None


def _literal(value: Any, path: str) -> Expr:
    if isinstance(value, str):
        return StringLiteral(value)
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return NumberLiteral(Decimal(str(value)))
    raise RuleCompileError(f"{path}: 'value' must be a string or a number")


def _field(node: Mapping[str, Any], path: str) -> Expr:
    field = node.get("field")
    if not isinstance(field, str) or not field.strip():
        raise RuleCompileError(f"{path}: missing 'field'")
    try:
        return parse_operand(field)
    except RuleCompileError as e:
        raise RuleCompileError(f"{path}: invalid field {field!r}: {e}") from e


def build_tree(node: Any, path: str = "$", depth: int = 0) -> Expr:
    """Translate a structured condition into an expression tree."""

    if depth > MAX_NESTING:
        raise RuleCompileError(f"{path}: condition tree nested too deeply (limit {MAX_NESTING})")
    if not isinstance(node, Mapping):
        raise RuleCompileError(f"{path}: expected an object")
    operator = node.get("operator")
    if not isinstance(operator, str):
        raise RuleCompileError(f"{path}: missing 'operator'")

    if operator.upper() in ("AND", "OR"):
        conditions = node.get("conditions")
        if not isinstance(conditions, list) or not conditions:
            raise RuleCompileError(f"{path}: '{operator}' needs a non-empty 'conditions' list")
        combine = LogicalAnd if operator.upper() == "AND" else LogicalOr
        parts = [
            build_tree(c, f"{path}.conditions[{i}]", depth + 1) for i, c in enumerate(conditions)
        ]
        expr = parts[0]
        for part in parts[1:]:
            expr = combine(expr, part)
        return expr

    target = _field(node, path)
    value = _literal(node.get("value"), path)

    if operator in _COMPARISONS:
        try:
            return make_comparison(_COMPARISONS[operator], target, value)
        except RuleCompileError as e:
            raise RuleCompileError(f"{path}: {e.message}") from e
    if operator in ("contains", "matches"):
        if target.value_type is not ValueType.STRING or not isinstance(value, StringLiteral):
            raise RuleCompileError(f"{path}: '{operator}' needs a string field and string value")
        if operator == "contains":
            return IncludesCheck(target, value)
        flags = node.get("flags", "i")
        if not isinstance(flags, str):
            raise RuleCompileError(f"{path}: 'flags' must be a string")
        return RegexMatch(compile_regex(value.value, flags), target)
    raise RuleCompileError(f"{path}: unsupported operator {operator!r}")


def compile_condition_tree(tree: Mapping[str, Any]) -> CompiledPredicate:
    """Compile a structured condition; raises :class:`RuleCompileError`."""
    return CompiledPredicate(tree_key(tree), build_tree(tree))


__all__ = ["build_tree", "compile_condition_tree", "tree_key"]
