"""Typed expression tree for rule conditions and its interpreter.

Nodes are immutable and carry their static :class:`ValueType` so the compiler
can reject ill-typed conditions up front. Evaluation walks the tree; nothing is
turned into Python source.

Runtime semantics
-----------------
- Fields are read from the transaction at call time (attribute access for
  models, item access for mappings). A missing field is an evaluation fault.
- ``===``/``!==`` compare strictly: values of different kinds are never
  equal, numbers compare by value whatever their Python type.
- Ordering operators need two numbers; anything else is an evaluation fault.
- Logical operators short-circuit and coerce with JavaScript-like truthiness.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

import regex

from .helpers import HELPERS, HelperResult


class ValueType(Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"


FIELD_TYPES: Mapping[str, ValueType] = {
    "merchant": ValueType.STRING,
    "amount": ValueType.NUMBER,
    "date": ValueType.DATE,
    "account": ValueType.STRING,
    "category": ValueType.STRING,
}

EQUALITY_OPS = frozenset({"===", "!=="})
ORDERING_OPS = frozenset({">", "<", ">=", "<="})
COMPARISON_OPS = EQUALITY_OPS | ORDERING_OPS


class RuleEvaluationError(RuntimeError):
    """A valid condition failed against a particular transaction."""


class EvaluationTimeout(RuleEvaluationError):
    """Evaluation ran past its time budget."""


# ---------------------------------------------------------------------------
# Evaluation budget
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Budget:
    """Deadline for a single predicate call (``None`` means unlimited)."""

    deadline: float | None = None

    @classmethod
    def start(cls, seconds: float | None) -> Budget:
        if seconds is None or seconds <= 0:
            return cls()
        return cls(time.monotonic() + seconds)

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def check(self) -> None:
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise EvaluationTimeout("evaluation budget exhausted")


UNLIMITED = Budget()


def search_with_budget(pattern: regex.Pattern[str], text: str, budget: Budget) -> bool:
    """Run ``pattern.search(text)`` within the remaining budget.

    The regex engine enforces the deadline itself, so a pathological pattern
    is interrupted rather than left running.
    """

    remaining = budget.remaining()
    if remaining is None:
        return pattern.search(text) is not None
    if remaining <= 0:
        raise EvaluationTimeout("evaluation budget exhausted before regex search")
    try:
        return pattern.search(text, timeout=remaining) is not None
    except TimeoutError as e:
        raise EvaluationTimeout(f"regex /{pattern.pattern}/ exceeded the evaluation budget") from e


# ---------------------------------------------------------------------------
# Value semantics
# ---------------------------------------------------------------------------


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value != ""
    if is_number(value):
        d = to_decimal(value)
        return not (d.is_nan() or d == 0)
    return bool(value)


def strict_equals(left: Any, right: Any) -> bool:
    if is_number(left) and is_number(right):
        return to_decimal(left) == to_decimal(right)
    if isinstance(left, bool) and isinstance(right, bool):
        return left is right
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if left is None and right is None:
        return True
    if is_number(left) or is_number(right) or isinstance(left, str) or isinstance(right, str):
        return False
    if type(left) is type(right):
        return left == right
    return False


def read_field(transaction: Any, name: str) -> Any:
    if isinstance(transaction, Mapping):
        try:
            return transaction[name]
        except KeyError:
            raise RuleEvaluationError(f"transaction has no field {name!r}") from None
    try:
        return getattr(transaction, name)
    except AttributeError:
        raise RuleEvaluationError(f"transaction has no field {name!r}") from None


def _require_str(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise RuleEvaluationError(f"{what} expects a string, got {type(value).__name__}")
    return value


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


class Expr:
    """Base class of expression nodes."""

    __slots__ = ()

    @property
    def value_type(self) -> ValueType:
        raise NotImplementedError

    def evaluate(self, transaction: Any, budget: Budget = UNLIMITED) -> Any:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class StringLiteral(Expr):
    value: str

    @property
    def value_type(self) -> ValueType:
        return ValueType.STRING

    def evaluate(self, transaction: Any, budget: Budget = UNLIMITED) -> Any:
        return self.value


@dataclass(frozen=True, slots=True)
class NumberLiteral(Expr):
    value: Decimal

    @property
    def value_type(self) -> ValueType:
        return ValueType.NUMBER

    def evaluate(self, transaction: Any, budget: Budget = UNLIMITED) -> Any:
        return self.value


@dataclass(frozen=True, slots=True)
class FieldAccess(Expr):
    name: str

    @property
    def value_type(self) -> ValueType:
        return FIELD_TYPES[self.name]

    def evaluate(self, transaction: Any, budget: Budget = UNLIMITED) -> Any:
        return read_field(transaction, self.name)


@dataclass(frozen=True, slots=True)
class HelperCall(Expr):
    name: str
    argument: Expr

    @property
    def value_type(self) -> ValueType:
        if HELPERS[self.name].result is HelperResult.BOOLEAN:
            return ValueType.BOOLEAN
        return ValueType.NUMBER

    def evaluate(self, transaction: Any, budget: Budget = UNLIMITED) -> Any:
        arg = self.argument.evaluate(transaction, budget)
        try:
            return HELPERS[self.name].func(arg)
        except (TypeError, ValueError) as e:
            raise RuleEvaluationError(f"{self.name}() failed: {e}") from e


@dataclass(frozen=True, slots=True)
class Comparison(Expr):
    op: str
    left: Expr
    right: Expr

    @property
    def value_type(self) -> ValueType:
        return ValueType.BOOLEAN

    def evaluate(self, transaction: Any, budget: Budget = UNLIMITED) -> Any:
        budget.check()
        lhs = self.left.evaluate(transaction, budget)
        rhs = self.right.evaluate(transaction, budget)
        if self.op == "===":
            return strict_equals(lhs, rhs)
        if self.op == "!==":
            return not strict_equals(lhs, rhs)
        if not (is_number(lhs) and is_number(rhs)):
            raise RuleEvaluationError(
                f"operator {self.op!r} needs numbers, got "
                f"{type(lhs).__name__} and {type(rhs).__name__}"
            )
        a, b = to_decimal(lhs), to_decimal(rhs)
        try:
            if self.op == ">":
                return a > b
            if self.op == "<":
                return a < b
            if self.op == ">=":
                return a >= b
            return a <= b
        except InvalidOperation as e:
            raise RuleEvaluationError(f"cannot order {a} and {b}") from e


def _chain(node: Expr, kind: type[Expr]) -> list[Expr]:
    """Operands of a left-leaning run of ``kind`` nodes, in source order.

    ``a && b && c`` parses as ``(a && b) && c``; walking the left spine keeps
    long chains off the Python call stack.
    """

    operands: list[Expr] = []
    while isinstance(node, kind):
        operands.append(node.right)  # type: ignore[attr-defined]
        node = node.left  # type: ignore[attr-defined]
    operands.append(node)
    operands.reverse()
    return operands


@dataclass(frozen=True, slots=True)
class LogicalAnd(Expr):
    left: Expr
    right: Expr

    @property
    def value_type(self) -> ValueType:
        return ValueType.BOOLEAN

    def evaluate(self, transaction: Any, budget: Budget = UNLIMITED) -> Any:
        for operand in _chain(self, LogicalAnd):
            budget.check()
            if not truthy(operand.evaluate(transaction, budget)):
                return False
        return True


@dataclass(frozen=True, slots=True)
class LogicalOr(Expr):
    left: Expr
    right: Expr

    @property
    def value_type(self) -> ValueType:
        return ValueType.BOOLEAN

    def evaluate(self, transaction: Any, budget: Budget = UNLIMITED) -> Any:
        for operand in _chain(self, LogicalOr):
            budget.check()
            if truthy(operand.evaluate(transaction, budget)):
                return True
        return False


@dataclass(frozen=True, slots=True)
class IncludesCheck(Expr):
    target: Expr
    needle: Expr

    @property
    def value_type(self) -> ValueType:
        return ValueType.BOOLEAN

    def evaluate(self, transaction: Any, budget: Budget = UNLIMITED) -> Any:
        haystack = _require_str(self.target.evaluate(transaction, budget), "includes()")
        needle = _require_str(self.needle.evaluate(transaction, budget), "includes()")
        return needle in haystack


@dataclass(frozen=True, slots=True)
class CaseFold(Expr):
    target: Expr
    upper: bool = False

    @property
    def value_type(self) -> ValueType:
        return ValueType.STRING

    def evaluate(self, transaction: Any, budget: Budget = UNLIMITED) -> Any:
        method = "toUpperCase()" if self.upper else "toLowerCase()"
        text = _require_str(self.target.evaluate(transaction, budget), method)
        return text.upper() if self.upper else text.lower()


@dataclass(frozen=True, slots=True)
class RegexMatch(Expr):
    pattern: regex.Pattern[str]
    target: Expr

    @property
    def value_type(self) -> ValueType:
        return ValueType.BOOLEAN

    def evaluate(self, transaction: Any, budget: Budget = UNLIMITED) -> Any:
        text = _require_str(self.target.evaluate(transaction, budget), "test()")
        return search_with_budget(self.pattern, text, budget)


__all__ = [
    "COMPARISON_OPS",
    "EQUALITY_OPS",
    "FIELD_TYPES",
    "ORDERING_OPS",
    "UNLIMITED",
    "Budget",
    "CaseFold",
    "Comparison",
    "EvaluationTimeout",
    "Expr",
    "FieldAccess",
    "HelperCall",
    "IncludesCheck",
    "LogicalAnd",
    "LogicalOr",
    "NumberLiteral",
    "RegexMatch",
    "RuleEvaluationError",
    "StringLiteral",
    "ValueType",
    "is_number",
    "read_field",
    "search_with_budget",
    "strict_equals",
    "to_decimal",
    "truthy",
]
