"""Data models for ``transaction_rules``.

Transactions and rules are pydantic models so that records loaded from JSON or
a database are validated once at the boundary. The rule engine itself also
accepts plain mappings (:data:`TransactionRecord`) with the same keys.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_CATEGORY = "Uncategorized"
ARROW = "->"

TransactionRecord: TypeAlias = Mapping[str, Any]
"""A transaction as a plain mapping (``merchant``, ``amount``, ``date``, ...)."""


def new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Rule definition text
# ---------------------------------------------------------------------------


class MalformedRuleError(ValueError):
    """A rule definition that is not ``<condition> -> "<category>"``."""


def strip_quotes(text: str) -> str:
    """Drop one leading and one trailing double quote when present."""
    return text.removeprefix('"').removesuffix('"')


def split_rule_definition(definition: str) -> tuple[str, str]:
    """Return ``(condition, category)`` for a rule definition string.

    The condition is trimmed; the category is trimmed and loses one layer of
    surrounding double quotes. Raises :class:`MalformedRuleError` unless the
    text holds exactly one ``->`` with non-empty text on both sides. Every
    occurrence counts, including one inside a quoted literal.
    """

    parts = definition.split(ARROW)
    if len(parts) != 2:
        raise MalformedRuleError(
            f"expected exactly one '{ARROW}' separator, found {len(parts) - 1}"
        )
    condition, target = parts[0].strip(), parts[1].strip()
    if not condition:
        raise MalformedRuleError("empty condition before '->'")
    category = strip_quotes(target).strip()
    if not category:
        raise MalformedRuleError("empty category after '->'")
    return condition, category


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class Transaction(BaseModel):
    """A financial transaction.

    Only ``category`` may change after creation; it is rewritten by the
    categorization engine. ``date`` is normalized to UTC (naive values are
    taken as UTC).
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=new_id, frozen=True)
    merchant: str = Field(frozen=True)
    amount: Decimal = Field(frozen=True)
    date: datetime = Field(frozen=True)
    account: str = Field(frozen=True)
    category: str = DEFAULT_CATEGORY

    @field_validator("date")
    @classmethod
    def _normalize_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)


class Rule(BaseModel):
    """A stored categorization rule.

    ``rule_definition`` is normally the text ``<condition> -> "<category>"``;
    ``new_category`` is derived from it. A structured condition tree (a
    mapping, see :mod:`transaction_rules.tree`) is accepted as well, in which
    case ``new_category`` must be given explicitly.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=new_id)
    rule_definition: str | dict[str, Any] = Field(alias="ruleDefinition")
    new_category: str | None = Field(default=None, alias="newCategory")

    @model_validator(mode="before")
    @classmethod
    def _derive_new_category(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        if data.get("new_category") is not None or data.get("newCategory") is not None:
            return data
        definition = data.get("rule_definition", data.get("ruleDefinition"))
        if not isinstance(definition, str):
            return data
        try:
            _, category = split_rule_definition(definition)
        except MalformedRuleError:
            # Stored as-is; the evaluator skips it.
            return data
        return {**data, "new_category": category}

    def target_category(self) -> str:
        """Category applied when this rule matches.

        For text rules this is taken from the definition itself, not from
        ``new_category``. Raises :class:`MalformedRuleError`.
        """

        if isinstance(self.rule_definition, str):
            return split_rule_definition(self.rule_definition)[1]
        if not self.new_category or not self.new_category.strip():
            raise MalformedRuleError("structured rule has no newCategory")
        return self.new_category.strip()


@dataclass(frozen=True, slots=True)
class ReapplyResult:
    """Outcome of one categorization pass."""

    updated_count: int
    changed_ids: tuple[str, ...] = ()

    @property
    def message(self) -> str:
        return f"Re-categorized {self.updated_count} transactions."


__all__ = [
    "ARROW",
    "DEFAULT_CATEGORY",
    "MalformedRuleError",
    "ReapplyResult",
    "Rule",
    "Transaction",
    "TransactionRecord",
    "new_id",
    "split_rule_definition",
    "strip_quotes",
]
