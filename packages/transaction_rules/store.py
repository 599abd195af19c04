"""Storage collaborators for transactions and rules.

The rule engine never decides storage order or durability. It reads two
ordered sequences and hands back transactions whose category changed; a
:class:`RuleStore` supplies the sequences and persists the results.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from .models import DEFAULT_CATEGORY, Rule, Transaction


class RuleStore(Protocol):
    def list_transactions(self) -> Sequence[Transaction]: ...

    def list_rules(self) -> Sequence[Rule]: ...

    def save_transaction(self, transaction: Transaction) -> None: ...

    def append_rule(self, rule: Rule) -> None: ...


class InMemoryStore:
    """List-backed store; order is insertion order."""

    def __init__(
        self,
        transactions: Sequence[Transaction] = (),
        rules: Sequence[Rule] = (),
    ) -> None:
        self._lock = threading.Lock()
        self._transactions: list[Transaction] = list(transactions)
        self._rules: list[Rule] = list(rules)

    def list_transactions(self) -> list[Transaction]:
        with self._lock:
            return list(self._transactions)

    def list_rules(self) -> list[Rule]:
        with self._lock:
            return list(self._rules)

    def save_transaction(self, transaction: Transaction) -> None:
        with self._lock:
            for i, existing in enumerate(self._transactions):
                if existing.id == transaction.id:
                    self._transactions[i] = transaction
                    return
            self._transactions.append(transaction)

    def append_rule(self, rule: Rule) -> None:
        with self._lock:
            self._rules.append(rule)

    # Convenience constructors mirroring an ingestion API.

    def add_transaction(
        self,
        *,
        merchant: str,
        amount: Decimal | float | str,
        date: datetime | str,
        account: str,
        category: str = DEFAULT_CATEGORY,
    ) -> Transaction:
        tx = Transaction.model_validate(
            {
                "merchant": merchant,
                "amount": amount,
                "date": date,
                "account": account,
                "category": category,
            }
        )
        self.save_transaction(tx)
        return tx

    def add_rule(self, rule_definition: str | dict[str, Any], **extra: Any) -> Rule:
        rule = Rule.model_validate({"rule_definition": rule_definition, **extra})
        self.append_rule(rule)
        return rule


__all__ = ["InMemoryStore", "RuleStore"]
