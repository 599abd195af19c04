# ruff: noqa: I001
"""SQL-backed :class:`~transaction_rules.store.RuleStore`.

Rows live in the shared database owned by ``libs/db`` (tables
``rc_transactions`` and ``rc_rules``). Both sequences are listed in insertion
order. The store works inside a caller-provided session; committing is left to
the caller (``db.client.session_scope`` commits on exit).
"""

from __future__ import annotations

from datetime import UTC

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.ledger import RcRule, RcTransaction
from .logging_setup import get_logger
from .models import Rule, Transaction

_logger = get_logger(__name__)


def _to_model(row: RcTransaction) -> Transaction:
    return Transaction(
        id=row.tx_id,
        merchant=row.merchant,
        amount=row.amount,
        date=row.occurred_at,
        account=row.account,
        category=row.category,
    )


def _rule_to_model(row: RcRule) -> Rule:
    definition = row.condition_tree if row.condition_tree is not None else row.rule_definition
    return Rule.model_validate(
        {
            "id": row.rule_id,
            "rule_definition": definition if definition is not None else "",
            "new_category": row.new_category,
        }
    )


class SqlStore:
    def __init__(self, session: Session) -> None:
        self._session = session

    def list_transactions(self) -> list[Transaction]:
        rows = self._session.scalars(select(RcTransaction).order_by(RcTransaction.seq))
        return [_to_model(r) for r in rows]

    def list_rules(self) -> list[Rule]:
        rows = self._session.scalars(select(RcRule).order_by(RcRule.seq))
        return [_rule_to_model(r) for r in rows]

    def save_transaction(self, transaction: Transaction) -> None:
        """Insert ``transaction`` or update the row with the same id."""

        row = self._session.scalars(
            select(RcTransaction).where(RcTransaction.tx_id == transaction.id)
        ).one_or_none()
        occurred_at = transaction.date.astimezone(UTC)
        if row is None:
            self._session.add(
                RcTransaction(
                    tx_id=transaction.id,
                    merchant=transaction.merchant,
                    amount=transaction.amount,
                    occurred_at=occurred_at,
                    account=transaction.account,
                    category=transaction.category,
                )
            )
            _logger.debug("sql_store:insert_transaction id=%s", transaction.id)
        else:
            # Only the category is mutable after ingestion.
            row.category = transaction.category
            _logger.debug(
                "sql_store:update_category id=%s category=%r", transaction.id, transaction.category
            )
        self._session.flush()

    def append_rule(self, rule: Rule) -> None:
        definition = rule.rule_definition
        self._session.add(
            RcRule(
                rule_id=rule.id,
                rule_definition=definition if isinstance(definition, str) else None,
                condition_tree=None if isinstance(definition, str) else dict(definition),
                new_category=rule.new_category,
            )
        )
        self._session.flush()


__all__ = ["SqlStore"]
