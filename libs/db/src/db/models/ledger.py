from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, Numeric, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: rc_transactions
# ---------------------------


class RcTransaction(Base):
    __tablename__ = "rc_transactions"

    # Surrogate key; also the stored order of transactions.
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tx_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    merchant: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    # Always written as UTC; SQLite hands values back naive.
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    account: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(
        String, nullable=False, server_default="Uncategorized"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.current_timestamp(),
        onupdate=func.current_timestamp(),
    )


# ---------------------------
# Core: rc_rules (append-only)
# ---------------------------


class RcRule(Base):
    __tablename__ = "rc_rules"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rule_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    # Exactly one of the two is set: condition text or a structured tree.
    rule_definition: Mapped[str | None] = mapped_column(Text, nullable=True)
    condition_tree: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    new_category: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )
