"""SQLAlchemy models for the workspace database.

Holds the transaction and rule tables used by ``transaction_rules``.
"""

from .ledger import Base, RcRule, RcTransaction

__all__ = [
    "Base",
    "RcRule",
    "RcTransaction",
]
