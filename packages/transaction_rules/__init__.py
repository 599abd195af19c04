"""Public interface for the ``transaction_rules`` package.

Re-exports the API functions and public models/types; no runtime logic here.
"""

from .api import check_rule, evaluate, reapply_all, reapply_rules
from .cache import PredicateCache, default_cache
from .dsl import CompiledPredicate, RuleCompileError, compile_condition
from .expressions import EvaluationTimeout, RuleEvaluationError
from .models import (
    DEFAULT_CATEGORY,
    MalformedRuleError,
    ReapplyResult,
    Rule,
    Transaction,
    TransactionRecord,
)
from .store import InMemoryStore, RuleStore
from .tree import compile_condition_tree

__all__ = [
    # API
    "check_rule",
    "evaluate",
    "reapply_all",
    "reapply_rules",
    # Compilation
    "CompiledPredicate",
    "PredicateCache",
    "compile_condition",
    "compile_condition_tree",
    "default_cache",
    # Errors
    "EvaluationTimeout",
    "MalformedRuleError",
    "RuleCompileError",
    "RuleEvaluationError",
    # Models / storage
    "DEFAULT_CATEGORY",
    "InMemoryStore",
    "ReapplyResult",
    "Rule",
    "RuleStore",
    "Transaction",
    "TransactionRecord",
]
