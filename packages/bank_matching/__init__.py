"""Public interface for the ``bank_matching`` package.

Re-exports the engine operations and the public models/errors. There is no
runtime logic here.
"""

from .api import handle_apply_rule, handle_match
from .bulk import apply_bulk
from .conditions import evaluate
from .errors import (
    AmbiguousRuleMatch,
    ConditionTypeMismatch,
    EmptyTargetError,
    InputError,
    InvalidTransitionError,
    MalformedConditionError,
    MatchingError,
    NoTransactionsError,
    RuleNotFoundError,
)
from .matcher import find_matching_rules, select_rule, try_match
from .models import (
    ApplyResult,
    BankTransaction,
    BulkMatchResult,
    Condition,
    ConditionField,
    ConditionOperator,
    MatchAttempt,
    MatchStatus,
    RuleAction,
    RuleTarget,
    TransactionRule,
    TransactionType,
)
from .retroactive import apply_rule, preview_rule
from .synthesize import synthesize_condition

__all__ = [
    # Operations
    "evaluate",
    "try_match",
    "find_matching_rules",
    "select_rule",
    "preview_rule",
    "apply_rule",
    "apply_bulk",
    "synthesize_condition",
    "handle_apply_rule",
    "handle_match",
    # Models
    "BankTransaction",
    "TransactionRule",
    "Condition",
    "ConditionField",
    "ConditionOperator",
    "RuleTarget",
    "RuleAction",
    "MatchStatus",
    "TransactionType",
    "MatchAttempt",
    "ApplyResult",
    "BulkMatchResult",
    # Errors
    "MatchingError",
    "InputError",
    "EmptyTargetError",
    "NoTransactionsError",
    "RuleNotFoundError",
    "MalformedConditionError",
    "InvalidTransitionError",
    "ConditionTypeMismatch",
    "AmbiguousRuleMatch",
]
