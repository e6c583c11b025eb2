"""Exception hierarchy for the rule-matching engine.

Input errors are raised before any row is touched and are safe for the caller
to correct and retry. ``ConditionTypeMismatch`` never escapes the condition
evaluator; it is raised internally and folded into a non-match.
"""

from __future__ import annotations


class MatchingError(Exception):
    """Base class for all engine errors."""


class InputError(MatchingError):
    """The request is invalid; nothing was read or written on its behalf."""


class EmptyTargetError(InputError):
    def __init__(
        self, message: str = "target must set at least one of tenant, lease, type or building"
    ):
        super().__init__(message)


class NoTransactionsError(InputError):
    def __init__(self, message: str = "no transaction ids provided"):
        super().__init__(message)


class RuleNotFoundError(InputError):
    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Rule not found: {rule_id!r}")


class MalformedConditionError(InputError):
    """A stored or submitted condition does not fit the closed field/operator sets."""


class InvalidTransitionError(InputError):
    def __init__(self, current: str, event: str):
        self.current = current
        self.event = event
        super().__init__(f"no transition from {current!r} on {event!r}")


class ConditionTypeMismatch(MatchingError):
    """A numeric comparison met a value that is not an integer."""


class AmbiguousRuleMatch(MatchingError):
    """Several rules with the same top priority match one transaction."""

    def __init__(self, transaction_id: str, rule_ids: list[str]):
        self.transaction_id = transaction_id
        self.rule_ids = rule_ids
        super().__init__(
            f"transaction {transaction_id!r} matches rules of equal priority: "
            + ", ".join(rule_ids)
        )


__all__ = [
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
