"""Rule matching: AND-combined conditions and multi-rule selection.

``try_match`` answers "does this one rule match this one transaction". The
retroactive applier uses it directly because it always works with a single,
caller-chosen rule.

When several rules are candidates for the same transaction,
``select_rule`` picks the highest ``priority`` among the active matches and
raises :class:`~bank_matching.errors.AmbiguousRuleMatch` when the top
priority is shared, instead of letting call order decide.
"""

from __future__ import annotations

from collections.abc import Iterable

from .conditions import evaluate
from .errors import AmbiguousRuleMatch
from .models import BankTransaction, MatchAttempt, TransactionRule


def try_match(
    rule: TransactionRule,
    transaction: BankTransaction,
    *,
    booking_text_fallback: bool = False,
) -> MatchAttempt:
    """Evaluate every condition of ``rule`` against ``transaction``.

    An empty condition list never matches. Evaluation stops at the first
    failing condition.
    """

    if not rule.conditions:
        return MatchAttempt(rule_id=rule.id, matches=False)
    for condition in rule.conditions:
        if not evaluate(condition, transaction, booking_text_fallback=booking_text_fallback):
            return MatchAttempt(rule_id=rule.id, matches=False)
    return MatchAttempt(rule_id=rule.id, matches=True, target=rule.target)


def find_matching_rules(
    rules: Iterable[TransactionRule],
    transaction: BankTransaction,
    *,
    booking_text_fallback: bool = False,
) -> list[TransactionRule]:
    """Return active rules matching ``transaction``, highest priority first.

    Ties keep the input order.
    """

    matched = [
        r
        for r in rules
        if r.is_active
        and try_match(r, transaction, booking_text_fallback=booking_text_fallback).matches
    ]
    matched.sort(key=lambda r: -r.priority)
    return matched


def select_rule(
    rules: Iterable[TransactionRule],
    transaction: BankTransaction,
    *,
    booking_text_fallback: bool = False,
) -> TransactionRule | None:
    """Return the single rule that should classify ``transaction``, if any."""

    matched = find_matching_rules(
        rules, transaction, booking_text_fallback=booking_text_fallback
    )
    if not matched:
        return None
    top = matched[0].priority
    contenders = [r for r in matched if r.priority == top]
    if len(contenders) > 1:
        raise AmbiguousRuleMatch(transaction.id, [r.id for r in contenders])
    return matched[0]


__all__ = ["try_match", "find_matching_rules", "select_rule"]
