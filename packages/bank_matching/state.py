"""Match-status state machine.

Every change to a transaction's ``match_status`` goes through one of the
transition functions below. Each returns a :class:`MatchCommand` describing
the row update; :func:`bank_matching.persistence.execute_match_command` is
the only code that executes one.

Transitions
-----------
=========== ============== ================= ==========
from        rule_applied   manual_assigned   dismissed
=========== ============== ================= ==========
unmatched   auto           manual            ignored
auto        -              manual            -
manual      -              manual            -
ignored     -              manual            -
=========== ============== ================= ==========

Rule-driven commands carry ``require_status=unmatched`` so the write only
lands if nobody classified the row since it was read. Manual assignment wins
from every state and carries no guard.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from .errors import EmptyTargetError, InvalidTransitionError
from .models import MatchStatus, RuleTarget


class MatchEvent(StrEnum):
    RULE_APPLIED = "rule_applied"
    MANUAL_ASSIGNED = "manual_assigned"
    DISMISSED = "dismissed"


_TRANSITIONS: dict[tuple[MatchStatus, MatchEvent], MatchStatus] = {
    (MatchStatus.UNMATCHED, MatchEvent.RULE_APPLIED): MatchStatus.AUTO,
    (MatchStatus.UNMATCHED, MatchEvent.DISMISSED): MatchStatus.IGNORED,
    **{(s, MatchEvent.MANUAL_ASSIGNED): MatchStatus.MANUAL for s in MatchStatus},
}


def next_status(current: MatchStatus, event: MatchEvent) -> MatchStatus:
    """Return the state reached from ``current`` on ``event``."""

    try:
        return _TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidTransitionError(str(current), str(event)) from None


@dataclass(frozen=True, slots=True)
class MatchCommand:
    """A pending update to one ``bank_transactions`` row.

    ``values`` holds column assignments other than ``match_status``;
    ``require_status`` is the status the row must still have at write time.
    """

    transaction_id: str
    from_status: MatchStatus
    to_status: MatchStatus
    values: dict[str, Any] = field(default_factory=dict)
    require_status: MatchStatus | None = None


def rule_applied(
    transaction_id: str,
    current: MatchStatus,
    target: RuleTarget,
    *,
    rule_id: str,
    confidence: float,
    actor: str | None = None,
) -> MatchCommand:
    """Classify an unmatched transaction from a rule's target template."""

    to_status = next_status(current, MatchEvent.RULE_APPLIED)
    if target.is_empty:
        raise EmptyTargetError()
    return MatchCommand(
        transaction_id=transaction_id,
        from_status=current,
        to_status=to_status,
        values={
            **target.column_values(),
            "match_confidence": confidence,
            "matched_by": actor,
            "matched_rule_id": rule_id,
        },
        require_status=MatchStatus.UNMATCHED,
    )


def manual_assigned(
    transaction_id: str,
    current: MatchStatus,
    target: RuleTarget,
    *,
    confidence: float,
    actor: str | None = None,
) -> MatchCommand:
    """User-confirmed assignment; overrides any current state."""

    to_status = next_status(current, MatchEvent.MANUAL_ASSIGNED)
    if target.is_empty:
        raise EmptyTargetError()
    return MatchCommand(
        transaction_id=transaction_id,
        from_status=current,
        to_status=to_status,
        values={
            **target.column_values(),
            "match_confidence": confidence,
            "matched_by": actor,
            "matched_rule_id": None,
        },
    )


def dismissed(
    transaction_id: str,
    current: MatchStatus,
    *,
    rule_id: str | None = None,
    actor: str | None = None,
) -> MatchCommand:
    """Move an unmatched transaction to ``ignored``.

    Used by ``ignore`` rules; target columns are left untouched.
    """

    to_status = next_status(current, MatchEvent.DISMISSED)
    return MatchCommand(
        transaction_id=transaction_id,
        from_status=current,
        to_status=to_status,
        values={"matched_by": actor, "matched_rule_id": rule_id},
        require_status=MatchStatus.UNMATCHED,
    )


__all__ = [
    "MatchEvent",
    "MatchCommand",
    "next_status",
    "rule_applied",
    "manual_assigned",
    "dismissed",
]
