from __future__ import annotations

import pytest

from bank_matching.errors import EmptyTargetError, InvalidTransitionError
from bank_matching.models import MatchStatus, RuleTarget
from bank_matching.state import (
    MatchEvent,
    dismissed,
    manual_assigned,
    next_status,
    rule_applied,
)

TARGET = RuleTarget(tenant_id="T1", transaction_type="rent")


@pytest.mark.parametrize(
    ("current", "event", "expected"),
    [
        (MatchStatus.UNMATCHED, MatchEvent.RULE_APPLIED, MatchStatus.AUTO),
        (MatchStatus.UNMATCHED, MatchEvent.DISMISSED, MatchStatus.IGNORED),
        (MatchStatus.UNMATCHED, MatchEvent.MANUAL_ASSIGNED, MatchStatus.MANUAL),
        (MatchStatus.AUTO, MatchEvent.MANUAL_ASSIGNED, MatchStatus.MANUAL),
        (MatchStatus.MANUAL, MatchEvent.MANUAL_ASSIGNED, MatchStatus.MANUAL),
        (MatchStatus.IGNORED, MatchEvent.MANUAL_ASSIGNED, MatchStatus.MANUAL),
    ],
)
def test_allowed_transitions(current, event, expected):
    assert next_status(current, event) is expected


@pytest.mark.parametrize(
    ("current", "event"),
    [
        (MatchStatus.AUTO, MatchEvent.RULE_APPLIED),
        (MatchStatus.MANUAL, MatchEvent.RULE_APPLIED),
        (MatchStatus.IGNORED, MatchEvent.RULE_APPLIED),
        (MatchStatus.AUTO, MatchEvent.DISMISSED),
        (MatchStatus.MANUAL, MatchEvent.DISMISSED),
        (MatchStatus.IGNORED, MatchEvent.DISMISSED),
    ],
)
def test_rejected_transitions(current, event):
    with pytest.raises(InvalidTransitionError):
        next_status(current, event)


def test_rule_applied_command_is_guarded():
    cmd = rule_applied(
        "tx-1", MatchStatus.UNMATCHED, TARGET, rule_id="r-1", confidence=0.95, actor="u-1"
    )
    assert cmd.to_status is MatchStatus.AUTO
    assert cmd.require_status is MatchStatus.UNMATCHED
    assert cmd.values == {
        "matched_tenant_id": "T1",
        "transaction_type": "rent",
        "match_confidence": 0.95,
        "matched_by": "u-1",
        "matched_rule_id": "r-1",
    }


def test_rule_applied_on_manual_row_is_invalid():
    with pytest.raises(InvalidTransitionError):
        rule_applied("tx-1", MatchStatus.MANUAL, TARGET, rule_id="r-1", confidence=0.95)


def test_rule_applied_requires_a_target():
    with pytest.raises(EmptyTargetError):
        rule_applied("tx-1", MatchStatus.UNMATCHED, RuleTarget(), rule_id="r", confidence=0.95)


def test_manual_assigned_overrides_without_guard():
    cmd = manual_assigned("tx-1", MatchStatus.AUTO, RuleTarget(lease_id="L1"), confidence=1.0)
    assert cmd.to_status is MatchStatus.MANUAL
    assert cmd.require_status is None
    assert cmd.values["matched_lease_id"] == "L1"
    assert cmd.values["matched_rule_id"] is None
    # undeclared target fields are not written
    assert "matched_tenant_id" not in cmd.values


def test_manual_assigned_requires_a_target():
    with pytest.raises(EmptyTargetError):
        manual_assigned("tx-1", MatchStatus.UNMATCHED, RuleTarget(tenant_id="  "), confidence=1)


def test_dismissed_leaves_target_columns_alone():
    cmd = dismissed("tx-1", MatchStatus.UNMATCHED, rule_id="r-ignore")
    assert cmd.to_status is MatchStatus.IGNORED
    assert cmd.require_status is MatchStatus.UNMATCHED
    assert set(cmd.values) == {"matched_by", "matched_rule_id"}
