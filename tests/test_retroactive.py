from __future__ import annotations

import pytest
from db.client import session_scope
from db.models.banking import BankTransactionRow
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

import bank_matching.persistence as persistence_mod
from bank_matching.config import EngineSettings
from bank_matching.errors import EmptyTargetError, RuleNotFoundError
from bank_matching.retroactive import apply_rule, preview_rule

from tests.helpers.db import (
    ORG,
    OTHER_ORG,
    add_rule,
    add_transaction,
    get_rule,
    get_transaction,
)

MUSTERMANN = [{"field": "counterpart_name", "operator": "contains", "value": "Mustermann"}]


def _preview(db_url: str, rule_id: str, **kw) -> list[str]:
    with session_scope(database_url=db_url) as session:
        matches = preview_rule(session, rule_id=rule_id, organization_id=ORG, **kw)
        return [tx.id for tx in matches]


def _apply(db_url: str, rule_id: str, ids, **kw):
    with session_scope(database_url=db_url) as session:
        return apply_rule(
            session, rule_id=rule_id, organization_id=ORG, transaction_ids=ids, **kw
        )


@pytest.fixture
def rent_rule(db_url: str) -> str:
    return add_rule(database_url=db_url, conditions=MUSTERMANN, transaction_type="rent")


# ---- Preview ------------------------------------------------------------------


def test_preview_lists_only_matching_unmatched_transactions(db_url: str, rent_rule: str):
    hit = add_transaction(
        database_url=db_url, counterpart_name="Max Mustermann", purpose="Miete Januar"
    )
    add_transaction(database_url=db_url, counterpart_name="Stadtwerke")
    add_transaction(database_url=db_url, counterpart_name="Max Mustermann", match_status="manual")
    add_transaction(
        database_url=db_url, organization_id=OTHER_ORG, counterpart_name="Max Mustermann"
    )

    assert _preview(db_url, rent_rule) == [hit]
    # preview writes nothing
    assert get_transaction(db_url, hit).match_status == "unmatched"


def test_preview_with_no_matches_is_empty(db_url: str, rent_rule: str):
    add_transaction(database_url=db_url, counterpart_name="Stadtwerke")
    assert _preview(db_url, rent_rule) == []


def test_preview_can_be_restricted_to_ids(db_url: str, rent_rule: str):
    a = add_transaction(database_url=db_url, counterpart_name="Max Mustermann")
    add_transaction(database_url=db_url, counterpart_name="Erika Mustermann")
    assert _preview(db_url, rent_rule, transaction_ids=[a]) == [a]


def test_unknown_rule_is_rejected(db_url: str):
    with pytest.raises(RuleNotFoundError):
        _preview(db_url, "missing")


def test_rule_of_another_organization_is_not_found(db_url: str):
    foreign = add_rule(
        database_url=db_url,
        conditions=MUSTERMANN,
        organization_id=OTHER_ORG,
        transaction_type="rent",
    )
    with pytest.raises(RuleNotFoundError):
        _apply(db_url, foreign, None)


# ---- Apply --------------------------------------------------------------------


def test_apply_classifies_the_selection(db_url: str, rent_rule: str):
    tx_id = add_transaction(
        database_url=db_url,
        counterpart_name="Max Mustermann",
        purpose="Miete Januar",
        amount_cents=85000,
    )

    result = _apply(db_url, rent_rule, [tx_id], actor="user-7")

    assert (result.applied, result.skipped, result.failed) == (1, 0, 0)
    row = get_transaction(db_url, tx_id)
    assert row.match_status == "auto"
    assert row.transaction_type == "rent"
    assert row.matched_tenant_id is None
    assert row.matched_rule_id == rent_rule
    assert row.matched_by == "user-7"
    assert row.matched_at is not None
    assert float(row.match_confidence) == pytest.approx(0.95)


def test_apply_with_empty_selection_changes_nothing(db_url: str, rent_rule: str):
    tx_id = add_transaction(database_url=db_url, counterpart_name="Max Mustermann")
    result = _apply(db_url, rent_rule, [])
    assert (result.applied, result.skipped, result.failed) == (0, 0, 0)
    assert get_transaction(db_url, tx_id).match_status == "unmatched"
    assert get_rule(db_url, rent_rule).match_count == 0


def test_apply_without_selection_takes_every_match(db_url: str, rent_rule: str):
    a = add_transaction(database_url=db_url, counterpart_name="Max Mustermann")
    b = add_transaction(database_url=db_url, counterpart_name="Erika Mustermann")
    other = add_transaction(database_url=db_url, counterpart_name="Stadtwerke")

    result = _apply(db_url, rent_rule, None)

    assert result.applied == 2
    assert get_transaction(db_url, a).match_status == "auto"
    assert get_transaction(db_url, b).match_status == "auto"
    assert get_transaction(db_url, other).match_status == "unmatched"


def test_apply_is_idempotent(db_url: str, rent_rule: str):
    tx_id = add_transaction(database_url=db_url, counterpart_name="Max Mustermann")
    first = _apply(db_url, rent_rule, [tx_id])
    second = _apply(db_url, rent_rule, [tx_id])
    assert first.applied == 1
    assert (second.applied, second.skipped) == (0, 1)
    assert get_rule(db_url, rent_rule).match_count == 1


@pytest.mark.parametrize("status", ["manual", "ignored", "auto"])
def test_apply_never_touches_classified_transactions(db_url: str, rent_rule: str, status: str):
    tx_id = add_transaction(
        database_url=db_url,
        counterpart_name="Max Mustermann",
        match_status=status,
        matched_tenant_id="T-original",
    )
    result = _apply(db_url, rent_rule, [tx_id])
    assert (result.applied, result.skipped) == (0, 1)
    row = get_transaction(db_url, tx_id)
    assert row.match_status == status
    assert row.matched_tenant_id == "T-original"
    assert row.transaction_type is None


def test_apply_skips_unknown_foreign_and_non_matching_ids(db_url: str, rent_rule: str):
    good = add_transaction(database_url=db_url, counterpart_name="Max Mustermann")
    foreign = add_transaction(
        database_url=db_url, organization_id=OTHER_ORG, counterpart_name="Max Mustermann"
    )
    stale = add_transaction(database_url=db_url, counterpart_name="Stadtwerke")

    result = _apply(db_url, rent_rule, [good, foreign, stale, "nope", good])

    assert (result.applied, result.skipped, result.failed) == (1, 3, 0)
    assert get_transaction(db_url, foreign).match_status == "unmatched"
    assert get_transaction(db_url, stale).match_status == "unmatched"


def test_status_change_between_read_and_write_is_skipped(
    db_url: str, rent_rule: str, monkeypatch: pytest.MonkeyPatch
):
    tx_id = add_transaction(database_url=db_url, counterpart_name="Max Mustermann")
    original = persistence_mod.load_transactions

    def _read_then_concurrent_manual_match(session, **kw):
        views = original(session, **kw)
        session.execute(
            update(BankTransactionRow)
            .where(BankTransactionRow.id == tx_id)
            .values(match_status="manual", matched_tenant_id="T-human")
        )
        return views

    monkeypatch.setattr(persistence_mod, "load_transactions", _read_then_concurrent_manual_match)

    result = _apply(db_url, rent_rule, [tx_id])

    assert (result.applied, result.skipped) == (0, 1)
    row = get_transaction(db_url, tx_id)
    assert row.match_status == "manual"
    assert row.matched_tenant_id == "T-human"
    assert row.transaction_type is None


def test_write_failure_on_one_row_does_not_stop_the_batch(
    db_url: str, rent_rule: str, monkeypatch: pytest.MonkeyPatch
):
    ids = [
        add_transaction(database_url=db_url, counterpart_name="Max Mustermann") for _ in range(3)
    ]
    broken = ids[1]
    original = persistence_mod.execute_match_command

    def _flaky(session, command):
        if command.transaction_id == broken:
            raise OperationalError("UPDATE bank_transactions", {}, Exception("disk I/O error"))
        return original(session, command)

    monkeypatch.setattr(persistence_mod, "execute_match_command", _flaky)

    result = _apply(db_url, rent_rule, ids)

    assert (result.applied, result.skipped, result.failed) == (2, 0, 1)
    assert result.failed_ids == (broken,)
    assert get_transaction(db_url, broken).match_status == "unmatched"
    assert get_transaction(db_url, ids[0]).match_status == "auto"
    assert get_transaction(db_url, ids[2]).match_status == "auto"
    assert get_rule(db_url, rent_rule).match_count == 2


def test_ignore_rule_dismisses_matches(db_url: str):
    rule_id = add_rule(
        database_url=db_url,
        conditions=[{"field": "purpose", "operator": "contains", "value": "Kontoführung"}],
        action_type="ignore",
    )
    tx_id = add_transaction(
        database_url=db_url, purpose="Entgelt Kontoführung", amount_cents=-590
    )

    result = _apply(db_url, rule_id, [tx_id])

    assert result.applied == 1
    row = get_transaction(db_url, tx_id)
    assert row.match_status == "ignored"
    assert row.transaction_type is None
    assert row.matched_rule_id == rule_id


def test_rule_without_target_cannot_be_applied(db_url: str):
    rule_id = add_rule(database_url=db_url, conditions=MUSTERMANN)
    tx_id = add_transaction(database_url=db_url, counterpart_name="Max Mustermann")
    with pytest.raises(EmptyTargetError):
        _apply(db_url, rule_id, [tx_id])
    assert get_transaction(db_url, tx_id).match_status == "unmatched"


def test_inactive_rule_can_still_be_applied_explicitly(db_url: str):
    rule_id = add_rule(
        database_url=db_url, conditions=MUSTERMANN, is_active=False, tenant_id="T1"
    )
    tx_id = add_transaction(database_url=db_url, counterpart_name="Max Mustermann")
    assert _apply(db_url, rule_id, [tx_id]).applied == 1
    assert get_transaction(db_url, tx_id).matched_tenant_id == "T1"


def test_booking_text_fallback_setting(db_url: str, rent_rule: str):
    tx_id = add_transaction(
        database_url=db_url, counterpart_name=None, booking_text="GUTSCHRIFT MAX MUSTERMANN"
    )
    assert _preview(db_url, rent_rule) == []
    on = EngineSettings(booking_text_fallback=True)
    assert _preview(db_url, rent_rule, settings=on) == [tx_id]
    assert _apply(db_url, rent_rule, [tx_id], settings=on).applied == 1
