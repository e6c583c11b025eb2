# ruff: noqa: I001
"""Persistence integration for the matching engine.

Functions here read and write the ``bank_transactions`` and
``transaction_rules`` tables owned by ``libs/db``. All of them take an active
SQLAlchemy session; the caller owns the transaction scope (see
``db.client.session_scope``).

Scope:
- Candidate reads: unmatched transactions of an organization, transactions by id.
- Match writes: :func:`execute_match_command` is the only writer of
  ``match_status`` and the matched-target columns.
- Rules: load, list, create, and match statistics.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from db.models.banking import BankTransactionRow, TransactionRuleRow
from .errors import MalformedConditionError, RuleNotFoundError
from .logging_setup import get_logger
from .models import (
    BankTransaction,
    Condition,
    MatchStatus,
    RuleAction,
    RuleTarget,
    TransactionRule,
    TransactionType,
    parse_conditions,
)
from .state import MatchCommand

logger = get_logger("bank_matching.persistence")


# ---------------------------
# Row → view mapping
# ---------------------------


def transaction_from_row(row: BankTransactionRow) -> BankTransaction:
    return BankTransaction(
        id=row.id,
        organization_id=row.organization_id,
        booking_date=row.booking_date,
        amount_cents=int(row.amount_cents),
        currency=row.currency or "EUR",
        counterpart_name=row.counterpart_name,
        counterpart_iban=row.counterpart_iban,
        purpose=row.purpose,
        booking_text=row.booking_text,
        match_status=MatchStatus(row.match_status),
        matched_tenant_id=row.matched_tenant_id,
        matched_lease_id=row.matched_lease_id,
        matched_building_id=row.matched_building_id,
        transaction_type=(
            TransactionType(row.transaction_type) if row.transaction_type else None
        ),
    )


def rule_from_row(row: TransactionRuleRow) -> TransactionRule:
    """Map a rule row to its view, validating the stored conditions.

    Raises :class:`~bank_matching.errors.MalformedConditionError` when the
    JSON column holds a condition outside the supported field/operator sets.
    """

    return TransactionRule(
        id=row.id,
        organization_id=row.organization_id,
        name=row.name,
        conditions=parse_conditions(row.conditions or []),
        target=RuleTarget(
            tenant_id=row.tenant_id,
            lease_id=row.lease_id,
            transaction_type=row.transaction_type,
            building_id=row.building_id,
        ),
        action=RuleAction(row.action_type),
        priority=int(row.priority),
        is_active=bool(row.is_active),
        match_count=int(row.match_count or 0),
    )


# ---------------------------
# Reads
# ---------------------------


def load_rule(session: Session, *, rule_id: str, organization_id: str) -> TransactionRule:
    """Return the rule ``rule_id`` within ``organization_id``.

    Raises :class:`~bank_matching.errors.RuleNotFoundError` when it does not
    exist or belongs to another organization.
    """

    row = (
        session.execute(
            select(TransactionRuleRow).where(
                TransactionRuleRow.id == rule_id,
                TransactionRuleRow.organization_id == organization_id,
            )
        )
        .scalars()
        .first()
    )
    if row is None:
        raise RuleNotFoundError(rule_id)
    return rule_from_row(row)


def list_rules(
    session: Session, *, organization_id: str, active_only: bool = False
) -> list[TransactionRule]:
    """Return the organization's rules, highest priority first, then by name.

    Rules whose stored conditions no longer validate are logged and left out,
    so one broken rule does not hide the others.
    """

    stmt = select(TransactionRuleRow).where(TransactionRuleRow.organization_id == organization_id)
    if active_only:
        stmt = stmt.where(TransactionRuleRow.is_active.is_(True))
    stmt = stmt.order_by(TransactionRuleRow.priority.desc(), TransactionRuleRow.name)

    rules: list[TransactionRule] = []
    for row in session.execute(stmt).scalars().all():
        try:
            rules.append(rule_from_row(row))
        except MalformedConditionError as e:
            logger.warning("Skipping rule %s (%s): %s", row.id, row.name, e)
    return rules


def list_unmatched_transactions(
    session: Session, *, organization_id: str
) -> list[BankTransaction]:
    """Return all ``unmatched`` transactions of the organization, newest booking first."""

    rows = (
        session.execute(
            select(BankTransactionRow)
            .where(
                BankTransactionRow.organization_id == organization_id,
                BankTransactionRow.match_status == MatchStatus.UNMATCHED.value,
            )
            .order_by(BankTransactionRow.booking_date.desc(), BankTransactionRow.id)
        )
        .scalars()
        .all()
    )
    return [transaction_from_row(r) for r in rows]


def load_transactions(
    session: Session, *, organization_id: str, transaction_ids: Iterable[str]
) -> dict[str, BankTransaction]:
    """Return transactions by id, restricted to ``organization_id``.

    Ids that do not exist or belong to another organization are simply absent
    from the result.
    """

    ids = list(dict.fromkeys(transaction_ids))
    if not ids:
        return {}
    rows = (
        session.execute(
            select(BankTransactionRow).where(
                BankTransactionRow.id.in_(ids),
                BankTransactionRow.organization_id == organization_id,
            )
        )
        .scalars()
        .all()
    )
    return {r.id: transaction_from_row(r) for r in rows}


# ---------------------------
# Writes
# ---------------------------


def execute_match_command(session: Session, command: MatchCommand) -> bool:
    """Apply one state-machine command to its row.

    Returns ``False`` when the row no longer has ``command.require_status``
    (another writer got there first); database errors propagate to the
    caller, which decides whether the batch continues.
    """

    now = func.now()
    stmt = update(BankTransactionRow).where(BankTransactionRow.id == command.transaction_id)
    if command.require_status is not None:
        stmt = stmt.where(BankTransactionRow.match_status == command.require_status.value)
    stmt = stmt.values(
        **command.values,
        match_status=command.to_status.value,
        matched_at=now,
        updated_at=now,
    ).execution_options(synchronize_session=False)
    result = session.execute(stmt)
    return result.rowcount == 1


def create_rule(
    session: Session,
    *,
    organization_id: str,
    name: str,
    conditions: Sequence[Condition],
    target: RuleTarget,
    action: RuleAction,
    priority: int = 50,
    is_active: bool = True,
    match_count: int = 0,
) -> TransactionRule:
    """Insert a rule and return its view. Commit is left to the caller."""

    row = TransactionRuleRow(
        organization_id=organization_id,
        name=name,
        conditions=[c.model_dump(mode="json") for c in conditions],
        action_type=action.value,
        tenant_id=target.tenant_id,
        lease_id=target.lease_id,
        transaction_type=(
            target.transaction_type.value if target.transaction_type is not None else None
        ),
        building_id=target.building_id,
        priority=priority,
        is_active=is_active,
        match_count=match_count,
        last_match_at=func.now() if match_count > 0 else None,
    )
    session.add(row)
    session.flush()
    return rule_from_row(row)


def record_rule_matches(session: Session, *, rule_id: str, count: int) -> None:
    """Add ``count`` to the rule's ``match_count`` and stamp ``last_match_at``."""

    if count <= 0:
        return
    now = func.now()
    session.execute(
        update(TransactionRuleRow)
        .where(TransactionRuleRow.id == rule_id)
        .values(
            match_count=TransactionRuleRow.match_count + count,
            last_match_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )


__all__ = [
    "transaction_from_row",
    "rule_from_row",
    "load_rule",
    "list_rules",
    "list_unmatched_transactions",
    "load_transactions",
    "execute_match_command",
    "create_rule",
    "record_rule_matches",
]
