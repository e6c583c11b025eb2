"""Bulk manual matching with optional derived-rule creation.

A single-transaction match is the one-id case of :func:`apply_bulk`.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import persistence
from .config import EngineSettings, load_settings
from .errors import EmptyTargetError, NoTransactionsError
from .logging_setup import get_logger
from .models import BankTransaction, BulkMatchResult, RuleAction, RuleTarget, TransactionRule
from .state import manual_assigned
from .synthesize import derive_rule_name, synthesize_condition

logger = get_logger("bank_matching.bulk")


def _batches(ids: list[str], size: int) -> list[list[str]]:
    return [ids[i : i + size] for i in range(0, len(ids), size)]


def _derive_rule(
    session: Session,
    *,
    organization_id: str,
    transactions: Sequence[BankTransaction],
    target: RuleTarget,
    updated: int,
) -> TransactionRule | None:
    condition = synthesize_condition(transactions)
    if condition is None:
        logger.info("No counterpart name in batch; derived rule not created")
        return None
    action = RuleAction.ASSIGN_TENANT if target.tenant_id else RuleAction.BOOK_AS
    try:
        with session.begin_nested():
            rule = persistence.create_rule(
                session,
                organization_id=organization_id,
                name=derive_rule_name([condition]),
                conditions=[condition],
                target=target,
                action=action,
                match_count=updated,
            )
    except SQLAlchemyError as e:
        logger.warning("Derived rule %s not created: %s", condition.describe(), e)
        return None
    logger.info("Created derived rule %s: %s", rule.id, condition.describe())
    return rule


def apply_bulk(
    session: Session,
    *,
    organization_id: str,
    transaction_ids: Sequence[str],
    target: RuleTarget,
    create_rule: bool = False,
    actor: str | None = None,
    settings: EngineSettings | None = None,
) -> BulkMatchResult:
    """Manually assign ``target`` to every listed transaction.

    The assignment overrides any current state (including ``auto`` and
    ``ignored``). Ids outside ``organization_id`` are skipped. When
    ``create_rule`` is set, a ``counterpart_name contains`` rule is derived
    from the transactions actually updated and stored with the same target;
    if nothing was updated, no usable name exists, or the insert fails, the
    rule is left out and the match result stands.

    Raises
    ------
    EmptyTargetError
        When ``target`` declares no field. Raised before any read.
    NoTransactionsError
        When ``transaction_ids`` is empty.
    """

    if target.is_empty:
        raise EmptyTargetError()
    ids = list(dict.fromkeys(transaction_ids))
    if not ids:
        raise NoTransactionsError()
    settings = settings or load_settings()

    updated = skipped = 0
    failed_ids: list[str] = []
    matched: list[BankTransaction] = []

    for batch in _batches(ids, settings.batch_size):
        found = persistence.load_transactions(
            session, organization_id=organization_id, transaction_ids=batch
        )
        for tx_id in batch:
            tx = found.get(tx_id)
            if tx is None:
                logger.info("Skipping %s: not found in organization %s", tx_id, organization_id)
                skipped += 1
                continue
            command = manual_assigned(
                tx.id,
                tx.match_status,
                target,
                confidence=settings.manual_confidence,
                actor=actor,
            )
            try:
                with session.begin_nested():
                    written = persistence.execute_match_command(session, command)
            except SQLAlchemyError as e:
                logger.warning("Failed to match %s: %s", tx_id, e)
                failed_ids.append(tx_id)
                continue
            if written:
                updated += 1
                matched.append(tx)
            else:
                skipped += 1

    rule = None
    if create_rule and matched:
        rule = _derive_rule(
            session,
            organization_id=organization_id,
            transactions=matched,
            target=target,
            updated=updated,
        )

    logger.info(
        "Bulk match: updated=%d skipped=%d failed=%d rule=%s",
        updated,
        skipped,
        len(failed_ids),
        rule.id if rule is not None else None,
    )
    return BulkMatchResult(
        updated=updated,
        skipped=skipped,
        failed=len(failed_ids),
        rule=rule,
        failed_ids=tuple(failed_ids),
    )


__all__ = ["apply_bulk"]
