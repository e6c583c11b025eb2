"""Retroactive application of a rule to existing transactions.

``preview_rule`` is read-only: it filters the organization's unmatched
transactions through the rule and returns the matches. ``apply_rule`` takes
the caller's selection (normally a subset of a preview) and classifies each
transaction that is still eligible.

Idempotency
-----------
Only ``unmatched`` transactions are ever candidates, and each write is
guarded by ``match_status = 'unmatched'``. Running the same rule twice
therefore applies nothing the second time, and transactions a person has
matched or dismissed are never touched.

Failure handling
----------------
Each row is written inside its own savepoint. A database error on one row is
counted as ``failed`` and the batch continues; rows that turn out to be
ineligible at write time are counted as ``skipped``.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import persistence
from .config import EngineSettings, load_settings
from .errors import EmptyTargetError
from .logging_setup import get_logger
from .matcher import try_match
from .models import ApplyResult, BankTransaction, MatchStatus, RuleAction, TransactionRule
from .state import MatchCommand, dismissed, rule_applied

logger = get_logger("bank_matching.retroactive")


def _matching(
    rule: TransactionRule,
    transactions: Sequence[BankTransaction],
    settings: EngineSettings,
) -> list[BankTransaction]:
    return [
        tx
        for tx in transactions
        if try_match(rule, tx, booking_text_fallback=settings.booking_text_fallback).matches
    ]


def preview_rule(
    session: Session,
    *,
    rule_id: str,
    organization_id: str,
    transaction_ids: Sequence[str] | None = None,
    settings: EngineSettings | None = None,
) -> list[BankTransaction]:
    """Return the unmatched transactions ``rule_id`` would classify.

    Parameters
    ----------
    session:
        Active session; nothing is written.
    rule_id / organization_id:
        Rule to evaluate and the scope to read candidates from.
    transaction_ids:
        Optional restriction of the preview to these ids.
    settings:
        Engine settings; read from the environment when omitted.

    Raises
    ------
    RuleNotFoundError
        When the rule does not exist in the organization.
    """

    settings = settings or load_settings()
    rule = persistence.load_rule(session, rule_id=rule_id, organization_id=organization_id)
    candidates = persistence.list_unmatched_transactions(session, organization_id=organization_id)
    if transaction_ids is not None:
        wanted = set(transaction_ids)
        candidates = [tx for tx in candidates if tx.id in wanted]
    matches = _matching(rule, candidates, settings)
    logger.debug(
        "Rule %s previewed: %d of %d unmatched transactions match",
        rule.id,
        len(matches),
        len(candidates),
    )
    return matches


def _command_for(
    rule: TransactionRule,
    tx: BankTransaction,
    *,
    settings: EngineSettings,
    actor: str | None,
) -> MatchCommand:
    if rule.action is RuleAction.IGNORE:
        return dismissed(tx.id, tx.match_status, rule_id=rule.id, actor=actor)
    return rule_applied(
        tx.id,
        tx.match_status,
        rule.target,
        rule_id=rule.id,
        confidence=settings.auto_confidence,
        actor=actor,
    )


def apply_rule(
    session: Session,
    *,
    rule_id: str,
    organization_id: str,
    transaction_ids: Sequence[str] | None,
    actor: str | None = None,
    settings: EngineSettings | None = None,
) -> ApplyResult:
    """Classify the selected transactions with ``rule_id``.

    Parameters
    ----------
    transaction_ids:
        The selection to apply. ``None`` applies to every transaction the
        rule currently matches; an empty sequence applies nothing.
    actor:
        Optional user id recorded in ``matched_by``.

    Returns
    -------
    ApplyResult
        ``applied`` rows moved to ``auto`` (``ignored`` for ignore rules),
        ``skipped`` ids that were unknown, out of scope, no longer unmatched,
        or no longer matching, and ``failed`` rows whose write raised.

    Raises
    ------
    RuleNotFoundError
        When the rule does not exist in the organization.
    EmptyTargetError
        When a non-ignore rule has no target fields.
    """

    settings = settings or load_settings()
    rule = persistence.load_rule(session, rule_id=rule_id, organization_id=organization_id)
    if rule.action is not RuleAction.IGNORE and rule.target.is_empty:
        raise EmptyTargetError(f"rule {rule.id!r} has no target to apply")

    if transaction_ids is None:
        selected = preview_rule(
            session, rule_id=rule_id, organization_id=organization_id, settings=settings
        )
        current = {tx.id: tx for tx in selected}
        ids = list(current)
    else:
        ids = list(dict.fromkeys(transaction_ids))
        current = persistence.load_transactions(
            session, organization_id=organization_id, transaction_ids=ids
        )

    applied = skipped = 0
    failed_ids: list[str] = []
    for tx_id in ids:
        tx = current.get(tx_id)
        if tx is None:
            logger.info("Skipping %s: not found in organization %s", tx_id, organization_id)
            skipped += 1
            continue
        if tx.match_status is not MatchStatus.UNMATCHED:
            logger.info("Skipping %s: already %s", tx_id, tx.match_status)
            skipped += 1
            continue
        if not try_match(rule, tx, booking_text_fallback=settings.booking_text_fallback).matches:
            logger.info("Skipping %s: no longer matches rule %s", tx_id, rule.id)
            skipped += 1
            continue

        command = _command_for(rule, tx, settings=settings, actor=actor)
        try:
            with session.begin_nested():
                written = persistence.execute_match_command(session, command)
        except SQLAlchemyError as e:
            logger.warning("Failed to apply rule %s to %s: %s", rule.id, tx_id, e)
            failed_ids.append(tx_id)
            continue
        if written:
            applied += 1
        else:
            # Classified by someone else between read and write.
            logger.info("Skipping %s: status changed before write", tx_id)
            skipped += 1

    if applied:
        persistence.record_rule_matches(session, rule_id=rule.id, count=applied)

    logger.info(
        "Applied rule %s (%s): applied=%d skipped=%d failed=%d",
        rule.id,
        rule.name,
        applied,
        skipped,
        len(failed_ids),
    )
    return ApplyResult(
        applied=applied,
        skipped=skipped,
        failed=len(failed_ids),
        failed_ids=tuple(failed_ids),
    )


__all__ = ["preview_rule", "apply_rule"]
