"""Condition evaluation against a single bank transaction.

``evaluate`` is pure and never raises for data problems: absent text fields
do not match, and numeric comparisons against non-integer values are logged
and treated as a non-match. One badly configured rule therefore cannot stop a
batch over unrelated transactions.

Semantics
---------
- ``equals``: case-sensitive equality on text; integer equality on
  ``amount_cents``.
- ``contains`` / ``starts_with``: case-insensitive (``casefold``).
- ``greater_than`` / ``less_than``: integer comparison. On ``amount_cents``
  the absolute value is compared unless ``condition.signed`` is set.
"""

from __future__ import annotations

import re

from .errors import ConditionTypeMismatch
from .logging_setup import get_logger
from .models import BankTransaction, Condition, ConditionField, ConditionOperator

logger = get_logger("bank_matching.conditions")

# Text fields that fall back to the raw booking text when enabled.
_FALLBACK_FIELDS = frozenset({ConditionField.COUNTERPART_NAME, ConditionField.PURPOSE})

# ASCII digits only; int() would also take "1_000" and non-Latin digits.
_INT_RE = re.compile(r"[+-]?[0-9]+")


def _field_value(tx: BankTransaction, field: ConditionField) -> str | int | None:
    match field:
        case ConditionField.COUNTERPART_NAME:
            return tx.counterpart_name
        case ConditionField.COUNTERPART_IBAN:
            return tx.counterpart_iban
        case ConditionField.PURPOSE:
            return tx.purpose
        case ConditionField.BOOKING_TEXT:
            return tx.booking_text
        case ConditionField.AMOUNT_CENTS:
            return tx.amount_cents


def _as_int(raw: str | int, *, what: str) -> int:
    if isinstance(raw, int):
        return raw
    text = raw.strip()
    if not _INT_RE.fullmatch(text):
        raise ConditionTypeMismatch(f"{what} is not an integer: {raw!r}")
    return int(text)


def _compare(condition: Condition, actual: str | int) -> bool:
    expected = condition.value
    op = condition.operator
    match op:
        case ConditionOperator.EQUALS:
            if isinstance(actual, int):
                return actual == _as_int(expected, what="condition value")
            return actual == expected
        case ConditionOperator.CONTAINS:
            return expected.casefold() in str(actual).casefold()
        case ConditionOperator.STARTS_WITH:
            return str(actual).casefold().startswith(expected.casefold())
        case ConditionOperator.GREATER_THAN | ConditionOperator.LESS_THAN:
            lhs = _as_int(actual, what=f"stored {condition.field}")
            rhs = _as_int(expected, what="condition value")
            if isinstance(actual, int) and not condition.signed:
                lhs = abs(lhs)
            if op is ConditionOperator.GREATER_THAN:
                return lhs > rhs
            return lhs < rhs


def evaluate(
    condition: Condition,
    transaction: BankTransaction,
    *,
    booking_text_fallback: bool = False,
) -> bool:
    """Return whether ``transaction`` satisfies ``condition``.

    Parameters
    ----------
    condition:
        The condition to test.
    transaction:
        Transaction view to read the field from.
    booking_text_fallback:
        When true and the condition targets ``counterpart_name`` or
        ``purpose`` on a transaction where that field is empty, the raw
        ``booking_text`` is tested instead. Exact ``equals`` is relaxed to a
        case-insensitive ``contains`` on the fallback text, since booking
        texts carry the name embedded in longer strings.
    """

    actual = _field_value(transaction, condition.field)

    if (
        booking_text_fallback
        and condition.field in _FALLBACK_FIELDS
        and not actual
        and transaction.booking_text
    ):
        fallback = transaction.booking_text
        if condition.operator is ConditionOperator.EQUALS:
            return condition.value.casefold() in fallback.casefold()
        actual = fallback

    if actual is None or actual == "":
        return False

    try:
        return _compare(condition, actual)
    except ConditionTypeMismatch as e:
        logger.debug("Condition %s treated as non-match: %s", condition.describe(), e)
        return False


__all__ = ["evaluate"]
