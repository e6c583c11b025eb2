"""Derive a standing rule condition from a manually matched batch.

The heuristic is intentionally narrow: one ``counterpart_name contains``
condition built from the most frequent trimmed counterpart name. Rules made
this way are expected to be reviewed and edited by a person later.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence

from .models import BankTransaction, Condition, ConditionField, ConditionOperator

RULE_NAME_PREFIX = "Rule: "


def synthesize_condition(transactions: Iterable[BankTransaction]) -> Condition | None:
    """Return a condition for the most common counterpart name, or ``None``.

    Ties resolve to the name encountered first (``Counter.most_common``
    preserves insertion order among equal counts).
    """

    names = Counter(
        name
        for name in ((tx.counterpart_name or "").strip() for tx in transactions)
        if name
    )
    if not names:
        return None
    most_common, _count = names.most_common(1)[0]
    return Condition(
        field=ConditionField.COUNTERPART_NAME,
        operator=ConditionOperator.CONTAINS,
        value=most_common,
    )


def derive_rule_name(conditions: Sequence[Condition]) -> str:
    return RULE_NAME_PREFIX + " + ".join(c.value for c in conditions)


__all__ = ["synthesize_condition", "derive_rule_name", "RULE_NAME_PREFIX"]
