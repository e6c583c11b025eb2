"""Data models for the rule-matching engine.

Value sets that the original product kept as loose strings (condition fields,
operators, match states, rule actions) are closed ``StrEnum`` types here, so a
typo fails at parse time instead of silently never matching.

Conditions and rule targets are pydantic models because they arrive from user
input and from JSON columns; transactions and rules are frozen dataclass views
of database rows and are never mutated in place.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .errors import MalformedConditionError

# ---------------------------------------------------------------------------
# Closed value sets
# ---------------------------------------------------------------------------


class MatchStatus(StrEnum):
    UNMATCHED = "unmatched"
    AUTO = "auto"
    MANUAL = "manual"
    IGNORED = "ignored"


class TransactionType(StrEnum):
    RENT = "rent"
    DEPOSIT = "deposit"
    UTILITY = "utility"
    MAINTENANCE = "maintenance"
    INSURANCE = "insurance"
    TAX = "tax"
    REPAIR = "repair"
    OTHER = "other"


class ConditionField(StrEnum):
    COUNTERPART_NAME = "counterpart_name"
    COUNTERPART_IBAN = "counterpart_iban"
    PURPOSE = "purpose"
    AMOUNT_CENTS = "amount_cents"
    BOOKING_TEXT = "booking_text"


class ConditionOperator(StrEnum):
    EQUALS = "equals"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"


class RuleAction(StrEnum):
    """What a rule does to the transactions it matches.

    ``assign_tenant`` and ``book_as`` write the rule's target and move the
    transaction to ``auto``; ``ignore`` dismisses it.
    """

    ASSIGN_TENANT = "assign_tenant"
    BOOK_AS = "book_as"
    IGNORE = "ignore"


# ---------------------------------------------------------------------------
# Conditions and targets
# ---------------------------------------------------------------------------


class Condition(BaseModel):
    """One ``field``/``operator``/``value`` test against a transaction.

    ``signed`` only affects ``greater_than``/``less_than`` on
    ``amount_cents``: by default those compare the absolute amount so that a
    rule like "more than 500 EUR" works for both incoming and outgoing
    payments.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    field: ConditionField
    operator: ConditionOperator
    value: str
    signed: bool = False

    @field_validator("value")
    @classmethod
    def _value_non_blank(cls, v: str) -> str:
        # A blank value would turn `contains` into a catch-all.
        if not v.strip():
            raise ValueError("condition value must be non-empty")
        return v

    def describe(self) -> str:
        return f'{self.field} {self.operator} "{self.value}"'


def parse_conditions(raw: Iterable[Mapping[str, Any] | Condition]) -> tuple[Condition, ...]:
    """Validate raw condition mappings into :class:`Condition` objects.

    Raises :class:`MalformedConditionError` naming the first offending entry.
    """

    out: list[Condition] = []
    for idx, item in enumerate(raw):
        if isinstance(item, Condition):
            out.append(item)
            continue
        try:
            out.append(Condition.model_validate(item))
        except ValidationError as e:
            raise MalformedConditionError(f"condition #{idx + 1} is invalid: {e}") from e
    return tuple(out)


class RuleTarget(BaseModel):
    """Assignment template shared by rules and manual matches.

    Only declared (non-``None``) fields are written onto a transaction; the
    others keep whatever value the transaction already has.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    tenant_id: str | None = None
    lease_id: str | None = None
    transaction_type: TransactionType | None = None
    building_id: str | None = None

    @field_validator("tenant_id", "lease_id", "building_id", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @field_validator("transaction_type", mode="before")
    @classmethod
    def _blank_type_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def is_empty(self) -> bool:
        return (
            self.tenant_id is None
            and self.lease_id is None
            and self.transaction_type is None
            and self.building_id is None
        )

    def column_values(self) -> dict[str, str]:
        """Return ``bank_transactions`` column assignments for declared fields."""

        values: dict[str, str] = {}
        if self.tenant_id is not None:
            values["matched_tenant_id"] = self.tenant_id
        if self.lease_id is not None:
            values["matched_lease_id"] = self.lease_id
        if self.transaction_type is not None:
            values["transaction_type"] = str(self.transaction_type)
        if self.building_id is not None:
            values["matched_building_id"] = self.building_id
        return values


# ---------------------------------------------------------------------------
# Row views
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BankTransaction:
    """Read-only view of one imported bank movement."""

    id: str
    booking_date: date
    amount_cents: int
    counterpart_name: str | None = None
    purpose: str | None = None
    booking_text: str | None = None
    counterpart_iban: str | None = None
    match_status: MatchStatus = MatchStatus.UNMATCHED
    matched_tenant_id: str | None = None
    matched_lease_id: str | None = None
    matched_building_id: str | None = None
    transaction_type: TransactionType | None = None
    organization_id: str | None = None
    currency: str = "EUR"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "booking_date": self.booking_date.isoformat(),
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "counterpart_name": self.counterpart_name,
            "counterpart_iban": self.counterpart_iban,
            "purpose": self.purpose,
            "booking_text": self.booking_text,
            "match_status": str(self.match_status),
            "matched_tenant_id": self.matched_tenant_id,
            "matched_lease_id": self.matched_lease_id,
            "matched_building_id": self.matched_building_id,
            "transaction_type": (
                str(self.transaction_type) if self.transaction_type is not None else None
            ),
        }


@dataclass(frozen=True, slots=True)
class TransactionRule:
    """A named AND-list of conditions plus the target it assigns."""

    id: str
    name: str
    conditions: tuple[Condition, ...]
    target: RuleTarget
    action: RuleAction = RuleAction.BOOK_AS
    priority: int = 50
    is_active: bool = True
    match_count: int = 0
    organization_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "conditions": [c.model_dump(mode="json") for c in self.conditions],
            "action_type": str(self.action),
            "target": self.target.model_dump(mode="json"),
            "priority": self.priority,
            "is_active": self.is_active,
            "match_count": self.match_count,
        }


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MatchAttempt:
    """Outcome of evaluating one rule against one transaction."""

    rule_id: str
    matches: bool
    target: RuleTarget | None = None


@dataclass(frozen=True, slots=True)
class ApplyResult:
    """Counts from a retroactive rule application.

    ``skipped`` covers ids that were not (or no longer) eligible: unknown,
    outside the organization, already classified, or no longer matching.
    ``failed`` covers rows whose write raised a database error.
    """

    applied: int = 0
    skipped: int = 0
    failed: int = 0
    failed_ids: tuple[str, ...] = field(default=(), compare=False)


@dataclass(frozen=True, slots=True)
class BulkMatchResult:
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    rule: TransactionRule | None = None
    failed_ids: tuple[str, ...] = field(default=(), compare=False)


__all__ = [
    "MatchStatus",
    "TransactionType",
    "ConditionField",
    "ConditionOperator",
    "RuleAction",
    "Condition",
    "parse_conditions",
    "RuleTarget",
    "BankTransaction",
    "TransactionRule",
    "MatchAttempt",
    "ApplyResult",
    "BulkMatchResult",
]
