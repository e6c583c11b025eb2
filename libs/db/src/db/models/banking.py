from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    CHAR,
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


# Closed value sets mirrored by the CHECK constraints below and by the enums in
# ``bank_matching.models``. Keep both in sync.
MATCH_STATUSES = ("unmatched", "auto", "manual", "ignored")
TRANSACTION_TYPES = (
    "rent",
    "deposit",
    "utility",
    "maintenance",
    "insurance",
    "tax",
    "repair",
    "other",
)
RULE_ACTIONS = ("assign_tenant", "book_as", "ignore")


def _in_list(column: str, values: tuple[str, ...]) -> str:
    quoted = ",".join(f"'{v}'" for v in values)
    return f"{column} in ({quoted})"


# ---------------------------
# Core: bank_transactions
# ---------------------------


class BankTransactionRow(Base):
    __tablename__ = "bank_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String, nullable=False)
    account_id: Mapped[str | None] = mapped_column(String, nullable=True)
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    # Signed minor units; negative values are outgoing payments.
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(CHAR(3), nullable=False, server_default=text("'EUR'"))
    counterpart_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    counterpart_iban: Mapped[str | None] = mapped_column(String, nullable=True)
    purpose: Mapped[str | None] = mapped_column(Text, nullable=True)
    booking_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Match outcome. Written only through bank_matching.persistence.execute_match_command.
    match_status: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'unmatched'")
    )
    matched_tenant_id: Mapped[str | None] = mapped_column(String, nullable=True)
    matched_lease_id: Mapped[str | None] = mapped_column(String, nullable=True)
    matched_building_id: Mapped[str | None] = mapped_column(String, nullable=True)
    transaction_type: Mapped[str | None] = mapped_column(String, nullable=True)
    match_confidence: Mapped[Decimal | None] = mapped_column(Numeric(3, 2), nullable=True)
    matched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    matched_by: Mapped[str | None] = mapped_column(String, nullable=True)
    matched_rule_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(_in_list("match_status", MATCH_STATUSES), name="ck_bank_tx_match_status"),
        CheckConstraint(
            "transaction_type IS NULL OR " + _in_list("transaction_type", TRANSACTION_TYPES),
            name="ck_bank_tx_transaction_type",
        ),
        CheckConstraint(
            "match_confidence IS NULL OR (match_confidence >= 0 AND match_confidence <= 1)",
            name="ck_bank_tx_match_confidence",
        ),
        # Candidate reads filter by organization and status, newest first.
        Index("ix_bank_tx_org_status_date", "organization_id", "match_status", "booking_date"),
    )


# ---------------------------
# Core: transaction_rules
# ---------------------------


class TransactionRuleRow(Base):
    __tablename__ = "transaction_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    # Ordered list of {"field", "operator", "value", "signed"} objects.
    conditions: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    action_type: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'book_as'")
    )
    tenant_id: Mapped[str | None] = mapped_column(String, nullable=True)
    lease_id: Mapped[str | None] = mapped_column(String, nullable=True)
    transaction_type: Mapped[str | None] = mapped_column(String, nullable=True)
    building_id: Mapped[str | None] = mapped_column(String, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("50"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    match_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    last_match_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(_in_list("action_type", RULE_ACTIONS), name="ck_tx_rule_action_type"),
        CheckConstraint(
            "transaction_type IS NULL OR " + _in_list("transaction_type", TRANSACTION_TYPES),
            name="ck_tx_rule_transaction_type",
        ),
        Index("ix_tx_rule_org", "organization_id"),
    )


__all__ = [
    "Base",
    "BankTransactionRow",
    "TransactionRuleRow",
    "MATCH_STATUSES",
    "TRANSACTION_TYPES",
    "RULE_ACTIONS",
]
