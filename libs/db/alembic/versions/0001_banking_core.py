# ruff: noqa: I001
"""Bank transactions and transaction rules.

Revision ID: 0001_banking_core
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "0001_banking_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


_TX_TYPES = "'rent','deposit','utility','maintenance','insurance','tax','repair','other'"


def upgrade() -> None:
    op.create_table(
        "bank_transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("organization_id", sa.Text(), nullable=False),
        sa.Column("account_id", sa.Text(), nullable=True),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.CHAR(3), nullable=False, server_default=sa.text("'EUR'")),
        sa.Column("counterpart_name", sa.Text(), nullable=True),
        sa.Column("counterpart_iban", sa.Text(), nullable=True),
        sa.Column("purpose", sa.Text(), nullable=True),
        sa.Column("booking_text", sa.Text(), nullable=True),
        sa.Column(
            "match_status", sa.Text(), nullable=False, server_default=sa.text("'unmatched'")
        ),
        sa.Column("matched_tenant_id", sa.Text(), nullable=True),
        sa.Column("matched_lease_id", sa.Text(), nullable=True),
        sa.Column("matched_building_id", sa.Text(), nullable=True),
        sa.Column("transaction_type", sa.Text(), nullable=True),
        sa.Column("match_confidence", sa.Numeric(3, 2), nullable=True),
        sa.Column("matched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("matched_by", sa.Text(), nullable=True),
        sa.Column("matched_rule_id", sa.String(36), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "match_status in ('unmatched','auto','manual','ignored')",
            name="ck_bank_tx_match_status",
        ),
        sa.CheckConstraint(
            f"transaction_type IS NULL OR transaction_type in ({_TX_TYPES})",
            name="ck_bank_tx_transaction_type",
        ),
        sa.CheckConstraint(
            "match_confidence IS NULL OR (match_confidence >= 0 AND match_confidence <= 1)",
            name="ck_bank_tx_match_confidence",
        ),
    )
    op.create_index(
        "ix_bank_tx_org_status_date",
        "bank_transactions",
        ["organization_id", "match_status", "booking_date"],
        unique=False,
    )

    op.create_table(
        "transaction_rules",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("organization_id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("conditions", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column(
            "action_type", sa.Text(), nullable=False, server_default=sa.text("'book_as'")
        ),
        sa.Column("tenant_id", sa.Text(), nullable=True),
        sa.Column("lease_id", sa.Text(), nullable=True),
        sa.Column("transaction_type", sa.Text(), nullable=True),
        sa.Column("building_id", sa.Text(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("50")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("match_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_match_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "action_type in ('assign_tenant','book_as','ignore')",
            name="ck_tx_rule_action_type",
        ),
        sa.CheckConstraint(
            f"transaction_type IS NULL OR transaction_type in ({_TX_TYPES})",
            name="ck_tx_rule_transaction_type",
        ),
    )
    op.create_index("ix_tx_rule_org", "transaction_rules", ["organization_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_tx_rule_org", table_name="transaction_rules")
    op.drop_table("transaction_rules")
    op.drop_index("ix_bank_tx_org_status_date", table_name="bank_transactions")
    op.drop_table("bank_transactions")
