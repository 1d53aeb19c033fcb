"""create_agreement_tables

Users, conversation states, agreements and reminders for the agreement bot.

Revision ID: 5a1e0c2b7d41
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic
revision: str = '5a1e0c2b7d41'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "agreement_users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("telegram_user_id", sa.BigInteger(), nullable=False),
        sa.Column("telegram_chat_id", sa.BigInteger(), nullable=False),
        sa.Column("username", sa.String(255)),
        sa.Column("first_name", sa.String(255)),
        sa.Column("language", sa.String(10), server_default="tr", nullable=False),
        sa.Column("timezone", sa.String(50), server_default="Europe/Istanbul", nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_agreement_users_telegram_user_id", "agreement_users", ["telegram_user_id"], unique=True
    )

    op.create_table(
        "agreement_conversation_states",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("telegram_user_id", sa.BigInteger(), nullable=False, unique=True),
        sa.Column("state", sa.String(100), nullable=False),
        sa.Column("state_data", postgresql.JSONB(), server_default="{}", nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_agreement_conversation_states_expires_at", "agreement_conversation_states", ["expires_at"]
    )

    op.create_table(
        "agreements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer(),
            sa.ForeignKey("agreement_users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("agreement_type", sa.String(20), nullable=False),
        sa.Column("title", sa.String(50), nullable=False),
        sa.Column("user_role", sa.String(20)),
        sa.Column("start_date", sa.Date()),
        sa.Column("currency", sa.String(3)),
        sa.Column("rent_amount", sa.Numeric(15, 2)),
        sa.Column("due_day", sa.Integer()),
        sa.Column("has_monthly_reminder", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("reminder_timing", sa.String(20)),
        sa.Column("has_yearly_increase_reminder", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("contract_duration_years", sa.Integer()),
        sa.Column("has_ten_year_reminder", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("has_five_year_reminder", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("description", sa.Text()),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "title", name="uq_agreements_user_title"),
        sa.CheckConstraint("agreement_type IN ('rent', 'custom')", name="ck_agreements_type"),
        sa.CheckConstraint("user_role IN ('tenant', 'landlord')", name="ck_agreements_user_role"),
        sa.CheckConstraint("currency IN ('TRY', 'EUR', 'USD', 'GBP')", name="ck_agreements_currency"),
        sa.CheckConstraint("due_day BETWEEN 1 AND 31", name="ck_agreements_due_day"),
    )
    op.create_index("ix_agreements_user_id", "agreements", ["user_id"])

    op.create_table(
        "reminders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "agreement_id", sa.Integer(),
            sa.ForeignKey("agreements.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("reminder_type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2)),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("reminder_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "reminder_type IN ('pre_notify', 'due_day', 'yearly_increase', "
            "'ten_year_notice', 'five_year_notice')",
            name="ck_reminders_type",
        ),
    )
    op.create_index("ix_reminders_agreement_id", "reminders", ["agreement_id"])
    op.create_index("ix_reminders_reminder_date", "reminders", ["reminder_date"])


def downgrade() -> None:
    op.drop_table("reminders")
    op.drop_table("agreements")
    op.drop_table("agreement_conversation_states")
    op.drop_table("agreement_users")
