"""add_reminder_delivery_columns

Delivery bookkeeping on reminders: when it was sent or acknowledged and
how often it was snoozed.

Revision ID: 8c3f2d9e4a17
Revises: 5a1e0c2b7d41
Create Date: 2026-10-19
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic
revision: str = '8c3f2d9e4a17'
down_revision: Union[str, None] = '5a1e0c2b7d41'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("reminders", sa.Column("snooze_count", sa.Integer(), server_default="0", nullable=False))
    op.add_column("reminders", sa.Column("snoozed_until", sa.DateTime(timezone=True)))
    op.add_column("reminders", sa.Column("sent_at", sa.DateTime(timezone=True)))
    op.add_column("reminders", sa.Column("acknowledged_at", sa.DateTime(timezone=True)))
    op.create_index("ix_reminders_status_reminder_date", "reminders", ["status", "reminder_date"])


def downgrade() -> None:
    op.drop_index("ix_reminders_status_reminder_date", table_name="reminders")
    op.drop_column("reminders", "acknowledged_at")
    op.drop_column("reminders", "sent_at")
    op.drop_column("reminders", "snoozed_until")
    op.drop_column("reminders", "snooze_count")
