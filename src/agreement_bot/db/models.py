"""
SQLAlchemy ORM models for the Agreement Bot.

This module defines the complete database schema:
- AgreementUser      — a Telegram user who talks to the bot
- ConversationState  — the one in-progress conversation per user (state + draft)
- Agreement          — a saved rent or custom agreement
- Reminder           — a dated reminder generated for an agreement
"""

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ── Base ──────────────────────────────────────────────────────


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ── Enums ─────────────────────────────────────────────────────
# Stored as plain strings (VARCHAR) so new values need no type migration.


class AgreementType(str, enum.Enum):
    RENT = "rent"
    CUSTOM = "custom"


class ReminderType(str, enum.Enum):
    PRE_NOTIFY = "pre_notify"
    DUE_DAY = "due_day"
    YEARLY_INCREASE = "yearly_increase"
    TEN_YEAR_NOTICE = "ten_year_notice"
    FIVE_YEAR_NOTICE = "five_year_notice"


class ReminderStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    ACKNOWLEDGED = "acknowledged"
    FAILED = "failed"          # chat gone or bot blocked


# ── Models ────────────────────────────────────────────────────


class AgreementUser(Base):
    """A person who uses the agreement bot."""

    __tablename__ = "agreement_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    telegram_user_id: Mapped[int] = mapped_column(BigInteger, unique=True, index=True)
    telegram_chat_id: Mapped[int] = mapped_column(BigInteger)
    username: Mapped[str | None] = mapped_column(String(255))
    first_name: Mapped[str | None] = mapped_column(String(255))
    language: Mapped[str] = mapped_column(String(10), default="tr", server_default="tr")
    timezone: Mapped[str] = mapped_column(
        String(50), default="Europe/Istanbul", server_default="Europe/Istanbul"
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    agreements: Mapped[list["Agreement"]] = relationship(back_populates="user")


class ConversationState(Base):
    """Where a user is in a multi-step flow, with the draft collected so far."""

    __tablename__ = "agreement_conversation_states"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    telegram_user_id: Mapped[int] = mapped_column(BigInteger, unique=True)
    state: Mapped[str] = mapped_column(String(100))
    state_data: Mapped[dict[str, Any]] = mapped_column(JSONB, default=dict, server_default="{}")
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Agreement(Base):
    """A rent or custom agreement the user created through a flow."""

    __tablename__ = "agreements"
    __table_args__ = (
        UniqueConstraint("user_id", "title", name="uq_agreements_user_title"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("agreement_users.id", ondelete="CASCADE"), index=True)
    agreement_type: Mapped[str] = mapped_column(String(20))
    title: Mapped[str] = mapped_column(String(50))

    # Rent fields
    user_role: Mapped[str | None] = mapped_column(String(20))
    start_date: Mapped[date | None] = mapped_column(Date)
    currency: Mapped[str | None] = mapped_column(String(3))
    rent_amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    due_day: Mapped[int | None] = mapped_column(Integer)
    has_monthly_reminder: Mapped[bool] = mapped_column(Boolean, default=False)
    reminder_timing: Mapped[str | None] = mapped_column(String(20))
    has_yearly_increase_reminder: Mapped[bool] = mapped_column(Boolean, default=False)
    contract_duration_years: Mapped[int | None] = mapped_column(Integer)
    has_ten_year_reminder: Mapped[bool] = mapped_column(Boolean, default=False)
    has_five_year_reminder: Mapped[bool] = mapped_column(Boolean, default=False)

    # Custom fields
    description: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    user: Mapped["AgreementUser"] = relationship(back_populates="agreements")
    reminders: Mapped[list["Reminder"]] = relationship(
        back_populates="agreement", cascade="all, delete-orphan", order_by="Reminder.reminder_date"
    )


class Reminder(Base):
    """A single dated reminder belonging to an agreement."""

    __tablename__ = "reminders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    agreement_id: Mapped[int] = mapped_column(ForeignKey("agreements.id", ondelete="CASCADE"), index=True)
    reminder_type: Mapped[str] = mapped_column(String(30))
    title: Mapped[str] = mapped_column(String(100))
    amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    due_date: Mapped[date] = mapped_column(Date)
    reminder_date: Mapped[date] = mapped_column(Date, index=True)
    status: Mapped[str] = mapped_column(String(20), default=ReminderStatus.PENDING.value, server_default="pending")
    snooze_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    snoozed_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    agreement: Mapped["Agreement"] = relationship(back_populates="reminders")
