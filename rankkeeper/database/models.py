"""
rankkeeper.database.models — SQLAlchemy 2.0 Data Models
========================================================

Tables:
- users           — Community members; carries the single rank entitlement
- donation_ranks  — Rank catalogue (thresholds, display attributes, pricing)
- donations       — Append-only record of subscription purchases
- admin_log       — Append-only audit trail of admin mutations
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Rankkeeper ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class AdminActionType(enum.StrEnum):
    """Categories of admin mutations recorded in admin_log."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    RANK_ASSIGN = "RANK_ASSIGN"
    RANK_REVOKE = "RANK_REVOKE"


# ---------------------------------------------------------------------------
# DonationRank — the rank catalogue
# ---------------------------------------------------------------------------
class DonationRank(Base):
    __tablename__ = "donation_ranks"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)  # e.g. "vip_plus"
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    min_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    color: Mapped[str] = mapped_column(String(20), nullable=False)
    text_color: Mapped[str] = mapped_column(String(20), nullable=False)
    icon: Mapped[str | None] = mapped_column(String(100), default=None)
    badge: Mapped[str | None] = mapped_column(String(50), default=None)
    glow: Mapped[bool] = mapped_column(Boolean, default=False)
    duration_days: Mapped[int] = mapped_column(Integer, default=30)
    price_per_day: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), default=None)
    subtitle: Mapped[str | None] = mapped_column(String(200), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    holders: Mapped[list[User]] = relationship(back_populates="donation_rank")

    def __repr__(self) -> str:
        return f"<DonationRank id={self.id!r} min={self.min_amount}>"


# ---------------------------------------------------------------------------
# Users — one row per member, one entitlement per user
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    donation_rank_id: Mapped[str | None] = mapped_column(
        String(50), ForeignKey("donation_ranks.id", ondelete="SET NULL"), default=None
    )
    # NULL with a rank set = permanent grant
    rank_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    total_donated: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    donation_rank: Mapped[DonationRank | None] = relationship(back_populates="holders")
    donations: Mapped[list[Donation]] = relationship(back_populates="user")

    __table_args__ = (
        # Sweep scans timed grants in expiry order
        Index("ix_users_rank_expires_at", "rank_expires_at"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.username!r} rank={self.donation_rank_id!r}>"


# ---------------------------------------------------------------------------
# Donations — purchase journal
# ---------------------------------------------------------------------------
class Donation(Base):
    __tablename__ = "donations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    method: Mapped[str | None] = mapped_column(String(50), default=None)
    message: Mapped[str | None] = mapped_column(Text, default=None)
    displayed: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User | None] = relationship(back_populates="donations")

    __table_args__ = (
        Index("ix_donations_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Donation id={self.id} user={self.user_id} amount={self.amount}>"


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id} action={self.action_type}>"
