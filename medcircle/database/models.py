"""
medcircle.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- profiles          — Community member profiles (auth-provider user id PK)
- karma_activities  — Append-only karma ledger
- user_offenses     — Server-side moderation state per user
- admin_log         — Append-only audit trail
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
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
    """Shared base for all MedCircle ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class KarmaActivityType(enum.StrEnum):
    """All activity types that can be written to the karma ledger."""
    CREATE_POST = "CREATE_POST"
    CREATE_COMMENT = "CREATE_COMMENT"
    RECEIVE_COMMENT = "RECEIVE_COMMENT"
    RECEIVE_UPVOTE = "RECEIVE_UPVOTE"
    GIVE_UPVOTE = "GIVE_UPVOTE"
    RECEIVE_DOWNVOTE = "RECEIVE_DOWNVOTE"
    JOIN_COMMUNITY = "JOIN_COMMUNITY"
    CREATE_COMMUNITY = "CREATE_COMMUNITY"
    MODERATION_PENALTY = "MODERATION_PENALTY"


class AdminActionType(enum.StrEnum):
    """Categories of privileged mutations recorded in admin_log."""
    RESET_OFFENSES = "RESET_OFFENSES"


# ---------------------------------------------------------------------------
# Profiles — one row per authenticated member
# ---------------------------------------------------------------------------
class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    institution: Mapped[str | None] = mapped_column(String(200), default=None)
    license_number: Mapped[str | None] = mapped_column(String(50), default=None)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    rank: Mapped[str | None] = mapped_column(String(50), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    activities: Mapped[list[KarmaActivity]] = relationship(
        back_populates="profile", cascade="all, delete-orphan"
    )
    offenses: Mapped[UserOffense | None] = relationship(
        back_populates="profile", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Profile id={self.id!r} name={self.display_name!r} rank={self.rank!r}>"


# ---------------------------------------------------------------------------
# KarmaActivity — append-only ledger
# ---------------------------------------------------------------------------
class KarmaActivity(Base):
    """One scored event.  Rows are never updated; totals are SUM(points)."""
    __tablename__ = "karma_activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    activity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    profile: Mapped[Profile] = relationship(back_populates="activities")

    __table_args__ = (
        Index("ix_karma_activities_user_time", "user_id", "created_at"),
        Index("ix_karma_activities_type", "activity_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<KarmaActivity id={self.id} user={self.user_id!r} "
            f"type={self.activity_type} points={self.points}>"
        )


# ---------------------------------------------------------------------------
# UserOffense — moderation escalation state
# ---------------------------------------------------------------------------
class UserOffense(Base):
    """Offense counter and ban flag, keyed by authenticated identity.

    Mutated only by :class:`~medcircle.services.moderation_service.ModerationService`.
    """
    __tablename__ = "user_offenses"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True
    )
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_offense_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    is_banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    profile: Mapped[Profile] = relationship(back_populates="offenses")

    __table_args__ = (
        Index("ix_user_offenses_banned", "is_banned"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserOffense user={self.user_id!r} count={self.count} "
            f"banned={self.is_banned}>"
        )


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
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
        return f"<AdminLog id={self.id} actor={self.actor_id!r} action={self.action_type}>"
