"""
medcircle.services.karma_service — Karma Ledger
================================================

Append-only persistence of scored activities plus the derived views
(total, category breakdown, rank, leaderboard).

Totals are always ``SUM(points)`` over committed rows, so a write that
fails and rolls back is never counted.  The denormalised
``profiles.rank`` label is rewritten in the same transaction as every
ledger insert.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from medcircle.database.models import KarmaActivity, KarmaActivityType, Profile
from medcircle.engine.activities import (
    KarmaBreakdown,
    breakdown_from_totals,
    parse_activity_type,
    points_for,
)
from medcircle.engine.ranks import classify, rank_for, rank_progress
from medcircle.errors import Unauthenticated

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from medcircle.services.notifications import NotificationCenter

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RankChange:
    old: str
    new: str

    @property
    def changed(self) -> bool:
        return self.old != self.new


# ---------------------------------------------------------------------------
# Session-level helpers
# ---------------------------------------------------------------------------
def get_or_create_profile(
    session: Session, user_id: str, display_name: str | None = None
) -> Profile:
    """Fetch or insert a Profile row.

    A concurrent first write for the same user makes the insert fail
    inside its SAVEPOINT; the row that won is loaded instead.
    """
    profile = session.get(Profile, user_id)
    if profile is None:
        try:
            with session.begin_nested():   # SAVEPOINT
                profile = Profile(id=user_id, display_name=display_name, rank=classify(0))
                session.add(profile)
                session.flush()
            return profile
        except IntegrityError:
            logger.info("Profile %s created concurrently", user_id)
            profile = session.get(Profile, user_id)
    if display_name:
        profile.display_name = display_name
    return profile


def total_karma(session: Session, user_id: str) -> int:
    """Sum of every ledger entry for *user_id* visible to *session*."""
    return int(session.scalar(
        select(func.coalesce(func.sum(KarmaActivity.points), 0))
        .where(KarmaActivity.user_id == user_id)
    ) or 0)


# ---------------------------------------------------------------------------
# Ledger service
# ---------------------------------------------------------------------------
class KarmaLedger:
    """Records karma events and answers total/breakdown/rank queries.

    Usage::

        ledger = KarmaLedger(engine, notifier)
        ledger.record_activity(user_id, KarmaActivityType.CREATE_POST)
        ledger.get_total(user_id)       # 10
    """

    def __init__(self, engine: Engine, notifier: NotificationCenter) -> None:
        self._engine = engine
        self._notifier = notifier

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    def _append(
        self,
        session: Session,
        user_id: str,
        activity_type: KarmaActivityType,
        *,
        count: int = 1,
        description: str | None = None,
        display_name: str | None = None,
    ) -> tuple[list[KarmaActivity], RankChange]:
        """Insert *count* identical entries and refresh the stored rank.

        Runs inside the caller's transaction; nothing is committed here.
        """
        profile = get_or_create_profile(session, user_id, display_name)
        points = points_for(activity_type)
        before = total_karma(session, user_id)

        rows = [
            KarmaActivity(
                user_id=user_id,
                activity_type=activity_type.value,
                points=points,
                description=description,
            )
            for _ in range(count)
        ]
        session.add_all(rows)
        session.flush()

        after = before + points * count
        change = RankChange(old=classify(before), new=classify(after))
        profile.rank = change.new
        return rows, change

    def record_activity(
        self,
        user_id: str | None,
        activity_type: KarmaActivityType | str,
        description: str | None = None,
        *,
        notify: bool = True,
        display_name: str | None = None,
    ) -> KarmaActivity:
        """Append one scored activity for *user_id* and return it.

        Each call is a distinct event; recording the same action twice
        yields two entries.

        Raises
        ------
        Unauthenticated
            If *user_id* is empty.
        ValidationFailure
            If *activity_type* is not a known type.
        """
        if not user_id:
            raise Unauthenticated("Sign in to earn karma.")
        kind = parse_activity_type(activity_type)

        with Session(self._engine, expire_on_commit=False) as session:
            rows, change = self._append(
                session, user_id, kind,
                description=description, display_name=display_name,
            )
            session.commit()
            activity = rows[0]
            session.refresh(activity)
            session.expunge(activity)

        logger.debug(
            "karma %s %+d for %s (%s)", kind.value, activity.points, user_id, change.new
        )
        if notify and activity.points > 0:
            label = kind.value.replace("_", " ").lower()
            self._notifier.push(
                user_id,
                f"+{activity.points} Karma!",
                description or f"Earned for {label}",
            )
        self.announce_rank_change(user_id, change)
        return activity

    def record_penalty(
        self, session: Session, user_id: str, events: int, reason: str | None = None
    ) -> RankChange:
        """Append *events* MODERATION_PENALTY entries inside *session*.

        No per-entry notification is produced.  The caller commits.
        """
        _, change = self._append(
            session,
            user_id,
            KarmaActivityType.MODERATION_PENALTY,
            count=events,
            description=reason,
        )
        return change

    def announce_rank_change(self, user_id: str, change: RankChange) -> None:
        if not change.changed:
            return
        self._notifier.push(
            user_id,
            f"Rank: {change.new}",
            f"Your rank changed from {change.old} to {change.new}.",
        )

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get_total(self, user_id: str) -> int:
        with Session(self._engine) as session:
            return total_karma(session, user_id)

    def get_breakdown(self, user_id: str) -> KarmaBreakdown:
        with Session(self._engine) as session:
            rows = session.execute(
                select(
                    KarmaActivity.activity_type,
                    func.sum(KarmaActivity.points).label("points"),
                )
                .where(KarmaActivity.user_id == user_id)
                .group_by(KarmaActivity.activity_type)
            ).all()
        return breakdown_from_totals({row.activity_type: int(row.points) for row in rows})

    def list_activities(self, user_id: str, limit: int = 50) -> list[KarmaActivity]:
        """Most recent ledger entries first."""
        with Session(self._engine, expire_on_commit=False) as session:
            rows = session.scalars(
                select(KarmaActivity)
                .where(KarmaActivity.user_id == user_id)
                .order_by(KarmaActivity.created_at.desc(), KarmaActivity.id.desc())
                .limit(limit)
            ).all()
            for row in rows:
                session.expunge(row)
            return list(rows)

    def get_summary(self, user_id: str) -> dict:
        total = self.get_total(user_id)
        band = rank_for(total)
        return {
            "user_id": user_id,
            "total_karma": total,
            "breakdown": self.get_breakdown(user_id).to_dict(),
            "rank": band.label,
            "rank_color": band.color,
            "progress": rank_progress(total).to_dict(),
        }

    def leaderboard(self, limit: int = 10) -> list[dict]:
        """Members ordered by total karma, highest first."""
        total_col = func.coalesce(func.sum(KarmaActivity.points), 0).label("total_karma")
        with Session(self._engine) as session:
            rows = session.execute(
                select(Profile, total_col)
                .outerjoin(KarmaActivity, KarmaActivity.user_id == Profile.id)
                .group_by(Profile.id)
                .order_by(total_col.desc(), Profile.id)
                .limit(limit)
            ).all()
            return [
                {
                    "id": profile.id,
                    "display_name": profile.display_name,
                    "institution": profile.institution,
                    "rank": classify(int(total)),
                    "total_karma": int(total),
                }
                for profile, total in rows
            ]


def activity_dict(activity: KarmaActivity) -> dict:
    return {
        "id": activity.id,
        "user_id": activity.user_id,
        "activity_type": activity.activity_type,
        "points": activity.points,
        "description": activity.description,
        "created_at": activity.created_at.isoformat() if activity.created_at else None,
    }
