"""
medcircle.services.moderation_service — Content Moderation & Escalation
========================================================================

Gates user-generated content.  A denylist hit is an *offense*:

  1. offense count + 1 (ban once count > max_offenses)
  2. ``penalty_events`` MODERATION_PENALTY ledger entries (-2 each)
  3. warning or ban notification

Steps 1 and 2 commit in one transaction.  Offense state lives in the
``user_offenses`` table keyed by the authenticated user id, so clearing
client storage cannot lift a ban.  Only :meth:`reset_offenses`, exposed
to admins, moves a user back to ``CLEAR``.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from medcircle.database.models import (
    AdminActionType,
    KarmaActivityType,
    UserOffense,
)
from medcircle.engine.activities import points_for
from medcircle.engine.moderation import (
    DEFAULT_MAX_OFFENSES,
    OffenseState,
    find_denylisted_term,
    register_offense,
    warnings_remaining,
)
from medcircle.errors import Unauthenticated, ValidationFailure
from medcircle.services.admin_service import log_admin_action, row_to_dict
from medcircle.services.karma_service import RankChange, get_or_create_profile
from medcircle.services.notifications import Variant

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from medcircle.services.karma_service import KarmaLedger
    from medcircle.services.notifications import NotificationCenter

logger = logging.getLogger(__name__)

DEFAULT_PENALTY_EVENTS = 10


def _select_for_update(session: Session, user_id: str) -> UserOffense | None:
    return session.scalar(
        select(UserOffense)
        .where(UserOffense.user_id == user_id)
        .with_for_update()
    )


def lock_offense_row(session: Session, user_id: str) -> UserOffense:
    """Return the locked ``user_offenses`` row for *user_id*, creating it.

    Two first offenses racing each other both miss the row; the loser of
    the insert gets an ``IntegrityError`` inside its SAVEPOINT and locks
    the winner's row instead.
    """
    row = _select_for_update(session, user_id)
    if row is not None:
        return row
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(UserOffense(user_id=user_id, count=0, is_banned=False))
            session.flush()
    except IntegrityError:
        logger.info("Offense row for %s created concurrently", user_id)
    return _select_for_update(session, user_id)


def _state_of(row: UserOffense | None) -> OffenseState:
    if row is None:
        return OffenseState()
    return OffenseState(
        count=row.count,
        last_offense_at=row.last_offense_at,
        is_banned=row.is_banned,
    )


class ModerationService:
    """Denylist moderation with per-user escalation state.

    Usage::

        moderation = ModerationService(engine, ledger, notifier)
        if moderation.moderate(text, user_id):
            ...  # publish the post
    """

    def __init__(
        self,
        engine: Engine,
        ledger: KarmaLedger,
        notifier: NotificationCenter,
        *,
        max_offenses: int = DEFAULT_MAX_OFFENSES,
        penalty_events: int = DEFAULT_PENALTY_EVENTS,
    ) -> None:
        self._engine = engine
        self._ledger = ledger
        self._notifier = notifier
        self.max_offenses = max_offenses
        self.penalty_events = penalty_events

    @property
    def penalty_points(self) -> int:
        """Net karma removed per offense (a negative number)."""
        return points_for(KarmaActivityType.MODERATION_PENALTY) * self.penalty_events

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get_state(self, user_id: str) -> OffenseState:
        with Session(self._engine) as session:
            return _state_of(session.get(UserOffense, user_id))

    def is_banned(self, user_id: str) -> bool:
        return self.get_state(user_id).is_banned

    def allows_content(self, user_id: str) -> bool:
        """``False`` (with a ban notice) if *user_id* may not publish."""
        if self.is_banned(user_id):
            self._notify_banned(user_id)
            return False
        return True

    # -------------------------------------------------------------------
    # Moderation
    # -------------------------------------------------------------------
    def moderate(self, content: str | None, user_id: str | None) -> bool:
        """Return ``True`` if *content* may be published.

        A banned user is rejected before any scan and is never penalised
        again.

        Raises
        ------
        Unauthenticated
            If *user_id* is empty.
        ValidationFailure
            If *content* is empty or whitespace.
        """
        if not user_id:
            raise Unauthenticated("Sign in to post content.")
        if content is None or not content.strip():
            raise ValidationFailure("Content cannot be empty.")

        if not self.allows_content(user_id):
            return False

        term = find_denylisted_term(content)
        if term is None:
            return True

        state, change = self._record_offense(user_id)
        if change is None:
            # Banned by a concurrent request between the check and the lock.
            self._notify_banned(user_id)
            return False

        logger.warning(
            "Offense %d/%d for user %s (term=%r, banned=%s)",
            state.count, self.max_offenses, user_id, term, state.is_banned,
        )
        if state.is_banned:
            self._notifier.push(
                user_id,
                "Account Banned",
                "Your account has been banned for repeated violations of "
                "community guidelines.",
                variant=Variant.DESTRUCTIVE,
            )
        else:
            remaining = warnings_remaining(state, self.max_offenses)
            self._notifier.push(
                user_id,
                f"Warning {state.count}/{self.max_offenses}",
                f"Inappropriate language detected. {self.penalty_points} Karma "
                f"penalty. {remaining} warnings remaining.",
                variant=Variant.DESTRUCTIVE,
            )
        self._ledger.announce_rank_change(user_id, change)
        return False

    def _record_offense(self, user_id: str) -> tuple[OffenseState, RankChange | None]:
        """Advance the offense counter and book the penalty atomically."""
        with Session(self._engine, expire_on_commit=False) as session:
            get_or_create_profile(session, user_id)
            row = lock_offense_row(session, user_id)

            current = _state_of(row)
            if current.is_banned:
                session.rollback()
                return current, None

            new_state = register_offense(
                current, datetime.now(UTC), self.max_offenses
            )
            row.count = new_state.count
            row.last_offense_at = new_state.last_offense_at
            row.is_banned = new_state.is_banned

            change = self._ledger.record_penalty(
                session,
                user_id,
                self.penalty_events,
                reason=f"Moderation penalty (offense {new_state.count})",
            )
            session.commit()
        return new_state, change

    def _notify_banned(self, user_id: str) -> None:
        self._notifier.push(
            user_id,
            "Account Banned",
            "You cannot post content as your account has been banned.",
            variant=Variant.DESTRUCTIVE,
        )

    # -------------------------------------------------------------------
    # Reset (admin)
    # -------------------------------------------------------------------
    def reset_offenses(
        self, user_id: str, *, actor_id: str, reason: str | None = None
    ) -> OffenseState:
        """Return *user_id* to ``CLEAR`` and record the reset in admin_log.

        Callers must enforce admin authorisation.
        """
        with Session(self._engine, expire_on_commit=False) as session:
            row = session.get(UserOffense, user_id)
            before = row_to_dict(row)
            if row is not None:
                row.count = 0
                row.last_offense_at = None
                row.is_banned = False
                session.flush()
            log_admin_action(
                session,
                actor_id=actor_id,
                action_type=AdminActionType.RESET_OFFENSES.value,
                target_table="user_offenses",
                target_id=user_id,
                before=before,
                after=row_to_dict(row),
                reason=reason,
            )
            session.commit()

        self._notifier.push(
            user_id, "Offenses reset", "Your warning count has been cleared."
        )
        return OffenseState.cleared()
