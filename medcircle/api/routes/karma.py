"""
medcircle.api.routes.karma — Karma ledger, ranks & leaderboard
================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from medcircle.api.deps import get_current_user, get_ledger, get_moderation
from medcircle.constants import leaderboard_badge
from medcircle.engine.activities import CONTENT_ACTIVITY_TYPES, parse_self_reported
from medcircle.engine.ranks import RANK_BANDS
from medcircle.services.karma_service import KarmaLedger, activity_dict
from medcircle.services.moderation_service import ModerationService

router = APIRouter(tags=["karma"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ActivityCreate(BaseModel):
    activity_type: str
    description: str | None = Field(default=None, max_length=500)


# ---------------------------------------------------------------------------
# POST /karma/activities
# ---------------------------------------------------------------------------
@router.post("/karma/activities", status_code=201)
def create_activity(
    body: ActivityCreate,
    user: dict = Depends(get_current_user),
    ledger: KarmaLedger = Depends(get_ledger),
    moderation: ModerationService = Depends(get_moderation),
):
    """Record one karma-earning action performed by the current user.

    Received-side events and penalties are rejected with 422; content
    actions by a banned member with 403.
    """
    kind = parse_self_reported(body.activity_type)
    if kind in CONTENT_ACTIVITY_TYPES and not moderation.allows_content(user["sub"]):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Account banned")

    activity = ledger.record_activity(
        user["sub"],
        kind,
        body.description,
        display_name=user.get("username"),
    )
    return {
        "activity": activity_dict(activity),
        "total_karma": ledger.get_total(user["sub"]),
    }


# ---------------------------------------------------------------------------
# GET /karma/me
# ---------------------------------------------------------------------------
@router.get("/karma/me")
def my_karma(
    user: dict = Depends(get_current_user),
    ledger: KarmaLedger = Depends(get_ledger),
):
    """Total, category breakdown, rank and progress for the current user."""
    return ledger.get_summary(user["sub"])


@router.get("/karma/me/activities")
def my_activities(
    limit: int = Query(50, ge=1, le=200),
    user: dict = Depends(get_current_user),
    ledger: KarmaLedger = Depends(get_ledger),
):
    activities = ledger.list_activities(user["sub"], limit=limit)
    return {"activities": [activity_dict(a) for a in activities]}


# ---------------------------------------------------------------------------
# GET /karma/ranks
# ---------------------------------------------------------------------------
@router.get("/karma/ranks")
def rank_table():
    """The rank bands, lowest first."""
    return {"ranks": [band.to_dict() for band in RANK_BANDS]}


# ---------------------------------------------------------------------------
# GET /leaderboard
# ---------------------------------------------------------------------------
@router.get("/leaderboard")
def get_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    ledger: KarmaLedger = Depends(get_ledger),
):
    """Top members by total karma."""
    entries = ledger.leaderboard(limit=limit)
    return {
        "entries": [
            {**entry, "position": pos, "badge": leaderboard_badge(pos)}
            for pos, entry in enumerate(entries, start=1)
        ]
    }
