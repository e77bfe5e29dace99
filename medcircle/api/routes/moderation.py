"""
medcircle.api.routes.moderation — Content checks & offense administration
===========================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from medcircle.api.deps import (
    get_current_admin,
    get_current_user,
    get_engine,
    get_ledger,
    get_moderation,
)
from medcircle.engine.moderation import warnings_remaining
from medcircle.services.admin_service import list_audit_log
from medcircle.services.karma_service import KarmaLedger
from medcircle.services.moderation_service import ModerationService

router = APIRouter(tags=["moderation"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ContentCheck(BaseModel):
    content: str = Field(max_length=20_000)


class OffenseReset(BaseModel):
    reason: str | None = None


def _state_payload(moderation: ModerationService, user_id: str) -> dict:
    state = moderation.get_state(user_id)
    return {
        **state.to_dict(),
        "max_offenses": moderation.max_offenses,
        "warnings_remaining": warnings_remaining(state, moderation.max_offenses),
    }


# ---------------------------------------------------------------------------
# Member endpoints
# ---------------------------------------------------------------------------
@router.post("/moderation/check")
def check_content(
    body: ContentCheck,
    user: dict = Depends(get_current_user),
    moderation: ModerationService = Depends(get_moderation),
    ledger: KarmaLedger = Depends(get_ledger),
):
    """Scan content before publishing.  ``allowed=false`` means rejected."""
    allowed = moderation.moderate(body.content, user["sub"])
    offenses = _state_payload(moderation, user["sub"])
    return {
        "allowed": allowed,
        "banned": offenses["is_banned"],
        "offenses": offenses,
        "total_karma": ledger.get_total(user["sub"]),
    }


@router.get("/moderation/me")
def my_offenses(
    user: dict = Depends(get_current_user),
    moderation: ModerationService = Depends(get_moderation),
):
    return _state_payload(moderation, user["sub"])


# ---------------------------------------------------------------------------
# Admin endpoints
# ---------------------------------------------------------------------------
@router.post("/admin/moderation/{user_id}/reset")
def reset_offenses(
    user_id: str,
    body: OffenseReset | None = None,
    admin: dict = Depends(get_current_admin),
    moderation: ModerationService = Depends(get_moderation),
):
    """Clear a member's offense count and ban."""
    moderation.reset_offenses(
        user_id,
        actor_id=str(admin["sub"]),
        reason=body.reason if body else None,
    )
    return _state_payload(moderation, user_id)


@router.get("/admin/audit")
def audit_log(
    limit: int = Query(100, ge=1, le=500),
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    return {"entries": list_audit_log(engine, limit=limit)}
