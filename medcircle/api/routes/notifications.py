"""
medcircle.api.routes.notifications — Pending user notifications
=================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from medcircle.api.deps import get_current_user, get_notifier
from medcircle.services.notifications import NotificationCenter

router = APIRouter(tags=["notifications"])


@router.get("/notifications/me")
def my_notifications(
    user: dict = Depends(get_current_user),
    notifier: NotificationCenter = Depends(get_notifier),
):
    """Return and clear the current user's pending notifications."""
    return {"notifications": [n.to_dict() for n in notifier.drain(user["sub"])]}
