"""
medcircle.api.deps — FastAPI dependency injection
==================================================

Sessions are issued by the external auth provider as HS256 JWTs signed
with ``JWT_SECRET``.  ``sub`` carries the user id and ``is_admin`` gates
admin routes.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from medcircle.config import MedCircleConfig, load_config
from medcircle.database.engine import create_db_engine
from medcircle.services.karma_service import KarmaLedger
from medcircle.services.moderation_service import ModerationService
from medcircle.services.notifications import NotificationCenter
from medcircle.services.verification_service import VerificationService

_WEAK_SECRETS = frozenset({
    "medcircle-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


# ---------------------------------------------------------------------------
# Process-wide singletons
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> MedCircleConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_notifier() -> NotificationCenter:
    return NotificationCenter()


@lru_cache(maxsize=1)
def get_verification_service() -> VerificationService:
    return VerificationService(get_config().verification)


# ---------------------------------------------------------------------------
# Per-request services
# ---------------------------------------------------------------------------
def get_ledger(
    engine: Annotated[Engine, Depends(get_engine)],
    notifier: Annotated[NotificationCenter, Depends(get_notifier)],
) -> KarmaLedger:
    return KarmaLedger(engine, notifier)


def get_moderation(
    engine: Annotated[Engine, Depends(get_engine)],
    ledger: Annotated[KarmaLedger, Depends(get_ledger)],
    notifier: Annotated[NotificationCenter, Depends(get_notifier)],
    cfg: Annotated[MedCircleConfig, Depends(get_config)],
) -> ModerationService:
    return ModerationService(
        engine,
        ledger,
        notifier,
        max_offenses=cfg.moderation.max_offenses,
        penalty_events=cfg.moderation.penalty_events,
    )


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------
def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate the Bearer JWT and return its payload. Raises 401 if invalid."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not payload.get("sub"):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token has no subject")
    return payload


def get_current_admin(
    user: Annotated[dict, Depends(get_current_user)],
) -> dict:
    """Like :func:`get_current_user` but also requires ``is_admin``."""
    if not user.get("is_admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return user
