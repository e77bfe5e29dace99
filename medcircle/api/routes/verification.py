"""
medcircle.api.routes.verification — Credential verification at signup
========================================================================
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Form, UploadFile
from sqlalchemy import Engine

from medcircle.api.deps import (
    get_current_user,
    get_engine,
    get_notifier,
    get_verification_service,
)
from medcircle.database.engine import run_db
from medcircle.services.notifications import NotificationCenter, Variant
from medcircle.services.verification_service import (
    VerificationRequest,
    VerificationService,
    record_outcome,
)

router = APIRouter(tags=["verification"])
logger = logging.getLogger(__name__)


@router.post("/verification")
async def verify_credentials(
    document: UploadFile,
    license_number: Annotated[str, Form()],
    state: Annotated[str, Form()],
    institution: Annotated[str, Form()],
    npi: Annotated[str | None, Form()] = None,
    user: dict = Depends(get_current_user),
    service: VerificationService = Depends(get_verification_service),
    engine: Engine = Depends(get_engine),
    notifier: NotificationCenter = Depends(get_notifier),
):
    """Verify a license, NPI and document; mark the profile verified on success."""
    request = VerificationRequest(
        license_number=license_number,
        state=state,
        institution=institution,
        npi=npi or None,
        document=await document.read(),
        document_name=document.filename or "document",
        document_content_type=document.content_type,
    )
    request.validate()

    result = await service.verify(request, attempt_key=str(user["sub"]))
    verified = await run_db(record_outcome, engine, user["sub"], request, result)

    if result.superseded:
        logger.info("Ignoring superseded verification for %s", user["sub"])
    elif result.is_valid:
        notifier.push(user["sub"], "Verification complete", "Your credentials were verified.")
    else:
        notifier.push(
            user["sub"],
            "Verification failed",
            "; ".join(result.errors or []) or "Your credentials could not be verified.",
            variant=Variant.DESTRUCTIVE,
        )
    return {**result.to_dict(), "profile_verified": verified}
