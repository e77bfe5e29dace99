"""
medcircle.services.verification_service — Credential Verification
==================================================================

Runs the external credential checks for a signup attempt concurrently
and scores them with :func:`medcircle.engine.verification.score_checks`.

* License board lookup — per-state endpoint, ``status == "active"`` or
  ``valid is True``.  Unsupported states fail without a request.
* NPI registry lookup — ``result_count > 0``.  Skipped (passes) when no
  NPI is supplied unless ``require_npi`` is configured.
* Document OCR — valid iff the extraction confidence is above 0.8.
* Institution — not checked against a registry; always passes.

A sub-check that raises or times out counts as failed and adds an entry
to ``errors``.  :meth:`VerificationService.verify` never raises.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

import httpx

from medcircle.database.engine import get_session
from medcircle.engine.verification import (
    DOCUMENT_CONFIDENCE_THRESHOLD,
    VerificationCheckSet,
    VerificationResult,
    score_checks,
    unavailable_result,
)
from medcircle.errors import ValidationFailure
from medcircle.services.karma_service import get_or_create_profile

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from medcircle.config import VerificationSettings

logger = logging.getLogger(__name__)

MAX_DOCUMENT_SIZE = 10 * 1024 * 1024  # 10 MB


# ---------------------------------------------------------------------------
# Inputs / intermediate results
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class VerificationRequest:
    """One signup verification attempt."""

    license_number: str
    state: str
    institution: str
    document: bytes
    document_name: str = "document"
    document_content_type: str | None = None
    npi: str | None = None

    def validate(self) -> None:
        """Raise :class:`ValidationFailure` for blank or oversized input."""
        missing = [
            name
            for name, value in (
                ("license_number", self.license_number),
                ("state", self.state),
                ("institution", self.institution),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise ValidationFailure(f"Missing required fields: {', '.join(missing)}")
        if not self.document:
            raise ValidationFailure("A license document is required.")
        if len(self.document) > MAX_DOCUMENT_SIZE:
            raise ValidationFailure(
                f"Document too large: {len(self.document)} bytes "
                f"(max {MAX_DOCUMENT_SIZE // 1024 // 1024}MB)"
            )


@dataclass(frozen=True, slots=True)
class DocumentCheck:
    valid: bool
    extracted_data: dict | None = None


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
class VerificationService:
    """Concurrent credential checks with timeouts and stale-attempt guard.

    Parameters
    ----------
    settings:
        Endpoints, timeout and NPI policy.
    client:
        Optional shared :class:`httpx.AsyncClient`.  When omitted, each
        :meth:`verify` call opens (and closes) its own client.
    """

    def __init__(
        self,
        settings: VerificationSettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self._client = client
        self._lock = threading.Lock()
        # Generations are unique across keys, so a stale attempt can never
        # match a key that was released and started again.
        self._counter = itertools.count(1)
        # attempt_key → generation of its in-flight attempt
        self._generations: dict[str, int] = {}

    # -------------------------------------------------------------------
    # Attempt generations
    # -------------------------------------------------------------------
    def _begin_attempt(self, attempt_key: str | None) -> int:
        if attempt_key is None:
            return 0
        with self._lock:
            generation = next(self._counter)
            self._generations[attempt_key] = generation
            return generation

    def _finish_attempt(self, attempt_key: str | None, generation: int) -> bool:
        """``True`` if *generation* is still the latest; releases its key."""
        if attempt_key is None:
            return True
        with self._lock:
            if self._generations.get(attempt_key) != generation:
                return False
            del self._generations[attempt_key]
            return True

    @asynccontextmanager
    async def _client_scope(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        transport = httpx.AsyncHTTPTransport(retries=1)
        async with httpx.AsyncClient(
            timeout=self.settings.timeout_seconds, transport=transport
        ) as client:
            yield client

    # -------------------------------------------------------------------
    # Individual checks (may raise; verify() absorbs failures)
    # -------------------------------------------------------------------
    async def check_license(
        self, client: httpx.AsyncClient, license_number: str, state: str
    ) -> bool:
        url = self.settings.license_boards.get(state.strip().upper())
        if not url:
            logger.info("No license board configured for state %r", state)
            return False
        resp = await client.get(url, params={"license": license_number})
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            return False
        return data.get("status") == "active" or data.get("valid") is True

    async def check_npi(self, client: httpx.AsyncClient, npi: str) -> bool:
        resp = await client.get(
            self.settings.npi_api_url, params={"number": npi, "version": "2.1"}
        )
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            return False
        return int(data.get("result_count") or 0) > 0

    async def check_document(
        self,
        client: httpx.AsyncClient,
        filename: str,
        content: bytes,
        content_type: str | None = None,
    ) -> DocumentCheck:
        resp = await client.post(
            self.settings.document_endpoint,
            files={"file": (filename, content, content_type or "application/octet-stream")},
        )
        resp.raise_for_status()
        data = resp.json()
        confidence = float(data.get("confidence") or 0.0)
        return DocumentCheck(
            valid=confidence > DOCUMENT_CONFIDENCE_THRESHOLD,
            extracted_data=data.get("data"),
        )

    # -------------------------------------------------------------------
    # Orchestration
    # -------------------------------------------------------------------
    async def _timed(self, awaitable: Awaitable[Any]) -> Any:
        return await asyncio.wait_for(awaitable, timeout=self.settings.timeout_seconds)

    @staticmethod
    def _failure_message(name: str, exc: BaseException) -> str:
        if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
            return f"{name} check timed out"
        if isinstance(exc, httpx.HTTPError):
            return f"{name} service unavailable"
        return f"{name} check failed"

    async def _run_checks(self, request: VerificationRequest) -> VerificationResult:
        errors: list[str] = []

        async with self._client_scope() as client:
            license_task = self._timed(
                self.check_license(client, request.license_number, request.state)
            )
            document_task = self._timed(
                self.check_document(
                    client,
                    request.document_name,
                    request.document,
                    request.document_content_type,
                )
            )
            if request.npi:
                npi_task = self._timed(self.check_npi(client, request.npi))
                license_out, npi_out, document_out = await asyncio.gather(
                    license_task, npi_task, document_task, return_exceptions=True
                )
            else:
                license_out, document_out = await asyncio.gather(
                    license_task, document_task, return_exceptions=True
                )
                npi_out = not self.settings.require_npi

        if isinstance(license_out, BaseException):
            logger.warning("License lookup failed: %r", license_out)
            errors.append(self._failure_message("License board", license_out))
            license_ok = False
        else:
            license_ok = bool(license_out)
            if not license_ok:
                errors.append("Medical license not found")

        if isinstance(npi_out, BaseException):
            logger.warning("NPI lookup failed: %r", npi_out)
            errors.append(self._failure_message("NPI registry", npi_out))
            npi_ok = False
        else:
            npi_ok = bool(npi_out)
            if not npi_ok:
                errors.append(
                    "NPI number not valid" if request.npi else "NPI number required"
                )

        extracted = None
        if isinstance(document_out, BaseException):
            logger.warning("Document check failed: %r", document_out)
            errors.append(self._failure_message("Document verification", document_out))
            document_ok = False
        else:
            document_ok = document_out.valid
            extracted = document_out.extracted_data
            if not document_ok:
                errors.append("Document verification failed")

        checks = VerificationCheckSet(
            license_valid=license_ok,
            npi_valid=npi_ok,
            document_valid=document_ok,
            institution_valid=True,
        )
        return score_checks(checks, errors, extracted_data=extracted)

    async def verify(
        self, request: VerificationRequest, *, attempt_key: str | None = None
    ) -> VerificationResult:
        """Run all checks and return a scored result.  Never raises.

        When *attempt_key* is given and another attempt with the same key
        starts before this one finishes, the result comes back with
        ``superseded=True`` and must not be persisted.
        """
        generation = self._begin_attempt(attempt_key)
        try:
            result = await self._run_checks(request)
        except Exception:
            logger.exception("Verification run failed")
            result = unavailable_result()

        if not self._finish_attempt(attempt_key, generation):
            logger.info("Discarding superseded verification attempt for %s", attempt_key)
            result = replace(result, superseded=True)
        else:
            logger.info(
                "Verification %s (confidence=%.2f)",
                "passed" if result.is_valid else "failed",
                result.confidence,
            )
        return result


# ---------------------------------------------------------------------------
# Persistence of the outcome
# ---------------------------------------------------------------------------
def record_outcome(
    engine: Engine,
    user_id: str,
    request: VerificationRequest,
    result: VerificationResult,
) -> bool:
    """Mark the profile verified for a passing, current result.

    A failed attempt never clears an earlier verification.  Returns the
    profile's resulting ``is_verified`` flag.
    """
    if result.superseded:
        return False
    with get_session(engine) as session:
        profile = get_or_create_profile(session, user_id)
        if result.is_valid:
            profile.is_verified = True
            profile.license_number = request.license_number
            profile.institution = request.institution
        return bool(profile.is_verified)
