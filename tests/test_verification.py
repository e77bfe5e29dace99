"""
tests/test_verification.py — Credential Verification Tests
============================================================
External services are replaced with ``httpx.MockTransport`` handlers;
nothing leaves the process.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace

import httpx
import pytest
from sqlalchemy.orm import Session

from medcircle.config import VerificationSettings
from medcircle.database.models import Profile
from medcircle.engine.verification import (
    SERVICE_UNAVAILABLE,
    VerificationCheckSet,
    score_checks,
    unavailable_result,
)
from medcircle.errors import ValidationFailure
from medcircle.services.verification_service import (
    MAX_DOCUMENT_SIZE,
    VerificationRequest,
    VerificationService,
    record_outcome,
)

BOARD_URL = "https://board.test/ca"
NPI_URL = "https://npi.test/api/"
OCR_URL = "https://ocr.test/verify-document"


def run_async(coro):
    """Helper to run an async coroutine in a sync test."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


def _settings(**overrides) -> VerificationSettings:
    base = VerificationSettings(
        npi_api_url=NPI_URL,
        document_endpoint=OCR_URL,
        license_boards={"CA": BOARD_URL},
        timeout_seconds=2.0,
    )
    return replace(base, **overrides)


def _request(**overrides) -> VerificationRequest:
    base = VerificationRequest(
        license_number="A12345",
        state="CA",
        institution="UCSF Medical Center",
        document=b"%PDF-1.4 fake license scan",
        document_name="license.pdf",
        document_content_type="application/pdf",
        npi="1234567893",
    )
    return replace(base, **overrides)


def _handler(
    *,
    license_status: str = "active",
    npi_count: int = 1,
    confidence: float = 0.93,
    fail: set[str] = frozenset(),
):
    """Build a MockTransport handler for the three external services."""

    def handle(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url.startswith(BOARD_URL):
            if "license" in fail:
                return httpx.Response(503)
            assert request.url.params["license"] == "A12345"
            return httpx.Response(200, json={"status": license_status})
        if url.startswith(NPI_URL):
            if "npi" in fail:
                return httpx.Response(500)
            assert request.url.params["version"] == "2.1"
            return httpx.Response(200, json={"result_count": npi_count})
        if url.startswith(OCR_URL):
            if "document" in fail:
                raise httpx.ConnectError("ocr down", request=request)
            assert request.headers["content-type"].startswith("multipart/form-data")
            return httpx.Response(
                200, json={"confidence": confidence, "data": {"name": "Dr. Jane Roe"}}
            )
        return httpx.Response(404)

    return handle


def _service(handler, **settings) -> VerificationService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return VerificationService(_settings(**settings), client=client)


# ===========================================================================
# Scoring
# ===========================================================================
class TestScoring:
    def test_three_of_four_is_valid(self):
        result = score_checks(VerificationCheckSet(True, True, False, True))
        assert result.confidence == 0.75
        assert result.is_valid

    def test_two_of_four_is_invalid(self):
        result = score_checks(VerificationCheckSet(True, False, False, True))
        assert result.confidence == 0.5
        assert not result.is_valid

    def test_no_errors_is_none(self):
        result = score_checks(VerificationCheckSet(True, True, True, True), [])
        assert result.errors is None

    def test_unavailable(self):
        result = unavailable_result()
        assert result.confidence == 0.0
        assert result.errors == [SERVICE_UNAVAILABLE]


# ===========================================================================
# Request validation
# ===========================================================================
class TestRequestValidation:
    def test_valid_request(self):
        _request().validate()

    def test_blank_fields(self):
        with pytest.raises(ValidationFailure, match="license_number, institution"):
            _request(license_number=" ", institution="").validate()

    def test_missing_document(self):
        with pytest.raises(ValidationFailure, match="document"):
            _request(document=b"").validate()

    def test_oversized_document(self):
        with pytest.raises(ValidationFailure, match="too large"):
            _request(document=b"x" * (MAX_DOCUMENT_SIZE + 1)).validate()


# ===========================================================================
# Service
# ===========================================================================
class TestVerify:
    def test_all_checks_pass(self):
        service = _service(_handler())
        result = run_async(service.verify(_request()))

        assert result.is_valid
        assert result.confidence == 1.0
        assert result.errors is None
        assert result.details.to_dict() == {
            "license_valid": True,
            "npi_valid": True,
            "document_valid": True,
            "institution_valid": True,
        }
        assert result.extracted_data == {"name": "Dr. Jane Roe"}

    def test_two_failed_checks(self):
        service = _service(_handler(license_status="expired", npi_count=0))
        result = run_async(service.verify(_request()))

        assert not result.is_valid
        assert result.confidence == 0.5
        assert result.errors == ["Medical license not found", "NPI number not valid"]

    def test_document_confidence_must_exceed_threshold(self):
        service = _service(_handler(confidence=0.8))
        result = run_async(service.verify(_request()))
        assert not result.details.document_valid
        assert result.is_valid
        assert result.errors == ["Document verification failed"]

    def test_legacy_valid_flag_accepted(self):
        def handle(request):
            if str(request.url).startswith(BOARD_URL):
                return httpx.Response(200, json={"valid": True})
            return _handler()(request)

        result = run_async(_service(handle).verify(_request()))
        assert result.details.license_valid

    def test_failing_sub_check_is_recorded_not_raised(self):
        service = _service(_handler(fail={"npi"}))
        result = run_async(service.verify(_request()))

        assert result.is_valid
        assert result.confidence == 0.75
        assert not result.details.npi_valid
        assert result.errors == ["NPI registry service unavailable"]

    def test_transport_errors(self):
        service = _service(_handler(fail={"license", "document"}))
        result = run_async(service.verify(_request()))

        assert not result.is_valid
        assert result.confidence == 0.5
        assert result.errors == [
            "License board service unavailable",
            "Document verification service unavailable",
        ]

    def test_slow_check_times_out(self):
        base = _handler()

        async def handle(request):
            if str(request.url).startswith(OCR_URL):
                await asyncio.sleep(1.0)
            return base(request)

        service = _service(handle, timeout_seconds=0.05)
        result = run_async(service.verify(_request()))

        assert not result.details.document_valid
        assert result.is_valid
        assert result.errors == ["Document verification check timed out"]

    def test_unsupported_state_fails_license(self):
        service = _service(_handler())
        result = run_async(service.verify(_request(state="ZZ")))
        assert not result.details.license_valid
        assert "Medical license not found" in result.errors

    def test_missing_npi_is_lenient_by_default(self):
        calls = []
        base = _handler()

        def handle(request):
            calls.append(str(request.url))
            return base(request)

        result = run_async(_service(handle).verify(_request(npi=None)))
        assert result.details.npi_valid
        assert not any(url.startswith(NPI_URL) for url in calls)

    def test_missing_npi_when_required(self):
        service = _service(_handler(), require_npi=True)
        result = run_async(service.verify(_request(npi=None)))
        assert not result.details.npi_valid
        assert result.errors == ["NPI number required"]

    def test_unexpected_failure_returns_unavailable(self, monkeypatch):
        service = _service(_handler())

        async def boom(request):
            raise RuntimeError("boom")

        monkeypatch.setattr(service, "_run_checks", boom)
        result = run_async(service.verify(_request()))
        assert not result.is_valid
        assert result.confidence == 0.0
        assert result.errors == [SERVICE_UNAVAILABLE]

    def test_newer_attempt_supersedes_older(self):
        base = _handler()

        async def handle(request):
            if str(request.url).startswith(OCR_URL) and b"first" in request.content:
                await asyncio.sleep(0.1)
            return base(request)

        service = _service(handle)

        async def _inner():
            return await asyncio.gather(
                service.verify(_request(document=b"first scan"), attempt_key="u1"),
                service.verify(_request(document=b"second scan"), attempt_key="u1"),
            )

        older, newer = run_async(_inner())
        assert older.superseded
        assert not newer.superseded
        assert service._generations == {}

    def test_different_keys_do_not_interfere(self):
        service = _service(_handler())

        async def _inner():
            return await asyncio.gather(
                service.verify(_request(), attempt_key="u1"),
                service.verify(_request(), attempt_key="u2"),
            )

        first, second = run_async(_inner())
        assert not first.superseded
        assert not second.superseded

    def test_finished_attempts_are_forgotten(self):
        service = _service(_handler())
        for key in ("u1", "u2", "u3"):
            run_async(service.verify(_request(), attempt_key=key))
        assert service._generations == {}


# ===========================================================================
# Persisting the outcome
# ===========================================================================
class TestRecordOutcome:
    def _valid(self):
        return score_checks(VerificationCheckSet(True, True, True, True))

    def _invalid(self):
        return score_checks(VerificationCheckSet(False, False, True, True))

    def test_valid_result_marks_profile(self, db_engine):
        assert record_outcome(db_engine, "u1", _request(), self._valid()) is True
        with Session(db_engine) as session:
            profile = session.get(Profile, "u1")
            assert profile.is_verified
            assert profile.license_number == "A12345"
            assert profile.institution == "UCSF Medical Center"

    def test_invalid_result_leaves_profile_unverified(self, db_engine):
        assert record_outcome(db_engine, "u1", _request(), self._invalid()) is False

    def test_failed_retry_never_downgrades(self, db_engine):
        record_outcome(db_engine, "u1", _request(), self._valid())
        assert record_outcome(db_engine, "u1", _request(), self._invalid()) is True

    def test_superseded_result_is_ignored(self, db_engine):
        stale = replace(self._valid(), superseded=True)
        assert record_outcome(db_engine, "u1", _request(), stale) is False
        with Session(db_engine) as session:
            assert session.get(Profile, "u1") is None
