"""
medcircle.engine.verification — Credential check scoring
=========================================================

Combines the four independent boolean checks into one decision::

    confidence = (# checks passed) / 4
    is_valid   = confidence >= 0.75     # at least 3 of 4

No network I/O here; see
:mod:`medcircle.services.verification_service` for the checks themselves.
"""

from __future__ import annotations

from dataclasses import astuple, dataclass, field

__all__ = [
    "CONFIDENCE_THRESHOLD",
    "DOCUMENT_CONFIDENCE_THRESHOLD",
    "SERVICE_UNAVAILABLE",
    "VerificationCheckSet",
    "VerificationResult",
    "score_checks",
    "unavailable_result",
]

CONFIDENCE_THRESHOLD = 0.75
DOCUMENT_CONFIDENCE_THRESHOLD = 0.8
SERVICE_UNAVAILABLE = "Verification service unavailable"


@dataclass(frozen=True, slots=True)
class VerificationCheckSet:
    license_valid: bool = False
    npi_valid: bool = False
    document_valid: bool = False
    institution_valid: bool = False

    @property
    def passed(self) -> int:
        return sum(1 for ok in astuple(self) if ok)

    @property
    def total(self) -> int:
        return len(astuple(self))

    def to_dict(self) -> dict[str, bool]:
        return {
            "license_valid": self.license_valid,
            "npi_valid": self.npi_valid,
            "document_valid": self.document_valid,
            "institution_valid": self.institution_valid,
        }


@dataclass(frozen=True, slots=True)
class VerificationResult:
    is_valid: bool
    confidence: float
    details: VerificationCheckSet
    errors: list[str] | None = None
    superseded: bool = False
    extracted_data: dict | None = field(default=None, compare=False)

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "confidence": self.confidence,
            "details": self.details.to_dict(),
            "errors": list(self.errors) if self.errors else None,
            "superseded": self.superseded,
        }


def score_checks(
    checks: VerificationCheckSet,
    errors: list[str] | None = None,
    *,
    extracted_data: dict | None = None,
) -> VerificationResult:
    """Turn a check set into a :class:`VerificationResult`."""
    confidence = checks.passed / checks.total
    return VerificationResult(
        is_valid=confidence >= CONFIDENCE_THRESHOLD,
        confidence=confidence,
        details=checks,
        errors=list(errors) if errors else None,
        extracted_data=extracted_data,
    )


def unavailable_result() -> VerificationResult:
    """Result returned when verification could not run at all."""
    return VerificationResult(
        is_valid=False,
        confidence=0.0,
        details=VerificationCheckSet(),
        errors=[SERVICE_UNAVAILABLE],
    )
