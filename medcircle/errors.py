"""
medcircle.errors — Domain exceptions
=====================================

Raised by the service layer and translated to HTTP status codes by the
API (``Unauthenticated`` → 401, ``ValidationFailure`` → 422).
"""

from __future__ import annotations


class MedCircleError(Exception):
    """Base class for all MedCircle domain errors."""


class Unauthenticated(MedCircleError):
    """An action that requires a user context was attempted without one."""


class ValidationFailure(MedCircleError, ValueError):
    """Input was empty or malformed.  No state was changed."""
