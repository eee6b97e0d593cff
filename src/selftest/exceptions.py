"""
Exception hierarchy for the self-assessment engine.

Every failure the engine surfaces to a caller derives from SelfTestError,
so front ends can catch one type and show it as a notice.
"""

from __future__ import annotations


class SelfTestError(Exception):
    """Base class for all engine errors."""


class ConfigurationRejected(SelfTestError):
    """Raised when a test configuration fails validation."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class InvalidPhaseError(SelfTestError):
    """Raised when an action is not allowed in the current phase."""


class RequestPendingError(SelfTestError):
    """Raised when a request of the same kind is already in flight."""


class CannotAdvanceError(SelfTestError):
    """Raised when Next is pressed before the current question is complete."""


class TimeExpiredError(SelfTestError):
    """Raised when answers are edited after the session countdown ran out."""


class ServiceError(SelfTestError):
    """An external service call failed or returned a malformed payload."""


class GenerationError(ServiceError):
    """Question generation failed."""


class EvaluationError(ServiceError):
    """Answer or self-test evaluation failed."""
