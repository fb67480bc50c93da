"""
Domain-level exceptions used within the service layer.

These exceptions are **transport-agnostic** and never import Redis, SQLAlchemy
or any web framework. Each one carries a stable machine-readable ``code`` that
the orchestrator copies into :class:`RotationResult.error_code` via
``BaseService.translate_exceptions()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorCode(str, Enum):
    """Stable error codes surfaced to callers."""

    INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    TOKEN_REUSE_DETECTED = "TOKEN_REUSE_DETECTED"
    ROTATION_ERROR = "ROTATION_ERROR"


class SecurityAlert(str, Enum):
    """Protocol outcomes the caller must act on (not bugs)."""

    REUSE_DETECTED = "reuse_detected"
    SUSPICIOUS_ROTATION = "suspicious_rotation"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


# --------------------------------------------------------------------------- #
# Base types
# --------------------------------------------------------------------------- #


class ServiceError(Exception):
    """
    Base class for all service-level errors.

    Notes
    -----
    - ``code`` defaults to ``ROTATION_ERROR``; subclasses narrow it.
    - ``security_alert`` is set on errors that represent a security signal.
    """

    code: ErrorCode = ErrorCode.ROTATION_ERROR
    security_alert: SecurityAlert | None = None
    previous_token_revoked: bool = False


# --------------------------------------------------------------------------- #
# Input / validation errors
# --------------------------------------------------------------------------- #


class InvalidRefreshTokenError(ServiceError):
    """Raised when the presented refresh token is invalid, expired, revoked or stale."""

    code = ErrorCode.INVALID_REFRESH_TOKEN

    def __init__(
        self,
        message: str = "Invalid refresh token",
        *,
        security_alert: SecurityAlert | None = None,
    ) -> None:
        super().__init__(message)
        self.security_alert = security_alert


@dataclass(slots=True)
class UserNotFoundError(ServiceError):
    """
    Raised when the identity resolver does not know the token subject.

    :param user_id: Subject of the presented token.
    :type user_id: str
    """

    user_id: str

    code = ErrorCode.USER_NOT_FOUND

    def __str__(self) -> str:
        return "User not found or inactive"


# --------------------------------------------------------------------------- #
# Security signals
# --------------------------------------------------------------------------- #


class RateLimitExceededError(ServiceError):
    """Raised when a user exceeds the rotation rate limit."""

    code = ErrorCode.RATE_LIMIT_EXCEEDED
    security_alert = SecurityAlert.RATE_LIMIT_EXCEEDED

    def __init__(self, message: str = "Rotation rate limit exceeded") -> None:
        super().__init__(message)


class TokenReuseDetectedError(ServiceError):
    """Raised after the security response to a reused refresh token ran."""

    code = ErrorCode.TOKEN_REUSE_DETECTED
    security_alert = SecurityAlert.REUSE_DETECTED
    previous_token_revoked = True

    def __init__(self, message: str = "Token reuse detected - family invalidated") -> None:
        super().__init__(message)


# --------------------------------------------------------------------------- #
# Infrastructure errors
# --------------------------------------------------------------------------- #


class RotationError(ServiceError):
    """Fatal failure of a rotation step; callers should retry with backoff."""

    code = ErrorCode.ROTATION_ERROR


class FamilyAdvanceError(RotationError):
    """Raised when the family-advance step cannot be persisted."""

    def __init__(self, message: str = "Token family could not be persisted") -> None:
        super().__init__(message)


class CircuitOpenError(RotationError):
    """Raised when a circuit breaker short-circuits a call to a failing dependency."""

    def __init__(self, dependency: str) -> None:
        super().__init__(f"Circuit open for dependency '{dependency}'")
        self.dependency = dependency
