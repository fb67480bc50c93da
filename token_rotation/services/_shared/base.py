# token_rotation/services/_shared/base.py
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from token_rotation.services._shared.errors import ErrorCode, ServiceError
from token_rotation.services.rotation.dto import RotationResult

log = logging.getLogger(__name__)


@dataclass(slots=True)
class ServiceContext:
    """
    Carry cross-cutting request-scoped data.

    :param request_id: Correlation id for logging/tracing.
    :param actor: Component or operator on whose behalf the call runs.
    """

    request_id: str | None = None
    actor: str | None = None


class BaseService:
    """
    Base class for application services.

    Responsibilities
    ----------------
    * Own the time source so every decision in a call sees the same clock.
    * Centralize error translation at the service boundary.
    * Keep services thin and orchestration-only, with no transport leakage.
    """

    def __init__(
        self,
        *,
        ctx: ServiceContext | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize the base service.

        :param ctx: Optional request-scoped context.
        :type ctx: ServiceContext | None
        :param clock: Source of timezone-aware UTC datetimes.
        :type clock: Callable[[], datetime] | None
        """
        self.ctx = ctx or ServiceContext()
        self._clock = clock or (lambda: datetime.now(UTC))

    def now(self) -> datetime:
        """Return the current UTC time from the injected clock."""
        return self._clock()

    # -------------------------- Error handling ------------------------------

    def translate_exceptions(self, exc: Exception) -> RotationResult:
        """
        Map a domain error (or anything unexpected) to a failed :class:`RotationResult`.

        :param exc: Exception raised within the service.
        :type exc: Exception
        :returns: Failure result carrying the error's stable code.
        :rtype: RotationResult
        """
        if isinstance(exc, ServiceError):
            return RotationResult(
                success=False,
                previous_token_revoked=exc.previous_token_revoked,
                security_alert=exc.security_alert,
                error=str(exc),
                error_code=exc.code,
            )

        # Fallback: unexpected errors never leak their message to callers
        log.error("Unexpected error during token rotation", exc_info=exc)
        return RotationResult(
            success=False,
            error="Token rotation failed",
            error_code=ErrorCode.ROTATION_ERROR,
        )
