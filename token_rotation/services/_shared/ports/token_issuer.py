from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from token_rotation.services._shared.ports.revocation_store import RevocationStore

REFRESH_TOKEN_TYPE = "refresh"
ACCESS_TOKEN_TYPE = "access"


@dataclass(frozen=True, slots=True)
class VerifiedRefreshToken:
    """
    Result of verifying a refresh token.

    :ivar valid: Signature, expiry and token type are acceptable.
    :ivar payload: Decoded claims (``sub``, ``jti``, ``exp``, ``iat``...) when decodable.
    :ivar revoked: The token is genuine but the revocation store rejects it.
    :ivar reason: Short machine-readable failure reason.
    """

    valid: bool
    payload: dict[str, Any] | None = None
    revoked: bool = False
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class IssuedTokens:
    """Token material produced by a :class:`TokenSigner`."""

    access_token: str
    refresh_token: str
    token_id: str
    expires_in: int
    refresh_expires_in: int


class TokenVerifier(Protocol):
    """Port validating refresh-token bearer material."""

    def verify_refresh_token(self, token: str) -> VerifiedRefreshToken: ...


class TokenSigner(Protocol):
    """Port producing a new access/refresh pair for the given subject claims."""

    def generate_tokens(self, claims: dict[str, Any]) -> IssuedTokens: ...


class StubTokenIssuer(TokenVerifier, TokenSigner):
    """
    Deterministic verifier + signer used in unit tests.

    Tokens are opaque strings mapped to their payloads in memory. Revocation is
    delegated to the (optional) revocation store so the verifier can report
    ``revoked`` exactly like a real adapter would.
    """

    def __init__(
        self,
        *,
        revocations: RevocationStore | None = None,
        clock: Callable[[], datetime] | None = None,
        access_expires: timedelta = timedelta(minutes=15),
        refresh_expires: timedelta = timedelta(days=7),
    ) -> None:
        self.revocations = revocations
        self._clock = clock or (lambda: datetime.now(UTC))
        self.access_expires = access_expires
        self.refresh_expires = refresh_expires
        self._seq = 0
        self._issued: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()
        self.healthy = True
        self.maintenance_runs = 0

    def _mk(self, *, ttype: str, claims: dict[str, Any], jti: str, exp_delta: timedelta) -> str:
        now = self._clock()
        token = f"{ttype}.{claims['sub']}.{jti}.{self._seq}"
        payload: dict[str, Any] = dict(claims)
        payload.update(
            {
                "type": ttype,
                "jti": jti,
                "iat": int(now.timestamp()),
                "exp": int((now + exp_delta).timestamp()),
            }
        )
        self._issued[token] = payload
        return token

    def mint_refresh_token(self, user_id: str, **claims: Any) -> str:
        """Issue a standalone refresh token, as the login flow would."""
        return self.generate_tokens({"sub": user_id, **claims}).refresh_token

    def generate_tokens(self, claims: dict[str, Any]) -> IssuedTokens:
        with self._lock:
            return self._generate(claims)

    def _generate(self, claims: dict[str, Any]) -> IssuedTokens:
        self._seq += 1
        jti = f"jti-{self._seq}"
        access = self._mk(
            ttype=ACCESS_TOKEN_TYPE,
            claims=claims,
            jti=f"at-{self._seq}",
            exp_delta=self.access_expires,
        )
        refresh = self._mk(
            ttype=REFRESH_TOKEN_TYPE,
            claims=claims,
            jti=jti,
            exp_delta=self.refresh_expires,
        )
        return IssuedTokens(
            access_token=access,
            refresh_token=refresh,
            token_id=jti,
            expires_in=int(self.access_expires.total_seconds()),
            refresh_expires_in=int(self.refresh_expires.total_seconds()),
        )

    def decode(self, token: str) -> dict[str, Any]:
        return self._issued[token]

    def verify_refresh_token(self, token: str) -> VerifiedRefreshToken:
        payload = self._issued.get(token)
        if payload is None:
            return VerifiedRefreshToken(valid=False, reason="malformed")
        if payload["type"] != REFRESH_TOKEN_TYPE:
            return VerifiedRefreshToken(valid=False, reason="wrong_type")
        if payload["exp"] <= int(self._clock().timestamp()):
            return VerifiedRefreshToken(valid=False, reason="expired")
        if self.revocations is not None and self.revocations.is_revoked(
            payload["jti"], user_id=str(payload["sub"]), issued_at=payload["iat"]
        ):
            return VerifiedRefreshToken(valid=True, payload=payload, revoked=True, reason="revoked")
        return VerifiedRefreshToken(valid=True, payload=payload)

    # Health / maintenance hooks
    def is_healthy(self) -> bool:
        return self.healthy

    def perform_maintenance(self) -> None:
        self.maintenance_runs += 1
