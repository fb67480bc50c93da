# token_rotation/infra/jwt/flask_jwt_token_issuer.py
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, cast
from uuid import uuid4

import jwt as pyjwt
from flask import Flask
from flask_jwt_extended import create_access_token, create_refresh_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException

from token_rotation.core.extensions import jwt
from token_rotation.services._shared.ports import (
    IssuedTokens,
    RevocationStore,
    TokenSigner,
    TokenVerifier,
    VerifiedRefreshToken,
)
from token_rotation.services._shared.ports.token_issuer import REFRESH_TOKEN_TYPE

log = logging.getLogger(__name__)


def create_jwt_app(settings: Any) -> Flask:
    """
    Build a minimal Flask app carrying the JWT settings.

    The rotation core has no HTTP surface; the app only provides the
    context flask-jwt-extended needs to sign and decode tokens.
    """
    app = Flask("token_rotation")
    app.config["JWT_SECRET_KEY"] = settings.JWT_SECRET_KEY
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = settings.JWT_ACCESS_TOKEN_EXPIRES
    app.config["JWT_REFRESH_TOKEN_EXPIRES"] = settings.JWT_REFRESH_TOKEN_EXPIRES
    jwt.init_app(app)
    return app


class FlaskJWTTokenIssuer(TokenVerifier, TokenSigner):
    """
    Adapter for Flask-JWT-Extended implementing both verifier and signer.

    :param app: Flask app configured via :func:`create_jwt_app`; every call
        runs inside its app context.
    :param revocations: Store consulted to flag genuine but revoked tokens.
    """

    def __init__(self, app: Flask, *, revocations: RevocationStore | None = None) -> None:
        self.app = app
        self.revocations = revocations

    def _expires(self, key: str) -> int:
        value = self.app.config[key]
        return int(value.total_seconds()) if isinstance(value, timedelta) else int(value)

    def generate_tokens(self, claims: dict[str, Any]) -> IssuedTokens:
        identity = str(claims["sub"])
        extra = {k: v for k, v in claims.items() if k != "sub"}
        jti = str(uuid4())

        with self.app.app_context():
            access = cast(str, create_access_token(identity=identity, additional_claims=extra))
            # The refresh jti is chosen here so it can be linked to its family
            refresh = cast(
                str,
                create_refresh_token(identity=identity, additional_claims={**extra, "jti": jti}),
            )
            actual = cast(dict[str, Any], decode_token(refresh))["jti"]
        if actual != jti:
            raise RuntimeError("Refresh token jti mismatch after creation.")

        return IssuedTokens(
            access_token=access,
            refresh_token=refresh,
            token_id=jti,
            expires_in=self._expires("JWT_ACCESS_TOKEN_EXPIRES"),
            refresh_expires_in=self._expires("JWT_REFRESH_TOKEN_EXPIRES"),
        )

    def decode(self, token: str) -> dict[str, Any]:
        with self.app.app_context():
            return cast(dict[str, Any], decode_token(token))

    def verify_refresh_token(self, token: str) -> VerifiedRefreshToken:
        try:
            payload = self.decode(token)
        except pyjwt.ExpiredSignatureError:
            return VerifiedRefreshToken(valid=False, reason="expired")
        except (pyjwt.InvalidTokenError, JWTExtendedException):
            log.info("Refresh token failed verification", exc_info=True)
            return VerifiedRefreshToken(valid=False, reason="malformed")

        if payload.get("type") != REFRESH_TOKEN_TYPE:
            return VerifiedRefreshToken(valid=False, payload=payload, reason="wrong_type")
        if not payload.get("jti") or not payload.get("sub"):
            return VerifiedRefreshToken(valid=False, payload=payload, reason="malformed")

        if self.revocations is not None and self.revocations.is_revoked(
            str(payload["jti"]), user_id=str(payload["sub"]), issued_at=int(payload["iat"])
        ):
            return VerifiedRefreshToken(valid=True, payload=payload, revoked=True, reason="revoked")
        return VerifiedRefreshToken(valid=True, payload=payload)

    def is_healthy(self) -> bool:
        return bool(self.app.config.get("JWT_SECRET_KEY"))
