"""Tiny helpers shared across test modules."""

from __future__ import annotations

from token_rotation.services._shared.ports import StubTokenIssuer
from token_rotation.services.rotation.dto import TokenFamily
from token_rotation.services.rotation.service import TokenRotationService

USER_ID = "user-1"


def login(
    service: TokenRotationService, issuer: StubTokenIssuer, user_id: str
) -> tuple[TokenFamily, str]:
    """Simulate the login flow: start a family and link a fresh refresh token to it.

    Returns
    -------
    tuple[TokenFamily, str]
        The new family and the raw refresh token handed to the client.
    """
    family = service.generate_token_family(user_id, session_id=f"sess-{user_id}")
    token = issuer.mint_refresh_token(user_id)
    service.link_token_to_family(issuer.decode(token)["jti"], family.family_id)
    return family, token


def jti_of(issuer: StubTokenIssuer, token: str) -> str:
    """Return the ``jti`` claim of a stub-issued token."""
    return str(issuer.decode(token)["jti"])
