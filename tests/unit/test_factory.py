# tests/unit/test_factory.py
"""End-to-end wiring through ``build_rotation_service`` with real JWT signing."""

from __future__ import annotations

import pytest

from tests.helpers.utils import USER_ID
from token_rotation import build_rotation_service
from token_rotation.core import config
from token_rotation.infra.jwt.flask_jwt_token_issuer import FlaskJWTTokenIssuer
from token_rotation.infra.redis.redis_revocation_store import RedisRevocationStore
from token_rotation.services._shared.errors import ErrorCode


class _JWTTestingConfig(config.TestingConfig):
    JWT_SECRET_KEY = "factory-test-secret-key-long-enough-for-hs256"


@pytest.fixture
def wired(fake_redis, session_factory, identities, metrics):
    return build_rotation_service(
        _JWTTestingConfig,
        identities=identities,
        redis_client=fake_redis,
        session_factory=session_factory,
        metrics=metrics,
        setup_logging=False,
    )


def test_default_wiring_uses_jwt_and_redis_revocations(wired):
    assert isinstance(wired.verifier, FlaskJWTTokenIssuer)
    assert wired.signer is wired.verifier
    assert isinstance(wired.revocations, RedisRevocationStore)
    assert wired.config.max_rotations_per_hour == _JWTTestingConfig.ROTATION_MAX_PER_HOUR


def test_rotation_end_to_end_with_signed_tokens(wired):
    family = wired.generate_token_family(USER_ID, session_id="sess-1")
    login = wired.signer.generate_tokens({"sub": USER_ID})
    wired.link_token_to_family(login.token_id, family.family_id)

    result = wired.rotate_tokens(login.refresh_token)

    assert result.success is True
    assert result.token_pair.family_id == family.family_id
    claims = wired.verifier.decode(result.token_pair.refresh_token)
    assert claims["family_id"] == family.family_id
    assert claims["role"] == "member"
    assert wired.revocations.reason_for(login.token_id)["reason"] == "token_rotation"

    # Immediate retry of the consumed token: rejected, no incident
    retry = wired.rotate_tokens(login.refresh_token)
    assert retry.error_code is ErrorCode.INVALID_REFRESH_TOKEN
    assert retry.security_alert is None

    assert wired.get_health_status().healthy is True


def test_missing_redis_is_a_configuration_error(session_factory, identities):
    with pytest.raises(RuntimeError):
        build_rotation_service(
            config.TestingConfig,
            identities=identities,
            session_factory=session_factory,
            setup_logging=False,
        )
