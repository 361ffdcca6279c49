from datetime import datetime, timedelta, timezone

import jwt
import pytest

from application.services.token_service import TokenService
from core.exceptions import TokenExpiredException, UnauthorizedException


SECRET = "unit-test-secret"


@pytest.fixture
def tokens():
    return TokenService(secret_key=SECRET, algorithm="HS256")


def test_access_token_round_trip(tokens):
    principal = tokens.decode_access_token(tokens.create_access_token(7, is_superuser=True))

    assert principal.user_id == 7
    assert principal.is_admin is True
    assert principal.expires_at > datetime.now(timezone.utc)


def test_expired_token(tokens):
    token = jwt.encode(
        {"sub": "7", "type": "access", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(TokenExpiredException):
        tokens.decode_access_token(token)


@pytest.mark.parametrize(
    "token",
    [
        "garbage",
        jwt.encode({"sub": "7", "type": "access"}, "another-secret", algorithm="HS256"),
        jwt.encode({"sub": "7", "type": "refresh"}, SECRET, algorithm="HS256"),
        jwt.encode({"sub": "not-a-number", "type": "access"}, SECRET, algorithm="HS256"),
        jwt.encode({"type": "access"}, SECRET, algorithm="HS256"),
    ],
)
def test_rejected_tokens(tokens, token):
    with pytest.raises(UnauthorizedException):
        tokens.decode_access_token(token)
