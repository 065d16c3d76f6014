from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from app.auth.jwt import (
    TokenError,
    create_access_token,
    create_refresh_token,
    issue_tokens,
    verify_access_token,
    verify_refresh_token,
)
from app.config import settings
from app.exceptions import Unauthorized


def test_issue_tokens_carries_subject_and_email():
    tokens = issue_tokens("user-1", "a@example.com")

    access = verify_access_token(tokens.access_token)
    refresh = verify_refresh_token(tokens.refresh_token)

    assert access["sub"] == "user-1"
    assert access["email"] == "a@example.com"
    assert access["type"] == "access"
    assert refresh["sub"] == "user-1"
    assert refresh["type"] == "refresh"
    assert tokens.expires_in == settings.jwt_access_token_expire_seconds


def test_tokens_minted_back_to_back_differ():
    first = issue_tokens("user-1")
    second = issue_tokens("user-1")

    assert first.access_token != second.access_token
    assert first.refresh_token != second.refresh_token


def test_access_and_refresh_use_distinct_secrets():
    tokens = issue_tokens("user-1")

    with pytest.raises(TokenError):
        verify_refresh_token(tokens.access_token)
    with pytest.raises(TokenError):
        verify_access_token(tokens.refresh_token)


def test_expired_token_is_rejected():
    token = create_access_token({"sub": "user-1"}, expires_delta=timedelta(seconds=-5))

    with pytest.raises(TokenError, match="expired"):
        verify_access_token(token)


def test_wrong_secret_is_rejected():
    forged = jwt.encode(
        {
            "sub": "user-1",
            "type": "refresh",
            "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        },
        "some-other-secret",
        algorithm=settings.jwt_algorithm,
    )

    with pytest.raises(TokenError, match="Invalid token"):
        verify_refresh_token(forged)


def test_type_mismatch_is_rejected():
    # Correct secret, wrong declared type
    token = jwt.encode(
        {
            "sub": "user-1",
            "type": "access",
            "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        },
        settings.jwt_refresh_secret_key,
        algorithm=settings.jwt_algorithm,
    )

    with pytest.raises(TokenError, match="type mismatch"):
        verify_refresh_token(token)


def test_missing_subject_is_rejected():
    token = create_refresh_token({})

    with pytest.raises(TokenError, match="payload"):
        verify_refresh_token(token)


def test_token_error_is_unauthorized():
    with pytest.raises(Unauthorized) as exc_info:
        verify_access_token("not-a-jwt")

    assert exc_info.value.status_code == 401
