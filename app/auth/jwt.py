"""
JWT token generation and validation

Access and refresh tokens are signed with distinct secrets. Storing the
refresh token on the user row is the caller's responsibility.
"""
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from app.config import settings
from app.exceptions import Unauthorized


class TokenError(Unauthorized):
    """Exception raised for token-related errors."""
    pass


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int


def _encode(
    data: dict[str, Any],
    token_type: str,
    secret: str,
    expires_delta: timedelta,
) -> str:
    now = datetime.now(timezone.utc)
    to_encode = data.copy()
    to_encode.update({
        "exp": now + expires_delta,
        "iat": now,
        "type": token_type,
        # Two tokens minted within the same second must still differ
        "jti": secrets.token_urlsafe(16),
    })
    return jwt.encode(to_encode, secret, algorithm=settings.jwt_algorithm)


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Payload data to encode in the token
        expires_delta: Custom expiration time (optional)

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(seconds=settings.jwt_access_token_expire_seconds)
    return _encode(data, "access", settings.jwt_secret_key, expires_delta)


def create_refresh_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a JWT refresh token.

    Refresh tokens have longer expiration, a separate signing secret, and are
    used to obtain new access tokens.
    """
    if expires_delta is None:
        expires_delta = timedelta(seconds=settings.jwt_refresh_token_expire_seconds)
    return _encode(data, "refresh", settings.jwt_refresh_secret_key, expires_delta)


def issue_tokens(user_id: str, email: str | None = None) -> TokenPair:
    """Create a fresh access/refresh pair for a user."""
    access_claims: dict[str, Any] = {"sub": str(user_id)}
    if email:
        access_claims["email"] = email

    return TokenPair(
        access_token=create_access_token(access_claims),
        refresh_token=create_refresh_token({"sub": str(user_id)}),
        expires_in=settings.jwt_access_token_expire_seconds,
    )


def _decode(token: str, secret: str, expected_type: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.jwt_algorithm],
        )
    except ExpiredSignatureError:
        raise TokenError("Token expired")
    except JWTError as e:
        raise TokenError(f"Invalid token: {str(e)}")

    token_type = payload.get("type")
    if token_type != expected_type:
        raise TokenError(f"Token type mismatch: expected {expected_type}, got {token_type}")

    if not payload.get("sub"):
        raise TokenError("Invalid token payload")

    return payload


def verify_access_token(token: str) -> dict[str, Any]:
    """
    Verify and decode an access token.

    Raises:
        TokenError: If token is invalid, expired, signed with another secret,
            or not an access token
    """
    return _decode(token, settings.jwt_secret_key, "access")


def verify_refresh_token(token: str) -> dict[str, Any]:
    """Verify and decode a refresh token. Raises TokenError like verify_access_token."""
    return _decode(token, settings.jwt_refresh_secret_key, "refresh")
