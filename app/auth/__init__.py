"""
Authentication module: JWT handling and credential verifiers
"""
from app.auth.jwt import (
    TokenError,
    TokenPair,
    issue_tokens,
    verify_access_token,
    verify_refresh_token,
)
from app.auth.verifiers import (
    CredentialVerifier,
    GoogleVerifier,
    LinkedInVerifier,
    MagicLinkVerifier,
    OAuthProfile,
    build_oauth,
)

__all__ = [
    "TokenError",
    "TokenPair",
    "issue_tokens",
    "verify_access_token",
    "verify_refresh_token",
    "CredentialVerifier",
    "GoogleVerifier",
    "LinkedInVerifier",
    "MagicLinkVerifier",
    "OAuthProfile",
    "build_oauth",
]
