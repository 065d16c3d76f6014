"""
Credential verifiers

Every login method is a CredentialVerifier that turns an incoming request
into a verified identity. OAuth verifiers produce an OAuthProfile; the magic
link verifier produces the stored token row (with its user).
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx
from authlib.integrations.starlette_client import OAuth, OAuthError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from starlette.requests import Request
from starlette.responses import RedirectResponse

from app.config import Settings
from app.exceptions import Unauthorized
from app.models import AuthProvider, MagicLinkToken


GOOGLE_METADATA_URL = "https://accounts.google.com/.well-known/openid-configuration"
LINKEDIN_METADATA_URL = "https://www.linkedin.com/oauth/.well-known/openid-configuration"


@dataclass(frozen=True)
class OAuthProfile:
    """Identity asserted by an external OAuth provider."""
    provider: AuthProvider
    provider_id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    picture: str | None = None


class CredentialVerifier(ABC):
    """Turns a request carrying credentials into a verified identity."""

    provider: AuthProvider

    @abstractmethod
    async def verify(self, request: Request) -> Any:
        """Return the verified identity or raise Unauthorized."""


def build_oauth(settings: Settings) -> OAuth:
    """
    Create the OAuth client registry.

    Called once at startup; the registry is handed to the verifiers.
    """
    oauth = OAuth()
    oauth.register(
        name=AuthProvider.GOOGLE.value,
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        server_metadata_url=GOOGLE_METADATA_URL,
        client_kwargs={
            "scope": "openid email profile",
            "timeout": settings.oauth_timeout_seconds,
        },
    )
    oauth.register(
        name=AuthProvider.LINKEDIN.value,
        client_id=settings.linkedin_client_id,
        client_secret=settings.linkedin_client_secret,
        server_metadata_url=LINKEDIN_METADATA_URL,
        client_kwargs={
            "scope": "openid profile email",
            "token_endpoint_auth_method": "client_secret_post",
            "timeout": settings.oauth_timeout_seconds,
        },
    )
    return oauth


class OAuthVerifier(CredentialVerifier):
    """Authorization-code flow against an OpenID Connect provider."""

    def __init__(self, oauth: OAuth, client_id: str, redirect_uri: str):
        self.oauth = oauth
        self.client_id = client_id
        self.redirect_uri = redirect_uri

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id)

    @property
    def client(self):
        return self.oauth.create_client(self.provider.value)

    async def authorize_redirect(self, request: Request) -> RedirectResponse:
        """Redirect the browser to the provider's consent page."""
        return await self.client.authorize_redirect(request, self.redirect_uri)

    async def fetch_userinfo(self, request: Request) -> dict[str, Any]:
        """Exchange the callback code and return the provider's user claims."""
        try:
            token = await self.client.authorize_access_token(request)
            userinfo = token.get("userinfo")
            if not userinfo:
                userinfo = await self.client.userinfo(token=token)
        except OAuthError as e:
            raise Unauthorized(f"{self.provider.value} authorization failed: {e.error}")
        except httpx.HTTPError as e:
            raise Unauthorized(f"{self.provider.value} is unreachable: {type(e).__name__}")
        return dict(userinfo)

    async def verify(self, request: Request) -> OAuthProfile:
        return self.to_profile(await self.fetch_userinfo(request))

    @abstractmethod
    def to_profile(self, userinfo: dict[str, Any]) -> OAuthProfile:
        """Normalize provider claims."""


class GoogleVerifier(OAuthVerifier):
    provider = AuthProvider.GOOGLE

    def to_profile(self, userinfo: dict[str, Any]) -> OAuthProfile:
        subject = userinfo.get("sub")
        email = userinfo.get("email")
        if not subject:
            raise Unauthorized("Google profile missing id")
        if not email:
            raise Unauthorized("Email not provided by Google")

        return OAuthProfile(
            provider=self.provider,
            provider_id=str(subject),
            email=email,
            first_name=userinfo.get("given_name"),
            last_name=userinfo.get("family_name"),
            picture=userinfo.get("picture"),
        )


class LinkedInVerifier(OAuthVerifier):
    provider = AuthProvider.LINKEDIN

    def to_profile(self, userinfo: dict[str, Any]) -> OAuthProfile:
        subject = userinfo.get("sub") or userinfo.get("id")
        if not subject:
            raise Unauthorized("LinkedIn profile missing id")

        return OAuthProfile(
            provider=self.provider,
            provider_id=str(subject),
            # LinkedIn may withhold the email; keep a stable placeholder per member
            email=userinfo.get("email") or f"{subject}@linkedin.com",
            first_name=userinfo.get("given_name"),
            last_name=userinfo.get("family_name"),
            picture=userinfo.get("picture"),
        )


class MagicLinkVerifier(CredentialVerifier):
    """Checks one-time tokens from the consumption URL."""

    provider = AuthProvider.MAGIC_LINK

    def __init__(self, db: AsyncSession):
        self.db = db

    async def verify(self, request: Request) -> MagicLinkToken:
        token = request.query_params.get("token")
        if not token:
            raise Unauthorized("Invalid magic link token")
        return await self.check(token)

    async def check(self, token: str) -> MagicLinkToken:
        """
        Load a magic link token with its user.

        Raises:
            Unauthorized: if the token does not exist or has expired
        """
        result = await self.db.execute(
            select(MagicLinkToken)
            .options(selectinload(MagicLinkToken.user))
            .where(MagicLinkToken.token == token)
        )
        magic_link = result.scalar_one_or_none()

        if magic_link is None:
            raise Unauthorized("Invalid magic link token")

        if magic_link.is_expired():
            raise Unauthorized("Magic link token expired")

        return magic_link
