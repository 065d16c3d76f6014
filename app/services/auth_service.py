"""
Identity reconciliation service

Maps verified external identities and redeemed magic links onto user rows,
and manages the refresh token pinned on each user.
"""
import secrets
from dataclasses import dataclass
from urllib.parse import urlencode

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.auth.jwt import TokenError, TokenPair, issue_tokens, verify_refresh_token
from app.auth.verifiers import MagicLinkVerifier, OAuthProfile
from app.config import settings
from app.database import transaction
from app.exceptions import BadRequest, NotFound, Unauthorized
from app.models import AuthProvider, MagicLinkToken, User
from app.models.magic_link import now_ms
from app.services.email_service import NotificationSender

logger = structlog.get_logger()


@dataclass
class AuthResult:
    access_token: str
    refresh_token: str
    expires_in: int
    user: User


def _prefer(new: str | None, old: str | None) -> str | None:
    """New value wins when non-empty, otherwise keep the old one."""
    return new or old


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    """Service for the authentication and session lifecycle."""

    def __init__(self, db: AsyncSession, sender: NotificationSender | None = None):
        self.db = db
        self.sender = sender

    async def get_user(self, user_id: str) -> User | None:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> User | None:
        result = await self.db.execute(
            select(User).where(User.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    def _pin_tokens(self, user: User) -> TokenPair:
        tokens = issue_tokens(user.id, user.email)
        user.refresh_token = tokens.refresh_token
        return tokens

    async def reconcile_oauth(self, profile: OAuthProfile) -> AuthResult:
        """
        Find or create the user for an OAuth profile and log them in.

        Users are matched by email only, so one email maps to one account
        whichever provider was used. Emails compare case-insensitively.
        Runs as a single transaction.
        """
        email = normalize_email(profile.email)
        try:
            async with transaction(self.db):
                user = await self.get_user_by_email(email)

                if user is None:
                    user = User(
                        email=email,
                        provider=profile.provider.value,
                        provider_id=profile.provider_id,
                        first_name=profile.first_name or None,
                        last_name=profile.last_name or None,
                        picture=profile.picture or None,
                    )
                    self.db.add(user)
                    await self.db.flush()
                    created = True
                else:
                    user.provider = profile.provider.value
                    user.provider_id = profile.provider_id
                    user.first_name = _prefer(profile.first_name, user.first_name)
                    user.last_name = _prefer(profile.last_name, user.last_name)
                    user.picture = _prefer(profile.picture, user.picture)
                    created = False

                tokens = self._pin_tokens(user)
        except Exception as e:
            logger.error(
                "oauth_login_failed",
                provider=profile.provider.value,
                email=profile.email,
                error=str(e),
            )
            raise

        logger.info(
            "oauth_login",
            provider=profile.provider.value,
            user_id=user.id,
            created=created,
        )

        return AuthResult(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_in=tokens.expires_in,
            user=user,
        )

    def build_magic_link(self, token: str) -> str:
        base = settings.backend_url.rstrip("/")
        return f"{base}/auth/magic-link/consume?{urlencode({'token': token})}"

    async def request_magic_link(self, email: str) -> None:
        """
        Issue a one-time login link and email it.

        A new link supersedes every earlier link for the same user, so at
        most one link is valid at a time. Any failure is reported as a
        generic BadRequest; the detail is logged.
        """
        email = normalize_email(email)
        try:
            expiry_seconds = settings.magic_link_expiry_seconds
            token = secrets.token_urlsafe(32)

            async with transaction(self.db):
                user = await self.get_user_by_email(email)
                if user is None:
                    user = User(email=email, provider=AuthProvider.MAGIC_LINK.value)
                    self.db.add(user)
                    await self.db.flush()
                    logger.info("magic_link_user_created", user_id=user.id)

                # Drops expired and still-pending links alike
                await self.db.execute(
                    delete(MagicLinkToken)
                    .where(MagicLinkToken.user_id == user.id)
                    .execution_options(synchronize_session=False)
                )

                self.db.add(MagicLinkToken(
                    token=token,
                    user_id=user.id,
                    expires_at=now_ms() + expiry_seconds * 1000,
                ))

            if self.sender is None:
                raise RuntimeError("No notification sender configured")

            await self.sender.send_magic_link(
                to=email,
                link=self.build_magic_link(token),
                expires_in_seconds=expiry_seconds,
            )
            logger.info("magic_link_sent", user_id=user.id)
        except Exception as e:
            logger.error("magic_link_request_failed", error=f"{type(e).__name__}: {e}")
            raise BadRequest("Failed to send magic link")

    async def consume_magic_link(self, token: str) -> AuthResult:
        """
        Redeem a magic link token and log the user in.

        The token is deleted in the same transaction that pins the new
        refresh token, so it can be used at most once.
        """
        magic_link = await MagicLinkVerifier(self.db).check(token)
        user = magic_link.user

        async with transaction(self.db):
            result = await self.db.execute(
                delete(MagicLinkToken)
                .where(MagicLinkToken.id == magic_link.id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                # Consumed concurrently by another request
                raise Unauthorized("Invalid magic link token")

            tokens = self._pin_tokens(user)

        logger.info("magic_link_consumed", user_id=user.id)

        return AuthResult(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_in=tokens.expires_in,
            user=user,
        )

    async def refresh(self, refresh_token: str) -> TokenPair:
        """
        Rotate a refresh token.

        The presented token must match the value pinned on the user. The
        rotation is a conditional update, so of two concurrent refreshes with
        the same token only one succeeds.
        """
        try:
            payload = verify_refresh_token(refresh_token)
        except TokenError as e:
            logger.warning("token_refresh_rejected", reason=e.message)
            raise Unauthorized("Invalid refresh token")

        user = await self.get_user(payload["sub"])
        if user is None or user.refresh_token != refresh_token:
            logger.warning("token_refresh_rejected", reason="stale or unknown token")
            raise Unauthorized("Invalid refresh token")

        tokens = issue_tokens(user.id, user.email)

        async with transaction(self.db):
            result = await self.db.execute(
                update(User)
                .where(User.id == user.id, User.refresh_token == refresh_token)
                .values(refresh_token=tokens.refresh_token)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise Unauthorized("Invalid refresh token")

        # Mirror the row without marking the instance dirty again
        set_committed_value(user, "refresh_token", tokens.refresh_token)
        logger.info("token_refreshed", user_id=user.id)
        return tokens

    async def logout(self, user_id: str) -> dict:
        """
        Invalidate the user's refresh token and outstanding magic links.

        Raises:
            NotFound: if the user does not exist
        """
        async with transaction(self.db):
            user = await self.get_user(user_id)
            if user is None:
                raise NotFound("User not found")

            user.refresh_token = None
            await self.db.execute(
                delete(MagicLinkToken).where(MagicLinkToken.user_id == user.id)
            )

        logger.info("user_logged_out", user_id=user_id)
        return {"message": "Logged out successfully"}
