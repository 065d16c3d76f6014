"""
Authentication endpoints: OAuth, magic links, token refresh, logout, profile
"""
import logging
from datetime import datetime
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, EmailStr
from pydantic.alias_generators import to_camel

from app.auth.dependencies import (
    CurrentUser,
    get_auth_service,
    get_google_verifier,
    get_linkedin_verifier,
)
from app.auth.verifiers import GoogleVerifier, LinkedInVerifier, OAuthVerifier
from app.config import settings
from app.exceptions import AuthError
from app.services.auth_service import AuthResult, AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


# ============================================================================
# Schemas
# ============================================================================


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MagicLinkRequest(CamelModel):
    """Request a one-time login link."""
    email: EmailStr


class MagicLinkResponse(CamelModel):
    success: bool = True


class RefreshTokenRequest(CamelModel):
    """Request to refresh access token."""
    refresh_token: str


class TokenResponse(CamelModel):
    """Rotated access and refresh tokens."""
    access_token: str
    refresh_token: str


class UserResponse(CamelModel):
    """Public user shape. Never carries the refresh token."""
    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    picture: str | None = None
    provider: str
    created_at: datetime


class MessageResponse(CamelModel):
    message: str


# ============================================================================
# Helpers
# ============================================================================


def frontend_callback_url(result: AuthResult) -> str:
    query = urlencode({
        "access_token": result.access_token,
        "refresh_token": result.refresh_token,
    })
    return f"{settings.frontend_url.rstrip('/')}/auth/callback?{query}"


def frontend_error_url(message: str) -> str:
    query = urlencode({"message": message})
    return f"{settings.frontend_url.rstrip('/')}/auth/error?{query}"


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


async def _start_oauth(verifier: OAuthVerifier, request: Request) -> RedirectResponse:
    if not verifier.is_configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{verifier.provider.value} OAuth not configured",
        )
    return await verifier.authorize_redirect(request)


async def _finish_oauth(
    verifier: OAuthVerifier,
    request: Request,
    service: AuthService,
) -> RedirectResponse:
    """
    Complete an OAuth callback.

    The caller is a browser mid-redirect, so failures go to the frontend
    error page instead of returning an HTTP error.
    """
    try:
        profile = await verifier.verify(request)
        result = await service.reconcile_oauth(profile)
    except AuthError as e:
        logger.warning(f"{verifier.provider.value} callback rejected: {e.message}")
        return _redirect(frontend_error_url(e.message))
    except Exception as e:
        logger.error(f"{verifier.provider.value} callback failed: {type(e).__name__}: {e}")
        return _redirect(frontend_error_url("Authentication failed"))

    return _redirect(frontend_callback_url(result))


# ============================================================================
# Magic link
# ============================================================================


@router.post(
    "/magic-link/request",
    response_model=MagicLinkResponse,
    status_code=status.HTTP_201_CREATED,
)
async def request_magic_link(
    body: MagicLinkRequest,
    service: AuthService = Depends(get_auth_service),
) -> MagicLinkResponse:
    """Email a one-time sign-in link to the given address."""
    await service.request_magic_link(body.email)
    return MagicLinkResponse(success=True)


@router.get("/magic-link/consume")
async def consume_magic_link(
    token: str = Query(default=""),
    service: AuthService = Depends(get_auth_service),
) -> RedirectResponse:
    """
    Redeem a magic link.

    Redirects to the frontend callback page with tokens, or to the frontend
    error page with a message.
    """
    try:
        result = await service.consume_magic_link(token)
    except AuthError as e:
        return _redirect(frontend_error_url(e.message))
    except Exception as e:
        logger.error(f"Magic link consumption failed: {type(e).__name__}: {e}")
        return _redirect(frontend_error_url("Authentication failed"))

    return _redirect(frontend_callback_url(result))


# ============================================================================
# OAuth
# ============================================================================


@router.get("/google")
async def google_login(
    request: Request,
    verifier: GoogleVerifier = Depends(get_google_verifier),
) -> RedirectResponse:
    """Initiate Google OAuth login flow."""
    return await _start_oauth(verifier, request)


@router.get("/google/callback")
async def google_callback(
    request: Request,
    verifier: GoogleVerifier = Depends(get_google_verifier),
    service: AuthService = Depends(get_auth_service),
) -> RedirectResponse:
    """Handle Google OAuth callback."""
    return await _finish_oauth(verifier, request, service)


@router.get("/linkedin")
async def linkedin_login(
    request: Request,
    verifier: LinkedInVerifier = Depends(get_linkedin_verifier),
) -> RedirectResponse:
    """Initiate LinkedIn OAuth login flow."""
    return await _start_oauth(verifier, request)


@router.get("/linkedin/callback")
async def linkedin_callback(
    request: Request,
    verifier: LinkedInVerifier = Depends(get_linkedin_verifier),
    service: AuthService = Depends(get_auth_service),
) -> RedirectResponse:
    """Handle LinkedIn OAuth callback."""
    return await _finish_oauth(verifier, request, service)


# ============================================================================
# Session
# ============================================================================


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    body: RefreshTokenRequest,
    service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Exchange a refresh token for a new access/refresh pair."""
    tokens = await service.refresh(body.refresh_token)
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    current_user: CurrentUser,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """
    Logout the current user.

    Invalidates the refresh token and pending magic links, then drops the
    server-side session. Session cleanup never fails the logout.
    """
    result = await service.logout(current_user.id)

    try:
        request.session.clear()
    except Exception as e:
        logger.warning(f"Session destroy failed during logout: {e}")

    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="lax",
    )

    return MessageResponse(message=result["message"])


@router.get("/profile", response_model=UserResponse)
async def get_profile(current_user: CurrentUser) -> UserResponse:
    """Get the current authenticated user's profile."""
    return UserResponse.model_validate(current_user)
