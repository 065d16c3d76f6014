"""
FastAPI dependencies for authentication

Route access is declared in ROUTE_ACCESS rather than inferred from handler
signatures; enforce_route_access() checks the two agree at startup.
"""
from enum import Enum
from typing import Annotated

from fastapi import Depends, FastAPI, Request
from fastapi.dependencies.models import Dependant
from fastapi.routing import APIRoute
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import verify_access_token
from app.auth.verifiers import GoogleVerifier, LinkedInVerifier
from app.config import settings
from app.database import get_db
from app.exceptions import Unauthorized
from app.models.user import User
from app.services.auth_service import AuthService
from app.services.email_service import NotificationSender


# HTTP Bearer scheme for JWT tokens
bearer_scheme = HTTPBearer(auto_error=False)


class RouteAccess(str, Enum):
    PUBLIC = "public"
    BEARER = "bearer"


ROUTE_ACCESS: dict[tuple[str, str], RouteAccess] = {
    ("GET", "/"): RouteAccess.PUBLIC,
    ("GET", "/health"): RouteAccess.PUBLIC,
    ("POST", "/auth/magic-link/request"): RouteAccess.PUBLIC,
    ("GET", "/auth/magic-link/consume"): RouteAccess.PUBLIC,
    ("GET", "/auth/google"): RouteAccess.PUBLIC,
    ("GET", "/auth/google/callback"): RouteAccess.PUBLIC,
    ("GET", "/auth/linkedin"): RouteAccess.PUBLIC,
    ("GET", "/auth/linkedin/callback"): RouteAccess.PUBLIC,
    ("POST", "/auth/refresh"): RouteAccess.PUBLIC,
    ("POST", "/auth/logout"): RouteAccess.BEARER,
    ("GET", "/auth/profile"): RouteAccess.BEARER,
}


async def get_current_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None,
        Depends(bearer_scheme)
    ],
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Get the current authenticated user from the bearer access token.

    Raises:
        Unauthorized: if the token is missing, invalid or expired, or the
            user no longer exists
    """
    if not credentials:
        raise Unauthorized("Authentication required")

    payload = verify_access_token(credentials.credentials)

    result = await db.execute(
        select(User).where(User.id == payload["sub"])
    )
    user = result.scalar_one_or_none()

    if not user:
        raise Unauthorized("User not found")

    return user


def get_notification_sender(request: Request) -> NotificationSender:
    """Sender created at startup and stored on the app."""
    return request.app.state.notification_sender


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
) -> AuthService:
    return AuthService(db, sender)


def get_google_verifier(request: Request) -> GoogleVerifier:
    return GoogleVerifier(
        request.app.state.oauth,
        settings.google_client_id,
        settings.google_redirect_uri,
    )


def get_linkedin_verifier(request: Request) -> LinkedInVerifier:
    return LinkedInVerifier(
        request.app.state.oauth,
        settings.linkedin_client_id,
        settings.linkedin_redirect_uri,
    )


def _depends_on(dependant: Dependant, target) -> bool:
    return any(
        sub.call is target or _depends_on(sub, target)
        for sub in dependant.dependencies
    )


def enforce_route_access(app: FastAPI) -> None:
    """
    Check every API route against ROUTE_ACCESS.

    Raises:
        RuntimeError: if a route has no declared access level, or if its
            declared level disagrees with whether it requires a bearer token
    """
    for route in app.routes:
        if not isinstance(route, APIRoute):
            continue
        guarded = _depends_on(route.dependant, get_current_user)
        for method in route.methods:
            access = ROUTE_ACCESS.get((method, route.path))
            if access is None:
                raise RuntimeError(f"No access level declared for {method} {route.path}")
            if (access is RouteAccess.BEARER) != guarded:
                raise RuntimeError(
                    f"{method} {route.path} is declared {access.value} "
                    f"but {'requires' if guarded else 'does not require'} a bearer token"
                )


# Type alias for dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]
