"""
Health and API info endpoints
"""
import time
from datetime import datetime, timezone

from fastapi import APIRouter

from app.config import settings
from app.database import ping_db

router = APIRouter(tags=["health"])

_started_at = time.monotonic()


@router.get("/")
async def root():
    """API info."""
    return {
        "status": "ok",
        "message": settings.app_name,
        "version": settings.app_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "auth": {
                "google": "GET /auth/google",
                "linkedin": "GET /auth/linkedin",
                "magicLink": "POST /auth/magic-link/request",
                "refresh": "POST /auth/refresh",
                "logout": "POST /auth/logout",
                "profile": "GET /auth/profile",
            },
        },
    }


@router.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    database_ok = await ping_db()
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "uptime": round(time.monotonic() - _started_at, 3),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "connected" if database_ok else "unavailable",
    }
