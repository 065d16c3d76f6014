"""
Blood Test Analyzer API

Authentication backend: Google/LinkedIn OAuth, email magic links and
rotating JWT access/refresh tokens.
"""
from contextlib import asynccontextmanager
import logging
import sys

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from app.api.endpoints.auth import router as auth_router
from app.api.endpoints.health import router as health_router
from app.auth.dependencies import enforce_route_access
from app.auth.verifiers import build_oauth
from app.config import settings
from app.database import init_db, close_db
from app.exceptions import AuthError
from app.services.email_service import ResendEmailSender


def configure_logging() -> None:
    """Configure stdlib logging and structlog (used by the service layer)."""
    logging.basicConfig(
        level=logging.INFO if not settings.debug else logging.DEBUG,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info(f"Starting app version={settings.app_version} env={settings.environment}")
    try:
        await init_db()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database init error: {e}")
        # Continue anyway - health check will show status

    app.state.oauth = build_oauth(settings)
    app.state.notification_sender = ResendEmailSender.from_settings(settings)
    yield
    # Shutdown
    logger.info("Shutting down app")
    try:
        await close_db()
    except Exception as e:
        logger.error(f"Database close error: {e}")


# Create app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Authentication API for the blood test analyzer",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Holds OAuth state between the redirect and the callback
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret_key,
    session_cookie=settings.session_cookie_name,
    max_age=settings.session_max_age_seconds,
    same_site="lax",
    https_only=settings.is_production,
)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed input is a 400, not FastAPI's default 422."""
    return JSONResponse(
        status_code=400,
        content={"detail": jsonable_encoder(exc.errors())},
    )


app.include_router(health_router)
app.include_router(auth_router)

enforce_route_access(app)


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
