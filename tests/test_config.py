from unittest.mock import patch

import pytest
from pydantic import ValidationError

from app.config import Settings, get_settings


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def test_async_database_url_rewrites_drivers():
    assert make_settings(database_url="postgres://u:p@h/db").async_database_url == "postgresql+asyncpg://u:p@h/db"
    assert make_settings(database_url="postgresql://u:p@h/db").async_database_url == "postgresql+asyncpg://u:p@h/db"
    assert make_settings(database_url="sqlite:///./dev.db").async_database_url == "sqlite+aiosqlite:///./dev.db"
    assert make_settings(database_url="sqlite:///./dev.db").is_sqlite


def test_signing_secrets_must_differ():
    with pytest.raises(ValidationError, match="must differ"):
        make_settings(jwt_secret_key="same", jwt_refresh_secret_key="same")


def test_production_rejects_default_secrets():
    with pytest.raises(ValidationError, match="must be set in production"):
        make_settings(environment="production")


def test_production_accepts_explicit_secrets():
    settings = make_settings(
        environment="production",
        jwt_secret_key="access-secret",
        jwt_refresh_secret_key="refresh-secret",
        session_secret_key="session-secret",
    )

    assert settings.is_production


def test_expiry_windows_must_be_positive():
    with pytest.raises(ValidationError, match="magic_link_expiry_seconds"):
        make_settings(magic_link_expiry_seconds=0)


def test_frontend_url_is_an_allowed_origin():
    settings = make_settings(cors_origins=["http://localhost:5173"], frontend_url="https://app.example.com")

    assert settings.allowed_origins == ["http://localhost:5173", "https://app.example.com"]


def test_runner_serves_on_configured_host_and_port():
    from app.main import run
    current = get_settings()

    with patch("uvicorn.run") as mock_run:
        run()

    mock_run.assert_called_once_with(
        "app.main:app",
        host=current.host,
        port=current.port,
        reload=current.debug,
    )
