import os
import tempfile

# Settings are read once at import time, so the environment must be in place
# before anything under app/ is imported.
_db_dir = tempfile.mkdtemp(prefix="bta-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_db_dir}/app.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["BACKEND_URL"] = "http://testserver"
os.environ["FRONTEND_URL"] = "http://frontend.test"
os.environ["RESEND_API_KEY"] = ""
os.environ["GOOGLE_CLIENT_ID"] = ""
os.environ["LINKEDIN_CLIENT_ID"] = ""

from urllib.parse import parse_qs, urlparse  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

import app.models  # noqa: E402,F401
from app.database import Base  # noqa: E402
from app.services.email_service import NotificationSender  # noqa: E402


class RecordingSender(NotificationSender):
    """Keeps sent links in memory instead of emailing them."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def send_magic_link(self, to, link, expires_in_seconds):
        if self.fail:
            raise RuntimeError("smtp is down")
        self.sent.append({"to": to, "link": link, "expires_in_seconds": expires_in_seconds})

    @property
    def last_token(self) -> str:
        return token_from_link(self.sent[-1]["link"])


def token_from_link(link: str) -> str:
    return parse_qs(urlparse(link).query)["token"][0]


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
async def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/service.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
