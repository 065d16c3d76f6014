"""
One-time magic link tokens for passwordless login
"""
import time
from datetime import datetime
from uuid import uuid4

from sqlalchemy import BigInteger, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.user import User, utcnow


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


class MagicLinkToken(Base):
    """
    Single-use login token tied to a user.

    Deleted as soon as it is consumed. Expired rows are swept lazily the
    next time the same user requests a link.
    """

    __tablename__ = "magic_link_tokens"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    token: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )

    user_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Absolute expiry in epoch milliseconds
    expires_at: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    user: Mapped["User"] = relationship(
        "User",
        back_populates="magic_link_tokens",
    )

    def __repr__(self) -> str:
        return f"<MagicLinkToken user={self.user_id} expires_at={self.expires_at}>"

    def is_expired(self, at_ms: int | None = None) -> bool:
        return self.expires_at < (now_ms() if at_ms is None else at_ms)
