"""
User model for storing authenticated users
"""
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import DateTime, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.magic_link import MagicLinkToken


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthProvider(str, Enum):
    """How the user last authenticated."""
    GOOGLE = "google"
    LINKEDIN = "linkedin"
    MAGIC_LINK = "magic_link"


class User(Base):
    """
    User model representing an authenticated user.

    Users are created on their first OAuth callback or on the first magic
    link requested for an unseen email. The email is globally unique.
    """

    __tablename__ = "users"

    # Primary key
    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )

    # Identity provider
    provider: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    provider_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )

    # Profile
    first_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    picture: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Currently valid refresh token, one active session per user
    refresh_token: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    # Relationships
    magic_link_tokens: Mapped[list["MagicLinkToken"]] = relationship(
        "MagicLinkToken",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.provider})>"
