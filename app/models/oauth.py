"""Provider tokens and in-flight connect attempts."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.datetime_utils import utc_now
from app.models.base import Base, UpdatedAtMixin

if TYPE_CHECKING:
    from app.models.user import User


class AttemptStatus(str, enum.Enum):
    AWAITING_REDIRECT = "awaiting_redirect"
    REDIRECTED = "redirected"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABANDONED = "abandoned"


# Status values an attempt never leaves
TERMINAL_STATUSES = frozenset(
    {AttemptStatus.SUCCEEDED.value, AttemptStatus.FAILED.value, AttemptStatus.ABANDONED.value}
)


class OAuthToken(Base, UpdatedAtMixin):
    """Stored credential for one provider, one row per (user, provider).

    Reconnecting a provider updates the existing row.
    """

    __tablename__ = "oauth_tokens"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    provider: Mapped[str] = mapped_column(String(20), index=True)

    # Workspace (Slack team) or Atlassian cloud site
    provider_team_or_site_id: Mapped[str] = mapped_column(String(100))
    provider_user_id: Mapped[str | None] = mapped_column(String(100), default=None)
    team_or_site_name: Mapped[str | None] = mapped_column(String(255), default=None)
    site_url: Mapped[str | None] = mapped_column(String(255), default=None)

    access_token: Mapped[str] = mapped_column(Text)
    refresh_token: Mapped[str | None] = mapped_column(Text, default=None)
    scope: Mapped[str] = mapped_column(Text, default="")
    expires_at: Mapped[datetime | None] = mapped_column(default=None)

    # Relationships
    user: Mapped[User] = relationship(back_populates="oauth_tokens", lazy="selectin")

    __table_args__ = (UniqueConstraint("user_id", "provider", name="uq_oauth_token_user_provider"),)

    def __repr__(self) -> str:
        return f"<OAuthToken {self.provider}:{self.user_id}>"


class OAuthAttempt(Base):
    """One popup connect attempt, keyed by its state value."""

    __tablename__ = "oauth_attempts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    state: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    provider: Mapped[str] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20), default=AttemptStatus.AWAITING_REDIRECT.value)

    # Payload the callback page posted to the opener
    relayed_message: Mapped[dict | None] = mapped_column(JSON, default=None)
    error: Mapped[str | None] = mapped_column(Text, default=None)

    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    expires_at: Mapped[datetime] = mapped_column()
    completed_at: Mapped[datetime | None] = mapped_column(default=None)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return f"<OAuthAttempt {self.provider}:{self.status}>"
