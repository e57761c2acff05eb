from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class PopupSpec(BaseModel):
    """Window features for the authorization popup."""

    name: str
    width: int = 600
    height: int = 700


class ConnectRequest(BaseModel):
    """Everything the opener needs to start one connect attempt."""

    provider: str
    state: str
    authorize_url: str
    expires_at: datetime
    popup: PopupSpec


class OAuthMessage(BaseModel):
    """Message the callback popup posts to its opener."""

    type: Literal["oauth_success", "oauth_error"]
    code: str | None = None
    state: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.type == "oauth_success"

    def to_payload(self) -> dict[str, str]:
        """Wire shape: `{type, code, state}` on success, `{type, error[, state]}` otherwise."""
        if self.ok:
            return {"type": self.type, "code": self.code or "", "state": self.state or ""}
        payload = {"type": self.type, "error": self.error or "unknown_error"}
        if self.state:
            payload["state"] = self.state
        return payload


class ExchangeRequest(BaseModel):
    """Request body for completing a connect attempt."""

    code: str = Field(min_length=1)
    state: str = Field(min_length=1)


class ConnectionStatusResponse(BaseModel):
    """Connection state for one provider. Never carries token material."""

    provider: str
    connected: bool
    configured: bool = True
    team_or_site_name: str | None = None
    connected_at: datetime | None = None
    expires_at: datetime | None = None


class ConnectionListResponse(BaseModel):
    connections: list[ConnectionStatusResponse]


class AttemptResponse(BaseModel):
    """Status of one connect attempt, with the popup's message once relayed."""

    provider: str
    state: str
    status: str
    message: OAuthMessage | None = None
    error: str | None = None
    expires_at: datetime
