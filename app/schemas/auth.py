from pydantic import BaseModel

from app.schemas.slack import DisplayName


class MeResponse(BaseModel):
    """Response for /api/me endpoint."""

    authed: bool
    email: str | None = None
    full_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    mention_name: DisplayName | None = None
