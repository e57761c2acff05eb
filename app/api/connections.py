"""Connection management and the opener's completion call."""

from fastapi import APIRouter, HTTPException, status

from app.api.errors import http_error
from app.core.exceptions import OAuthError
from app.core.logging import get_logger
from app.dependencies import AppSettings, Config, CurrentUser, DBSession, HTTPClient
from app.oauth import store
from app.oauth.providers import get_provider
from app.oauth.service import complete_exchange
from app.schemas.oauth import (
    AttemptResponse,
    ConnectionListResponse,
    ConnectionStatusResponse,
    ExchangeRequest,
    OAuthMessage,
)

logger = get_logger(__name__)
router = APIRouter()


@router.get("/connections", response_model=ConnectionListResponse)
async def list_connections(
    user: CurrentUser,
    db: DBSession,
    settings: AppSettings,
) -> ConnectionListResponse:
    """Connection status for every supported provider."""
    connections = await store.list_connection_statuses(db, user.id, settings)
    return ConnectionListResponse(connections=connections)


@router.get("/connections/attempts/{state}", response_model=AttemptResponse)
async def get_attempt(
    state: str,
    user: CurrentUser,
    db: DBSession,
) -> AttemptResponse:
    """
    Status of a connect attempt owned by the caller.

    Includes the message the callback page relayed, for openers that
    cannot receive window messages.
    """
    attempt = await store.get_attempt(db, user.id, state)
    if attempt is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attempt not found")

    message = None
    if attempt.relayed_message:
        message = OAuthMessage.model_validate(attempt.relayed_message)

    return AttemptResponse(
        provider=attempt.provider,
        state=attempt.state,
        status=attempt.status,
        message=message,
        error=attempt.error,
        expires_at=attempt.expires_at,
    )


@router.get("/connections/{provider}", response_model=ConnectionStatusResponse)
async def get_connection(
    provider: str,
    user: CurrentUser,
    db: DBSession,
    settings: AppSettings,
    config: Config,
) -> ConnectionStatusResponse:
    try:
        get_provider(provider, config)
    except OAuthError as e:
        raise http_error(e) from e
    return await store.connection_status(db, user.id, provider, settings)


@router.delete("/connections/{provider}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_connection(
    provider: str,
    user: CurrentUser,
    db: DBSession,
) -> None:
    """Disconnect a provider by removing its stored token."""
    deleted = await store.delete_token(db, user.id, provider)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{provider} is not connected",
        )


@router.post("/connections/{provider}/exchange", response_model=ConnectionStatusResponse)
async def exchange(
    provider: str,
    body: ExchangeRequest,
    user: CurrentUser,
    db: DBSession,
    http: HTTPClient,
    settings: AppSettings,
    config: Config,
) -> ConnectionStatusResponse:
    """
    Complete a connect attempt with the code the popup relayed.

    Reports connected only after the token is stored.
    """
    try:
        return await complete_exchange(
            db, user.id, provider, body.code, body.state, http, settings, config
        )
    except OAuthError as e:
        # Keep the attempt's failed status
        await db.commit()
        raise http_error(e) from e
