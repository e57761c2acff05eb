"""Popup-facing OAuth endpoints: start an attempt and receive the redirect."""

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse

from app.api.errors import http_error
from app.core.exceptions import OAuthError
from app.core.logging import get_logger
from app.core.rate_limit import limiter
from app.dependencies import AppSettings, Config, CurrentUser, CurrentUserOptional, DBSession
from app.oauth.handshake import render_callback_page
from app.oauth.service import receive_callback, start_connect
from app.schemas.oauth import ConnectRequest

logger = get_logger(__name__)
router = APIRouter()


@router.get("/{provider}/connect", response_model=ConnectRequest)
@limiter.limit("10/minute")
async def connect(
    request: Request,
    provider: str,
    user: CurrentUser,
    db: DBSession,
    settings: AppSettings,
    config: Config,
) -> ConnectRequest:
    """
    Start a connect attempt for a provider.

    Returns the authorize URL and popup features; the opener opens the
    popup and listens for the callback page's message.
    """
    try:
        connect_request = await start_connect(db, user.id, provider, settings, config)
    except OAuthError as e:
        raise http_error(e) from e

    logger.bind(provider=provider, user_id=str(user.id)).info("oauth_connect_started")
    return connect_request


@router.get("/{provider}/callback", response_class=HTMLResponse)
async def callback(
    provider: str,
    user: CurrentUserOptional,
    db: DBSession,
    settings: AppSettings,
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
) -> HTMLResponse:
    """
    Handle the provider's redirect inside the popup.

    Finds the attempt by its state, since the popup may carry no session,
    verifies the redirect against it and relays the result to the opener.
    The code is not exchanged here.
    """
    message = await receive_callback(
        db,
        user.id if user else None,
        provider,
        code=code,
        state=state,
        error=error,
    )
    html = render_callback_page(message, settings.opener_origin, provider)
    return HTMLResponse(content=html, status_code=200 if message.ok else 400)
