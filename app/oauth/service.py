"""Connect flow orchestration used by the API and the CLI."""

import uuid

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import AppConfig, Settings
from app.core.exceptions import ConnectTimeoutError, OAuthError, StateMismatchError
from app.core.logging import get_logger
from app.models.oauth import AttemptStatus, OAuthAttempt
from app.oauth import store
from app.oauth.exchange import exchange_code_for_token
from app.oauth.handshake import callback_message
from app.oauth.providers import get_provider, initiate_connect
from app.schemas.oauth import ConnectionStatusResponse, ConnectRequest, OAuthMessage

logger = get_logger(__name__)


async def start_connect(
    db: AsyncSession,
    user_id: uuid.UUID,
    provider: str,
    settings: Settings,
    config: AppConfig,
) -> ConnectRequest:
    """Create an attempt in awaiting_redirect and return what the opener needs."""
    request = initiate_connect(provider, settings, config)
    await store.create_attempt(db, user_id, request)
    return request


async def receive_callback(
    db: AsyncSession,
    user_id: uuid.UUID | None,
    provider: str,
    code: str | None,
    state: str | None,
    error: str | None = None,
) -> OAuthMessage:
    """
    Verify a provider redirect against the attempt its state names.

    The popup may arrive without a session cookie, so the attempt is found
    by state alone. It must be for this provider and, when a session is
    present, owned by its user; otherwise no attempt is touched.

    Never exchanges the code. The outcome is recorded on the attempt so
    openers without window messaging can poll for it.
    """
    attempt = await store.get_attempt_by_state(db, state) if state else None
    if attempt is not None and (
        attempt.provider != provider or (user_id is not None and attempt.user_id != user_id)
    ):
        logger.bind(provider=provider, attempt_provider=attempt.provider).warning(
            "oauth_callback_foreign_attempt"
        )
        attempt = None

    if attempt is None:
        return callback_message(code, state, None, error, provider=provider)

    if attempt.status != AttemptStatus.AWAITING_REDIRECT.value:
        # Timed out, or a second redirect for an attempt already relayed
        return OAuthMessage(
            type="oauth_error",
            state=attempt.state,
            error=attempt.error or store.ATTEMPT_USED_ERROR,
        )

    message = callback_message(code, state, attempt.state, error, provider=provider)
    store.record_redirect(attempt, message)
    logger.bind(provider=provider, status=attempt.status).info("oauth_callback_recorded")
    return message


async def complete_exchange(
    db: AsyncSession,
    user_id: uuid.UUID,
    provider: str,
    code: str,
    state: str,
    http: httpx.AsyncClient,
    settings: Settings,
    config: AppConfig,
) -> ConnectionStatusResponse:
    """
    Finish a connect attempt: exchange the code and store the token.

    Idempotent for an attempt that already succeeded. Any failure ends the
    attempt as failed; there is no retry.

    Raises:
        StateMismatchError: No attempt with this state for this user and provider
        ConnectTimeoutError: The attempt's window has passed
        TokenExchangeError: The provider rejected the exchange
    """
    spec = get_provider(provider, config)

    attempt = await store.get_attempt(db, user_id, state)
    if attempt is None or attempt.provider != provider:
        logger.bind(provider=provider).warning("oauth_exchange_unknown_state")
        raise StateMismatchError("Invalid OAuth state")

    if attempt.status == AttemptStatus.SUCCEEDED.value:
        return await store.connection_status(db, user_id, provider, settings)

    _ensure_exchangeable(attempt)

    try:
        grant = await exchange_code_for_token(
            spec, code, settings.redirect_uri(provider), http, settings
        )
        await store.upsert_token(db, user_id, provider, grant)
    except OAuthError as e:
        store.finish_attempt(attempt, AttemptStatus.FAILED, error=e.message)
        attempt.relayed_message = None
        raise

    store.finish_attempt(attempt, AttemptStatus.SUCCEEDED)
    attempt.relayed_message = None
    logger.bind(provider=provider, user_id=str(user_id)).info("oauth_connect_succeeded")
    return await store.connection_status(db, user_id, provider, settings)


def _ensure_exchangeable(attempt: OAuthAttempt) -> None:
    if attempt.status == AttemptStatus.FAILED.value:
        if attempt.error == store.ATTEMPT_TIMEOUT_ERROR:
            raise ConnectTimeoutError(store.ATTEMPT_TIMEOUT_ERROR)
        raise StateMismatchError(f"Connect attempt already failed: {attempt.error}")
    if attempt.status == AttemptStatus.ABANDONED.value:
        raise StateMismatchError("Connect attempt was abandoned")
