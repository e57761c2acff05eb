"""Persistence for provider tokens and connect attempts."""

import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.core.datetime_utils import is_expired, utc_now
from app.core.logging import get_logger
from app.models.oauth import AttemptStatus, OAuthAttempt, OAuthToken
from app.oauth.exchange import TokenGrant
from app.oauth.providers import PROVIDERS
from app.schemas.oauth import ConnectionStatusResponse, ConnectRequest, OAuthMessage

logger = get_logger(__name__)

ATTEMPT_TIMEOUT_ERROR = "Connection timed out"
ATTEMPT_USED_ERROR = "Connect attempt was already used"


# Tokens


async def get_token(db: AsyncSession, user_id: uuid.UUID, provider: str) -> OAuthToken | None:
    result = await db.execute(
        select(OAuthToken).where(
            OAuthToken.user_id == user_id,
            OAuthToken.provider == provider,
        )
    )
    return result.scalar_one_or_none()


async def upsert_token(
    db: AsyncSession,
    user_id: uuid.UUID,
    provider: str,
    grant: TokenGrant,
) -> OAuthToken:
    """
    Store a grant as the user's single token for a provider.

    Reconnecting updates the existing row; the (user_id, provider) unique
    constraint backs this up.
    """
    token = await get_token(db, user_id, provider)

    if token:
        token.provider_team_or_site_id = grant.team_or_site_id
        token.provider_user_id = grant.provider_user_id
        token.team_or_site_name = grant.team_or_site_name
        token.site_url = grant.site_url
        token.access_token = grant.access_token
        token.refresh_token = grant.refresh_token
        token.scope = grant.scope
        token.expires_at = grant.expires_at
        token.updated_at = utc_now()
        logger.bind(provider=provider, user_id=str(user_id)).info("oauth_token_updated")
    else:
        token = OAuthToken(
            user_id=user_id,
            provider=provider,
            provider_team_or_site_id=grant.team_or_site_id,
            provider_user_id=grant.provider_user_id,
            team_or_site_name=grant.team_or_site_name,
            site_url=grant.site_url,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            scope=grant.scope,
            expires_at=grant.expires_at,
        )
        db.add(token)
        logger.bind(provider=provider, user_id=str(user_id)).info("oauth_token_created")

    await db.flush()
    return token


async def delete_token(db: AsyncSession, user_id: uuid.UUID, provider: str) -> bool:
    """Remove the stored token. Returns False when there was none."""
    result = await db.execute(
        delete(OAuthToken).where(
            OAuthToken.user_id == user_id,
            OAuthToken.provider == provider,
        )
    )
    deleted = bool(result.rowcount)
    if deleted:
        logger.bind(provider=provider, user_id=str(user_id)).info("oauth_token_deleted")
    return deleted


def _status_for(
    provider: str, token: OAuthToken | None, settings: Settings
) -> ConnectionStatusResponse:
    configured = PROVIDERS[provider].is_configured(settings)
    if token is None or (token.expires_at is not None and is_expired(token.expires_at)):
        return ConnectionStatusResponse(provider=provider, connected=False, configured=configured)

    return ConnectionStatusResponse(
        provider=provider,
        connected=True,
        configured=configured,
        team_or_site_name=token.team_or_site_name,
        connected_at=token.updated_at or token.created_at,
        expires_at=token.expires_at,
    )


async def connection_status(
    db: AsyncSession,
    user_id: uuid.UUID,
    provider: str,
    settings: Settings,
) -> ConnectionStatusResponse:
    """Derived connection state; connected iff a live token row exists."""
    token = await get_token(db, user_id, provider)
    return _status_for(provider, token, settings)


async def list_connection_statuses(
    db: AsyncSession,
    user_id: uuid.UUID,
    settings: Settings,
) -> list[ConnectionStatusResponse]:
    result = await db.execute(select(OAuthToken).where(OAuthToken.user_id == user_id))
    tokens = {token.provider: token for token in result.scalars().all()}
    return [_status_for(provider, tokens.get(provider), settings) for provider in PROVIDERS]


# Attempts


async def create_attempt(
    db: AsyncSession,
    user_id: uuid.UUID,
    request: ConnectRequest,
) -> OAuthAttempt:
    attempt = OAuthAttempt(
        state=request.state,
        user_id=user_id,
        provider=request.provider,
        status=AttemptStatus.AWAITING_REDIRECT.value,
        expires_at=request.expires_at,
    )
    db.add(attempt)
    await db.flush()
    logger.bind(provider=request.provider, user_id=str(user_id)).info("oauth_attempt_created")
    return attempt


async def get_attempt(db: AsyncSession, user_id: uuid.UUID, state: str) -> OAuthAttempt | None:
    """Attempt with this state, only if the user owns it."""
    result = await db.execute(
        select(OAuthAttempt).where(
            OAuthAttempt.state == state,
            OAuthAttempt.user_id == user_id,
        )
    )
    return expire_if_stale(result.scalar_one_or_none())


async def get_attempt_by_state(db: AsyncSession, state: str) -> OAuthAttempt | None:
    """Attempt named by a state value, whoever owns it.

    For the callback page, which may arrive without a session; the state is
    unguessable and unique.
    """
    result = await db.execute(select(OAuthAttempt).where(OAuthAttempt.state == state))
    return expire_if_stale(result.scalar_one_or_none())


def expire_if_stale(attempt: OAuthAttempt | None) -> OAuthAttempt | None:
    """Fail an unfinished attempt whose window has passed."""
    if attempt is not None and not attempt.is_terminal and is_expired(attempt.expires_at):
        finish_attempt(attempt, AttemptStatus.FAILED, error=ATTEMPT_TIMEOUT_ERROR)
        logger.bind(provider=attempt.provider).warning("oauth_attempt_timed_out")
    return attempt


def record_redirect(attempt: OAuthAttempt, message: OAuthMessage) -> None:
    """Store the callback page's message on the attempt.

    A failed redirect ends the attempt; a successful one waits for the exchange.
    """
    attempt.relayed_message = message.to_payload()
    if message.ok:
        attempt.status = AttemptStatus.REDIRECTED.value
    else:
        finish_attempt(attempt, AttemptStatus.FAILED, error=message.error)


def finish_attempt(
    attempt: OAuthAttempt,
    status: AttemptStatus,
    error: str | None = None,
) -> None:
    attempt.status = status.value
    attempt.error = error
    attempt.completed_at = utc_now()
