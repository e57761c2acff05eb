"""Slack reads for the connected user: conversations, messages and mentions."""

import httpx
from fastapi import APIRouter, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.errors import http_error
from app.config import AppConfig
from app.core.exceptions import HarvestError
from app.core.logging import get_logger
from app.dependencies import Config, CurrentUser, DBSession, HTTPClient
from app.mentions.harvester import MentionHarvester
from app.models.user import User
from app.oauth import store
from app.schemas.slack import (
    ConversationListResponse,
    MentionsResponse,
    MessageListResponse,
    SkippedConversation,
)
from app.services.slack_service import SlackClient

logger = get_logger(__name__)
router = APIRouter()


async def _slack_client(
    db: AsyncSession,
    user: User,
    http: httpx.AsyncClient,
    config: AppConfig,
) -> SlackClient:
    token = await store.get_token(db, user.id, "slack")
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Slack is not connected",
        )
    return SlackClient(
        http,
        token.access_token,
        history_limit=config.harvest.history_limit,
        workspace_url=token.site_url,
    )


@router.get("/channels", response_model=ConversationListResponse)
async def list_channels(
    user: CurrentUser,
    db: DBSession,
    http: HTTPClient,
    config: Config,
) -> ConversationListResponse:
    """Conversations visible to the stored Slack token."""
    client = await _slack_client(db, user, http, config)
    try:
        conversations = await client.list_conversations(config.harvest.conversation_types)
    except HarvestError as e:
        raise http_error(e) from e
    return ConversationListResponse(conversations=conversations)


@router.get("/channels/{conversation_id}/messages", response_model=MessageListResponse)
async def list_messages(
    conversation_id: str,
    user: CurrentUser,
    db: DBSession,
    http: HTTPClient,
    config: Config,
) -> MessageListResponse:
    """Recent messages of one conversation, normalized."""
    client = await _slack_client(db, user, http, config)
    try:
        conversation = await client.conversation_info(conversation_id)
        messages = await client.fetch_messages(conversation)
    except HarvestError as e:
        raise http_error(e) from e
    return MessageListResponse(conversation_id=conversation_id, messages=messages)


@router.get("/mentions", response_model=MentionsResponse)
async def list_mentions(
    user: CurrentUser,
    db: DBSession,
    http: HTTPClient,
    config: Config,
) -> MentionsResponse:
    """
    Scan the user's recent Slack history for @mentions of them.

    Conversations that fail to load are reported in `skipped`.
    """
    client = await _slack_client(db, user, http, config)
    harvester = MentionHarvester(client, throttle_seconds=config.harvest.throttle_seconds)

    try:
        conversations = await client.list_conversations(config.harvest.conversation_types)
        mentions = await harvester.harvest_mentions(user, conversations)
    except HarvestError as e:
        raise http_error(e) from e

    logger.bind(user_id=str(user.id), mentions=len(mentions)).info("slack_mentions_harvested")
    return MentionsResponse(
        mentions=mentions,
        count=len(mentions),
        skipped=[
            SkippedConversation(conversation_id=s.conversation_id, error=str(s.cause))
            for s in harvester.skipped
        ],
    )
