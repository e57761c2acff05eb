"""Client-side mention scan across a user's conversations."""

import asyncio
from collections.abc import Sequence
from typing import Any, Protocol

from app.core.datetime_utils import from_slack_ts
from app.core.exceptions import PartialFetchError
from app.core.logging import get_logger
from app.mentions.matcher import is_mention
from app.mentions.names import resolve_display_name
from app.schemas.slack import Conversation, Mention, Message

logger = get_logger(__name__)


class MessageSource(Protocol):
    """Anything that can return the recent messages of one conversation."""

    async def fetch_messages(self, conversation: Conversation) -> list[Message]: ...


def to_mention(message: Message) -> Mention:
    return Mention(
        id=f"{message.conversation_id}-{message.ts}",
        conversation_id=message.conversation_id,
        conversation_name=message.conversation_name,
        message_text=message.text,
        mentioned_by_user_id=message.author_id,
        mentioned_by_username=message.author_display_name,
        permalink=message.permalink,
        created_at=from_slack_ts(message.ts),
    )


class MentionHarvester:
    """
    Finds messages that @mention a user by scanning recent history.

    Conversations are fetched concurrently with a fixed stagger between
    calls. A conversation that fails is skipped and recorded in `skipped`;
    the rest of the scan still completes.
    """

    def __init__(self, source: MessageSource, throttle_seconds: float = 0.1) -> None:
        self.source = source
        self.throttle_seconds = throttle_seconds
        self.skipped: list[PartialFetchError] = []

    async def _fetch_one(self, index: int, conversation: Conversation) -> list[Message]:
        if index and self.throttle_seconds:
            await asyncio.sleep(index * self.throttle_seconds)
        return await self.source.fetch_messages(conversation)

    async def fetch_all_messages(self, conversations: Sequence[Conversation]) -> list[Message]:
        """Recent messages of every conversation, in input order then provider order."""
        self.skipped = []
        results = await asyncio.gather(
            *(self._fetch_one(i, c) for i, c in enumerate(conversations)),
            return_exceptions=True,
        )

        messages: list[Message] = []
        for conversation, result in zip(conversations, results, strict=True):
            if isinstance(result, Exception):
                logger.bind(conversation_id=conversation.id, error=str(result)).warning(
                    "harvest_conversation_skipped"
                )
                self.skipped.append(PartialFetchError(conversation.id, result))
                continue
            if isinstance(result, BaseException):
                raise result
            messages.extend(result)

        logger.bind(
            conversations=len(conversations),
            messages=len(messages),
            skipped=len(self.skipped),
        ).info("harvest_messages_fetched")
        return messages

    async def harvest_mentions(
        self, user: Any, conversations: Sequence[Conversation]
    ) -> list[Mention]:
        """
        Mentions of `user` across `conversations`.

        Output is deterministic for identical provider data: ids are
        `{conversation_id}-{ts}` and order follows the fetch order.
        """
        name = resolve_display_name(user)
        messages = await self.fetch_all_messages(conversations)
        mentions = [
            to_mention(message)
            for message in messages
            if is_mention(message.text, name.first_name, name.last_name)
        ]
        logger.bind(mentions=len(mentions)).info("harvest_completed")
        return mentions
