"""
Slack Web API client for reading conversations as the connected user.

Built around an injected httpx.AsyncClient and the user token stored by the
connect flow. Messages are normalized for mention matching.
"""

import re
from typing import Any

import httpx

from app.core.exceptions import SlackAPIError
from app.core.logging import get_logger
from app.schemas.slack import Conversation, ConversationType, Message

logger = get_logger(__name__)

# Slack API endpoints
SLACK_API_URL = "https://slack.com/api"

DEFAULT_CONVERSATION_TYPES = ["public_channel", "private_channel", "im", "mpim"]

# <@U123ABC> or <@U123ABC|label>
USER_TOKEN_RE = re.compile(r"<@([A-Z0-9]+)(?:\|([^>]*))?>")


def conversation_type(channel: dict[str, Any]) -> ConversationType:
    if channel.get("is_im"):
        return "im"
    if channel.get("is_mpim"):
        return "mpim"
    if channel.get("is_private") or channel.get("is_group"):
        return "private_channel"
    return "channel"


def build_permalink(workspace_url: str, conversation_id: str, ts: str) -> str:
    """Slack archive link: {workspace_url}archives/{channel}/p{ts without the dot}."""
    if not workspace_url.endswith("/"):
        workspace_url += "/"
    return f"{workspace_url}archives/{conversation_id}/p{ts.replace('.', '')}"


def user_display_name(user: dict[str, Any]) -> str:
    """Profile display name, then real name, then handle."""
    profile = user.get("profile") or {}
    return (
        profile.get("display_name")
        or profile.get("real_name")
        or user.get("real_name")
        or user.get("name")
        or user.get("id", "")
    )


class SlackClient:
    """
    Minimal Slack Web API client.

    User lookups are memoized for the lifetime of the client, which is
    meant to be one request or one harvest.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        access_token: str,
        history_limit: int = 50,
        workspace_url: str | None = None,
    ) -> None:
        self.http = http
        self.access_token = access_token
        self.history_limit = history_limit
        self._workspace_url = workspace_url
        self._users: dict[str, dict[str, Any]] = {}

    async def _call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            resp = await self.http.get(
                f"{SLACK_API_URL}/{method}",
                params=params or {},
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
        except httpx.HTTPError as e:
            logger.bind(method=method, error=str(e)).error("slack_request_error")
            raise SlackAPIError(method, str(e)) from e

        if resp.status_code == 429:
            logger.bind(method=method).warning("slack_rate_limited")
            raise SlackAPIError(method, "ratelimited")

        try:
            data: dict[str, Any] = resp.json()
        except ValueError as e:
            raise SlackAPIError(method, f"invalid response ({resp.status_code})") from e

        if not data.get("ok"):
            error = data.get("error", "unknown_error")
            logger.bind(method=method, error=error).warning("slack_api_error")
            raise SlackAPIError(method, error)

        return data

    async def auth_test(self) -> dict[str, Any]:
        """Identity of the token; also records the workspace URL."""
        data = await self._call("auth.test")
        self._workspace_url = data.get("url") or self._workspace_url
        return data

    async def workspace_url(self) -> str:
        if not self._workspace_url:
            await self.auth_test()
        return self._workspace_url or ""

    async def list_conversations(self, types: list[str] | None = None) -> list[Conversation]:
        """All conversations of the given types visible to the token, following cursors."""
        conversations: list[Conversation] = []
        cursor = ""

        while True:
            params: dict[str, Any] = {
                "types": ",".join(types or DEFAULT_CONVERSATION_TYPES),
                "exclude_archived": "true",
                "limit": 200,
            }
            if cursor:
                params["cursor"] = cursor

            data = await self._call("conversations.list", params)
            for channel in data.get("channels", []):
                conversations.append(await self._to_conversation(channel))

            cursor = (data.get("response_metadata") or {}).get("next_cursor", "")
            if not cursor:
                break

        logger.bind(count=len(conversations)).debug("slack_conversations_listed")
        return conversations

    async def conversation_info(self, conversation_id: str) -> Conversation:
        data = await self._call("conversations.info", {"channel": conversation_id})
        return await self._to_conversation(data.get("channel") or {"id": conversation_id})

    async def _to_conversation(self, channel: dict[str, Any]) -> Conversation:
        kind = conversation_type(channel)
        name = channel.get("name")
        if not name and kind == "im" and channel.get("user"):
            name = await self._display_name_or(channel["user"], channel["user"])
        return Conversation(id=channel["id"], name=name or channel["id"], type=kind)

    async def conversation_history(
        self, conversation_id: str, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """Raw recent messages of a conversation, newest first."""
        data = await self._call(
            "conversations.history",
            {"channel": conversation_id, "limit": limit or self.history_limit},
        )
        messages: list[dict[str, Any]] = data.get("messages", [])
        return messages

    async def user_info(self, user_id: str) -> dict[str, Any]:
        if user_id not in self._users:
            data = await self._call("users.info", {"user": user_id})
            self._users[user_id] = data.get("user") or {"id": user_id}
        return self._users[user_id]

    async def display_name(self, user_id: str) -> str:
        return user_display_name(await self.user_info(user_id))

    async def _display_name_or(self, user_id: str, fallback: str) -> str:
        """Display name, or the fallback when Slack cannot resolve the user."""
        try:
            return await self.display_name(user_id)
        except SlackAPIError as e:
            logger.bind(user_id=user_id, error=e.error).warning("slack_user_unresolved")
            return fallback

    async def _expand_user_tokens(self, text: str) -> str:
        """Rewrite <@U123> tokens as @Display Name."""
        replacements = {}
        for user_id, label in USER_TOKEN_RE.findall(text):
            if user_id not in replacements:
                replacements[user_id] = await self._display_name_or(user_id, label or user_id)
        return USER_TOKEN_RE.sub(lambda m: f"@{replacements[m.group(1)]}", text)

    async def fetch_messages(self, conversation: Conversation) -> list[Message]:
        """
        Recent user messages of a conversation, normalized.

        System and bot messages (anything with a subtype) are dropped.
        """
        raw_messages = await self.conversation_history(conversation.id)
        workspace_url = await self.workspace_url()

        messages: list[Message] = []
        for raw in raw_messages:
            if raw.get("subtype") or not raw.get("user") or not raw.get("ts"):
                continue

            messages.append(
                Message(
                    conversation_id=conversation.id,
                    conversation_name=conversation.name,
                    conversation_type=conversation.type,
                    ts=raw["ts"],
                    author_id=raw["user"],
                    author_display_name=await self._display_name_or(raw["user"], raw["user"]),
                    text=await self._expand_user_tokens(raw.get("text", "")),
                    permalink=build_permalink(workspace_url, conversation.id, raw["ts"]),
                )
            )

        return messages
