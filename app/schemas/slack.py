from datetime import datetime
from typing import Literal

from pydantic import BaseModel

ConversationType = Literal["channel", "private_channel", "im", "mpim"]


class DisplayName(BaseModel):
    """Name used to recognise @mentions of a user."""

    first_name: str
    last_name: str = ""


class Conversation(BaseModel):
    id: str
    name: str
    type: ConversationType


class Message(BaseModel):
    """A Slack message normalized for mention matching."""

    conversation_id: str
    conversation_name: str
    conversation_type: ConversationType
    ts: str
    author_id: str
    author_display_name: str
    text: str
    permalink: str


class Mention(BaseModel):
    """A message that @mentions the current user."""

    id: str
    conversation_id: str
    conversation_name: str
    message_text: str
    mentioned_by_user_id: str
    mentioned_by_username: str
    permalink: str
    created_at: datetime


class ConversationListResponse(BaseModel):
    conversations: list[Conversation]


class MessageListResponse(BaseModel):
    conversation_id: str
    messages: list[Message]


class SkippedConversation(BaseModel):
    conversation_id: str
    error: str


class MentionsResponse(BaseModel):
    mentions: list[Mention]
    count: int
    skipped: list[SkippedConversation] = []
