from app.schemas.auth import MeResponse
from app.schemas.oauth import (
    AttemptResponse,
    ConnectionListResponse,
    ConnectionStatusResponse,
    ConnectRequest,
    ExchangeRequest,
    OAuthMessage,
    PopupSpec,
)
from app.schemas.slack import (
    Conversation,
    ConversationListResponse,
    DisplayName,
    Mention,
    MentionsResponse,
    Message,
    MessageListResponse,
    SkippedConversation,
)

__all__ = [
    "MeResponse",
    "AttemptResponse",
    "ConnectionListResponse",
    "ConnectionStatusResponse",
    "ConnectRequest",
    "ExchangeRequest",
    "OAuthMessage",
    "PopupSpec",
    "Conversation",
    "ConversationListResponse",
    "DisplayName",
    "Mention",
    "MentionsResponse",
    "Message",
    "MessageListResponse",
    "SkippedConversation",
]
