from app.oauth.connect import ConnectAttempt, ConnectOutcome, MessageBus, WindowMessage
from app.oauth.exchange import TokenGrant, exchange_code_for_token
from app.oauth.handshake import callback_message, handle_callback
from app.oauth.providers import PROVIDERS, build_authorize_url, initiate_connect

__all__ = [
    "PROVIDERS",
    "build_authorize_url",
    "initiate_connect",
    "handle_callback",
    "callback_message",
    "TokenGrant",
    "exchange_code_for_token",
    "ConnectAttempt",
    "ConnectOutcome",
    "MessageBus",
    "WindowMessage",
]
