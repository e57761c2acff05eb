"""Opener side of the popup handshake.

The opener starts an attempt, opens the popup and listens for the one
message the callback page posts back. Each attempt ends in exactly one of
succeeded, failed or abandoned, and never outlives its timeout.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from app.core.exceptions import (
    ConnectAbandonedError,
    ConnectTimeoutError,
    OAuthError,
    ProviderDeniedError,
)
from app.core.logging import get_logger
from app.core.security import states_match
from app.models.oauth import AttemptStatus

logger = get_logger(__name__)


@dataclass(frozen=True)
class WindowMessage:
    """A message event as seen by the opener window."""

    origin: str
    data: Any


Listener = Callable[[WindowMessage], None]


class MessageBus:
    """Dispatches window messages to subscribed listeners."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def post(self, message: WindowMessage) -> None:
        for listener in list(self._listeners):
            listener(message)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


class PopupWindow(Protocol):
    """The authorization popup as the opener can observe it."""

    @property
    def closed(self) -> bool: ...

    def close(self) -> None: ...


@dataclass
class ConnectOutcome:
    provider: str
    status: AttemptStatus
    error: OAuthError | None = None
    result: Any = None

    @property
    def ok(self) -> bool:
        return self.status == AttemptStatus.SUCCEEDED


# Completes the attempt server side: (code, state) -> connection status
CompleteExchange = Callable[[str, str], Awaitable[Any]]


class ConnectAttempt:
    """
    One opener-side connect attempt.

    Listens on the bus for the popup's message, scoped to the expected
    origin and this attempt's state. Messages that do not match are ignored.
    """

    def __init__(
        self,
        provider: str,
        state: str,
        expected_origin: str,
        bus: MessageBus,
        popup: PopupWindow,
        complete: CompleteExchange,
        timeout_seconds: float = 300,
        poll_interval_seconds: float = 0.5,
    ) -> None:
        self.provider = provider
        self.state = state
        self.expected_origin = expected_origin.rstrip("/")
        self.bus = bus
        self.popup = popup
        self.complete = complete
        self.timeout_seconds = timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds

    def _accepts(self, message: WindowMessage) -> bool:
        if message.origin.rstrip("/") != self.expected_origin:
            return False
        data = message.data
        if not isinstance(data, dict):
            return False
        if data.get("type") == "oauth_success":
            return states_match(data.get("state"), self.state)
        if data.get("type") == "oauth_error":
            # Error pages may not know the state; a foreign one is still rejected
            state = data.get("state")
            return state is None or states_match(state, self.state)
        return False

    async def _wait_for_message(self, received: asyncio.Future) -> dict[str, Any]:
        while not received.done():
            if self.popup.closed:
                raise ConnectAbandonedError("The authorization window was closed")
            await asyncio.wait({received}, timeout=self.poll_interval_seconds)
        result: dict[str, Any] = received.result()
        return result

    async def run(self) -> ConnectOutcome:
        """Wait for the popup's message, then complete the exchange."""
        received: asyncio.Future = asyncio.get_running_loop().create_future()

        def listener(message: WindowMessage) -> None:
            if not received.done() and self._accepts(message):
                received.set_result(message.data)

        self.bus.subscribe(listener)
        try:
            data = await asyncio.wait_for(
                self._wait_for_message(received), timeout=self.timeout_seconds
            )
        except TimeoutError:
            self.popup.close()
            logger.bind(provider=self.provider).warning("oauth_connect_timeout")
            return self._failed(ConnectTimeoutError("Connection timed out"))
        except ConnectAbandonedError as e:
            logger.bind(provider=self.provider).info("oauth_connect_abandoned")
            return ConnectOutcome(self.provider, AttemptStatus.ABANDONED, error=e)
        finally:
            self.bus.unsubscribe(listener)

        if data.get("type") == "oauth_error":
            return self._failed(ProviderDeniedError(data.get("error") or "unknown_error"))

        try:
            result = await self.complete(data["code"], data["state"])
        except OAuthError as e:
            return self._failed(e)

        logger.bind(provider=self.provider).info("oauth_connect_succeeded")
        return ConnectOutcome(self.provider, AttemptStatus.SUCCEEDED, result=result)

    def _failed(self, error: OAuthError) -> ConnectOutcome:
        logger.bind(provider=self.provider, error=error.message).warning("oauth_connect_failed")
        return ConnectOutcome(self.provider, AttemptStatus.FAILED, error=error)
