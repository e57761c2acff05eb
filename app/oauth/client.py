"""HTTP client for the backend API, and the CLI's stand-in for window messaging."""

import asyncio
import webbrowser
from urllib.parse import urlsplit

import httpx

from app.core.exceptions import (
    ConnectTimeoutError,
    OAuthError,
    ProviderNotConfiguredError,
    StateMismatchError,
    TokenExchangeError,
    UnknownProviderError,
    WorkdeckError,
)
from app.models.oauth import AttemptStatus
from app.oauth.connect import ConnectAttempt, ConnectOutcome, MessageBus, WindowMessage
from app.schemas.auth import MeResponse
from app.schemas.oauth import (
    AttemptResponse,
    ConnectionListResponse,
    ConnectionStatusResponse,
    ConnectRequest,
)
from app.schemas.slack import MentionsResponse


def origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


class DashboardClient:
    """
    Typed wrapper over the backend API.

    The caller owns the httpx client, which must carry the backend base URL
    and the `session_id` cookie.
    """

    def __init__(self, http: httpx.AsyncClient) -> None:
        self.http = http

    @property
    def origin(self) -> str:
        return origin_of(str(self.http.base_url))

    async def me(self) -> MeResponse:
        resp = await self.http.get("/api/me")
        _raise_for_status(resp)
        return MeResponse.model_validate(resp.json())

    async def start_connect(self, provider: str) -> ConnectRequest:
        resp = await self.http.get(f"/auth/{provider}/connect")
        _raise_for_status(resp, provider)
        return ConnectRequest.model_validate(resp.json())

    async def get_attempt(self, state: str) -> AttemptResponse:
        resp = await self.http.get(f"/api/connections/attempts/{state}")
        _raise_for_status(resp)
        return AttemptResponse.model_validate(resp.json())

    async def complete_exchange(
        self, provider: str, code: str, state: str
    ) -> ConnectionStatusResponse:
        resp = await self.http.post(
            f"/api/connections/{provider}/exchange",
            json={"code": code, "state": state},
        )
        _raise_for_status(resp, provider)
        return ConnectionStatusResponse.model_validate(resp.json())

    async def list_connections(self) -> list[ConnectionStatusResponse]:
        resp = await self.http.get("/api/connections")
        _raise_for_status(resp)
        return ConnectionListResponse.model_validate(resp.json()).connections

    async def disconnect(self, provider: str) -> None:
        resp = await self.http.delete(f"/api/connections/{provider}")
        _raise_for_status(resp)

    async def mentions(self) -> MentionsResponse:
        resp = await self.http.get("/api/slack/mentions")
        _raise_for_status(resp)
        return MentionsResponse.model_validate(resp.json())


def _raise_for_status(resp: httpx.Response, provider: str = "") -> None:
    """Map an API error response back onto the exception the server raised."""
    if resp.is_success:
        return

    try:
        detail = resp.json().get("detail") or resp.text
    except ValueError:
        detail = resp.text

    status = resp.status_code
    if status == 400:
        raise StateMismatchError(str(detail))
    if status == 404 and provider:
        raise UnknownProviderError(provider)
    if status == 408:
        raise ConnectTimeoutError(str(detail))
    if status == 502:
        raise TokenExchangeError(str(detail))
    if status == 503 and provider:
        raise ProviderNotConfiguredError(provider)
    if status < 500:
        raise OAuthError(f"{status}: {detail}")
    raise WorkdeckError(f"{status}: {detail}")


class BrowserPopup:
    """A popup opened in the system browser.

    The CLI cannot see the tab, so it only counts as closed once closed here
    or once the server reports the attempt was abandoned.
    """

    def __init__(self, url: str, open_browser: bool = True) -> None:
        self.url = url
        self._closed = False
        if open_browser:
            webbrowser.open(url, new=1)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True


async def relay_attempt_messages(
    client: DashboardClient,
    state: str,
    bus: MessageBus,
    popup: BrowserPopup,
    poll_interval_seconds: float = 0.5,
) -> None:
    """
    Poll the attempt and post the callback page's message onto the bus.

    Stands in for window.postMessage when the opener is not a browser.
    """
    origin = client.origin
    while True:
        attempt = await client.get_attempt(state)
        if attempt.message is not None:
            bus.post(WindowMessage(origin=origin, data=attempt.message.to_payload()))
            return
        if attempt.status == AttemptStatus.ABANDONED.value:
            popup.close()
            return
        if attempt.status == AttemptStatus.FAILED.value:
            bus.post(
                WindowMessage(
                    origin=origin,
                    data={"type": "oauth_error", "state": state, "error": attempt.error},
                )
            )
            return
        await asyncio.sleep(poll_interval_seconds)


async def complete_connect_in_browser(
    client: DashboardClient,
    request: ConnectRequest,
    popup: BrowserPopup,
    timeout_seconds: float = 300,
    poll_interval_seconds: float = 0.5,
) -> ConnectOutcome:
    """
    Run the opener side of a started attempt from outside a browser.

    The relay stands in for the popup's window message; the attempt then
    completes the exchange through the API.
    """
    bus = MessageBus()
    attempt = ConnectAttempt(
        provider=request.provider,
        state=request.state,
        expected_origin=client.origin,
        bus=bus,
        popup=popup,
        complete=lambda code, state: client.complete_exchange(request.provider, code, state),
        timeout_seconds=timeout_seconds,
        poll_interval_seconds=poll_interval_seconds,
    )
    relay = asyncio.create_task(
        relay_attempt_messages(client, request.state, bus, popup, poll_interval_seconds)
    )
    try:
        return await attempt.run()
    finally:
        relay.cancel()
