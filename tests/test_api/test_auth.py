"""Tests for the popup-facing OAuth endpoints."""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.config import get_settings
from app.main import app
from app.models.oauth import AttemptStatus, OAuthAttempt

pytestmark = pytest.mark.asyncio


def _no_provider_calls(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"Unexpected provider call to {request.url}")


class TestConnect:
    """Tests for GET /auth/{provider}/connect."""

    async def test_connect_requires_auth(self, client: AsyncClient):
        """Should reject anonymous callers."""
        response = await client.get("/auth/slack/connect")

        assert response.status_code == 401

    async def test_connect_returns_authorize_url(self, authed_client: AsyncClient):
        """Should return a ConnectRequest with a Slack authorize URL."""
        response = await authed_client.get("/auth/slack/connect")

        assert response.status_code == 200
        data = response.json()
        assert data["provider"] == "slack"
        assert len(data["state"]) >= 43
        assert data["popup"] == {"name": "oauth_slack", "width": 600, "height": 700}

        url = urlparse(data["authorize_url"])
        params = parse_qs(url.query)
        assert f"{url.scheme}://{url.netloc}{url.path}" == "https://slack.com/oauth/v2/authorize"
        assert params["client_id"] == ["slack-client-id"]
        assert params["state"] == [data["state"]]
        assert params["redirect_uri"] == ["http://localhost:8000/auth/slack/callback"]
        assert params["response_type"] == ["code"]
        assert "channels:history" in params["user_scope"][0]

    async def test_connect_persists_attempt(self, authed_client: AsyncClient, jane, db_session):
        """Should store an attempt awaiting its redirect."""
        response = await authed_client.get("/auth/jira/connect")
        state = response.json()["state"]

        result = await db_session.execute(select(OAuthAttempt).where(OAuthAttempt.state == state))
        attempt = result.scalar_one()
        assert attempt.user_id == jane.id
        assert attempt.provider == "jira"
        assert attempt.status == AttemptStatus.AWAITING_REDIRECT.value

    async def test_connect_states_are_unique(self, authed_client: AsyncClient):
        """Should issue a fresh state per attempt."""
        states = set()
        for _ in range(5):
            response = await authed_client.get("/auth/google/connect")
            states.add(response.json()["state"])

        assert len(states) == 5

    async def test_unknown_provider(self, authed_client: AsyncClient):
        """Should return 404 for providers outside the table."""
        response = await authed_client.get("/auth/github/connect")

        assert response.status_code == 404
        assert "github" in response.json()["detail"]

    async def test_provider_not_configured(self, authed_client: AsyncClient, test_settings):
        """Should return 503 when client credentials are missing."""
        unconfigured = test_settings.model_copy(update={"slack_client_secret": ""})
        app.dependency_overrides[get_settings] = lambda: unconfigured

        response = await authed_client.get("/auth/slack/connect")

        assert response.status_code == 503
        assert "not configured" in response.json()["detail"]


class TestCallback:
    """Tests for GET /auth/{provider}/callback."""

    async def test_success_relays_code(
        self, authed_client: AsyncClient, jane, attempt_factory, provider_http
    ):
        """Should post oauth_success to the opener without exchanging the code."""
        seen = provider_http(_no_provider_calls)
        attempt = await attempt_factory(jane, provider="slack")

        response = await authed_client.get(
            "/auth/slack/callback", params={"code": "abc123", "state": attempt.state}
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert '"type": "oauth_success"' in response.text
        assert '"code": "abc123"' in response.text
        assert '"http://localhost:5173"' in response.text
        assert attempt.status == AttemptStatus.REDIRECTED.value
        assert attempt.relayed_message == {
            "type": "oauth_success",
            "code": "abc123",
            "state": attempt.state,
        }
        assert seen == []

    async def test_state_mismatch_leaves_attempt(
        self, authed_client: AsyncClient, jane, attempt_factory, provider_http
    ):
        """Should post oauth_error, leave the real attempt alone and never exchange."""
        seen = provider_http(_no_provider_calls)
        attempt = await attempt_factory(jane, provider="slack")

        response = await authed_client.get(
            "/auth/slack/callback", params={"code": "abc123", "state": "forged-state"}
        )

        assert response.status_code == 400
        assert '"type": "oauth_error"' in response.text
        assert "abc123" not in response.text
        assert "forged-state" not in response.text
        assert attempt.status == AttemptStatus.AWAITING_REDIRECT.value
        assert attempt.completed_at is None
        assert attempt.relayed_message is None
        assert seen == []

    async def test_provider_denied(self, authed_client: AsyncClient, jane, attempt_factory):
        """Should fail the attempt when the user denies consent."""
        attempt = await attempt_factory(jane, provider="jira")

        response = await authed_client.get(
            "/auth/jira/callback", params={"error": "access_denied", "state": attempt.state}
        )

        assert response.status_code == 400
        assert "access_denied" in response.text
        assert attempt.status == AttemptStatus.FAILED.value
        assert attempt.error == "access_denied"
        assert attempt.relayed_message == {
            "type": "oauth_error",
            "error": "access_denied",
            "state": attempt.state,
        }

    async def test_missing_code(self, authed_client: AsyncClient, jane, attempt_factory):
        """Should fail the attempt when no code comes back."""
        attempt = await attempt_factory(jane, provider="google")

        response = await authed_client.get(
            "/auth/google/callback", params={"state": attempt.state}
        )

        assert response.status_code == 400
        assert '"type": "oauth_error"' in response.text
        assert attempt.status == AttemptStatus.FAILED.value

    async def test_expired_attempt(self, authed_client: AsyncClient, jane, attempt_factory):
        """Should reject a redirect that arrives after the attempt timed out."""
        attempt = await attempt_factory(jane, provider="slack", expired=True)

        response = await authed_client.get(
            "/auth/slack/callback", params={"code": "abc123", "state": attempt.state}
        )

        assert response.status_code == 400
        assert '"type": "oauth_error"' in response.text
        assert attempt.status == AttemptStatus.FAILED.value
        assert attempt.error == "Connection timed out"

    async def test_callback_without_session_relays_code(
        self, client: AsyncClient, jane, attempt_factory, provider_http
    ):
        """Should find the attempt by state when the popup carries no cookie."""
        seen = provider_http(_no_provider_calls)
        attempt = await attempt_factory(jane, provider="slack")
        assert "session_id" not in client.cookies

        response = await client.get(
            "/auth/slack/callback", params={"code": "abc123", "state": attempt.state}
        )

        assert response.status_code == 200
        assert '"type": "oauth_success"' in response.text
        assert attempt.status == AttemptStatus.REDIRECTED.value
        assert attempt.relayed_message["code"] == "abc123"
        assert seen == []

    async def test_callback_without_session_unknown_state(self, client: AsyncClient):
        """Should report an error for a state that names no attempt."""
        response = await client.get(
            "/auth/slack/callback", params={"code": "abc123", "state": "some-state"}
        )

        assert response.status_code == 400
        assert '"type": "oauth_error"' in response.text

    async def test_first_of_two_attempts(self, authed_client: AsyncClient, db_session):
        """Should complete the first attempt and leave a later one untouched."""
        first = (await authed_client.get("/auth/slack/connect")).json()["state"]
        second = (await authed_client.get("/auth/slack/connect")).json()["state"]

        response = await authed_client.get(
            "/auth/slack/callback", params={"code": "abc123", "state": first}
        )

        assert response.status_code == 200
        rows = await db_session.execute(
            select(OAuthAttempt).where(OAuthAttempt.state.in_([first, second]))
        )
        attempts = {a.state: a for a in rows.scalars()}
        assert attempts[first].status == AttemptStatus.REDIRECTED.value
        assert attempts[first].relayed_message["state"] == first
        assert attempts[second].status == AttemptStatus.AWAITING_REDIRECT.value
        assert attempts[second].error is None
        assert attempts[second].relayed_message is None

    async def test_state_for_other_provider(
        self, authed_client: AsyncClient, jane, attempt_factory
    ):
        """Should not touch an attempt started for a different provider."""
        attempt = await attempt_factory(jane, provider="jira")

        response = await authed_client.get(
            "/auth/slack/callback", params={"code": "abc123", "state": attempt.state}
        )

        assert response.status_code == 400
        assert attempt.status == AttemptStatus.AWAITING_REDIRECT.value
        assert attempt.relayed_message is None

    async def test_state_for_other_user(
        self, authed_client: AsyncClient, user_factory, attempt_factory
    ):
        """Should not touch another user's attempt when a session is present."""
        bob = await user_factory(email="bob@example.com")
        attempt = await attempt_factory(bob, provider="slack")

        response = await authed_client.get(
            "/auth/slack/callback", params={"code": "abc123", "state": attempt.state}
        )

        assert response.status_code == 400
        assert attempt.status == AttemptStatus.AWAITING_REDIRECT.value
        assert attempt.relayed_message is None

    async def test_second_redirect_for_same_attempt(
        self, authed_client: AsyncClient, jane, attempt_factory
    ):
        """Should keep the first relayed message when the redirect repeats."""
        attempt = await attempt_factory(jane, provider="slack")
        params = {"code": "abc123", "state": attempt.state}
        await authed_client.get("/auth/slack/callback", params=params)

        response = await authed_client.get(
            "/auth/slack/callback", params={"code": "other", "state": attempt.state}
        )

        assert response.status_code == 400
        assert "Connect attempt was already used" in response.text
        assert attempt.status == AttemptStatus.REDIRECTED.value
        assert attempt.relayed_message["code"] == "abc123"
