"""Server-side authorization code exchange."""

import base64
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from app.config import Settings
from app.core.datetime_utils import expiry_from_seconds
from app.core.exceptions import TokenExchangeError
from app.core.logging import get_logger
from app.oauth.providers import ATLASSIAN_RESOURCES_URL, ProviderSpec

logger = get_logger(__name__)


@dataclass
class TokenGrant:
    """Provider token response mapped onto the stored token fields."""

    access_token: str
    team_or_site_id: str
    scope: str = ""
    refresh_token: str | None = None
    expires_at: datetime | None = None
    team_or_site_name: str | None = None
    provider_user_id: str | None = None
    site_url: str | None = None


async def exchange_code_for_token(
    spec: ProviderSpec,
    code: str,
    redirect_uri: str,
    http: httpx.AsyncClient,
    settings: Settings,
) -> TokenGrant:
    """
    Exchange an authorization code for the provider's tokens.

    Args:
        spec: Provider the code was issued by
        code: Authorization code relayed by the popup
        redirect_uri: Must match the redirect_uri used in authorize
        http: HTTP client for provider calls
        settings: Application settings (client credentials)

    Returns:
        TokenGrant for storage

    Raises:
        TokenExchangeError: Transport failure, non-2xx response or a provider error
    """
    client_id, client_secret = spec.client_credentials(settings)
    body = {
        "client_id": client_id,
        "client_secret": client_secret,
        "code": code,
        "grant_type": "authorization_code",
        "redirect_uri": redirect_uri,
    }

    data = await _post_token_request(spec, body, http)

    if spec.name == "slack":
        grant = _slack_grant(data)
    elif spec.name == "jira":
        grant = await _jira_grant(data, http)
    else:
        grant = _google_grant(data)

    logger.bind(provider=spec.name, team_or_site_id=grant.team_or_site_id).info(
        "oauth_token_exchanged"
    )
    return grant


async def _post_token_request(
    spec: ProviderSpec, body: dict[str, str], http: httpx.AsyncClient
) -> dict[str, Any]:
    try:
        if spec.token_request_json:
            resp = await http.post(spec.token_url, json=body)
        else:
            resp = await http.post(spec.token_url, data=body)
    except httpx.HTTPError as e:
        logger.bind(provider=spec.name, error=str(e)).error("oauth_token_request_error")
        raise TokenExchangeError(f"Could not reach {spec.name}: {e}") from e

    try:
        data: dict[str, Any] = resp.json()
    except ValueError as e:
        logger.bind(provider=spec.name, status=resp.status_code).error("oauth_token_bad_response")
        raise TokenExchangeError(
            f"{spec.name} returned an unreadable token response ({resp.status_code})"
        ) from e

    if resp.status_code >= 400 or data.get("error") or data.get("ok") is False:
        error = data.get("error_description") or data.get("error") or f"HTTP {resp.status_code}"
        logger.bind(provider=spec.name, status=resp.status_code, error=error).error(
            "oauth_token_exchange_failed"
        )
        raise TokenExchangeError(f"{spec.name} token exchange failed: {error}")

    return data


def _slack_grant(data: dict[str, Any]) -> TokenGrant:
    team = data.get("team") or {}
    authed_user = data.get("authed_user") or {}

    # User-scope installs carry the token on authed_user only
    access_token = authed_user.get("access_token") or data.get("access_token")
    if not access_token or not team.get("id"):
        raise TokenExchangeError("slack token response is missing the token or team")

    return TokenGrant(
        access_token=access_token,
        refresh_token=authed_user.get("refresh_token") or data.get("refresh_token"),
        scope=authed_user.get("scope") or data.get("scope", ""),
        expires_at=expiry_from_seconds(authed_user.get("expires_in") or data.get("expires_in")),
        team_or_site_id=team["id"],
        team_or_site_name=team.get("name"),
        provider_user_id=authed_user.get("id"),
    )


async def _jira_grant(data: dict[str, Any], http: httpx.AsyncClient) -> TokenGrant:
    access_token = data.get("access_token")
    if not access_token:
        raise TokenExchangeError("jira token response is missing the access token")

    try:
        resp = await http.get(
            ATLASSIAN_RESOURCES_URL,
            headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
        )
        resp.raise_for_status()
        resources = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.bind(error=str(e)).error("jira_accessible_resources_error")
        raise TokenExchangeError(f"Could not list Jira sites: {e}") from e

    if not resources:
        raise TokenExchangeError("No accessible Jira sites for this account")

    site = resources[0]
    return TokenGrant(
        access_token=access_token,
        refresh_token=data.get("refresh_token"),
        scope=data.get("scope", ""),
        expires_at=expiry_from_seconds(data.get("expires_in")),
        team_or_site_id=site["id"],
        team_or_site_name=site.get("name"),
        site_url=site.get("url"),
    )


def _google_grant(data: dict[str, Any]) -> TokenGrant:
    access_token = data.get("access_token")
    if not access_token:
        raise TokenExchangeError("google token response is missing the access token")

    claims = _id_token_claims(data.get("id_token"))
    return TokenGrant(
        access_token=access_token,
        refresh_token=data.get("refresh_token"),
        scope=data.get("scope", ""),
        expires_at=expiry_from_seconds(data.get("expires_in")),
        team_or_site_id=claims.get("sub") or "google",
        team_or_site_name=claims.get("email"),
        provider_user_id=claims.get("sub"),
    )


def _id_token_claims(id_token: str | None) -> dict[str, Any]:
    """Read the claims of an id_token received directly from the token endpoint.

    The token came over TLS from the issuer, so the signature is not checked.
    """
    if not id_token:
        return {}
    try:
        payload = id_token.split(".")[1]
        payload += "=" * (-len(payload) % 4)
        claims: dict[str, Any] = json.loads(base64.urlsafe_b64decode(payload))
        return claims
    except (IndexError, ValueError) as e:
        logger.bind(error=str(e)).warning("google_id_token_unreadable")
        return {}
