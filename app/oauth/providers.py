"""Provider table and authorize-URL construction for the popup connect flow."""

from dataclasses import dataclass, field
from urllib.parse import urlencode

from app.config import AppConfig, Settings
from app.core.datetime_utils import get_expiry
from app.core.exceptions import ProviderNotConfiguredError, UnknownProviderError
from app.core.logging import get_logger
from app.core.security import generate_state
from app.schemas.oauth import ConnectRequest, PopupSpec

logger = get_logger(__name__)

ATLASSIAN_RESOURCES_URL = "https://api.atlassian.com/oauth/token/accessible-resources"


@dataclass(frozen=True)
class ProviderSpec:
    """Static description of one OAuth provider."""

    name: str
    authorize_url: str
    token_url: str
    scopes: tuple[str, ...]
    scope_param: str = "scope"
    scope_separator: str = " "
    extra_params: dict[str, str] = field(default_factory=dict)
    token_request_json: bool = False

    def client_credentials(self, settings: Settings) -> tuple[str, str]:
        """Client id and secret for this provider from settings."""
        client_id = getattr(settings, f"{self.name}_client_id", "")
        client_secret = getattr(settings, f"{self.name}_client_secret", "")
        return client_id, client_secret

    def is_configured(self, settings: Settings) -> bool:
        client_id, client_secret = self.client_credentials(settings)
        return bool(client_id and client_secret)


PROVIDERS: dict[str, ProviderSpec] = {
    "slack": ProviderSpec(
        name="slack",
        authorize_url="https://slack.com/oauth/v2/authorize",
        token_url="https://slack.com/api/oauth.v2.access",
        scopes=(
            "channels:history",
            "channels:read",
            "groups:history",
            "groups:read",
            "im:history",
            "mpim:history",
            "users:read",
        ),
        # User token: the harvest reads conversations as the user
        scope_param="user_scope",
        scope_separator=",",
    ),
    "jira": ProviderSpec(
        name="jira",
        authorize_url="https://auth.atlassian.com/authorize",
        token_url="https://auth.atlassian.com/oauth/token",
        scopes=("read:jira-work", "read:jira-user", "offline_access"),
        extra_params={"audience": "api.atlassian.com", "prompt": "consent"},
        token_request_json=True,
    ),
    "google": ProviderSpec(
        name="google",
        authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        scopes=(
            "https://www.googleapis.com/auth/calendar.readonly",
            "openid",
            "email",
        ),
        extra_params={
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
        },
    ),
}


def get_provider(name: str, config: AppConfig | None = None) -> ProviderSpec:
    """Look up a provider by id, honouring the enable flag in config.yml."""
    spec = PROVIDERS.get(name)
    if spec is None or (config is not None and not config.provider(name).enabled):
        raise UnknownProviderError(name)
    return spec


def resolve_scopes(spec: ProviderSpec, config: AppConfig | None = None) -> list[str]:
    """Scopes to request: config.yml override, else the provider defaults."""
    if config is not None:
        override = config.provider(spec.name).scopes
        if override:
            return list(override)
    return list(spec.scopes)


def build_authorize_url(
    spec: ProviderSpec,
    settings: Settings,
    state: str,
    scopes: list[str] | None = None,
) -> str:
    """
    Build the provider's authorization URL.

    Args:
        spec: Provider to authorize against
        settings: Application settings (client id and base URL)
        state: Opaque CSRF state for this attempt
        scopes: Scopes to request, defaults to the provider's

    Returns:
        Authorization URL for the popup
    """
    client_id, _ = spec.client_credentials(settings)
    params = {
        "client_id": client_id,
        spec.scope_param: spec.scope_separator.join(scopes or spec.scopes),
        "redirect_uri": settings.redirect_uri(spec.name),
        "response_type": "code",
        "state": state,
        **spec.extra_params,
    }
    return f"{spec.authorize_url}?{urlencode(params)}"


def initiate_connect(provider: str, settings: Settings, config: AppConfig) -> ConnectRequest:
    """
    Prepare one connect attempt for a provider.

    Generates a fresh state and the authorize URL. The caller persists the
    attempt and opens the popup.

    Raises:
        UnknownProviderError: Provider id is not in the table or disabled
        ProviderNotConfiguredError: Client id or secret is unset
    """
    spec = get_provider(provider, config)
    if not spec.is_configured(settings):
        logger.bind(provider=provider).warning("oauth_provider_not_configured")
        raise ProviderNotConfiguredError(provider)

    state = generate_state()
    authorize_url = build_authorize_url(spec, settings, state, resolve_scopes(spec, config))

    return ConnectRequest(
        provider=provider,
        state=state,
        authorize_url=authorize_url,
        expires_at=get_expiry(seconds=config.connect.timeout_seconds),
        popup=PopupSpec(
            name=f"oauth_{provider}",
            width=config.connect.popup_width,
            height=config.connect.popup_height,
        ),
    )
