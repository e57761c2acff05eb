"""Popup side of the connect handshake: verify the redirect and relay it."""

from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from app.core.exceptions import (
    MissingCodeError,
    OAuthError,
    ProviderDeniedError,
    StateMismatchError,
)
from app.core.logging import get_logger
from app.core.security import states_match
from app.schemas.oauth import OAuthMessage

logger = get_logger(__name__)

# Initialize Jinja2 environment for the callback page
template_dir = Path(__file__).parent / "templates"
jinja_env = Environment(loader=FileSystemLoader(template_dir), autoescape=True)


def handle_callback(
    code: str | None,
    state: str | None,
    original_state: str | None,
    error: str | None = None,
) -> OAuthMessage:
    """
    Validate the provider's redirect back to the callback page.

    The state is checked before anything else, so a forged redirect is
    rejected even when it carries an error or a code.

    Args:
        code: Authorization code from the query string
        state: State echoed by the provider
        original_state: State issued when the attempt started
        error: Error returned by the provider instead of a code

    Returns:
        Success message carrying the code and state

    Raises:
        StateMismatchError: State missing or different from the issued one
        ProviderDeniedError: Provider returned an error (user denied consent)
        MissingCodeError: No code in the redirect
    """
    if not states_match(state, original_state):
        raise StateMismatchError("Invalid OAuth state")
    if error:
        raise ProviderDeniedError(error)
    if not code:
        raise MissingCodeError("No authorization code received")
    return OAuthMessage(type="oauth_success", code=code, state=state)


def callback_message(
    code: str | None,
    state: str | None,
    original_state: str | None,
    error: str | None = None,
    provider: str | None = None,
) -> OAuthMessage:
    """Like handle_callback, with failures turned into an error message.

    Error messages carry the state only once it has been verified, so
    openers can tell which attempt failed.
    """
    try:
        return handle_callback(code, state, original_state, error)
    except OAuthError as e:
        logger.bind(provider=provider, error=e.message).warning(
            f"oauth_callback_{_event_suffix(e)}"
        )
        verified_state = None if isinstance(e, StateMismatchError) else original_state
        return OAuthMessage(type="oauth_error", state=verified_state, error=e.message)


def _event_suffix(exc: OAuthError) -> str:
    if isinstance(exc, StateMismatchError):
        return "state_mismatch"
    if isinstance(exc, ProviderDeniedError):
        return "denied"
    return "missing_code"


def render_callback_page(message: OAuthMessage, target_origin: str, provider: str) -> str:
    """Render the page that posts the message to the opener and closes itself."""
    template = jinja_env.get_template("callback.html")
    return template.render(
        payload=message.to_payload(),
        target_origin=target_origin,
        provider=provider,
        ok=message.ok,
        error=message.error,
    )
