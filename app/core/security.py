import hmac
import secrets

from app.core.datetime_utils import get_expiry, is_expired

# Bytes of entropy in an OAuth state value (renders as 43 url-safe characters)
STATE_BYTES = 32


def generate_state() -> str:
    """Generate an opaque, single-use OAuth state value."""
    return secrets.token_urlsafe(STATE_BYTES)


def states_match(received: str | None, expected: str | None) -> bool:
    """Constant-time comparison of a returned state against the issued one."""
    if not received or not expected:
        return False
    return hmac.compare_digest(received.encode(), expected.encode())


def get_session_expiry():
    """Get expiry time for sessions (30 days from now)."""
    return get_expiry(days=30)


# Re-export is_expired from datetime_utils for backwards compatibility
__all__ = ["is_expired"]
