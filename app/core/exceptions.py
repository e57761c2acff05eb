"""Error taxonomy for the connect flow and mention harvesting.

Each class carries the HTTP status the API layer reports it with.
"""


class WorkdeckError(Exception):
    """Base class for all application errors."""

    status_code: int = 500

    def __init__(self, message: str = "", **context) -> None:
        super().__init__(message or self.__class__.__doc__ or self.__class__.__name__)
        self.message = str(self.args[0])
        self.context = context


# OAuth


class OAuthError(WorkdeckError):
    """OAuth connect flow failed."""

    status_code = 400


class UnknownProviderError(OAuthError):
    """Unknown provider."""

    status_code = 404

    def __init__(self, provider: str) -> None:
        super().__init__(f"Unknown provider: {provider}", provider=provider)
        self.provider = provider


class ProviderNotConfiguredError(OAuthError):
    """Provider is not configured."""

    status_code = 503

    def __init__(self, provider: str) -> None:
        super().__init__(f"{provider} OAuth is not configured", provider=provider)
        self.provider = provider


class StateMismatchError(OAuthError):
    """Invalid OAuth state."""

    status_code = 400


class MissingCodeError(OAuthError):
    """No authorization code was returned."""

    status_code = 400


class ProviderDeniedError(MissingCodeError):
    """The provider returned an error instead of a code."""

    def __init__(self, error: str) -> None:
        super().__init__(error, error=error)
        self.error = error


class TokenExchangeError(OAuthError):
    """Token exchange failed."""

    status_code = 502


class ConnectTimeoutError(OAuthError, TimeoutError):
    """Connection timed out."""

    status_code = 408


class ConnectAbandonedError(OAuthError):
    """The authorization window was closed."""

    status_code = 409


# Harvesting


class HarvestError(WorkdeckError):
    """Mention harvesting failed."""

    status_code = 502


class SlackAPIError(HarvestError):
    """Slack API returned an error."""

    def __init__(self, method: str, error: str) -> None:
        super().__init__(f"Slack {method} failed: {error}", method=method, error=error)
        self.method = method
        self.error = error


class PartialFetchError(HarvestError):
    """One conversation could not be fetched."""

    def __init__(self, conversation_id: str, cause: BaseException) -> None:
        super().__init__(
            f"Failed to fetch {conversation_id}: {cause}",
            conversation_id=conversation_id,
        )
        self.conversation_id = conversation_id
        self.cause = cause
