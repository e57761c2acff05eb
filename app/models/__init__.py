from app.models.base import Base
from app.models.oauth import AttemptStatus, OAuthAttempt, OAuthToken
from app.models.user import Session, User

__all__ = [
    "Base",
    "User",
    "Session",
    "OAuthToken",
    "OAuthAttempt",
    "AttemptStatus",
]
