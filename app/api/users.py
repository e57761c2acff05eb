from fastapi import APIRouter

from app.dependencies import CurrentUserOptional
from app.mentions.names import resolve_display_name
from app.schemas.auth import MeResponse

router = APIRouter()


@router.get("/me", response_model=MeResponse)
async def get_current_user_info(
    user: CurrentUserOptional,
) -> MeResponse:
    """
    Get current user information.

    Returns authed=false if not logged in, otherwise the user's details and
    the name Slack mentions are matched against.
    """
    if not user:
        return MeResponse(authed=False)

    return MeResponse(
        authed=True,
        email=user.email,
        full_name=user.full_name,
        first_name=user.first_name,
        last_name=user.last_name,
        mention_name=resolve_display_name(user),
    )
