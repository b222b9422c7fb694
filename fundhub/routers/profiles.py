"""
Profile endpoints for the signed-in user.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fundhub.database import get_db
from fundhub.dependencies.auth import get_current_profile, get_current_user_id
from fundhub.models.database_models import Profile
from fundhub.models.schemas import LinkUserRequest, ProfileResponse
from fundhub.services import membership

router = APIRouter()


@router.get("/me", response_model=ProfileResponse)
async def get_me(profile: Profile = Depends(get_current_profile)) -> ProfileResponse:
    return ProfileResponse.model_validate(profile)


@router.post("/link-user", response_model=ProfileResponse)
async def link_user(
    body: LinkUserRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    """Claim a survey-only profile for the signed-in account."""
    profile = await membership.link_user(db, user_id, body.profile_id)
    return ProfileResponse.model_validate(profile)
