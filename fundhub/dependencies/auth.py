"""
Authentication dependencies for FastAPI routes.

Extracts user identity from the X-User-Id / X-User-Email / X-User-Name
headers set by the frontend's session layer. The identity provider itself is
authoritative and opaque; this module only maps the identity to a Profile
and checks roles.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fundhub.config import settings
from fundhub.database import get_db
from fundhub.errors import AuthenticationError, AuthorizationError, NotFoundError
from fundhub.models.database_models import Fund, FundMember, Profile, ProfileRole

logger = logging.getLogger(__name__)


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> str:
    """Extract the authenticated user ID from the request header. Raises 401 if missing."""
    if not x_user_id:
        raise AuthenticationError("Authentication required: missing X-User-Id header.")
    return x_user_id


async def get_optional_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> Optional[str]:
    """Extract user ID if present, return None for anonymous survey visitors."""
    return x_user_id or None


async def get_current_profile(
    user_id: str = Depends(get_current_user_id),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
    x_user_name: Optional[str] = Header(None, alias="X-User-Name"),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    """
    Resolve the profile of the signed-in user.

    Lookup order: profile already linked to ``user_id``; survey-only profile
    with the same email (linked on the spot); otherwise a new USER profile.
    """
    result = await db.execute(
        select(Profile).where(Profile.brand == settings.BRAND, Profile.user_id == user_id)
    )
    profile = result.scalar_one_or_none()
    if profile is not None:
        return profile

    email = (x_user_email or f"{user_id}@fundhub.local").strip().lower()

    result = await db.execute(
        select(Profile).where(Profile.brand == settings.BRAND, Profile.email == email)
    )
    profile = result.scalar_one_or_none()

    if profile is not None:
        if profile.user_id is not None:
            # Email belongs to another account
            raise AuthorizationError("This email is already linked to another account.")
        profile.user_id = user_id
        await db.flush()
        logger.info("Linked survey profile %d to user %s", profile.id, user_id)
        return profile

    profile = Profile(
        user_id=user_id,
        email=email,
        name=x_user_name or email.split("@")[0],
        role=ProfileRole.USER,
    )
    db.add(profile)
    await db.flush()
    logger.info("Created new profile: id=%d user=%s email=%s", profile.id, user_id, email)
    return profile


def is_system_admin(profile: Profile) -> bool:
    return (
        profile.role == ProfileRole.ADMIN
        and profile.email.lower() in settings.get_system_admin_emails()
    )


async def require_admin(profile: Profile = Depends(get_current_profile)) -> Profile:
    """Allow ADMIN profiles only. Raises 403 otherwise."""
    if profile.role != ProfileRole.ADMIN:
        raise AuthorizationError("Admin permission required.")
    return profile


async def require_system_admin(profile: Profile = Depends(require_admin)) -> Profile:
    """Allow admins whose email is listed in SYSTEM_ADMIN_EMAILS."""
    if not is_system_admin(profile):
        raise AuthorizationError("System admin permission required.")
    return profile


async def get_accessible_fund(
    fund_id: int,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
) -> Fund:
    """
    Return the fund if the current profile is an admin or an active member.

    Raises 404 when the fund does not exist and 403 when the profile has no
    active membership.
    """
    result = await db.execute(
        select(Fund).where(Fund.id == fund_id, Fund.brand == settings.BRAND)
    )
    fund = result.scalar_one_or_none()
    if fund is None:
        raise NotFoundError(f"Fund {fund_id} not found.")

    if profile.role == ProfileRole.ADMIN:
        return fund

    result = await db.execute(
        select(FundMember.id).where(
            FundMember.fund_id == fund_id,
            FundMember.profile_id == profile.id,
            FundMember.deleted_at.is_(None),
        )
    )
    if result.scalar_one_or_none() is None:
        raise AuthorizationError("You do not have access to this fund.")

    return fund
