"""
Fund membership and onboarding.

Survey submissions upsert a profile by email and a membership by
(fund, profile). Anonymous visitors get survey-only profiles
(``user_id`` NULL) that are linked once a matching account signs in.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Dict, Iterable, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fundhub.config import settings
from fundhub.errors import ConflictError, NotFoundError, ValidationError
from fundhub.models.database_models import (
    EntityType,
    Fund,
    FundMember,
    FundStatus,
    Profile,
    utcnow,
)
from fundhub.models.schemas import FundMemberResponse, FundResponse, SurveyData

logger = logging.getLogger(__name__)

OPEN_FOR_APPLICATION = (FundStatus.READY, FundStatus.PROCESSING)


@dataclasses.dataclass
class ApplicationResult:
    profile: Profile
    member: FundMember
    is_new: bool
    units_changed: bool


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_fund(db: AsyncSession, fund_id: int) -> Fund:
    result = await db.execute(select(Fund).where(Fund.id == fund_id, Fund.brand == settings.BRAND))
    fund = result.scalar_one_or_none()
    if fund is None:
        raise NotFoundError(f"Fund {fund_id} not found.")
    return fund


async def get_profile(db: AsyncSession, profile_id: int) -> Profile:
    result = await db.execute(
        select(Profile).where(Profile.id == profile_id, Profile.brand == settings.BRAND)
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFoundError(f"Profile {profile_id} not found.")
    return profile


async def get_membership(
    db: AsyncSession,
    fund_id: int,
    profile_id: int,
    include_deleted: bool = False,
) -> Optional[FundMember]:
    stmt = select(FundMember).where(
        FundMember.fund_id == fund_id,
        FundMember.profile_id == profile_id,
        FundMember.brand == settings.BRAND,
    )
    if not include_deleted:
        stmt = stmt.where(FundMember.deleted_at.is_(None))
    return (await db.execute(stmt)).scalar_one_or_none()


async def fund_stats(db: AsyncSession, fund_ids: Iterable[int]) -> Dict[int, Tuple[int, int]]:
    """Active member count and committed units per fund."""
    fund_ids = list(fund_ids)
    if not fund_ids:
        return {}
    result = await db.execute(
        select(
            FundMember.fund_id,
            func.count(FundMember.id).label("cnt"),
            func.coalesce(func.sum(FundMember.total_units), 0).label("units"),
        )
        .where(FundMember.fund_id.in_(fund_ids), FundMember.deleted_at.is_(None))
        .group_by(FundMember.fund_id)
    )
    return {row.fund_id: (row.cnt, int(row.units)) for row in result}


def fund_response(fund: Fund, stats: Optional[Tuple[int, int]] = None) -> FundResponse:
    count, units = stats or (0, 0)
    response = FundResponse.model_validate(fund)
    response.member_count = count
    response.total_units = units
    return response


def member_response(member: FundMember, fund: Fund) -> FundMemberResponse:
    profile = member.profile
    return FundMemberResponse(
        id=member.id,
        fund_id=member.fund_id,
        profile_id=member.profile_id,
        name=profile.name,
        email=profile.email,
        entity_type=profile.entity_type,
        role=profile.role,
        is_gp=member.profile_id in (fund.gp_id or []),
        investment_units=member.investment_units,
        total_units=member.total_units,
        deleted_at=member.deleted_at,
        created_at=member.created_at,
    )


# ---------------------------------------------------------------------------
# Survey
# ---------------------------------------------------------------------------

def _apply_survey(profile: Profile, survey: SurveyData) -> None:
    profile.name = survey.name
    profile.phone = survey.phone
    profile.email = survey.email.lower()
    profile.address = survey.address
    profile.entity_type = survey.entity_type
    individual = survey.entity_type == EntityType.INDIVIDUAL
    profile.birth_date = survey.birth_date if individual else None
    profile.business_number = None if individual else survey.business_number
    profile.ceo = None if individual else survey.ceo


async def _profile_by_email(db: AsyncSession, email: str) -> Optional[Profile]:
    result = await db.execute(
        select(Profile).where(Profile.brand == settings.BRAND, Profile.email == email.lower())
    )
    return result.scalar_one_or_none()


async def submit_application(
    db: AsyncSession,
    fund_id: int,
    survey: SurveyData,
    user_id: Optional[str] = None,
) -> ApplicationResult:
    """
    Record a commitment from the public survey.

    Raises:
        NotFoundError: unknown fund.
        ValidationError: fund closed for applications, units below the
            minimum, or an anonymous submission for a registered email.
    """
    fund = await get_fund(db, fund_id)
    if fund.status not in OPEN_FOR_APPLICATION:
        raise ValidationError("This fund is not accepting applications.")
    if survey.investment_units < fund.min_units:
        raise ValidationError(f"At least {fund.min_units} unit(s) must be committed.")

    email = survey.email.lower()
    by_email = await _profile_by_email(db, email)

    if user_id:
        result = await db.execute(
            select(Profile).where(Profile.brand == settings.BRAND, Profile.user_id == user_id)
        )
        profile = result.scalar_one_or_none()
        if profile is None and by_email is not None and by_email.user_id is None:
            profile = by_email
            profile.user_id = user_id
        elif by_email is not None and (profile is None or by_email.id != profile.id):
            raise ValidationError("This email is already used by another profile.")
    else:
        if by_email is not None and by_email.user_id is not None:
            raise ValidationError("This email is already registered. Please sign in and try again.")
        profile = by_email

    if profile is None:
        profile = Profile(user_id=user_id, email=email, name=survey.name)
        db.add(profile)
    _apply_survey(profile, survey)
    await db.flush()

    member = await get_membership(db, fund.id, profile.id, include_deleted=True)
    is_new = member is None or member.deleted_at is not None
    units_changed = member is not None and member.total_units != survey.investment_units

    if member is None:
        # Paid-in units are recorded later by an admin
        member = FundMember(
            fund_id=fund.id,
            profile=profile,
            investment_units=0,
            total_units=survey.investment_units,
        )
        db.add(member)
    else:
        member.total_units = survey.investment_units
        member.deleted_at = None
    await db.flush()

    logger.info(
        "Application for fund %d by profile %d (%s, %d units)",
        fund.id, profile.id, "new" if is_new else "update", survey.investment_units,
    )
    return ApplicationResult(profile=profile, member=member, is_new=is_new, units_changed=units_changed)


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

async def link_user(db: AsyncSession, user_id: str, profile_id: int) -> Profile:
    """
    Attach a survey-only profile to ``user_id``.

    Raises:
        ConflictError: the profile belongs to another user, or the user
            already owns a different profile.
    """
    profile = await get_profile(db, profile_id)
    if profile.user_id == user_id:
        return profile
    if profile.user_id is not None:
        raise ConflictError("This profile is already linked to another account.")

    result = await db.execute(
        select(Profile.id).where(Profile.brand == settings.BRAND, Profile.user_id == user_id)
    )
    if result.scalar_one_or_none() is not None:
        raise ConflictError("This account already has a profile.")

    profile.user_id = user_id
    profile.updated_at = utcnow()
    await db.flush()
    logger.info("Linked profile %d to user %s", profile.id, user_id)
    return profile
