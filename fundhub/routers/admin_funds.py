"""
Admin fund and member management.

Route summary
-------------
GET    /api/admin/funds                                 — list funds
POST   /api/admin/funds                                 — create fund
GET    /api/admin/funds/{fund_id}                       — fund detail
PUT    /api/admin/funds/{fund_id}                       — update fund (any status)

GET    /api/admin/funds/{fund_id}/members               — list members
POST   /api/admin/funds/{fund_id}/members               — add member
PUT    /api/admin/funds/{fund_id}/members/{profile_id}  — update units
DELETE /api/admin/funds/{fund_id}/members/{profile_id}  — soft / hard delete
POST   /api/admin/funds/{fund_id}/members/email/send    — email members

GET    /api/admin/profiles                              — list / search profiles
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from fundhub.config import settings
from fundhub.database import get_db
from fundhub.dependencies.auth import is_system_admin, require_admin
from fundhub.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from fundhub.models.database_models import Fund, FundMember, Profile, utcnow
from fundhub.models.schemas import (
    FundCreateRequest,
    FundMemberCreateRequest,
    FundMemberResponse,
    FundMemberUpdateRequest,
    FundResponse,
    FundUpdateRequest,
    MemberDeleteResponse,
    MemberEmailRequest,
    MemberEmailResponse,
    MemberEmailResult,
    ProfileResponse,
)
from fundhub.services import membership, notifications
from fundhub.services.email_sender import EmailSender, get_email_sender

logger = logging.getLogger(__name__)

router = APIRouter()


# ═══════════════════════════════════════════════════════════════════════════════
# FUNDS
# ═══════════════════════════════════════════════════════════════════════════════

@router.get("/funds", response_model=List[FundResponse])
async def list_funds(
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> List[FundResponse]:
    """All funds of the brand, newest first."""
    result = await db.execute(
        select(Fund).where(Fund.brand == settings.BRAND).order_by(Fund.created_at.desc(), Fund.id.desc())
    )
    funds = result.scalars().all()
    stats = await membership.fund_stats(db, [f.id for f in funds])
    return [membership.fund_response(f, stats.get(f.id)) for f in funds]


@router.post("/funds", response_model=FundResponse, status_code=status.HTTP_201_CREATED)
async def create_fund(
    body: FundCreateRequest,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> FundResponse:
    fund = Fund(**body.model_dump())
    db.add(fund)
    await db.flush()
    logger.info("Created fund id=%d name=%r by %s", fund.id, fund.name, admin.email)
    return membership.fund_response(fund)


@router.get("/funds/{fund_id}", response_model=FundResponse)
async def get_fund(
    fund_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> FundResponse:
    fund = await membership.get_fund(db, fund_id)
    stats = await membership.fund_stats(db, [fund.id])
    return membership.fund_response(fund, stats.get(fund.id))


@router.put("/funds/{fund_id}", response_model=FundResponse)
async def update_fund(
    fund_id: int,
    body: FundUpdateRequest,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> FundResponse:
    """
    Partial update. Status is not validated as a state machine: any value
    may be set.
    """
    fund = await membership.get_fund(db, fund_id)
    for field, value in body.model_dump(exclude_unset=True).items():
        if field == "gp_id" and value is None:
            value = []
        setattr(fund, field, value)
    await db.flush()

    logger.info("Updated fund id=%d by %s", fund.id, admin.email)
    stats = await membership.fund_stats(db, [fund.id])
    return membership.fund_response(fund, stats.get(fund.id))


# ═══════════════════════════════════════════════════════════════════════════════
# MEMBERS
# ═══════════════════════════════════════════════════════════════════════════════

@router.get("/funds/{fund_id}/members", response_model=List[FundMemberResponse])
async def list_members(
    fund_id: int,
    include_deleted: bool = Query(False),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> List[FundMemberResponse]:
    fund = await membership.get_fund(db, fund_id)
    stmt = select(FundMember).where(FundMember.fund_id == fund.id, FundMember.brand == settings.BRAND)
    if not include_deleted:
        stmt = stmt.where(FundMember.deleted_at.is_(None))
    result = await db.execute(stmt.order_by(FundMember.created_at, FundMember.id))
    return [membership.member_response(m, fund) for m in result.scalars().all()]


@router.post(
    "/funds/{fund_id}/members",
    response_model=FundMemberResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_member(
    fund_id: int,
    body: FundMemberCreateRequest,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> FundMemberResponse:
    """Add a profile to the fund; a soft-deleted membership is revived."""
    fund = await membership.get_fund(db, fund_id)
    profile = await membership.get_profile(db, body.profile_id)

    member = await membership.get_membership(db, fund.id, profile.id, include_deleted=True)
    if member is not None and member.deleted_at is None:
        raise ConflictError("The profile is already a member of this fund.")

    if member is None:
        member = FundMember(
            fund_id=fund.id,
            profile=profile,
            investment_units=body.investment_units,
            total_units=body.total_units,
        )
        db.add(member)
    else:
        member.deleted_at = None
        member.investment_units = body.investment_units
        member.total_units = body.total_units
    await db.flush()

    logger.info("Added profile %d to fund %d", profile.id, fund.id)
    return membership.member_response(member, fund)


@router.put("/funds/{fund_id}/members/{profile_id}", response_model=FundMemberResponse)
async def update_member(
    fund_id: int,
    profile_id: int,
    body: FundMemberUpdateRequest,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> FundMemberResponse:
    fund = await membership.get_fund(db, fund_id)
    member = await membership.get_membership(db, fund.id, profile_id)
    if member is None:
        raise NotFoundError(f"Profile {profile_id} is not a member of fund {fund_id}.")

    for field, value in body.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(member, field, value)
    await db.flush()
    return membership.member_response(member, fund)


@router.delete("/funds/{fund_id}/members/{profile_id}", response_model=MemberDeleteResponse)
async def delete_member(
    fund_id: int,
    profile_id: int,
    delete_type: str = Query("soft", alias="type", pattern="^(soft|hard)$"),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> MemberDeleteResponse:
    """
    ``type=soft`` (default) sets ``deleted_at``; ``type=hard`` removes the row
    and is restricted to system admins.
    """
    if delete_type == "hard" and not is_system_admin(admin):
        raise AuthorizationError("Hard delete requires system admin permission.")

    member = await membership.get_membership(db, fund_id, profile_id, include_deleted=delete_type == "hard")
    if member is None:
        raise NotFoundError(f"Profile {profile_id} is not a member of fund {fund_id}.")

    if delete_type == "hard":
        await db.delete(member)
        message = "Member permanently deleted."
    else:
        member.deleted_at = utcnow()
        message = "Member deleted."
    await db.flush()

    logger.info("%s-deleted profile %d from fund %d by %s", delete_type, profile_id, fund_id, admin.email)
    return MemberDeleteResponse(message=message, delete_type=delete_type)


@router.post("/funds/{fund_id}/members/email/send", response_model=MemberEmailResponse)
async def send_member_email(
    fund_id: int,
    body: MemberEmailRequest,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> MemberEmailResponse:
    """Send an email to all (or selected) active members and report each outcome."""
    fund = await membership.get_fund(db, fund_id)
    stmt = select(FundMember).where(FundMember.fund_id == fund.id, FundMember.deleted_at.is_(None))
    if body.profile_ids is not None:
        stmt = stmt.where(FundMember.profile_id.in_(body.profile_ids))
    members = (await db.execute(stmt.order_by(FundMember.id))).scalars().all()
    if not members:
        raise ValidationError("No recipients selected.")

    results = await notifications.send_to_members(
        sender,
        [(m.profile_id, m.profile.email) for m in members],
        body.subject,
        body.html,
    )
    items = [
        MemberEmailResult(
            profile_id=profile_id,
            email=email,
            success=r.success,
            message_id=r.message_id,
            error=r.error,
        )
        for profile_id, email, r in results
    ]
    sent = sum(1 for i in items if i.success)
    return MemberEmailResponse(sent=sent, failed=len(items) - sent, results=items)


# ═══════════════════════════════════════════════════════════════════════════════
# PROFILES
# ═══════════════════════════════════════════════════════════════════════════════

@router.get("/profiles", response_model=List[ProfileResponse])
async def list_profiles(
    q: Optional[str] = Query(None, description="Filter by name or email"),
    limit: int = Query(100, ge=1, le=500),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> List[ProfileResponse]:
    stmt = select(Profile).where(Profile.brand == settings.BRAND)
    if q:
        pattern = f"%{q.lower()}%"
        stmt = stmt.where(or_(Profile.email.ilike(pattern), Profile.name.ilike(pattern)))
    result = await db.execute(stmt.order_by(Profile.created_at.desc(), Profile.id.desc()).limit(limit))
    return [ProfileResponse.model_validate(p) for p in result.scalars().all()]
