"""
Generation context assembly.

Builds the JSON-serialisable substitution data for one document type and
checks the preconditions that type needs. Only the fields the document
renders are included; deleted memberships never appear.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fundhub.config import settings
from fundhub.errors import NotFoundError, ValidationError
from fundhub.models.database_models import (
    DocumentType,
    EntityType,
    Fund,
    FundMember,
    PaymentSchedule,
    Profile,
)

logger = logging.getLogger(__name__)


async def _load_fund(db: AsyncSession, fund_id: int) -> Fund:
    result = await db.execute(
        select(Fund).where(Fund.id == fund_id, Fund.brand == settings.BRAND)
    )
    fund = result.scalar_one_or_none()
    if fund is None:
        raise NotFoundError(f"Fund {fund_id} not found.")
    return fund


async def _load_active_members(db: AsyncSession, fund_id: int) -> List[FundMember]:
    result = await db.execute(
        select(FundMember)
        .where(
            FundMember.fund_id == fund_id,
            FundMember.brand == settings.BRAND,
            FundMember.deleted_at.is_(None),
        )
        .order_by(FundMember.created_at, FundMember.id)
    )
    return list(result.scalars().all())


def _gp_ids(fund: Fund) -> List[int]:
    return [int(pid) for pid in (fund.gp_id or [])]


def _id_or_business_number(profile: Profile) -> str:
    if profile.entity_type == EntityType.CORPORATE:
        return profile.business_number or ""
    return profile.birth_date or ""


def _base(is_preview: bool) -> Dict[str, Any]:
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "is_preview": is_preview,
    }


# ---------------------------------------------------------------------------
# Per-type builders
# ---------------------------------------------------------------------------

async def _lpa_context(db: AsyncSession, fund: Fund, user_id: Optional[str]) -> Dict[str, Any]:
    if fund.closed_at is None:
        raise ValidationError("The fund closing date (closed_at) is missing. Set it in the fund details first.")

    members = await _load_active_members(db, fund.id)
    gp_ids = set(_gp_ids(fund))

    # Share of each commitment called up front
    if fund.payment_schedule == PaymentSchedule.CAPITAL_CALL and fund.total_cap:
        initial_ratio = (fund.initial_cap or 0) / fund.total_cap
    else:
        initial_ratio = 1.0

    member_rows = []
    for m in members:
        total_amount = m.total_units * fund.par_value
        member_rows.append({
            "id": m.profile_id,
            "name": m.profile.name,
            "email": m.profile.email,
            "phone": m.profile.phone or "",
            "member_type": "GP" if m.profile_id in gp_ids else "LP",
            "total_units": m.total_units,
            "total_amount": total_amount,
            "initial_amount": int(total_amount * initial_ratio),
        })

    user = None
    if user_id:
        result = await db.execute(
            select(Profile).where(Profile.brand == settings.BRAND, Profile.user_id == user_id)
        )
        user = result.scalar_one_or_none()

    return {
        "fund": {
            "id": fund.id,
            "name": fund.name,
            "name_short": fund.abbreviation or fund.name,
            "address": fund.address or "",
            "par_value": fund.par_value,
            "total_cap": fund.total_cap,
            "initial_cap": fund.initial_cap,
            "payment_schedule": fund.payment_schedule.value,
            "duration": fund.duration,
            "closed_at": fund.closed_at.isoformat(),
        },
        "user": {
            "id": user.id if user else None,
            "name": user.name if user else "",
            "email": user.email if user else "",
            "phone": (user.phone or "") if user else "",
        },
        "members": member_rows,
    }


async def _consent_form_context(
    db: AsyncSession,
    fund: Fund,
    individuals_only: bool,
) -> Dict[str, Any]:
    members = await _load_active_members(db, fund.id)
    if not members:
        raise ValidationError("The fund has no members.")

    gp_ids = set(_gp_ids(fund))
    gp_members = [m for m in members if m.profile_id in gp_ids]
    lp_members = [m for m in members if m.profile_id not in gp_ids]

    if individuals_only:
        lp_members = [
            m for m in lp_members
            if m.profile.entity_type == EntityType.INDIVIDUAL and m.profile.birth_date
        ]
        if not lp_members:
            raise ValidationError("No individual limited partner with a birth date is registered.")

    lp_rows = []
    for m in lp_members:
        row = {
            "name": m.profile.name,
            "address": m.profile.address or "",
            "birth_date_or_business_number": _id_or_business_number(m.profile),
            "contact": m.profile.phone or "",
            "shares": m.total_units,
        }
        if individuals_only:
            row["birth_date"] = m.profile.birth_date
        lp_rows.append(row)

    return {
        "fund": {
            "name": fund.name,
            "closed_at": fund.closed_at.isoformat() if fund.closed_at else None,
        },
        "gp_list": ", ".join(m.profile.name for m in gp_members),
        "lp_members": lp_rows,
    }


async def _member_list_context(db: AsyncSession, fund: Fund, assembly_date: Optional[date]) -> Dict[str, Any]:
    if assembly_date is None:
        raise ValidationError("assembly_date is required for the member list.")

    members = await _load_active_members(db, fund.id)
    gp_ids = _gp_ids(fund)

    gp_info = []
    if gp_ids:
        result = await db.execute(
            select(Profile).where(Profile.brand == settings.BRAND, Profile.id.in_(gp_ids))
        )
        by_id = {p.id: p for p in result.scalars().all()}
        # Keep the order stored on the fund
        gp_info = [
            {"id": by_id[pid].id, "name": by_id[pid].name, "entity_type": by_id[pid].entity_type.value}
            for pid in gp_ids
            if pid in by_id
        ]

    return {
        "fund": {"name": fund.name},
        "assembly_date": assembly_date.isoformat(),
        "gp_info": gp_info,
        "members": [
            {
                "name": m.profile.name,
                "entity_type": m.profile.entity_type.value,
                "units": m.total_units,
                "address": m.profile.address or "",
                "contact": m.profile.phone or "",
            }
            for m in members
        ],
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

async def build_context(
    db: AsyncSession,
    document_type: DocumentType,
    fund_id: int,
    user_id: Optional[str] = None,
    is_preview: bool = False,
    assembly_date: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Build the generation context for ``document_type``.

    Raises:
        NotFoundError: the fund does not exist.
        ValidationError: a precondition of the document type is not met.
    """
    fund = await _load_fund(db, fund_id)

    if document_type == DocumentType.LPA:
        context = await _lpa_context(db, fund, user_id)
    elif document_type == DocumentType.LPA_CONSENT_FORM:
        context = await _consent_form_context(db, fund, individuals_only=False)
    elif document_type == DocumentType.PERSONAL_INFO_CONSENT_FORM:
        context = await _consent_form_context(db, fund, individuals_only=True)
    elif document_type == DocumentType.MEMBER_LIST:
        context = await _member_list_context(db, fund, assembly_date)
    else:
        raise ValidationError(f"Unsupported document type: {document_type}")

    context.update(_base(is_preview))
    logger.debug("Built %s context for fund %d", document_type.value, fund_id)
    return context
