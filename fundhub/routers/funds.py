"""
Member-facing fund endpoints and the public application survey.
"""
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fundhub.config import settings
from fundhub.database import get_db
from fundhub.dependencies.auth import get_accessible_fund, get_current_profile, get_optional_user_id
from fundhub.errors import NotFoundError
from fundhub.models.database_models import DocumentType, Fund, FundMember, Profile
from fundhub.models.schemas import (
    DocumentStatusItem,
    FundDetailResponse,
    FundDisplayResponse,
    FundResponse,
    SubmitApplicationRequest,
    SubmitApplicationResponse,
)
from fundhub.routers.admin_documents import pdf_response
from fundhub.services import document_service, membership, notifications, version_store
from fundhub.services.email_sender import EmailSender, get_email_sender
from fundhub.services.storage import LocalObjectStorage, get_storage

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=List[FundResponse])
async def my_funds(
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
) -> List[FundResponse]:
    """Funds the current profile is an active member of."""
    result = await db.execute(
        select(Fund)
        .join(FundMember, FundMember.fund_id == Fund.id)
        .where(
            FundMember.profile_id == profile.id,
            FundMember.deleted_at.is_(None),
            Fund.brand == settings.BRAND,
        )
        .order_by(Fund.created_at.desc(), Fund.id.desc())
    )
    funds = result.scalars().all()
    stats = await membership.fund_stats(db, [f.id for f in funds])
    return [membership.fund_response(f, stats.get(f.id)) for f in funds]


@router.get("/display", response_model=List[FundDisplayResponse])
async def display_funds(db: AsyncSession = Depends(get_db)) -> List[FundDisplayResponse]:
    """Funds open for application; no authentication required."""
    result = await db.execute(
        select(Fund)
        .where(Fund.brand == settings.BRAND, Fund.status.in_(membership.OPEN_FOR_APPLICATION))
        .order_by(Fund.created_at.desc(), Fund.id.desc())
    )
    return [FundDisplayResponse.model_validate(f) for f in result.scalars().all()]


@router.post("/submit-application", response_model=SubmitApplicationResponse)
async def submit_application(
    body: SubmitApplicationRequest,
    background_tasks: BackgroundTasks,
    user_id: Optional[str] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
) -> SubmitApplicationResponse:
    """
    Record a survey submission and notify admins in the background.

    Resubmitting for the same fund updates the commitment instead of creating
    a second membership.
    """
    result = await membership.submit_application(db, body.fund_id, body.survey_data, user_id)
    fund = await membership.get_fund(db, body.fund_id)

    survey = body.survey_data
    if result.is_new or result.units_changed:
        subject, html_body = notifications.fund_application_email(
            fund_name=fund.name,
            name=survey.name,
            email=survey.email,
            phone=survey.phone,
            entity_type=survey.entity_type.value,
            units=survey.investment_units,
            amount=survey.investment_units * fund.par_value,
            is_new=result.is_new,
        )
        background_tasks.add_task(notifications.notify_admins, sender, subject, html_body)

    return SubmitApplicationResponse(
        success=True,
        profile_id=result.profile.id,
        fund_member_id=result.member.id,
    )


@router.get("/{fund_id}", response_model=FundDetailResponse)
async def fund_detail(
    fund: Fund = Depends(get_accessible_fund),
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
) -> FundDetailResponse:
    """Fund with GP names, the caller's units and per-type document status."""
    stats = await membership.fund_stats(db, [fund.id])

    gp_names: List[str] = []
    if fund.gp_id:
        result = await db.execute(select(Profile).where(Profile.id.in_(fund.gp_id)))
        by_id = {p.id: p.name for p in result.scalars().all()}
        gp_names = [by_id[i] for i in fund.gp_id if i in by_id]

    member = await membership.get_membership(db, fund.id, profile.id)

    documents_status: Dict[str, DocumentStatusItem] = {}
    for document_type in DocumentType:
        latest = await version_store.get_latest(db, fund.id, document_type)
        documents_status[document_type.value] = DocumentStatusItem(
            exists=latest is not None,
            latest_version=latest.version_number if latest else None,
            latest_generated_at=latest.created_at if latest else None,
        )

    return FundDetailResponse(
        fund=membership.fund_response(fund, stats.get(fund.id)),
        gp_names=gp_names,
        my_units=member.total_units if member else None,
        documents_status=documents_status,
    )


@router.get("/{fund_id}/documents/{document_type}/download")
async def download_latest(
    document_type: DocumentType,
    fund: Fund = Depends(get_accessible_fund),
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
) -> Response:
    """Latest active version of a document, for members of the fund."""
    document = await version_store.get_latest(db, fund.id, document_type)
    if document is None:
        raise NotFoundError("This document has not been generated yet.")
    data = await document_service.load_document_pdf(storage, document)
    return pdf_response(data, document_service.pdf_filename(document, fund.name), inline=False)
