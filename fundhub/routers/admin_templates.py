"""
Admin endpoints for document templates.

Template versions are immutable; a new version is created for every change
and exactly one version per (type, scope) is active. Activation is limited
to system admins.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fundhub.database import get_db
from fundhub.dependencies.auth import is_system_admin, require_admin, require_system_admin
from fundhub.errors import AuthorizationError
from fundhub.models.database_models import DocumentType, Profile
from fundhub.models.schemas import (
    DiffResponse,
    ResolvedTemplateResponse,
    TemplateCreateRequest,
    TemplateResponse,
    TemplateSummaryResponse,
)
from fundhub.services import template_service
from fundhub.services.diff_engine import compare_templates
from fundhub.services.template_resolver import resolve_template

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=List[TemplateSummaryResponse])
async def list_templates(
    document_type: Optional[DocumentType] = Query(None),
    fund_id: Optional[int] = Query(None),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> List[TemplateSummaryResponse]:
    templates = await template_service.list_templates(db, document_type, fund_id)
    return [TemplateSummaryResponse.model_validate(t) for t in templates]


@router.post("", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    body: TemplateCreateRequest,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> TemplateResponse:
    """
    Create a template version.

    Omit ``version`` to bump the highest version in scope; ``change_type``
    picks the bump, otherwise it is inferred from the content diff.
    """
    if body.activate and not is_system_admin(admin):
        raise AuthorizationError("Activating a template requires system admin permission.")

    template = await template_service.create_template(
        db,
        body.document_type,
        body.content,
        fund_id=body.fund_id,
        version=body.version,
        change_type=body.change_type,
        description=body.description,
        activate=body.activate,
        created_by=admin.user_id,
    )
    return TemplateResponse.model_validate(template)


# ─── Static paths before /{template_id} ────────────────────────────────────────

@router.get("/diff", response_model=DiffResponse)
async def diff_templates(
    from_id: int = Query(..., alias="from"),
    to_id: int = Query(..., alias="to"),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> DiffResponse:
    result = await compare_templates(db, from_id, to_id)
    return DiffResponse.model_validate(result.to_dict())


@router.get("/types/{document_type}/active", response_model=ResolvedTemplateResponse)
async def get_active(
    document_type: DocumentType,
    fund_id: Optional[int] = Query(None),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ResolvedTemplateResponse:
    """The template a generation would use right now, and where it came from."""
    resolved = await resolve_template(db, document_type, fund_id)
    return ResolvedTemplateResponse(
        document_type=resolved.document_type,
        template_id=resolved.template_id,
        version=resolved.version,
        source=resolved.source,
        content=resolved.content,
    )


@router.get("/types/{document_type}/versions", response_model=List[TemplateSummaryResponse])
async def list_versions(
    document_type: DocumentType,
    fund_id: Optional[int] = Query(None),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> List[TemplateSummaryResponse]:
    templates = await template_service.list_template_versions(db, document_type, fund_id)
    return [TemplateSummaryResponse.model_validate(t) for t in templates]


# ─── Single template ──────────────────────────────────────────────────────────

@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> TemplateResponse:
    template = await template_service.get_template(db, template_id)
    return TemplateResponse.model_validate(template)


@router.post("/{template_id}/activate", response_model=TemplateResponse)
async def activate_template(
    template_id: int,
    admin: Profile = Depends(require_system_admin),
    db: AsyncSession = Depends(get_db),
) -> TemplateResponse:
    template = await template_service.activate_template(db, template_id)
    logger.info("Template %d activated by %s", template_id, admin.email)
    return TemplateResponse.model_validate(template)
