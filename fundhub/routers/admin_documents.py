"""
Admin endpoints for generated documents.

All routes live under ``/api/admin/funds/{fund_id}/generated-documents/{document_type}``
where ``document_type`` is one of ``lpa``, ``lpa_consent_form``,
``personal_info_consent_form`` or ``member_list``.

Route summary
-------------
GET    ...                           — versions, newest first
GET    .../latest                    — latest active version
POST   .../generate                  — generate a new version (PDF attachment)
POST   .../preview                   — watermarked preview (PDF inline)
GET    .../check-duplicate           — would generating now repeat the latest?
GET    .../diff?from=&to=            — field-level diff of two versions
GET    .../{document_id}             — version detail
DELETE .../{document_id}             — delete a version
GET    .../{document_id}/download    — PDF attachment
GET    .../{document_id}/signed-url  — expiring download URL
"""
import logging
from datetime import date
from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from fundhub.config import settings
from fundhub.database import get_db
from fundhub.dependencies.auth import require_admin
from fundhub.errors import NotFoundError
from fundhub.models.database_models import DocumentType, Profile
from fundhub.models.schemas import (
    DiffResponse,
    DocumentDeleteResponse,
    DuplicateCheckResponse,
    GenerateDocumentRequest,
    GeneratedDocumentResponse,
    GeneratedDocumentSummary,
    PreviewDocumentRequest,
    SignedUrlResponse,
)
from fundhub.services import document_service, membership, version_store
from fundhub.services.diff_engine import compare_versions
from fundhub.services.storage import LocalObjectStorage, get_storage

logger = logging.getLogger(__name__)

router = APIRouter()

PDF_MEDIA_TYPE = "application/pdf"


def pdf_response(data: bytes, filename: str, inline: bool, headers: Optional[dict] = None) -> Response:
    disposition = "inline" if inline else "attachment"
    all_headers = {
        "Content-Disposition": f"{disposition}; filename*=UTF-8''{quote(filename)}",
        **(headers or {}),
    }
    return Response(content=data, media_type=PDF_MEDIA_TYPE, headers=all_headers)


@router.get("/{document_type}", response_model=List[GeneratedDocumentSummary])
async def list_versions(
    fund_id: int,
    document_type: DocumentType,
    include_inactive: bool = Query(False),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> List[GeneratedDocumentSummary]:
    await membership.get_fund(db, fund_id)
    documents = await version_store.list_versions(db, fund_id, document_type, include_inactive)
    return [GeneratedDocumentSummary.model_validate(d) for d in documents]


@router.get("/{document_type}/latest", response_model=GeneratedDocumentResponse)
async def get_latest(
    fund_id: int,
    document_type: DocumentType,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> GeneratedDocumentResponse:
    await membership.get_fund(db, fund_id)
    document = await version_store.get_latest(db, fund_id, document_type)
    if document is None:
        raise NotFoundError(f"No {document_type.value} has been generated for fund {fund_id}.")
    return GeneratedDocumentResponse.model_validate(document)


@router.post("/{document_type}/generate")
async def generate(
    fund_id: int,
    document_type: DocumentType,
    body: Optional[GenerateDocumentRequest] = None,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
) -> Response:
    """
    Generate a new version and return its PDF.

    LPA and consent forms answer 409 ``DUPLICATE_DOCUMENT`` when nothing
    changed since the latest version (unless ``modified_content`` or
    ``force`` is given). Member lists always create a new version.
    """
    body = body or GenerateDocumentRequest()
    result = await document_service.generate_document(
        db, storage, document_type, fund_id, admin,
        modified_content=body.modified_content,
        change_description=body.change_description,
        assembly_date=body.assembly_date,
        force=body.force,
    )
    fund = await membership.get_fund(db, fund_id)
    return pdf_response(
        result.pdf_bytes,
        document_service.pdf_filename(result.document, fund.name),
        inline=False,
        headers={
            "X-Document-Id": str(result.document.id),
            "X-Version-Number": str(result.document.version_number),
        },
    )


@router.post("/{document_type}/preview")
async def preview(
    fund_id: int,
    document_type: DocumentType,
    body: Optional[PreviewDocumentRequest] = None,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> Response:
    body = body or PreviewDocumentRequest()
    data = await document_service.preview_document(
        db, document_type, fund_id, admin,
        modified_content=body.modified_content,
        assembly_date=body.assembly_date,
    )
    return pdf_response(data, f"preview_{document_type.value}.pdf", inline=True)


@router.get("/{document_type}/check-duplicate", response_model=DuplicateCheckResponse)
async def check_duplicate(
    fund_id: int,
    document_type: DocumentType,
    assembly_date: Optional[date] = Query(None),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> DuplicateCheckResponse:
    duplicate = await document_service.check_duplicate(db, document_type, fund_id, admin, assembly_date)
    message = (
        "Nothing changed since the latest version."
        if duplicate
        else "A new version can be generated."
    )
    return DuplicateCheckResponse(is_duplicate=duplicate, message=message)


@router.get("/{document_type}/diff", response_model=DiffResponse)
async def diff(
    fund_id: int,
    document_type: DocumentType,
    from_id: int = Query(..., alias="from"),
    to_id: int = Query(..., alias="to"),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> DiffResponse:
    # Both ids must belong to this fund and type
    await version_store.get_version(db, from_id, fund_id, document_type)
    await version_store.get_version(db, to_id, fund_id, document_type)
    result = await compare_versions(db, from_id, to_id, fund_id)
    return DiffResponse.model_validate(result.to_dict())


@router.get("/{document_type}/{document_id}", response_model=GeneratedDocumentResponse)
async def get_document(
    fund_id: int,
    document_type: DocumentType,
    document_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> GeneratedDocumentResponse:
    document = await version_store.get_version(db, document_id, fund_id, document_type)
    return GeneratedDocumentResponse.model_validate(document)


@router.delete("/{document_type}/{document_id}", response_model=DocumentDeleteResponse)
async def delete_document(
    fund_id: int,
    document_type: DocumentType,
    document_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
) -> DocumentDeleteResponse:
    """Member lists are deactivated; other types refuse to delete the latest version (409)."""
    delete_type = await version_store.delete_version(db, storage, document_id, fund_id, document_type)
    logger.info("Document %d deleted (%s) by %s", document_id, delete_type, admin.email)
    return DocumentDeleteResponse(message="Document deleted.", delete_type=delete_type)


@router.get("/{document_type}/{document_id}/download")
async def download_document(
    fund_id: int,
    document_type: DocumentType,
    document_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
) -> Response:
    document = await version_store.get_version(db, document_id, fund_id, document_type)
    fund = await membership.get_fund(db, fund_id)
    data = await document_service.load_document_pdf(storage, document)
    return pdf_response(data, document_service.pdf_filename(document, fund.name), inline=False)


@router.get("/{document_type}/{document_id}/signed-url", response_model=SignedUrlResponse)
async def signed_url(
    fund_id: int,
    document_type: DocumentType,
    document_id: int,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
) -> SignedUrlResponse:
    document = await version_store.get_version(db, document_id, fund_id, document_type)
    if not document.pdf_storage_path:
        raise NotFoundError("No stored PDF for this version; use the download endpoint.")
    url = storage.create_signed_url(document.pdf_storage_path)
    return SignedUrlResponse(url=url, expires_in=settings.SIGNED_URL_TTL)
