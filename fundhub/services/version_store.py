"""
Append-only version history of generated documents.

Version numbers are strictly increasing per (fund, document type) and are
never reused: the next number is ``max(version_number) + 1`` over every row,
active or not. The fund row is locked (``SELECT ... FOR UPDATE``) while the
number is assigned, and the unique constraint on
``(fund_id, document_type, version_number)`` rejects any racing insert that
slips past the lock.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fundhub.config import settings
from fundhub.errors import ConflictError, NotFoundError, ValidationError
from fundhub.models.database_models import DocumentType, Fund, GeneratedDocument
from fundhub.services.storage import LocalObjectStorage, StorageError

logger = logging.getLogger(__name__)


def storage_path(fund_id: int, document_type: DocumentType, version_number: int) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    return f"{fund_id}/{document_type.value}/v{version_number}_{stamp}.pdf"


async def _lock_fund(db: AsyncSession, fund_id: int) -> Fund:
    result = await db.execute(
        select(Fund)
        .where(Fund.id == fund_id, Fund.brand == settings.BRAND)
        .with_for_update()
    )
    fund = result.scalar_one_or_none()
    if fund is None:
        raise NotFoundError(f"Fund {fund_id} not found.")
    return fund


async def next_version_number(db: AsyncSession, fund_id: int, document_type: DocumentType) -> int:
    result = await db.execute(
        select(func.max(GeneratedDocument.version_number)).where(
            GeneratedDocument.fund_id == fund_id,
            GeneratedDocument.document_type == document_type,
        )
    )
    return (result.scalar_one_or_none() or 0) + 1


async def create_version(
    db: AsyncSession,
    storage: LocalObjectStorage,
    fund_id: int,
    document_type: DocumentType,
    *,
    context: Dict[str, Any],
    processed_content: Dict[str, Any],
    pdf_bytes: bytes,
    template_version: str,
    template_id: Optional[int] = None,
    generated_by: Optional[str] = None,
) -> GeneratedDocument:
    """
    Store a new version: assign the number, upload the PDF, insert the row.

    An upload failure, including a PDF over ``MAX_PDF_SIZE``, does not abort
    the version; the row is stored without a path and downloads re-render
    from ``processed_content``.

    Raises:
        NotFoundError: the fund does not exist.
        ConflictError: another request stored the same version number.
    """
    await _lock_fund(db, fund_id)
    version_number = await next_version_number(db, fund_id, document_type)

    path: Optional[str] = storage_path(fund_id, document_type, version_number)
    try:
        await storage.upload(path, pdf_bytes)
    except (StorageError, ValidationError) as exc:
        logger.error("PDF upload failed for %s v%d of fund %d: %s",
                     document_type.value, version_number, fund_id, exc)
        path = None

    document = GeneratedDocument(
        fund_id=fund_id,
        document_type=document_type,
        version_number=version_number,
        template_id=template_id,
        template_version=template_version,
        generation_context=context,
        processed_content=processed_content,
        pdf_storage_path=path,
        is_active=True,
        generated_by=generated_by,
    )
    db.add(document)
    try:
        await db.flush()
    except IntegrityError as exc:
        if path:
            await _remove_quietly(storage, path)
        raise ConflictError(
            f"Version {version_number} of {document_type.value} was created concurrently. Please retry."
        ) from exc

    logger.info(
        "Created %s v%d for fund %d (template %s)",
        document_type.value, version_number, fund_id, template_version,
    )
    return document


async def get_latest(
    db: AsyncSession,
    fund_id: int,
    document_type: DocumentType,
) -> Optional[GeneratedDocument]:
    """Highest version among active rows, or None."""
    result = await db.execute(
        select(GeneratedDocument)
        .where(
            GeneratedDocument.brand == settings.BRAND,
            GeneratedDocument.fund_id == fund_id,
            GeneratedDocument.document_type == document_type,
            GeneratedDocument.is_active.is_(True),
        )
        .order_by(GeneratedDocument.version_number.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_versions(
    db: AsyncSession,
    fund_id: int,
    document_type: DocumentType,
    include_inactive: bool = False,
) -> List[GeneratedDocument]:
    """Versions newest first."""
    stmt = select(GeneratedDocument).where(
        GeneratedDocument.brand == settings.BRAND,
        GeneratedDocument.fund_id == fund_id,
        GeneratedDocument.document_type == document_type,
    )
    if not include_inactive:
        stmt = stmt.where(GeneratedDocument.is_active.is_(True))
    result = await db.execute(stmt.order_by(GeneratedDocument.version_number.desc()))
    return list(result.scalars().all())


async def get_version(
    db: AsyncSession,
    document_id: int,
    fund_id: Optional[int] = None,
    document_type: Optional[DocumentType] = None,
) -> GeneratedDocument:
    stmt = select(GeneratedDocument).where(
        GeneratedDocument.id == document_id,
        GeneratedDocument.brand == settings.BRAND,
    )
    if fund_id is not None:
        stmt = stmt.where(GeneratedDocument.fund_id == fund_id)
    if document_type is not None:
        stmt = stmt.where(GeneratedDocument.document_type == document_type)
    document = (await db.execute(stmt)).scalar_one_or_none()
    if document is None:
        raise NotFoundError(f"Generated document {document_id} not found.")
    return document


async def delete_version(
    db: AsyncSession,
    storage: LocalObjectStorage,
    document_id: int,
    fund_id: Optional[int] = None,
    document_type: Optional[DocumentType] = None,
) -> str:
    """
    Delete a version. Returns ``"soft"`` or ``"hard"``.

    Soft-delete types are deactivated unconditionally. Hard-delete types
    refuse to delete the latest active version so a current document always
    remains. File removal is best effort in both cases.
    """
    document = await get_version(db, document_id, fund_id, document_type)
    path = document.pdf_storage_path

    if document.document_type.soft_delete:
        document.is_active = False
        document.pdf_storage_path = None
        await db.flush()
        delete_type = "soft"
    else:
        latest = await get_latest(db, document.fund_id, document.document_type)
        if latest is not None and latest.id == document.id:
            raise ConflictError("The latest version cannot be deleted.")
        await db.delete(document)
        await db.flush()
        delete_type = "hard"

    if path:
        await _remove_quietly(storage, path)

    logger.info(
        "Deleted (%s) %s v%d of fund %d",
        delete_type, document.document_type.value, document.version_number, document.fund_id,
    )
    return delete_type


async def _remove_quietly(storage: LocalObjectStorage, path: str) -> None:
    try:
        await storage.remove(path)
    except StorageError as exc:
        logger.warning("Could not remove stored file %s: %s", path, exc)
