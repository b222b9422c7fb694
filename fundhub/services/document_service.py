"""
Document generation orchestration.

Pipeline: resolve template → build context → duplicate check → substitute
variables → render PDF → store version. Previews run the same pipeline with
a watermark and persist nothing.
"""
from __future__ import annotations

import dataclasses
import logging
from datetime import date
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from fundhub.errors import DuplicateDocumentError, NotFoundError
from fundhub.models.database_models import DocumentType, GeneratedDocument, Profile
from fundhub.services import pdf_renderer, version_store
from fundhub.services.context_builder import build_context
from fundhub.services.duplicate_detector import is_duplicate
from fundhub.services.storage import LocalObjectStorage, StorageError
from fundhub.services.template_processor import process_template
from fundhub.services.template_resolver import ResolvedTemplate, resolve_template

logger = logging.getLogger(__name__)

DOCUMENT_LABELS = {
    DocumentType.LPA: "조합 규약",
    DocumentType.LPA_CONSENT_FORM: "규약 동의서",
    DocumentType.PERSONAL_INFO_CONSENT_FORM: "개인정보 수집·이용 동의서",
    DocumentType.MEMBER_LIST: "조합원 명부",
}


@dataclasses.dataclass
class GenerationResult:
    document: GeneratedDocument
    pdf_bytes: bytes


async def template_for_generation(
    db: AsyncSession,
    document_type: DocumentType,
    fund_id: int,
) -> ResolvedTemplate:
    """
    Template used for the next generation.

    For the LPA the latest generated version's sections are the base, so
    manual edits made at the previous generation carry over, unless the
    active DB template differs from the one that version was built from
    (a new template was activated, or an older one was re-activated).
    """
    resolved = await resolve_template(db, document_type, fund_id)
    if document_type != DocumentType.LPA:
        return resolved

    latest = await version_store.get_latest(db, fund_id, document_type)
    if latest is None or not latest.processed_content:
        return resolved

    template_changed = (
        resolved.template_id is not None
        and resolved.template_id != latest.template_id
    )
    if template_changed:
        logger.info("Active LPA template v%s differs from the one behind LPA v%d; using the template",
                    resolved.version, latest.version_number)
        return resolved

    content = {key: value for key, value in latest.processed_content.items() if key != "processed_at"}
    return dataclasses.replace(
        resolved,
        content=content,
        version=latest.template_version,
        template_id=latest.template_id,
        source=f"document:v{latest.version_number}",
    )


async def generate_document(
    db: AsyncSession,
    storage: LocalObjectStorage,
    document_type: DocumentType,
    fund_id: int,
    user: Profile,
    *,
    modified_content: Optional[Dict[str, Any]] = None,
    change_description: Optional[str] = None,
    assembly_date: Optional[date] = None,
    force: bool = False,
) -> GenerationResult:
    """
    Generate and store a new version of ``document_type`` for a fund.

    Member lists are dated snapshots and always produce a new version. Other
    types raise DuplicateDocumentError when nothing changed since the latest
    version, unless edited content is supplied or ``force`` is set.
    """
    context = await build_context(
        db, document_type, fund_id,
        user_id=user.user_id, is_preview=False, assembly_date=assembly_date,
    )
    template = await template_for_generation(db, document_type, fund_id)

    check = document_type != DocumentType.MEMBER_LIST and modified_content is None and not force
    if check and await is_duplicate(db, fund_id, document_type, context, template.version, template.template_id):
        raise DuplicateDocumentError(
            f"{DOCUMENT_LABELS[document_type]} is unchanged since the latest version; nothing to generate."
        )

    if change_description:
        context["change_description"] = change_description

    processed = process_template(document_type, modified_content or template.content, context)
    pdf_bytes = pdf_renderer.render(processed)

    document = await version_store.create_version(
        db, storage, fund_id, document_type,
        context=context,
        processed_content=processed,
        pdf_bytes=pdf_bytes,
        template_version=template.version,
        template_id=template.template_id,
        generated_by=user.user_id,
    )
    return GenerationResult(document=document, pdf_bytes=pdf_bytes)


async def preview_document(
    db: AsyncSession,
    document_type: DocumentType,
    fund_id: int,
    user: Profile,
    *,
    modified_content: Optional[Dict[str, Any]] = None,
    assembly_date: Optional[date] = None,
) -> bytes:
    """Render a watermarked PDF without storing anything."""
    context = await build_context(
        db, document_type, fund_id,
        user_id=user.user_id, is_preview=True, assembly_date=assembly_date,
    )
    template = await template_for_generation(db, document_type, fund_id)
    processed = process_template(document_type, modified_content or template.content, context)
    return pdf_renderer.render(processed, is_preview=True)


async def check_duplicate(
    db: AsyncSession,
    document_type: DocumentType,
    fund_id: int,
    user: Profile,
    assembly_date: Optional[date] = None,
) -> bool:
    """Whether generating now would repeat the latest version."""
    context = await build_context(
        db, document_type, fund_id,
        user_id=user.user_id, is_preview=False, assembly_date=assembly_date,
    )
    template = await template_for_generation(db, document_type, fund_id)
    return await is_duplicate(db, fund_id, document_type, context, template.version, template.template_id)


def render_stored_document(document: GeneratedDocument) -> bytes:
    """Re-render a stored version from its processed content."""
    return pdf_renderer.render(document.processed_content)


async def load_document_pdf(storage: LocalObjectStorage, document: GeneratedDocument) -> bytes:
    """Stored PDF bytes, re-rendered when the file is missing or unreadable."""
    if document.pdf_storage_path:
        try:
            return await storage.download(document.pdf_storage_path)
        except (NotFoundError, StorageError) as exc:
            logger.warning("Stored PDF unavailable for document %d (%s); re-rendering", document.id, exc)
    return render_stored_document(document)


def pdf_filename(document: GeneratedDocument, fund_name: Optional[str] = None) -> str:
    base = f"{fund_name}_{document.document_type.value}" if fund_name else document.document_type.value
    return f"{base}_v{document.version_number}.pdf"
