"""
Template resolution.

Order: active fund-scoped template, active global template, then the JSON
default bundled in ``fundhub/templates/<document_type>.json``. Nothing is
cached; every call reads the current state.
"""
from __future__ import annotations

import dataclasses
import json
import logging
import os
from typing import Any, Dict, Optional

import aiofiles
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fundhub.config import settings
from fundhub.errors import NotFoundError
from fundhub.models.database_models import DocumentTemplate, DocumentType

logger = logging.getLogger(__name__)

BUNDLED_TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")

SOURCE_FUND = "fund"
SOURCE_GLOBAL = "global"
SOURCE_BUNDLED = "bundled"


@dataclasses.dataclass
class ResolvedTemplate:
    document_type: DocumentType
    content: Dict[str, Any]
    version: str
    source: str
    template_id: Optional[int] = None


async def get_active_template(
    db: AsyncSession,
    document_type: DocumentType,
    fund_id: Optional[int] = None,
) -> Optional[DocumentTemplate]:
    """Active template for exactly this scope (``fund_id=None`` = global)."""
    stmt = select(DocumentTemplate).where(
        DocumentTemplate.brand == settings.BRAND,
        DocumentTemplate.document_type == document_type,
        DocumentTemplate.is_active.is_(True),
    )
    if fund_id is None:
        stmt = stmt.where(DocumentTemplate.fund_id.is_(None))
    else:
        stmt = stmt.where(DocumentTemplate.fund_id == fund_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def load_bundled_template(document_type: DocumentType) -> Optional[Dict[str, Any]]:
    """Read the bundled default; returns None when no file ships for the type."""
    path = os.path.join(BUNDLED_TEMPLATE_DIR, f"{document_type.value}.json")
    if not os.path.exists(path):
        return None
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        return json.loads(await f.read())


async def resolve_template(
    db: AsyncSession,
    document_type: DocumentType,
    fund_id: Optional[int] = None,
) -> ResolvedTemplate:
    """
    Pick the template a generation for ``fund_id`` should use.

    Raises:
        NotFoundError: no active DB template and no bundled default.
    """
    if fund_id is not None:
        template = await get_active_template(db, document_type, fund_id)
        if template is not None:
            return _from_row(template, SOURCE_FUND)

    template = await get_active_template(db, document_type, None)
    if template is not None:
        return _from_row(template, SOURCE_GLOBAL)

    bundled = await load_bundled_template(document_type)
    if bundled is None:
        raise NotFoundError(f"No template available for document type '{document_type.value}'.")

    logger.info("Using bundled default template for %s", document_type.value)
    return ResolvedTemplate(
        document_type=document_type,
        content=bundled.get("content", bundled),
        version=bundled.get("version", "1.0.0"),
        source=SOURCE_BUNDLED,
    )


def _from_row(template: DocumentTemplate, source: str) -> ResolvedTemplate:
    return ResolvedTemplate(
        document_type=template.document_type,
        content=template.content,
        version=template.version,
        source=source,
        template_id=template.id,
    )
