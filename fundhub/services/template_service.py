"""
Template versioning.

Templates are immutable once stored: every edit creates a new row with a new
MAJOR.MINOR.PATCH version inside its scope (document type + fund, or global).
Activation is a single-writer transition: the scope's rows are locked, the
current active row is cleared and flushed, then the target is set active.
The partial unique index on active rows backs this up at the database level.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fundhub.config import settings
from fundhub.errors import ConflictError, NotFoundError, ValidationError
from fundhub.models.database_models import DocumentTemplate, DocumentType, Fund
from fundhub.services.diff_engine import Change, diff_values
from fundhub.services.template_resolver import load_bundled_template

logger = logging.getLogger(__name__)

VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")
CHANGE_TYPES = ("major", "minor", "patch")
INITIAL_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# Version arithmetic
# ---------------------------------------------------------------------------

def parse_version(version: str) -> Tuple[int, int, int]:
    match = VERSION_PATTERN.match(version or "")
    if not match:
        raise ValidationError(f"Invalid template version '{version}'. Expected MAJOR.MINOR.PATCH.")
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


def calculate_next_version(current: Optional[str], change_type: str = "patch") -> str:
    """Bump ``current`` by ``change_type``; ``1.0.0`` when there is no version yet."""
    if change_type not in CHANGE_TYPES:
        raise ValidationError(f"Invalid change type '{change_type}'.")
    if not current:
        return INITIAL_VERSION
    major, minor, patch = parse_version(current)
    if change_type == "major":
        return f"{major + 1}.0.0"
    if change_type == "minor":
        return f"{major}.{minor + 1}.0"
    return f"{major}.{minor}.{patch + 1}"


def classify_changes(changes: List[Change]) -> Optional[str]:
    """
    Infer the version bump from a content diff.

    Chapter and article level edits (depth 0-1) are major, paragraph level
    (depth 2) minor, anything deeper a patch. Edits outside the section tree
    count as minor. Returns None when there are no changes.
    """
    if not changes:
        return None
    rank = {"patch": 0, "minor": 1, "major": 2}
    result = "patch"
    for change in changes:
        if change.path.startswith("sections"):
            depth = change.path.count("[") - 1
            kind = "major" if depth <= 1 else "minor" if depth == 2 else "patch"
        else:
            kind = "minor"
        if rank[kind] > rank[result]:
            result = kind
    return result


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def _scope_filter(stmt, document_type: DocumentType, fund_id: Optional[int]):
    stmt = stmt.where(
        DocumentTemplate.brand == settings.BRAND,
        DocumentTemplate.document_type == document_type,
    )
    if fund_id is None:
        return stmt.where(DocumentTemplate.fund_id.is_(None))
    return stmt.where(DocumentTemplate.fund_id == fund_id)


async def get_template(db: AsyncSession, template_id: int) -> DocumentTemplate:
    result = await db.execute(
        select(DocumentTemplate).where(
            DocumentTemplate.id == template_id,
            DocumentTemplate.brand == settings.BRAND,
        )
    )
    template = result.scalar_one_or_none()
    if template is None:
        raise NotFoundError(f"Template {template_id} not found.")
    return template


async def list_template_versions(
    db: AsyncSession,
    document_type: DocumentType,
    fund_id: Optional[int] = None,
) -> List[DocumentTemplate]:
    """All versions in one scope, highest version first."""
    result = await db.execute(_scope_filter(select(DocumentTemplate), document_type, fund_id))
    templates = list(result.scalars().all())
    templates.sort(key=lambda t: parse_version(t.version), reverse=True)
    return templates


async def list_templates(
    db: AsyncSession,
    document_type: Optional[DocumentType] = None,
    fund_id: Optional[int] = None,
) -> List[DocumentTemplate]:
    stmt = select(DocumentTemplate).where(DocumentTemplate.brand == settings.BRAND)
    if document_type is not None:
        stmt = stmt.where(DocumentTemplate.document_type == document_type)
    if fund_id is not None:
        stmt = stmt.where(DocumentTemplate.fund_id == fund_id)
    result = await db.execute(stmt.order_by(DocumentTemplate.created_at.desc(), DocumentTemplate.id.desc()))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def create_template(
    db: AsyncSession,
    document_type: DocumentType,
    content: Dict[str, Any],
    fund_id: Optional[int] = None,
    version: Optional[str] = None,
    change_type: Optional[str] = None,
    description: Optional[str] = None,
    activate: bool = False,
    created_by: Optional[str] = None,
) -> DocumentTemplate:
    """
    Store a new template version.

    Without an explicit ``version`` the next one is derived from the highest
    version in scope, bumped by ``change_type`` or, when that is omitted, by
    the kind of change detected against the previous content.

    Raises:
        ValidationError: bad version string or content without sections.
        NotFoundError: ``fund_id`` does not exist.
        ConflictError: the version already exists in this scope.
    """
    if not isinstance(content.get("sections"), list):
        raise ValidationError("Template content must contain a 'sections' list.")

    if fund_id is not None:
        result = await db.execute(select(Fund.id).where(Fund.id == fund_id, Fund.brand == settings.BRAND))
        if result.scalar_one_or_none() is None:
            raise NotFoundError(f"Fund {fund_id} not found.")

    existing = await list_template_versions(db, document_type, fund_id)
    previous = existing[0] if existing else None

    if version is None:
        if change_type is None:
            if previous is not None:
                base_content = previous.content
            else:
                bundled = await load_bundled_template(document_type)
                base_content = bundled.get("content", {}) if bundled else {}
            change_type = classify_changes(diff_values(base_content, content)) or "patch"
        version = calculate_next_version(previous.version if previous else None, change_type)
    else:
        parse_version(version)

    if any(t.version == version for t in existing):
        raise ConflictError(f"Template version {version} already exists for {document_type.value}.")

    template = DocumentTemplate(
        document_type=document_type,
        fund_id=fund_id,
        version=version,
        content=content,
        description=description,
        is_active=False,
        created_by=created_by,
    )
    db.add(template)
    await db.flush()
    logger.info(
        "Created %s template v%s (%s)",
        document_type.value, version, f"fund {fund_id}" if fund_id else "global",
    )

    if activate:
        template = await activate_template(db, template.id)
    return template


async def activate_template(db: AsyncSession, template_id: int) -> DocumentTemplate:
    """Make ``template_id`` the only active template of its scope."""
    target = await get_template(db, template_id)

    # Lock every row of the scope so concurrent activations serialise
    stmt = _scope_filter(select(DocumentTemplate), target.document_type, target.fund_id).with_for_update()
    scope_rows = (await db.execute(stmt)).scalars().all()

    if target.is_active:
        return target

    for row in scope_rows:
        if row.is_active and row.id != target.id:
            row.is_active = False
            logger.info("Deactivated %s template v%s", row.document_type.value, row.version)
    await db.flush()

    target.is_active = True
    await db.flush()
    logger.info("Activated %s template v%s", target.document_type.value, target.version)
    return target
