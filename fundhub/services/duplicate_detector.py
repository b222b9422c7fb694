"""
Duplicate generation detection.

Two generations are duplicates when the template (id and version) is
unchanged and the normalised contexts are equal. Normalisation drops the
generation timestamp and the preview flag, converts dates to ISO strings and
sorts keys, so a context compares equal to its stored JSON snapshot.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from fundhub.models.database_models import DocumentType
from fundhub.services import version_store
from fundhub.utils.helpers import canonical_json, to_jsonable

logger = logging.getLogger(__name__)

IGNORED_KEYS = frozenset({
    "generated_at",
    "generatedAt",
    "is_preview",
    "isPreview",
    "processed_at",
    "timestamp",
    "template_version",
    "change_description",
})


def normalize_context(context: Any) -> Any:
    """Strip volatile keys at every level and make values JSON-canonical."""
    if isinstance(context, dict):
        return {
            str(key): normalize_context(value)
            for key, value in sorted(context.items(), key=lambda kv: str(kv[0]))
            if key not in IGNORED_KEYS
        }
    if isinstance(context, (list, tuple)):
        return [normalize_context(value) for value in context]
    return to_jsonable(context)


def contexts_equal(a: Dict[str, Any], b: Dict[str, Any]) -> bool:
    return canonical_json(normalize_context(a)) == canonical_json(normalize_context(b))


async def is_duplicate(
    db: AsyncSession,
    fund_id: int,
    document_type: DocumentType,
    context: Dict[str, Any],
    template_version: str,
    template_id: Optional[int] = None,
) -> bool:
    """True when the latest active version was built from the same inputs."""
    latest = await version_store.get_latest(db, fund_id, document_type)
    if latest is None:
        return False

    if latest.template_version != template_version or latest.template_id != template_id:
        logger.debug(
            "Template changed for %s fund %d: %s → %s",
            document_type.value, fund_id, latest.template_version, template_version,
        )
        return False

    duplicate = contexts_equal(latest.generation_context, context)
    if duplicate:
        logger.info(
            "Duplicate %s generation for fund %d (matches v%d)",
            document_type.value, fund_id, latest.version_number,
        )
    return duplicate
