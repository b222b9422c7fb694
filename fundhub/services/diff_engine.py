"""
Field-level diff between two JSON documents.

Used to compare the ``processed_content`` of two generated document versions
and the ``content`` of two template versions.

Algorithm
---------
Deep comparison by key path:

* dicts are compared key by key (union of keys, sorted),
* lists are compared positionally (the index is part of the path); a longer
  list yields "added" entries, a shorter one "removed" entries; there is no
  move or reorder detection,
* scalars are compared by value and type (``1`` vs ``"1"`` is a change).

Timestamp-like keys (``processed_at``, ``generated_at`` ...) are skipped at
every level so regenerating the same content yields an empty diff.
"""
from __future__ import annotations

import dataclasses
import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fundhub.config import settings
from fundhub.errors import NotFoundError
from fundhub.models.database_models import DocumentTemplate, GeneratedDocument

logger = logging.getLogger(__name__)

EXCLUDED_KEYS = frozenset({
    "processed_at",
    "processedAt",
    "generated_at",
    "generatedAt",
    "timestamp",
    "created_at",
    "updated_at",
})

ADDED = "added"
REMOVED = "removed"
MODIFIED = "modified"

_MISSING = object()


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class Change:
    path: str
    change_type: str
    before: Any = None
    after: Any = None
    display_path: str = ""


@dataclasses.dataclass
class DiffResult:
    """Returned by compare_versions() / compare_templates()."""

    from_version: str
    to_version: str
    changes: List[Change]

    @property
    def summary(self) -> Dict[str, int]:
        return summarize(self.changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_version": self.from_version,
            "to_version": self.to_version,
            "changes": [dataclasses.asdict(c) for c in self.changes],
            "summary": self.summary,
        }


# ---------------------------------------------------------------------------
# Core comparison
# ---------------------------------------------------------------------------

def _join(path: str, key: Any) -> str:
    if isinstance(key, int):
        return f"{path}[{key}]"
    return f"{path}.{key}" if path else str(key)


def _same_scalar(a: Any, b: Any) -> bool:
    # bool is a subclass of int; True == 1 must still count as a change
    return type(a) is type(b) and a == b


def diff_values(before: Any, after: Any, path: str = "") -> List[Change]:
    """Return the ordered list of changes turning ``before`` into ``after``."""
    changes: List[Change] = []
    _walk(before, after, path, changes)
    return changes


def _walk(before: Any, after: Any, path: str, out: List[Change]) -> None:
    if before is _MISSING:
        out.append(Change(path, ADDED, None, after, display_path(path)))
        return
    if after is _MISSING:
        out.append(Change(path, REMOVED, before, None, display_path(path)))
        return

    if isinstance(before, dict) and isinstance(after, dict):
        for key in sorted(set(before) | set(after), key=str):
            if key in EXCLUDED_KEYS:
                continue
            _walk(before.get(key, _MISSING), after.get(key, _MISSING), _join(path, key), out)
        return

    if isinstance(before, list) and isinstance(after, list):
        for i in range(max(len(before), len(after))):
            left = before[i] if i < len(before) else _MISSING
            right = after[i] if i < len(after) else _MISSING
            _walk(left, right, _join(path, i), out)
        return

    if not _same_scalar(before, after):
        out.append(Change(path, MODIFIED, before, after, display_path(path)))


def summarize(changes: List[Change]) -> Dict[str, int]:
    summary = {ADDED: 0, REMOVED: 0, MODIFIED: 0}
    for change in changes:
        summary[change.change_type] += 1
    return summary


# ---------------------------------------------------------------------------
# Display paths
# ---------------------------------------------------------------------------

_SECTION_LABELS = ["장", "조", "항", "호", "목"]
_FIELD_LABELS = {"title": "제목", "text": "내용", "index": "순서"}
_MEMBER_FIELD_LABELS = {
    "name": "이름",
    "units": "출자좌수",
    "total_units": "총 출자좌수",
    "total_amount": "총 출자금액",
    "initial_amount": "초기 출자금액",
    "member_type": "조합원 유형",
    "address": "주소",
    "contact": "연락처",
}
_PATH_TOKEN = re.compile(r"([^.\[\]]+)|\[(\d+)\]")


def display_path(path: str) -> str:
    """
    Human-readable label for a diff path.

    ``sections[0].sub[1].title`` becomes ``제1장 > 제2조 > 제목``;
    ``rows[2].name`` becomes ``조합원 3 > 이름``; other paths are shown with
    ``>`` separators.
    """
    tokens = [name if name else int(index) for name, index in _PATH_TOKEN.findall(path)]
    if not tokens:
        return path

    if tokens[0] == "sections":
        parts = []
        depth = 0
        for token in tokens:
            if isinstance(token, int):
                label = _SECTION_LABELS[depth] if depth < len(_SECTION_LABELS) else "항목"
                parts.append(f"제{token + 1}{label}")
                depth += 1
            elif token not in ("sections", "sub"):
                parts.append(_FIELD_LABELS.get(token, token))
        return " > ".join(parts)

    if tokens[0] in ("rows", "members") and len(tokens) >= 2 and isinstance(tokens[1], int):
        label = f"조합원 {tokens[1] + 1}"
        rest = [_MEMBER_FIELD_LABELS.get(t, str(t)) for t in tokens[2:]]
        return " > ".join([label] + rest)

    return " > ".join(str(t) for t in tokens)


# ---------------------------------------------------------------------------
# Stored versions
# ---------------------------------------------------------------------------

async def compare_versions(
    db: AsyncSession,
    from_id: int,
    to_id: int,
    fund_id: Optional[int] = None,
) -> DiffResult:
    """
    Diff the processed content of two generated document versions.

    Inactive (soft-deleted) versions can still be compared.
    """
    docs = {}
    for doc_id in {from_id, to_id}:
        stmt = select(GeneratedDocument).where(
            GeneratedDocument.id == doc_id,
            GeneratedDocument.brand == settings.BRAND,
        )
        if fund_id is not None:
            stmt = stmt.where(GeneratedDocument.fund_id == fund_id)
        doc = (await db.execute(stmt)).scalar_one_or_none()
        if doc is None:
            raise NotFoundError(f"Generated document {doc_id} not found.")
        docs[doc_id] = doc

    source, target = docs[from_id], docs[to_id]
    changes = diff_values(source.processed_content, target.processed_content)
    logger.info(
        "Diff v%d → v%d (fund %d, %s): %d change(s)",
        source.version_number, target.version_number,
        source.fund_id, source.document_type.value, len(changes),
    )
    return DiffResult(
        from_version=str(source.version_number),
        to_version=str(target.version_number),
        changes=changes,
    )


async def compare_templates(db: AsyncSession, from_id: int, to_id: int) -> DiffResult:
    """Diff the content of two template versions."""
    templates = {}
    for template_id in {from_id, to_id}:
        result = await db.execute(
            select(DocumentTemplate).where(
                DocumentTemplate.id == template_id,
                DocumentTemplate.brand == settings.BRAND,
            )
        )
        template = result.scalar_one_or_none()
        if template is None:
            raise NotFoundError(f"Template {template_id} not found.")
        templates[template_id] = template

    source, target = templates[from_id], templates[to_id]
    return DiffResult(
        from_version=source.version,
        to_version=target.version,
        changes=diff_values(source.content, target.content),
    )
