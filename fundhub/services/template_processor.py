"""
Template variable substitution.

Template content is ``{type, title, sections: [{index, title, text, sub}],
table?, appendix?}``. ``${name}`` placeholders in section titles and texts
are replaced with values derived from the generation context; unknown
placeholders are left as they are.
"""
from __future__ import annotations

import copy
import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from fundhub.models.database_models import DocumentType
from fundhub.utils.helpers import convert_number_to_korean, format_comma, format_korean_date

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\$\{(\w+)\}")

ENTITY_TYPE_LABELS = {"individual": "개인", "corporate": "법인"}


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------

def _generation_date(context: Dict[str, Any]) -> date:
    raw = context.get("generated_at")
    if raw:
        return datetime.fromisoformat(raw).date()
    return datetime.now(timezone.utc).date()


def _korean_amount(value: Any) -> str:
    return convert_number_to_korean(value) if value else ""


def build_variables(document_type: DocumentType, context: Dict[str, Any]) -> Dict[str, str]:
    """Map placeholder names to their values for one generation context."""
    fund = context.get("fund", {})

    if document_type == DocumentType.LPA:
        members = context.get("members", [])
        gp_names = [m["name"] for m in members if m.get("member_type") == "GP"]
        lp_names = [m["name"] for m in members if m.get("member_type") == "LP"]
        first_gp = next((m for m in members if m.get("member_type") == "GP"), {})
    elif document_type == DocumentType.MEMBER_LIST:
        gp_names = [gp["name"] for gp in context.get("gp_info", [])]
        lp_names = [m["name"] for m in context.get("members", []) if m["name"] not in gp_names]
        first_gp = {}
    else:
        gp_names = [n.strip() for n in context.get("gp_list", "").split(",") if n.strip()]
        lp_names = [m["name"] for m in context.get("lp_members", [])]
        first_gp = {}

    today = _generation_date(context)

    return {
        "fundName": fund.get("name") or "",
        "fundNameShort": fund.get("name_short") or fund.get("name") or "",
        "fundAddress": fund.get("address") or "",
        "parValueKor": _korean_amount(fund.get("par_value")),
        "parValueComma": format_comma(fund.get("par_value")),
        "parValue": _korean_amount(fund.get("par_value")),
        "totalCapKor": _korean_amount(fund.get("total_cap")),
        "totalCapComma": format_comma(fund.get("total_cap")),
        "duration": str(fund.get("duration") or 5),
        "startDate": format_korean_date(fund.get("closed_at")),
        "gpList": ", ".join(gp_names),
        "lpList": ", ".join(lp_names),
        "coGP": "공동" if len(gp_names) > 1 else "",
        "userName": ", ".join(gp_names),
        "userEmail": first_gp.get("email", ""),
        "userPhone": first_gp.get("phone", ""),
        "userAddress": fund.get("address") or "",
        "assemblyDate": format_korean_date(context.get("assembly_date")),
        "today": format_korean_date(today),
        "year": str(today.year),
        "month": str(today.month),
        "day": str(today.day),
    }


def member_variables(member: Dict[str, Any]) -> Dict[str, str]:
    """Placeholders available inside a per-member appendix."""
    return {
        "name": member.get("name", ""),
        "address": member.get("address", ""),
        "shares": str(member.get("shares") or 0),
        "contact": member.get("contact", ""),
        "birthDateOrBusinessNumber": member.get("birth_date_or_business_number", ""),
        "birthDate": member.get("birth_date") or "",
        "businessNumber": member.get("business_number") or "",
    }


# ---------------------------------------------------------------------------
# Substitution
# ---------------------------------------------------------------------------

def substitute(text: Optional[str], variables: Dict[str, str]) -> str:
    """Replace ``${var}`` occurrences; unknown names stay untouched."""
    if not text:
        return ""
    return PLACEHOLDER.sub(lambda m: variables.get(m.group(1), m.group(0)), text)


def process_sections(sections: List[Dict[str, Any]], variables: Dict[str, str]) -> List[Dict[str, Any]]:
    processed = []
    for section in sections:
        item = copy.deepcopy(section)
        item["title"] = substitute(section.get("title"), variables)
        item["text"] = substitute(section.get("text"), variables)
        item["sub"] = process_sections(section.get("sub") or [], variables)
        processed.append(item)
    return processed


def _member_rows(context: Dict[str, Any]) -> List[Dict[str, Any]]:
    rows = []
    for no, member in enumerate(context.get("members", []), start=1):
        rows.append({
            "no": no,
            "name": member["name"],
            "entity_type_label": ENTITY_TYPE_LABELS.get(member["entity_type"], member["entity_type"]),
            "units": member["units"],
            "address": member["address"],
            "contact": member["contact"],
        })
    return rows


def process_template(
    document_type: DocumentType,
    template_content: Dict[str, Any],
    context: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Render ``template_content`` against ``context``.

    Returns the processed content stored on the generated document: the
    substituted title and sections, ``rows`` for table documents,
    ``appendices`` (one per limited partner) for consent forms, and
    ``processed_at``.
    """
    variables = build_variables(document_type, context)

    processed: Dict[str, Any] = {
        "type": template_content.get("type", document_type.value),
        "title": substitute(template_content.get("title"), variables),
        "sections": process_sections(template_content.get("sections", []), variables),
    }

    if "table" in template_content:
        processed["table"] = copy.deepcopy(template_content["table"])
        processed["rows"] = _member_rows(context)

    appendix = template_content.get("appendix")
    if appendix:
        processed["appendix"] = copy.deepcopy(appendix)
        processed["appendices"] = [
            {
                "member": member["name"],
                "sections": process_sections(appendix, {**variables, **member_variables(member)}),
            }
            for member in context.get("lp_members", [])
        ]

    processed["processed_at"] = datetime.now(timezone.utc).isoformat()
    return processed
