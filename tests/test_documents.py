"""Tests for generated document versions.

Covers generation preconditions, duplicate detection, version numbering,
deletion rules, diffs, downloads and signed URLs.
"""
import pytest
from httpx import AsyncClient

from fundhub.config import settings
from fundhub.models.database_models import EntityType
from tests.conftest import (
    ADMIN_HEADERS,
    AUTH_HEADERS,
    SYSTEM_ADMIN_HEADERS,
    add_member,
    create_fund,
    create_profile,
)


def _base(fund_id: int, document_type: str) -> str:
    return f"/api/admin/funds/{fund_id}/generated-documents/{document_type}"


async def _generate(client: AsyncClient, fund_id: int, document_type: str, **body):
    return await client.post(f"{_base(fund_id, document_type)}/generate", json=body, headers=ADMIN_HEADERS)


@pytest.mark.asyncio
async def test_lpa_requires_closing_date(client: AsyncClient, db_session, admin):
    fund = await create_fund(db_session, closed_at=None)

    resp = await _generate(client, fund.id, "lpa")
    assert resp.status_code == 400
    assert "closing date" in resp.json()["error"]

    resp = await client.put(
        f"/api/admin/funds/{fund.id}", json={"closed_at": "2026-04-30"}, headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 200

    resp = await _generate(client, fund.id, "lpa")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.headers["content-disposition"].startswith("attachment")
    assert resp.headers["X-Version-Number"] == "1"
    assert resp.content.startswith(b"%PDF")


@pytest.mark.asyncio
async def test_unchanged_lpa_is_a_duplicate(client: AsyncClient, admin, fund):
    assert (await _generate(client, fund.id, "lpa")).status_code == 200

    resp = await client.get(f"{_base(fund.id, 'lpa')}/check-duplicate", headers=ADMIN_HEADERS)
    assert resp.json()["is_duplicate"] is True

    resp = await _generate(client, fund.id, "lpa")
    assert resp.status_code == 409
    assert resp.json()["code"] == "DUPLICATE_DOCUMENT"

    # force bypasses the check
    resp = await _generate(client, fund.id, "lpa", force=True)
    assert resp.status_code == 200
    assert resp.headers["X-Version-Number"] == "2"


@pytest.mark.asyncio
async def test_member_change_makes_lpa_generatable(client: AsyncClient, db_session, admin, fund):
    assert (await _generate(client, fund.id, "lpa")).status_code == 200

    gp = await create_profile(db_session, name="업무집행조합원", email="gp@example.com")
    await add_member(db_session, fund, gp, units=1, gp=True)

    resp = await client.get(f"{_base(fund.id, 'lpa')}/check-duplicate", headers=ADMIN_HEADERS)
    assert resp.json()["is_duplicate"] is False

    resp = await _generate(client, fund.id, "lpa", change_description="GP 추가")
    assert resp.status_code == 200
    assert resp.headers["X-Version-Number"] == "2"


@pytest.mark.asyncio
async def test_version_history_and_detail(client: AsyncClient, admin, fund):
    first = await _generate(client, fund.id, "lpa")
    await _generate(client, fund.id, "lpa", force=True)

    resp = await client.get(_base(fund.id, "lpa"), headers=ADMIN_HEADERS)
    assert resp.status_code == 200
    assert [d["version_number"] for d in resp.json()] == [2, 1]
    assert all(d["template_version"] == "1.0.0" for d in resp.json())

    document_id = int(first.headers["X-Document-Id"])
    resp = await client.get(f"{_base(fund.id, 'lpa')}/{document_id}", headers=ADMIN_HEADERS)
    assert resp.status_code == 200
    data = resp.json()
    assert data["version_number"] == 1
    assert data["generation_context"]["fund"]["closed_at"] == "2026-03-31"
    assert data["processed_content"]["title"]

    resp = await client.get(f"{_base(fund.id, 'lpa')}/latest", headers=ADMIN_HEADERS)
    assert resp.json()["version_number"] == 2


@pytest.mark.asyncio
async def test_document_of_another_type_is_404(client: AsyncClient, admin, fund):
    resp = await _generate(client, fund.id, "lpa")
    document_id = resp.headers["X-Document-Id"]

    resp = await client.get(f"{_base(fund.id, 'member_list')}/{document_id}", headers=ADMIN_HEADERS)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_unknown_document_type_is_400(client: AsyncClient, admin, fund):
    resp = await client.get(_base(fund.id, "prospectus"), headers=ADMIN_HEADERS)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_latest_lpa_cannot_be_deleted(client: AsyncClient, admin, fund):
    first = await _generate(client, fund.id, "lpa")
    second = await _generate(client, fund.id, "lpa", force=True)

    resp = await client.delete(
        f"{_base(fund.id, 'lpa')}/{second.headers['X-Document-Id']}", headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 409

    resp = await client.delete(
        f"{_base(fund.id, 'lpa')}/{first.headers['X-Document-Id']}", headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 200
    assert resp.json()["delete_type"] == "hard"

    resp = await client.get(_base(fund.id, "lpa"), params={"include_inactive": True}, headers=ADMIN_HEADERS)
    assert [d["version_number"] for d in resp.json()] == [2]

    # Numbers are never reused
    third = await _generate(client, fund.id, "lpa", force=True)
    assert third.headers["X-Version-Number"] == "3"


@pytest.mark.asyncio
async def test_consent_form_requires_members(client: AsyncClient, db_session, admin, fund):
    resp = await _generate(client, fund.id, "lpa_consent_form")
    assert resp.status_code == 400

    lp = await create_profile(db_session, name="김철수", email="kim@example.com")
    await add_member(db_session, fund, lp, units=10)

    resp = await _generate(client, fund.id, "lpa_consent_form")
    assert resp.status_code == 200

    resp = await client.get(
        f"{_base(fund.id, 'lpa_consent_form')}/{resp.headers['X-Document-Id']}", headers=ADMIN_HEADERS,
    )
    appendices = resp.json()["processed_content"]["appendices"]
    assert [a["member"] for a in appendices] == ["김철수"]
    assert "출자좌수: 10좌" in appendices[0]["sections"][0]["text"]


@pytest.mark.asyncio
async def test_personal_info_form_needs_an_individual_lp(client: AsyncClient, db_session, admin, fund):
    corp = await create_profile(
        db_session, name="(주)투자", email="corp@example.com",
        entity_type=EntityType.CORPORATE, business_number="123-45-67890",
    )
    await add_member(db_session, fund, corp)

    resp = await _generate(client, fund.id, "personal_info_consent_form")
    assert resp.status_code == 400

    person = await create_profile(db_session, name="이영희", email="lee@example.com", birth_date="1990-02-03")
    await add_member(db_session, fund, person)

    resp = await _generate(client, fund.id, "personal_info_consent_form")
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_member_list_versions_and_soft_delete(client: AsyncClient, db_session, admin, fund):
    resp = await _generate(client, fund.id, "member_list")
    assert resp.status_code == 400  # assembly_date is required

    a = await create_profile(db_session, name="김철수", email="kim@example.com")
    await add_member(db_session, fund, a, units=10)

    first = await _generate(client, fund.id, "member_list", assembly_date="2026-05-01")
    assert first.status_code == 200

    # Same inputs still produce a new snapshot
    second = await _generate(client, fund.id, "member_list", assembly_date="2026-05-01")
    assert second.status_code == 200
    assert second.headers["X-Version-Number"] == "2"

    # Soft delete, even for the latest
    resp = await client.delete(
        f"{_base(fund.id, 'member_list')}/{second.headers['X-Document-Id']}", headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 200
    assert resp.json()["delete_type"] == "soft"

    resp = await client.get(_base(fund.id, "member_list"), headers=ADMIN_HEADERS)
    assert [d["version_number"] for d in resp.json()] == [1]
    resp = await client.get(_base(fund.id, "member_list"), params={"include_inactive": True}, headers=ADMIN_HEADERS)
    assert [(d["version_number"], d["is_active"]) for d in resp.json()] == [(2, False), (1, True)]

    third = await _generate(client, fund.id, "member_list", assembly_date="2026-05-02")
    assert third.headers["X-Version-Number"] == "3"


@pytest.mark.asyncio
async def test_diff_between_versions(client: AsyncClient, db_session, admin, fund):
    a = await create_profile(db_session, name="김철수", email="kim@example.com")
    await add_member(db_session, fund, a, units=10)
    first = await _generate(client, fund.id, "member_list", assembly_date="2026-05-01")

    b = await create_profile(db_session, name="이영희", email="lee@example.com")
    await add_member(db_session, fund, b, units=5)
    second = await _generate(client, fund.id, "member_list", assembly_date="2026-05-01")

    base = _base(fund.id, "member_list")
    resp = await client.get(
        f"{base}/diff",
        params={"from": first.headers["X-Document-Id"], "to": second.headers["X-Document-Id"]},
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["from_version"] == "1"
    assert data["to_version"] == "2"
    assert data["summary"] == {"added": 1, "removed": 0, "modified": 0}
    assert data["changes"][0]["path"] == "rows[1]"
    assert data["changes"][0]["display_path"] == "조합원 2"
    assert data["changes"][0]["after"]["name"] == "이영희"

    # A version compared with itself has no changes
    resp = await client.get(
        f"{base}/diff",
        params={"from": first.headers["X-Document-Id"], "to": first.headers["X-Document-Id"]},
        headers=ADMIN_HEADERS,
    )
    assert resp.json()["changes"] == []


@pytest.mark.asyncio
async def test_preview_is_not_stored(client: AsyncClient, admin, fund):
    resp = await client.post(f"{_base(fund.id, 'lpa')}/preview", json={}, headers=ADMIN_HEADERS)
    assert resp.status_code == 200
    assert resp.headers["content-disposition"].startswith("inline")
    assert resp.content.startswith(b"%PDF")

    resp = await client.get(_base(fund.id, "lpa"), headers=ADMIN_HEADERS)
    assert resp.json() == []


@pytest.mark.asyncio
async def test_modified_content_skips_duplicate_check(client: AsyncClient, admin, fund):
    await _generate(client, fund.id, "lpa")
    content = {
        "type": "lpa",
        "title": "${fundName} 규약 (개정)",
        "sections": [{"index": 1, "title": "총칙", "text": "", "sub": []}],
    }
    resp = await _generate(client, fund.id, "lpa", modified_content=content)
    assert resp.status_code == 200

    resp = await client.get(f"{_base(fund.id, 'lpa')}/latest", headers=ADMIN_HEADERS)
    assert resp.json()["processed_content"]["title"] == "테스트 벤처투자조합 1호 규약 (개정)"


@pytest.mark.asyncio
async def test_download_and_signed_url(client: AsyncClient, admin, fund):
    generated = await _generate(client, fund.id, "lpa")
    document_id = generated.headers["X-Document-Id"]

    resp = await client.get(f"{_base(fund.id, 'lpa')}/{document_id}/download", headers=ADMIN_HEADERS)
    assert resp.status_code == 200
    assert resp.content == generated.content

    resp = await client.get(f"{_base(fund.id, 'lpa')}/{document_id}/signed-url", headers=ADMIN_HEADERS)
    assert resp.status_code == 200
    url = resp.json()["url"]
    assert url.startswith("/api/storage/signed?")

    resp = await client.get(url)
    assert resp.status_code == 200
    assert resp.content == generated.content

    # Tampered signature
    resp = await client.get(url[:-4] + "0000")
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_member_downloads_latest_version(client: AsyncClient, db_session, admin, fund):
    me = await create_profile(
        db_session, name="Test User 1", email=AUTH_HEADERS["X-User-Email"], user_id=AUTH_HEADERS["X-User-Id"],
    )
    await add_member(db_session, fund, me)
    await _generate(client, fund.id, "lpa")
    latest = await _generate(client, fund.id, "lpa", force=True)

    resp = await client.get(f"/api/funds/{fund.id}/documents/lpa/download", headers=AUTH_HEADERS)
    assert resp.status_code == 200
    assert resp.content == latest.content

    resp = await client.get(f"/api/funds/{fund.id}", headers=AUTH_HEADERS)
    assert resp.json()["documents_status"]["lpa"]["latest_version"] == 2


# ---------------------------------------------------------------------------
# Template changes between generations
# ---------------------------------------------------------------------------

def _template_content(document_type: str, title: str) -> dict:
    return {
        "type": document_type,
        "title": title,
        "sections": [
            {"index": 1, "title": "총칙", "text": "", "sub": [
                {"index": 1, "title": "명칭", "text": "본 조합은 ${fundName}이라 한다.", "sub": []},
            ]},
        ],
    }


async def _create_template(client: AsyncClient, document_type: str, title: str, activate: bool = False) -> int:
    resp = await client.post(
        "/api/admin/templates",
        json={
            "document_type": document_type,
            "content": _template_content(document_type, title),
            "change_type": "major",
            "activate": activate,
        },
        headers=SYSTEM_ADMIN_HEADERS,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


async def _activate(client: AsyncClient, template_id: int) -> None:
    resp = await client.post(f"/api/admin/templates/{template_id}/activate", headers=SYSTEM_ADMIN_HEADERS)
    assert resp.status_code == 200, resp.text


async def _is_duplicate(client: AsyncClient, fund_id: int, document_type: str) -> bool:
    resp = await client.get(f"{_base(fund_id, document_type)}/check-duplicate", headers=ADMIN_HEADERS)
    assert resp.status_code == 200
    return resp.json()["is_duplicate"]


@pytest.mark.asyncio
async def test_lpa_uses_template_drafted_earlier_and_activated_later(
    client: AsyncClient, admin, system_admin, fund,
):
    template_id = await _create_template(client, "lpa", "개정 조합 규약")

    first = await _generate(client, fund.id, "lpa")
    assert first.status_code == 200
    assert await _is_duplicate(client, fund.id, "lpa") is True

    await _activate(client, template_id)
    assert await _is_duplicate(client, fund.id, "lpa") is False

    second = await _generate(client, fund.id, "lpa")
    assert second.status_code == 200
    assert second.headers["X-Version-Number"] == "2"

    detail = (await client.get(
        f"{_base(fund.id, 'lpa')}/{second.headers['X-Document-Id']}", headers=ADMIN_HEADERS,
    )).json()
    assert detail["template_id"] == template_id
    assert detail["processed_content"]["title"] == "개정 조합 규약"

    # The new version now carries over; nothing else changed
    assert (await _generate(client, fund.id, "lpa")).status_code == 409


@pytest.mark.asyncio
async def test_lpa_follows_reactivated_older_template(client: AsyncClient, admin, system_admin, fund):
    original = await _create_template(client, "lpa", "조합 규약 A", activate=True)
    assert (await _generate(client, fund.id, "lpa")).status_code == 200

    await _create_template(client, "lpa", "조합 규약 B", activate=True)
    assert (await _generate(client, fund.id, "lpa")).status_code == 200

    await _activate(client, original)
    assert await _is_duplicate(client, fund.id, "lpa") is False

    third = await _generate(client, fund.id, "lpa")
    assert third.status_code == 200
    assert third.headers["X-Version-Number"] == "3"
    detail = (await client.get(
        f"{_base(fund.id, 'lpa')}/{third.headers['X-Document-Id']}", headers=ADMIN_HEADERS,
    )).json()
    assert detail["template_id"] == original
    assert detail["processed_content"]["title"] == "조합 규약 A"


@pytest.mark.asyncio
async def test_consent_form_not_duplicate_after_template_activation(
    client: AsyncClient, db_session, admin, system_admin, fund,
):
    lp = await create_profile(db_session, name="김철수", email="kim@example.com")
    await add_member(db_session, fund, lp, units=10)
    template_id = await _create_template(client, "lpa_consent_form", "개정 규약 동의서")

    assert (await _generate(client, fund.id, "lpa_consent_form")).status_code == 200
    assert await _is_duplicate(client, fund.id, "lpa_consent_form") is True

    await _activate(client, template_id)
    assert await _is_duplicate(client, fund.id, "lpa_consent_form") is False

    resp = await _generate(client, fund.id, "lpa_consent_form")
    assert resp.status_code == 200
    assert resp.headers["X-Version-Number"] == "2"


# ---------------------------------------------------------------------------
# Storage failures
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_oversize_pdf_is_stored_without_file(client: AsyncClient, admin, fund, monkeypatch):
    monkeypatch.setattr(settings, "MAX_PDF_SIZE", 10)

    resp = await _generate(client, fund.id, "lpa")
    assert resp.status_code == 200
    document_id = resp.headers["X-Document-Id"]

    detail = (await client.get(f"{_base(fund.id, 'lpa')}/{document_id}", headers=ADMIN_HEADERS)).json()
    assert detail["pdf_storage_path"] is None

    # Downloads re-render from the stored content
    resp = await client.get(f"{_base(fund.id, 'lpa')}/{document_id}/download", headers=ADMIN_HEADERS)
    assert resp.status_code == 200
    assert resp.content.startswith(b"%PDF")

    resp = await client.get(f"{_base(fund.id, 'lpa')}/{document_id}/signed-url", headers=ADMIN_HEADERS)
    assert resp.status_code == 404
