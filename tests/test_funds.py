"""Tests for fund administration and the member-facing fund endpoints."""
import pytest
from httpx import AsyncClient

from fundhub.models.database_models import FundStatus
from tests.conftest import (
    ADMIN_HEADERS,
    AUTH_HEADERS,
    add_member,
    create_fund,
    create_profile,
)


@pytest.mark.asyncio
async def test_create_fund(client: AsyncClient, admin):
    resp = await client.post(
        "/api/admin/funds",
        json={
            "name": "프론트원 벤처투자조합 2호",
            "abbreviation": "프론트원2호",
            "par_value": 1000000,
            "total_cap": 500000000,
            "min_units": 5,
        },
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["name"] == "프론트원 벤처투자조합 2호"
    assert data["status"] == "ready"
    assert data["closed_at"] is None
    assert data["gp_id"] == []
    assert data["member_count"] == 0
    assert isinstance(data["id"], int)


@pytest.mark.asyncio
async def test_create_fund_validation_error_is_400(client: AsyncClient, admin):
    resp = await client.post("/api/admin/funds", json={"name": ""}, headers=ADMIN_HEADERS)
    assert resp.status_code == 400
    assert "name" in resp.json()["error"]


@pytest.mark.asyncio
async def test_update_fund_accepts_any_status(client: AsyncClient, admin, fund):
    resp = await client.put(
        f"/api/admin/funds/{fund.id}",
        json={"status": "closed", "closed_at": "2026-06-30"},
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "closed"
    assert resp.json()["closed_at"] == "2026-06-30"

    # No state machine: closed → ready is allowed
    resp = await client.put(
        f"/api/admin/funds/{fund.id}", json={"status": "ready"}, headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "ready"


@pytest.mark.asyncio
async def test_update_fund_clears_closing_date(client: AsyncClient, admin, fund):
    resp = await client.put(
        f"/api/admin/funds/{fund.id}", json={"closed_at": ""}, headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 200
    assert resp.json()["closed_at"] is None


@pytest.mark.asyncio
async def test_get_unknown_fund_returns_404(client: AsyncClient, admin):
    resp = await client.get("/api/admin/funds/999999", headers=ADMIN_HEADERS)
    assert resp.status_code == 404
    assert resp.json() == {"error": "Fund 999999 not found."}


@pytest.mark.asyncio
async def test_fund_stats_count_active_members(client: AsyncClient, db_session, admin, fund):
    a = await create_profile(db_session, name="김철수", email="a@example.com")
    b = await create_profile(db_session, name="이영희", email="b@example.com")
    await add_member(db_session, fund, a, units=10)
    await add_member(db_session, fund, b, units=5)

    resp = await client.get(f"/api/admin/funds/{fund.id}", headers=ADMIN_HEADERS)
    assert resp.status_code == 200
    assert resp.json()["member_count"] == 2
    assert resp.json()["total_units"] == 15


@pytest.mark.asyncio
async def test_display_lists_only_open_funds(client: AsyncClient, db_session):
    open_fund = await create_fund(db_session, name="모집중 조합", status=FundStatus.PROCESSING)
    await create_fund(db_session, name="운용중 조합", status=FundStatus.ACTIVE)

    resp = await client.get("/api/funds/display")
    assert resp.status_code == 200
    assert [f["id"] for f in resp.json()] == [open_fund.id]


@pytest.mark.asyncio
async def test_my_funds_lists_memberships_only(client: AsyncClient, db_session):
    mine = await create_fund(db_session, name="내 조합")
    await create_fund(db_session, name="다른 조합")
    me = await create_profile(
        db_session, name="Test User 1", email=AUTH_HEADERS["X-User-Email"], user_id=AUTH_HEADERS["X-User-Id"],
    )
    await add_member(db_session, mine, me, units=3)

    resp = await client.get("/api/funds", headers=AUTH_HEADERS)
    assert resp.status_code == 200
    assert [f["name"] for f in resp.json()] == ["내 조합"]


@pytest.mark.asyncio
async def test_fund_detail_requires_membership(client: AsyncClient, fund):
    resp = await client.get(f"/api/funds/{fund.id}", headers=AUTH_HEADERS)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_fund_detail_for_member(client: AsyncClient, db_session, fund):
    gp = await create_profile(db_session, name="업무집행조합원", email="gp@example.com")
    me = await create_profile(
        db_session, name="Test User 1", email=AUTH_HEADERS["X-User-Email"], user_id=AUTH_HEADERS["X-User-Id"],
    )
    await add_member(db_session, fund, gp, units=1, gp=True)
    await add_member(db_session, fund, me, units=7)

    resp = await client.get(f"/api/funds/{fund.id}", headers=AUTH_HEADERS)
    assert resp.status_code == 200
    data = resp.json()
    assert data["fund"]["id"] == fund.id
    assert data["gp_names"] == ["업무집행조합원"]
    assert data["my_units"] == 7
    assert set(data["documents_status"]) == {
        "lpa", "lpa_consent_form", "personal_info_consent_form", "member_list",
    }
    assert data["documents_status"]["lpa"]["exists"] is False


@pytest.mark.asyncio
async def test_member_download_before_generation_returns_404(client: AsyncClient, db_session, fund):
    me = await create_profile(
        db_session, name="Test User 1", email=AUTH_HEADERS["X-User-Email"], user_id=AUTH_HEADERS["X-User-Id"],
    )
    await add_member(db_session, fund, me)

    resp = await client.get(f"/api/funds/{fund.id}/documents/lpa/download", headers=AUTH_HEADERS)
    assert resp.status_code == 404
