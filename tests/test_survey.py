"""Tests for POST /api/funds/submit-application (public survey)."""
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from fundhub.models.database_models import FundMember, FundStatus, Profile
from tests.conftest import AUTH_HEADERS, create_fund, create_profile


def _survey(fund_id: int, **overrides) -> dict:
    survey = {
        "name": "홍길동",
        "phone": "010-9876-5432",
        "email": "Hong@Example.com",
        "address": "부산광역시 해운대구 센텀로 10",
        "entity_type": "individual",
        "birth_date": "1985-05-05",
        "investment_units": 10,
    }
    survey.update(overrides)
    return {"fund_id": fund_id, "survey_data": survey}


@pytest.mark.asyncio
async def test_anonymous_submission_creates_survey_profile(client: AsyncClient, db_session, fund):
    resp = await client.post("/api/funds/submit-application", json=_survey(fund.id))
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True

    profile = (await db_session.execute(select(Profile).where(Profile.id == data["profile_id"]))).scalar_one()
    assert profile.user_id is None
    assert profile.email == "hong@example.com"
    assert profile.birth_date == "1985-05-05"

    member = (await db_session.execute(
        select(FundMember).where(FundMember.id == data["fund_member_id"])
    )).scalar_one()
    assert member.total_units == 10
    assert member.investment_units == 0


@pytest.mark.asyncio
async def test_resubmission_updates_the_same_membership(client: AsyncClient, fund):
    first = await client.post("/api/funds/submit-application", json=_survey(fund.id))
    second = await client.post(
        "/api/funds/submit-application", json=_survey(fund.id, investment_units=25, phone="010-1111-2222"),
    )
    assert second.status_code == 200
    assert second.json()["profile_id"] == first.json()["profile_id"]
    assert second.json()["fund_member_id"] == first.json()["fund_member_id"]


@pytest.mark.asyncio
async def test_corporate_submission_drops_birth_date(client: AsyncClient, db_session, fund):
    resp = await client.post(
        "/api/funds/submit-application",
        json=_survey(
            fund.id,
            entity_type="corporate",
            name="(주)테스트",
            business_number="123-45-67890",
            ceo="대표자",
        ),
    )
    assert resp.status_code == 200
    profile = (await db_session.execute(
        select(Profile).where(Profile.id == resp.json()["profile_id"])
    )).scalar_one()
    assert profile.birth_date is None
    assert profile.business_number == "123-45-67890"


@pytest.mark.asyncio
async def test_units_below_minimum_rejected(client: AsyncClient, db_session):
    fund = await create_fund(db_session, min_units=5)
    resp = await client.post("/api/funds/submit-application", json=_survey(fund.id, investment_units=3))
    assert resp.status_code == 400
    assert "5" in resp.json()["error"]


@pytest.mark.asyncio
async def test_closed_fund_rejects_applications(client: AsyncClient, db_session):
    fund = await create_fund(db_session, status=FundStatus.CLOSED)
    resp = await client.post("/api/funds/submit-application", json=_survey(fund.id))
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_unknown_fund_returns_404(client: AsyncClient):
    resp = await client.post("/api/funds/submit-application", json=_survey(999999))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_invalid_email_is_400(client: AsyncClient, fund):
    resp = await client.post("/api/funds/submit-application", json=_survey(fund.id, email="not-an-email"))
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_anonymous_submission_for_registered_email_rejected(client: AsyncClient, db_session, fund):
    await create_profile(db_session, name="가입자", email="hong@example.com", user_id="registered")
    resp = await client.post("/api/funds/submit-application", json=_survey(fund.id))
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_signed_in_submission_uses_own_profile(client: AsyncClient, db_session, fund):
    me = await create_profile(
        db_session, name="Test User 1", email=AUTH_HEADERS["X-User-Email"], user_id=AUTH_HEADERS["X-User-Id"],
    )
    resp = await client.post(
        "/api/funds/submit-application",
        json=_survey(fund.id, email=AUTH_HEADERS["X-User-Email"]),
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 200
    assert resp.json()["profile_id"] == me.id

    resp = await client.get("/api/funds", headers=AUTH_HEADERS)
    assert [f["id"] for f in resp.json()] == [fund.id]


@pytest.mark.asyncio
async def test_signed_in_submission_claims_survey_profile(client: AsyncClient, db_session, fund):
    survey_profile = await create_profile(db_session, name="홍길동", email="hong@example.com")
    resp = await client.post(
        "/api/funds/submit-application",
        json=_survey(fund.id),
        headers={"X-User-Id": "hong-account"},
    )
    assert resp.status_code == 200
    assert resp.json()["profile_id"] == survey_profile.id
    assert survey_profile.user_id == "hong-account"
