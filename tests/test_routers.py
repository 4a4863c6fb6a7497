"""HTTP tests for the personal insights API (httpx over ASGI, services overridden)."""

import uuid
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.security import create_access_token
from app.database import get_db, utcnow
from app.dependencies import get_current_active_user, get_insights_service, get_profile_service
from app.main import app
from app.models.insights import PersonalInsight
from app.schemas.insights import ActionResult, RegenerationDecision
from app.services.personal_insights import INSIGHT_EXPIRED, INSIGHT_NOT_FOUND

BASE = "/api/v1/personal-insights"


@pytest.fixture
def current_user():
    return SimpleNamespace(id=uuid.uuid4(), is_active=True)


@pytest.fixture
def service():
    mock = MagicMock()
    for name in ("generate", "fetch_active", "fetch_past", "should_regenerate",
                 "save_to_context", "dismiss", "react"):
        setattr(mock, name, AsyncMock())
    return mock


@pytest.fixture
def profiles():
    mock = MagicMock()
    mock.resync = AsyncMock(return_value=ActionResult(success=True))
    return mock


@pytest.fixture
async def client(current_user, service, profiles):
    app.dependency_overrides[get_current_active_user] = lambda: current_user
    app.dependency_overrides[get_insights_service] = lambda: service
    app.dependency_overrides[get_profile_service] = lambda: profiles
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def _insight(user_id, **overrides):
    now = utcnow()
    fields = dict(
        id=uuid.uuid4(),
        user_id=user_id,
        title="Evening study sessions stick",
        summary="You finish more lessons after 6pm.",
        full_content="Most completed lessons were opened in the evening.",
        category="learning_pattern",
        confidence="high",
        source_summary={"conversations": 2, "courses": 1, "contextItems": 0, "notes": 3,
                        "aiInteractions": 5, "certificates": 0},
        reaction=None,
        status="active",
        generated_at=now,
        saved_at=None,
        dismissed_at=None,
        created_at=now,
    )
    fields.update(overrides)
    return PersonalInsight(**fields)


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_generate_passes_novelty_flag(client, service, current_user):
    service.generate.return_value = [_insight(current_user.id)]

    response = await client.post(f"{BASE}/generate", json={"novelty_mode": True})

    assert response.status_code == 200
    (body,) = response.json()
    assert body["title"] == "Evening study sessions stick"
    assert body["source_summary"]["notes"] == 3
    service.generate.assert_awaited_once_with(current_user.id, novelty_mode=True)


@pytest.mark.asyncio
async def test_generate_nothing_is_an_empty_list(client, service):
    service.generate.return_value = []
    response = await client.post(f"{BASE}/generate", json={})
    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
async def test_list_active_and_past(client, service, current_user):
    service.fetch_active.return_value = [_insight(current_user.id)]
    service.fetch_past.return_value = [_insight(current_user.id, status="saved", saved_at=utcnow())]

    active = await client.get(f"{BASE}/")
    past = await client.get(f"{BASE}/past")

    assert [i["status"] for i in active.json()] == ["active"]
    assert [i["status"] for i in past.json()] == ["saved"]


@pytest.mark.asyncio
async def test_regeneration_decision(client, service):
    service.should_regenerate.return_value = RegenerationDecision(
        should_regenerate=True, last_generated=utcnow() - timedelta(hours=30), active_count=6, reason="stale"
    )

    body = (await client.get(f"{BASE}/regeneration")).json()

    assert body["should_regenerate"] is True
    assert body["reason"] == "stale"
    assert body["active_count"] == 6


@pytest.mark.asyncio
async def test_save_and_dismiss(client, service, current_user):
    insight_id = uuid.uuid4()
    service.save_to_context.return_value = ActionResult(success=True)
    service.dismiss.return_value = ActionResult(success=True)

    saved = await client.post(f"{BASE}/{insight_id}/save")
    dismissed = await client.post(f"{BASE}/{insight_id}/dismiss")

    assert saved.json() == {"success": True, "error": None}
    assert dismissed.status_code == 200
    service.save_to_context.assert_awaited_once_with(insight_id, current_user.id)
    service.dismiss.assert_awaited_once_with(insight_id, current_user.id)


@pytest.mark.asyncio
async def test_unknown_insight_is_404(client, service):
    service.dismiss.return_value = ActionResult(success=False, error=INSIGHT_NOT_FOUND)
    response = await client.post(f"{BASE}/{uuid.uuid4()}/dismiss")
    assert response.status_code == 404
    assert response.json()["detail"] == INSIGHT_NOT_FOUND


@pytest.mark.asyncio
async def test_reaction(client, service, current_user):
    insight_id = uuid.uuid4()
    service.react.return_value = ActionResult(success=True)

    response = await client.post(f"{BASE}/{insight_id}/reaction", json={"reaction": "not_helpful"})

    assert response.status_code == 200
    service.react.assert_awaited_once_with(insight_id, "not_helpful", current_user.id)


@pytest.mark.asyncio
async def test_reaction_on_expired_insight_conflicts(client, service):
    service.react.return_value = ActionResult(success=False, error=INSIGHT_EXPIRED)
    response = await client.post(f"{BASE}/{uuid.uuid4()}/reaction", json={"reaction": "helpful"})
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_reaction_value_is_validated(client, service):
    response = await client.post(f"{BASE}/{uuid.uuid4()}/reaction", json={"reaction": "love_it"})
    assert response.status_code == 422
    service.react.assert_not_awaited()


@pytest.mark.asyncio
async def test_profile_resync(client, profiles, current_user):
    response = await client.post(f"{BASE}/profile/resync")
    assert response.json() == {"success": True, "error": None}
    profiles.resync.assert_awaited_once_with(current_user.id)


# ── authentication (real token check against the test database) ─────────────

@pytest.fixture
async def auth_client(session_factory, service):
    async def _db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_insights_service] = lambda: service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_missing_token_is_rejected(auth_client):
    response = await auth_client.get(f"{BASE}/")
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(auth_client):
    response = await auth_client.get(f"{BASE}/", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_for_unknown_user_is_rejected(auth_client):
    token = create_access_token(str(uuid.uuid4()))
    response = await auth_client.get(f"{BASE}/", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_valid_token_resolves_user(auth_client, service, user):
    service.fetch_active.return_value = []
    token = create_access_token(str(user.id))

    response = await auth_client.get(f"{BASE}/", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert service.fetch_active.await_args.args[0] == user.id
