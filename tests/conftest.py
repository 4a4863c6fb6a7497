"""Shared fixtures: a throwaway SQLite database per test and a scripted model."""

import os
import tempfile

# Settings are read at import time; these must be in place before any app import.
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STORAGE_ROOT", tempfile.mkdtemp(prefix="learnvault-test-"))
os.environ.setdefault("OPENROUTER_API_KEY", "")

import json
import uuid
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import app.models  # noqa: F401  (registers every table on Base.metadata)
from app.database import Base, utcnow
from app.models.insights import PersonalInsight
from app.models.user import User
from app.services.ai_service import AIService
from app.services.background import ProfileResyncQueue
from app.services.context_embeddings import ContextEmbeddingService
from app.services.personal_insights import PersonalInsightsService
from app.services.preference_profile import PreferenceProfileService


SAMPLE_INSIGHTS = [
    {
        "title": "Evening study sessions stick",
        "summary": "You finish more lessons after 6pm.",
        "full_content": "Across the last month most completed lessons were opened in the evening.",
        "category": "learning_pattern",
        "confidence": "high",
    },
    {
        "title": "Python fundamentals are a strength",
        "summary": "Your Python course is nearly done.",
        "full_content": "You have completed most of the Python course with steady progress.",
        "category": "strength",
    },
]


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def seed(session_factory):
    """Insert ORM objects in one transaction and hand them back."""

    async def _seed(*objects):
        async with session_factory() as db:
            db.add_all(objects)
            await db.commit()
        return objects

    return _seed


@pytest.fixture
async def user(seed):
    (row,) = await seed(User(id=uuid.uuid4(), email=f"{uuid.uuid4().hex}@example.com", name="Ada Learner"))
    return row


@pytest.fixture
def make_insight():
    def _make(user_id, hours_ago=0, **overrides):
        fields = {
            "user_id": user_id,
            "title": "Steady weekly progress",
            "summary": "You log in most weekdays.",
            "full_content": "Your activity is spread evenly across the week.",
            "category": "learning_pattern",
            "confidence": "medium",
            "status": "active",
            "reaction": None,
            "generated_at": utcnow() - timedelta(hours=hours_ago),
        }
        fields.update(overrides)
        return PersonalInsight(**fields)

    return _make


@pytest.fixture
def fake_ai():
    ai = AsyncMock(spec=AIService)
    ai.generate_response.return_value = json.dumps(SAMPLE_INSIGHTS)
    ai.generate_embedding.return_value = [0.1] * 768
    return ai


@pytest.fixture
def embeddings():
    return AsyncMock(spec=ContextEmbeddingService)


@pytest.fixture
def profile_service(session_factory, embeddings):
    return PreferenceProfileService(session_factory, embeddings)


@pytest.fixture
def resync_queue(profile_service):
    return ProfileResyncQueue(profile_service.resync)


@pytest.fixture
def insights_service(session_factory, fake_ai, resync_queue):
    return PersonalInsightsService(session_factory, fake_ai, resync_queue)
