import uuid
from functools import lru_cache
from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.config import settings
from app.database import AsyncSessionLocal, SessionFactory, get_db
from app.core.exceptions import CredentialsException
from app.core.security import verify_access_token
from app.models.user import User
from app.services.ai_service import AIService
from app.services.background import ProfileResyncQueue
from app.services.context_embeddings import ContextEmbeddingService
from app.services.faiss_service import FAISSService
from app.services.personal_insights import PersonalInsightsService
from app.services.preference_profile import PreferenceProfileService

bearer_scheme = HTTPBearer()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    payload = verify_access_token(credentials.credentials)
    if not payload:
        raise CredentialsException("Invalid or expired token")
    try:
        user_id = uuid.UUID(payload.get("sub") or "")
    except ValueError:
        raise CredentialsException("Invalid token payload")
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise CredentialsException("User not found")
    return user


async def get_current_active_user(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user account",
        )
    return current_user


# ── Service wiring (one instance per process) ─────────────────────────────────

def get_session_factory() -> SessionFactory:
    return AsyncSessionLocal


@lru_cache
def get_ai_service() -> AIService:
    return AIService()


@lru_cache
def get_profile_service() -> PreferenceProfileService:
    embeddings = ContextEmbeddingService(FAISSService(settings.STORAGE_ROOT), get_ai_service())
    return PreferenceProfileService(AsyncSessionLocal, embeddings)


@lru_cache
def get_resync_queue() -> ProfileResyncQueue:
    return ProfileResyncQueue(get_profile_service().resync)


def get_insights_service(
    session_factory: Annotated[SessionFactory, Depends(get_session_factory)],
    ai: Annotated[AIService, Depends(get_ai_service)],
    queue: Annotated[ProfileResyncQueue, Depends(get_resync_queue)],
) -> PersonalInsightsService:
    return PersonalInsightsService(session_factory, ai, queue)


CurrentUser = Annotated[User, Depends(get_current_active_user)]
InsightsService = Annotated[PersonalInsightsService, Depends(get_insights_service)]
ProfileService = Annotated[PreferenceProfileService, Depends(get_profile_service)]
