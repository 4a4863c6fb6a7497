import uuid
from fastapi import APIRouter, HTTPException, status

from app.dependencies import CurrentUser, InsightsService, ProfileService
from app.schemas.insights import (
    ActionResult,
    GenerateInsightsRequest,
    PersonalInsightResponse,
    ReactionRequest,
    RegenerationDecision,
)
from app.core.exceptions import NotFoundException
from app.services.personal_insights import INSIGHT_EXPIRED, INSIGHT_NOT_FOUND

router = APIRouter()


def _raise_for(result: ActionResult) -> ActionResult:
    if result.success:
        return result
    if result.error == INSIGHT_NOT_FOUND:
        raise NotFoundException(INSIGHT_NOT_FOUND)
    if result.error == INSIGHT_EXPIRED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=INSIGHT_EXPIRED)
    return result


@router.post("/generate", response_model=list[PersonalInsightResponse])
async def generate_insights(payload: GenerateInsightsRequest, current_user: CurrentUser, service: InsightsService):
    """Generate a new batch of personal insights; an empty list means nothing was generated."""
    return await service.generate(current_user.id, novelty_mode=payload.novelty_mode)


@router.get("/", response_model=list[PersonalInsightResponse])
async def list_active_insights(current_user: CurrentUser, service: InsightsService):
    return await service.fetch_active(current_user.id)


@router.get("/past", response_model=list[PersonalInsightResponse])
async def list_past_insights(current_user: CurrentUser, service: InsightsService):
    return await service.fetch_past(current_user.id)


@router.get("/regeneration", response_model=RegenerationDecision)
async def regeneration_status(current_user: CurrentUser, service: InsightsService):
    return await service.should_regenerate(current_user.id)


@router.post("/{insight_id}/save", response_model=ActionResult)
async def save_insight(insight_id: uuid.UUID, current_user: CurrentUser, service: InsightsService):
    """Bookmark an insight into the user's Personal Context collection."""
    return _raise_for(await service.save_to_context(insight_id, current_user.id))


@router.post("/{insight_id}/dismiss", response_model=ActionResult)
async def dismiss_insight(insight_id: uuid.UUID, current_user: CurrentUser, service: InsightsService):
    return _raise_for(await service.dismiss(insight_id, current_user.id))


@router.post("/{insight_id}/reaction", response_model=ActionResult)
async def react_to_insight(
    insight_id: uuid.UUID, payload: ReactionRequest, current_user: CurrentUser, service: InsightsService
):
    return _raise_for(await service.react(insight_id, payload.reaction, current_user.id))


@router.post("/profile/resync", response_model=ActionResult)
async def resync_profile(current_user: CurrentUser, profiles: ProfileService):
    """Rebuild the preference profile now instead of waiting for the next reaction."""
    return await profiles.resync(current_user.id)
