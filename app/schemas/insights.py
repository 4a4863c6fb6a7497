import uuid
from datetime import datetime
from pydantic import BaseModel
from typing import Optional, Literal

InsightReaction = Literal["helpful", "not_helpful"]


class SourceSummary(BaseModel):
    conversations: int = 0
    courses: int = 0
    contextItems: int = 0
    notes: int = 0
    aiInteractions: int = 0
    certificates: int = 0


class PersonalInsightResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    title: str
    summary: Optional[str] = None
    full_content: Optional[str] = None
    category: str
    confidence: str
    source_summary: Optional[SourceSummary] = None
    reaction: Optional[InsightReaction] = None
    status: Literal["active", "saved", "dismissed", "expired"]
    generated_at: datetime
    saved_at: Optional[datetime] = None
    dismissed_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class GenerateInsightsRequest(BaseModel):
    novelty_mode: bool = False


class ReactionRequest(BaseModel):
    reaction: InsightReaction


class ActionResult(BaseModel):
    success: bool
    error: Optional[str] = None


class RegenerationDecision(BaseModel):
    should_regenerate: bool
    last_generated: Optional[datetime] = None
    active_count: int = 0
    reason: Literal["no_insights", "stale", "fresh"]
