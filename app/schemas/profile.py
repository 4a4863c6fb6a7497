"""Documents stored in ``user_context_items.content`` for AI_INSIGHT items.

Context item content is shaped by the item's ``type``; the two AI_INSIGHT
shapes written by the insights pipeline are modelled here. Keys are stored in
camelCase to stay readable by the web client.
"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Dict, List, Literal, Optional

PROFILE_TITLE = "Reaction Preference Profile"
PROFILE_TYPE = "REACTION_PREFERENCE_PROFILE"
AI_INSIGHT_ITEM_TYPE = "AI_INSIGHT"


class CategoryPreference(BaseModel):
    helpful: int = 0
    not_helpful: int = 0
    dismissed: int = 0
    score: float = 0.0


class RecentReaction(BaseModel):
    title: str
    category: str
    reaction: Optional[Literal["helpful", "not_helpful", "dismissed"]] = None
    date: str = ""


class PreferenceProfileContent(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: Literal["REACTION_PREFERENCE_PROFILE"] = PROFILE_TYPE
    last_updated: str
    total_reactions: int
    category_preferences: Dict[str, CategoryPreference]
    topics_liked: List[str]
    topics_disliked: List[str]
    save_rate: float
    dismiss_rate: float
    engagement_level: Literal["low", "medium", "high"]
    recent_reactions: List[RecentReaction]

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class SavedInsightContent(BaseModel):
    insight: Optional[str] = None
    category: str
    generated_at: Optional[str] = None
    source: Literal["personal_insights"] = "personal_insights"
