"""
Preference Profile - condenses a learner's whole reaction history into one
context item ("Reaction Preference Profile") and a natural-language rendering
of it for semantic retrieval.

The profile is recomputed from scratch on every resync; nothing is merged.
"""
import logging
import uuid
from datetime import datetime
from typing import Any, List, Sequence

from sqlalchemy import or_, select

from app.database import SessionFactory, utcnow
from app.models.context import PERSONAL_CONTEXT_LABEL, UserCollection, UserContextItem
from app.models.insights import PersonalInsight
from app.schemas.insights import ActionResult
from app.schemas.profile import (
    AI_INSIGHT_ITEM_TYPE,
    PROFILE_TITLE,
    PROFILE_TYPE,
    CategoryPreference,
    PreferenceProfileContent,
    RecentReaction,
)
from app.services.context_embeddings import ContextEmbeddingService
from app.services.feedback_scorer import compute_category_preferences, extract_topics, round_half_up

logger = logging.getLogger(__name__)

RECENT_REACTIONS_LIMIT = 20
HIGH_ENGAGEMENT = 20
MEDIUM_ENGAGEMENT = 5
PREFERRED_SCORE = 0.6
AVOIDED_SCORE = 0.4


def _percent(value: float) -> int:
    return int(round_half_up(value * 100))


def engagement_level(actioned: int) -> str:
    if actioned >= HIGH_ENGAGEMENT:
        return "high"
    if actioned >= MEDIUM_ENGAGEMENT:
        return "medium"
    return "low"


def build_profile(rows: Sequence[Any], now: datetime) -> PreferenceProfileContent:
    """Build the profile document from reacted/dismissed/saved rows, newest first."""
    prefs = compute_category_preferences(rows)

    helpful_titles = [r.title for r in rows if r.reaction == "helpful"]
    unhelpful_titles = [r.title for r in rows if r.reaction == "not_helpful" or r.status == "dismissed"]

    reacted = sum(1 for r in rows if r.reaction)
    saved = sum(1 for r in rows if r.status == "saved")
    dismissed = sum(1 for r in rows if r.status == "dismissed")
    # an insight that was reacted to and then dismissed counts twice
    actioned = reacted + dismissed
    save_rate = saved / actioned if actioned > 0 else 0.0
    dismiss_rate = dismissed / actioned if actioned > 0 else 0.0

    recent: List[RecentReaction] = []
    for r in rows[:RECENT_REACTIONS_LIMIT]:
        reaction = r.reaction or ("dismissed" if r.status == "dismissed" else None)
        recent.append(
            RecentReaction(
                title=r.title,
                category=r.category,
                reaction=reaction,
                date=r.generated_at.date().isoformat() if r.generated_at else "",
            )
        )

    return PreferenceProfileContent(
        last_updated=now.isoformat(),
        total_reactions=actioned,
        category_preferences={cat: CategoryPreference(**data) for cat, data in prefs.items()},
        topics_liked=extract_topics(helpful_titles),
        topics_disliked=extract_topics(unhelpful_titles),
        save_rate=round_half_up(save_rate, 2),
        dismiss_rate=round_half_up(dismiss_rate, 2),
        engagement_level=engagement_level(actioned),
        recent_reactions=recent,
    )


def render_embedding_text(profile: PreferenceProfileContent) -> str:
    ranked = sorted(profile.category_preferences.items(), key=lambda kv: kv[1].score, reverse=True)

    def label(category: str, pref: CategoryPreference) -> str:
        return f"{category.replace('_', ' ')} ({_percent(pref.score)}%)"

    preferred = [label(c, p) for c, p in ranked if p.score >= PREFERRED_SCORE]
    avoided = [label(c, p) for c, p in ranked if p.score < AVOIDED_SCORE]

    lines = ["User Preference Profile - Learning & Insight Preferences", ""]
    if preferred:
        lines.append(f"This user strongly prefers insights about: {', '.join(preferred)}.")
    if avoided:
        lines.append(f"This user finds less value in insights about: {', '.join(avoided)}.")
    if profile.topics_liked:
        lines.append(f"Topics the user finds helpful: {', '.join(profile.topics_liked)}.")
    if profile.topics_disliked:
        lines.append(f"Topics the user finds unhelpful: {', '.join(profile.topics_disliked)}.")
    lines.append(
        f"The user is {profile.engagement_level}ly engaged with the insight system "
        f"({_percent(profile.save_rate)}% save rate, {_percent(profile.dismiss_rate)}% dismiss rate)."
    )
    lines.append("They prefer actionable, growth-oriented insights over surface-level observations.")
    return "\n".join(lines)


class PreferenceProfileService:
    def __init__(self, session_factory: SessionFactory, embeddings: ContextEmbeddingService):
        self._session_factory = session_factory
        self._embeddings = embeddings

    async def resync(self, user_id: uuid.UUID) -> ActionResult:
        """Recompute the user's preference profile and upsert it with its embedding."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(PersonalInsight)
                    .where(
                        PersonalInsight.user_id == user_id,
                        or_(
                            PersonalInsight.reaction.is_not(None),
                            PersonalInsight.status.in_(("dismissed", "saved")),
                        ),
                    )
                    .order_by(PersonalInsight.generated_at.desc())
                )
                rows = list(result.scalars().all())
                if not rows:
                    return ActionResult(success=True)

                profile = build_profile(rows, utcnow())
                embedding_text = render_embedding_text(profile)

                collection_id = (
                    await db.execute(
                        select(UserCollection.id)
                        .where(UserCollection.user_id == user_id, UserCollection.label == PERSONAL_CONTEXT_LABEL)
                        .limit(1)
                    )
                ).scalar_one_or_none()

                existing = (
                    await db.execute(
                        select(UserContextItem)
                        .where(
                            UserContextItem.user_id == user_id,
                            UserContextItem.type == AI_INSIGHT_ITEM_TYPE,
                            UserContextItem.title == PROFILE_TITLE,
                        )
                        .limit(1)
                    )
                ).scalar_one_or_none()

                if existing:
                    existing.content = profile.to_document()
                    existing.updated_at = utcnow()
                    item_id = existing.id
                else:
                    item = UserContextItem(
                        user_id=user_id,
                        collection_id=collection_id,
                        type=AI_INSIGHT_ITEM_TYPE,
                        title=PROFILE_TITLE,
                        content=profile.to_document(),
                    )
                    db.add(item)
                    await db.flush()
                    item_id = item.id
                await db.commit()

            meta = {"title": PROFILE_TITLE, "profileType": PROFILE_TYPE}
            if existing:
                await self._embeddings.update_context_embeddings(
                    user_id, item_id, AI_INSIGHT_ITEM_TYPE, embedding_text, collection_id, meta
                )
            else:
                await self._embeddings.embed_context_item(
                    user_id, item_id, AI_INSIGHT_ITEM_TYPE, embedding_text, collection_id, meta
                )
            logger.info(
                "Preference profile for user %s rebuilt from %d insights (%s engagement)",
                user_id, len(rows), profile.engagement_level,
            )
            return ActionResult(success=True)
        except Exception as e:
            logger.exception("Preference profile resync failed for user %s", user_id)
            return ActionResult(success=False, error=str(e))
