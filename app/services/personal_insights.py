"""
Personal Insights - generation, storage and lifecycle of a learner's
AI-written insights.

A user has at most one active batch. generate() writes nothing unless the
model returned a non-empty JSON array; the expiry of the previous batch and
the insert of the new one happen in the same transaction. Reactions and
dismissals hand a profile resync to the background queue and return at once.
"""
import logging
import uuid
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import func, or_, select, update

from app.config import settings
from app.core.exceptions import GenerationErrorCode, InsightGenerationError
from app.database import SessionFactory, as_utc, utcnow
from app.models.ai import AiLog
from app.models.context import PERSONAL_CONTEXT_LABEL, UserCollection, UserContextItem
from app.models.insights import PersonalInsight
from app.schemas.insights import ActionResult, RegenerationDecision
from app.schemas.profile import AI_INSIGHT_ITEM_TYPE, SavedInsightContent
from app.services.activity_aggregator import gather_activity
from app.services.ai_service import AIService, load_agent_config, parse_insights_json
from app.services.background import ProfileResyncQueue
from app.services.prompt_builder import build_insights_prompt

logger = logging.getLogger(__name__)

AGENT_TYPE = "personal_insights_agent"
PAGE_CONTEXT = "personal_insights"
PAST_REACTIONS_LIMIT = 50
PREVIOUS_INSIGHTS_LIMIT = 15

INSIGHT_NOT_FOUND = "Insight not found"
INSIGHT_EXPIRED = "Insight has expired"


class PersonalInsightsService:
    def __init__(self, session_factory: SessionFactory, ai: AIService, resync_queue: ProfileResyncQueue):
        self._session_factory = session_factory
        self._ai = ai
        self._resync_queue = resync_queue

    # ── Generation ───────────────────────────────────────────────────────────

    async def generate(self, user_id: uuid.UUID, novelty_mode: bool = False) -> List[PersonalInsight]:
        """Generate a fresh batch of insights.

        Returns the inserted rows, or [] when there is no activity or anything
        fails. On [] the user's existing insights are left untouched.
        """
        try:
            snapshot = await gather_activity(self._session_factory, user_id)
            if snapshot is None:
                return []

            async with self._session_factory() as db:
                past_reactions = (
                    await db.execute(
                        select(PersonalInsight)
                        .where(
                            PersonalInsight.user_id == user_id,
                            or_(PersonalInsight.reaction.is_not(None), PersonalInsight.status == "dismissed"),
                        )
                        .order_by(PersonalInsight.generated_at.desc())
                        .limit(PAST_REACTIONS_LIMIT)
                    )
                ).scalars().all()

                previous_insights = []
                if novelty_mode:
                    previous_insights = (
                        await db.execute(
                            select(PersonalInsight)
                            .where(PersonalInsight.user_id == user_id, PersonalInsight.status == "active")
                            .order_by(PersonalInsight.generated_at.desc())
                            .limit(PREVIOUS_INSIGHTS_LIMIT)
                        )
                    ).scalars().all()

                agent = await load_agent_config(db, AGENT_TYPE)

            prompt = build_insights_prompt(snapshot, past_reactions, previous_insights, novelty_mode)
            response = await self._ai.generate_response(
                agent.model, prompt, system_instruction=agent.system_instruction
            )
            await self._log_call(user_id, agent.model, prompt, response, snapshot.source_summary.model_dump())

            items = parse_insights_json(response)
            if not isinstance(items, list) or not items:
                logger.warning("Model returned no insights for user %s", user_id)
                return []
            if not all(isinstance(item, dict) for item in items):
                raise InsightGenerationError(
                    GenerationErrorCode.MALFORMED_RESPONSE, "Insight array contains non-object entries"
                )

            source_summary = snapshot.source_summary.model_dump()
            rows = [
                PersonalInsight(
                    user_id=user_id,
                    title=item.get("title"),
                    summary=item.get("summary"),
                    full_content=item.get("full_content"),
                    category=item.get("category"),
                    confidence=item.get("confidence") or "medium",
                    source_summary=source_summary,
                    status="active",
                    reaction=None,
                    saved_at=None,
                    dismissed_at=None,
                )
                for item in items
            ]

            async with self._session_factory() as db:
                try:
                    await db.execute(
                        update(PersonalInsight)
                        .where(PersonalInsight.user_id == user_id, PersonalInsight.status == "active")
                        .values(status="expired")
                    )
                    db.add_all(rows)
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise

            logger.info("Generated %d insights for user %s (novelty=%s)", len(rows), user_id, novelty_mode)
            return rows
        except InsightGenerationError as e:
            logger.error("Insight generation failed for user %s: %s", user_id, e)
            return []
        except Exception:
            logger.exception("Insight generation failed for user %s", user_id)
            return []

    async def _log_call(self, user_id: uuid.UUID, model: str, prompt: str, response: str, sources: dict) -> None:
        try:
            async with self._session_factory() as db:
                db.add(
                    AiLog(
                        user_id=user_id,
                        agent_type=AGENT_TYPE,
                        page_context=PAGE_CONTEXT,
                        prompt=prompt,
                        response=response,
                        metadata_json={"model": model, "sources": sources},
                    )
                )
                await db.commit()
        except Exception:
            logger.warning("Could not record AI log for user %s", user_id, exc_info=True)

    # ── Reads ────────────────────────────────────────────────────────────────

    async def fetch_active(self, user_id: uuid.UUID) -> List[PersonalInsight]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(PersonalInsight)
                .where(PersonalInsight.user_id == user_id, PersonalInsight.status == "active")
                .order_by(PersonalInsight.generated_at.desc())
            )
            return list(result.scalars().all())

    async def fetch_past(self, user_id: uuid.UUID) -> List[PersonalInsight]:
        """Expired and saved insights generated within the last PAST_INSIGHTS_DAYS."""
        cutoff = utcnow() - timedelta(days=settings.PAST_INSIGHTS_DAYS)
        async with self._session_factory() as db:
            result = await db.execute(
                select(PersonalInsight)
                .where(
                    PersonalInsight.user_id == user_id,
                    PersonalInsight.status.in_(("expired", "saved")),
                    PersonalInsight.generated_at >= cutoff,
                )
                .order_by(PersonalInsight.generated_at.desc())
            )
            return list(result.scalars().all())

    async def should_regenerate(self, user_id: uuid.UUID) -> RegenerationDecision:
        async with self._session_factory() as db:
            active_count, last_generated = (
                await db.execute(
                    select(func.count(PersonalInsight.id), func.max(PersonalInsight.generated_at))
                    .where(PersonalInsight.user_id == user_id, PersonalInsight.status == "active")
                )
            ).one()

        if not active_count or last_generated is None:
            return RegenerationDecision(should_regenerate=True, active_count=0, reason="no_insights")

        last_generated = as_utc(last_generated)
        if utcnow() - last_generated > timedelta(hours=settings.INSIGHT_STALE_HOURS):
            return RegenerationDecision(
                should_regenerate=True, last_generated=last_generated, active_count=active_count, reason="stale"
            )
        return RegenerationDecision(
            should_regenerate=False, last_generated=last_generated, active_count=active_count, reason="fresh"
        )

    # ── User actions ─────────────────────────────────────────────────────────

    async def _get_owned(self, db, insight_id: uuid.UUID, user_id: uuid.UUID) -> Optional[PersonalInsight]:
        result = await db.execute(
            select(PersonalInsight).where(PersonalInsight.id == insight_id, PersonalInsight.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def save_to_context(self, insight_id: uuid.UUID, user_id: uuid.UUID) -> ActionResult:
        """Copy the insight into the user's context items and mark it saved."""
        try:
            async with self._session_factory() as db:
                insight = await self._get_owned(db, insight_id, user_id)
                if not insight:
                    return ActionResult(success=False, error=INSIGHT_NOT_FOUND)

                collection_id = (
                    await db.execute(
                        select(UserCollection.id)
                        .where(UserCollection.user_id == user_id, UserCollection.label == PERSONAL_CONTEXT_LABEL)
                        .limit(1)
                    )
                ).scalar_one_or_none()

                generated_at = as_utc(insight.generated_at)
                content = SavedInsightContent(
                    insight=insight.full_content,
                    category=insight.category,
                    generated_at=generated_at.isoformat() if generated_at else None,
                )
                db.add(
                    UserContextItem(
                        user_id=user_id,
                        collection_id=collection_id,
                        type=AI_INSIGHT_ITEM_TYPE,
                        title=insight.title,
                        content=content.model_dump(mode="json"),
                    )
                )
                if insight.status != "saved":
                    insight.status = "saved"
                    insight.saved_at = utcnow()
                await db.commit()
            return ActionResult(success=True)
        except Exception as e:
            logger.exception("Saving insight %s to context failed", insight_id)
            return ActionResult(success=False, error=str(e))

    async def dismiss(self, insight_id: uuid.UUID, user_id: uuid.UUID) -> ActionResult:
        async with self._session_factory() as db:
            insight = await self._get_owned(db, insight_id, user_id)
            if not insight:
                return ActionResult(success=False, error=INSIGHT_NOT_FOUND)
            if insight.status != "dismissed":
                insight.status = "dismissed"
                insight.dismissed_at = utcnow()
                await db.commit()

        self._resync_queue.submit(user_id)
        return ActionResult(success=True)

    async def react(self, insight_id: uuid.UUID, reaction: str, user_id: uuid.UUID) -> ActionResult:
        """Record helpful / not_helpful. Status is unchanged; expired insights are read-only."""
        async with self._session_factory() as db:
            insight = await self._get_owned(db, insight_id, user_id)
            if not insight:
                return ActionResult(success=False, error=INSIGHT_NOT_FOUND)
            if insight.status == "expired":
                return ActionResult(success=False, error=INSIGHT_EXPIRED)
            insight.reaction = reaction
            await db.commit()

        self._resync_queue.submit(user_id)
        return ActionResult(success=True)
