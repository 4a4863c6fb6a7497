"""
Activity Aggregator - collects everything we know about a learner's recent
activity and reduces it to the summaries the insights prompt is built from.

All source queries are issued concurrently, each on its own session, followed
by one batched query for conversation messages and one for course metadata.
Read-only.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select

from app.database import SessionFactory, as_utc
from app.models.ai import AiLog
from app.models.context import UserContextItem
from app.models.conversation import Conversation, ConversationMessage
from app.models.learning import Certificate, Course, CreditLedgerEntry, Note, UserProgress
from app.schemas.insights import SourceSummary
from app.schemas.profile import AI_INSIGHT_ITEM_TYPE, PROFILE_TITLE
from app.services.feedback_scorer import round_half_up

logger = logging.getLogger(__name__)

CONVERSATION_LIMIT = 50
MESSAGES_PER_CONVERSATION = 5
AI_LOG_LIMIT = 200
NOTE_LIMIT = 50

# System and admin agents say nothing about personal learning behaviour;
# personal_insights_agent would feed the agent its own previous calls.
EXCLUDED_AGENT_TYPES = (
    "generate_recommendations",
    "personal_insights_agent",
    "backend_ai",
    "org_engagement_analyst",
    "learning_roi_advisor",
    "skills_gap_detector",
    "conversation_insights_agent",
    "team_analytics_assistant",
    "org_course_assistant",
    "analytics_assistant",
)


@dataclass
class ConversationSummary:
    title: str
    created_at: Optional[datetime]
    messages: List[Tuple[str, str]]  # (role, content), oldest first, at most 5


@dataclass
class CourseProgressSummary:
    title: str
    percent_complete: int
    last_accessed: Optional[datetime]


@dataclass
class CompletedCourse:
    title: str
    issued_at: Optional[datetime]


@dataclass
class ContextItemSummary:
    type: str
    title: str
    content: Any


@dataclass
class NoteSummary:
    title: str
    content: Any
    created_at: Optional[datetime]


@dataclass
class ActivitySnapshot:
    source_summary: SourceSummary
    context_items: List[ContextItemSummary] = field(default_factory=list)
    in_progress_courses: List[CourseProgressSummary] = field(default_factory=list)
    completed_courses: List[CompletedCourse] = field(default_factory=list)
    watch_seconds: int = 0
    total_credits: int = 0
    certificate_count: int = 0
    conversations: List[ConversationSummary] = field(default_factory=list)
    ai_interaction_count: int = 0
    agent_usage: Dict[str, int] = field(default_factory=dict)
    active_period: Optional[Tuple[datetime, datetime]] = None  # (earliest, latest)
    notes: List[NoteSummary] = field(default_factory=list)

    @property
    def watch_time(self) -> Tuple[int, int]:
        """Total watch time as (hours, minutes)."""
        return self.watch_seconds // 3600, (self.watch_seconds % 3600) // 60


async def _fetch_all(session_factory: SessionFactory, stmt) -> list:
    async with session_factory() as session:
        result = await session.execute(stmt)
        return list(result.scalars().all())


def is_preference_profile_item(item_type: str, title: str) -> bool:
    return item_type == AI_INSIGHT_ITEM_TYPE and title == PROFILE_TITLE


async def gather_activity(session_factory: SessionFactory, user_id: uuid.UUID) -> Optional[ActivitySnapshot]:
    """Aggregate a learner's activity, or return None when there is nothing to analyse."""
    (
        conversations,
        context_items,
        progress_rows,
        certificates,
        ai_logs,
        notes,
        ledger,
    ) = await asyncio.gather(
        _fetch_all(
            session_factory,
            select(Conversation)
            .where(Conversation.user_id == user_id)
            .order_by(Conversation.created_at.desc())
            .limit(CONVERSATION_LIMIT),
        ),
        _fetch_all(session_factory, select(UserContextItem).where(UserContextItem.user_id == user_id)),
        _fetch_all(session_factory, select(UserProgress).where(UserProgress.user_id == user_id)),
        _fetch_all(session_factory, select(Certificate).where(Certificate.user_id == user_id)),
        _fetch_all(
            session_factory,
            select(AiLog)
            .where(AiLog.user_id == user_id, AiLog.agent_type.not_in(EXCLUDED_AGENT_TYPES))
            .order_by(AiLog.created_at.desc())
            .limit(AI_LOG_LIMIT),
        ),
        _fetch_all(
            session_factory,
            select(Note)
            .where(Note.user_id == user_id)
            .order_by(Note.created_at.desc())
            .limit(NOTE_LIMIT),
        ),
        _fetch_all(session_factory, select(CreditLedgerEntry).where(CreditLedgerEntry.user_id == user_id)),
    )

    # Any context item (the preference profile included) means this is not a blank user
    if not (conversations or context_items or progress_rows or certificates or ai_logs or notes):
        logger.info("No activity for user %s; skipping insight generation", user_id)
        return None

    course_ids: List[uuid.UUID] = []
    for row in [*progress_rows, *certificates, *notes]:
        if row.course_id and row.course_id not in course_ids:
            course_ids.append(row.course_id)

    conversation_ids = [c.id for c in conversations]
    messages, courses = await asyncio.gather(
        _fetch_all(
            session_factory,
            select(ConversationMessage)
            .where(ConversationMessage.conversation_id.in_(conversation_ids))
            .order_by(ConversationMessage.created_at.asc()),
        ) if conversation_ids else _empty(),
        _fetch_all(session_factory, select(Course).where(Course.id.in_(course_ids))) if course_ids else _empty(),
    )

    messages_by_conversation: Dict[uuid.UUID, List[ConversationMessage]] = {}
    for msg in messages:
        messages_by_conversation.setdefault(msg.conversation_id, []).append(msg)

    course_titles = {c.id: c.title for c in courses}

    filtered_context = [
        ContextItemSummary(type=item.type, title=item.title, content=item.content)
        for item in context_items
        if not is_preference_profile_item(item.type, item.title)
    ]

    snapshot = ActivitySnapshot(
        source_summary=SourceSummary(
            conversations=len(conversations),
            courses=len(progress_rows),
            contextItems=len(filtered_context),
            notes=len(notes),
            aiInteractions=len(ai_logs),
            certificates=len(certificates),
        ),
        context_items=filtered_context,
    )

    # Learning activity
    completed_ids = {c.course_id for c in certificates}
    progress_by_course: Dict[uuid.UUID, List[UserProgress]] = {}
    for row in progress_rows:
        progress_by_course.setdefault(row.course_id, []).append(row)

    for course_id, rows in progress_by_course.items():
        if course_id is None or course_id in completed_ids:
            continue
        completed_lessons = sum(1 for r in rows if r.is_completed)
        accessed = [as_utc(r.last_accessed) for r in rows if r.last_accessed]
        snapshot.in_progress_courses.append(
            CourseProgressSummary(
                title=course_titles.get(course_id) or "Untitled course",
                percent_complete=int(round_half_up(completed_lessons / len(rows) * 100)),
                last_accessed=max(accessed) if accessed else None,
            )
        )

    for cert in certificates:
        snapshot.completed_courses.append(
            CompletedCourse(
                title=course_titles.get(cert.course_id) or "Untitled course",
                issued_at=as_utc(cert.issued_at),
            )
        )

    snapshot.watch_seconds = sum(r.view_time_seconds or 0 for r in progress_rows)
    snapshot.total_credits = sum(entry.amount or 0 for entry in ledger)
    snapshot.certificate_count = len(certificates)

    # Conversations, newest first, each with its last five messages
    for conv in conversations:
        tail = messages_by_conversation.get(conv.id, [])[-MESSAGES_PER_CONVERSATION:]
        snapshot.conversations.append(
            ConversationSummary(
                title=conv.title or "Untitled",
                created_at=as_utc(conv.created_at),
                messages=[(m.role, m.content or "") for m in tail],
            )
        )

    # AI interaction patterns
    snapshot.ai_interaction_count = len(ai_logs)
    for log in ai_logs:
        agent = log.agent_type or "unknown"
        snapshot.agent_usage[agent] = snapshot.agent_usage.get(agent, 0) + 1
    stamps = sorted(as_utc(log.created_at) for log in ai_logs if log.created_at)
    if stamps:
        snapshot.active_period = (stamps[0], stamps[-1])

    snapshot.notes = [
        NoteSummary(title=n.title or "Untitled", content=n.content, created_at=as_utc(n.created_at))
        for n in notes
    ]
    return snapshot


async def _empty() -> list:
    return []
