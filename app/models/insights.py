import uuid
from datetime import datetime
from sqlalchemy import String, DateTime, Text, Uuid, func, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, JSONType, utcnow

INSIGHT_CATEGORIES = (
    "growth_opportunity",
    "learning_pattern",
    "strength",
    "connection",
    "goal_alignment",
    "recommendation",
)
INSIGHT_CONFIDENCES = ("high", "medium", "low")
INSIGHT_REACTIONS = ("helpful", "not_helpful")
INSIGHT_STATUSES = ("active", "saved", "dismissed", "expired")


class PersonalInsight(Base):
    __tablename__ = "personal_insights"
    __table_args__ = (Index("ix_personal_insights_user_status", "user_id", "status"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    summary: Mapped[str | None] = mapped_column(Text)
    full_content: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(50), nullable=False)  # see INSIGHT_CATEGORIES
    confidence: Mapped[str] = mapped_column(String(20), default="medium")  # high | medium | low
    source_summary: Mapped[dict | None] = mapped_column(JSONType)  # {conversations, courses, contextItems, notes, aiInteractions, certificates}
    reaction: Mapped[str | None] = mapped_column(String(20))  # helpful | not_helpful
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)  # active | saved | dismissed | expired
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    saved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    dismissed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
