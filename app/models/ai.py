import uuid
from datetime import datetime
from sqlalchemy import String, DateTime, Text, Uuid, func, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, JSONType, utcnow


class AiLog(Base):
    """One row per agent call made on a learner's behalf."""

    __tablename__ = "ai_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    conversation_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("conversations.id", ondelete="SET NULL"))
    agent_type: Mapped[str | None] = mapped_column(String(100))
    page_context: Mapped[str | None] = mapped_column(String(255))
    prompt: Mapped[str | None] = mapped_column(Text)
    response: Mapped[str | None] = mapped_column(Text)
    metadata_json: Mapped[dict | None] = mapped_column("metadata", JSONType)  # {sources, model}
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class AiSystemPrompt(Base):
    """Per-agent configuration: system instruction and model identifier."""

    __tablename__ = "ai_system_prompts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    agent_type: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    system_instruction: Mapped[str | None] = mapped_column(Text)
    model: Mapped[str | None] = mapped_column(String(255))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now()
    )
