import uuid
from datetime import datetime
from sqlalchemy import String, DateTime, Uuid, func, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, JSONType, utcnow

PERSONAL_CONTEXT_LABEL = "Personal Context"


class UserCollection(Base):
    __tablename__ = "user_collections"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class UserContextItem(Base):
    __tablename__ = "user_context_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    collection_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("user_collections.id", ondelete="SET NULL"))
    type: Mapped[str] = mapped_column(String(50), nullable=False)  # CUSTOM_CONTEXT | FILE | PROFILE | AI_INSIGHT
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[dict | str | None] = mapped_column(JSONType)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now()
    )
