# @TASK P0-T0.5 - PostgreSQL schema and pgvector columns

import uuid
from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from vaultsearch.config import get_settings
from vaultsearch.database import Base

_EMBEDDING_DIMENSION = get_settings().EMBEDDING_DIMENSION


class Category(Base):
    """User-defined category a dump is filed under."""

    __tablename__ = "categories"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    name: Mapped[str] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Dump(Base):
    """A piece of captured content: note, voice transcript, image OCR or e-mail."""

    __tablename__ = "dumps"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    raw_content: Mapped[str] = mapped_column(Text, default="")
    content_type: Mapped[str] = mapped_column(String(20), default="text")
    media_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    ai_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_confidence: Mapped[int | None] = mapped_column(Integer, nullable=True)  # 1-5
    category_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    urgency_level: Mapped[int | None] = mapped_column(Integer, nullable=True)  # 1-4
    processing_status: Mapped[str] = mapped_column(String(20), default="received")
    extracted_entities: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    content_vector: Mapped[list | None] = mapped_column(Vector(_EMBEDDING_DIMENSION), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    category: Mapped[Category | None] = relationship(lazy="joined")

    __table_args__ = (
        CheckConstraint(
            "content_type IN ('text', 'voice', 'image', 'email')",
            name="ck_dumps_content_type",
        ),
        CheckConstraint(
            "processing_status IN ('received', 'processing', 'completed', 'failed')",
            name="ck_dumps_processing_status",
        ),
        Index("idx_dumps_user_created", "user_id", "created_at"),
    )
