"""SQLAlchemy 2.0 async models for content, conversation and media persistence."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

from cms_agent.constants import DB_SCHEMA


class Base(DeclarativeBase):
    pass


class ContentEntryRecord(Base):
    """Primary store for every JSON content document."""

    __tablename__ = "content_entries"
    __table_args__ = (
        UniqueConstraint("site_id", "locale", "path", name="uq_content_entries_site_locale_path"),
        {"schema": DB_SCHEMA},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[str] = mapped_column(String(128), index=True)
    locale: Mapped[str] = mapped_column(String(16))
    path: Mapped[str] = mapped_column(String(512))
    content: Mapped[Any] = mapped_column(JSONB, nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class _DedicatedEntityMixin:
    """Query-optimized copy of a collection document, keyed by (site_id, slug)."""

    @declared_attr.directive
    def __table_args__(cls) -> tuple:
        return (
            UniqueConstraint("site_id", "slug", name=f"uq_{cls.__tablename__}_site_slug"),
            {"schema": DB_SCHEMA},
        )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[str] = mapped_column(String(128), index=True)
    slug: Mapped[str] = mapped_column(String(128))
    data: Mapped[dict] = mapped_column(JSONB)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class AgentRecord(_DedicatedEntityMixin, Base):
    __tablename__ = "agents"


class EventRecord(_DedicatedEntityMixin, Base):
    __tablename__ = "events"

    event_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class NewConstructionRecord(_DedicatedEntityMixin, Base):
    __tablename__ = "new_construction"


class MediaAssetRecord(Base):
    __tablename__ = "media_assets"
    __table_args__ = (
        UniqueConstraint("site_id", "path", name="uq_media_assets_site_path"),
        {"schema": DB_SCHEMA},
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    site_id: Mapped[str] = mapped_column(String(128), index=True)
    path: Mapped[str] = mapped_column(String(512))
    url: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class ChatMessageRecord(Base):
    """Append-only conversation log. ``seq`` is the arrival order."""

    __tablename__ = "chat_messages"
    __table_args__ = {"schema": DB_SCHEMA}

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True)
    site_id: Mapped[str] = mapped_column(String(128))
    locale: Mapped[str] = mapped_column(String(16))
    conversation_id: Mapped[str] = mapped_column(String(64), index=True)
    role: Mapped[str] = mapped_column(String(16))
    content: Mapped[str] = mapped_column(Text, default="")
    tool_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class ChatPreferenceRecord(Base):
    __tablename__ = "ai_chat_preferences"
    __table_args__ = (
        UniqueConstraint(
            "site_id", "locale", "preference_key", name="uq_ai_chat_preferences_key"
        ),
        {"schema": DB_SCHEMA},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[str] = mapped_column(String(128))
    locale: Mapped[str] = mapped_column(String(16))
    preference_key: Mapped[str] = mapped_column(String(128))
    preference_value: Mapped[Any] = mapped_column(JSONB, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class ChatAuditRecord(Base):
    """One row per completed chat request; ``details`` holds the turn summary."""

    __tablename__ = "ai_chat_audit"
    __table_args__ = (
        Index("ix_ai_chat_audit_site_created", "site_id", "created_at"),
        {"schema": DB_SCHEMA},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[str] = mapped_column(String(128))
    actor_email: Mapped[str | None] = mapped_column(String(256), nullable=True)
    action: Mapped[str] = mapped_column(String(64))
    details: Mapped[dict] = mapped_column(JSONB, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


# logical collection directory -> dedicated table model
DEDICATED_TABLES: dict[str, type[_DedicatedEntityMixin]] = {
    "agents": AgentRecord,
    "events": EventRecord,
    "new-construction": NewConstructionRecord,
}
