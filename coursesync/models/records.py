"""SQLAlchemy ORM models for persisted entities.

Separate from the Pydantic models in content.py which describe the wire
format. This layer manages persistence concerns only.
"""
from __future__ import annotations
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, declarative_base
from sqlalchemy import (
    String, DateTime, JSON, Text, Integer, Index, UniqueConstraint,
)

Base = declarative_base()


class ContentRecord(Base):
    """Course, lesson, topic, quiz or question stored on this node."""

    __tablename__ = "content_items"
    __table_args__ = (
        UniqueConstraint("kind", "slug", name="uq_content_items_kind_slug"),
        Index("ix_content_items_kind_ordering", "kind", "ordering"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(16), index=True)
    slug: Mapped[str] = mapped_column(String(200))
    title: Mapped[str] = mapped_column(String(255))
    body: Mapped[str] = mapped_column(Text, default="")
    summary: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(32), default="draft")
    ordering: Mapped[int] = mapped_column(Integer, default=0)
    course_id: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, index=True
    )
    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, index=True
    )
    # Globally stable identifier; origin-assigned and never regenerated
    stable_id: Mapped[Optional[str]] = mapped_column(
        String(64), unique=True, index=True, nullable=True
    )
    # The origin node's numeric id for records received through a sync
    origin_id: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, index=True
    )
    featured_media: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    meta: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    taxonomies: Mapped[dict] = mapped_column(
        JSON, nullable=False, default=dict
    )
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<ContentRecord {self.kind}#{self.id} {self.slug!r}>"


class ClientRegistration(Base):
    """A receiving node known to this master."""

    __tablename__ = "client_registrations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    endpoint_url: Mapped[str] = mapped_column(
        String(255), unique=True, index=True
    )
    display_name: Mapped[str] = mapped_column(String(200))
    # The client's own receive key; only needed for pushes
    secret: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    first_seen_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    last_seen_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )

    def is_active(
        self, now: Optional[datetime] = None, threshold_days: int = 7
    ) -> bool:
        now = now or datetime.utcnow()
        return now - self.last_seen_at <= timedelta(days=threshold_days)

    def to_dict(self, threshold_days: int = 7) -> dict:
        return {
            "id": self.id,
            "endpointUrl": self.endpoint_url,
            "displayName": self.display_name,
            "hasSecret": bool(self.secret),
            "firstSeenAt": self.first_seen_at.isoformat(),
            "lastSeenAt": self.last_seen_at.isoformat(),
            "active": self.is_active(threshold_days=threshold_days),
        }


class SyncLogRecord(Base):
    """Append-only audit entry."""

    __tablename__ = "sync_log"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    direction: Mapped[str] = mapped_column(String(16), index=True)
    content_kind: Mapped[str] = mapped_column(String(16), index=True)
    content_ref: Mapped[str] = mapped_column(String(64), default="0")
    outcome: Mapped[str] = mapped_column(String(16), index=True)
    message: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "direction": self.direction,
            "contentKind": self.content_kind,
            "contentRef": self.content_ref,
            "outcome": self.outcome,
            "message": self.message,
            "timestamp": self.created_at.isoformat(),
        }
