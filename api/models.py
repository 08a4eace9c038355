"""SQLAlchemy models for inbox capture and productivity records."""

import uuid
from datetime import UTC, date, datetime
from enum import Enum as PyEnum
from typing import Any

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from core.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere
JsonType = JSON(none_as_null=True).with_variant(
    JSONB(none_as_null=True), "postgresql"
)


def utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def new_uuid() -> str:
    return str(uuid.uuid4())


def _enum_column(enum_cls: type[PyEnum], name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=lambda x: [e.value for e in x],
    )


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow)

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class InboxItemStatus(str, PyEnum):
    """Lifecycle status of a captured inbox item."""

    UNPROCESSED = "unprocessed"
    PROCESSED = "processed"
    ARCHIVED = "archived"


class ProjectStatus(str, PyEnum):
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class TaskStatus(str, PyEnum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    CANCELED = "canceled"


class TaskPriority(str, PyEnum):
    """Persisted task priority.

    "urgent" is a deprecated AI suggestion value; it is normalized to HIGH
    before anything is written.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class InboxItem(TimestampMixin, Base):
    """Raw captured text plus its processing metadata.

    ``details`` holds the encoded processing state (see
    repositories.inbox_repository.decode_details). ``version`` is bumped on
    every state transition and checked when an approval marks the item
    processed.
    """

    __tablename__ = "inbox_items"
    __table_args__ = (
        Index("ix_inbox_items_user_status", "user_id", "status"),
        Index("ix_inbox_items_user_created", "user_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    raw_text: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[InboxItemStatus] = mapped_column(
        _enum_column(InboxItemStatus, "inbox_item_status"),
        nullable=False,
        default=InboxItemStatus.UNPROCESSED,
    )
    details: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)
    created_task_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class Project(TimestampMixin, Base):
    """Top-level container for tasks."""

    __tablename__ = "projects"
    __table_args__ = (Index("ix_projects_user", "user_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    zone_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ProjectStatus] = mapped_column(
        _enum_column(ProjectStatus, "project_status"),
        nullable=False,
        default=ProjectStatus.ACTIVE,
    )
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    details: Mapped[dict[str, Any]] = mapped_column(
        JsonType, nullable=False, default=dict
    )


class Task(TimestampMixin, Base):
    """Task or subtask (via parent_task_id self-reference)."""

    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_user", "user_id"),
        Index("ix_tasks_project", "project_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    # Plain columns, no FK: an AI candidate may reference a project id the
    # user owns but that was not part of this approval.
    project_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    parent_task_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    zone_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[TaskStatus] = mapped_column(
        _enum_column(TaskStatus, "task_status"),
        nullable=False,
        default=TaskStatus.TODO,
    )
    priority: Mapped[TaskPriority] = mapped_column(
        _enum_column(TaskPriority, "task_priority"),
        nullable=False,
        default=TaskPriority.MEDIUM,
    )
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    details: Mapped[dict[str, Any]] = mapped_column(
        JsonType, nullable=False, default=dict
    )
