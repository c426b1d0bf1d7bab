"""SQLAlchemy ORM models for engine persistence.

These ORM models define the SQL schema used by the SQL repository
implementation in ``stepforge_ai.agent_core.repos.sql``.

Design
------

- One PlanState document per thread, overwritten on every save.
- Thread configuration is a small JSON document per thread.
- Conversation messages and observations are append-only rows.
- Delegated tasks are stored as whole documents with their status lifted
  into a column for querying.

JSON columns use JSONB on PostgreSQL and the generic JSON type elsewhere.
Table names are prefixed with ``sf_`` to avoid collisions in shared databases.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JsonDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class PlanStateRow(Base):
    """Row model for ``sf_plan_states``: the serialized PlanState of a thread."""

    __tablename__ = "sf_plan_states"

    thread_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    document: Mapped[Dict[str, Any]] = mapped_column(JsonDocument)
    is_paused: Mapped[bool] = mapped_column(Boolean, default=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ThreadConfigRow(Base):
    """Row model for ``sf_thread_configs``."""

    __tablename__ = "sf_thread_configs"

    thread_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    config: Mapped[Dict[str, Any]] = mapped_column(JsonDocument, default=dict)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class MessageRow(Base):
    """Row model for ``sf_messages``; ``seq`` gives a stable insertion order."""

    __tablename__ = "sf_messages"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True)
    thread_id: Mapped[str] = mapped_column(String(128), index=True)

    role: Mapped[str] = mapped_column(String(16))
    content: Mapped[str] = mapped_column(Text)
    meta: Mapped[Dict[str, Any]] = mapped_column("metadata", JsonDocument, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ObservationRow(Base):
    """Row model for ``sf_observations``."""

    __tablename__ = "sf_observations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    thread_id: Mapped[str] = mapped_column(String(128), index=True)
    trace_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    type: Mapped[str] = mapped_column(String(64))
    parent_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    content: Mapped[Dict[str, Any]] = mapped_column(JsonDocument, default=dict)
    meta: Mapped[Dict[str, Any]] = mapped_column("metadata", JsonDocument, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class TaskRow(Base):
    """Row model for ``sf_tasks``: agent-to-agent task documents."""

    __tablename__ = "sf_tasks"

    task_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    thread_id: Mapped[str] = mapped_column(String(128), index=True)
    status: Mapped[str] = mapped_column(String(32))
    document: Mapped[Dict[str, Any]] = mapped_column(JsonDocument)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
