"""SQLAlchemy async repository implementations.

This module provides a SQL persistence implementation for the repository
interfaces defined in ``stepforge_ai.agent_core.repos.interfaces``.

Usage
-----

Typical wiring (tests or application setup):

- Create an async engine with ``create_engine``.
- Create tables with ``create_all``.
- Create a session factory with ``create_sessionmaker``.
- Build repository instances with ``build_sql_repos``.

Transaction model
-----------------

Each repository method opens an ``AsyncSession``, performs its operation, and
commits. A PlanState save is therefore durable when the method returns, which
is what crash-resumability relies on.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..schemas.domain import (
    A2ATask,
    ConversationMessage,
    Observation,
    PlanState,
    ThreadConfig,
    ThreadContext,
)
from .models import (
    Base,
    MessageRow,
    ObservationRow,
    PlanStateRow,
    TaskRow,
    ThreadConfigRow,
)


def create_engine(db_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    The helper normalizes Postgres URLs to ensure the async driver is used.
    For example, it rewrites ``postgresql://`` and other variants to
    ``postgresql+asyncpg://``.
    """
    url = re.sub(r"^postgres(?:ql)?(?:\+[a-z0-9_]+)?://", "postgresql+asyncpg://", db_url, count=1)
    if url.startswith("sqlite"):
        return create_async_engine(url)
    return create_async_engine(url, pool_pre_ping=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an ``async_sessionmaker`` with safe defaults for this project."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables for the current ORM metadata."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SqlStateRepository:
    """SQL implementation of ``StateRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def load_thread_context(self, thread_id: str) -> ThreadContext:
        async with self.session_factory() as s:
            plan_row = await s.get(PlanStateRow, thread_id)
            config_row = await s.get(ThreadConfigRow, thread_id)
            return ThreadContext(
                thread_id=thread_id,
                config=ThreadConfig.model_validate(config_row.config) if config_row else ThreadConfig(),
                plan_state=PlanState.model_validate(plan_row.document) if plan_row else None,
            )

    async def save_plan_state(self, thread_id: str, state: PlanState) -> None:
        """
        Overwrite the thread's PlanState document.

        Args:
            thread_id: The conversation thread identifier.
            state: The plan state to serialize.
        """
        document = state.model_dump(mode="json")
        async with self.session_factory() as s:
            row = await s.get(PlanStateRow, thread_id)
            if row is None:
                s.add(
                    PlanStateRow(
                        thread_id=thread_id,
                        document=document,
                        is_paused=state.is_paused,
                        updated_at=_utc_now(),
                    )
                )
            else:
                row.document = document
                row.is_paused = state.is_paused
                row.updated_at = _utc_now()
            await s.commit()

    async def get_thread_config_value(self, thread_id: str, key: str) -> Optional[Any]:
        async with self.session_factory() as s:
            row = await s.get(ThreadConfigRow, thread_id)
            if row is None:
                return None
            return (row.config or {}).get(key)

    async def set_thread_config(self, thread_id: str, config: ThreadConfig) -> None:
        async with self.session_factory() as s:
            row = await s.get(ThreadConfigRow, thread_id)
            if row is None:
                s.add(
                    ThreadConfigRow(
                        thread_id=thread_id,
                        config=config.model_dump(mode="json"),
                        updated_at=_utc_now(),
                    )
                )
            else:
                row.config = config.model_dump(mode="json")
                row.updated_at = _utc_now()
            await s.commit()


@dataclass(frozen=True)
class SqlConversationRepository:
    """SQL implementation of ``ConversationRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def get_messages(self, thread_id: str, limit: int = 20) -> list[ConversationMessage]:
        """
        Return the most recent messages of a thread in chronological order.

        Args:
            thread_id: The conversation thread identifier.
            limit: Max number of messages to return.
        """
        if limit <= 0:
            return []
        async with self.session_factory() as s:
            stmt = select(MessageRow).where(MessageRow.thread_id == thread_id).order_by(MessageRow.seq.desc()).limit(limit)
            res = await s.execute(stmt)
            rows = list(reversed(res.scalars().all()))
            return [
                ConversationMessage(
                    id=r.id,
                    thread_id=r.thread_id,
                    role=r.role,
                    content=r.content,
                    metadata=dict(r.meta or {}),
                    created_at=r.created_at,
                )
                for r in rows
            ]

    async def append_messages(self, thread_id: str, messages: list[ConversationMessage]) -> None:
        async with self.session_factory() as s:
            for m in messages:
                s.add(
                    MessageRow(
                        id=m.id,
                        thread_id=thread_id,
                        role=str(getattr(m.role, "value", m.role)),
                        content=m.content,
                        meta=m.model_dump(mode="json")["metadata"],
                        created_at=m.created_at,
                    )
                )
            await s.commit()


@dataclass(frozen=True)
class SqlObservationSink:
    """SQL implementation of ``ObservationSink``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def record(self, observation: Observation) -> None:
        data = observation.model_dump(mode="json")
        async with self.session_factory() as s:
            s.add(
                ObservationRow(
                    id=observation.id,
                    thread_id=observation.thread_id,
                    trace_id=observation.trace_id,
                    type=str(getattr(observation.type, "value", observation.type)),
                    parent_id=observation.parent_id,
                    content=data["content"],
                    meta=data["metadata"],
                    created_at=observation.created_at,
                )
            )
            await s.commit()

    async def list(self, thread_id: str, limit: int = 100) -> list[Observation]:
        async with self.session_factory() as s:
            stmt = (
                select(ObservationRow)
                .where(ObservationRow.thread_id == thread_id)
                .order_by(ObservationRow.created_at.asc())
                .limit(limit)
            )
            res = await s.execute(stmt)
            return [
                Observation(
                    id=r.id,
                    thread_id=r.thread_id,
                    trace_id=r.trace_id,
                    type=r.type,
                    parent_id=r.parent_id,
                    content=dict(r.content or {}),
                    metadata=dict(r.meta or {}),
                    created_at=r.created_at,
                )
                for r in res.scalars().all()
            ]


@dataclass(frozen=True)
class SqlTaskRepository:
    """SQL implementation of ``TaskRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create_task(self, task: A2ATask) -> None:
        async with self.session_factory() as s:
            s.add(
                TaskRow(
                    task_id=task.task_id,
                    thread_id=task.thread_id,
                    status=task.status.value,
                    document=task.model_dump(mode="json"),
                    updated_at=_utc_now(),
                )
            )
            await s.commit()

    async def get_task(self, task_id: str) -> Optional[A2ATask]:
        async with self.session_factory() as s:
            row = await s.get(TaskRow, task_id)
            if row is None:
                return None
            return A2ATask.model_validate(row.document)

    async def update_task(self, task: A2ATask) -> None:
        """
        Overwrite a task document; used by the agent that works on it.

        Args:
            task: The task with its new status/result.
        """
        async with self.session_factory() as s:
            row = await s.get(TaskRow, task.task_id)
            if row is None:
                raise KeyError(task.task_id)
            row.status = task.status.value
            row.document = task.model_dump(mode="json")
            row.updated_at = _utc_now()
            await s.commit()


@dataclass(frozen=True)
class SqlRepoBundle:
    """Convenience bundle of all SQL repositories for dependency injection."""

    state: SqlStateRepository
    conversations: SqlConversationRepository
    observations: SqlObservationSink
    tasks: SqlTaskRepository


def build_sql_repos(*, session_factory: async_sessionmaker[AsyncSession]) -> SqlRepoBundle:
    """Build a ``SqlRepoBundle`` from a session factory."""
    return SqlRepoBundle(
        state=SqlStateRepository(session_factory=session_factory),
        conversations=SqlConversationRepository(session_factory=session_factory),
        observations=SqlObservationSink(session_factory=session_factory),
        tasks=SqlTaskRepository(session_factory=session_factory),
    )
