"""Repository interface contracts.

The engine depends on these Protocols instead of concrete persistence
implementations.

Contract guidelines
-------------------

- All methods are async, except ``StreamNotifier.notify`` which is a plain
  fan-out callback.
- Everything is keyed by thread id; no implementation may share mutable
  state between threads.
- ``save_plan_state`` overwrites the single PlanState document of a thread.
- Observation sinks are fire-and-forget. The engine logs and swallows their
  failures, so implementations need not be defensive.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

from ..schemas.domain import (
    A2ATask,
    AgentIdentity,
    ConversationMessage,
    Observation,
    PlanState,
    StreamEvent,
    ThreadContext,
)


class StateRepository(Protocol):
    """Persist the per-thread PlanState and thread configuration."""

    async def load_thread_context(self, thread_id: str) -> ThreadContext:
        """
        Load the thread's configuration and persisted plan.

        Args:
            thread_id: The conversation thread identifier.

        Returns:
            A ThreadContext; ``plan_state`` is None for a new thread.
        """
        ...

    async def save_plan_state(self, thread_id: str, state: PlanState) -> None:
        """
        Overwrite the thread's PlanState document.

        Args:
            thread_id: The conversation thread identifier.
            state: The full plan state to persist.
        """
        ...

    async def get_thread_config_value(self, thread_id: str, key: str) -> Optional[Any]:
        """
        Read one thread configuration value.

        Args:
            thread_id: The conversation thread identifier.
            key: Configuration key, e.g. ``system_prompt`` or ``persona``.

        Returns:
            The stored value or None.
        """
        ...


class ConversationRepository(Protocol):
    """Conversation history of a thread."""

    async def get_messages(self, thread_id: str, limit: int = 20) -> list[ConversationMessage]:
        """
        Return the most recent messages in chronological order.

        Args:
            thread_id: The conversation thread identifier.
            limit: Max number of messages to return.
        """
        ...

    async def append_messages(self, thread_id: str, messages: list[ConversationMessage]) -> None:
        """
        Append messages to the thread history.

        Args:
            thread_id: The conversation thread identifier.
            messages: Messages to append, in order.
        """
        ...


class ObservationSink(Protocol):
    """Append-only audit/telemetry trail."""

    async def record(self, observation: Observation) -> None: ...


class StreamNotifier(Protocol):
    """Receives every raw stream event as it arrives. Must not block."""

    def notify(self, event: StreamEvent) -> None: ...


class TaskRepository(Protocol):
    """Storage of agent-to-agent tasks."""

    async def create_task(self, task: A2ATask) -> None:
        """
        Submit a new task.

        Args:
            task: The task to persist.
        """
        ...

    async def get_task(self, task_id: str) -> Optional[A2ATask]:
        """
        Fetch the current state of a task.

        Args:
            task_id: The task identifier.

        Returns:
            The task if found, else None.
        """
        ...


class AgentDirectory(Protocol):
    """Lookup of agents that can receive delegated tasks."""

    async def discover_agents(self) -> list[AgentIdentity]: ...
