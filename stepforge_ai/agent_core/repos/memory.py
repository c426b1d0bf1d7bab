"""In-memory repository implementations.

Used by the default wiring when no database is configured, and by tests.
Every store keys its data by thread id (or task id) and hands out deep
copies, so a caller mutating a loaded PlanState never changes what is stored
until it saves again.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..schemas.domain import (
    A2ATask,
    AgentIdentity,
    ConversationMessage,
    Observation,
    PlanState,
    StreamEvent,
    ThreadConfig,
    ThreadContext,
)

logger = logging.getLogger(__name__)


class InMemoryStateRepository:
    def __init__(self) -> None:
        self._plans: Dict[str, PlanState] = {}
        self._configs: Dict[str, ThreadConfig] = {}
        self.save_history: Dict[str, List[PlanState]] = {}

    def set_thread_config(self, thread_id: str, config: ThreadConfig) -> None:
        self._configs[thread_id] = config

    async def load_thread_context(self, thread_id: str) -> ThreadContext:
        plan = self._plans.get(thread_id)
        return ThreadContext(
            thread_id=thread_id,
            config=self._configs.get(thread_id, ThreadConfig()).model_copy(deep=True),
            plan_state=plan.model_copy(deep=True) if plan is not None else None,
        )

    async def save_plan_state(self, thread_id: str, state: PlanState) -> None:
        snapshot = state.model_copy(deep=True)
        self._plans[thread_id] = snapshot
        self.save_history.setdefault(thread_id, []).append(snapshot)

    async def get_thread_config_value(self, thread_id: str, key: str) -> Optional[Any]:
        config = self._configs.get(thread_id)
        if config is None:
            return None
        return getattr(config, key, None)


class InMemoryConversationRepository:
    def __init__(self) -> None:
        self._messages: Dict[str, List[ConversationMessage]] = {}

    async def get_messages(self, thread_id: str, limit: int = 20) -> list[ConversationMessage]:
        messages = self._messages.get(thread_id, [])
        if limit <= 0:
            return []
        return [m.model_copy() for m in messages[-limit:]]

    async def append_messages(self, thread_id: str, messages: list[ConversationMessage]) -> None:
        self._messages.setdefault(thread_id, []).extend(m.model_copy() for m in messages)


class InMemoryObservationSink:
    def __init__(self) -> None:
        self.observations: List[Observation] = []

    async def record(self, observation: Observation) -> None:
        self.observations.append(observation)

    def of_type(self, type_: str) -> List[Observation]:
        return [o for o in self.observations if o.type == type_]


class InMemoryStreamNotifier:
    def __init__(self) -> None:
        self.events: List[StreamEvent] = []

    def notify(self, event: StreamEvent) -> None:
        self.events.append(event)


class InMemoryTaskRepository:
    """Task store; other agents (or tests) update tasks through ``update_task``."""

    def __init__(self) -> None:
        self._tasks: Dict[str, A2ATask] = {}

    async def create_task(self, task: A2ATask) -> None:
        self._tasks[task.task_id] = task.model_copy(deep=True)

    async def get_task(self, task_id: str) -> Optional[A2ATask]:
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task is not None else None

    async def update_task(self, task: A2ATask) -> None:
        if task.task_id not in self._tasks:
            raise KeyError(task.task_id)
        self._tasks[task.task_id] = task.model_copy(deep=True)

    def list_tasks(self) -> List[A2ATask]:
        return [t.model_copy(deep=True) for t in self._tasks.values()]


class InMemoryAgentDirectory:
    def __init__(self, agents: Optional[List[AgentIdentity]] = None) -> None:
        self._agents: Dict[str, AgentIdentity] = {a.agent_id: a for a in agents or []}

    def register(self, agent: AgentIdentity) -> None:
        self._agents[agent.agent_id] = agent

    async def discover_agents(self) -> list[AgentIdentity]:
        return list(self._agents.values())
