"""Runtime dependency bundle, per-run context and LangGraph state types.

The runtime engine is designed to be dependency-injected.

- ``EngineDeps`` collects the collaborators the engine needs.
- ``RunContext`` is the owned-by-run handle passed explicitly through every
  stage: the thread's PlanState, the tools available to it, counters, and a
  ``persist`` method that every state mutation is followed by.
- ``_GraphState`` is the state passed between LangGraph nodes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, NotRequired, Optional, Required, TypedDict

from ..reasoning.base import ReasoningClient
from ..repos.interfaces import (
    AgentDirectory,
    ConversationRepository,
    ObservationSink,
    StateRepository,
    StreamNotifier,
    TaskRepository,
)
from ..schemas.config import EngineConfig
from ..schemas.domain import Observation, ObservationType, PlanState, StreamEvent, ThreadContext, ToolDescriptor
from ..tools.base import ToolDiscovery, ToolExecutor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineDeps:
    """Dependency bundle for ``PESEngine``.

    This object is typically constructed by application wiring code
    (``stepforge_ai.agent_core.factory``) and passed into the engine. It holds:

    - the reasoning client,
    - the tool executor and discovery (usually one ``ToolRegistry``),
    - persistence repositories (plan state, conversations, observations),
    - the task repository and agent directory used for delegation,
    - an optional stream notifier for UI fan-out.
    """

    reasoning: ReasoningClient
    tool_executor: ToolExecutor
    tool_discovery: ToolDiscovery
    state: StateRepository
    conversations: ConversationRepository
    observations: ObservationSink

    tasks: Optional[TaskRepository] = None
    agents: Optional[AgentDirectory] = None
    notifier: Optional[StreamNotifier] = None


class Observer:
    """Fire-and-forget front of the observation sink and stream notifier.

    Sink and notifier failures are logged and swallowed; they are never on the
    critical path of a run.
    """

    def __init__(
        self,
        sink: ObservationSink,
        *,
        thread_id: str,
        trace_id: str,
        notifier: Optional[StreamNotifier] = None,
    ) -> None:
        self._sink = sink
        self._notifier = notifier
        self.thread_id = thread_id
        self.trace_id = trace_id

    async def record(
        self,
        type_: ObservationType,
        content: Optional[Dict[str, Any]] = None,
        *,
        parent_id: Optional[str] = None,
        **metadata: Any,
    ) -> None:
        observation = Observation(
            thread_id=self.thread_id,
            trace_id=self.trace_id,
            type=type_,
            content=dict(content or {}),
            parent_id=parent_id,
            metadata=metadata,
        )
        try:
            await self._sink.record(observation)
        except Exception as e:
            logger.warning(f"[{self.trace_id}] Observation sink failed for {type_.value}: {e}")

    def notify(self, event: StreamEvent) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify(event)
        except Exception as e:
            logger.warning(f"[{self.trace_id}] Stream notifier failed: {e}")


@dataclass
class RunContext:
    """Everything one run owns. Never shared between threads."""

    thread_id: str
    trace_id: str
    deps: EngineDeps
    config: EngineConfig
    observer: Observer
    thread: ThreadContext
    state: PlanState

    query: str = ""
    tools: List[ToolDescriptor] = field(default_factory=list)
    system_prompt: Optional[str] = None
    persona: Optional[str] = None

    phase: str = "configuration"
    # False until ``state`` holds a plan worth persisting on failure.
    plan_established: bool = False

    llm_calls: int = 0
    tool_calls: int = 0
    llm_metadata: Dict[str, Any] = field(default_factory=dict)

    async def persist(self) -> None:
        self.state.touch()
        await self.deps.state.save_plan_state(self.thread_id, self.state)

    def add_llm_metadata(self, metadata: Optional[Dict[str, Any]]) -> None:
        if not metadata:
            return
        for key, value in metadata.items():
            if isinstance(value, (int, float)) and isinstance(self.llm_metadata.get(key), (int, float)):
                self.llm_metadata[key] += value
            else:
                self.llm_metadata[key] = value


class _GraphState(TypedDict):
    """LangGraph state for the execution loop of a single run.

    Required keys:

    - ``run``: the ``RunContext`` being executed.
    - ``loops``: Scheduler iterations consumed so far.

    Optional keys:

    - ``_selected``: id of the step picked by the select node.
    - ``_outcome``: the stop reason (``exhausted``, ``failed``, ``suspended``,
      ``loop_limit``).
    """

    run: Required[Any]
    loops: Required[int]
    _selected: NotRequired[Optional[str]]
    _outcome: NotRequired[str]
