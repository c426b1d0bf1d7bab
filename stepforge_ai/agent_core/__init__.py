"""Plan-Execute-Synthesize engine, schemas and persistence abstractions.

Design overview
---------------

Planning produces an ordered list of steps of two kinds:

- ``reasoning`` steps: LLM-only work. They never call tools and skip tool
  validation.
- ``tool`` steps: the model must invoke every tool listed in the step's
  ``required_tools`` before the step may finish.

Execution is performed by ``agent_core.runtime.PESEngine`` using LangGraph.
The engine persists the thread's PlanState after every transition, records
an observation trail and can suspend a step for a human decision.

Typical usage
-------------

1. Build a dependency bundle (``factory.build_memory_deps`` or
   ``factory.build_sql_deps``) around a ``ReasoningClient``.
2. Create the engine with ``factory.build_engine``.
3. Call ``PESEngine.process`` for each user message.
4. If the run reports status ``suspended``, call ``PESEngine.resume`` with
   the decision.
"""

from .errors import EngineError, PlanningError, ResumeError, ThreadNotFoundError
from .runtime import EngineDeps, PESEngine
from .schemas.config import EngineConfig
from .schemas.domain import (
    AgentFinalResponse,
    PlanState,
    RunStatus,
    Step,
    StepKind,
    StepStatus,
)

__all__ = [
    "AgentFinalResponse",
    "EngineConfig",
    "EngineDeps",
    "EngineError",
    "PESEngine",
    "PlanState",
    "PlanningError",
    "ResumeError",
    "RunStatus",
    "Step",
    "StepKind",
    "StepStatus",
    "ThreadNotFoundError",
]
