"""Repository interfaces plus in-memory and SQL implementations.

The repository layer is the persistence boundary of the engine.

Responsibilities
----------------

- Provide small async repository interfaces (Protocols) the engine depends on.
- Persist what a run needs to survive a restart:

  - the PlanState document of each thread (steps, suspension, step outputs),
  - thread configuration,
  - conversation history,
  - the observation trail,
  - agent-to-agent tasks.

Design notes
------------

The engine is written against interfaces so it can be used with:

- a SQL database (async SQLAlchemy implementation in ``repos.sql``),
- the in-memory stores in ``repos.memory`` (default wiring and tests).
"""

from .interfaces import (
    AgentDirectory,
    ConversationRepository,
    ObservationSink,
    StateRepository,
    StreamNotifier,
    TaskRepository,
)

__all__ = [
    "AgentDirectory",
    "ConversationRepository",
    "ObservationSink",
    "StateRepository",
    "StreamNotifier",
    "TaskRepository",
]
