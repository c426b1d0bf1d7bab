"""stepforge-ai.

This package contains the execution engine used to turn a user goal into a
persisted, resumable Plan-Execute-Synthesize (PES) run.

High-level architecture
-----------------------

A run moves through three phases:

- **Plan**: one reasoning call turns the goal (and, for follow-ups, the
  existing plan) into an ordered list of steps with declared dependencies and
  a step kind (``tool`` or ``reasoning``).
- **Execute**: the scheduler repeatedly selects the first runnable step and
  hands it to the step processor, which iterates model calls, validates that
  required tools were really invoked, dispatches tool and delegation calls and
  may suspend for a human decision.
- **Synthesize**: once the plan is exhausted, the step results are folded into
  one user-facing answer.

Core subpackages
----------------

- ``stepforge_ai.agent_core``: schemas, planner, runtime engine, collaborator
  protocols and persistence implementations.
- ``stepforge_ai.core``: logging and monitoring configuration.
- ``stepforge_ai.server``: FastAPI surface for processing messages and
  resuming suspended threads.

Every state transition that matters for resumability is persisted before the
engine proceeds, so a process restart loses at most the in-flight model call.
"""
