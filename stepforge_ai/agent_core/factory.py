"""Convenience factories for wiring the agent core.

This module contains small helpers to build the default tool registry, a
dependency bundle over in-memory or SQL stores, and a ``PESEngine``.

The intent is to keep application wiring and tests concise, while still
allowing advanced deployments to provide their own registry, reasoning
client and dependency bundles.
"""

from __future__ import annotations

from typing import Iterable, Optional

from .reasoning.base import ReasoningClient
from .repos.memory import (
    InMemoryAgentDirectory,
    InMemoryConversationRepository,
    InMemoryObservationSink,
    InMemoryStateRepository,
    InMemoryTaskRepository,
)
from .repos.interfaces import AgentDirectory, StreamNotifier
from .repos.sql import SqlRepoBundle
from .runtime.engine import PESEngine
from .runtime.models import EngineDeps
from .schemas.config import EngineConfig
from .schemas.domain import AgentIdentity
from .tools.base import Tool
from .tools.builtin import ApprovalGateTool
from .tools.registry import ToolRegistry


def build_default_registry(extra_tools: Iterable[Tool] = ()) -> ToolRegistry:
    """Build the default ``ToolRegistry``.

    It contains the human approval gate plus any ``extra_tools``.
    """
    reg = ToolRegistry()
    reg.register(ApprovalGateTool())
    for tool in extra_tools:
        reg.register(tool)
    return reg


def build_memory_deps(
    reasoning: ReasoningClient,
    *,
    registry: Optional[ToolRegistry] = None,
    agents: Optional[Iterable[AgentIdentity]] = None,
    notifier: Optional[StreamNotifier] = None,
) -> EngineDeps:
    """Dependency bundle over fresh in-memory stores."""
    reg = registry or build_default_registry()
    return EngineDeps(
        reasoning=reasoning,
        tool_executor=reg,
        tool_discovery=reg,
        state=InMemoryStateRepository(),
        conversations=InMemoryConversationRepository(),
        observations=InMemoryObservationSink(),
        tasks=InMemoryTaskRepository(),
        agents=InMemoryAgentDirectory(list(agents or [])),
        notifier=notifier,
    )


def build_sql_deps(
    reasoning: ReasoningClient,
    repos: SqlRepoBundle,
    *,
    registry: Optional[ToolRegistry] = None,
    agents: Optional[AgentDirectory] = None,
    notifier: Optional[StreamNotifier] = None,
) -> EngineDeps:
    """Dependency bundle over SQL repositories."""
    reg = registry or build_default_registry()
    return EngineDeps(
        reasoning=reasoning,
        tool_executor=reg,
        tool_discovery=reg,
        state=repos.state,
        conversations=repos.conversations,
        observations=repos.observations,
        tasks=repos.tasks,
        agents=agents or InMemoryAgentDirectory(),
        notifier=notifier,
    )


def build_engine(deps: EngineDeps, config: Optional[EngineConfig] = None) -> PESEngine:
    return PESEngine(deps=deps, config=config)
