"""Tool protocol and execution data models.

A tool is the concrete execution unit behind a model's tool call.

The step processor hands local tool calls to a ``ToolExecutor``; the default
executor is ``ToolRegistry``, which resolves each call by name and runs the
tool with a ``ToolContext``.

Tools should:

- return structured outputs in ``ToolOutcome.output``,
- report a need for a human decision with status ``suspended`` rather than
  blocking,
- raise freely; the registry turns exceptions into error results.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from ..schemas.domain import ThreadContext, ToolCall, ToolDescriptor, ToolResult, ToolResultStatus


@dataclass(frozen=True)
class ToolContext:
    """Execution context passed to tool implementations.

    Attributes
    ----------
    thread:
        The ``ThreadContext`` of the run invoking the tool.
    call:
        The exact call being executed.
    """

    thread: ThreadContext
    call: ToolCall


@dataclass(frozen=True)
class ToolOutcome:
    """Structured tool execution result."""

    status: ToolResultStatus = ToolResultStatus.success
    output: Any = None
    error: Optional[str] = None


class Tool(Protocol):
    """Protocol for tool implementations."""

    name: str
    description: str
    input_schema: Dict[str, Any]

    async def execute(self, ctx: ToolContext, *, args: Dict[str, Any]) -> ToolOutcome: ...


class ToolExecutor(Protocol):
    async def execute_tools(self, calls: List[ToolCall], context: ThreadContext) -> List[ToolResult]:
        """
        Execute calls in order.

        Args:
            calls: Tool calls to run.
            context: The thread context of the run.

        Returns:
            One result per call, in call order.
        """
        ...


class ToolDiscovery(Protocol):
    async def list_available_tools(self, context: ThreadContext) -> List[ToolDescriptor]: ...
