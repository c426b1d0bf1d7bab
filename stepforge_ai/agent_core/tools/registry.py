"""Tool registry.

The registry maps a tool name to an executable implementation and serves as
the default ``ToolExecutor`` and ``ToolDiscovery`` of the engine.
"""

from __future__ import annotations

import logging
from typing import Dict, List

from ..schemas.domain import ThreadContext, ToolCall, ToolDescriptor, ToolResult, ToolResultStatus
from .base import Tool, ToolContext, ToolOutcome

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    In-memory mapping of tool names to implementations.

    Notes:
        - ``register`` overwrites any existing mapping for the tool name.
        - ``get`` will raise ``KeyError`` if the tool is missing.
        - ``execute_tools`` never raises: unknown tools and raising tools become
          error results.
        - ``execute_tools`` stops at the first suspended result and returns the
          results produced so far.
        - When a thread config lists ``enabled_tools``, only those are discoverable.
    """

    def __init__(self) -> None:
        """Initialize an empty tool registry."""
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """
        Register a tool implementation.

        Args:
            tool: The tool instance to register. It must expose a ``name`` attribute.
        """
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool:
        return self._tools[name]

    def has(self, name: str) -> bool:
        return name in self._tools

    async def list_available_tools(self, context: ThreadContext) -> List[ToolDescriptor]:
        enabled = set(context.config.enabled_tools)
        return [
            ToolDescriptor(name=t.name, description=t.description, input_schema=dict(t.input_schema))
            for t in self._tools.values()
            if not enabled or t.name in enabled
        ]

    async def execute_tools(self, calls: List[ToolCall], context: ThreadContext) -> List[ToolResult]:
        results: List[ToolResult] = []
        for call in calls:
            result = await self._execute_one(call, context)
            results.append(result)
            if result.status == ToolResultStatus.suspended:
                # Calls after a suspending one wait for the human decision.
                skipped = [c.tool_name for c in calls[len(results) :]]
                if skipped:
                    logger.info(f"Batch suspended at {call.tool_name}; not running {skipped}")
                break
        return results

    async def _execute_one(self, call: ToolCall, context: ThreadContext) -> ToolResult:
        tool = self._tools.get(call.tool_name)
        if tool is None:
            logger.warning(f"Tool not found: {call.tool_name}")
            return ToolResult(
                call_id=call.call_id,
                tool_name=call.tool_name,
                status=ToolResultStatus.error,
                error=f"Tool not found: {call.tool_name}",
            )
        try:
            outcome = await tool.execute(ToolContext(thread=context, call=call), args=dict(call.arguments))
        except Exception as e:
            logger.error(f"Tool '{call.tool_name}' raised: {e}", exc_info=True)
            return ToolResult(
                call_id=call.call_id,
                tool_name=call.tool_name,
                status=ToolResultStatus.error,
                error=str(e),
            )
        if not isinstance(outcome, ToolOutcome):
            outcome = ToolOutcome(output=outcome)
        return ToolResult(
            call_id=call.call_id,
            tool_name=call.tool_name,
            status=outcome.status,
            output=outcome.output,
            error=outcome.error,
        )
