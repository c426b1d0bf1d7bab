from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict

from ..schemas.domain import ToolResultStatus
from .base import ToolContext, ToolOutcome


@dataclass(frozen=True)
class FunctionTool:
    """
    Tool backed by an async callable.

    The callable receives the call arguments as keyword arguments. A returned
    ``ToolOutcome`` is passed through unchanged; any other value is wrapped as
    a successful output.
    """

    name: str
    fn: Callable[..., Awaitable[Any]]
    description: str = ""
    input_schema: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    async def execute(self, ctx: ToolContext, *, args: Dict[str, Any]) -> ToolOutcome:
        result = await self.fn(**args)
        if isinstance(result, ToolOutcome):
            return result
        return ToolOutcome(output=result)


@dataclass(frozen=True)
class ApprovalGateTool:
    """
    Blocking tool that always waits for a human decision.

    Execution never does any work: it returns status ``suspended`` with the
    request details, and the engine pauses the thread until a resume request
    delivers the decision as this call's result.
    """

    name: str = "request_approval"
    description: str = "Ask a human to approve an action before continuing. Arguments: action, details."
    input_schema: Dict[str, Any] = field(
        default_factory=lambda: {
            "type": "object",
            "properties": {
                "action": {"type": "string"},
                "details": {"type": "string"},
            },
            "required": ["action"],
        }
    )

    async def execute(self, ctx: ToolContext, *, args: Dict[str, Any]) -> ToolOutcome:
        """
        Args:
            ctx: The execution context.
            args: Dictionary of arguments:
                - action (str): What is awaiting approval.
                - details (str): Optional extra context for the reviewer.

        Returns:
            ToolOutcome with status ``suspended``.
        """
        return ToolOutcome(
            status=ToolResultStatus.suspended,
            output={
                "action": str(args.get("action") or ""),
                "details": str(args.get("details") or ""),
                "thread_id": ctx.thread.thread_id,
            },
        )
