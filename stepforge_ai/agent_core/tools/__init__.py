"""Tool protocol, the default registry-backed executor, and built-in tools."""

from .base import Tool, ToolContext, ToolDiscovery, ToolExecutor, ToolOutcome
from .builtin import ApprovalGateTool, FunctionTool
from .registry import ToolRegistry

__all__ = [
    "Tool",
    "ToolContext",
    "ToolDiscovery",
    "ToolExecutor",
    "ToolOutcome",
    "ToolRegistry",
    "ApprovalGateTool",
    "FunctionTool",
]
