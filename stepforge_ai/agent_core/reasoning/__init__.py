"""Reasoning client contract, output parsing and the Pydantic AI adapter."""

from .base import CallOptions, ReasoningClient
from .parser import (
    ExecutionOutput,
    PlanningOutput,
    StepDraft,
    extract_json,
    parse_execution_output,
    parse_planning_output,
    split_thinking,
)

__all__ = [
    "CallOptions",
    "ReasoningClient",
    "ExecutionOutput",
    "PlanningOutput",
    "StepDraft",
    "extract_json",
    "parse_execution_output",
    "parse_planning_output",
    "split_thinking",
]
