"""Schemas and DTOs for the engine."""

from .config import EngineConfig
from .domain import (
    A2ATask,
    AgentFinalResponse,
    AgentIdentity,
    ConversationMessage,
    ExecutionMetadata,
    IterationState,
    MessageRole,
    Observation,
    ObservationType,
    PlanState,
    PromptMessage,
    ResumeContext,
    RunStatus,
    Step,
    StepKind,
    StepOutput,
    StepStatus,
    StreamEvent,
    StreamEventType,
    SuspensionContext,
    TaskStatus,
    ThreadConfig,
    ThreadContext,
    TokenType,
    ToolCall,
    ToolDescriptor,
    ToolResult,
    ToolResultStatus,
    ValidationMode,
    ValidationStatus,
)

__all__ = [
    "EngineConfig",
    "A2ATask",
    "AgentFinalResponse",
    "AgentIdentity",
    "ConversationMessage",
    "ExecutionMetadata",
    "IterationState",
    "MessageRole",
    "Observation",
    "ObservationType",
    "PlanState",
    "PromptMessage",
    "ResumeContext",
    "RunStatus",
    "Step",
    "StepKind",
    "StepOutput",
    "StepStatus",
    "StreamEvent",
    "StreamEventType",
    "SuspensionContext",
    "TaskStatus",
    "ThreadConfig",
    "ThreadContext",
    "TokenType",
    "ToolCall",
    "ToolDescriptor",
    "ToolResult",
    "ToolResultStatus",
    "ValidationMode",
    "ValidationStatus",
]
