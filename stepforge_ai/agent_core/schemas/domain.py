from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import Field, model_validator

from .base import BaseSchema

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


# ---------------------------------------------------------------------------
# Plan / step model
# ---------------------------------------------------------------------------


class StepStatus(str, Enum):
    pending = "pending"
    in_progress = "in_progress"
    waiting = "waiting"
    completed = "completed"
    failed = "failed"


class StepKind(str, Enum):
    tool = "tool"
    reasoning = "reasoning"


class ValidationMode(str, Enum):
    strict = "strict"
    advisory = "advisory"


class ValidationStatus(str, Enum):
    passed = "passed"
    failed = "failed"
    skipped = "skipped"


class ToolResultStatus(str, Enum):
    success = "success"
    error = "error"
    suspended = "suspended"


class ToolCall(BaseSchema):
    call_id: str = Field(default_factory=lambda: f"call_{uuid4().hex[:12]}")
    tool_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseSchema):
    call_id: str
    tool_name: str
    status: ToolResultStatus
    output: Any = None
    error: Optional[str] = None


def unwrap_envelope(value: Any) -> Any:
    """Return ``data`` out of a ``{status, data}`` shaped tool envelope.

    Anything else is returned untouched.
    """
    if isinstance(value, dict) and "data" in value and set(value) <= {"status", "data"}:
        return value["data"]
    return value


def render_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


class Step(BaseSchema):
    """One unit of a plan.

    ``kind`` decides whether TAEF applies: only ``tool`` steps with a non-empty
    ``required_tools`` are validated. ``reasoning`` steps never carry required
    tools; the planner converts such drafts into tool steps before they get here.
    """

    id: str = Field(default_factory=_new_id)
    description: str
    kind: StepKind = StepKind.tool
    required_tools: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    status: StepStatus = StepStatus.pending
    validation_mode: ValidationMode = ValidationMode.strict
    expected_outcome: Optional[str] = None

    result: Any = None
    tool_results: List[ToolResult] = Field(default_factory=list)
    validation_status: Optional[ValidationStatus] = None

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @model_validator(mode="after")
    def _reasoning_has_no_tools(self) -> "Step":
        if self.kind == StepKind.reasoning and self.required_tools:
            raise ValueError(f"reasoning step {self.id!r} must not declare required tools")
        return self

    def touch(self) -> None:
        self.updated_at = _utc_now()

    def set_status(self, status: StepStatus) -> None:
        self.status = status
        self.touch()

    @property
    def requires_validation(self) -> bool:
        return self.kind == StepKind.tool and bool(self.required_tools)

    def last_tool_output(self) -> Any:
        """Latest recorded tool/delegation output, unwrapped, or ``None``."""
        for res in reversed(self.tool_results):
            if res.output is not None:
                return unwrap_envelope(res.output)
            if res.error:
                return res.error
        return None

    def result_or_tool_output(self) -> Any:
        if self.result is None or self.result == "":
            return self.last_tool_output()
        return self.result


class PromptMessage(BaseSchema):
    role: Literal["system", "user", "assistant", "tool"]
    content: str
    name: Optional[str] = None
    tool_call_id: Optional[str] = None


class IterationState(BaseSchema):
    """Snapshot of a step's dialogue, enough to continue it exactly."""

    messages: List[PromptMessage] = Field(default_factory=list)
    iteration: int = 0
    validation_retries: int = 0
    last_content: str = ""
    invoked_tools: List[str] = Field(default_factory=list)


class SuspensionContext(BaseSchema):
    suspension_id: str = Field(default_factory=_new_id)
    item_id: str
    tool_call: ToolCall
    iteration_state: IterationState
    created_at: datetime = Field(default_factory=_utc_now)


class ResumeContext(BaseSchema):
    """Dialogue handed back to the step processor after a human decision."""

    item_id: str
    suspension_id: str
    approved: bool
    iteration_state: IterationState


class StepOutput(BaseSchema):
    step_id: str
    description: str
    output: str
    truncated: bool = False
    tool_names: List[str] = Field(default_factory=list)
    recorded_at: datetime = Field(default_factory=_utc_now)


def truncate_bytes(text: str, max_bytes: int) -> tuple[str, bool]:
    raw = text.encode("utf-8")
    if len(raw) <= max_bytes:
        return text, False
    return raw[:max_bytes].decode("utf-8", errors="ignore"), True


class PlanState(BaseSchema):
    """Per-thread plan document; the unit of persistence and resumability."""

    thread_id: str
    intent: str = ""
    title: str = ""
    plan_summary: str = ""
    steps: List[Step] = Field(default_factory=list)
    current_step_id: Optional[str] = None

    is_paused: bool = False
    suspension: Optional[SuspensionContext] = None
    resume_context: Optional[ResumeContext] = None

    step_outputs: Dict[str, StepOutput] = Field(default_factory=dict)
    updated_at: datetime = Field(default_factory=_utc_now)

    @model_validator(mode="after")
    def _paused_iff_suspended(self) -> "PlanState":
        if self.is_paused != (self.suspension is not None):
            raise ValueError("is_paused must be true exactly while a suspension is set")
        return self

    def get_step(self, step_id: str) -> Optional[Step]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def dependencies_completed(self, step: Step) -> bool:
        for dep_id in step.dependencies:
            dep = self.get_step(dep_id)
            if dep is None or dep.status != StepStatus.completed:
                return False
        return True

    def next_runnable_step(self) -> Optional[Step]:
        """First Pending step in list order whose dependencies are all Completed."""
        for step in self.steps:
            if step.status == StepStatus.pending and self.dependencies_completed(step):
                return step
        return None

    def completed_steps(self) -> List[Step]:
        return [s for s in self.steps if s.status == StepStatus.completed]

    def failed_steps(self) -> List[Step]:
        return [s for s in self.steps if s.status == StepStatus.failed]

    def record_step_output(self, step: Step, max_bytes: int) -> StepOutput:
        text, truncated = truncate_bytes(render_value(step.result_or_tool_output()), max_bytes)
        record = StepOutput(
            step_id=step.id,
            description=step.description,
            output=text,
            truncated=truncated,
            tool_names=[r.tool_name for r in step.tool_results],
        )
        self.step_outputs[step.id] = record
        return record

    def touch(self) -> None:
        self.updated_at = _utc_now()


# ---------------------------------------------------------------------------
# Conversation, observations, stream events
# ---------------------------------------------------------------------------


class MessageRole(str, Enum):
    user = "user"
    ai = "ai"
    system = "system"
    tool = "tool"


class ConversationMessage(BaseSchema):
    id: str = Field(default_factory=_new_id)
    thread_id: str
    role: MessageRole
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utc_now)


class ObservationType(str, Enum):
    intent = "intent"
    title = "title"
    plan = "plan"
    plan_update = "plan_update"
    item_status_change = "item_status_change"
    thoughts = "thoughts"
    llm_stream_start = "llm_stream_start"
    tool_execution = "tool_execution"
    validation = "validation"
    suspended = "suspended"
    resumed = "resumed"
    delegation = "delegation"
    final_response = "final_response"
    error = "error"


class Observation(BaseSchema):
    id: str = Field(default_factory=_new_id)
    thread_id: str
    trace_id: Optional[str] = None
    type: ObservationType
    content: Dict[str, Any] = Field(default_factory=dict)
    parent_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utc_now)


class StreamEventType(str, Enum):
    token = "token"
    metadata = "metadata"
    error = "error"


class TokenType(str, Enum):
    thinking = "thinking"
    response = "response"


class StreamEvent(BaseSchema):
    type: StreamEventType
    data: Any = None
    token_type: TokenType = TokenType.response
    phase: Optional[str] = None
    thread_id: Optional[str] = None
    trace_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Agent-to-agent tasks
# ---------------------------------------------------------------------------


class TaskStatus(str, Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.completed, TaskStatus.failed, TaskStatus.cancelled)


class TaskPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class AgentIdentity(BaseSchema):
    agent_id: str
    agent_name: str = ""
    agent_type: str = "agent"
    capabilities: List[str] = Field(default_factory=list)
    endpoint: Optional[str] = None


class TaskMetadata(BaseSchema):
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    initiated_by: Optional[str] = None
    correlation_id: Optional[str] = None
    retry_count: int = 0
    max_retries: int = 3
    timeout_ms: int = 30000
    tags: List[str] = Field(default_factory=list)


class A2ATask(BaseSchema):
    task_id: str = Field(default_factory=_new_id)
    thread_id: str
    status: TaskStatus = TaskStatus.pending
    payload: Dict[str, Any] = Field(default_factory=dict)
    source_agent: AgentIdentity
    target_agent: AgentIdentity
    priority: TaskPriority = TaskPriority.medium
    metadata: TaskMetadata = Field(default_factory=TaskMetadata)
    result: Any = None
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Tools, thread context, run results
# ---------------------------------------------------------------------------


class ToolDescriptor(BaseSchema):
    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=dict)


class ThreadConfig(BaseSchema):
    enabled_tools: List[str] = Field(default_factory=list)
    history_limit: Optional[int] = None
    system_prompt: Optional[str] = None
    persona: Optional[str] = None


class ThreadContext(BaseSchema):
    thread_id: str
    user_id: Optional[str] = None
    config: ThreadConfig = Field(default_factory=ThreadConfig)
    plan_state: Optional[PlanState] = None


class RunStatus(str, Enum):
    success = "success"
    suspended = "suspended"
    error = "error"


class ExecutionMetadata(BaseSchema):
    thread_id: str
    trace_id: str
    status: RunStatus = RunStatus.success
    total_duration_ms: float = 0.0
    llm_calls: int = 0
    tool_calls: int = 0
    error: Optional[str] = None
    phase: Optional[str] = None
    suspension_id: Optional[str] = None
    llm_metadata: Dict[str, Any] = Field(default_factory=dict)


class AgentFinalResponse(BaseSchema):
    response: ConversationMessage
    metadata: ExecutionMetadata
    ui_metadata: Optional[Dict[str, Any]] = None
