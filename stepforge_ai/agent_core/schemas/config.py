"""Engine tunables."""

from __future__ import annotations

from pydantic import BaseModel, Field


class EngineConfig(BaseModel):
    """Limits and timings of a Plan-Execute-Synthesize run."""

    max_scheduler_loops: int = Field(default=20, ge=1, description="Scheduler iteration ceiling per run")
    max_step_iterations: int = Field(default=5, ge=1, description="Model calls per step, excluding validation retries")
    max_validation_retries: int = Field(default=2, ge=0, description="Strict TAEF retries per step")
    delegation_poll_interval_seconds: float = Field(default=2.0, gt=0, description="Delay between task polls")
    delegation_timeout_seconds: float = Field(default=30.0, gt=0, description="Overall wait for delegated tasks")
    step_output_max_bytes: int = Field(default=4096, ge=64, description="Byte cap of a stepOutputs record")
    synthesis_result_max_chars: int = Field(default=200, ge=16, description="Per-step summary cap in synthesis")
    history_limit: int = Field(default=20, ge=0, description="Conversation messages fed to the planner")
    delegation_tool_name: str = Field(default="delegate_to_agent", description="Pseudo-tool name for delegation")
    agent_id: str = Field(default="stepforge-agent", description="Identity used as the source of delegated tasks")
