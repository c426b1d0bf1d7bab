from __future__ import annotations

import json

import pytest

from stepforge_ai.agent_core.errors import ErrorCode, ResumeError
from stepforge_ai.agent_core.runtime.suspension import SuspensionManager, check_resumable
from stepforge_ai.agent_core.schemas.domain import (
    IterationState,
    ObservationType,
    PlanState,
    PromptMessage,
    Step,
    StepStatus,
    ToolCall,
    ToolResultStatus,
)

from pes_fakes import make_run_context


def _ctx(deps):
    step = Step(id="s1", description="Publish the report", status=StepStatus.in_progress)
    state = PlanState(thread_id="thread-1", steps=[step], current_step_id="s1")
    return make_run_context(deps, state=state), step


def _iteration() -> IterationState:
    return IterationState(
        messages=[PromptMessage(role="system", content="step prompt")],
        iteration=1,
        last_content="drafted",
        invoked_tools=["search"],
    )


async def _suspend(deps):
    ctx, step = _ctx(deps)
    call = ToolCall(call_id="c9", tool_name="request_approval", arguments={"action": "publish"})
    suspension = await SuspensionManager().suspend(ctx, step, call, _iteration())
    return ctx, step, suspension


@pytest.mark.asyncio
async def test_suspend_captures_context_and_persists(deps):
    ctx, step, suspension = await _suspend(deps)

    assert ctx.state.is_paused
    assert ctx.state.suspension is suspension
    assert suspension.item_id == "s1"
    assert suspension.iteration_state.last_content == "drafted"
    assert step.status == StepStatus.in_progress

    saved = (await deps.state.load_thread_context("thread-1")).plan_state
    assert saved.suspension.suspension_id == suspension.suspension_id
    (obs,) = deps.observations.of_type(ObservationType.suspended)
    assert obs.content["suspension_id"] == suspension.suspension_id


@pytest.mark.asyncio
async def test_suspension_ids_are_unique(deps):
    _, _, first = await _suspend(deps)
    _, _, second = await _suspend(deps)
    assert first.suspension_id != second.suspension_id


@pytest.mark.asyncio
async def test_approve_resets_step_and_encodes_decision(deps):
    ctx, step, suspension = await _suspend(deps)

    resume = await SuspensionManager().resume(ctx, approved=True, reason="looks good")

    assert step.status == StepStatus.pending
    assert not ctx.state.is_paused
    assert ctx.state.suspension is None
    assert ctx.state.current_step_id is None
    assert ctx.state.resume_context is resume
    assert resume.suspension_id == suspension.suspension_id

    last = resume.iteration_state.messages[-1]
    assert last.role == "tool"
    assert last.tool_call_id == "c9"
    assert json.loads(last.content) == {"approved": True, "reason": "looks good"}
    assert resume.iteration_state.invoked_tools == ["search", "request_approval"]
    assert step.tool_results[-1].status == ToolResultStatus.success


@pytest.mark.asyncio
async def test_reject_adds_tool_result_then_system_message(deps):
    ctx, step, _ = await _suspend(deps)

    resume = await SuspensionManager().resume(ctx, approved=False, reason="not yet")

    tool_msg, system_msg = resume.iteration_state.messages[-2:]
    assert tool_msg.role == "tool"
    assert json.loads(tool_msg.content)["approved"] is False
    assert system_msg.role == "system"
    assert "request_approval" in system_msg.content
    assert "not yet" in system_msg.content
    assert "request_approval" in resume.iteration_state.invoked_tools
    assert step.tool_results[-1].status == ToolResultStatus.error
    assert step.tool_results[-1].error == "Rejected by user: not yet"


@pytest.mark.asyncio
async def test_resume_requires_a_paused_thread(deps):
    ctx, step = _ctx(deps)
    before = ctx.state.model_dump()

    with pytest.raises(ResumeError) as exc:
        await SuspensionManager().resume(ctx, approved=True)

    assert exc.value.code == ErrorCode.resume_rejected
    assert ctx.state.model_dump() == before
    assert deps.state.save_history == {}


@pytest.mark.asyncio
async def test_resume_rejects_a_stale_suspension_id(deps):
    ctx, _, suspension = await _suspend(deps)

    with pytest.raises(ResumeError):
        await SuspensionManager().resume(ctx, approved=True, suspension_id="stale")
    assert ctx.state.is_paused

    await SuspensionManager().resume(ctx, approved=True, suspension_id=suspension.suspension_id)
    with pytest.raises(ResumeError):
        await SuspensionManager().resume(ctx, approved=True, suspension_id=suspension.suspension_id)


def test_check_resumable_without_suspension():
    state = PlanState(thread_id="t")
    with pytest.raises(ResumeError):
        check_resumable(state, None)
    with pytest.raises(ResumeError):
        check_resumable(None, None)
