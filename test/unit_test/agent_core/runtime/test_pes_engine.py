from __future__ import annotations

import pytest

from stepforge_ai.agent_core.errors import ResumeError, ThreadNotFoundError
from stepforge_ai.agent_core.runtime.engine import GENERIC_FAILURE_MESSAGE, PESEngine
from stepforge_ai.agent_core.schemas.domain import (
    MessageRole,
    ObservationType,
    PlanState,
    RunStatus,
    Step,
    StepStatus,
    ThreadConfig,
)

from pes_fakes import StreamFailure, plan_json, tool_call

THREAD = "thread-1"


def _step(step_id: str, **kw):
    return {"id": step_id, "description": f"Step {step_id}", **kw}


def _executing(reasoning):
    return [c[2].step_id for c in reasoning.calls_for("execution")]


@pytest.mark.asyncio
async def test_process_happy_path(engine, deps, reasoning, recorder):
    reasoning.add("planning", plan_json(_step("s1", requiredTools=["search"]), title="Docs", intent="Find docs"))
    reasoning.add("execution", {"toolCalls": [tool_call("search", q="docs")]}, {"content": "two docs found"})
    reasoning.add("synthesis", "There are two docs.")

    result = await engine.process(THREAD, "Find the docs", user_id="u1", trace_id="trace-a")

    assert result.metadata.status == RunStatus.success
    assert result.metadata.trace_id == "trace-a"
    assert result.response.content == "There are two docs."
    assert result.response.role == MessageRole.ai
    assert result.metadata.llm_calls == 4
    assert result.metadata.tool_calls == 1
    assert result.metadata.llm_metadata["input_tokens"] == 40
    assert recorder.names() == ["search"]

    state = await engine.get_plan_state(THREAD)
    assert state.title == "Docs"
    assert state.steps[0].status == StepStatus.completed
    assert state.steps[0].result == "two docs found"
    assert state.step_outputs["s1"].output == "two docs found"
    assert state.current_step_id is None

    history = await deps.conversations.get_messages(THREAD)
    assert [(m.role, m.content) for m in history] == [
        (MessageRole.user, "Find the docs"),
        (MessageRole.ai, "There are two docs."),
    ]
    types = [o.type for o in deps.observations.observations]
    for expected in (
        ObservationType.intent,
        ObservationType.title,
        ObservationType.plan,
        ObservationType.plan_update,
        ObservationType.validation,
        ObservationType.final_response,
    ):
        assert expected in types
    statuses = [o.content["status"] for o in deps.observations.of_type(ObservationType.item_status_change)]
    assert statuses == ["in_progress", "completed"]


@pytest.mark.asyncio
async def test_planning_failure_reports_error_and_saves_nothing(engine, deps, reasoning):
    reasoning.add("planning", "Sorry, I cannot plan that.")

    result = await engine.process(THREAD, "Do something")

    assert result.metadata.status == RunStatus.error
    assert result.metadata.phase == "planning"
    assert result.response.content == GENERIC_FAILURE_MESSAGE
    assert await engine.get_plan_state(THREAD) is None
    (err,) = deps.observations.of_type(ObservationType.error)
    assert err.content["phase"] == "planning"
    assert reasoning.calls_for("synthesis") == []


@pytest.mark.asyncio
async def test_failed_step_stops_the_loop(engine, deps, reasoning):
    reasoning.add("planning", plan_json(_step("s1"), _step("s2")))
    reasoning.add("execution", StreamFailure("model crashed"))

    result = await engine.process(THREAD, "Two things")

    assert result.metadata.status == RunStatus.success
    state = await engine.get_plan_state(THREAD)
    assert [s.status for s in state.steps] == [StepStatus.failed, StepStatus.pending]
    assert _executing(reasoning) == ["s1"]
    (err,) = deps.observations.of_type(ObservationType.error)
    assert err.content["phase"] == "execution_loop"
    assert len(reasoning.calls_for("synthesis")) == 1


@pytest.mark.asyncio
async def test_dependencies_decide_execution_order(engine, reasoning):
    reasoning.add("planning", plan_json(_step("s2", dependencies=["s1"]), _step("s1")))
    reasoning.add("execution", {"content": "first"}, {"content": "second"})

    await engine.process(THREAD, "Ordered work")

    assert _executing(reasoning) == ["s1", "s2"]
    state = await engine.get_plan_state(THREAD)
    assert {s.id: s.result for s in state.steps} == {"s1": "first", "s2": "second"}


@pytest.mark.asyncio
async def test_blocked_steps_are_not_run(engine, reasoning):
    reasoning.add("planning", plan_json(_step("s1"), _step("s2", dependencies=["s1"])))
    reasoning.add("execution", StreamFailure())

    await engine.process(THREAD, "q")

    state = await engine.get_plan_state(THREAD)
    assert state.get_step("s2").status == StepStatus.pending
    assert _executing(reasoning) == ["s1"]


@pytest.mark.asyncio
async def test_scheduler_loop_ceiling(deps, engine_config, reasoning):
    engine = PESEngine(deps=deps, config=engine_config.model_copy(update={"max_scheduler_loops": 1}))
    reasoning.add("planning", plan_json(_step("s1"), _step("s2")))
    reasoning.add("execution", {"content": "one"}, {"content": "two"})

    result = await engine.process(THREAD, "q")

    assert result.metadata.status == RunStatus.success
    state = await engine.get_plan_state(THREAD)
    assert [s.status for s in state.steps] == [StepStatus.completed, StepStatus.pending]


@pytest.mark.asyncio
async def test_follow_up_refines_without_downgrading_completed(engine, deps, reasoning):
    reasoning.add("planning", plan_json(_step("s1")))
    reasoning.add("execution", {"content": "X"}, {"content": "Y"})
    await engine.process(THREAD, "First question")

    reasoning.add(
        "planning_refinement",
        plan_json(_step("s1", status="pending", description="Rewritten"), _step("s2", dependencies=["s1"])),
    )
    result = await engine.process(THREAD, "Follow-up")

    assert result.metadata.status == RunStatus.success
    state = await engine.get_plan_state(THREAD)
    s1, s2 = state.steps
    assert s1.status == StepStatus.completed
    assert s1.description == "Step s1"
    assert s1.result == "X"
    assert s2.status == StepStatus.completed
    assert _executing(reasoning) == ["s1", "s2"]
    assert len(reasoning.calls_for("planning")) == 1
    sources = [o.content["source"] for o in deps.observations.of_type(ObservationType.plan_update)]
    assert sources == ["planning", "planning_refinement"]
    # The follow-up question is part of the refinement prompt, after the first exchange.
    prompt = reasoning.calls_for("planning_refinement")[0][1]
    assert [m.content for m in prompt[1:]] == ["First question", "Final answer.", "Follow-up"]


@pytest.mark.asyncio
async def test_empty_follow_up_does_not_refine(engine, reasoning):
    reasoning.add("planning", plan_json(_step("s1")))
    reasoning.add("execution", {"content": "X"})
    await engine.process(THREAD, "First")

    await engine.process(THREAD, "   ")

    assert reasoning.calls_for("planning_refinement") == []


@pytest.mark.asyncio
async def test_interrupted_step_is_rescheduled(engine, deps, reasoning):
    stale = PlanState(
        thread_id=THREAD,
        steps=[
            Step(id="s1", description="done", status=StepStatus.completed, result="A"),
            Step(id="s2", description="crashed", status=StepStatus.in_progress),
        ],
        current_step_id="s2",
    )
    await deps.state.save_plan_state(THREAD, stale)
    reasoning.add("execution", {"content": "B"})

    result = await engine.process(THREAD, "")

    assert result.metadata.status == RunStatus.success
    assert _executing(reasoning) == ["s2"]
    state = await engine.get_plan_state(THREAD)
    assert state.get_step("s2").status == StepStatus.completed
    assert reasoning.calls_for("planning") == []


@pytest.mark.asyncio
async def test_paused_thread_is_not_refined(engine, reasoning):
    reasoning.add("planning", plan_json(_step("s1", requiredTools=["request_approval"])))
    reasoning.add("execution", {"toolCalls": [tool_call("request_approval", action="send email")]})
    first = await engine.process(THREAD, "Send the email")
    assert first.metadata.status == RunStatus.suspended

    second = await engine.process(THREAD, "Are you done?")

    assert second.metadata.status == RunStatus.suspended
    assert second.metadata.suspension_id == first.metadata.suspension_id
    assert "request_approval" in second.response.content
    assert reasoning.calls_for("planning_refinement") == []


@pytest.mark.asyncio
async def test_resume_preconditions_raise(engine, reasoning):
    with pytest.raises(ThreadNotFoundError):
        await engine.resume("unknown", approved=True)

    reasoning.add("planning", plan_json(_step("s1")))
    reasoning.add("execution", {"content": "X"})
    await engine.process(THREAD, "q")
    before = await engine.get_plan_state(THREAD)

    with pytest.raises(ResumeError):
        await engine.resume(THREAD, approved=True)
    assert (await engine.get_plan_state(THREAD)) == before


@pytest.mark.asyncio
async def test_resume_with_wrong_suspension_id(engine, reasoning):
    reasoning.add("planning", plan_json(_step("s1", requiredTools=["request_approval"])))
    reasoning.add("execution", {"toolCalls": [tool_call("request_approval", action="x")]})
    await engine.process(THREAD, "q")

    with pytest.raises(ResumeError):
        await engine.resume(THREAD, approved=True, suspension_id="not-it")
    assert (await engine.get_plan_state(THREAD)).is_paused


@pytest.mark.asyncio
async def test_rejection_reaches_the_model(engine, reasoning):
    reasoning.add("planning", plan_json(_step("s1", requiredTools=["request_approval"])))
    reasoning.add(
        "execution",
        {"toolCalls": [tool_call("request_approval", "c1", action="delete files")]},
        {"content": "Deletion was rejected; nothing was removed."},
    )
    suspended = await engine.process(THREAD, "Clean up")

    result = await engine.resume(
        THREAD, approved=False, reason="too risky", suspension_id=suspended.metadata.suspension_id
    )

    assert result.metadata.status == RunStatus.success
    prompt = reasoning.calls_for("execution")[1][1]
    assert prompt[-2].role == "tool" and prompt[-2].tool_call_id == "c1"
    assert prompt[-1].role == "system" and "request_approval" in prompt[-1].content
    step = (await engine.get_plan_state(THREAD)).get_step("s1")
    assert step.status == StepStatus.completed
    assert step.result == "Deletion was rejected; nothing was removed."


@pytest.mark.asyncio
async def test_thread_options_shape_prompts(engine, reasoning):
    reasoning.add("planning", plan_json(_step("s1")))
    reasoning.add("execution", {"content": "X"})

    await engine.process(
        THREAD,
        "q",
        options=ThreadConfig(system_prompt="Answer in French.", enabled_tools=["search"]),
    )

    system = reasoning.calls_for("planning")[0][1][0].content
    assert "Answer in French." in system
    assert '"name": "search"' in system
    assert '"name": "fetch"' not in system


@pytest.mark.asyncio
async def test_stored_thread_config_is_used(engine, deps, reasoning):
    deps.state.set_thread_config(THREAD, ThreadConfig(persona="Pirate"))
    reasoning.add("planning", plan_json(_step("s1")))
    reasoning.add("execution", {"content": "X"})

    await engine.process(THREAD, "q")

    assert "Persona: Pirate" in reasoning.calls_for("synthesis")[0][1][0].content


@pytest.mark.asyncio
async def test_synthesis_failure_is_an_error_after_state_is_saved(engine, deps, reasoning):
    reasoning.add("planning", plan_json(_step("s1")))
    reasoning.add("execution", {"content": "X"})
    reasoning.add("synthesis", StreamFailure("synthesis down"))

    result = await engine.process(THREAD, "q")

    assert result.metadata.status == RunStatus.error
    assert result.metadata.phase == "synthesis"
    assert "synthesis down" in result.metadata.error
    state = await engine.get_plan_state(THREAD)
    assert state.steps[0].status == StepStatus.completed


@pytest.mark.asyncio
async def test_threads_are_independent(engine, reasoning):
    reasoning.add("planning", plan_json(_step("a1")), plan_json(_step("b1")))
    reasoning.add("execution", {"content": "A"}, {"content": "B"})

    await engine.process("thread-a", "qa")
    await engine.process("thread-b", "qb")

    assert (await engine.get_plan_state("thread-a")).steps[0].result == "A"
    assert (await engine.get_plan_state("thread-b")).steps[0].result == "B"
