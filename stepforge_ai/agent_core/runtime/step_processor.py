"""Per-step state machine.

Phases
------

``iterating``
    One reasoning call with the step's dialogue. Tool calls go to
    ``dispatching``; a final answer goes to ``validating``. An iteration cap
    also ends in ``validating``.

``validating``
    Checks that every required tool was invoked at least once (success or
    error both count). Strict steps with retries left go to ``retrying``;
    everything else completes. Validation never fails a step.

``retrying``
    Appends an enforcement message and goes back to ``iterating``. The next
    call does not count against ``max_step_iterations``.

``dispatching``
    Runs local tools, then delegated calls, appending their results to the
    dialogue. A ``suspended`` local result pauses the thread.

Terminal phases are ``completed``, ``failed`` and ``suspended``.

Status transitions of the step itself (Pending -> InProgress -> Completed or
Failed) are owned by the Scheduler; this module only moves a step between
InProgress and Waiting while delegated tasks run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from ..planning.diff import compute_step_diff
from ..planning.steps import merge_refined_steps, normalize_steps
from ..reasoning.base import CallOptions
from ..reasoning.parser import PlanningOutput, parse_execution_output
from ..reasoning.stream import drain_stream
from ..schemas.config import EngineConfig
from ..schemas.domain import (
    IterationState,
    ObservationType,
    PromptMessage,
    Step,
    StepKind,
    StepStatus,
    ToolCall,
    ToolResult,
    ToolResultStatus,
    ValidationMode,
    ValidationStatus,
)
from .delegation import DelegationCoordinator, delegation_tool_descriptor
from .models import RunContext
from .prompts import empty_response_message, enforcement_message, step_prompt, tool_result_message
from .suspension import SuspensionManager

logger = logging.getLogger(__name__)


class StepPhase(str, Enum):
    iterating = "iterating"
    validating = "validating"
    retrying = "retrying"
    dispatching = "dispatching"
    completed = "completed"
    failed = "failed"
    suspended = "suspended"


class StepOutcome(str, Enum):
    completed = "completed"
    failed = "failed"
    suspended = "suspended"


_TERMINAL = {
    StepPhase.completed: StepOutcome.completed,
    StepPhase.failed: StepOutcome.failed,
    StepPhase.suspended: StepOutcome.suspended,
}


@dataclass
class _StepRun:
    """Working state of one step between phases."""

    step: Step
    it: IterationState
    # Set for validation retries and the first call after a resume.
    free_call: bool = False
    at_cap: bool = False
    fallback_content: str = ""
    final_content: str = ""
    pending_calls: List[ToolCall] = field(default_factory=list)
    missing_tools: List[str] = field(default_factory=list)


class StepProcessor:
    def __init__(
        self,
        config: EngineConfig,
        *,
        suspensions: SuspensionManager,
        delegation: DelegationCoordinator,
    ) -> None:
        self._config = config
        self._suspensions = suspensions
        self._delegation = delegation
        self._handlers: Dict[StepPhase, Callable[[RunContext, _StepRun], Awaitable[StepPhase]]] = {
            StepPhase.iterating: self._iterate,
            StepPhase.validating: self._validate,
            StepPhase.retrying: self._retry,
            StepPhase.dispatching: self._dispatch,
        }

    async def process(self, ctx: RunContext, step: Step) -> StepOutcome:
        """Drive ``step`` until it completes, fails or suspends the thread.

        The caller has already marked the step InProgress. Exceptions from
        the reasoning client or repositories propagate.
        """
        run = await self._start(ctx, step)
        phase = StepPhase.iterating
        while phase not in _TERMINAL:
            logger.debug(f"[{ctx.trace_id}] Step {step.id}: {phase.value}")
            phase = await self._handlers[phase](ctx, run)

        outcome = _TERMINAL[phase]
        logger.info(
            f"[{ctx.trace_id}] Step {step.id} finished as {outcome.value} after "
            f"{run.it.iteration} iteration(s), {run.it.validation_retries} validation retr(y/ies)"
        )
        return outcome

    async def _start(self, ctx: RunContext, step: Step) -> _StepRun:
        resume = ctx.state.resume_context
        if resume is not None and resume.item_id == step.id:
            it = resume.iteration_state.model_copy(deep=True)
            ctx.state.resume_context = None
            await ctx.persist()
            logger.info(f"[{ctx.trace_id}] Continuing step {step.id} from suspension {resume.suspension_id}")
            return _StepRun(step=step, it=it, free_call=True, fallback_content=it.last_content)

        delegation_tool = None
        if step.kind == StepKind.tool and ctx.deps.tasks is not None and ctx.deps.agents is not None:
            delegation_tool = delegation_tool_descriptor(self._config.delegation_tool_name)
        messages = step_prompt(
            step=step,
            state=ctx.state,
            query=ctx.query,
            tools=ctx.tools,
            delegation_tool=delegation_tool,
            system_prompt=ctx.system_prompt,
            persona=ctx.persona,
        )
        return _StepRun(step=step, it=IterationState(messages=messages))

    async def _iterate(self, ctx: RunContext, run: _StepRun) -> StepPhase:
        step, it = run.step, run.it
        if not run.free_call and it.iteration >= self._config.max_step_iterations:
            logger.warning(f"[{ctx.trace_id}] Step {step.id} reached the iteration cap ({it.iteration})")
            run.at_cap = True
            run.final_content = it.last_content or run.fallback_content
            return StepPhase.validating

        if run.free_call:
            run.free_call = False
        else:
            it.iteration += 1

        options = CallOptions(
            phase="execution",
            thread_id=ctx.thread_id,
            trace_id=ctx.trace_id,
            step_id=step.id,
            extra={"iteration": it.iteration},
        )
        drained = await drain_stream(
            ctx,
            ctx.deps.reasoning.call(list(it.messages), options),
            phase="execution",
            parent_id=step.id,
        )

        output = parse_execution_output(drained.response)
        if output.is_empty and drained.thinking.strip():
            output = parse_execution_output(drained.combined)

        raw = drained.response.strip() or drained.combined.strip()
        if raw:
            it.messages.append(PromptMessage(role="assistant", content=raw))

        content = output.content.strip()
        it.last_content = content
        if content:
            run.fallback_content = content

        if output.updated_plan is not None:
            await self._apply_revision(ctx, step, output.updated_plan)

        calls = output.tool_calls
        if calls and step.kind == StepKind.reasoning:
            logger.warning(
                f"[{ctx.trace_id}] Reasoning step {step.id} requested tools "
                f"{[c.tool_name for c in calls]}; ignoring the calls"
            )
            calls = []

        if calls:
            run.pending_calls = list(calls)
            return StepPhase.dispatching

        if not content and not step.tool_results:
            logger.warning(f"[{ctx.trace_id}] Step {step.id} got an empty response; asking again")
            it.messages.append(empty_response_message())
            return StepPhase.iterating

        run.final_content = content
        return StepPhase.validating

    async def _validate(self, ctx: RunContext, run: _StepRun) -> StepPhase:
        step, it = run.step, run.it
        if not step.requires_validation:
            step.validation_status = ValidationStatus.skipped
            return self._complete(ctx, run)

        missing = [t for t in step.required_tools if t not in it.invoked_tools]
        if not missing:
            step.validation_status = ValidationStatus.passed
            await ctx.observer.record(
                ObservationType.validation,
                {"item_id": step.id, "status": ValidationStatus.passed.value, "invoked": list(it.invoked_tools)},
                parent_id=step.id,
            )
            return self._complete(ctx, run)

        can_retry = (
            step.validation_mode == ValidationMode.strict
            and not run.at_cap
            and it.validation_retries < self._config.max_validation_retries
        )
        if can_retry:
            run.missing_tools = missing
            await ctx.observer.record(
                ObservationType.validation,
                {"item_id": step.id, "status": "retrying", "missing": missing, "retry": it.validation_retries + 1},
                parent_id=step.id,
            )
            return StepPhase.retrying

        if step.validation_mode == ValidationMode.strict:
            logger.error(
                f"[{ctx.trace_id}] Step {step.id} never invoked required tools {missing}; "
                "completing with validation failed"
            )
        else:
            logger.warning(f"[{ctx.trace_id}] Advisory step {step.id} did not invoke required tools {missing}")
        step.validation_status = ValidationStatus.failed
        await ctx.observer.record(
            ObservationType.validation,
            {"item_id": step.id, "status": ValidationStatus.failed.value, "missing": missing},
            parent_id=step.id,
        )
        return self._complete(ctx, run)

    async def _retry(self, ctx: RunContext, run: _StepRun) -> StepPhase:
        run.it.validation_retries += 1
        run.it.messages.append(enforcement_message(run.missing_tools))
        run.missing_tools = []
        run.free_call = True
        return StepPhase.iterating

    def _complete(self, ctx: RunContext, run: _StepRun) -> StepPhase:
        step = run.step
        if run.final_content:
            step.result = run.final_content
            return StepPhase.completed

        tool_output = step.last_tool_output()
        if tool_output is not None:
            step.result = tool_output
            return StepPhase.completed

        logger.error(f"[{ctx.trace_id}] Step {step.id} produced neither content nor tool output")
        return StepPhase.failed

    async def _dispatch(self, ctx: RunContext, run: _StepRun) -> StepPhase:
        step = run.step
        calls, run.pending_calls = run.pending_calls, []
        delegation_name = self._config.delegation_tool_name
        local = [c for c in calls if c.tool_name != delegation_name]
        delegated = [c for c in calls if c.tool_name == delegation_name]
        ctx.tool_calls += len(calls)

        if local:
            calls_by_id = {c.call_id: c for c in local}
            results = await ctx.deps.tool_executor.execute_tools(local, ctx.thread)
            for index, result in enumerate(results):
                if result.status == ToolResultStatus.suspended:
                    await ctx.observer.record(
                        ObservationType.tool_execution,
                        {"item_id": step.id, "results": [r.model_dump(mode="json") for r in results[: index + 1]]},
                        parent_id=step.id,
                    )
                    call = calls_by_id.get(result.call_id) or ToolCall(
                        call_id=result.call_id, tool_name=result.tool_name
                    )
                    await self._suspensions.suspend(ctx, step, call, run.it)
                    return StepPhase.suspended
                self._record_result(run, result)
            await ctx.observer.record(
                ObservationType.tool_execution,
                {"item_id": step.id, "results": [r.model_dump(mode="json") for r in results]},
                parent_id=step.id,
            )

        if delegated:
            await self._set_status(ctx, step, StepStatus.waiting)
            results = await self._delegation.run(ctx, delegated, parent_id=step.id)
            await self._set_status(ctx, step, StepStatus.in_progress)
            for result in results:
                self._record_result(run, result)

        await ctx.persist()
        return StepPhase.iterating

    def _record_result(self, run: _StepRun, result: ToolResult) -> None:
        run.step.tool_results.append(result)
        if result.tool_name not in run.it.invoked_tools:
            run.it.invoked_tools.append(result.tool_name)
        if result.status == ToolResultStatus.success:
            payload = result.output
        else:
            payload = {"error": result.error, "output": result.output}
        run.it.messages.append(tool_result_message(result.call_id, result.tool_name, payload))

    async def _set_status(self, ctx: RunContext, step: Step, status: StepStatus) -> None:
        step.set_status(status)
        await ctx.persist()
        await ctx.observer.record(
            ObservationType.item_status_change, {"item_id": step.id, "status": status.value}, parent_id=step.id
        )

    async def _apply_revision(self, ctx: RunContext, step: Step, revision: PlanningOutput) -> None:
        state = ctx.state
        if revision.steps is None:
            logger.warning(f"[{ctx.trace_id}] Ignoring plan revision from step {step.id} without a step list")
            return

        before = [s.model_copy(deep=True) for s in state.steps]
        revised = normalize_steps(revision.steps, known_ids=[s.id for s in state.steps])
        state.steps = merge_refined_steps(state.steps, revised, current_step_id=step.id)
        if revision.intent:
            state.intent = revision.intent
        if revision.plan:
            state.plan_summary = revision.plan
        await ctx.persist()

        diff = compute_step_diff(before, state.steps)
        logger.info(
            f"[{ctx.trace_id}] Step {step.id} revised the plan: +{len(diff.added)} ~{len(diff.modified)} "
            f"-{len(diff.removed)}"
        )
        await ctx.observer.record(
            ObservationType.plan_update,
            {"source": "execution", "steps": [s.model_dump(mode="json") for s in state.steps], "changes": diff.model_dump()},
            parent_id=step.id,
        )


def outcome_status(outcome: StepOutcome) -> Optional[StepStatus]:
    """Step status the Scheduler assigns for ``outcome``; ``None`` leaves it unchanged."""
    if outcome == StepOutcome.completed:
        return StepStatus.completed
    if outcome == StepOutcome.failed:
        return StepStatus.failed
    return None
