"""Suspension and resume of a step awaiting a human decision.

States
------

Running -> Suspended (a local tool returned status ``suspended``)
-> Resumed (an external decision arrived) -> Running.

On suspension the thread's PlanState records a ``SuspensionContext`` with
the triggering call and the step's dialogue up to that point, and the step
stays InProgress. On resume the step goes back to Pending and the saved
dialogue, extended with the decision, is parked in ``resume_context`` until
the step processor picks the step up again.
"""

from __future__ import annotations

import json
import logging
from typing import Optional
from uuid import uuid4

from ..errors import ResumeError
from ..schemas.domain import (
    IterationState,
    ObservationType,
    PlanState,
    ResumeContext,
    Step,
    StepStatus,
    SuspensionContext,
    ToolCall,
    ToolResult,
    ToolResultStatus,
)
from .models import RunContext
from .prompts import rejection_message, tool_result_message

logger = logging.getLogger(__name__)


def check_resumable(state: Optional[PlanState], suspension_id: Optional[str]) -> tuple[SuspensionContext, Step]:
    """Validate a resume request without touching the state.

    Raises:
        ResumeError: when the thread is not paused, the suspension id does not
            match, or the suspended step no longer exists.
    """
    if state is None or not state.is_paused or state.suspension is None:
        raise ResumeError("Thread is not paused; nothing to resume", phase="resume")
    suspension = state.suspension
    if suspension_id is not None and suspension_id != suspension.suspension_id:
        raise ResumeError(
            f"Suspension id mismatch: expected {suspension.suspension_id}, got {suspension_id}", phase="resume"
        )
    step = state.get_step(suspension.item_id)
    if step is None:
        raise ResumeError(f"Suspended step {suspension.item_id} not found in plan", phase="resume")
    return suspension, step


class SuspensionManager:
    async def suspend(
        self,
        ctx: RunContext,
        step: Step,
        tool_call: ToolCall,
        iteration_state: IterationState,
    ) -> SuspensionContext:
        """Pause the thread on ``step``.

        The suspension id is always generated here, never taken from the tool.
        """
        suspension = SuspensionContext(
            suspension_id=str(uuid4()),
            item_id=step.id,
            tool_call=tool_call,
            iteration_state=iteration_state.model_copy(deep=True),
        )
        state = ctx.state
        state.suspension = suspension
        state.is_paused = True
        state.current_step_id = step.id
        if step.status != StepStatus.in_progress:
            step.set_status(StepStatus.in_progress)
        await ctx.persist()

        logger.info(
            f"[{ctx.trace_id}] Step {step.id} suspended on tool '{tool_call.tool_name}' "
            f"(suspension_id={suspension.suspension_id})"
        )
        await ctx.observer.record(
            ObservationType.suspended,
            {
                "suspension_id": suspension.suspension_id,
                "item_id": step.id,
                "tool_call": tool_call.model_dump(mode="json"),
            },
            parent_id=step.id,
        )
        return suspension

    async def resume(
        self,
        ctx: RunContext,
        *,
        approved: bool,
        reason: Optional[str] = None,
        suspension_id: Optional[str] = None,
    ) -> ResumeContext:
        """Apply a human decision to the suspended step.

        Raises:
            ResumeError: see ``check_resumable``; the state is left untouched.
        """
        state = ctx.state
        suspension, step = check_resumable(state, suspension_id)

        call = suspension.tool_call
        feedback = {"approved": approved, "reason": reason}
        if approved:
            decision = ToolResult(
                call_id=call.call_id,
                tool_name=call.tool_name,
                status=ToolResultStatus.success,
                output=feedback,
            )
        else:
            decision = ToolResult(
                call_id=call.call_id,
                tool_name=call.tool_name,
                status=ToolResultStatus.error,
                output=feedback,
                error=f"Rejected by user{': ' + reason if reason else ''}",
            )
        step.tool_results.append(decision)

        iteration_state = suspension.iteration_state.model_copy(deep=True)
        iteration_state.messages.append(tool_result_message(call.call_id, call.tool_name, json.dumps(feedback)))
        # A rejected call was still invoked; it just returned an error.
        if call.tool_name not in iteration_state.invoked_tools:
            iteration_state.invoked_tools.append(call.tool_name)
        if not approved:
            iteration_state.messages.append(rejection_message(call.tool_name, reason))

        resume_context = ResumeContext(
            item_id=step.id,
            suspension_id=suspension.suspension_id,
            approved=approved,
            iteration_state=iteration_state,
        )
        step.set_status(StepStatus.pending)
        state.resume_context = resume_context
        state.suspension = None
        state.is_paused = False
        state.current_step_id = None
        await ctx.persist()

        logger.info(
            f"[{ctx.trace_id}] Resumed step {step.id} (suspension_id={suspension.suspension_id}, approved={approved})"
        )
        await ctx.observer.record(
            ObservationType.resumed,
            {"suspension_id": suspension.suspension_id, "item_id": step.id, "approved": approved, "reason": reason},
            parent_id=step.id,
        )
        return resume_context
