"""Planner: turns a user goal into an ordered, dependency-aware step list.

One reasoning call per phase. ``plan`` is used for a new thread (or a thread
whose plan is empty); ``refine`` revises an existing plan after a follow-up
message. Both return normalized ``Step`` objects; merging a refinement into
the previous plan is left to the caller because only it knows which step is
currently executing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Sequence

from ..errors import PlanningError, ReasoningError
from ..reasoning.base import CallOptions
from ..reasoning.parser import PlanningOutput, parse_planning_output
from ..reasoning.stream import drain_stream
from ..schemas.domain import ConversationMessage, PlanState, Step
from .prompts import planning_prompt, refinement_prompt
from .steps import normalize_steps

if TYPE_CHECKING:
    from ..runtime.models import RunContext

logger = logging.getLogger(__name__)


@dataclass
class PlanDraft:
    title: Optional[str] = None
    intent: Optional[str] = None
    plan: Optional[str] = None
    steps: List[Step] = field(default_factory=list)


class Planner:
    async def plan(self, ctx: RunContext, *, goal: str, history: Sequence[ConversationMessage]) -> PlanDraft:
        """Produce a fresh plan for ``goal``.

        Raises:
            PlanningError: when the reasoning call fails or its output has no
                usable step list.
        """
        prompt = planning_prompt(
            goal=goal,
            tools=ctx.tools,
            history=history,
            system_prompt=ctx.system_prompt,
            persona=ctx.persona,
        )
        output = await self._call(ctx, prompt, phase="planning")
        return PlanDraft(
            title=output.title,
            intent=output.intent,
            plan=output.plan,
            steps=normalize_steps(output.steps or []),
        )

    async def refine(
        self,
        ctx: RunContext,
        *,
        goal: str,
        existing: PlanState,
        history: Sequence[ConversationMessage],
    ) -> PlanDraft:
        """Revise ``existing`` in light of a follow-up ``goal``.

        Ids of existing steps stay referenceable as dependencies of the
        revised steps.
        """
        prompt = refinement_prompt(
            goal=goal,
            existing=existing,
            tools=ctx.tools,
            history=history,
            system_prompt=ctx.system_prompt,
            persona=ctx.persona,
        )
        output = await self._call(ctx, prompt, phase="planning_refinement")
        return PlanDraft(
            title=output.title,
            intent=output.intent,
            plan=output.plan,
            steps=normalize_steps(output.steps or [], known_ids=[s.id for s in existing.steps]),
        )

    async def _call(self, ctx: RunContext, prompt, *, phase: str) -> PlanningOutput:
        options = CallOptions(phase=phase, thread_id=ctx.thread_id, trace_id=ctx.trace_id)
        try:
            drained = await drain_stream(ctx, ctx.deps.reasoning.call(prompt, options), phase=phase)
        except ReasoningError as e:
            raise PlanningError(f"Reasoning call failed during {phase}: {e.message}", phase=phase, cause=e) from e

        output = parse_planning_output(drained.response)
        if output.steps is None and drained.thinking:
            # Some models put the whole JSON answer in their visible reasoning.
            output = parse_planning_output(drained.combined)
        if output.steps is None:
            logger.error(f"[{ctx.trace_id}] Could not parse a step list from {phase} output")
            raise PlanningError(f"Could not parse a step list from the {phase} output", phase=phase)

        logger.info(f"[{ctx.trace_id}] {phase} produced {len(output.steps)} step(s)")
        return output
