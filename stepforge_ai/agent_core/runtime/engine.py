"""LangGraph runtime engine.

``PESEngine`` runs the Plan-Execute-Synthesize flow for one conversation
thread at a time.

Run phases
----------

``configuration -> context_gathering -> state_loading -> planning |
planning_refinement -> execution_loop -> synthesis -> finalization``

- A new thread (or one whose plan has no steps) is planned from scratch; a
  follow-up message refines the existing plan. A paused thread is never
  refined: the response reports the pending suspension instead.
- The execution loop is a LangGraph state machine (``select -> execute ->
  select ... -> finish``) bounded by ``max_scheduler_loops``. It stops when
  no step is runnable, a step fails, a step suspends the thread, or the
  ceiling is reached.
- The plan state is persisted before and after every step attempt, so a
  crash loses at most the in-flight reasoning call.

Error boundaries
----------------

- An exception escaping the step processor marks that step Failed and stops
  the loop.
- Any exception escaping a phase is caught in ``process``/``resume``: the run
  reports status ``error`` and a generic message, and an ERROR observation
  tagged with the phase is recorded.
- ``resume`` preconditions (``ThreadNotFoundError``, ``ResumeError``) are
  raised to the caller before anything runs.
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional
from uuid import uuid4

from langgraph.graph import END, StateGraph

from ...core.monitoring import log_run_completed, log_run_started
from ..errors import ThreadNotFoundError
from ..planning.diff import compute_step_diff
from ..planning.planner import PlanDraft, Planner
from ..planning.steps import merge_refined_steps
from ..schemas.config import EngineConfig
from ..schemas.domain import (
    AgentFinalResponse,
    ConversationMessage,
    ExecutionMetadata,
    MessageRole,
    ObservationType,
    PlanState,
    RunStatus,
    StepStatus,
    ThreadConfig,
    ThreadContext,
)
from .delegation import DelegationCoordinator
from .models import EngineDeps, Observer, RunContext, _GraphState
from .step_processor import StepOutcome, StepProcessor, outcome_status
from .suspension import SuspensionManager, check_resumable
from .synthesizer import Synthesizer

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "I'm sorry, something went wrong while processing your request. Please try again."


class PESEngine:
    """Plan, execute and synthesize an answer for a thread.

    Collaborators come in through ``EngineDeps``; tunables through
    ``EngineConfig``. Nothing on the engine is per-thread state, so one
    instance can serve many threads concurrently.
    """

    def __init__(self, *, deps: EngineDeps, config: Optional[EngineConfig] = None) -> None:
        """
        Initialize the PESEngine.

        Args:
            deps: The runtime dependencies (reasoning client, tools, repositories).
            config: Engine tunables; defaults apply when omitted.
        """
        self._deps = deps
        self._config = config or EngineConfig()
        self._planner = Planner()
        self._suspensions = SuspensionManager()
        self._processor = StepProcessor(
            self._config,
            suspensions=self._suspensions,
            delegation=DelegationCoordinator(self._config),
        )
        self._synthesizer = Synthesizer()
        self._graph = self._build_graph()

    @property
    def config(self) -> EngineConfig:
        return self._config

    def _build_graph(self):
        """Build and compile the Scheduler state machine."""
        g: StateGraph = StateGraph(_GraphState)
        g.add_node("select", self._node_select)
        g.add_node("execute", self._node_execute)
        g.add_node("finish", self._node_finish)

        g.set_entry_point("select")
        g.add_conditional_edges(
            "select",
            self._route_after_select,
            {"execute": "execute", "finish": "finish"},
        )
        g.add_conditional_edges(
            "execute",
            self._route_after_execute,
            {"continue": "select", "finish": "finish"},
        )
        g.add_edge("finish", END)
        return g.compile()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def process(
        self,
        thread_id: str,
        query: str,
        *,
        user_id: Optional[str] = None,
        trace_id: Optional[str] = None,
        options: Optional[ThreadConfig] = None,
    ) -> AgentFinalResponse:
        """Handle one user message on ``thread_id``.

        Never raises; failures are reported through the returned metadata.
        """
        ctx = self._new_context(thread_id, trace_id, user_id=user_id)
        started = time.perf_counter()
        log_run_started(thread_id, ctx.trace_id, query)
        logger.info(f"[{ctx.trace_id}] Processing message for thread {thread_id}")

        try:
            loaded = await self._load(ctx, options)
            history = await self._history(ctx)
            ctx.query = query
            await self._deps.conversations.append_messages(
                thread_id,
                [ConversationMessage(thread_id=thread_id, role=MessageRole.user, content=query)],
            )

            ctx.phase = "state_loading"
            await self._restore_state(ctx, loaded.plan_state)

            if ctx.state.is_paused:
                logger.info(f"[{ctx.trace_id}] Thread {thread_id} is paused; skipping plan refinement")
                return await self._finalize(
                    ctx,
                    text=self._suspended_text(ctx.state),
                    status=RunStatus.suspended,
                    started=started,
                )

            if not ctx.state.steps:
                await self._plan(ctx, history)
            elif query.strip():
                await self._refine(ctx, history)

            return await self._execute_and_answer(ctx, history, started)
        except Exception as e:
            return await self._fail(ctx, e, started)

    async def resume(
        self,
        thread_id: str,
        *,
        approved: bool,
        reason: Optional[str] = None,
        suspension_id: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> AgentFinalResponse:
        """Apply a human decision to a suspended thread and continue the run.

        Raises:
            ThreadNotFoundError: when the thread has no persisted plan.
            ResumeError: when the thread is not paused or ``suspension_id``
                does not match the pending suspension.
        """
        ctx = self._new_context(thread_id, trace_id)
        loaded = await self._deps.state.load_thread_context(thread_id)
        if loaded.plan_state is None:
            raise ThreadNotFoundError(thread_id)
        check_resumable(loaded.plan_state, suspension_id)

        started = time.perf_counter()
        log_run_started(thread_id, ctx.trace_id, "", resumed=True)
        logger.info(f"[{ctx.trace_id}] Resuming thread {thread_id} (approved={approved})")

        try:
            await self._configure(ctx, loaded, None)
            ctx.state = loaded.plan_state
            ctx.plan_established = True
            ctx.phase = "resume"
            await self._suspensions.resume(ctx, approved=approved, reason=reason, suspension_id=suspension_id)

            ctx.phase = "context_gathering"
            history = await self._history(ctx)
            ctx.query = self._resume_query(ctx.state, history)
            return await self._execute_and_answer(ctx, history, started)
        except Exception as e:
            return await self._fail(ctx, e, started)

    async def get_plan_state(self, thread_id: str) -> Optional[PlanState]:
        loaded = await self._deps.state.load_thread_context(thread_id)
        return loaded.plan_state

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _new_context(self, thread_id: str, trace_id: Optional[str], *, user_id: Optional[str] = None) -> RunContext:
        trace_id = trace_id or str(uuid4())
        observer = Observer(
            self._deps.observations,
            thread_id=thread_id,
            trace_id=trace_id,
            notifier=self._deps.notifier,
        )
        return RunContext(
            thread_id=thread_id,
            trace_id=trace_id,
            deps=self._deps,
            config=self._config,
            observer=observer,
            thread=ThreadContext(thread_id=thread_id, user_id=user_id),
            state=PlanState(thread_id=thread_id),
        )

    async def _load(self, ctx: RunContext, options: Optional[ThreadConfig]) -> ThreadContext:
        ctx.phase = "configuration"
        loaded = await self._deps.state.load_thread_context(ctx.thread_id)
        await self._configure(ctx, loaded, options)
        return loaded

    async def _configure(self, ctx: RunContext, loaded: ThreadContext, options: Optional[ThreadConfig]) -> None:
        config = loaded.config.model_copy(deep=True)
        if options is not None:
            for key, value in options.model_dump(exclude_unset=True).items():
                setattr(config, key, value)

        ctx.system_prompt = config.system_prompt or await self._deps.state.get_thread_config_value(
            ctx.thread_id, "system_prompt"
        )
        ctx.persona = config.persona or await self._deps.state.get_thread_config_value(ctx.thread_id, "persona")
        ctx.thread = ThreadContext(thread_id=ctx.thread_id, user_id=ctx.thread.user_id, config=config)

        ctx.phase = "context_gathering"
        ctx.tools = await self._deps.tool_discovery.list_available_tools(ctx.thread)
        logger.debug(f"[{ctx.trace_id}] {len(ctx.tools)} tool(s) available: {[t.name for t in ctx.tools]}")

    async def _history(self, ctx: RunContext) -> List[ConversationMessage]:
        limit = ctx.thread.config.history_limit or self._config.history_limit
        return await self._deps.conversations.get_messages(ctx.thread_id, limit=limit)

    async def _restore_state(self, ctx: RunContext, state: Optional[PlanState]) -> None:
        if state is None:
            logger.debug(f"[{ctx.trace_id}] No plan yet for thread {ctx.thread_id}")
            return
        ctx.state = state
        ctx.plan_established = True
        if state.is_paused:
            return

        # A step left InProgress/Waiting by a crashed run is attempted again.
        interrupted = [s for s in state.steps if s.status in (StepStatus.in_progress, StepStatus.waiting)]
        if interrupted or state.current_step_id is not None:
            for step in interrupted:
                logger.warning(f"[{ctx.trace_id}] Step {step.id} was interrupted in a previous run; rescheduling")
                step.set_status(StepStatus.pending)
            state.current_step_id = None
            await ctx.persist()

    async def _plan(self, ctx: RunContext, history: List[ConversationMessage]) -> None:
        ctx.phase = "planning"
        draft = await self._planner.plan(ctx, goal=ctx.query, history=history)
        previous = list(ctx.state.steps)
        ctx.state = PlanState(
            thread_id=ctx.thread_id,
            intent=draft.intent or "",
            title=draft.title or "",
            plan_summary=draft.plan or "",
            steps=draft.steps,
        )
        ctx.plan_established = True
        await ctx.persist()
        await self._record_plan(ctx, draft, compute_step_diff(previous, ctx.state.steps))

    async def _refine(self, ctx: RunContext, history: List[ConversationMessage]) -> None:
        ctx.phase = "planning_refinement"
        state = ctx.state
        draft = await self._planner.refine(ctx, goal=ctx.query, existing=state, history=history)

        before = [s.model_copy(deep=True) for s in state.steps]
        state.steps = merge_refined_steps(state.steps, draft.steps, state.current_step_id)
        if draft.intent:
            state.intent = draft.intent
        if draft.title:
            state.title = draft.title
        if draft.plan:
            state.plan_summary = draft.plan
        await ctx.persist()
        await self._record_plan(ctx, draft, compute_step_diff(before, state.steps))

    async def _record_plan(self, ctx: RunContext, draft: PlanDraft, diff) -> None:
        state = ctx.state
        logger.info(
            f"[{ctx.trace_id}] Plan for thread {ctx.thread_id}: {len(state.steps)} step(s) "
            f"(+{len(diff.added)} ~{len(diff.modified)} -{len(diff.removed)})"
        )
        if draft.intent:
            await ctx.observer.record(ObservationType.intent, {"intent": draft.intent})
        if draft.title:
            await ctx.observer.record(ObservationType.title, {"title": draft.title})
        await ctx.observer.record(
            ObservationType.plan,
            {"plan": state.plan_summary, "steps": [s.model_dump(mode="json") for s in state.steps]},
        )
        await ctx.observer.record(
            ObservationType.plan_update,
            {
                "source": ctx.phase,
                "steps": [s.model_dump(mode="json") for s in state.steps],
                "changes": diff.model_dump(),
            },
        )

    async def _execute_and_answer(
        self, ctx: RunContext, history: List[ConversationMessage], started: float
    ) -> AgentFinalResponse:
        ctx.phase = "execution_loop"
        graph_state: _GraphState = {"run": ctx, "loops": 0}
        final = await self._graph.ainvoke(
            graph_state, config={"recursion_limit": self._config.max_scheduler_loops * 2 + 5}
        )
        outcome = final.get("_outcome") or "exhausted"
        logger.debug(f"[{ctx.trace_id}] Execution loop stopped: {outcome} after {final.get('loops', 0)} loop(s)")

        if ctx.state.is_paused:
            return await self._finalize(
                ctx, text=self._suspended_text(ctx.state), status=RunStatus.suspended, started=started
            )

        ctx.phase = "synthesis"
        result = await self._synthesizer.synthesize(ctx, query=ctx.query, history=history)
        return await self._finalize(
            ctx, text=result.text, status=RunStatus.success, started=started, ui_metadata=result.ui_metadata
        )

    async def _finalize(
        self,
        ctx: RunContext,
        *,
        text: str,
        status: RunStatus,
        started: float,
        ui_metadata=None,
    ) -> AgentFinalResponse:
        ctx.phase = "finalization"
        suspension_id = ctx.state.suspension.suspension_id if ctx.state.suspension is not None else None
        message = ConversationMessage(
            thread_id=ctx.thread_id,
            role=MessageRole.ai,
            content=text,
            metadata={"trace_id": ctx.trace_id, "status": status.value},
        )
        await self._deps.conversations.append_messages(ctx.thread_id, [message])

        metadata = self._metadata(ctx, status, started, suspension_id=suspension_id)
        await ctx.observer.record(
            ObservationType.final_response,
            {"message_id": message.id, "status": status.value, "suspension_id": suspension_id},
        )
        log_run_completed(ctx.thread_id, ctx.trace_id, status.value, metadata.total_duration_ms)
        logger.info(
            f"[{ctx.trace_id}] Run finished: {status.value} in {metadata.total_duration_ms:.0f}ms "
            f"({ctx.llm_calls} LLM call(s), {ctx.tool_calls} tool call(s))"
        )
        return AgentFinalResponse(response=message, metadata=metadata, ui_metadata=ui_metadata)

    async def _fail(self, ctx: RunContext, error: Exception, started: float) -> AgentFinalResponse:
        phase = ctx.phase
        logger.error(f"[{ctx.trace_id}] Run failed during {phase}: {error}", exc_info=True)
        await ctx.observer.record(ObservationType.error, {"phase": phase, "error": str(error)})

        if ctx.plan_established:
            try:
                await ctx.persist()
            except Exception as e:
                logger.error(f"[{ctx.trace_id}] Could not persist plan state after failure: {e}")

        message = ConversationMessage(
            thread_id=ctx.thread_id,
            role=MessageRole.ai,
            content=GENERIC_FAILURE_MESSAGE,
            metadata={"trace_id": ctx.trace_id, "status": RunStatus.error.value},
        )
        try:
            await self._deps.conversations.append_messages(ctx.thread_id, [message])
        except Exception as e:
            logger.error(f"[{ctx.trace_id}] Could not record failure message: {e}")

        metadata = self._metadata(ctx, RunStatus.error, started, error=str(error), phase=phase)
        log_run_completed(ctx.thread_id, ctx.trace_id, RunStatus.error.value, metadata.total_duration_ms)
        return AgentFinalResponse(response=message, metadata=metadata)

    @staticmethod
    def _metadata(
        ctx: RunContext,
        status: RunStatus,
        started: float,
        *,
        suspension_id: Optional[str] = None,
        error: Optional[str] = None,
        phase: Optional[str] = None,
    ) -> ExecutionMetadata:
        return ExecutionMetadata(
            thread_id=ctx.thread_id,
            trace_id=ctx.trace_id,
            status=status,
            total_duration_ms=(time.perf_counter() - started) * 1000,
            llm_calls=ctx.llm_calls,
            tool_calls=ctx.tool_calls,
            error=error,
            phase=phase,
            suspension_id=suspension_id,
            llm_metadata=dict(ctx.llm_metadata),
        )

    @staticmethod
    def _suspended_text(state: PlanState) -> str:
        suspension = state.suspension
        if suspension is None:
            return "Execution is paused."
        step = state.get_step(suspension.item_id)
        what = f"step '{step.description}'" if step is not None else f"step {suspension.item_id}"
        return (
            f"Execution is paused: {what} is waiting for approval to run "
            f"'{suspension.tool_call.tool_name}'. Approve or reject to continue."
        )

    @staticmethod
    def _resume_query(state: PlanState, history: List[ConversationMessage]) -> str:
        for message in reversed(history):
            if message.role == MessageRole.user and message.content.strip():
                return message.content
        return state.intent

    # ------------------------------------------------------------------
    # Scheduler graph
    # ------------------------------------------------------------------

    async def _node_select(self, state: _GraphState) -> _GraphState:
        """Pick the next runnable step, or decide to stop."""
        ctx: RunContext = state["run"]
        if state["loops"] >= self._config.max_scheduler_loops:
            logger.warning(f"[{ctx.trace_id}] Scheduler loop ceiling ({self._config.max_scheduler_loops}) reached")
            state["_selected"] = None
            state["_outcome"] = "loop_limit"
            return state

        step = ctx.state.next_runnable_step()
        if step is None:
            state["_selected"] = None
            state["_outcome"] = "exhausted"
            return state

        state["_selected"] = step.id
        state["loops"] = state["loops"] + 1
        return state

    async def _node_execute(self, state: _GraphState) -> _GraphState:
        """Run one step attempt through the step processor."""
        ctx: RunContext = state["run"]
        step = ctx.state.get_step(str(state.get("_selected")))
        if step is None:
            state["_outcome"] = "exhausted"
            return state

        ctx.state.current_step_id = step.id
        step.set_status(StepStatus.in_progress)
        await ctx.persist()
        await ctx.observer.record(
            ObservationType.item_status_change, {"item_id": step.id, "status": step.status.value}, parent_id=step.id
        )

        try:
            outcome = await self._processor.process(ctx, step)
        except Exception as e:
            logger.error(f"[{ctx.trace_id}] Step {step.id} raised: {e}", exc_info=True)
            await ctx.observer.record(
                ObservationType.error,
                {"phase": "execution_loop", "item_id": step.id, "error": str(e)},
                parent_id=step.id,
            )
            outcome = StepOutcome.failed

        status = outcome_status(outcome)
        if status is not None:
            step.set_status(status)
        if outcome == StepOutcome.completed:
            ctx.state.record_step_output(step, self._config.step_output_max_bytes)
        if outcome != StepOutcome.suspended:
            ctx.state.current_step_id = None
        await ctx.persist()
        await ctx.observer.record(
            ObservationType.item_status_change, {"item_id": step.id, "status": step.status.value}, parent_id=step.id
        )

        state["_outcome"] = outcome.value
        return state

    async def _node_finish(self, state: _GraphState) -> _GraphState:
        ctx: RunContext = state["run"]
        completed = len(ctx.state.completed_steps())
        logger.debug(
            f"[{ctx.trace_id}] Scheduler finished ({state.get('_outcome')}): "
            f"{completed}/{len(ctx.state.steps)} step(s) completed"
        )
        return state

    def _route_after_select(self, state: _GraphState) -> str:
        return "execute" if state.get("_selected") else "finish"

    def _route_after_execute(self, state: _GraphState) -> str:
        if state.get("_outcome") in (StepOutcome.failed.value, StepOutcome.suspended.value):
            return "finish"
        return "continue"
