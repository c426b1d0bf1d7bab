"""Agent-to-agent delegation wait-protocol.

Calls to the delegation pseudo-tool become ``A2ATask`` records submitted via
the task repository. The owning step then blocks on a poll loop until every
task is terminal or the overall timeout elapses. Nothing in here raises:
unknown agents, submission errors, fetch errors and timeouts all surface as
error-status ``ToolResult`` values for the step to reason about.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..schemas.config import EngineConfig
from ..schemas.domain import (
    A2ATask,
    AgentIdentity,
    ObservationType,
    TaskMetadata,
    TaskPriority,
    TaskStatus,
    ToolCall,
    ToolDescriptor,
    ToolResult,
    ToolResultStatus,
)
from .models import RunContext

logger = logging.getLogger(__name__)


def delegation_tool_descriptor(name: str) -> ToolDescriptor:
    return ToolDescriptor(
        name=name,
        description="Delegates a specific task to another agent and waits for its result.",
        input_schema={
            "type": "object",
            "properties": {
                "agentId": {"type": "string"},
                "taskType": {"type": "string"},
                "input": {"type": "object"},
                "instructions": {"type": "string"},
            },
            "required": ["agentId", "taskType", "instructions"],
        },
    )


@dataclass
class _Submission:
    call: ToolCall
    task: Optional[A2ATask] = None
    error: Optional[str] = None


class DelegationCoordinator:
    def __init__(self, config: EngineConfig) -> None:
        self._config = config

    async def run(self, ctx: RunContext, calls: List[ToolCall], *, parent_id: Optional[str] = None) -> List[ToolResult]:
        """Submit ``calls``, wait for the tasks and return one result per call."""
        submissions = await self.submit(ctx, calls, parent_id=parent_id)
        pending = [s.task for s in submissions if s.task is not None]
        finished = await self.wait(ctx, pending) if pending else []
        by_id: Dict[str, A2ATask] = {t.task_id: t for t in finished}

        results: List[ToolResult] = []
        for sub in submissions:
            if sub.task is None:
                results.append(
                    ToolResult(
                        call_id=sub.call.call_id,
                        tool_name=sub.call.tool_name,
                        status=ToolResultStatus.error,
                        output={"task_id": None, "status": "not_submitted", "error": sub.error},
                        error=sub.error,
                    )
                )
            else:
                results.append(self.to_tool_result(sub.call, by_id.get(sub.task.task_id, sub.task)))

        ok = sum(1 for r in results if r.status == ToolResultStatus.success)
        logger.info(f"[{ctx.trace_id}] Delegation finished: {ok}/{len(results)} task(s) completed")
        await ctx.observer.record(
            ObservationType.delegation,
            {"results": [r.model_dump(mode="json") for r in results]},
            parent_id=parent_id,
        )
        return results

    async def submit(self, ctx: RunContext, calls: List[ToolCall], *, parent_id: Optional[str] = None) -> List[_Submission]:
        tasks_repo = ctx.deps.tasks
        directory = ctx.deps.agents
        submissions: List[_Submission] = []

        agents: Dict[str, AgentIdentity] = {}
        if tasks_repo is not None and directory is not None:
            try:
                agents = {a.agent_id: a for a in await directory.discover_agents()}
            except Exception as e:
                logger.error(f"[{ctx.trace_id}] Agent discovery failed: {e}")

        for call in calls:
            sub = _Submission(call=call)
            submissions.append(sub)
            args = call.arguments
            agent_id = args.get("agentId") or args.get("agent_id")

            if tasks_repo is None or directory is None:
                sub.error = "Delegation services are not configured"
            elif not isinstance(agent_id, str) or not agent_id:
                sub.error = f"Delegation call {call.call_id} has no agentId"
            elif agent_id not in agents:
                sub.error = f'Agent with ID "{agent_id}" not found'

            if sub.error is None:
                task_type = str(args.get("taskType") or args.get("task_type") or "generic")
                task = A2ATask(
                    thread_id=ctx.thread_id,
                    payload={
                        "taskType": task_type,
                        "input": args.get("input") or {},
                        "instructions": str(args.get("instructions") or ""),
                        "parameters": {"threadId": ctx.thread_id, "traceId": ctx.trace_id, "callId": call.call_id},
                    },
                    source_agent=AgentIdentity(
                        agent_id=self._config.agent_id, agent_name="PES Agent", agent_type="orchestrator"
                    ),
                    target_agent=agents[agent_id],
                    priority=TaskPriority.medium,
                    metadata=TaskMetadata(
                        initiated_by=ctx.thread_id,
                        correlation_id=ctx.trace_id,
                        timeout_ms=int(self._config.delegation_timeout_seconds * 1000),
                        tags=["delegated", task_type],
                    ),
                )
                try:
                    await tasks_repo.create_task(task)
                    sub.task = task
                except Exception as e:
                    sub.error = f"Task submission failed: {e}"

            if sub.error is not None:
                logger.warning(f"[{ctx.trace_id}] Delegation for call {call.call_id} failed: {sub.error}")
                await ctx.observer.record(
                    ObservationType.error,
                    {"phase": "delegation", "call_id": call.call_id, "error": sub.error},
                    parent_id=parent_id,
                )
        return submissions

    async def wait(self, ctx: RunContext, tasks: List[A2ATask]) -> List[A2ATask]:
        """Poll until every task is terminal or the timeout elapses.

        Returns the last observed version of each task, in input order.
        """
        tasks_repo = ctx.deps.tasks
        latest = list(tasks)
        if tasks_repo is None:
            return latest

        deadline = time.monotonic() + self._config.delegation_timeout_seconds
        while True:
            for i, task in enumerate(latest):
                if task.status.is_terminal:
                    continue
                try:
                    fetched = await tasks_repo.get_task(task.task_id)
                except Exception as e:
                    logger.warning(f"[{ctx.trace_id}] Failed to refresh task {task.task_id}: {e}")
                    continue
                if fetched is not None:
                    latest[i] = fetched

            if all(t.status.is_terminal for t in latest):
                logger.debug(f"[{ctx.trace_id}] All {len(latest)} delegated task(s) reached a terminal status")
                return latest
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                open_ids = [t.task_id for t in latest if not t.status.is_terminal]
                logger.warning(f"[{ctx.trace_id}] Delegation wait timed out; still open: {open_ids}")
                return latest
            await asyncio.sleep(min(self._config.delegation_poll_interval_seconds, remaining))

    @staticmethod
    def to_tool_result(call: ToolCall, task: A2ATask) -> ToolResult:
        if task.status == TaskStatus.completed:
            return ToolResult(
                call_id=call.call_id,
                tool_name=call.tool_name,
                status=ToolResultStatus.success,
                output=task.result,
            )
        error = task.error or (
            f"Task {task.status.value}" if task.status.is_terminal else "Task did not finish before the timeout"
        )
        return ToolResult(
            call_id=call.call_id,
            tool_name=call.tool_name,
            status=ToolResultStatus.error,
            output={"task_id": task.task_id, "status": task.status.value, "error": error},
            error=error,
        )
