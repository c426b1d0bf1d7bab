from __future__ import annotations

import asyncio
import dataclasses

import pytest

from stepforge_ai.agent_core.runtime.delegation import DelegationCoordinator
from stepforge_ai.agent_core.schemas.domain import (
    A2ATask,
    AgentIdentity,
    ObservationType,
    TaskStatus,
    ToolCall,
    ToolResultStatus,
)

from pes_fakes import make_run_context


def _call(agent_id="researcher", call_id="d1", **extra) -> ToolCall:
    args = {"agentId": agent_id, "taskType": "research", "instructions": "find rates", **extra}
    return ToolCall(call_id=call_id, tool_name="delegate_to_agent", arguments=args)


@pytest.mark.asyncio
async def test_unknown_agent_fails_fast(deps, engine_config):
    ctx = make_run_context(deps, engine_config)

    (result,) = await DelegationCoordinator(engine_config).run(ctx, [_call("ghost")], parent_id="s1")

    assert result.status == ToolResultStatus.error
    assert result.error == 'Agent with ID "ghost" not found'
    assert result.output["status"] == "not_submitted"
    assert deps.tasks.list_tasks() == []
    (err,) = deps.observations.of_type(ObservationType.error)
    assert err.content["phase"] == "delegation"


@pytest.mark.asyncio
async def test_missing_agent_id(deps, engine_config):
    ctx = make_run_context(deps, engine_config)
    call = ToolCall(call_id="d1", tool_name="delegate_to_agent", arguments={"instructions": "x"})

    (result,) = await DelegationCoordinator(engine_config).run(ctx, [call])

    assert "has no agentId" in result.error


@pytest.mark.asyncio
async def test_delegation_without_services(deps, engine_config):
    deps = dataclasses.replace(deps, tasks=None, agents=None)
    ctx = make_run_context(deps, engine_config)

    (result,) = await DelegationCoordinator(engine_config).run(ctx, [_call()])

    assert result.error == "Delegation services are not configured"


@pytest.mark.asyncio
async def test_submitted_task_carries_metadata(deps, engine_config):
    ctx = make_run_context(deps, engine_config)

    (sub,) = await DelegationCoordinator(engine_config).submit(ctx, [_call(input={"currency": "EUR"})])

    task = sub.task
    assert task.target_agent.agent_id == "researcher"
    assert task.source_agent.agent_id == engine_config.agent_id
    assert task.payload["input"] == {"currency": "EUR"}
    assert task.payload["parameters"]["callId"] == "d1"
    assert task.metadata.timeout_ms == int(engine_config.delegation_timeout_seconds * 1000)
    assert task.metadata.tags == ["delegated", "research"]
    assert (await deps.tasks.get_task(task.task_id)).status == TaskStatus.pending


@pytest.mark.asyncio
async def test_wait_returns_when_tasks_finish(deps, engine_config):
    ctx = make_run_context(deps, engine_config)
    coordinator = DelegationCoordinator(engine_config)
    (sub,) = await coordinator.submit(ctx, [_call()])

    async def _worker():
        await asyncio.sleep(0.03)
        task = await deps.tasks.get_task(sub.task.task_id)
        task.status = TaskStatus.completed
        task.result = {"rate": 1.1}
        await deps.tasks.update_task(task)

    worker = asyncio.create_task(_worker())
    (finished,) = await coordinator.wait(ctx, [sub.task])
    await worker

    assert finished.status == TaskStatus.completed
    assert DelegationCoordinator.to_tool_result(sub.call, finished).output == {"rate": 1.1}


@pytest.mark.asyncio
async def test_wait_times_out_without_raising(deps, engine_config):
    ctx = make_run_context(deps, engine_config)

    (result,) = await DelegationCoordinator(engine_config).run(ctx, [_call()])

    assert result.status == ToolResultStatus.error
    assert result.error == "Task did not finish before the timeout"
    assert result.output["status"] == "pending"
    (obs,) = deps.observations.of_type(ObservationType.delegation)
    assert obs.content["results"][0]["status"] == "error"


def test_failed_task_result():
    me = AgentIdentity(agent_id="me")
    task = A2ATask(thread_id="t", source_agent=me, target_agent=me, status=TaskStatus.failed, error="no data")
    result = DelegationCoordinator.to_tool_result(_call(), task)
    assert result.status == ToolResultStatus.error
    assert result.error == "no data"

    task.status = TaskStatus.cancelled
    task.error = None
    assert DelegationCoordinator.to_tool_result(_call(), task).error == "Task cancelled"
