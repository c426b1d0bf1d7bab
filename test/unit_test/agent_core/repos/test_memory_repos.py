from __future__ import annotations

import pytest

from stepforge_ai.agent_core.repos.memory import (
    InMemoryAgentDirectory,
    InMemoryConversationRepository,
    InMemoryStateRepository,
    InMemoryTaskRepository,
)
from stepforge_ai.agent_core.schemas.domain import (
    A2ATask,
    AgentIdentity,
    ConversationMessage,
    MessageRole,
    PlanState,
    Step,
    TaskStatus,
    ThreadConfig,
)


@pytest.mark.asyncio
async def test_state_repo_hands_out_copies():
    repo = InMemoryStateRepository()
    state = PlanState(thread_id="t", steps=[Step(id="a", description="a")])
    await repo.save_plan_state("t", state)

    loaded = (await repo.load_thread_context("t")).plan_state
    loaded.steps[0].description = "mutated"

    again = (await repo.load_thread_context("t")).plan_state
    assert again.steps[0].description == "a"
    assert len(repo.save_history["t"]) == 1


@pytest.mark.asyncio
async def test_state_repo_new_thread_and_config():
    repo = InMemoryStateRepository()
    ctx = await repo.load_thread_context("fresh")
    assert ctx.plan_state is None
    assert await repo.get_thread_config_value("fresh", "persona") is None

    repo.set_thread_config("fresh", ThreadConfig(persona="pirate"))
    assert await repo.get_thread_config_value("fresh", "persona") == "pirate"
    assert (await repo.load_thread_context("fresh")).config.persona == "pirate"


@pytest.mark.asyncio
async def test_conversation_repo_returns_latest_in_order():
    repo = InMemoryConversationRepository()
    await repo.append_messages(
        "t", [ConversationMessage(thread_id="t", role=MessageRole.user, content=str(i)) for i in range(5)]
    )
    assert [m.content for m in await repo.get_messages("t", limit=2)] == ["3", "4"]
    assert await repo.get_messages("t", limit=0) == []
    assert await repo.get_messages("other") == []


@pytest.mark.asyncio
async def test_task_repo_update_requires_existing_task():
    repo = InMemoryTaskRepository()
    me = AgentIdentity(agent_id="me")
    task = A2ATask(thread_id="t", source_agent=me, target_agent=me)

    with pytest.raises(KeyError):
        await repo.update_task(task)

    await repo.create_task(task)
    task.status = TaskStatus.completed
    assert (await repo.get_task(task.task_id)).status == TaskStatus.pending
    await repo.update_task(task)
    assert (await repo.get_task(task.task_id)).status == TaskStatus.completed
    assert await repo.get_task("missing") is None


@pytest.mark.asyncio
async def test_agent_directory_registers():
    directory = InMemoryAgentDirectory([AgentIdentity(agent_id="a")])
    directory.register(AgentIdentity(agent_id="b"))
    assert [a.agent_id for a in await directory.discover_agents()] == ["a", "b"]
