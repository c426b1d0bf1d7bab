from __future__ import annotations

import pytest
import pytest_asyncio

from stepforge_ai.agent_core.repos.sql import (
    build_sql_repos,
    create_all,
    create_engine,
    create_sessionmaker,
)
from stepforge_ai.agent_core.schemas.domain import (
    A2ATask,
    AgentIdentity,
    ConversationMessage,
    IterationState,
    MessageRole,
    Observation,
    ObservationType,
    PlanState,
    Step,
    StepStatus,
    SuspensionContext,
    TaskStatus,
    ThreadConfig,
    ToolCall,
)

pytest.importorskip("aiosqlite")


@pytest_asyncio.fixture
async def repos(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'stepforge.db'}")
    await create_all(engine)
    yield build_sql_repos(session_factory=create_sessionmaker(engine))
    await engine.dispose()


def test_create_engine_forces_asyncpg_driver():
    engine = create_engine("postgres://user:pw@localhost:5432/db")
    assert engine.url.drivername == "postgresql+asyncpg"


@pytest.mark.asyncio
async def test_plan_state_round_trip_with_suspension(repos):
    suspension = SuspensionContext(
        item_id="a",
        tool_call=ToolCall(call_id="c1", tool_name="request_approval", arguments={"action": "deploy"}),
        iteration_state=IterationState(iteration=2, last_content="pending"),
    )
    state = PlanState(
        thread_id="t",
        steps=[Step(id="a", description="deploy", status=StepStatus.waiting, required_tools=["request_approval"])],
        is_paused=True,
        suspension=suspension,
    )

    await repos.state.save_plan_state("t", state)
    state.steps[0].status = StepStatus.completed
    state.is_paused = False
    state.suspension = None
    await repos.state.save_plan_state("t", state)

    loaded = (await repos.state.load_thread_context("t")).plan_state
    assert loaded.steps[0].status == StepStatus.completed
    assert loaded.is_paused is False
    assert (await repos.state.load_thread_context("nope")).plan_state is None


@pytest.mark.asyncio
async def test_thread_config_values(repos):
    assert await repos.state.get_thread_config_value("t", "system_prompt") is None
    await repos.state.set_thread_config("t", ThreadConfig(system_prompt="Be terse.", history_limit=3))
    assert await repos.state.get_thread_config_value("t", "system_prompt") == "Be terse."
    assert (await repos.state.load_thread_context("t")).config.history_limit == 3


@pytest.mark.asyncio
async def test_messages_keep_insertion_order(repos):
    await repos.conversations.append_messages(
        "t",
        [
            ConversationMessage(thread_id="t", role=MessageRole.user, content="hello"),
            ConversationMessage(thread_id="t", role=MessageRole.ai, content="hi", metadata={"status": "success"}),
            ConversationMessage(thread_id="t", role=MessageRole.user, content="again"),
        ],
    )
    latest = await repos.conversations.get_messages("t", limit=2)
    assert [m.content for m in latest] == ["hi", "again"]
    assert latest[0].role == MessageRole.ai
    assert latest[0].metadata == {"status": "success"}


@pytest.mark.asyncio
async def test_observations_are_listed(repos):
    await repos.observations.record(
        Observation(thread_id="t", trace_id="tr", type=ObservationType.intent, content={"text": "x"})
    )
    (obs,) = await repos.observations.list("t")
    assert obs.type == ObservationType.intent
    assert obs.content == {"text": "x"}


@pytest.mark.asyncio
async def test_task_lifecycle(repos):
    me = AgentIdentity(agent_id="me")
    task = A2ATask(thread_id="t", source_agent=me, target_agent=AgentIdentity(agent_id="other"), payload={"q": 1})
    await repos.tasks.create_task(task)

    task.status = TaskStatus.completed
    task.result = {"answer": 42}
    await repos.tasks.update_task(task)

    stored = await repos.tasks.get_task(task.task_id)
    assert stored.status == TaskStatus.completed
    assert stored.result == {"answer": 42}
    assert await repos.tasks.get_task("missing") is None
