from __future__ import annotations

import pytest

from stepforge_ai.agent_core.runtime.synthesizer import Synthesizer, extract_ui_metadata, summarize_step
from stepforge_ai.agent_core.schemas.domain import (
    ConversationMessage,
    MessageRole,
    PlanState,
    Step,
    StepStatus,
    ToolResult,
    ToolResultStatus,
)

from pes_fakes import Thinking, make_run_context


def test_extract_tagged_metadata():
    text, meta = extract_ui_metadata('<mainContent>Rates are up.</mainContent><uiMetadata>{"chart": "line"}</uiMetadata>')
    assert text == "Rates are up."
    assert meta == {"chart": "line"}


def test_extract_metadata_without_main_content():
    text, meta = extract_ui_metadata('Rates are up.\n<uiMetadata>{"chart": "bar"}</uiMetadata>')
    assert text == "Rates are up."
    assert meta == {"chart": "bar"}


def test_extract_trailing_json_block():
    text, meta = extract_ui_metadata('Rates are up.\n```json\n{"cards": 2}\n```')
    assert text == "Rates are up."
    assert meta == {"cards": 2}


def test_malformed_metadata_is_ignored():
    text, meta = extract_ui_metadata("Rates are up.<uiMetadata>{not json</uiMetadata>")
    assert text == "Rates are up."
    assert meta is None


def test_plain_text_passes_through():
    assert extract_ui_metadata("  just text  ") == ("just text", None)


def test_summarize_step_caps_length_and_uses_tool_output():
    step = Step(id="a", description="a", result="x" * 50)
    assert summarize_step(step, 16) == "x" * 16 + "..."

    step = Step(id="b", description="b")
    step.tool_results.append(
        ToolResult(call_id="1", tool_name="t", status=ToolResultStatus.success, output={"status": "success", "data": "X"})
    )
    assert summarize_step(step, 100) == "X"


@pytest.mark.asyncio
async def test_synthesize_uses_completed_and_failed_steps(deps, reasoning):
    reasoning.add(
        "synthesis",
        Thinking("private reasoning", '<mainContent>The answer is X.</mainContent><uiMetadata>{"k": 1}</uiMetadata>'),
    )
    state = PlanState(
        thread_id="thread-1",
        intent="Find X",
        steps=[
            Step(id="a", description="find", status=StepStatus.completed, result="X"),
            Step(id="b", description="verify", status=StepStatus.failed),
        ],
    )
    ctx = make_run_context(deps, state=state)
    history = [ConversationMessage(thread_id="thread-1", role=MessageRole.user, content="earlier question")]

    result = await Synthesizer().synthesize(ctx, query="What is X?", history=history)

    assert result.text == "The answer is X."
    assert result.ui_metadata == {"k": 1}
    (_, prompt, _) = reasoning.calls_for("synthesis")[0]
    system = prompt[0].content
    assert "- a: X" in system
    assert "- b: verify" in system
    assert prompt[-1].content == "What is X?"
    assert any(m.content == "earlier question" for m in prompt)
