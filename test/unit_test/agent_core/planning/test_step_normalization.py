from __future__ import annotations

from stepforge_ai.agent_core.planning.steps import merge_refined_steps, normalize_steps
from stepforge_ai.agent_core.reasoning.parser import StepDraft
from stepforge_ai.agent_core.schemas.domain import Step, StepKind, StepStatus, ValidationMode


def _draft(step_id: str, **kw) -> StepDraft:
    return StepDraft.model_validate({"id": step_id, "description": f"do {step_id}", **kw})


def test_normalize_defaults():
    (step,) = normalize_steps([_draft("a", status="completed")])
    assert step.kind == StepKind.tool
    assert step.status == StepStatus.pending
    assert step.validation_mode == ValidationMode.strict


def test_reasoning_with_tools_becomes_tool_step():
    (step,) = normalize_steps([_draft("a", stepType="reasoning", requiredTools=["search", "search", ""])])
    assert step.kind == StepKind.tool
    assert step.required_tools == ["search"]


def test_duplicate_ids_are_suffixed_and_dependencies_point_at_first():
    steps = normalize_steps([_draft("a"), _draft("a"), _draft("b", dependencies=["a"])])
    assert [s.id for s in steps] == ["a", "a-2", "b"]
    assert steps[2].dependencies == ["a"]


def test_unknown_and_self_dependencies_are_dropped():
    steps = normalize_steps([_draft("a", dependencies=["a", "ghost", "old"])], known_ids=["old"])
    assert steps[0].dependencies == ["old"]


def _step(step_id: str, status: StepStatus = StepStatus.pending, **kw) -> Step:
    kw.setdefault("description", f"do {step_id}")
    return Step(id=step_id, status=status, **kw)


def test_merge_keeps_completed_steps():
    done = _step("a", StepStatus.completed, result="kept")
    merged = merge_refined_steps([done], [_step("a", description="rewritten")], None)
    assert merged[0] is done
    assert merged[0].result == "kept"


def test_merge_keeps_current_step_in_progress():
    current = _step("b", StepStatus.waiting)
    merged = merge_refined_steps([current], [_step("b")], "b")
    assert merged[0] is current
    assert current.status == StepStatus.in_progress


def test_merge_resets_others_to_pending_and_never_deletes():
    failed = _step("c", StepStatus.failed)
    dropped = _step("d", StepStatus.completed)
    revised = [_step("c", StepStatus.failed, description="retry c"), _step("e")]

    merged = merge_refined_steps([failed, dropped], revised, None)

    assert [s.id for s in merged] == ["c", "e", "d"]
    assert merged[0].status == StepStatus.pending
    assert merged[0].description == "retry c"
    assert merged[0].created_at == failed.created_at
    assert merged[2] is dropped
