from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from ..reasoning.parser import StepDraft
from ..schemas.domain import Step, StepKind, StepStatus, ValidationMode

logger = logging.getLogger(__name__)


def _unique_id(raw_id: str, taken: set[str]) -> str:
    candidate = raw_id.strip() or "step"
    if candidate not in taken:
        return candidate
    n = 2
    while f"{candidate}-{n}" in taken:
        n += 1
    return f"{candidate}-{n}"


def normalize_steps(drafts: List[StepDraft], *, known_ids: Iterable[str] = ()) -> List[Step]:
    """Turn model drafts into Pending ``Step`` objects.

    - A reasoning draft that names required tools becomes a tool step.
    - Duplicate ids get a numeric suffix; dependencies keep pointing at the
      first step that used the id.
    - Dependencies on ids that exist neither in the drafts nor in
      ``known_ids`` are dropped, as are self-dependencies.
    """
    first_id: Dict[str, str] = {}
    steps: List[Step] = []

    for draft in drafts:
        step_id = _unique_id(draft.id, {s.id for s in steps})
        if step_id != draft.id:
            logger.warning(f"Duplicate step id '{draft.id}' renamed to '{step_id}'")
        first_id.setdefault(draft.id, step_id)

        required = [t for t in dict.fromkeys(draft.required_tools) if t]
        kind = draft.kind or StepKind.tool
        if kind == StepKind.reasoning and required:
            logger.warning(
                f"Step '{step_id}' is declared as reasoning but requires tools {required}; treating it as a tool step"
            )
            kind = StepKind.tool

        steps.append(
            Step(
                id=step_id,
                description=draft.description,
                kind=kind,
                required_tools=required,
                dependencies=list(draft.dependencies),
                status=StepStatus.pending,
                validation_mode=draft.validation_mode or ValidationMode.strict,
                expected_outcome=draft.expected_outcome,
            )
        )

    valid_ids = set(known_ids) | {s.id for s in steps}
    for step in steps:
        deps: List[str] = []
        for dep in step.dependencies:
            target = first_id.get(dep, dep)
            if target == step.id:
                logger.warning(f"Step '{step.id}' depends on itself; dependency dropped")
            elif target not in valid_ids:
                logger.warning(f"Step '{step.id}' depends on unknown step '{dep}'; dependency dropped")
            elif target not in deps:
                deps.append(target)
        step.dependencies = deps
    return steps


def merge_refined_steps(previous: List[Step], revised: List[Step], current_step_id: Optional[str]) -> List[Step]:
    """Merge a revised step list into the existing plan.

    - A previously Completed step keeps its object, status and result,
      whatever the revision says about it.
    - The step currently executing keeps its object and is forced InProgress.
    - Every other step of the revision is Pending.
    - Previous steps the revision left out are re-appended unchanged; steps
      are never deleted during a run.
    """
    prev_by_id = {s.id: s for s in previous}
    merged: List[Step] = []
    seen: set[str] = set()

    for step in revised:
        if step.id in seen:
            continue
        seen.add(step.id)
        old = prev_by_id.get(step.id)
        if old is not None and old.status == StepStatus.completed:
            merged.append(old)
        elif old is not None and step.id == current_step_id:
            if old.status != StepStatus.in_progress:
                old.set_status(StepStatus.in_progress)
            merged.append(old)
        else:
            if old is not None:
                step.created_at = old.created_at
            step.status = StepStatus.pending
            merged.append(step)

    for old in previous:
        if old.id not in seen:
            merged.append(old)
    return merged
