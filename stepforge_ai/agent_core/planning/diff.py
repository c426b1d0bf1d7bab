"""Change sets between two versions of a step list.

Attached to ``plan_update`` observations so consumers can render what a
refinement changed without diffing whole plans themselves.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from pydantic import Field

from ..schemas.base import BaseSchema
from ..schemas.domain import Step

# ``updated_at`` moves on every touch and is not a meaningful change.
_IGNORED_FIELDS = {"updated_at"}


class StepDiff(BaseSchema):
    added: List[str] = Field(default_factory=list)
    modified: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.removed)


def _comparable(step: Step) -> dict:
    return step.model_dump(mode="json", exclude=_IGNORED_FIELDS)


def compute_step_diff(previous: Optional[Iterable[Step]], current: Optional[Iterable[Step]]) -> StepDiff:
    prev_map = {s.id: s for s in previous or []}
    curr_map = {s.id: s for s in current or []}

    diff = StepDiff()
    for step_id, step in curr_map.items():
        old = prev_map.get(step_id)
        if old is None:
            diff.added.append(step_id)
        elif _comparable(old) != _comparable(step):
            diff.modified.append(step_id)
    diff.removed = [step_id for step_id in prev_map if step_id not in curr_map]
    return diff
