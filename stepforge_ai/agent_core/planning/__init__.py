"""Planning: step normalization, refinement merging, diffs and the Planner."""

from .diff import StepDiff, compute_step_diff
from .planner import PlanDraft, Planner
from .steps import merge_refined_steps, normalize_steps

__all__ = [
    "PlanDraft",
    "Planner",
    "StepDiff",
    "compute_step_diff",
    "merge_refined_steps",
    "normalize_steps",
]
