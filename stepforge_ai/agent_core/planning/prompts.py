"""Prompt builders for initial planning and plan refinement.

The shared helpers here (guidance block, tool listing, history conversion)
are reused by the execution and synthesis prompts.
"""

from __future__ import annotations

import json
from typing import List, Optional, Sequence

from ..schemas.domain import (
    ConversationMessage,
    MessageRole,
    PlanState,
    PromptMessage,
    ToolDescriptor,
)

_PLAN_FORMAT = """You MUST output a JSON object with the following structure:
{
  "title": "Short title",
  "intent": "User intent summary",
  "plan": "High level description of the plan",
  "todoList": [
    {
      "id": "step_1",
      "description": "What this step does",
      "stepType": "tool" | "reasoning",
      "requiredTools": ["tool_name"],
      "dependencies": [],
      "expectedOutcome": "What the step should produce",
      "toolValidationMode": "strict" | "advisory"
    }
  ]
}
Use "reasoning" steps for pure analysis; they cannot call tools and must not list requiredTools.
Use "tool" steps when a tool must be called, and list every tool that MUST be invoked in requiredTools.
Dependencies are ids of steps that must complete first."""


def guidance_block(system_prompt: Optional[str], persona: Optional[str]) -> str:
    parts = []
    if persona:
        parts.append(f"Persona: {persona}")
    if system_prompt:
        parts.append(f"[BEGIN_CUSTOM_GUIDANCE]\n{system_prompt}\n[END_CUSTOM_GUIDANCE]")
    return "\n\n".join(parts)


def tools_json(tools: Sequence[ToolDescriptor]) -> str:
    return json.dumps([t.model_dump(mode="json") for t in tools], ensure_ascii=False)


def history_messages(history: Sequence[ConversationMessage]) -> List[PromptMessage]:
    """Only user and AI turns are replayed; system and tool rows stay internal."""
    out: List[PromptMessage] = []
    for m in history:
        if m.role == MessageRole.user:
            out.append(PromptMessage(role="user", content=m.content))
        elif m.role == MessageRole.ai:
            out.append(PromptMessage(role="assistant", content=m.content))
    return out


def join_sections(*parts: str) -> str:
    return "\n\n".join(p for p in parts if p)


def _plan_snapshot(state: PlanState) -> str:
    return json.dumps(
        [
            {
                "id": s.id,
                "description": s.description,
                "status": s.status.value,
                "stepType": s.kind.value,
                "requiredTools": s.required_tools,
                "dependencies": s.dependencies,
            }
            for s in state.steps
        ],
        ensure_ascii=False,
    )


def planning_prompt(
    *,
    goal: str,
    tools: Sequence[ToolDescriptor],
    history: Sequence[ConversationMessage],
    system_prompt: Optional[str] = None,
    persona: Optional[str] = None,
) -> List[PromptMessage]:
    system = join_sections(
        "You are a planning assistant.",
        guidance_block(system_prompt, persona),
        "Understand the user's query and create an ordered, dependency-aware list of steps to answer it.",
        _PLAN_FORMAT,
        f"Available tools:\n{tools_json(tools)}",
    )
    return [PromptMessage(role="system", content=system), *history_messages(history), PromptMessage(role="user", content=goal)]


def refinement_prompt(
    *,
    goal: str,
    existing: PlanState,
    tools: Sequence[ToolDescriptor],
    history: Sequence[ConversationMessage],
    system_prompt: Optional[str] = None,
    persona: Optional[str] = None,
) -> List[PromptMessage]:
    system = join_sections(
        "You are a planning assistant refining an existing plan after a follow-up message.",
        guidance_block(system_prompt, persona),
        "Keep completed steps and their ids unchanged. Add, reorder or rewrite the remaining steps as needed.",
        f"Current intent: {existing.intent}\nCurrent plan: {existing.plan_summary}",
        f"Current steps:\n{_plan_snapshot(existing)}",
        _PLAN_FORMAT,
        f"Available tools:\n{tools_json(tools)}",
    )
    return [PromptMessage(role="system", content=system), *history_messages(history), PromptMessage(role="user", content=goal)]
