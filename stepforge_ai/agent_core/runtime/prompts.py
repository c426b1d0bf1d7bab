"""Prompt builders for the execution and synthesis phases.

Wording is replaceable; what the engine relies on is the structure:

- every prompt asks for JSON and names the keys the parser understands,
- tool-step prompts list the step's required tools and tell the model to copy
  concrete values from earlier step outputs,
- reasoning-step prompts forbid tool calls,
- completed step outputs are always included as context.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

from ..planning.prompts import guidance_block, history_messages, join_sections, tools_json
from ..schemas.domain import (
    ConversationMessage,
    PlanState,
    PromptMessage,
    Step,
    StepKind,
    ToolDescriptor,
)

_EXECUTION_FORMAT = """Respond with a JSON object:
{
  "content": "Your answer for this step (leave empty while you still need tool results)",
  "toolCalls": [{"callId": "call_1", "toolName": "tool_name", "arguments": {}}],
  "updatedPlan": {"intent": "...", "plan": "...", "todoList": [...]}
}
Omit "toolCalls" when you are done. Include "updatedPlan" only if what you learned changes the remaining plan."""


def _step_outputs_block(state: PlanState) -> str:
    if not state.step_outputs:
        return "Previous step outputs: none yet."
    lines = ["Previous step outputs:"]
    for record in state.step_outputs.values():
        lines.append(f"- Step {record.step_id} ({record.description}):\n{record.output}")
    return "\n".join(lines)


def step_prompt(
    *,
    step: Step,
    state: PlanState,
    query: str,
    tools: Sequence[ToolDescriptor],
    delegation_tool: Optional[ToolDescriptor] = None,
    system_prompt: Optional[str] = None,
    persona: Optional[str] = None,
) -> List[PromptMessage]:
    header = [
        "You are executing one step of a larger plan.",
        guidance_block(system_prompt, persona),
        f"Overall request: {query}" if query else "",
        f"Current step: {step.description}",
        f"Expected outcome: {step.expected_outcome}" if step.expected_outcome else "",
        _step_outputs_block(state),
    ]

    if step.kind == StepKind.reasoning:
        rules = [
            "This is a reasoning step. Do NOT call any tools; answer from the information above.",
            'Respond with a JSON object: {"content": "your answer"}',
        ]
        user = f"Complete the step: {step.description}"
    else:
        all_tools = list(tools) + ([delegation_tool] if delegation_tool is not None else [])
        rules = []
        if step.required_tools:
            rules.append(
                "You MUST call these tools before finishing this step: " + ", ".join(step.required_tools) + "."
            )
        rules.append(
            "When a tool argument depends on an earlier step, copy the concrete value from the previous step "
            "outputs above. Never emit placeholders such as <value> or {{step_1.result}}."
        )
        if delegation_tool is not None:
            rules.append(f"To hand work to another agent, call '{delegation_tool.name}'.")
        rules.append(_EXECUTION_FORMAT)
        user = f"Execute the step: {step.description}\n\nAvailable tools:\n{tools_json(all_tools)}"

    system = "\n\n".join(part for part in (*header, *rules) if part)
    return [PromptMessage(role="system", content=system), PromptMessage(role="user", content=user)]


def enforcement_message(missing: Sequence[str]) -> PromptMessage:
    return PromptMessage(
        role="user",
        content=(
            "You have not called all required tools for this step. You must call these tools before finishing: "
            + ", ".join(missing)
            + ". Respond with the toolCalls now."
        ),
    )


def empty_response_message() -> PromptMessage:
    return PromptMessage(
        role="user",
        content="Your previous response was empty. Either call a tool or provide the step's result in 'content'.",
    )


def tool_result_message(call_id: str, tool_name: str, payload: Any) -> PromptMessage:
    content = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False, default=str)
    return PromptMessage(role="tool", content=content, name=tool_name, tool_call_id=call_id)


def rejection_message(tool_name: str, reason: Optional[str]) -> PromptMessage:
    text = (
        f"The user rejected the call to tool '{tool_name}'. Do not retry the same call with the same arguments. "
        "Continue the step another way or explain why it cannot be completed."
    )
    if reason:
        text += f" Reason given: {reason}"
    return PromptMessage(role="system", content=text)


def synthesis_prompt(
    *,
    query: str,
    state: PlanState,
    completed: Dict[str, str],
    failed: Sequence[Step],
    history: Sequence[ConversationMessage],
    system_prompt: Optional[str] = None,
    persona: Optional[str] = None,
) -> List[PromptMessage]:
    done = "\n".join(f"- {step_id}: {summary}" for step_id, summary in completed.items()) or "- none"
    not_done = "\n".join(f"- {s.id}: {s.description}" for s in failed) or "- none"
    system = "\n\n".join(
        part
        for part in (
            "You write the final answer for the user from the results of an executed plan.",
            guidance_block(system_prompt, persona),
            f"Intent: {state.intent}\nPlan: {state.plan_summary}",
            f"Completed steps:\n{done}",
            f"Failed steps:\n{not_done}",
            "Write the answer as plain text. If you want to attach structured UI data, put the answer inside "
            "<mainContent>...</mainContent> and the data as JSON inside <uiMetadata>...</uiMetadata>.",
        )
        if part
    )
    return [PromptMessage(role="system", content=system), *history_messages(history), PromptMessage(role="user", content=query)]
