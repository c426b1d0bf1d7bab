"""Parsing of raw reasoning output into planning and execution structures.

Models are not reliable JSON emitters, so extraction is layered:

1. explicit ``---JSON_OUTPUT_START---`` / ``---JSON_OUTPUT_END---`` markers,
2. a fenced code block,
3. stripping of malformed fences,
4. the slice between the first ``{`` and the last ``}``.

``<think>`` blocks are separated from the answer first. A ``<think>`` opened
but never closed means the output was truncated mid-reasoning; its text is
then treated as content rather than thoughts.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Optional
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from ..schemas.domain import StepKind, ToolCall, ValidationMode

logger = logging.getLogger(__name__)

_MARKER_RE = re.compile(r"---JSON_OUTPUT_START---([\s\S]*?)---JSON_OUTPUT_END---")
_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_THINK_RE = re.compile(r"<think>([\s\S]*?)</think>")

_SECTION_TITLE_RE = re.compile(r"Title:\s*([\s\S]*?)(?=Intent:|Plan:|Tool Calls:|Todo List:|$)", re.IGNORECASE)
_SECTION_INTENT_RE = re.compile(r"Intent:\s*([\s\S]*?)(?=Plan:|Tool Calls:|Todo List:|$)", re.IGNORECASE)
_SECTION_PLAN_RE = re.compile(r"Plan:\s*([\s\S]*?)(?=Tool Calls:|Todo List:|$)", re.IGNORECASE)


class StepDraft(BaseModel):
    """A step as proposed by the model, before normalization."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    description: str
    status: Optional[str] = None
    dependencies: List[str] = Field(default_factory=list)
    kind: Optional[StepKind] = Field(default=None, validation_alias=AliasChoices("stepType", "step_type", "kind"))
    required_tools: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("requiredTools", "required_tools")
    )
    expected_outcome: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("expectedOutcome", "expected_outcome")
    )
    validation_mode: Optional[ValidationMode] = Field(
        default=None,
        validation_alias=AliasChoices("toolValidationMode", "tool_validation_mode", "validation_mode"),
    )


class PlanningOutput(BaseModel):
    title: Optional[str] = None
    intent: Optional[str] = None
    plan: Optional[str] = None
    steps: Optional[List[StepDraft]] = None
    thoughts: Optional[str] = None


class ExecutionOutput(BaseModel):
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    updated_plan: Optional[PlanningOutput] = None
    thoughts: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.content.strip() and not self.tool_calls and self.updated_plan is None


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def extract_json(raw: str) -> Any:
    """Best-effort JSON extraction; ``None`` when nothing parses."""
    if not raw:
        return None
    s = raw.strip()

    marker = _MARKER_RE.search(s)
    if marker:
        parsed = _loads(marker.group(1).strip())
        if parsed is not None:
            return parsed
        logger.debug("Found JSON markers but content is not valid JSON")

    fenced = _FENCE_RE.search(s)
    if fenced:
        parsed = _loads(fenced.group(1))
        if parsed is not None:
            return parsed

    s = re.sub(r"^```(?:json)?\s*", "", s, flags=re.IGNORECASE)
    s = re.sub(r"\s*```$", "", s).strip()

    parsed = _loads(s)
    if parsed is not None:
        return parsed
    first, last = s.find("{"), s.rfind("}")
    if 0 <= first < last:
        return _loads(s[first : last + 1])
    return None


def split_thinking(raw: str) -> tuple[str, Optional[str]]:
    """Return ``(content, thoughts)`` with ``<think>`` blocks separated out."""
    if "<think>" in raw and "</think>" not in raw:
        logger.warning("Detected truncated thinking block, treating it as content")
        return raw.replace("<think>", ""), None

    thoughts = [m.strip() for m in _THINK_RE.findall(raw)]
    content = _THINK_RE.sub("", raw)
    return content, ("\n\n---\n\n".join(thoughts) if thoughts else None)


def _normalize_tool_calls(raw_calls: list) -> List[ToolCall]:
    calls: List[ToolCall] = []
    for raw in raw_calls:
        if not isinstance(raw, dict):
            raise ValueError(f"tool call must be an object, got {type(raw).__name__}")
        name = raw.get("toolName") or raw.get("tool_name") or raw.get("name")
        if not isinstance(name, str) or not name:
            raise ValueError("tool call is missing a tool name")
        args = raw.get("arguments", raw.get("parameters"))
        if isinstance(args, str):
            args = _loads(args) or {"input": args}
        call_id = raw.get("callId") or raw.get("call_id") or raw.get("id") or f"call_{uuid4().hex[:9]}"
        calls.append(ToolCall(call_id=str(call_id), tool_name=name, arguments=args if isinstance(args, dict) else {}))
    return calls


def _step_list(obj: dict) -> Optional[List[StepDraft]]:
    raw_steps = obj.get("todoList", obj.get("steps"))
    if not isinstance(raw_steps, list):
        return None
    try:
        return [StepDraft.model_validate(item) for item in raw_steps]
    except ValidationError as e:
        logger.warning(f"Step list validation failed: {e}")
        return None


def _planning_from_obj(obj: dict) -> PlanningOutput:
    out = PlanningOutput()
    if isinstance(obj.get("title"), str):
        out.title = obj["title"]
    if isinstance(obj.get("intent"), str):
        out.intent = obj["intent"]
    plan = obj.get("plan")
    if isinstance(plan, list):
        out.plan = "\n".join(p if isinstance(p, str) else json.dumps(p) for p in plan)
    elif isinstance(plan, str):
        out.plan = plan
    out.steps = _step_list(obj)
    return out


def parse_planning_output(text: str) -> PlanningOutput:
    content, thoughts = split_thinking(text or "")
    obj = extract_json(content)

    if isinstance(obj, dict):
        out = _planning_from_obj(obj)
    else:
        out = PlanningOutput()
        for regex, attr in (
            (_SECTION_TITLE_RE, "title"),
            (_SECTION_INTENT_RE, "intent"),
            (_SECTION_PLAN_RE, "plan"),
        ):
            match = regex.search(content)
            if match:
                setattr(out, attr, match.group(1).strip())
    out.thoughts = thoughts
    return out


def parse_execution_output(text: str) -> ExecutionOutput:
    content, thoughts = split_thinking(text or "")
    content = content.strip()
    out = ExecutionOutput(thoughts=thoughts)

    obj = extract_json(content)
    if isinstance(obj, list):
        obj = {"toolCalls": obj}
    if not isinstance(obj, dict):
        out.content = content
        return out

    raw_calls = obj.get("toolCalls", obj.get("tool_calls"))
    if isinstance(raw_calls, list) and raw_calls:
        try:
            out.tool_calls = _normalize_tool_calls(raw_calls)
        except ValueError as e:
            logger.warning(f"Ignoring malformed tool calls: {e}")

    revision = obj.get("updatedPlan", obj.get("updated_plan"))
    if isinstance(revision, list):
        revision = {"todoList": revision}
    if isinstance(revision, dict):
        planned = _planning_from_obj(revision)
        if planned.steps is not None:
            out.updated_plan = planned

    body = obj.get("content")
    if isinstance(body, str):
        out.content = body
    elif body is not None:
        out.content = json.dumps(body, ensure_ascii=False)
    return out
