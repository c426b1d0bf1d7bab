"""Final answer synthesis.

Runs once after the Scheduler stops without a suspension. Only ``response``
tokens form the answer; visible reasoning is observed but never shown.

UI metadata is accepted in two shapes:

- ``<mainContent>...</mainContent>`` with ``<uiMetadata>{json}</uiMetadata>``,
- a fenced json block at the very end of the answer.

Either block is stripped from the visible text; malformed JSON in it is
ignored.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..reasoning.base import CallOptions
from ..reasoning.stream import drain_stream
from ..schemas.domain import ConversationMessage, Step, render_value
from .models import RunContext
from .prompts import synthesis_prompt

logger = logging.getLogger(__name__)

_MAIN_CONTENT_RE = re.compile(r"<mainContent>([\s\S]*?)</mainContent>")
_UI_METADATA_RE = re.compile(r"<uiMetadata>([\s\S]*?)</uiMetadata>")
_TRAILING_JSON_RE = re.compile(r"```json\s*([\s\S]*?)\s*```\s*$")


@dataclass
class SynthesisResult:
    text: str
    ui_metadata: Optional[Dict[str, Any]] = None


def _parse_metadata(raw: str) -> Optional[Dict[str, Any]]:
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        logger.debug("Ignoring malformed UI metadata block")
        return None
    return parsed if isinstance(parsed, dict) else None


def extract_ui_metadata(text: str) -> Tuple[str, Optional[Dict[str, Any]]]:
    ui_match = _UI_METADATA_RE.search(text)
    if ui_match:
        metadata = _parse_metadata(ui_match.group(1).strip())
        main_match = _MAIN_CONTENT_RE.search(text)
        if main_match:
            return main_match.group(1).strip(), metadata
        return _UI_METADATA_RE.sub("", text).strip(), metadata

    main_match = _MAIN_CONTENT_RE.search(text)
    if main_match:
        return main_match.group(1).strip(), None

    trailing = _TRAILING_JSON_RE.search(text)
    if trailing:
        return text[: trailing.start()].strip(), _parse_metadata(trailing.group(1))
    return text.strip(), None


def summarize_step(step: Step, max_chars: int) -> str:
    text = render_value(step.result_or_tool_output()).strip()
    if len(text) > max_chars:
        return text[:max_chars].rstrip() + "..."
    return text


class Synthesizer:
    async def synthesize(self, ctx: RunContext, *, query: str, history: List[ConversationMessage]) -> SynthesisResult:
        state = ctx.state
        completed = {s.id: summarize_step(s, ctx.config.synthesis_result_max_chars) for s in state.completed_steps()}
        failed = state.failed_steps()
        logger.debug(f"[{ctx.trace_id}] Synthesizing from {len(completed)} completed / {len(failed)} failed step(s)")

        prompt = synthesis_prompt(
            query=query,
            state=state,
            completed=completed,
            failed=failed,
            history=history,
            system_prompt=ctx.system_prompt,
            persona=ctx.persona,
        )
        options = CallOptions(phase="synthesis", thread_id=ctx.thread_id, trace_id=ctx.trace_id)
        drained = await drain_stream(ctx, ctx.deps.reasoning.call(prompt, options), phase="synthesis")

        text, ui_metadata = extract_ui_metadata(drained.response)
        return SynthesisResult(text=text, ui_metadata=ui_metadata)
