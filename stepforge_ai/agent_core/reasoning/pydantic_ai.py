"""Pydantic AI reasoning adapter.

Wraps a Pydantic AI ``Agent`` so it satisfies ``ReasoningClient``. System
messages become the agent's system prompt; the remaining messages are
rendered as a role-tagged transcript and sent as the user prompt.

Text deltas are split on ``<think>`` tags into ``thinking`` and ``response``
tokens. Usage is reported as one ``metadata`` event at the end of the stream
and failures as a single ``error`` event.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, List, Optional, Tuple

from pydantic_ai import Agent

from ..schemas.domain import PromptMessage, StreamEvent, StreamEventType, TokenType
from .base import CallOptions

logger = logging.getLogger(__name__)

_OPEN = "<think>"
_CLOSE = "</think>"


class ThinkTagSplitter:
    """Incremental splitter for ``<think>`` blocks spread across deltas."""

    def __init__(self) -> None:
        self._buffer = ""
        self._in_think = False

    def _held_back(self, tag: str) -> int:
        # Length of the longest buffer suffix that could start ``tag``.
        for size in range(min(len(tag) - 1, len(self._buffer)), 0, -1):
            if tag.startswith(self._buffer[-size:]):
                return size
        return 0

    def feed(self, text: str) -> List[Tuple[TokenType, str]]:
        self._buffer += text
        out: List[Tuple[TokenType, str]] = []
        while self._buffer:
            tag = _CLOSE if self._in_think else _OPEN
            kind = TokenType.thinking if self._in_think else TokenType.response
            idx = self._buffer.find(tag)
            if idx >= 0:
                if idx:
                    out.append((kind, self._buffer[:idx]))
                self._buffer = self._buffer[idx + len(tag) :]
                self._in_think = not self._in_think
                continue
            keep = self._held_back(tag)
            emit = self._buffer[: len(self._buffer) - keep]
            if emit:
                out.append((kind, emit))
            self._buffer = self._buffer[len(self._buffer) - keep :]
            break
        return out

    def flush(self) -> List[Tuple[TokenType, str]]:
        if not self._buffer:
            return []
        kind = TokenType.thinking if self._in_think else TokenType.response
        rest, self._buffer = self._buffer, ""
        return [(kind, rest)]


def render_transcript(messages: List[PromptMessage]) -> Tuple[str, str]:
    """Return ``(system_prompt, user_prompt)`` for a chat message list."""
    system = "\n\n".join(m.content for m in messages if m.role == "system")
    lines = []
    for m in messages:
        if m.role == "system":
            continue
        if m.role == "tool":
            label = " ".join(part for part in ("tool result", m.name, m.tool_call_id) if part)
            lines.append(f"[{label}]\n{m.content}")
        else:
            lines.append(f"[{m.role}]\n{m.content}")
    return system, "\n\n".join(lines)


def _read_usage(result: Any, options: CallOptions) -> Any:
    # ``usage`` is an attribute on newer Pydantic AI releases and a method on older ones.
    usage = getattr(result, "usage", None)
    if callable(usage):
        try:
            usage = usage()
        except Exception as e:
            logger.warning(f"[{options.trace_id}] Could not read usage in phase {options.phase}: {e}")
            return None
    return usage


def _usage_metadata(usage: Any) -> dict:
    if usage is None:
        return {}
    if hasattr(usage, "input_tokens"):
        return {"input_tokens": usage.input_tokens, "output_tokens": getattr(usage, "output_tokens", None)}
    input_tokens = getattr(usage, "request_tokens", None)
    output_tokens = getattr(usage, "response_tokens", None)
    return {"input_tokens": input_tokens, "output_tokens": output_tokens}


class PydanticAIReasoningClient:
    """``ReasoningClient`` backed by a Pydantic AI model."""

    def __init__(self, model: Any, *, model_name: Optional[str] = None) -> None:
        """
        Args:
            model: A Pydantic AI model instance or a model name such as ``"openai:gpt-4o"``.
            model_name: Label reported in usage metadata; defaults to ``str(model)``.
        """
        self._model = model
        self._model_name = model_name or (model if isinstance(model, str) else type(model).__name__)

    async def call(self, prompt: List[PromptMessage], options: CallOptions) -> AsyncIterator[StreamEvent]:
        system, user_prompt = render_transcript(prompt)

        def _event(type_: StreamEventType, data: Any, token_type: TokenType = TokenType.response) -> StreamEvent:
            return StreamEvent(
                type=type_,
                data=data,
                token_type=token_type,
                phase=options.phase,
                thread_id=options.thread_id,
                trace_id=options.trace_id,
            )

        splitter = ThinkTagSplitter()
        try:
            agent: Agent = Agent(self._model, system_prompt=system or ())
            async with agent.run_stream(user_prompt) as stream:
                async for delta in stream.stream_text(delta=True):
                    for kind, text in splitter.feed(delta):
                        yield _event(StreamEventType.token, text, kind)
                for kind, text in splitter.flush():
                    yield _event(StreamEventType.token, text, kind)
                usage = _read_usage(stream, options)
        except Exception as e:
            logger.error(f"[{options.trace_id}] Pydantic AI call failed in phase {options.phase}: {e}", exc_info=True)
            yield _event(StreamEventType.error, str(e))
            return
        yield _event(StreamEventType.metadata, {"model": self._model_name, **_usage_metadata(usage)})
