"""Draining of reasoning streams.

Every event is fanned out to the stream notifier as it arrives; the engine
itself only ever parses the fully drained buffers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, Optional

from ...core.monitoring import log_llm_call
from ..errors import ReasoningError
from ..schemas.domain import ObservationType, StreamEvent, StreamEventType, TokenType

if TYPE_CHECKING:
    from ..runtime.models import RunContext

logger = logging.getLogger(__name__)


@dataclass
class DrainedStream:
    response: str = ""
    thinking: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def combined(self) -> str:
        return f"{self.thinking}\n{self.response}" if self.thinking else self.response


async def drain_stream(
    ctx: RunContext,
    stream: AsyncIterator[StreamEvent],
    *,
    phase: str,
    parent_id: Optional[str] = None,
) -> DrainedStream:
    """Consume a reasoning stream into separate thinking/response buffers.

    Raises:
        ReasoningError: when the stream reports an ``error`` event.
    """
    await ctx.observer.record(ObservationType.llm_stream_start, {"phase": phase}, parent_id=parent_id)
    drained = DrainedStream()
    thinking_parts: list[str] = []
    response_parts: list[str] = []

    async for event in stream:
        if event.phase is None:
            event = event.model_copy(update={"phase": phase})
        ctx.observer.notify(event)

        if event.type == StreamEventType.token:
            text = "" if event.data is None else str(event.data)
            if event.token_type == TokenType.thinking:
                thinking_parts.append(text)
            else:
                response_parts.append(text)
        elif event.type == StreamEventType.metadata:
            if isinstance(event.data, dict):
                drained.metadata.update(event.data)
        elif event.type == StreamEventType.error:
            message = str(event.data) if event.data else "reasoning stream reported an error"
            logger.error(f"[{ctx.trace_id}] Reasoning stream error during {phase}: {message}")
            raise ReasoningError(message, phase=phase)

    drained.thinking = "".join(thinking_parts)
    drained.response = "".join(response_parts)

    ctx.llm_calls += 1
    ctx.add_llm_metadata(drained.metadata)
    log_llm_call(phase, drained.metadata)
    if drained.thinking.strip():
        await ctx.observer.record(
            ObservationType.thoughts, {"text": drained.thinking.strip(), "phase": phase}, parent_id=parent_id
        )
    return drained
