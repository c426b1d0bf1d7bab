"""Reasoning client contract.

The engine never talks to a model directly. It hands a list of
``PromptMessage`` objects to a ``ReasoningClient`` and consumes the returned
stream of ``StreamEvent`` values:

- ``token`` events carry text; ``token_type`` tells visible reasoning
  (``thinking``) apart from the answer (``response``).
- ``metadata`` events carry provider usage data (token counts, model name).
- ``error`` events report a failed call. The engine turns them into a
  ``ReasoningError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from ..schemas.domain import PromptMessage, StreamEvent


@dataclass(frozen=True)
class CallOptions:
    """Per-call options passed through to the reasoning client.

    Attributes
    ----------
    phase:
        Engine phase issuing the call (``planning``, ``execution``, ``synthesis``).
    thread_id / trace_id:
        Correlation identifiers, stamped on every emitted event.
    step_id:
        The step being executed, for execution calls.
    extra:
        Provider-specific settings (model name, temperature).
    """

    phase: str
    thread_id: str
    trace_id: str
    step_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class ReasoningClient(Protocol):
    """Turns a prompt into a stream of typed events."""

    def call(self, prompt: List[PromptMessage], options: CallOptions) -> AsyncIterator[StreamEvent]:
        """
        Start a reasoning call.

        Args:
            prompt: Ordered chat messages.
            options: Correlation and provider options.

        Returns:
            An async iterator of stream events. Implementations should report
            failures as an ``error`` event rather than raising.
        """
        ...
