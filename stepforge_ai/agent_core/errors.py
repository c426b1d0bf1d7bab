"""Error types raised by the engine.

Purpose:
- Give every failure that can escape an engine phase a typed exception with a
  stable ``code`` and the ``phase`` in which it happened.

Usage:
- ``PlanningError`` aborts a run before any plan is saved.
- ``ResumeError`` and ``ThreadNotFoundError`` are raised to the caller of
  ``PESEngine.resume`` before a run starts.
- ``ReasoningError`` is raised while draining a reasoning stream that reported
  an error event.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    planning_failed = "PLANNING_FAILED"
    resume_rejected = "RESUME_REJECTED"
    thread_not_found = "THREAD_NOT_FOUND"
    reasoning_failed = "REASONING_FAILED"
    internal = "INTERNAL_ERROR"


class EngineError(Exception):
    """Base error for engine failures.

    Args:
        message: Human-readable error description.
        code: Stable error code.
        phase: Engine phase in which the error occurred, if known.
        cause: Underlying exception, if any.
    """

    default_code = ErrorCode.internal

    def __init__(
        self,
        message: str,
        *,
        code: Optional[ErrorCode] = None,
        phase: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.phase = phase
        self.cause = cause


class PlanningError(EngineError):
    """Raised when planning output cannot be turned into a step list."""

    default_code = ErrorCode.planning_failed


class ResumeError(EngineError):
    """Raised when a resume request does not match the thread's suspension."""

    default_code = ErrorCode.resume_rejected


class ThreadNotFoundError(EngineError):
    """Raised when a thread has no persisted plan to act on."""

    default_code = ErrorCode.thread_not_found

    def __init__(self, thread_id: str) -> None:
        super().__init__(f"No plan state found for thread: {thread_id}")
        self.thread_id = thread_id


class ReasoningError(EngineError):
    """Raised when the reasoning stream reports an error event."""

    default_code = ErrorCode.reasoning_failed
