"""
Monitoring and Tracing Configuration Module.

This module provides integration with Pydantic Logfire for tracing engine runs:
- Run start/completion spans with status and duration
- Reasoning (LLM) call usage metrics
- Automatic instrumentation of Pydantic AI, SQLAlchemy, HTTPX and FastAPI

Every helper here is fire-and-forget: monitoring must never change the outcome
of a run, so failures are logged at DEBUG and swallowed.
"""

import logging
import os
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Logfire configuration from environment
LOGFIRE_ENABLED = os.getenv("LOGFIRE_ENABLED", "false").lower() in ("true", "1", "yes")
LOGFIRE_TOKEN = os.getenv("LOGFIRE_TOKEN", "")
LOGFIRE_PROJECT_NAME = os.getenv("LOGFIRE_PROJECT_NAME", "stepforge-ai")
LOGFIRE_ENVIRONMENT = os.getenv("LOGFIRE_ENVIRONMENT", "development")
LOGFIRE_SERVICE_NAME = os.getenv("LOGFIRE_SERVICE_NAME", "stepforge-ai-engine")
LOGFIRE_SERVICE_VERSION = os.getenv("LOGFIRE_SERVICE_VERSION", "0.0.0")

# Sampling configuration
LOGFIRE_SAMPLE_RATE = float(os.getenv("LOGFIRE_SAMPLE_RATE", "1.0"))

# Feature flags
LOGFIRE_TRACE_PYDANTIC_AI = os.getenv("LOGFIRE_TRACE_PYDANTIC_AI", "true").lower() in ("true", "1", "yes")
LOGFIRE_TRACE_SQLALCHEMY = os.getenv("LOGFIRE_TRACE_SQLALCHEMY", "true").lower() in ("true", "1", "yes")
LOGFIRE_TRACE_HTTPX = os.getenv("LOGFIRE_TRACE_HTTPX", "true").lower() in ("true", "1", "yes")
LOGFIRE_TRACE_FASTAPI = os.getenv("LOGFIRE_TRACE_FASTAPI", "true").lower() in ("true", "1", "yes")


def initialize_logfire(app: Any | None = None) -> bool:
    """
    Initialize Pydantic Logfire for monitoring and tracing.

    The initialization is conditional based on the LOGFIRE_ENABLED environment
    variable and requires LOGFIRE_TOKEN.

    Args:
        app: FastAPI application instance for endpoint instrumentation (optional).

    Returns:
        True when Logfire was configured, False otherwise.
    """
    if not LOGFIRE_ENABLED:
        logger.info("Logfire monitoring is disabled. Set LOGFIRE_ENABLED=true to enable.")
        return False

    if not LOGFIRE_TOKEN:
        logger.warning(
            "Logfire is enabled but LOGFIRE_TOKEN is not set. "
            "Monitoring will not work. Set LOGFIRE_TOKEN to enable Logfire."
        )
        return False

    try:
        import logfire

        logfire.configure(
            token=LOGFIRE_TOKEN,
            service_name=LOGFIRE_SERVICE_NAME,
            service_version=LOGFIRE_SERVICE_VERSION,
            environment=LOGFIRE_ENVIRONMENT,
            sampling=logfire.SamplingOptions(head=LOGFIRE_SAMPLE_RATE),
        )

        instrumentations = [
            (LOGFIRE_TRACE_PYDANTIC_AI, "Pydantic AI", lambda: logfire.instrument_pydantic_ai()),
            (LOGFIRE_TRACE_SQLALCHEMY, "SQLAlchemy", lambda: logfire.instrument_sqlalchemy()),
            (LOGFIRE_TRACE_HTTPX, "HTTPX", lambda: logfire.instrument_httpx()),
        ]
        if app is not None:
            instrumentations.append((LOGFIRE_TRACE_FASTAPI, "FastAPI", lambda: logfire.instrument_fastapi(app=app)))

        for enabled, label, instrument in instrumentations:
            if not enabled:
                continue
            try:
                instrument()
                logger.info(f"Logfire: {label} instrumentation enabled")
            except Exception as e:
                logger.warning(f"Failed to instrument {label}: {e}")

        logger.info(
            f"Logfire monitoring initialized: "
            f"project={LOGFIRE_PROJECT_NAME}, "
            f"environment={LOGFIRE_ENVIRONMENT}, "
            f"service={LOGFIRE_SERVICE_NAME}"
        )
        return True
    except Exception as e:
        logger.error(f"Failed to initialize Logfire: {e}", exc_info=True)
        return False


def log_run_started(thread_id: str, trace_id: str, query: str, *, resumed: bool = False) -> None:
    """
    Log the start of an engine run with context.

    Args:
        thread_id: The conversation thread the run belongs to
        trace_id: The trace identifier of the run
        query: The user query (empty for resumed runs)
        resumed: Whether this run continues a suspended thread
    """
    if not LOGFIRE_ENABLED:
        return
    try:
        import logfire

        logfire.info(
            "PES run started",
            thread_id=thread_id,
            trace_id=trace_id,
            query=query,
            resumed=resumed,
        )
    except Exception:
        logger.debug(f"Could not log run start to Logfire: thread_id={thread_id}")


def log_run_completed(thread_id: str, trace_id: str, status: str, duration_ms: float) -> None:
    """
    Log the completion of an engine run.

    Args:
        thread_id: The conversation thread the run belongs to
        trace_id: The trace identifier of the run
        status: The run status (success, suspended, error)
        duration_ms: The duration of the run in milliseconds
    """
    if not LOGFIRE_ENABLED:
        return
    try:
        import logfire

        logfire.info(
            "PES run completed",
            thread_id=thread_id,
            trace_id=trace_id,
            status=status,
            duration_ms=duration_ms,
        )
    except Exception:
        logger.debug(f"Could not log run completion to Logfire: thread_id={thread_id}")


def log_llm_call(phase: str, metadata: Optional[dict] = None) -> None:
    """
    Log a reasoning call with whatever usage metadata the provider reported.

    Args:
        phase: Engine phase that issued the call (planning, execution, synthesis)
        metadata: Provider metadata (token counts, model name), if any
    """
    if not LOGFIRE_ENABLED:
        return
    try:
        import logfire

        logfire.info("Reasoning call completed", phase=phase, **dict(metadata or {}))
    except Exception:
        logger.debug(f"Could not log reasoning call to Logfire: phase={phase}")
