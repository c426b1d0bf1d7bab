"""
Global Exception Handlers for the FastAPI Application.

Engine errors that escape an endpoint are mapped to a JSON body carrying the
error code and phase; anything else is logged with an error id and returned
as a 500.
"""

import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stepforge_ai.agent_core.errors import EngineError, ErrorCode
from stepforge_ai.core.logging_config import get_logger

logger = get_logger(__name__)

_STATUS_BY_CODE = {
    ErrorCode.thread_not_found: 404,
    ErrorCode.resume_rejected: 409,
    ErrorCode.planning_failed: 422,
}


async def engine_exception_handler(request: Request, exc: EngineError) -> JSONResponse:
    """
    Map an ``EngineError`` to an HTTP response.

    Args:
        request: The HTTP request that caused the exception
        exc: The engine error that was raised

    Returns:
        JSONResponse with the error message, code and phase
    """
    status_code = _STATUS_BY_CODE.get(exc.code, 500)
    logger.warning(f"Engine error in {request.method} {request.url.path}: [{exc.code.value}] {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code.value, "phase": exc.phase},
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler to log detailed error information.

    It logs the full error context and returns a JSON response with an error ID
    that clients can use to reference the error when reporting issues.

    Args:
        request: The HTTP request that caused the exception
        exc: The exception that was raised

    Returns:
        JSONResponse with error details and error ID
    """
    error_id = id(exc)

    logger.error(
        f"Unhandled exception [{error_id}] in {request.method} {request.url.path}: {str(exc)}",
        exc_info=True,
        extra={
            "error_id": error_id,
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
            "client": request.client.host if request.client else "unknown",
            "error_type": type(exc).__name__,
            "traceback": traceback.format_exc(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error_id": error_id,
            "error_type": type(exc).__name__,
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """
    Register exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(EngineError, engine_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
    logger.debug("Exception handlers registered successfully")
