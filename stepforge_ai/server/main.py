"""
Main Application Entry Point.

This module initializes the FastAPI application, configures middleware (CORS),
monitoring and exception handlers, and includes all API routers.
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stepforge_ai.core.logging_config import get_logger, setup_logging
from stepforge_ai.core.monitoring import initialize_logfire

from .api.v1 import health, threads
from .core import constant
from .core.config import settings
from .exception_handlers import setup_exception_handlers
from .services.engine import get_engine_service

# Initialize logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan events.

    Builds the engine service and ensures the database schema on startup,
    and disposes of database connections on shutdown.
    """
    # Startup
    logger.info("Starting up stepforge-ai Server...")
    service = get_engine_service()
    try:
        await service.startup()
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    yield

    # Shutdown
    logger.info("Shutting down stepforge-ai Server...")
    await service.shutdown()


app = FastAPI(
    title=constant.PROJECT_NAME,
    description="""
    stepforge-ai Server API

    Plan-Execute-Synthesize agent engine: send messages to a thread, approve or
    reject suspended tool calls, and inspect the persisted plan.
    """,
    version=constant.VERSION,
    openapi_url=f"{constant.API_V1_STR}/openapi.json",
    docs_url=f"{constant.API_V1_STR}/docs",
    redoc_url=f"{constant.API_V1_STR}/redoc",
    lifespan=lifespan,
)

initialize_logfire(app)

# Set all CORS enabled origins
cors = settings.cors
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors.origins,
    allow_credentials=cors.allow_credentials,
    allow_methods=cors.allow_methods,
    allow_headers=cors.allow_headers,
)

setup_exception_handlers(app)

app.include_router(health.router, tags=["health"])
app.include_router(threads.router, prefix=f"{constant.API_V1_STR}/threads", tags=["threads"])


def run() -> None:
    """Console entry point: serve the application with uvicorn."""
    uvicorn.run(
        "stepforge_ai.server.main:app",
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )
