"""
Engine Service.

Wires one ``PESEngine`` for the server from ``Settings``: a Pydantic AI
reasoning client, the default tool registry, and SQL repositories when a
database URL is configured (in-memory stores otherwise).
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from stepforge_ai.agent_core.factory import build_default_registry, build_engine, build_memory_deps, build_sql_deps
from stepforge_ai.agent_core.reasoning.pydantic_ai import PydanticAIReasoningClient
from stepforge_ai.agent_core.repos.sql import build_sql_repos, create_all, create_engine, create_sessionmaker
from stepforge_ai.agent_core.runtime import PESEngine
from stepforge_ai.agent_core.schemas.domain import AgentFinalResponse, PlanState
from stepforge_ai.core.logging_config import get_logger
from stepforge_ai.server.core.config import Settings, settings

logger = get_logger(__name__)


class EngineService:
    """
    Service layer between the API and the engine.

    Owns the SQL engine (if any) so the application lifespan can create the
    schema on startup and dispose of connections on shutdown.
    """

    def __init__(self, engine: PESEngine, *, sql_engine: Optional[AsyncEngine] = None) -> None:
        self.engine = engine
        self._sql_engine = sql_engine

    @classmethod
    def from_settings(cls, cfg: Settings) -> "EngineService":
        reasoning = PydanticAIReasoningClient(cfg.model_name)
        registry = build_default_registry()
        if cfg.database_url:
            sql_engine = create_engine(cfg.database_url)
            repos = build_sql_repos(session_factory=create_sessionmaker(sql_engine))
            deps = build_sql_deps(reasoning, repos, registry=registry)
            logger.info("Engine service using SQL persistence")
            return cls(build_engine(deps, cfg.engine), sql_engine=sql_engine)

        logger.warning("STEPFORGE_AI_DATABASE_URL is not set; plan state is kept in memory only")
        return cls(build_engine(build_memory_deps(reasoning, registry=registry), cfg.engine))

    async def startup(self) -> None:
        if self._sql_engine is not None:
            await create_all(self._sql_engine)
            logger.info("Database schema ensured")

    async def shutdown(self) -> None:
        if self._sql_engine is not None:
            await self._sql_engine.dispose()

    async def process_message(self, thread_id: str, query: str, *, user_id: Optional[str] = None) -> AgentFinalResponse:
        return await self.engine.process(thread_id, query, user_id=user_id)

    async def resume(
        self,
        thread_id: str,
        *,
        approved: bool,
        reason: Optional[str] = None,
        suspension_id: Optional[str] = None,
    ) -> AgentFinalResponse:
        return await self.engine.resume(thread_id, approved=approved, reason=reason, suspension_id=suspension_id)

    async def get_plan(self, thread_id: str) -> Optional[PlanState]:
        return await self.engine.get_plan_state(thread_id)


_service: Optional[EngineService] = None


def get_engine_service() -> EngineService:
    global _service
    if _service is None:
        _service = EngineService.from_settings(settings)
    return _service
