"""
Engine Service Dependency.

Provides the singleton EngineService instance for API endpoints.
"""

from typing import Annotated

from fastapi import Depends

from stepforge_ai.server.services.engine import EngineService, get_engine_service

EngineServiceDep = Annotated[EngineService, Depends(get_engine_service)]
