from __future__ import annotations

import httpx
import pytest
import pytest_asyncio

from stepforge_ai.server.main import app
from stepforge_ai.server.services.engine import EngineService, get_engine_service


@pytest.fixture
def service(engine) -> EngineService:
    return EngineService(engine)


@pytest_asyncio.fixture
async def client(service: EngineService):
    app.dependency_overrides[get_engine_service] = lambda: service
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
