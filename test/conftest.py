from __future__ import annotations

from pathlib import Path
from typing import Iterable

import httpx
import pytest
from dotenv import load_dotenv

from stepforge_ai.agent_core.factory import build_default_registry, build_memory_deps
from stepforge_ai.agent_core.runtime.engine import PESEngine
from stepforge_ai.agent_core.runtime.models import EngineDeps
from stepforge_ai.agent_core.schemas.config import EngineConfig
from stepforge_ai.agent_core.schemas.domain import AgentIdentity
from stepforge_ai.agent_core.tools.registry import ToolRegistry

from pes_fakes import RecordingTool, ScriptedReasoning

# Load dotenv files early so test fixtures can read settings via os.getenv
TEST_ROOT = Path(__file__).resolve().parent
load_dotenv(TEST_ROOT / ".env", override=False)


@pytest.fixture
def reasoning() -> ScriptedReasoning:
    return ScriptedReasoning()


@pytest.fixture
def recorder() -> RecordingTool:
    return RecordingTool()


@pytest.fixture
def registry(recorder: RecordingTool) -> ToolRegistry:
    return build_default_registry(
        [
            recorder.make("search", {"status": "success", "data": {"hits": ["doc-1", "doc-2"]}}),
            recorder.make("fetch", "fetched page"),
            recorder.make("broken", fail="boom"),
        ]
    )


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(delegation_poll_interval_seconds=0.01, delegation_timeout_seconds=0.3)


@pytest.fixture
def deps(reasoning: ScriptedReasoning, registry: ToolRegistry) -> EngineDeps:
    return build_memory_deps(
        reasoning,
        registry=registry,
        agents=[AgentIdentity(agent_id="researcher", agent_name="Researcher", capabilities=["research"])],
    )


@pytest.fixture
def engine(deps: EngineDeps, engine_config: EngineConfig) -> PESEngine:
    return PESEngine(deps=deps, config=engine_config)


@pytest.fixture(autouse=True)
def _global_offline_http_guard(monkeypatch: pytest.MonkeyPatch):
    allowed_prefixes: Iterable[str] = (
        "http://mock",
        "https://mock",
        "http://localhost",
        "http://127.0.0.1",
        "http://test",
        "/",  # Allow relative paths (used by ASGI transport)
    )

    orig_sync = httpx._client.Client.request
    orig_async = httpx._client.AsyncClient.request

    def _is_allowed(url_str: str) -> bool:
        return any(url_str.startswith(p) for p in allowed_prefixes)

    def offline_sync(self, method, url, *args, **kwargs):
        url_str = str(url)
        if _is_allowed(url_str):
            return orig_sync(self, method, url, *args, **kwargs)
        raise RuntimeError(f"External HTTP blocked by global offline guard: {url_str}")

    async def offline_async(self, method, url, *args, **kwargs):
        url_str = str(url)
        if _is_allowed(url_str):
            return await orig_async(self, method, url, *args, **kwargs)
        raise RuntimeError(f"External HTTP blocked by global offline guard (async): {url_str}")

    monkeypatch.setattr(httpx._client.Client, "request", offline_sync, raising=True)
    monkeypatch.setattr(httpx._client.AsyncClient, "request", offline_async, raising=True)
