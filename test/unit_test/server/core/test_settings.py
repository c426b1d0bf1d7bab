from __future__ import annotations

from stepforge_ai.server.core.config import Settings


def test_defaults(monkeypatch):
    monkeypatch.delenv("STEPFORGE_AI_DATABASE_URL", raising=False)
    cfg = Settings(_env_file=None)
    assert cfg.server_port == 8000
    assert cfg.database_url is None
    assert cfg.cors.origins == ["*"]


def test_engine_tunables_from_env(monkeypatch):
    monkeypatch.setenv("STEPFORGE_AI_MAX_STEP_ITERATIONS", "7")
    monkeypatch.setenv("STEPFORGE_AI_DELEGATION_TIMEOUT", "1.5")

    engine = Settings(_env_file=None).engine

    assert engine.max_step_iterations == 7
    assert engine.delegation_timeout_seconds == 1.5
    assert engine.max_validation_retries == 2
