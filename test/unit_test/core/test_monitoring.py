from __future__ import annotations

import logfire
import pytest

from stepforge_ai.core import monitoring


def test_disabled_by_default(monkeypatch):
    monkeypatch.setattr(monitoring, "LOGFIRE_ENABLED", False)
    assert monitoring.initialize_logfire() is False


def test_enabled_without_token(monkeypatch):
    monkeypatch.setattr(monitoring, "LOGFIRE_ENABLED", True)
    monkeypatch.setattr(monitoring, "LOGFIRE_TOKEN", "")
    assert monitoring.initialize_logfire() is False


def test_enabled_configures_and_instruments(monkeypatch):
    calls = []
    monkeypatch.setattr(monitoring, "LOGFIRE_ENABLED", True)
    monkeypatch.setattr(monitoring, "LOGFIRE_TOKEN", "token")
    monkeypatch.setattr(monitoring, "LOGFIRE_TRACE_SQLALCHEMY", False)
    monkeypatch.setattr(logfire, "configure", lambda **kw: calls.append(("configure", kw)))
    monkeypatch.setattr(logfire, "instrument_pydantic_ai", lambda: calls.append(("pydantic_ai", {})))
    monkeypatch.setattr(logfire, "instrument_httpx", lambda: calls.append(("httpx", {})))

    def _broken_fastapi(app):
        raise RuntimeError("no fastapi extra")

    monkeypatch.setattr(logfire, "instrument_fastapi", _broken_fastapi)

    assert monitoring.initialize_logfire(app=object()) is True
    assert [c[0] for c in calls] == ["configure", "pydantic_ai", "httpx"]
    assert calls[0][1]["service_name"] == monitoring.LOGFIRE_SERVICE_NAME


def test_run_logging_never_raises(monkeypatch):
    monkeypatch.setattr(monitoring, "LOGFIRE_ENABLED", True)

    def _boom(*args, **kwargs):
        raise RuntimeError("exporter down")

    monkeypatch.setattr(logfire, "info", _boom)

    monitoring.log_run_started("t", "tr", "q")
    monitoring.log_run_completed("t", "tr", "success", 12.5)
    monitoring.log_llm_call("planning", {"input_tokens": 3})


def test_run_logging_sends_fields(monkeypatch):
    seen = []
    monkeypatch.setattr(monitoring, "LOGFIRE_ENABLED", True)
    monkeypatch.setattr(logfire, "info", lambda msg, **kw: seen.append((msg, kw)))

    monitoring.log_llm_call("synthesis", {"output_tokens": 7})

    assert seen == [("Reasoning call completed", {"phase": "synthesis", "output_tokens": 7})]
