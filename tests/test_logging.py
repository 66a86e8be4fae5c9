"""Tests for the logging processors and stdlib routing."""

from __future__ import annotations

import logging

import pytest
import structlog

from cms_agent.infra.logging import drop_none_values, redact_secrets, setup_logging


class TestProcessors:
    def test_redacts_credential_keys(self) -> None:
        event = {"event": "provider_ready", "api_key": "sk-live", "OPENAI_API_KEY": "sk-x", "model": "m"}
        out = redact_secrets(None, "info", event)
        assert out == {
            "event": "provider_ready",
            "api_key": "***",
            "OPENAI_API_KEY": "***",
            "model": "m",
        }

    def test_empty_secret_left_alone(self) -> None:
        assert redact_secrets(None, "info", {"event": "x", "password": ""}) == {
            "event": "x",
            "password": "",
        }

    def test_drops_none(self) -> None:
        out = drop_none_values(None, "info", {"event": "x", "actor": None, "dry_run": False})
        assert out == {"event": "x", "dry_run": False}


class TestSetupLogging:
    def test_unknown_level(self) -> None:
        with pytest.raises(ValueError, match="Unknown log level"):
            setup_logging(log_level="chatty")

    def test_stdlib_routed_once(self) -> None:
        setup_logging(json_output=False, log_level="debug")
        setup_logging(json_output=True, log_level="info")

        root = logging.getLogger()
        ours = [
            h for h in root.handlers
            if isinstance(h.formatter, structlog.stdlib.ProcessorFormatter)
        ]
        assert len(ours) == 1
        assert root.level == logging.INFO
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("uvicorn.error").propagate is True
