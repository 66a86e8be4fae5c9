"""Tests for the settings layer (AI_CHAT_*, CONTENT_*, DATABASE_*)."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from cms_agent.config.settings import (
    AIChatSettings,
    AnthropicSettings,
    ContentSettings,
    DatabaseSettings,
    OpenAISettings,
    Settings,
)


class TestAIChatSettings:
    def test_enabled_truthy_strings(self) -> None:
        assert AIChatSettings(enabled="yes", model="m").enabled is True
        assert AIChatSettings(enabled="1", model="m").enabled is True
        assert AIChatSettings(enabled="off", model="m").enabled is False
        assert AIChatSettings(enabled="", model="m").enabled is False

    def test_provider_normalized(self) -> None:
        assert AIChatSettings(provider=" OpenAI ").provider == "openai"
        assert AIChatSettings(provider="anthropic").provider == "anthropic"
        assert AIChatSettings(provider="something-else").provider == "anthropic"
        assert AIChatSettings(provider="").provider == "anthropic"

    def test_max_tokens_clamped(self) -> None:
        assert AIChatSettings(max_tokens=50).max_tokens == 300
        assert AIChatSettings(max_tokens=10_000).max_tokens == 6000
        assert AIChatSettings(max_tokens="2400").max_tokens == 2400
        assert AIChatSettings(max_tokens="lots").max_tokens == 1800

    def test_turn_cap_defaults_to_four(self) -> None:
        assert AIChatSettings().max_turns == 4

    def test_turn_cap_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            AIChatSettings(max_turns=0)

    def test_turn_cap_cannot_be_raised(self, monkeypatch: pytest.MonkeyPatch) -> None:
        with pytest.raises(ValidationError):
            AIChatSettings(max_turns=10)
        monkeypatch.setenv("AI_CHAT_MAX_TURNS", "5")
        with pytest.raises(ValidationError):
            AIChatSettings()
        assert AIChatSettings(max_turns=3).max_turns == 3

    def test_model_configured(self) -> None:
        assert AIChatSettings(model="  ").model_configured is False
        assert AIChatSettings(model="claude-x").model_configured is True


class TestContentSettings:
    def test_write_through_follows_environment(self, tmp_path: Path) -> None:
        dev = ContentSettings(content_dir=tmp_path, environment="development")
        prod = ContentSettings(content_dir=tmp_path, environment=" Production ")
        assert dev.should_write_through_file is True
        assert prod.should_write_through_file is False

    def test_explicit_write_through_wins(self, tmp_path: Path) -> None:
        prod = ContentSettings(
            content_dir=tmp_path, environment="production", write_through_file=True
        )
        dev = ContentSettings(
            content_dir=tmp_path, environment="development", write_through_file=False
        )
        assert prod.should_write_through_file is True
        assert dev.should_write_through_file is False


class TestDatabaseSettings:
    def test_empty_host_disables_database(self) -> None:
        assert DatabaseSettings(host="").enabled is False
        assert DatabaseSettings(host="db.internal").enabled is True

    def test_foreign_schema_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATABASE_SCHEMA", "public")
        with pytest.raises(ValidationError, match="DATABASE_SCHEMA must be 'cms_agent'"):
            DatabaseSettings()


class TestSettings:
    def test_enabled_without_model_rejected(self) -> None:
        with pytest.raises(ValidationError, match="AI_CHAT_MODEL is required"):
            Settings(ai_chat=AIChatSettings(enabled=True, model=""))

    def test_disabled_without_model_accepted(self) -> None:
        s = Settings(ai_chat=AIChatSettings(enabled=False, model=""))
        assert s.ai_chat.enabled is False

    def test_provider_key_detection(self) -> None:
        s = Settings(
            ai_chat=AIChatSettings(provider="openai", model="m"),
            openai=OpenAISettings(api_key=""),
            anthropic=AnthropicSettings(api_key="sk-ant"),
        )
        assert s.provider_key_detected() is False
        assert s.provider_key_detected("anthropic") is True
        assert s.provider_key_detected("openai") is False
