from __future__ import annotations

from pathlib import Path
from typing import Self

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cms_agent.constants import DB_SCHEMA, HISTORY_LIMIT, MAX_TURNS

# Load .env once at module import; every BaseSettings group reads the same env
load_dotenv()

_TRUTHY = {"1", "true", "yes", "on"}


class DatabaseSettings(BaseSettings):
    """PostgreSQL connection settings. Env vars prefixed with DATABASE_.

    An empty host disables the database; stores then run file-mirror only.
    """

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    host: str = ""
    port: int = 5432
    user: str = "postgres"
    password: str = ""
    name: str = "cms"
    schema_: str = Field(DB_SCHEMA, validation_alias="DATABASE_SCHEMA")

    @field_validator("schema_")
    @classmethod
    def _validate_schema(cls, v: str) -> str:
        if v != DB_SCHEMA:
            msg = f"DATABASE_SCHEMA must be '{DB_SCHEMA}' (got '{v}')."
            raise ValueError(msg)
        return v

    @property
    def enabled(self) -> bool:
        return bool(self.host)


class ContentSettings(BaseSettings):
    """Content store settings. Env vars prefixed with CONTENT_."""

    model_config = SettingsConfigDict(env_prefix="CONTENT_")

    content_dir: Path = Path("content")
    environment: str = "development"
    # None = derive from environment (on everywhere except production)
    write_through_file: bool | None = None
    # Public base for "/uploads/..." media references, e.g. a storage bucket URL.
    media_public_base_url: str = ""

    @property
    def should_write_through_file(self) -> bool:
        if self.write_through_file is not None:
            return self.write_through_file
        return self.environment.strip().lower() != "production"


class AIChatSettings(BaseSettings):
    """Conversational agent settings. Env vars prefixed with AI_CHAT_."""

    model_config = SettingsConfigDict(env_prefix="AI_CHAT_")

    enabled: bool = False
    provider: str = "anthropic"
    model: str = ""
    max_tokens: int = 1800
    max_turns: int = Field(MAX_TURNS, gt=0, le=MAX_TURNS)
    history_limit: int = Field(HISTORY_LIMIT, gt=0, le=500)

    @field_validator("enabled", mode="before")
    @classmethod
    def _parse_enabled(cls, v: object) -> bool:
        if isinstance(v, bool):
            return v
        return str(v or "").strip().lower() in _TRUTHY

    @field_validator("provider", mode="before")
    @classmethod
    def _normalize_provider(cls, v: object) -> str:
        value = str(v or "anthropic").strip().lower()
        return "openai" if value == "openai" else "anthropic"

    @field_validator("max_tokens", mode="before")
    @classmethod
    def _clamp_max_tokens(cls, v: object) -> int:
        try:
            parsed = int(v)
        except (TypeError, ValueError):
            return 1800
        return max(300, min(parsed, 6000))

    @property
    def model_configured(self) -> bool:
        return bool(self.model.strip())


class OpenAISettings(BaseSettings):
    """OpenAI API settings. Env vars prefixed with OPENAI_."""

    model_config = SettingsConfigDict(env_prefix="OPENAI_")

    api_key: str = ""  # empty = provider disabled
    base_url: str | None = None


class AnthropicSettings(BaseSettings):
    """Anthropic API settings. Env vars prefixed with ANTHROPIC_."""

    model_config = SettingsConfigDict(env_prefix="ANTHROPIC_")

    api_key: str = ""  # empty = provider disabled
    base_url: str | None = None


class GatewaySettings(BaseSettings):
    """HTTP gateway settings. Env vars prefixed with GATEWAY_."""

    model_config = SettingsConfigDict(env_prefix="GATEWAY_")

    host: str = "0.0.0.0"
    port: int = 8080
    default_site_id: str = "reb-template"
    json_logs: bool = True


class Settings(BaseSettings):
    """Root settings composing all sub-configurations."""

    model_config = SettingsConfigDict(extra="ignore")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    content: ContentSettings = Field(default_factory=ContentSettings)
    ai_chat: AIChatSettings = Field(default_factory=AIChatSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    anthropic: AnthropicSettings = Field(default_factory=AnthropicSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)

    @model_validator(mode="after")
    def _validate(self) -> Self:
        if self.ai_chat.enabled and not self.ai_chat.model_configured:
            raise ValueError("AI_CHAT_MODEL is required when AI_CHAT_ENABLED is on")
        return self

    def provider_key_detected(self, provider: str | None = None) -> bool:
        name = provider or self.ai_chat.provider
        if name == "openai":
            return bool(self.openai.api_key)
        return bool(self.anthropic.api_key)


def get_settings() -> Settings:
    """Load and validate settings. Raises ValidationError on invalid values."""
    return Settings()
