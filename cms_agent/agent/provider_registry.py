"""ProviderRegistry: vendor providers registered from configuration at startup.

Read-only after init. The gateway asks for the configured active provider;
status reporting lists what is available.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from cms_agent.agent.providers.anthropic_provider import AnthropicChatProvider
from cms_agent.agent.providers.openai_provider import OpenAIChatProvider
from cms_agent.infra.errors import ProviderError

if TYPE_CHECKING:
    from cms_agent.agent.provider import ChatProvider
    from cms_agent.config.settings import Settings

logger = structlog.get_logger()

_KEY_ENV = {"openai": "OPENAI_API_KEY", "anthropic": "ANTHROPIC_API_KEY"}


@dataclass
class ProviderEntry:
    name: str
    provider: ChatProvider
    model: str


class ProviderRegistry:
    def __init__(self, default_provider: str) -> None:
        self._providers: dict[str, ProviderEntry] = {}
        self._default = default_provider

    def register(self, name: str, provider: ChatProvider, model: str) -> None:
        self._providers[name] = ProviderEntry(name=name, provider=provider, model=model)

    def get(self, name: str | None = None) -> ProviderEntry:
        """Get provider by name, or default if None.

        Raises KeyError if not found or not configured.
        """
        key = name or self._default
        if key not in self._providers:
            msg = f"Provider '{key}' not registered or not configured"
            raise KeyError(msg)
        return self._providers[key]

    @property
    def default_name(self) -> str:
        return self._default

    def available_providers(self) -> list[str]:
        return list(self._providers.keys())


def build_provider_registry(settings: Settings) -> ProviderRegistry:
    """Register every vendor that has an API key configured."""
    registry = ProviderRegistry(default_provider=settings.ai_chat.provider)
    model = settings.ai_chat.model

    if settings.openai.api_key:
        registry.register(
            "openai",
            OpenAIChatProvider(
                api_key=settings.openai.api_key,
                base_url=settings.openai.base_url,
            ),
            model,
        )
    if settings.anthropic.api_key:
        registry.register(
            "anthropic",
            AnthropicChatProvider(
                api_key=settings.anthropic.api_key,
                max_tokens=settings.ai_chat.max_tokens,
                base_url=settings.anthropic.base_url,
            ),
            model,
        )

    logger.info(
        "provider_registry_built",
        default=registry.default_name,
        available=registry.available_providers(),
    )
    return registry


def create_provider(registry: ProviderRegistry) -> ChatProvider:
    """Return the configured active provider or raise ProviderError naming the missing key."""
    try:
        return registry.get().provider
    except KeyError:
        env = _KEY_ENV.get(registry.default_name, "API key")
        raise ProviderError(f"{env} is missing") from None
