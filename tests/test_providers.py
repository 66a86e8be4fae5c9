"""Tests for the vendor-neutral provider layer and both vendor adapters."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from cms_agent.agent.provider import (
    ProviderMessage,
    ProviderRequest,
    call_with_retry,
    fold_messages,
    parse_tool_arguments,
)
from cms_agent.agent.provider_registry import (
    ProviderRegistry,
    build_provider_registry,
    create_provider,
)
from cms_agent.agent.providers.anthropic_provider import (
    AnthropicChatProvider,
    to_anthropic_messages,
)
from cms_agent.agent.providers.openai_provider import OpenAIChatProvider, to_openai_tools
from cms_agent.config.settings import (
    AIChatSettings,
    AnthropicSettings,
    OpenAISettings,
    Settings,
)
from cms_agent.infra.errors import ProviderError

TOOLS = [{
    "name": "read_page",
    "description": "Read a page",
    "input_schema": {"type": "object", "properties": {"page": {"type": "string"}}},
}]

HISTORY = [
    ProviderMessage(role="user", content="Change the home title"),
    ProviderMessage(role="assistant", content="Reading the page"),
    ProviderMessage(role="tool", content='{"ok": true}', tool_name="read_page"),
    ProviderMessage(role="tool", content='{"ok": true}', tool_name="list_pages"),
]


def _request(tools: list[dict] | None = None) -> ProviderRequest:
    return ProviderRequest(
        model="test-model",
        system_prompt="You are the site admin assistant.",
        tools=TOOLS if tools is None else tools,
        messages=list(HISTORY),
    )


def _openai_response(*, content=None, tool_calls=None, finish_reason="stop", choices=True):
    resp = MagicMock()
    resp.model = "gpt-test-2026"
    if not choices:
        resp.choices = []
        return resp
    choice = MagicMock()
    choice.message.content = content
    choice.message.tool_calls = tool_calls
    choice.finish_reason = finish_reason
    resp.choices = [choice]
    return resp


def _openai_tool_call(call_id: str, name: str, arguments: str) -> MagicMock:
    call = MagicMock()
    call.id = call_id
    call.function.name = name
    call.function.arguments = arguments
    return call


def _anthropic_block(block_type: str, **fields) -> MagicMock:
    block = MagicMock()
    block.type = block_type
    for key, value in fields.items():
        setattr(block, key, value)
    return block


def _anthropic_response(blocks: list, stop_reason: str = "end_turn") -> MagicMock:
    resp = MagicMock()
    resp.content = blocks
    resp.stop_reason = stop_reason
    resp.model = "claude-test-2026"
    return resp


class TestMessageFolding:
    def test_tool_results_become_user_turns(self) -> None:
        folded = fold_messages(HISTORY)
        assert folded[2] == {"role": "user", "content": 'Tool read_page result:\n{"ok": true}'}
        assert [m["role"] for m in folded] == ["user", "assistant", "user", "user"]

    def test_anthropic_merges_consecutive_roles(self) -> None:
        merged = to_anthropic_messages(HISTORY)
        assert [m["role"] for m in merged] == ["user", "assistant", "user"]
        assert merged[2]["content"] == (
            'Tool read_page result:\n{"ok": true}\n\nTool list_pages result:\n{"ok": true}'
        )

    def test_anthropic_history_starts_with_user(self) -> None:
        window = [
            ProviderMessage(role="assistant", content="earlier reply"),
            ProviderMessage(role="assistant", content="another reply"),
            ProviderMessage(role="user", content="hi"),
        ]
        merged = to_anthropic_messages(window)
        assert merged == [{"role": "user", "content": "hi"}]

    def test_openai_tool_format(self) -> None:
        assert to_openai_tools(TOOLS) == [{
            "type": "function",
            "function": {
                "name": "read_page",
                "description": "Read a page",
                "parameters": TOOLS[0]["input_schema"],
            },
        }]


class TestParseToolArguments:
    def test_json_object(self) -> None:
        assert parse_tool_arguments('{"page": "home"}') == ({"page": "home"}, None)

    def test_dict_passthrough(self) -> None:
        assert parse_tool_arguments({"page": "home"}) == ({"page": "home"}, None)

    def test_empty(self) -> None:
        assert parse_tool_arguments("") == ({}, None)
        assert parse_tool_arguments(None) == ({}, None)

    def test_malformed(self) -> None:
        args, error = parse_tool_arguments('{"page": ')
        assert args == {}
        assert error is not None and error.startswith("Malformed tool arguments")

    def test_non_object(self) -> None:
        assert parse_tool_arguments("[1, 2]") == ({}, "Tool arguments must be a JSON object")


class _Transient(Exception):
    pass


class _Fatal(Exception):
    pass


class TestCallWithRetry:
    @pytest.mark.asyncio
    async def test_retries_transient_errors(self) -> None:
        factory = AsyncMock(side_effect=[_Transient("a"), _Transient("b"), "ok"])
        with patch("cms_agent.agent.provider.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await call_with_retry(
                factory, retryable=(_Transient,), status_error=_Fatal, max_retries=3
            )
        assert result == "ok"
        assert factory.await_count == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_exhausted(self) -> None:
        factory = AsyncMock(side_effect=_Transient("down"))
        with patch("cms_agent.agent.provider.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(ProviderError, match="after 2 attempts"):
                await call_with_retry(
                    factory, retryable=(_Transient,), status_error=_Fatal, max_retries=1
                )
        assert factory.await_count == 2

    @pytest.mark.asyncio
    async def test_status_error_not_retried(self) -> None:
        factory = AsyncMock(side_effect=_Fatal("bad request"))
        with pytest.raises(ProviderError, match="bad request"):
            await call_with_retry(factory, retryable=(_Transient,), status_error=_Fatal)
        assert factory.await_count == 1


class TestOpenAIChatProvider:
    def _provider(self, create: AsyncMock) -> OpenAIChatProvider:
        client = MagicMock()
        client.chat.completions.create = create
        return OpenAIChatProvider(api_key="test-key", client=client, base_delay=0)

    @pytest.mark.asyncio
    async def test_tool_calls(self) -> None:
        create = AsyncMock(return_value=_openai_response(
            content="Let me look.",
            tool_calls=[_openai_tool_call("c1", "read_page", '{"page": "home"}')],
            finish_reason="tool_calls",
        ))
        result = await self._provider(create).run_turn(_request())

        assert result.assistant_text == "Let me look."
        assert result.finish_reason == "tool_use"
        assert result.model == "gpt-test-2026"
        assert len(result.tool_calls) == 1
        assert result.tool_calls[0].name == "read_page"
        assert result.tool_calls[0].args == {"page": "home"}

        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["messages"][0] == {
            "role": "system",
            "content": "You are the site admin assistant.",
        }
        assert kwargs["tool_choice"] == "auto"
        assert kwargs["tools"][0]["function"]["name"] == "read_page"

    @pytest.mark.asyncio
    async def test_malformed_arguments_kept_as_failed_call(self) -> None:
        create = AsyncMock(return_value=_openai_response(
            tool_calls=[_openai_tool_call("c1", "read_page", "{oops")],
        ))
        result = await self._provider(create).run_turn(_request())
        call = result.tool_calls[0]
        assert call.args == {}
        assert call.parse_error is not None

    @pytest.mark.asyncio
    async def test_text_only(self) -> None:
        create = AsyncMock(return_value=_openai_response(content="  Done.  "))
        result = await self._provider(create).run_turn(_request(tools=[]))
        assert result.assistant_text == "Done."
        assert result.tool_calls == []
        assert result.finish_reason == "stop"
        assert "tools" not in create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_length_finish(self) -> None:
        create = AsyncMock(return_value=_openai_response(content="Cut", finish_reason="length"))
        result = await self._provider(create).run_turn(_request())
        assert result.finish_reason == "length"

    @pytest.mark.asyncio
    async def test_empty_choices(self) -> None:
        create = AsyncMock(return_value=_openai_response(choices=False))
        with pytest.raises(ProviderError, match="Empty choices"):
            await self._provider(create).run_turn(_request())

    @pytest.mark.asyncio
    async def test_connection_error_retried(self) -> None:
        request = httpx.Request("POST", "https://api.openai.test/v1/chat/completions")
        create = AsyncMock(side_effect=[
            openai.APIConnectionError(request=request),
            _openai_response(content="Recovered"),
        ])
        with patch("cms_agent.agent.provider.asyncio.sleep", new=AsyncMock()):
            result = await self._provider(create).run_turn(_request())
        assert result.assistant_text == "Recovered"
        assert create.await_count == 2


class TestAnthropicChatProvider:
    def _provider(self, create: AsyncMock) -> AnthropicChatProvider:
        client = MagicMock()
        client.messages.create = create
        return AnthropicChatProvider(
            api_key="test-key", max_tokens=1800, client=client, base_delay=0
        )

    @pytest.mark.asyncio
    async def test_text_and_tool_use(self) -> None:
        create = AsyncMock(return_value=_anthropic_response(
            [
                _anthropic_block("text", text="Checking pages."),
                _anthropic_block("tool_use", id="tu1", name="list_pages", input={}),
                _anthropic_block("tool_use", id="tu2", name="read_page", input={"page": "home"}),
            ],
            stop_reason="tool_use",
        ))
        result = await self._provider(create).run_turn(_request())

        assert result.assistant_text == "Checking pages."
        assert [c.name for c in result.tool_calls] == ["list_pages", "read_page"]
        assert result.tool_calls[1].args == {"page": "home"}
        assert result.finish_reason == "tool_use"
        assert result.model == "claude-test-2026"

        kwargs = create.call_args.kwargs
        assert kwargs["system"] == "You are the site admin assistant."
        assert kwargs["max_tokens"] == 1800
        assert kwargs["tools"] == TOOLS
        assert kwargs["tool_choice"] == {"type": "auto"}
        assert [m["role"] for m in kwargs["messages"]] == ["user", "assistant", "user"]

    @pytest.mark.asyncio
    async def test_max_tokens_finish(self) -> None:
        create = AsyncMock(return_value=_anthropic_response(
            [_anthropic_block("text", text="Partial")], stop_reason="max_tokens"
        ))
        result = await self._provider(create).run_turn(_request())
        assert result.finish_reason == "length"

    @pytest.mark.asyncio
    async def test_empty_content(self) -> None:
        create = AsyncMock(return_value=_anthropic_response([]))
        with pytest.raises(ProviderError, match="Empty content"):
            await self._provider(create).run_turn(_request())


def _settings(*, provider: str, openai_key: str = "", anthropic_key: str = "") -> Settings:
    return Settings(
        ai_chat=AIChatSettings(provider=provider, model="test-model"),
        openai=OpenAISettings(api_key=openai_key),
        anthropic=AnthropicSettings(api_key=anthropic_key),
    )


class TestProviderRegistry:
    def test_register_and_get(self) -> None:
        registry = ProviderRegistry(default_provider="openai")
        provider = MagicMock(name="ChatProvider")
        registry.register("openai", provider, "gpt-test")
        entry = registry.get()
        assert entry.provider is provider
        assert entry.model == "gpt-test"

    def test_unregistered_raises(self) -> None:
        registry = ProviderRegistry(default_provider="anthropic")
        with pytest.raises(KeyError, match="not registered"):
            registry.get()

    def test_only_keyed_vendors_registered(self) -> None:
        registry = build_provider_registry(_settings(provider="openai", openai_key="sk-test"))
        assert registry.available_providers() == ["openai"]
        assert isinstance(create_provider(registry), OpenAIChatProvider)

    def test_both_vendors(self) -> None:
        registry = build_provider_registry(
            _settings(provider="anthropic", openai_key="sk-test", anthropic_key="sk-ant")
        )
        assert set(registry.available_providers()) == {"openai", "anthropic"}
        assert isinstance(create_provider(registry), AnthropicChatProvider)

    def test_missing_key_named(self) -> None:
        registry = build_provider_registry(_settings(provider="anthropic", openai_key="sk-test"))
        with pytest.raises(ProviderError, match="ANTHROPIC_API_KEY is missing"):
            create_provider(registry)
