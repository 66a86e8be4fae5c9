from __future__ import annotations

import structlog
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    InternalServerError,
    RateLimitError,
)

from cms_agent.agent.provider import (
    ChatProvider,
    ChatTurnResult,
    ProviderRequest,
    ToolCall,
    call_with_retry,
    fold_messages,
    parse_tool_arguments,
)
from cms_agent.infra.errors import ProviderError

logger = structlog.get_logger()

_RETRYABLE = (APIConnectionError, APITimeoutError, RateLimitError, InternalServerError)


def to_openai_tools(tools: list[dict]) -> list[dict]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool["description"],
                "parameters": tool["input_schema"],
            },
        }
        for tool in tools
    ]


class OpenAIChatProvider(ChatProvider):
    """Chat completions with function tools. Also serves OpenAI-compatible endpoints."""

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        *,
        client: AsyncOpenAI | None = None,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ) -> None:
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        self._max_retries = max_retries
        self._base_delay = base_delay

    @property
    def name(self) -> str:
        return "openai"

    async def run_turn(self, request: ProviderRequest) -> ChatTurnResult:
        messages = [
            {"role": "system", "content": request.system_prompt},
            *fold_messages(request.messages),
        ]
        tools = to_openai_tools(request.tools)
        logger.debug(
            "provider_request",
            provider=self.name,
            model=request.model,
            message_count=len(messages),
            tool_count=len(tools),
        )
        response = await call_with_retry(
            lambda: self._client.chat.completions.create(
                model=request.model,
                messages=messages,
                **({"tools": tools, "tool_choice": "auto"} if tools else {}),
            ),
            retryable=_RETRYABLE,
            status_error=APIStatusError,
            max_retries=self._max_retries,
            base_delay=self._base_delay,
            context="openai_run_turn",
        )
        if not response.choices:
            raise ProviderError("Empty choices from provider (openai)")

        choice = response.choices[0]
        message = choice.message
        tool_calls = []
        for call in message.tool_calls or []:
            args, parse_error = parse_tool_arguments(call.function.arguments)
            if parse_error:
                logger.warning("tool_call_args_malformed", tool_name=call.function.name)
            tool_calls.append(
                ToolCall(id=call.id, name=call.function.name, args=args, parse_error=parse_error)
            )

        if choice.finish_reason == "length":
            finish_reason = "length"
        elif tool_calls:
            finish_reason = "tool_use"
        else:
            finish_reason = "stop"

        return ChatTurnResult(
            assistant_text=(message.content or "").strip(),
            tool_calls=tool_calls,
            finish_reason=finish_reason,
            model=getattr(response, "model", None) or request.model,
        )
