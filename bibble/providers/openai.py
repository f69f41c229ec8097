"""OpenAI adapter.

Also serves OpenRouter and any other OpenAI-compatible endpoint through a
custom base URL.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

from bibble.core.errors import ConfigError
from bibble.core.provider_config import ProviderConfig
from bibble.providers.base import (
    ChatCompletionParams,
    ProviderAdapter,
    ToolCallAccumulator,
    generate_call_id,
)
from bibble.providers.formats import parse_tool_arguments, to_openai_tools
from bibble.types.models import (
    Message,
    MessageRole,
    StreamChunk,
    TextChunk,
    ToolCallChunk,
    ToolCallRequest,
)

logger = logging.getLogger(__name__)

DISPLAY_NAMES = {
    "openai": "OpenAI",
    "openrouter": "OpenRouter",
    "openai_compatible": "the OpenAI-compatible endpoint",
}


def to_openai_messages(messages: List[Message]) -> List[Dict[str, Any]]:
    """Convert canonical messages to chat completion messages."""
    converted: List[Dict[str, Any]] = []
    for message in messages:
        if message.role is MessageRole.TOOL:
            converted.append({
                "role": "tool",
                "tool_call_id": message.tool_call_id or "",
                "content": message.content,
            })
        elif message.role is MessageRole.ASSISTANT and message.tool_calls:
            converted.append({
                "role": "assistant",
                "content": message.content or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": json.dumps(call.args),
                        },
                    }
                    for call in message.tool_calls
                ],
            })
        else:
            converted.append({"role": message.role.value, "content": message.content})
    return converted


class OpenAIAdapter(ProviderAdapter):
    """Adapter for the chat completions API."""

    def __init__(self, config: ProviderConfig, client: Optional[AsyncOpenAI] = None):
        """Initialize the adapter.

        Args:
            config: Provider configuration
            client: Preconfigured client, mainly for tests

        Raises:
            ConfigError: If the client cannot be created
        """
        self.config = config
        self.name = config.provider
        self.display_name = DISPLAY_NAMES.get(config.provider, "OpenAI")

        if client is not None:
            self._client = client
            return

        try:
            self._client = AsyncOpenAI(
                api_key=config.api_key or "not-needed",
                base_url=config.base_url,
                **config.extra_config
            )
        except Exception as e:
            raise ConfigError(f"Failed to initialize OpenAI client: {str(e)}", provider_name=self.name)

    def _build_request(self, params: ChatCompletionParams) -> Dict[str, Any]:
        generation = params.generation
        request: Dict[str, Any] = {
            "model": params.model,
            "messages": to_openai_messages(params.messages),
        }
        if params.tools:
            request["tools"] = to_openai_tools(params.tools)
            request["tool_choice"] = "auto"

        if generation.is_reasoning_model:
            request["reasoning_effort"] = generation.reasoning_effort or "medium"
            if generation.max_completion_tokens:
                request["max_completion_tokens"] = generation.max_completion_tokens
        else:
            if generation.temperature is not None:
                request["temperature"] = generation.temperature
            if generation.top_p is not None:
                request["top_p"] = generation.top_p
            if generation.max_tokens:
                request["max_tokens"] = generation.max_tokens

        if generation.stop_sequences:
            request["stop"] = generation.stop_sequences
        return request

    async def _stream(self, params: ChatCompletionParams) -> AsyncIterator[StreamChunk]:
        request = self._build_request(params)
        stream = await self._client.chat.completions.create(stream=True, **request)
        calls = ToolCallAccumulator()

        async for chunk in stream:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta

            if delta is not None:
                if delta.content:
                    yield TextChunk(text=delta.content)
                for fragment in delta.tool_calls or []:
                    function = fragment.function
                    calls.add(
                        fragment.index,
                        call_id=fragment.id,
                        name=function.name if function else None,
                        arguments=function.arguments if function else None,
                    )

            if choice.finish_reason and calls:
                for call in calls.drain():
                    yield ToolCallChunk(tool_call=call)

        for call in calls.drain():
            yield ToolCallChunk(tool_call=call)

    async def _complete(self, params: ChatCompletionParams) -> List[StreamChunk]:
        response = await self._client.chat.completions.create(**self._build_request(params))
        if not response.choices:
            return []

        message = response.choices[0].message
        chunks: List[StreamChunk] = []
        for call in message.tool_calls or []:
            chunks.append(ToolCallChunk(tool_call=ToolCallRequest(
                id=call.id or generate_call_id(),
                name=call.function.name,
                args=parse_tool_arguments(call.function.arguments, call.function.name),
            )))
        if message.content:
            chunks.append(TextChunk(text=message.content))
        return chunks
