"""Anthropic adapter.

Anthropic keeps the system prompt outside the message list, represents tool
calls as ``tool_use`` content blocks on assistant messages, and expects tool
results as ``tool_result`` blocks inside a user message. This adapter folds
consecutive tool messages into one such user message.
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from anthropic import AsyncAnthropic

from bibble.core.errors import ConfigError
from bibble.core.provider_config import ProviderConfig
from bibble.providers.base import ChatCompletionParams, ProviderAdapter, generate_call_id
from bibble.providers.formats import parse_tool_arguments, to_anthropic_tools
from bibble.types.models import (
    Message,
    MessageRole,
    StreamChunk,
    TextChunk,
    ToolCallChunk,
    ToolCallRequest,
)

logger = logging.getLogger(__name__)

# Default max tokens for responses
DEFAULT_MAX_TOKENS = 4096


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def to_anthropic_messages(messages: List[Message]) -> tuple[Optional[str], List[Dict[str, Any]]]:
    """Convert canonical messages to Anthropic's format.

    Returns:
        Tuple of (system prompt or None, message list)
    """
    system_parts: List[str] = []
    converted: List[Dict[str, Any]] = []

    for message in messages:
        if message.role is MessageRole.SYSTEM:
            if message.content:
                system_parts.append(message.content)

        elif message.role is MessageRole.TOOL:
            block = {
                "type": "tool_result",
                "tool_use_id": message.tool_call_id or "",
                "content": message.content,
            }
            previous = converted[-1] if converted else None
            if (
                previous is not None
                and previous["role"] == "user"
                and isinstance(previous["content"], list)
                and all(item.get("type") == "tool_result" for item in previous["content"])
            ):
                previous["content"].append(block)
            else:
                converted.append({"role": "user", "content": [block]})

        elif message.role is MessageRole.ASSISTANT:
            if message.tool_calls:
                content: List[Dict[str, Any]] = []
                if message.content:
                    content.append({"type": "text", "text": message.content})
                for call in message.tool_calls:
                    content.append({
                        "type": "tool_use",
                        "id": call.id,
                        "name": call.name,
                        "input": call.args,
                    })
                converted.append({"role": "assistant", "content": content})
            elif message.content:
                converted.append({"role": "assistant", "content": message.content})

        else:
            converted.append({"role": "user", "content": message.content})

    system = "\n\n".join(system_parts) if system_parts else None
    return system, converted


class AnthropicAdapter(ProviderAdapter):
    """Adapter for the Anthropic messages API."""

    name = "anthropic"
    display_name = "Anthropic"

    def __init__(self, config: ProviderConfig, client: Optional[AsyncAnthropic] = None):
        """Initialize the adapter.

        Args:
            config: Provider configuration
            client: Preconfigured client, mainly for tests

        Raises:
            ConfigError: If the client cannot be created
        """
        self.config = config

        if client is not None:
            self._client = client
            return

        try:
            kwargs: Dict[str, Any] = {"api_key": config.api_key}
            if config.base_url:
                kwargs["base_url"] = config.base_url
            self._client = AsyncAnthropic(**kwargs)
        except Exception as e:
            raise ConfigError(f"Failed to initialize Anthropic client: {str(e)}", provider_name=self.name)

    def _build_request(self, params: ChatCompletionParams) -> Dict[str, Any]:
        generation = params.generation
        system, messages = to_anthropic_messages(params.messages)

        request: Dict[str, Any] = {
            "model": params.model,
            "messages": messages,
            "max_tokens": generation.max_tokens or DEFAULT_MAX_TOKENS,
        }
        if system:
            request["system"] = system
        if params.tools:
            request["tools"] = to_anthropic_tools(params.tools)
            request["tool_choice"] = {"type": "auto", "disable_parallel_tool_use": True}
        if generation.temperature is not None:
            request["temperature"] = _clamp(generation.temperature)
        if generation.top_p is not None:
            request["top_p"] = _clamp(generation.top_p)
        if isinstance(generation.top_k, int) and generation.top_k > 0:
            request["top_k"] = generation.top_k
        if generation.stop_sequences:
            request["stop_sequences"] = generation.stop_sequences
        return request

    async def _stream(self, params: ChatCompletionParams) -> AsyncIterator[StreamChunk]:
        stream = await self._client.messages.create(stream=True, **self._build_request(params))
        pending: Dict[int, Dict[str, str]] = {}

        async for event in stream:
            if event.type == "content_block_start":
                block = event.content_block
                if block.type == "tool_use":
                    pending[event.index] = {"id": block.id, "name": block.name, "json": ""}

            elif event.type == "content_block_delta":
                delta = event.delta
                if delta.type == "text_delta":
                    if delta.text:
                        yield TextChunk(text=delta.text)
                elif delta.type == "input_json_delta":
                    if event.index in pending:
                        pending[event.index]["json"] += delta.partial_json

            elif event.type == "content_block_stop":
                call = pending.pop(event.index, None)
                if call is not None:
                    yield ToolCallChunk(tool_call=self._to_request(call))

            elif event.type == "message_stop":
                break

        for index in sorted(pending):
            yield ToolCallChunk(tool_call=self._to_request(pending[index]))

    @staticmethod
    def _to_request(call: Dict[str, str]) -> ToolCallRequest:
        return ToolCallRequest(
            id=call["id"] or generate_call_id("toolu"),
            name=call["name"],
            args=parse_tool_arguments(call["json"], call["name"]),
        )

    async def _complete(self, params: ChatCompletionParams) -> List[StreamChunk]:
        response = await self._client.messages.create(**self._build_request(params))

        tool_chunks: List[StreamChunk] = []
        text_parts: List[str] = []
        for block in response.content or []:
            if block.type == "tool_use":
                args = block.input if isinstance(block.input, dict) else {}
                tool_chunks.append(ToolCallChunk(tool_call=ToolCallRequest(
                    id=block.id or generate_call_id("toolu"),
                    name=block.name,
                    args=args,
                )))
            elif block.type == "text" and block.text:
                text_parts.append(block.text)

        if text_parts:
            tool_chunks.append(TextChunk(text="".join(text_parts)))
        return tool_chunks
