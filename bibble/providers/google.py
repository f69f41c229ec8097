"""Google Gemini adapter.

Gemini calls the assistant role ``model``, takes the system prompt as a
separate instruction, and carries tool calls and results as
``function_call`` and ``function_response`` parts. Function calls arrive
whole rather than as argument fragments, and may come without ids.
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from google import genai
from google.genai import types

from bibble.core.errors import ConfigError
from bibble.core.provider_config import ProviderConfig
from bibble.providers.base import ChatCompletionParams, ProviderAdapter, generate_call_id
from bibble.providers.formats import to_gemini_declarations
from bibble.types.models import (
    Message,
    MessageRole,
    StreamChunk,
    TextChunk,
    ToolCallChunk,
    ToolCallRequest,
)

logger = logging.getLogger(__name__)


def to_gemini_contents(messages: List[Message]) -> tuple[Optional[str], List[types.Content]]:
    """Convert canonical messages to Gemini contents.

    Returns:
        Tuple of (system instruction or None, contents)
    """
    system_parts: List[str] = []
    contents: List[types.Content] = []

    for message in messages:
        if message.role is MessageRole.SYSTEM:
            if message.content:
                system_parts.append(message.content)

        elif message.role is MessageRole.TOOL:
            part = types.Part.from_function_response(
                name=message.tool_name or "",
                response={"result": message.content},
            )
            previous = contents[-1] if contents else None
            if (
                previous is not None
                and previous.role == "user"
                and previous.parts
                and all(p.function_response is not None for p in previous.parts)
            ):
                previous.parts.append(part)
            else:
                contents.append(types.Content(role="user", parts=[part]))

        elif message.role is MessageRole.ASSISTANT:
            parts: List[types.Part] = []
            if message.content:
                parts.append(types.Part(text=message.content))
            for call in message.tool_calls or []:
                parts.append(types.Part.from_function_call(name=call.name, args=call.args))
            if parts:
                contents.append(types.Content(role="model", parts=parts))

        else:
            contents.append(types.Content(role="user", parts=[types.Part(text=message.content)]))

    system = "\n\n".join(system_parts) if system_parts else None
    return system, contents


class GoogleAdapter(ProviderAdapter):
    """Adapter for the Gemini API through google-genai."""

    name = "google"
    display_name = "Google"

    def __init__(self, config: ProviderConfig, client: Optional[genai.Client] = None):
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
            self._client = genai.Client(api_key=config.api_key)
        except Exception as e:
            raise ConfigError(f"Failed to initialize Gemini client: {str(e)}", provider_name=self.name)

    def _build_request(self, params: ChatCompletionParams) -> Dict[str, Any]:
        generation = params.generation
        system, contents = to_gemini_contents(params.messages)

        config: Dict[str, Any] = {}
        if system:
            config["system_instruction"] = system
        if params.tools:
            config["tools"] = [types.Tool(function_declarations=to_gemini_declarations(params.tools))]
            config["automatic_function_calling"] = types.AutomaticFunctionCallingConfig(disable=True)
        if generation.temperature is not None:
            config["temperature"] = generation.temperature
        if generation.top_p is not None:
            config["top_p"] = generation.top_p
        if generation.top_k:
            config["top_k"] = generation.top_k
        if generation.max_tokens:
            config["max_output_tokens"] = generation.max_tokens
        if generation.stop_sequences:
            config["stop_sequences"] = generation.stop_sequences

        return {
            "model": params.model,
            "contents": contents,
            "config": types.GenerateContentConfig(**config),
        }

    @staticmethod
    def _parts(response: types.GenerateContentResponse) -> List[types.Part]:
        parts: List[types.Part] = []
        for candidate in response.candidates or []:
            if candidate.content and candidate.content.parts:
                parts.extend(candidate.content.parts)
        return parts

    @staticmethod
    def _to_request(call: types.FunctionCall) -> ToolCallRequest:
        return ToolCallRequest(
            id=call.id or generate_call_id(),
            name=call.name or "",
            args=dict(call.args or {}),
        )

    async def _stream(self, params: ChatCompletionParams) -> AsyncIterator[StreamChunk]:
        stream = await self._client.aio.models.generate_content_stream(**self._build_request(params))
        async for response in stream:
            for part in self._parts(response):
                if part.thought:
                    continue
                if part.text:
                    yield TextChunk(text=part.text)
                if part.function_call is not None:
                    yield ToolCallChunk(tool_call=self._to_request(part.function_call))

    async def _complete(self, params: ChatCompletionParams) -> List[StreamChunk]:
        response = await self._client.aio.models.generate_content(**self._build_request(params))

        chunks: List[StreamChunk] = []
        text_parts: List[str] = []
        for part in self._parts(response):
            if part.function_call is not None:
                chunks.append(ToolCallChunk(tool_call=self._to_request(part.function_call)))
            elif part.text and not part.thought:
                text_parts.append(part.text)

        if text_parts:
            chunks.append(TextChunk(text="".join(text_parts)))
        return chunks
