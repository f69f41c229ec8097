"""Provider adapter interface.

An adapter translates the canonical message and tool model into one
provider's wire format and turns the provider's streamed reply back into a
uniform sequence of text and tool-call chunks.

Every adapter shares the same failure handling, implemented here: if the
stream breaks, one non-streaming request is made and its chunks are replayed
without repeating what was already streamed. If that fails too, a single
placeholder text chunk is produced so the turn always ends cleanly.
"""

import json
import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Tuple

from bibble.core.errors import ProviderTransportError
from bibble.core.model_registry import GenerationParams
from bibble.providers.formats import parse_tool_arguments
from bibble.types.models import (
    Message,
    StreamChunk,
    TextChunk,
    ToolCallChunk,
    ToolCallRequest,
    ToolDefinition,
)
from bibble.utils.log_utils import sanitize_log_message

logger = logging.getLogger(__name__)


@dataclass
class ChatCompletionParams:
    """One chat completion request.

    Attributes:
        model: Provider model id
        messages: Full canonical history
        tools: Tools offered to the model
        generation: Sampling and length controls
    """

    model: str
    messages: List[Message]
    tools: List[ToolDefinition] = field(default_factory=list)
    generation: GenerationParams = field(default_factory=GenerationParams)


def generate_call_id(prefix: str = "call") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:24]}"


class ToolCallAccumulator:
    """Assembles streamed tool-call fragments keyed by position.

    Ids and names usually arrive in the first fragment and the arguments
    over many; nothing is emitted until ``drain`` is called.
    """

    def __init__(self) -> None:
        self._calls: Dict[int, Dict[str, str]] = {}

    def add(
        self,
        index: int,
        call_id: Optional[str] = None,
        name: Optional[str] = None,
        arguments: Optional[str] = None
    ) -> None:
        call = self._calls.setdefault(index, {"id": "", "name": "", "arguments": ""})
        if call_id:
            call["id"] = call_id
        # Some compatible servers repeat the full name on every fragment
        if name and call["name"] != name:
            call["name"] += name
        if arguments:
            call["arguments"] += arguments

    def __bool__(self) -> bool:
        return bool(self._calls)

    def drain(self) -> List[ToolCallRequest]:
        """Return completed calls in order and forget them."""
        calls = []
        for index in sorted(self._calls):
            call = self._calls[index]
            if not call["name"]:
                logger.warning("Dropping tool call without a name", extra={"index": index})
                continue
            calls.append(ToolCallRequest(
                id=call["id"] or generate_call_id(),
                name=call["name"],
                args=parse_tool_arguments(call["arguments"], call["name"]),
            ))
        self._calls.clear()
        return calls


class ProviderAdapter(ABC):
    """Base class for provider adapters.

    Subclasses implement ``_stream`` (the streaming request) and
    ``_complete`` (the same request without streaming, returning tool calls
    first and then text).
    """

    name: str = "provider"
    display_name: str = "the provider"

    @property
    def failure_text(self) -> str:
        return f"Failed to get response from {self.display_name}."

    @property
    def empty_text(self) -> str:
        return f"No response from {self.display_name}."

    @abstractmethod
    def _stream(self, params: ChatCompletionParams) -> AsyncIterator[StreamChunk]:
        """Stream one turn."""
        pass

    @abstractmethod
    async def _complete(self, params: ChatCompletionParams) -> List[StreamChunk]:
        """Run one turn without streaming."""
        pass

    async def chat_completion(self, params: ChatCompletionParams) -> AsyncIterator[StreamChunk]:
        """Stream one turn as text and tool-call chunks.

        Args:
            params: The request

        Yields:
            TextChunk and ToolCallChunk objects in provider order
        """
        start_time = time.time()
        streamed_text: List[str] = []
        emitted: List[ToolCallRequest] = []

        try:
            async for chunk in self._stream(params):
                if isinstance(chunk, TextChunk):
                    streamed_text.append(chunk.text)
                else:
                    emitted.append(chunk.tool_call)
                yield chunk
            logger.debug("Stream completed", extra={
                "provider": self.name,
                "model": params.model,
                "num_tool_calls": len(emitted),
                "duration_ms": int((time.time() - start_time) * 1000)
            })
            return
        except Exception as e:
            error = ProviderTransportError(sanitize_log_message(str(e)), provider_name=self.name)
            logger.warning("Streaming failed, retrying without streaming", extra={
                "provider": self.name,
                "model": params.model,
                "error": str(error)
            })

        try:
            chunks = await self._complete(params)
        except Exception as e:
            error = ProviderTransportError(sanitize_log_message(str(e)), provider_name=self.name)
            logger.error("Non-streaming fallback failed", extra={
                "provider": self.name,
                "model": params.model,
                "error": str(error),
                "duration_ms": int((time.time() - start_time) * 1000)
            }, exc_info=True)
            yield TextChunk(text=self.failure_text)
            return

        for chunk in self._replay(chunks, "".join(streamed_text), emitted):
            yield chunk

    def _replay(
        self,
        chunks: List[StreamChunk],
        streamed: str,
        emitted: List[ToolCallRequest]
    ) -> List[StreamChunk]:
        """Drop what the broken stream already delivered from a full reply.

        The second request may give the same tool call a fresh id, so a call
        also counts as delivered when its name and arguments match one that
        was streamed. Each streamed call cancels at most one replayed call.
        """
        emitted_ids = {tool_call.id for tool_call in emitted}
        pending = Counter(_call_key(tool_call) for tool_call in emitted)
        tool_chunks: List[StreamChunk] = []
        for chunk in chunks:
            if not isinstance(chunk, ToolCallChunk):
                continue
            key = _call_key(chunk.tool_call)
            if chunk.tool_call.id in emitted_ids:
                pending[key] -= 1
                continue
            if pending[key] > 0:
                pending[key] -= 1
                continue
            tool_chunks.append(chunk)
        full_text = "".join(chunk.text for chunk in chunks if isinstance(chunk, TextChunk))

        if streamed and full_text.startswith(streamed):
            remaining = full_text[len(streamed):]
        elif streamed and streamed.startswith(full_text):
            remaining = ""
        else:
            remaining = full_text

        result: List[StreamChunk] = list(tool_chunks)
        if remaining:
            result.append(TextChunk(text=remaining))
        if not result and not streamed and not emitted:
            result.append(TextChunk(text=self.empty_text))
        return result


def _call_key(tool_call: ToolCallRequest) -> Tuple[str, str]:
    return tool_call.name, json.dumps(tool_call.args, sort_keys=True, default=str)
