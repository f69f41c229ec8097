"""Agent conversation loop.

The agent turns a provider's streamed output into a bounded, multi-turn,
tool-using dialogue:

    user input -> provider turn (streamed) -> tool calls, in order -> next turn

Text is forwarded to the caller as soon as it arrives. Tool calls collected
during a turn run one after another through the tool bridge once the stream
ends, and each result is recorded before the next call starts. The loop
stops when the model answers without tool calls, when it calls
``task_complete`` or ``ask_question``, when the turn bound is reached, or when
the abort signal fires.

Example:
    ```python
    agent = Agent(adapter, bridge, model="gpt-4o")
    await agent.initialize()
    async for event in agent.chat("list files in /tmp"):
        if isinstance(event, TextChunk):
            print(event.text, end="")
    ```
"""

import asyncio
import logging
import time
from enum import Enum
from typing import AsyncIterator, List, Optional, Tuple, TypeVar

from bibble.core.abort import AbortSignal
from bibble.core.bridge import ToolBridge
from bibble.core.conversation import ConversationState
from bibble.core.errors import AbortError, SecurityError
from bibble.core.handles import CONTROL_FLOW_TOOLS
from bibble.core.model_registry import ModelRegistry
from bibble.core.prompts import DEFAULT_SYSTEM_PROMPT, build_system_prompt
from bibble.providers.base import ChatCompletionParams, ProviderAdapter
from bibble.types.models import (
    ChatEvent,
    Message,
    MessageRole,
    TextChunk,
    ToolCallRequest,
    ToolDefinition,
    ToolResultEvent,
)
from bibble.utils.log_utils import redact_sensitive_data, sanitize_log_message

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Maximum number of provider turns per chat call
MAX_NUM_TURNS = 25


class LoopState(str, Enum):
    """Where the agent is in a chat call."""

    AWAITING_USER_INPUT = "awaiting_user_input"
    TURN_IN_FLIGHT = "turn_in_flight"
    TOOL_EXECUTING = "tool_executing"
    COMPLETED = "completed"
    MAX_TURNS_EXCEEDED = "max_turns_exceeded"
    CANCELLED = "cancelled"


async def iterate_with_abort(
    stream: AsyncIterator[T],
    signal: Optional[AbortSignal]
) -> AsyncIterator[T]:
    """Iterate a stream, stopping as soon as the abort signal fires.

    Each pending item is raced against the signal. On abort the pending read
    is cancelled, the stream is closed and AbortError is raised.

    Raises:
        AbortError: If the signal fires before the stream ends
    """
    iterator = stream.__aiter__()

    if signal is None:
        async for item in iterator:
            yield item
        return

    abort_task = asyncio.ensure_future(signal.wait())
    next_task: Optional[asyncio.Future] = None
    try:
        while True:
            signal.raise_if_aborted()
            next_task = asyncio.ensure_future(iterator.__anext__())
            done, _ = await asyncio.wait(
                {next_task, abort_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if next_task not in done:
                raise AbortError()
            try:
                item = next_task.result()
            except StopAsyncIteration:
                return
            next_task = None
            yield item
    finally:
        abort_task.cancel()
        if next_task is not None and not next_task.done():
            next_task.cancel()
            await asyncio.gather(next_task, return_exceptions=True)
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()


class Agent:
    """Drives a conversation with one provider and a set of tools.

    Attributes:
        adapter: Provider adapter used for every turn
        bridge: Tool bridge used for every tool call
        model: Default model id
        model_registry: Source of generation parameters
        max_turns: Upper bound on provider turns per chat call
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        bridge: ToolBridge,
        model: str,
        model_registry: Optional[ModelRegistry] = None,
        user_guidelines: Optional[str] = None,
        max_turns: int = MAX_NUM_TURNS
    ):
        """Initialize the agent.

        Args:
            adapter: Provider adapter
            bridge: Tool bridge
            model: Model id for chat calls that do not name one
            model_registry: Model configurations; empty if omitted
            user_guidelines: Extra instructions added as a second system message
            max_turns: Turn bound per chat call

        Raises:
            ValueError: If max_turns is less than one
        """
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")

        self.adapter = adapter
        self.bridge = bridge
        self.model = model
        self.model_registry = model_registry or ModelRegistry()
        self.max_turns = max_turns
        self.conversation = ConversationState(DEFAULT_SYSTEM_PROMPT, user_guidelines)
        self._state = LoopState.AWAITING_USER_INPUT
        self.turns_used = 0

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def tool_definitions(self) -> List[ToolDefinition]:
        return self.bridge.list_tool_definitions()

    async def initialize(self) -> None:
        """Put the current tool catalogue into the system prompt.

        Replaces the first system message; safe to call again after servers
        connect or disconnect.
        """
        tools = self.bridge.list_builtin_definitions() + self.bridge.list_remote_definitions()
        self.conversation.replace_system_prompt(build_system_prompt(tools))
        logger.info("Agent initialized", extra={
            "model": self.model,
            "num_tools": len(tools)
        })

    def set_model(self, model: str) -> None:
        self.model = model

    def get_conversation(self) -> List[Message]:
        """Copy of the full message history."""
        return [message.model_copy(deep=True) for message in self.conversation.messages]

    def reset_conversation(self) -> None:
        """Start a new conversation, keeping the current system prompt."""
        self.conversation.reset(self.conversation.system_prompt)
        self._state = LoopState.AWAITING_USER_INPUT

    def load_conversation(self, messages: List[Message]) -> None:
        """Replace the history with stored messages.

        User messages holding folded ``tool_result`` blocks are turned back
        into tool messages.
        """
        self.conversation.load(messages)
        self._state = LoopState.AWAITING_USER_INPUT

    async def chat(
        self,
        text: str,
        abort_signal: Optional[AbortSignal] = None,
        model: Optional[str] = None
    ) -> AsyncIterator[ChatEvent]:
        """Send a user message and run turns until the loop stops.

        Args:
            text: The user's message
            abort_signal: Optional signal that cancels the call
            model: Model id for this call only

        Yields:
            TextChunk for streamed text and inline notices, ToolResultEvent
            after each recorded tool result

        Raises:
            Exception: Unexpected provider failures propagate
        """
        model = model or self.model
        start_time = time.time()
        self.conversation.append(Message.user(text))
        self.turns_used = 0

        logger.info("Chat started", extra=redact_sensitive_data({
            "model": model,
            "query": text,
            "max_turns": self.max_turns
        }))

        try:
            while True:
                if self.turns_used >= self.max_turns:
                    self._state = LoopState.MAX_TURNS_EXCEEDED
                    logger.warning("Maximum number of turns reached", extra={
                        "max_turns": self.max_turns
                    })
                    yield TextChunk(
                        text=f"\n\nStopped after reaching the maximum of {self.max_turns} turns."
                    )
                    break

                self.turns_used += 1
                self._state = LoopState.TURN_IN_FLIGHT
                async for event in self._run_turn(model, abort_signal):
                    yield event

                if self._is_finished():
                    self._state = LoopState.COMPLETED
                    break
        except AbortError:
            self._state = LoopState.CANCELLED
            logger.info("Chat cancelled", extra={"turns": self.turns_used})
        except asyncio.CancelledError:
            self._state = LoopState.CANCELLED
            raise

        logger.info("Chat finished", extra={
            "state": self._state.value,
            "turns": self.turns_used,
            "duration_ms": int((time.time() - start_time) * 1000)
        })

    def _is_finished(self) -> bool:
        last = self.conversation.last
        if last.role is MessageRole.TOOL and last.tool_name in CONTROL_FLOW_TOOLS:
            return True
        return last.role is MessageRole.ASSISTANT and not last.tool_calls

    async def _run_turn(
        self,
        model: str,
        abort_signal: Optional[AbortSignal]
    ) -> AsyncIterator[ChatEvent]:
        turn_start = time.time()
        params = ChatCompletionParams(
            model=model,
            messages=self.conversation.messages,
            tools=self.bridge.list_tool_definitions(),
            generation=self.model_registry.resolve(model),
        )

        text_parts: List[str] = []
        tool_calls: List[ToolCallRequest] = []
        async for chunk in iterate_with_abort(self.adapter.chat_completion(params), abort_signal):
            if isinstance(chunk, TextChunk):
                text_parts.append(chunk.text)
                yield chunk
            else:
                tool_calls.append(chunk.tool_call)

        response_text = "".join(text_parts)
        logger.debug("Turn streamed", extra={
            "turn": self.turns_used,
            "num_tool_calls": len(tool_calls),
            "duration_ms": int((time.time() - turn_start) * 1000)
        })

        if not tool_calls:
            self.conversation.append(Message.assistant(response_text))
            return

        self.conversation.append(Message.assistant(response_text, tool_calls))
        self._state = LoopState.TOOL_EXECUTING

        completed = 0
        for call in tool_calls:
            if abort_signal is not None and abort_signal.aborted:
                self._drop_unstarted_calls(len(tool_calls), completed)
                raise AbortError()

            content, notice = await self._execute_tool_call(call)
            self.conversation.append(Message.tool(content, call.name, call.id))
            completed += 1

            if notice:
                yield TextChunk(text=notice)
            yield ToolResultEvent(
                tool_call_id=call.id,
                tool_name=call.name,
                args=call.args,
                content=content,
            )

        if abort_signal is not None:
            abort_signal.raise_if_aborted()

    def _drop_unstarted_calls(self, total: int, completed: int) -> None:
        """Remove calls that never ran from the turn's assistant message."""
        index = len(self.conversation) - 1 - completed
        messages = self.conversation.messages
        assistant = messages[index]
        kept = (assistant.tool_calls or [])[:completed]

        if kept or assistant.content:
            trimmed = assistant.model_copy(update={"tool_calls": kept or None})
            tool_messages = messages[index + 1:]
            for _ in range(completed + 1):
                self.conversation.pop()
            self.conversation.append(trimmed)
            for message in tool_messages:
                self.conversation.append(message)
        else:
            self.conversation.pop()

        logger.info("Skipped tool calls after cancellation", extra={
            "completed": completed,
            "skipped": total - completed
        })

    async def _execute_tool_call(self, call: ToolCallRequest) -> Tuple[str, Optional[str]]:
        """Run one call through the bridge.

        Returns:
            Tuple of (content to record, inline notice for the caller or None)
        """
        start_time = time.time()
        logger.debug("Executing tool call", extra=redact_sensitive_data({
            "tool_name": call.name,
            "tool_call_id": call.id,
            "tool_args": call.args
        }))

        try:
            outcome = await self.bridge.call_tool(call.name, call.args)
        except SecurityError as e:
            logger.warning("Tool call stopped by security layer", extra={
                "tool_name": call.name,
                "server_name": e.server_name,
                "reason": e.reason
            })
            return str(e), f"\n{e}\n"
        except Exception as e:
            logger.error("Tool call failed", extra={
                "tool_name": call.name,
                "error": sanitize_log_message(str(e)),
                "duration_ms": int((time.time() - start_time) * 1000)
            }, exc_info=True)
            message = f"Error handling tool call {call.name}: {e}"
            return message, f"\n{message}\n"

        logger.debug("Tool call finished", extra={
            "tool_name": call.name,
            "duration_ms": int((time.time() - start_time) * 1000)
        })
        return outcome.content, None
