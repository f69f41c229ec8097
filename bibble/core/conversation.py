"""Conversation state owned by the agent."""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from bibble.core.prompts import USER_GUIDELINES_PREFIX
from bibble.types.models import Message, MessageRole

logger = logging.getLogger(__name__)


class ConversationState:
    """Ordered message history.

    The first message is always a system message. It can be replaced but
    never removed, and messages are never reordered.
    """

    def __init__(self, system_prompt: str, user_guidelines: Optional[str] = None):
        self._messages: List[Message] = []
        self._user_guidelines = user_guidelines
        self.reset(system_prompt)

    def reset(self, system_prompt: str) -> None:
        """Start over with only the system prompt (and guidelines, if any)."""
        self._messages = [Message.system(system_prompt)]
        if self._user_guidelines:
            self._messages.append(Message.system(f"{USER_GUIDELINES_PREFIX}{self._user_guidelines}"))

    def replace_system_prompt(self, system_prompt: str) -> None:
        self._messages[0] = Message.system(system_prompt)

    @property
    def system_prompt(self) -> str:
        return self._messages[0].content

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def pop(self) -> Message:
        """Remove and return the last message. The system prompt stays."""
        if len(self._messages) <= 1:
            raise IndexError("Cannot remove the system prompt")
        return self._messages.pop()

    def replace_last(self, message: Message) -> None:
        if len(self._messages) <= 1:
            raise IndexError("Cannot replace the system prompt")
        self._messages[-1] = message

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    @property
    def last(self) -> Message:
        return self._messages[-1]

    def __len__(self) -> int:
        return len(self._messages)

    def load(self, messages: Iterable[Message]) -> None:
        """Replace the history with stored messages.

        The current system prompt is kept when the stored history does not
        start with one.
        """
        loaded = canonicalize_messages(list(messages))
        if not loaded or loaded[0].role is not MessageRole.SYSTEM:
            loaded.insert(0, self._messages[0])
        self._messages = loaded


def _parse_tool_result_blocks(content: str) -> Optional[List[Dict[str, Any]]]:
    text = content.strip()
    if not text.startswith("["):
        return None
    try:
        blocks = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(blocks, list) or not blocks:
        return None
    if not all(isinstance(block, dict) and block.get("type") == "tool_result" for block in blocks):
        return None
    return blocks


def _block_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n\n".join(
            item.get("text", "") if isinstance(item, dict) else str(item)
            for item in content
        )
    if content is None:
        return ""
    return json.dumps(content, default=str)


def canonicalize_messages(messages: List[Message]) -> List[Message]:
    """Turn tool results folded into user messages back into tool messages.

    Some stored histories carry Anthropic-style user messages whose content
    is a JSON list of ``tool_result`` blocks. Each block becomes a tool
    message; the tool name is recovered from the matching assistant call.
    """
    call_names: Dict[str, str] = {}
    result: List[Message] = []

    for message in messages:
        if message.role is MessageRole.ASSISTANT and message.tool_calls:
            for call in message.tool_calls:
                call_names[call.id] = call.name

        blocks = (
            _parse_tool_result_blocks(message.content)
            if message.role is MessageRole.USER else None
        )
        if blocks is None:
            result.append(message)
            continue

        for block in blocks:
            call_id = str(block.get("tool_use_id", ""))
            result.append(Message.tool(
                content=_block_text(block.get("content")),
                tool_name=call_names.get(call_id, ""),
                tool_call_id=call_id,
            ))
        logger.debug("Canonicalized folded tool results", extra={"num_results": len(blocks)})

    return result
