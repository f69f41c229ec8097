"""Bibble: a terminal chatbot core for tool-using LLM conversations.

This package provides the conversation engine behind the bibble chat client.
It drives multi-turn, tool-using dialogues against several LLM providers and
routes tool calls to local built-in tools or to remote MCP servers behind a
security policy.

Key Components:
    - Agent: The bounded conversation loop
    - ToolBridge: Single entry point for executing any tool call
    - SecurityPolicyEngine: Allow/prompt/deny decisions, timeouts and auditing
    - Provider adapters: OpenAI (and compatible endpoints), Anthropic, Google
    - ToolRegistry: Built-in tool definitions and handlers

Example:
    ```python
    from bibble import Agent, RuntimeContext, ToolBridge, SecurityPolicyEngine
    from bibble.providers import create_adapter

    context = RuntimeContext.create()
    bridge = ToolBridge(context.tool_registry, SecurityPolicyEngine(audit_log=context.audit_log))
    agent = Agent(create_adapter("openai"), bridge, model="gpt-4o")
    await agent.initialize()

    async for event in agent.chat("list files in /tmp"):
        ...
    ```
"""

from bibble.core.agent import Agent, LoopState
from bibble.core.bridge import ToolBridge
from bibble.core.context import RuntimeContext
from bibble.core.registry import ToolRegistry
from bibble.security.policy import SecurityPolicyEngine
from bibble.types.models import (
    Message,
    MessageRole,
    TextChunk,
    ToolCallChunk,
    ToolCallRequest,
    ToolDefinition,
    ToolResult,
    ToolResultEvent,
)

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "LoopState",
    "ToolBridge",
    "RuntimeContext",
    "ToolRegistry",
    "SecurityPolicyEngine",
    "Message",
    "MessageRole",
    "TextChunk",
    "ToolCallChunk",
    "ToolCallRequest",
    "ToolDefinition",
    "ToolResult",
    "ToolResultEvent",
]
