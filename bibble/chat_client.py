"""Interactive terminal chat client."""

import argparse
import asyncio
import logging
import signal
import sys
import time
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from bibble.config.store import ConfigStore, FileConfigStore
from bibble.core.abort import AbortSignal
from bibble.core.agent import Agent, LoopState
from bibble.core.bridge import ToolBridge
from bibble.core.context import RuntimeContext
from bibble.core.errors import ConfigError
from bibble.core.model_registry import ModelRegistry
from bibble.logging_config import setup_logging
from bibble.mcp.client import MCPClient
from bibble.providers.registry import create_adapter
from bibble.security.policy import SecurityPolicyEngine
from bibble.types.models import ChatEvent, TextChunk
from bibble.utils.log_utils import redact_sensitive_data, sanitize_log_message

logger = logging.getLogger(__name__)

# Characters of a tool result echoed to the terminal
RESULT_PREVIEW_CHARS = 500

QUIT_COMMANDS = ("quit", "exit")


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Bibble terminal chat client")
    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to the configuration file (default: ~/.bibble/config.json)"
    )
    parser.add_argument(
        "--model", "-m",
        type=str,
        default=None,
        help="Model id to chat with (default: from configuration)"
    )
    parser.add_argument(
        "--provider", "-p",
        type=str,
        default=None,
        help="Provider to use (default: inferred from the model)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Directory for log files (default: console only)"
    )
    return parser.parse_args(argv)


def render_event(event: ChatEvent) -> None:
    """Print one chat event."""
    if isinstance(event, TextChunk):
        print(event.text, end="", flush=True)
        return

    preview = event.content
    if len(preview) > RESULT_PREVIEW_CHARS:
        preview = preview[:RESULT_PREVIEW_CHARS] + "..."
    print(f"\n[{event.tool_name}] {preview}\n", flush=True)


async def run_query(agent: Agent, query: str) -> LoopState:
    """Send one query, letting Ctrl-C cancel it."""
    abort_signal = AbortSignal()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, abort_signal.abort)
        handler_installed = True
    except (NotImplementedError, RuntimeError):
        handler_installed = False

    try:
        async for event in agent.chat(query, abort_signal=abort_signal):
            render_event(event)
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)

    if agent.state is LoopState.CANCELLED:
        print("\n[cancelled]")
    print()
    return agent.state


def switch_model(agent: Agent, model: str) -> bool:
    """Point the agent at another model, changing provider when the model needs it.

    Returns:
        False if the provider the model needs could not be set up; the
        agent is then left unchanged
    """
    provider = agent.model_registry.provider_for(model, agent.adapter.name)
    if provider != agent.adapter.name:
        try:
            adapter = create_adapter(provider)
        except ConfigError as e:
            logger.warning("Model switch failed", extra={
                "model": model,
                "provider": provider,
                "error": sanitize_log_message(str(e))
            })
            print(f"Cannot switch to {model}: {e}")
            return False
        agent.adapter = adapter
    agent.set_model(model)
    logger.info("Model switched", extra={"model": model, "provider": provider})
    return True


def handle_command(agent: Agent, command: str) -> bool:
    """Run a slash command. Returns False if the input was not a command."""
    name, _, argument = command.partition(" ")
    if name == "/reset":
        agent.reset_conversation()
        print("Conversation cleared.")
    elif name == "/model":
        if argument.strip():
            switch_model(agent, argument.strip())
        print(f"Model: {agent.model} ({agent.adapter.name})")
    elif name == "/tools":
        for tool in agent.tool_definitions:
            origin = tool.server_name or "built-in"
            print(f"- {tool.name} ({origin})")
    else:
        return False
    return True


async def chat_loop(agent: Agent) -> None:
    """Run an interactive chat session with the user."""
    start_time = time.time()
    logger.info("Starting chat session")
    print(f"\nBibble ready ({agent.model}). Type 'quit' to exit.")

    query_count = 0
    error_count = 0

    while True:
        try:
            query = (await asyncio.to_thread(input, "\nYou: ")).strip()
        except EOFError:
            break
        if not query:
            continue
        if query.lower() in QUIT_COMMANDS:
            logger.info("User requested to quit chat session")
            break
        if query.startswith("/") and handle_command(agent, query):
            continue

        query_count += 1
        query_start = time.time()
        try:
            logger.debug("Processing user query", extra=redact_sensitive_data({
                "query": query,
                "query_number": query_count
            }))
            await run_query(agent, query)
        except Exception as e:
            error_count += 1
            logger.error("Query processing error", extra={
                "query_number": query_count,
                "error": sanitize_log_message(str(e)),
                "duration_ms": int((time.time() - query_start) * 1000)
            }, exc_info=True)
            print(f"\nError processing query: {str(e)}")

    logger.info("Chat session ended", extra={
        "total_queries": query_count,
        "failed_queries": error_count,
        "duration_ms": int((time.time() - start_time) * 1000)
    })


def build_agent(
    store: ConfigStore,
    model: Optional[str] = None,
    provider: Optional[str] = None
) -> Tuple[Agent, MCPClient, RuntimeContext]:
    """Wire configuration, tools, security and a provider into an agent.

    Raises:
        ConfigError: If the configuration or the provider setup is invalid
    """
    config = store.load()
    model_registry = ModelRegistry(store.get_models())
    model = model or store.get_default_model()
    provider = provider or model_registry.provider_for(model, store.get_default_provider())

    security_config = store.get_security_config()
    context = RuntimeContext.create(
        security_config=security_config,
        tools_config=store.get_tools_config(),
        with_builtin_tools=True,
    )
    security = SecurityPolicyEngine(security_config, audit_log=context.audit_log)
    bridge = ToolBridge(context.tool_registry, security, context.remote_tools)

    agent = Agent(
        create_adapter(provider),
        bridge,
        model,
        model_registry=model_registry,
        user_guidelines=config.user_guidelines or None,
        max_turns=store.get_max_turns(),
    )
    mcp_client = MCPClient(bridge, store.get_mcp_servers())

    logger.info("Agent built", extra={
        "model": model,
        "provider": provider,
        "num_servers": len(mcp_client.available_servers)
    })
    return agent, mcp_client, context


async def run(args: argparse.Namespace) -> None:
    """Connect servers, start the chat loop and clean up afterwards."""
    start_time = time.time()
    store = FileConfigStore(args.config)
    agent, mcp_client, context = build_agent(store, args.model, args.provider)

    try:
        for server_name, error in await mcp_client.connect_all():
            if error:
                print(f"Failed to connect to {server_name}: {error}")
            else:
                print(f"Connected to {server_name}")

        await agent.initialize()
        await chat_loop(agent)
    finally:
        logger.info("Starting cleanup")
        try:
            await mcp_client.cleanup_all()
        except Exception as e:
            logger.error("Error during cleanup", extra={
                "error": sanitize_log_message(str(e))
            })
        context.teardown()
        logger.info("Session completed", extra={
            "duration_ms": int((time.time() - start_time) * 1000)
        })


def main(argv: Optional[List[str]] = None) -> int:
    """Console entry point."""
    args = parse_arguments(argv)
    load_dotenv()
    setup_logging(getattr(logging, args.log_level), args.log_dir)

    try:
        asyncio.run(run(args))
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
