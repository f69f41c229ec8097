"""Tests for the Agent conversation loop."""

import asyncio
from typing import Any, Dict, List

import pytest

from bibble.core.abort import AbortSignal
from bibble.core.agent import MAX_NUM_TURNS, Agent, LoopState, iterate_with_abort
from bibble.core.errors import AbortError
from bibble.core.prompts import DEFAULT_SYSTEM_PROMPT, USER_GUIDELINES_PREFIX
from bibble.types.models import (
    Message,
    MessageRole,
    TextChunk,
    ToolCallRequest,
    ToolResult,
    ToolResultEvent,
)

from conftest import FakeTransport, ScriptedAdapter, call, text


@pytest.fixture
def make_agent(make_bridge):
    """Factory for agents driven by a scripted adapter.

    Example:
        def test_something(make_agent):
            agent, adapter = make_agent([[text("Hello")]])
    """
    def _make_agent(turns=None, repeat_last=False, bridge=None, **kwargs):
        adapter = ScriptedAdapter(turns, repeat_last=repeat_last)
        agent = Agent(adapter, bridge or make_bridge(), "test-model", **kwargs)
        return agent, adapter
    return _make_agent


async def collect(agent: Agent, query: str, **kwargs) -> List[Any]:
    return [event async for event in agent.chat(query, **kwargs)]


def roles(agent: Agent) -> List[MessageRole]:
    return [message.role for message in agent.get_conversation()]


def texts(events: List[Any]) -> str:
    return "".join(event.text for event in events if isinstance(event, TextChunk))


@pytest.mark.asyncio
async def test_plain_answer_completes_in_one_turn(make_agent):
    """Test that a reply without tool calls ends the chat."""
    agent, adapter = make_agent([[text("Hel"), text("lo")]])

    events = await collect(agent, "hi")

    assert [event.text for event in events] == ["Hel", "lo"]
    assert agent.state is LoopState.COMPLETED
    assert len(adapter.requests) == 1
    assert roles(agent) == [MessageRole.SYSTEM, MessageRole.USER, MessageRole.ASSISTANT]
    last = agent.get_conversation()[-1]
    assert last.content == "Hello"
    assert last.tool_calls is None


@pytest.mark.asyncio
async def test_builtin_tool_result_feeds_next_turn(make_agent, echo_tool):
    """Test a tool call followed by a final answer."""
    agent, adapter = make_agent([
        [text("Let me check. "), call("echo", {"text": "pong"}, "call_1")],
        [text("The tool said pong.")],
    ])

    events = await collect(agent, "ping please")

    assert agent.state is LoopState.COMPLETED
    assert len(adapter.requests) == 2
    result_events = [event for event in events if isinstance(event, ToolResultEvent)]
    assert len(result_events) == 1
    assert result_events[0].tool_call_id == "call_1"
    assert result_events[0].tool_name == "echo"
    assert result_events[0].args == {"text": "pong"}
    assert result_events[0].content == "pong"
    assert texts(events) == "Let me check. The tool said pong."

    conversation = agent.get_conversation()
    assert roles(agent) == [
        MessageRole.SYSTEM,
        MessageRole.USER,
        MessageRole.ASSISTANT,
        MessageRole.TOOL,
        MessageRole.ASSISTANT,
    ]
    assert conversation[2].content == "Let me check. "
    assert conversation[2].tool_calls == [
        ToolCallRequest(id="call_1", name="echo", args={"text": "pong"})
    ]
    assert conversation[3].tool_call_id == "call_1"
    assert conversation[3].tool_name == "echo"
    assert conversation[3].content == "pong"

    # The second request sees the recorded tool result
    second_messages = adapter.requests[1].messages
    assert second_messages[-1].role is MessageRole.TOOL
    assert second_messages[-1].content == "pong"


@pytest.mark.asyncio
async def test_tool_results_recorded_in_call_order(make_agent, register_builtin):
    """Test that several calls in one turn run and are recorded in order."""
    executed = []

    async def slow(params: Dict[str, Any]) -> ToolResult:
        await asyncio.sleep(0.01)
        executed.append("slow")
        return ToolResult.ok(data="slow done")

    def fast(params: Dict[str, Any]) -> ToolResult:
        executed.append("fast")
        return ToolResult.ok(data="fast done")

    register_builtin("slow", slow)
    register_builtin("fast", fast)
    agent, _ = make_agent([
        [call("slow", call_id="a"), call("fast", call_id="b")],
        [text("ok")],
    ])

    events = await collect(agent, "go")

    assert executed == ["slow", "fast"]
    results = [event for event in events if isinstance(event, ToolResultEvent)]
    assert [event.tool_call_id for event in results] == ["a", "b"]
    tool_messages = [m for m in agent.get_conversation() if m.role is MessageRole.TOOL]
    assert [m.tool_call_id for m in tool_messages] == ["a", "b"]
    assert [m.content for m in tool_messages] == ["slow done", "fast done"]


@pytest.mark.asyncio
async def test_task_complete_ends_the_loop(make_agent):
    """Test that calling task_complete stops without another turn."""
    agent, adapter = make_agent([
        [text("All done."), call("task_complete")],
        [text("should never be requested")],
    ])

    events = await collect(agent, "finish up")

    assert agent.state is LoopState.COMPLETED
    assert len(adapter.requests) == 1
    last = agent.get_conversation()[-1]
    assert last.role is MessageRole.TOOL
    assert last.tool_name == "task_complete"
    assert last.content.startswith("Task completed successfully")
    assert isinstance(events[-1], ToolResultEvent)


@pytest.mark.asyncio
async def test_ask_question_ends_the_loop(make_agent):
    """Test that calling ask_question hands control back to the user."""
    agent, adapter = make_agent([
        [text("Which directory?"), call("ask_question")],
    ])

    await collect(agent, "list files")

    assert agent.state is LoopState.COMPLETED
    assert len(adapter.requests) == 1
    assert agent.get_conversation()[-1].tool_name == "ask_question"


@pytest.mark.asyncio
async def test_turn_bound_stops_endless_tool_calls(make_agent, echo_tool):
    """Test that a model calling tools forever is stopped at the default bound."""
    agent, adapter = make_agent([[call("echo", {"text": "again"})]], repeat_last=True)

    events = await collect(agent, "loop forever")

    assert len(adapter.requests) == MAX_NUM_TURNS == 25
    assert agent.turns_used == 25
    assert agent.state is LoopState.MAX_TURNS_EXCEEDED
    assert isinstance(events[-1], TextChunk)
    assert "maximum of 25 turns" in events[-1].text
    # The last recorded message is the final tool result
    assert agent.get_conversation()[-1].role is MessageRole.TOOL


@pytest.mark.asyncio
async def test_custom_turn_bound(make_agent, echo_tool):
    """Test that max_turns is honored exactly."""
    agent, adapter = make_agent([[call("echo", {"text": "x"})]], repeat_last=True, max_turns=3)

    await collect(agent, "go")

    assert len(adapter.requests) == 3
    assert agent.state is LoopState.MAX_TURNS_EXCEEDED


@pytest.mark.asyncio
async def test_turn_count_resets_per_chat(make_agent, echo_tool):
    """Test that every chat call gets the full number of turns."""
    agent, adapter = make_agent([
        [call("echo", {"text": "1"})],
        [text("first")],
        [call("echo", {"text": "2"})],
        [text("second")],
    ], max_turns=2)

    await collect(agent, "one")
    assert agent.state is LoopState.COMPLETED
    await collect(agent, "two")
    assert agent.state is LoopState.COMPLETED
    assert len(adapter.requests) == 4


def test_invalid_turn_bound(make_bridge):
    """Test that a turn bound below one is rejected."""
    with pytest.raises(ValueError):
        Agent(ScriptedAdapter(), make_bridge(), "test-model", max_turns=0)


@pytest.mark.asyncio
async def test_unknown_tool_recorded_as_error(make_agent):
    """Test that a call to a missing tool is answered with an error result."""
    agent, adapter = make_agent([
        [call("does_not_exist", {"x": 1})],
        [text("Sorry.")],
    ])

    events = await collect(agent, "try it")

    assert agent.state is LoopState.COMPLETED
    result = next(event for event in events if isinstance(event, ToolResultEvent))
    assert result.content == "Error: No tool or MCP server found for tool: does_not_exist"
    assert len(adapter.requests) == 2


@pytest.mark.asyncio
async def test_failing_builtin_tool_recorded_as_error(make_agent, register_builtin):
    """Test that a handler exception becomes an error result, not a crash."""
    def broken(params: Dict[str, Any]) -> ToolResult:
        raise RuntimeError("disk on fire")

    register_builtin("broken", broken)
    agent, _ = make_agent([[call("broken")], [text("noted")]])

    events = await collect(agent, "run it")

    result = next(event for event in events if isinstance(event, ToolResultEvent))
    assert result.content == "Tool 'broken' execution failed: disk on fire"
    assert agent.state is LoopState.COMPLETED


@pytest.mark.asyncio
async def test_blocked_remote_tool_reports_inline(make_agent, make_bridge, make_security, make_definition):
    """Test that a blocked call is recorded and shown to the user."""
    security = make_security(blocked_tools={"files": ["wipe_disk"]})
    bridge = make_bridge(security)
    transport = FakeTransport("files", tools=[make_definition("wipe_disk", server_name="files")])
    await bridge.register_transport(transport)
    agent, _ = make_agent([[call("wipe_disk")], [text("It was blocked.")]], bridge=bridge)

    events = await collect(agent, "wipe it")

    message = "Tool is blocked by security policy: wipe_disk from files"
    assert TextChunk(text=f"\n{message}\n") in events
    result = next(event for event in events if isinstance(event, ToolResultEvent))
    assert result.content == message
    assert transport.calls == []
    assert agent.state is LoopState.COMPLETED


@pytest.mark.asyncio
async def test_denied_remote_tool_reports_inline(make_agent, make_bridge, make_security, make_definition):
    """Test that a call the user declines is recorded as denied."""
    security = make_security(confirm_callback=_refuse, default_policy="prompt")
    bridge = make_bridge(security)
    transport = FakeTransport("notes", tools=[make_definition("read_notes", server_name="notes")])
    await bridge.register_transport(transport)
    agent, _ = make_agent([[call("read_notes")], [text("ok")]], bridge=bridge)

    events = await collect(agent, "read my notes")

    result = next(event for event in events if isinstance(event, ToolResultEvent))
    assert result.content == "Tool execution denied by user: read_notes from notes"
    assert transport.calls == []


async def _refuse(request) -> bool:
    return False


@pytest.mark.asyncio
async def test_remote_tool_result_is_normalized(make_agent, make_bridge, make_definition):
    """Test that remote content blocks are flattened into the tool message."""
    bridge = make_bridge()
    transport = FakeTransport(
        "weather",
        tools=[make_definition("get_forecast", server_name="weather")],
        results={"get_forecast": {"content": [{"type": "text", "text": "Sunny"}, {"type": "text", "text": "22C"}]}},
    )
    await bridge.register_transport(transport)
    agent, _ = make_agent([[call("get_forecast", {"city": "Oslo"})], [text("Nice.")]], bridge=bridge)

    await collect(agent, "weather?")

    assert transport.calls == [("get_forecast", {"city": "Oslo"})]
    tool_message = next(m for m in agent.get_conversation() if m.role is MessageRole.TOOL)
    assert tool_message.content == "Sunny\n\n22C"


@pytest.mark.asyncio
async def test_abort_during_stream(make_agent):
    """Test that aborting mid-stream cancels the turn without recording it."""
    signal = AbortSignal()

    async def abort_and_hang():
        signal.abort()
        await asyncio.sleep(10)

    agent, _ = make_agent([[text("partial"), abort_and_hang, text("never")]])

    events = await collect(agent, "hello", abort_signal=signal)

    assert [event.text for event in events] == ["partial"]
    assert agent.state is LoopState.CANCELLED
    assert roles(agent) == [MessageRole.SYSTEM, MessageRole.USER]


@pytest.mark.asyncio
async def test_abort_between_tool_calls_drops_unstarted(make_agent, register_builtin):
    """Test that calls after an abort never run and are removed from history."""
    signal = AbortSignal()
    executed = []

    def first(params: Dict[str, Any]) -> ToolResult:
        executed.append("first")
        signal.abort()
        return ToolResult.ok(data="first done")

    def second(params: Dict[str, Any]) -> ToolResult:
        executed.append("second")
        return ToolResult.ok(data="second done")

    register_builtin("first", first)
    register_builtin("second", second)
    agent, adapter = make_agent([[text("Working. "), call("first", call_id="a"), call("second", call_id="b")]])

    await collect(agent, "do both", abort_signal=signal)

    assert executed == ["first"]
    assert agent.state is LoopState.CANCELLED
    assert len(adapter.requests) == 1
    conversation = agent.get_conversation()
    assert [m.role for m in conversation[-2:]] == [MessageRole.ASSISTANT, MessageRole.TOOL]
    assert [c.id for c in conversation[-2].tool_calls] == ["a"]
    assert conversation[-2].content == "Working. "
    assert conversation[-1].tool_call_id == "a"


@pytest.mark.asyncio
async def test_abort_during_last_tool_call_keeps_results(make_agent, register_builtin):
    """Test that an abort during the final call keeps every recorded result."""
    signal = AbortSignal()

    def stop(params: Dict[str, Any]) -> ToolResult:
        signal.abort()
        return ToolResult.ok(data="stopped")

    register_builtin("stop", stop)
    agent, adapter = make_agent([[call("stop", call_id="a")], [text("unreachable")]])

    await collect(agent, "stop", abort_signal=signal)

    assert agent.state is LoopState.CANCELLED
    assert len(adapter.requests) == 1
    conversation = agent.get_conversation()
    assert conversation[-1].role is MessageRole.TOOL
    assert [c.id for c in conversation[-2].tool_calls] == ["a"]


@pytest.mark.asyncio
async def test_abort_before_any_tool_call_removes_empty_message(make_agent, echo_tool):
    """Test that an aborted turn with no text and no executed calls leaves no trace."""
    signal = AbortSignal()

    async def abort_now():
        signal.abort()

    agent, _ = make_agent([[call("echo", {"text": "x"}), abort_now]])

    await collect(agent, "echo", abort_signal=signal)

    assert agent.state is LoopState.CANCELLED
    assert roles(agent) == [MessageRole.SYSTEM, MessageRole.USER]


@pytest.mark.asyncio
async def test_already_aborted_signal_makes_no_request(make_agent):
    """Test that an aborted signal stops the chat before the provider is called."""
    signal = AbortSignal()
    signal.abort()
    agent, adapter = make_agent([[text("hi")]])

    events = await collect(agent, "hello", abort_signal=signal)

    assert events == []
    assert agent.state is LoopState.CANCELLED
    assert adapter.requests == []


@pytest.mark.asyncio
async def test_task_cancellation_propagates(make_agent):
    """Test that cancelling the consuming task marks the chat cancelled and re-raises."""
    started = asyncio.Event()

    async def hang():
        started.set()
        await asyncio.sleep(10)

    agent, _ = make_agent([[hang]])
    task = asyncio.create_task(collect(agent, "hello"))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert agent.state is LoopState.CANCELLED


@pytest.mark.asyncio
async def test_stream_failure_falls_back(make_bridge):
    """Test that a broken stream is completed by the non-streaming request."""
    adapter = ScriptedAdapter(
        [[text("Hel"), ConnectionError("reset by peer")]],
        complete=[text("Hello world")],
    )
    agent = Agent(adapter, make_bridge(), "test-model")

    events = await collect(agent, "hi")

    assert texts(events) == "Hello world"
    assert adapter.complete_calls == 1
    assert agent.get_conversation()[-1].content == "Hello world"


@pytest.mark.asyncio
async def test_request_carries_tools_and_model(make_agent, echo_tool):
    """Test the parameters sent to the adapter."""
    agent, adapter = make_agent([[text("hi")]])

    await collect(agent, "hello", model="other-model")

    params = adapter.requests[0]
    assert params.model == "other-model"
    assert [tool.name for tool in params.tools] == ["echo", "task_complete", "ask_question"]
    assert params.messages[-1] == Message.user("hello")
    assert agent.model == "test-model"


@pytest.mark.asyncio
async def test_initialize_lists_tools_in_system_prompt(make_agent, echo_tool):
    """Test that initialize puts the tool catalogue into the first message."""
    agent, _ = make_agent()

    await agent.initialize()

    system_prompt = agent.get_conversation()[0].content
    assert system_prompt.startswith(DEFAULT_SYSTEM_PROMPT)
    assert "### echo" in system_prompt
    assert "**text (required)**" in system_prompt


def test_user_guidelines_become_second_system_message(make_agent):
    """Test that user guidelines follow the system prompt."""
    agent, _ = make_agent(user_guidelines="Answer in French.")

    conversation = agent.get_conversation()
    assert [m.role for m in conversation] == [MessageRole.SYSTEM, MessageRole.SYSTEM]
    assert conversation[1].content == f"{USER_GUIDELINES_PREFIX}Answer in French."


@pytest.mark.asyncio
async def test_reset_conversation_keeps_system_prompt(make_agent, echo_tool):
    """Test that reset drops the dialogue but not the prompt."""
    agent, _ = make_agent([[text("hi")]])
    await agent.initialize()
    prompt = agent.get_conversation()[0].content
    await collect(agent, "hello")

    agent.reset_conversation()

    conversation = agent.get_conversation()
    assert len(conversation) == 1
    assert conversation[0].content == prompt
    assert agent.state is LoopState.AWAITING_USER_INPUT


def test_get_conversation_returns_copies(make_agent):
    """Test that callers cannot mutate the agent's history."""
    agent, _ = make_agent()

    conversation = agent.get_conversation()
    conversation[0].content = "changed"
    conversation.append(Message.user("extra"))

    assert agent.get_conversation()[0].content == DEFAULT_SYSTEM_PROMPT
    assert len(agent.get_conversation()) == 1


@pytest.mark.asyncio
async def test_load_conversation_unfolds_tool_results(make_agent):
    """Test that stored histories with folded tool results are accepted."""
    agent, adapter = make_agent([[text("continuing")]])
    history = [
        Message.user("read it"),
        Message.assistant("", [ToolCallRequest(id="t1", name="read_file", args={"path": "a.txt"})]),
        Message.user('[{"type": "tool_result", "tool_use_id": "t1", "content": "file body"}]'),
        Message.assistant("The file says: file body"),
    ]

    agent.load_conversation(history)
    await collect(agent, "and then?")

    conversation = agent.get_conversation()
    assert conversation[0].role is MessageRole.SYSTEM
    tool_message = conversation[3]
    assert tool_message.role is MessageRole.TOOL
    assert tool_message.tool_call_id == "t1"
    assert tool_message.tool_name == "read_file"
    assert tool_message.content == "file body"
    assert adapter.requests[0].messages[3].role is MessageRole.TOOL


@pytest.mark.asyncio
async def test_iterate_with_abort_without_signal():
    """Test that iteration without a signal passes every item through."""
    async def numbers():
        for value in range(3):
            yield value

    assert [value async for value in iterate_with_abort(numbers(), None)] == [0, 1, 2]


@pytest.mark.asyncio
async def test_iterate_with_abort_closes_stream():
    """Test that an abort closes the underlying stream."""
    signal = AbortSignal()
    closed = asyncio.Event()

    async def endless():
        try:
            while True:
                yield "tick"
                await asyncio.sleep(0.01)
        finally:
            closed.set()

    received = []
    with pytest.raises(AbortError):
        async for item in iterate_with_abort(endless(), signal):
            received.append(item)
            if len(received) == 2:
                signal.abort()

    assert received == ["tick", "tick"]
    assert closed.is_set()
