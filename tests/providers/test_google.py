"""Tests for the Google Gemini adapter."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from google.genai import types

from bibble.core.model_registry import GenerationParams
from bibble.core.provider_config import ProviderConfig
from bibble.providers.base import ChatCompletionParams
from bibble.providers.google import GoogleAdapter, to_gemini_contents
from bibble.types.models import Message, TextChunk, ToolCallRequest, ToolDefinition


async def stream_of(items):
    for item in items:
        yield item


def response_with(*parts: types.Part) -> types.GenerateContentResponse:
    return types.GenerateContentResponse(candidates=[
        types.Candidate(content=types.Content(role="model", parts=list(parts)))
    ])


@pytest.fixture
def mock_client():
    """Fixture providing a mocked genai client."""
    client = MagicMock()
    client.aio.models.generate_content_stream = AsyncMock()
    client.aio.models.generate_content = AsyncMock()
    return client


@pytest.fixture
def adapter(mock_client):
    """Fixture providing an adapter over the mocked client."""
    return GoogleAdapter(ProviderConfig(provider="google", api_key="test-key"), client=mock_client)


def make_params(**kwargs):
    defaults = dict(
        model="gemini-2.0-flash",
        messages=[Message.system("sys"), Message.user("hi")],
    )
    defaults.update(kwargs)
    return ChatCompletionParams(**defaults)


async def collect(adapter, params):
    return [chunk async for chunk in adapter.chat_completion(params)]


def test_content_conversion():
    """Test roles, function calls and grouped function responses."""
    messages = [
        Message.system("sys"),
        Message.user("weather in two cities"),
        Message.assistant("", [
            ToolCallRequest(id="1", name="get_forecast", args={"city": "Oslo"}),
            ToolCallRequest(id="2", name="get_forecast", args={"city": "Rome"}),
        ]),
        Message.tool("cold", "get_forecast", "1"),
        Message.tool("warm", "get_forecast", "2"),
        Message.assistant("Oslo is cold, Rome is warm."),
    ]

    system, contents = to_gemini_contents(messages)

    assert system == "sys"
    assert [content.role for content in contents] == ["user", "model", "user", "model"]
    calls = [part.function_call for part in contents[1].parts]
    assert [(call.name, call.args) for call in calls] == [
        ("get_forecast", {"city": "Oslo"}),
        ("get_forecast", {"city": "Rome"}),
    ]
    responses = [part.function_response for part in contents[2].parts]
    assert [response.response for response in responses] == [{"result": "cold"}, {"result": "warm"}]
    assert contents[3].parts[0].text == "Oslo is cold, Rome is warm."


@pytest.mark.asyncio
async def test_stream_text_and_calls(adapter, mock_client):
    """Test streamed text parts and whole function calls."""
    mock_client.aio.models.generate_content_stream.return_value = stream_of([
        response_with(types.Part(text="Checking")),
        response_with(types.Part(function_call=types.FunctionCall(
            id="fc_1", name="get_forecast", args={"city": "Oslo"}
        ))),
        response_with(types.Part(function_call=types.FunctionCall(name="task_complete", args={}))),
    ])

    chunks = await collect(adapter, make_params())

    assert chunks[0] == TextChunk(text="Checking")
    assert chunks[1].tool_call == ToolCallRequest(id="fc_1", name="get_forecast", args={"city": "Oslo"})
    # Calls without ids get a generated one
    assert chunks[2].tool_call.name == "task_complete"
    assert chunks[2].tool_call.id.startswith("call_")


@pytest.mark.asyncio
async def test_thought_parts_are_skipped(adapter, mock_client):
    """Test that thinking output is not shown as text."""
    mock_client.aio.models.generate_content_stream.return_value = stream_of([
        response_with(types.Part(text="hmm", thought=True), types.Part(text="Answer")),
    ])

    chunks = await collect(adapter, make_params())

    assert chunks == [TextChunk(text="Answer")]


@pytest.mark.asyncio
async def test_request_config(adapter, mock_client):
    """Test the generation config passed to the client."""
    mock_client.aio.models.generate_content_stream.return_value = stream_of([])
    params = make_params(
        tools=[ToolDefinition(
            name="get_forecast",
            description="Forecast",
            parameter_schema={
                "type": "object",
                "additionalProperties": False,
                "properties": {"city": {"type": "string"}},
                "required": ["city"],
            },
        )],
        generation=GenerationParams(temperature=0.4, top_k=20, max_tokens=512),
    )

    await collect(adapter, params)

    kwargs = mock_client.aio.models.generate_content_stream.await_args.kwargs
    assert kwargs["model"] == "gemini-2.0-flash"
    config = kwargs["config"]
    assert config.system_instruction == "sys"
    assert config.temperature == 0.4
    assert config.top_k == 20
    assert config.max_output_tokens == 512
    assert config.automatic_function_calling.disable is True
    declaration = config.tools[0].function_declarations[0]
    assert declaration.name == "get_forecast"
    assert declaration.parameters.required == ["city"]


@pytest.mark.asyncio
async def test_empty_stream_is_not_retried(adapter, mock_client):
    """Test that a stream with nothing in it is not an error."""
    mock_client.aio.models.generate_content_stream.return_value = stream_of([])

    chunks = await collect(adapter, make_params())

    assert chunks == []
    mock_client.aio.models.generate_content.assert_not_awaited()


@pytest.mark.asyncio
async def test_fallback_to_generate_content(adapter, mock_client):
    """Test the non-streaming fallback."""
    mock_client.aio.models.generate_content_stream.side_effect = ConnectionError("reset")
    mock_client.aio.models.generate_content.return_value = response_with(
        types.Part(text="Full"),
        types.Part(function_call=types.FunctionCall(id="fc", name="echo", args={"text": "x"})),
    )

    chunks = await collect(adapter, make_params())

    assert chunks[0].tool_call == ToolCallRequest(id="fc", name="echo", args={"text": "x"})
    assert chunks[1] == TextChunk(text="Full")


@pytest.mark.asyncio
async def test_fallback_failure(adapter, mock_client):
    """Test the placeholder text when both requests fail."""
    mock_client.aio.models.generate_content_stream.side_effect = ConnectionError("reset")
    mock_client.aio.models.generate_content.side_effect = ConnectionError("still down")

    chunks = await collect(adapter, make_params())

    assert chunks == [TextChunk(text="Failed to get response from Google.")]
