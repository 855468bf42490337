"""Tests for the OpenAI Chat Completions adapter."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from replyhub.adapters.vendor_adapter_openai import (
    OpenAIChatTransport,
    build_openai_tools,
    build_response_format,
    parse_chat_completion,
    to_openai_messages,
)
from replyhub.infra.error_handler import EndpointError, ErrorCategory
from replyhub.models.message import ConversationMessage, MessageRole, ToolCallRef
from replyhub.models.model_reply import FinalText, ToolInvocation
from replyhub.services.tool_registry import LOOKUP_RECORD


def _completion(content=None, tool_calls=None, usage=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=usage)


def _tool_call(name, arguments, call_id="call_abc"):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


class TestMessageConversion:
    """ConversationMessage -> Chat Completions messages."""

    def test_plain_roles(self):
        converted = to_openai_messages([
            ConversationMessage.system("rules"),
            ConversationMessage.user("hi"),
            ConversationMessage.assistant("hello"),
        ])
        assert converted == [
            {"role": "system", "content": "rules"},
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ]

    def test_tool_exchange(self):
        ref = ToolCallRef(id="call_1", name="lookup_record", arguments={"record_id": "BK-1"})
        converted = to_openai_messages([
            ConversationMessage(role=MessageRole.ASSISTANT, tool_call=ref),
            ConversationMessage(role=MessageRole.TOOL, content='{"found": true}', tool_call=ref),
        ])

        assert converted[0]["tool_calls"][0]["id"] == "call_1"
        assert json.loads(converted[0]["tool_calls"][0]["function"]["arguments"]) == {"record_id": "BK-1"}
        assert converted[1] == {"role": "tool", "tool_call_id": "call_1", "content": '{"found": true}'}

    def test_orphan_tool_result_becomes_system_note(self):
        ref = ToolCallRef(id="call_old", name="calculate_price")
        converted = to_openai_messages([
            ConversationMessage(role=MessageRole.SYSTEM, content="summary", is_summary=True),
            ConversationMessage(role=MessageRole.TOOL, content='{"amount": 10}', tool_call=ref),
        ])

        assert converted[1] == {"role": "system", "content": 'Earlier result from calculate_price: {"amount": 10}'}

    def test_unanswered_tool_request_is_dropped(self):
        ref = ToolCallRef(id="call_x", name="lookup_record")
        converted = to_openai_messages([
            ConversationMessage.user("hi"),
            ConversationMessage(role=MessageRole.ASSISTANT, tool_call=ref),
            ConversationMessage.user("still there?"),
        ])

        assert [m["content"] for m in converted] == ["hi", "still there?"]


class TestRequestShapes:

    def test_tools(self):
        tools = build_openai_tools([LOOKUP_RECORD])
        assert tools[0]["type"] == "function"
        assert tools[0]["function"]["name"] == "lookup_record"
        assert tools[0]["function"]["parameters"]["required"] == ["record_id"]

    def test_response_format(self):
        assert build_response_format(None) is None
        structured = build_response_format({"name": "c", "schema": {"type": "object"}})
        assert structured == {
            "type": "json_schema",
            "json_schema": {"name": "c", "schema": {"type": "object"}, "strict": False},
        }


class TestParseChatCompletion:
    """Response -> FinalText | ToolInvocation."""

    def test_text(self):
        usage = SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15)
        reply = parse_chat_completion(_completion(content="Hello", usage=usage))

        assert isinstance(reply, FinalText)
        assert reply.text == "Hello"
        assert reply.usage.total_tokens == 15

    def test_first_tool_call_is_used(self):
        reply = parse_chat_completion(_completion(tool_calls=[
            _tool_call("lookup_record", '{"record_id": "BK-1"}'),
            _tool_call("calculate_price", "{}", call_id="call_2"),
        ]))

        assert isinstance(reply, ToolInvocation)
        assert reply.call_id == "call_abc"
        assert reply.name == "lookup_record"
        assert reply.arguments == {"record_id": "BK-1"}

    @pytest.mark.parametrize("arguments", ["{not json", "[1, 2]"])
    def test_bad_arguments(self, arguments):
        with pytest.raises(EndpointError) as exc_info:
            parse_chat_completion(_completion(tool_calls=[_tool_call("lookup_record", arguments)]))
        assert exc_info.value.category == ErrorCategory.API_ERROR

    def test_no_choices(self):
        with pytest.raises(EndpointError):
            parse_chat_completion(SimpleNamespace(choices=[], usage=None))


class TestOpenAIChatTransport:
    """Transport against a mocked AsyncOpenAI client."""

    @pytest.mark.asyncio
    async def test_complete_builds_request(self):
        mock_client = MagicMock()
        mock_client.chat.completions.create = AsyncMock(return_value=_completion(content="ok"))
        transport = OpenAIChatTransport(api_key="test", model="gpt-4o-mini", client=mock_client)

        reply = await transport.complete(
            [ConversationMessage.user("hi")],
            tools=[LOOKUP_RECORD],
            response_format={"name": "c", "schema": {"type": "object"}},
        )

        assert reply.text == "ok"
        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]
        assert kwargs["tool_choice"] == "auto"
        assert kwargs["response_format"]["type"] == "json_schema"

    @pytest.mark.asyncio
    async def test_model_override(self):
        mock_client = MagicMock()
        mock_client.chat.completions.create = AsyncMock(return_value=_completion(content="ok"))
        transport = OpenAIChatTransport(api_key="test", model="gpt-4o-mini", client=mock_client)

        await transport.complete([ConversationMessage.user("hi")], model="tenant-model")

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "tenant-model"
        assert "tools" not in kwargs

    @pytest.mark.asyncio
    async def test_sdk_errors_are_wrapped(self):
        error = Exception("Rate limit exceeded")
        error.status_code = 429
        mock_client = MagicMock()
        mock_client.chat.completions.create = AsyncMock(side_effect=error)
        transport = OpenAIChatTransport(api_key="test", client=mock_client)

        with pytest.raises(EndpointError) as exc_info:
            await transport.complete([ConversationMessage.user("hi")])

        assert exc_info.value.category == ErrorCategory.RATE_LIMIT
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        transport = OpenAIChatTransport(api_key=None)
        transport._api_key = None

        with pytest.raises(EndpointError) as exc_info:
            await transport.complete([ConversationMessage.user("hi")])

        assert exc_info.value.category == ErrorCategory.AUTH_ERROR
