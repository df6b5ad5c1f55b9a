"""
Tests for the LLM client

Covers:
- OpenAI-compatible chat completions for Together.ai and OpenAI
- Bedrock Converse via a stubbed boto3 client
- Error mapping and the tool-calling loop
"""

import json
from unittest.mock import MagicMock

import httpx
import pytest
from botocore.exceptions import ClientError
from pydantic import BaseModel

from specgen.ai.client import LLMClient
from specgen.errors import ConfigurationError, GenerationFailure
from specgen.models import LLMProvider
from specgen.tools import ToolRegistry, ToolSpec
from tests.conftest import RecordingTransport


def completion(content="done", tool_calls=None):
    message = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return {
        "choices": [{"message": message, "finish_reason": "tool_calls" if tool_calls else "stop"}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5},
    }


class TestGenerate:
    """Tests for LLMClient.generate."""

    @pytest.mark.asyncio
    async def test_openai_chat_completion(self, settings):
        transport = RecordingTransport(lambda r: httpx.Response(200, json=completion("Hello")))
        client = LLMClient(settings, transport=transport)

        result = await client.generate("Say hi", model="gpt-4o", provider=LLMProvider.OPENAI, system_prompt="Be brief")

        assert result.text == "Hello"
        assert result.provider == "openai"
        request = transport.requests[0]
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer openai-key"
        body = json.loads(request.content)
        assert body["messages"] == [
            {"role": "system", "content": "Be brief"},
            {"role": "user", "content": "Say hi"},
        ]
        assert body["model"] == "gpt-4o"

    @pytest.mark.asyncio
    async def test_together_uses_its_own_base_and_key(self, settings):
        transport = RecordingTransport(lambda r: httpx.Response(200, json=completion()))
        client = LLMClient(settings, transport=transport)

        await client.generate("x", model="llama", provider="together")

        request = transport.requests[0]
        assert request.url.host == "api.together.xyz"
        assert request.headers["Authorization"] == "Bearer together-key"

    @pytest.mark.asyncio
    async def test_http_error_is_generation_failure(self, settings):
        client = LLMClient(settings, transport=httpx.MockTransport(lambda r: httpx.Response(429, text="slow down")))

        with pytest.raises(GenerationFailure, match="429"):
            await client.generate("x", model="gpt-4o", provider=LLMProvider.OPENAI)

    @pytest.mark.asyncio
    async def test_missing_api_key(self, settings):
        client = LLMClient(settings.model_copy(update={"openai_api_key": None}))

        with pytest.raises(ConfigurationError):
            await client.generate("x", model="gpt-4o", provider=LLMProvider.OPENAI)

    @pytest.mark.asyncio
    async def test_bedrock_converse(self, settings):
        bedrock = MagicMock()
        bedrock.converse.return_value = {
            "output": {"message": {"role": "assistant", "content": [{"text": "From "}, {"text": "Bedrock"}]}},
            "usage": {"inputTokens": 3, "outputTokens": 2},
            "stopReason": "end_turn",
        }
        client = LLMClient(settings, bedrock_client=bedrock)

        result = await client.generate("x", model="anthropic.claude-3", provider=LLMProvider.BEDROCK, system_prompt="sys")

        assert result.text == "From Bedrock"
        assert result.usage == {"prompt_tokens": 3, "completion_tokens": 2}
        kwargs = bedrock.converse.call_args.kwargs
        assert kwargs["modelId"] == "anthropic.claude-3"
        assert kwargs["system"] == [{"text": "sys"}]
        assert kwargs["messages"] == [{"role": "user", "content": [{"text": "x"}]}]

    @pytest.mark.asyncio
    async def test_bedrock_error(self, settings):
        bedrock = MagicMock()
        bedrock.converse.side_effect = ClientError(
            {"Error": {"Code": "ThrottlingException", "Message": "slow"}}, "Converse"
        )
        client = LLMClient(settings, bedrock_client=bedrock)

        with pytest.raises(GenerationFailure):
            await client.generate("x", model="m", provider=LLMProvider.BEDROCK)


class AddInput(BaseModel):
    a: int
    b: int


async def add(args: AddInput):
    return {"sum": args.a + args.b}


class TestChatWithTools:
    """Tests for the bounded tool-calling loop."""

    def registry(self):
        registry = ToolRegistry()
        registry.register(ToolSpec("add", "Add two numbers", AddInput, add))
        return registry

    @pytest.mark.asyncio
    async def test_executes_tool_then_answers(self, settings):
        responses = iter([
            completion(None, [{"id": "call-1", "type": "function",
                               "function": {"name": "add", "arguments": '{"a": 2, "b": 3}'}}]),
            completion("The sum is 5"),
        ])
        transport = RecordingTransport(lambda r: httpx.Response(200, json=next(responses)))
        client = LLMClient(settings, transport=transport)

        result = await client.chat_with_tools("2+3?", self.registry(), model="gpt-4o", provider=LLMProvider.OPENAI)

        assert result.text == "The sum is 5"
        second = json.loads(transport.requests[1].content)
        tool_message = second["messages"][-1]
        assert tool_message["role"] == "tool"
        assert tool_message["tool_call_id"] == "call-1"
        assert json.loads(tool_message["content"]) == {"ok": {"sum": 5}}
        assert json.loads(transport.requests[0].content)["tools"][0]["function"]["name"] == "add"

    @pytest.mark.asyncio
    async def test_tool_errors_are_fed_back(self, settings):
        responses = iter([
            completion(None, [{"id": "c", "type": "function", "function": {"name": "add", "arguments": '{"a": 1}'}}]),
            completion("Missing b"),
        ])
        transport = RecordingTransport(lambda r: httpx.Response(200, json=next(responses)))
        client = LLMClient(settings, transport=transport)

        await client.chat_with_tools("1+?", self.registry(), model="gpt-4o", provider=LLMProvider.OPENAI)

        tool_message = json.loads(transport.requests[1].content)["messages"][-1]
        assert "error" in json.loads(tool_message["content"])

    @pytest.mark.asyncio
    async def test_step_limit(self, settings):
        looping = completion(None, [{"id": "c", "type": "function", "function": {"name": "add", "arguments": '{"a": 1, "b": 1}'}}])
        client = LLMClient(settings, transport=httpx.MockTransport(lambda r: httpx.Response(200, json=looping)))

        with pytest.raises(GenerationFailure):
            await client.chat_with_tools("loop", self.registry(), model="gpt-4o", provider=LLMProvider.OPENAI, max_steps=2)
