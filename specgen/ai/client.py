"""LLM client with multi-provider support (Together.ai, OpenAI, Amazon Bedrock)."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError

from specgen.config import Settings, get_settings
from specgen.errors import ConfigurationError, GenerationFailure
from specgen.models import LLMProvider
from specgen.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

TOGETHER_API_BASE = "https://api.together.xyz/v1"
OPENAI_API_BASE = "https://api.openai.com/v1"

DEFAULT_MAX_TOKENS = 4096


@dataclass
class GenerationResult:
    """Result from generation request."""
    text: str
    model: str
    provider: str
    usage: Dict[str, int] = field(default_factory=dict)
    finish_reason: str = "unknown"


class TextGenerator(Protocol):
    async def generate(
        self,
        prompt: str,
        model: str,
        provider: LLMProvider,
        system_prompt: Optional[str] = None,
    ) -> GenerationResult:
        ...


class LLMClient:
    """
    Async text generation across providers.

    Together.ai and OpenAI share the chat-completions wire format and go over
    httpx; Bedrock uses the boto3 Converse API on a worker thread.

    Usage:
        client = LLMClient()
        result = await client.generate("Summarize...", model="gpt-4o", provider=LLMProvider.OPENAI)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        bedrock_client: Any = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport
        self._clients: Dict[LLMProvider, httpx.AsyncClient] = {}
        self._bedrock = bedrock_client

    def _api_key(self, provider: LLMProvider) -> str:
        key = self.settings.together_api_key if provider == LLMProvider.TOGETHER else self.settings.openai_api_key
        if not key:
            raise ConfigurationError(f"No API key configured for {provider.value}")
        return key

    async def _get_http_client(self, provider: LLMProvider) -> httpx.AsyncClient:
        client = self._clients.get(provider)
        if client is None or client.is_closed:
            client = httpx.AsyncClient(
                base_url=TOGETHER_API_BASE if provider == LLMProvider.TOGETHER else OPENAI_API_BASE,
                headers={
                    "Authorization": f"Bearer {self._api_key(provider)}",
                    "Content-Type": "application/json",
                },
                timeout=self.settings.llm_timeout,
                transport=self._transport,
            )
            self._clients[provider] = client
        return client

    def _get_bedrock_client(self):
        if self._bedrock is None:
            self._bedrock = boto3.client("bedrock-runtime", region_name=self.settings.aws_region)
        return self._bedrock

    async def close(self):
        for client in self._clients.values():
            if not client.is_closed:
                await client.aclose()
        self._clients = {}

    async def generate(
        self,
        prompt: str,
        model: str,
        provider: LLMProvider,
        system_prompt: Optional[str] = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: Optional[float] = None,
    ) -> GenerationResult:
        """Generate a completion; every backend failure becomes GenerationFailure."""
        provider = LLMProvider(provider)
        temperature = self.settings.llm_temperature if temperature is None else temperature

        messages: List[Dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        if provider == LLMProvider.BEDROCK:
            return await self._generate_bedrock(messages, model, max_tokens, temperature)

        data = await self._chat_completion(
            provider,
            {"model": model, "messages": messages, "max_tokens": max_tokens, "temperature": temperature},
        )
        choice = data["choices"][0]
        return GenerationResult(
            text=choice["message"].get("content") or "",
            model=model,
            provider=provider.value,
            usage=data.get("usage", {}),
            finish_reason=choice.get("finish_reason", "unknown"),
        )

    async def _chat_completion(self, provider: LLMProvider, payload: Dict[str, Any]) -> Dict[str, Any]:
        client = await self._get_http_client(provider)
        try:
            response = await client.post("/chat/completions", json=payload)
        except httpx.HTTPError as e:
            raise GenerationFailure(f"{provider.value} request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"{provider.value} error ({response.status_code}): {response.text}")
            raise GenerationFailure(f"{provider.value} error ({response.status_code}): {response.text}")

        try:
            data = response.json()
            data["choices"][0]["message"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise GenerationFailure(f"{provider.value} returned an unexpected response") from e
        return data

    async def _generate_bedrock(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> GenerationResult:
        system = [{"text": m["content"]} for m in messages if m["role"] == "system"]
        conversation = [
            {"role": m["role"], "content": [{"text": m["content"]}]}
            for m in messages
            if m["role"] != "system"
        ]
        request: Dict[str, Any] = {
            "modelId": model,
            "messages": conversation,
            "inferenceConfig": {"maxTokens": max_tokens, "temperature": temperature},
        }
        if system:
            request["system"] = system

        client = self._get_bedrock_client()
        try:
            response = await asyncio.to_thread(client.converse, **request)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Bedrock error: {e}")
            raise GenerationFailure(f"bedrock error: {e}") from e

        try:
            content = response["output"]["message"]["content"]
        except (KeyError, TypeError) as e:
            raise GenerationFailure("bedrock returned an unexpected response") from e

        usage = response.get("usage", {})
        return GenerationResult(
            text="".join(block.get("text", "") for block in content),
            model=model,
            provider=LLMProvider.BEDROCK.value,
            usage={
                "prompt_tokens": usage.get("inputTokens", 0),
                "completion_tokens": usage.get("outputTokens", 0),
            },
            finish_reason=response.get("stopReason", "unknown"),
        )

    async def chat_with_tools(
        self,
        prompt: str,
        registry: ToolRegistry,
        model: str,
        provider: LLMProvider,
        system_prompt: Optional[str] = None,
        max_steps: int = 10,
    ) -> GenerationResult:
        """
        Let the model call registered tools until it answers in plain text.

        Tool failures are fed back to the model as data. Stops after
        ``max_steps`` model turns.
        """
        provider = LLMProvider(provider)
        if provider == LLMProvider.BEDROCK:
            raise GenerationFailure("Tool calling is only supported for OpenAI-compatible providers")

        messages: List[Dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        tools = registry.openai_tools()

        for step in range(max_steps):
            data = await self._chat_completion(
                provider,
                {
                    "model": model,
                    "messages": messages,
                    "tools": tools,
                    "temperature": self.settings.llm_temperature,
                },
            )
            choice = data["choices"][0]
            message = choice["message"]
            tool_calls = message.get("tool_calls") or []

            if not tool_calls:
                return GenerationResult(
                    text=message.get("content") or "",
                    model=model,
                    provider=provider.value,
                    usage=data.get("usage", {}),
                    finish_reason=choice.get("finish_reason", "unknown"),
                )

            messages.append(message)
            for call in tool_calls:
                function = call.get("function", {})
                name = function.get("name", "")
                try:
                    arguments = json.loads(function.get("arguments") or "{}")
                except ValueError:
                    arguments = None

                if isinstance(arguments, dict):
                    result = (await registry.execute(name, arguments)).to_dict()
                else:
                    result = {"error": f"Arguments for {name} are not a JSON object"}
                logger.info(f"Step {step + 1}: tool {name} -> {'error' if 'error' in result else 'ok'}")

                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.get("id"),
                        "content": json.dumps(result, default=str),
                    }
                )

        raise GenerationFailure(f"No final answer after {max_steps} steps")
