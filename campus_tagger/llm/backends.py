"""Transports for the two completion endpoints."""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import httpx
from openai import APIStatusError, AsyncOpenAI

from ..models import CompletionRequest, CompletionResponse
from .errors import MalformedStructuredResponse, UpstreamCallFailed
from .rate_limiter import RateLimiterRegistry, Sleep
from .retry import RetryPolicy, send_with_retry

logger = logging.getLogger(__name__)


class OpenAIChatBackend:
    """Primary endpoint: rate limited, retried, supports forced function calls."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        rate_limiters: Optional[RateLimiterRegistry] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.client = client
        self.model = model
        self.rate_limiters = rate_limiters if rate_limiters is not None else RateLimiterRegistry()
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    def _request_kwargs(self, request: CompletionRequest) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": request.model,
            "messages": [message.model_dump() for message in request.messages],
            "temperature": request.temperature,
        }
        if request.functions:
            kwargs["tools"] = [{"type": "function", "function": function} for function in request.functions]
        if request.function_call:
            kwargs["tool_choice"] = {"type": "function", "function": {"name": request.function_call}}
        return kwargs

    async def send(self, request: CompletionRequest) -> CompletionResponse:
        """Send once, turning HTTP errors into a response with their status."""
        try:
            completion = await self.client.chat.completions.create(**self._request_kwargs(request))
        except APIStatusError as e:
            return CompletionResponse(status=e.status_code, body=e.response.text)

        choice = completion.choices[0]
        message = choice.message
        arguments = None
        if message.tool_calls:
            arguments = message.tool_calls[0].function.arguments
        elif getattr(message, "function_call", None) is not None:
            arguments = message.function_call.arguments

        return CompletionResponse(
            status=200,
            finish_reason=choice.finish_reason,
            content=message.content,
            function_arguments=arguments,
            body=completion.model_dump_json(),
        )

    async def aclose(self) -> None:
        await self.client.close()

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Wait for rate limit budget, then send with retry."""
        await self.rate_limiters.admit(request.model, request.message_text())
        return await send_with_retry(lambda: self.send(request), self.retry_policy, self._sleep)


# Held constant for every request to the self-hosted model
SAMPLING_PARAMETERS: Dict[str, Any] = {
    "stream": False,
    "tokenize": True,
    "stop": ["</s>", "### User Message", "### Assistant", "### Prompt"],
    "cache_prompt": False,
    "frequency_penalty": 0,
    "image_data": [],
    "min_p": 0.05,
    "mirostat": 0,
    "mirostat_eta": 0.1,
    "mirostat_tau": 5,
    "n_probs": 0,
    "presence_penalty": 0,
    "repeat_last_n": 256,
    "repeat_penalty": 1.18,
    "seed": -1,
    "slot_id": -1,
    "temperature": 0,
    "tfs_z": 1,
    "top_k": 40,
    "top_p": 0.95,
    "typical_p": 1,
}


class SelfHostedChatBackend:
    """Self-hosted endpoint: plain text in, plain text out. Not rate limited or retried."""

    def __init__(self, client: httpx.AsyncClient, endpoint: str):
        self.client = client
        self.endpoint = endpoint

    async def aclose(self) -> None:
        await self.client.aclose()

    def build_body(self, prompt: str) -> Dict[str, Any]:
        return {"messages": [{"role": "user", "content": prompt}], **SAMPLING_PARAMETERS}

    async def complete(self, prompt: str) -> str:
        response = await self.client.post(self.endpoint, json=self.build_body(prompt))
        if not response.is_success:
            raise UpstreamCallFailed(response.status_code, response.text)

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (json.JSONDecodeError, KeyError, IndexError, TypeError):
            content = None
        if not isinstance(content, str):
            logger.error("Unexpected completion payload: %s", response.text)
            raise MalformedStructuredResponse(response.text, "Unexpected completion payload")
        return content
