"""Retry with capped exponential backoff for chat completion calls."""

import asyncio
import json
import logging
from http import HTTPStatus
from typing import Any, Awaitable, Callable, Dict, Iterator, Optional

from pydantic import BaseModel

from ..models import CompletionResponse
from .errors import IncompleteCompletion, MalformedStructuredResponse, RetriesExhausted, UpstreamCallFailed

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = {
    HTTPStatus.TOO_MANY_REQUESTS,
    HTTPStatus.SERVICE_UNAVAILABLE,
    HTTPStatus.BAD_GATEWAY,
}

# "tool_calls" is how the tools dialect of the API reports a function call stop
COMPLETE_FINISH_REASONS = {"stop", "function_call", "tool_calls"}


class RetryPolicy(BaseModel):
    initial_backoff_ms: float = 1000
    multiplier: float = 1.5
    max_backoff_ms: float = 20000
    # None retries for as long as the endpoint keeps answering with a retryable status
    max_attempts: Optional[int] = 10

    def backoff_delays(self) -> Iterator[float]:
        """Yield successive backoff delays in milliseconds."""
        delay = self.initial_backoff_ms
        while True:
            yield delay
            delay = min(self.max_backoff_ms, delay * self.multiplier)


async def send_with_retry(
    send: Callable[[], Awaitable[CompletionResponse]],
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> CompletionResponse:
    """
    Send a request until it's accepted.

    Retryable statuses (429, 502, 503) back off before resending. A 400 is logged and
    resent without touching the backoff. Any other non-200 status fails immediately.
    """
    policy = policy or RetryPolicy()
    delays = policy.backoff_delays()
    backoff_ms = next(delays)
    attempts = 0

    while True:
        response = await send()
        attempts += 1

        if response.status == HTTPStatus.OK:
            return response

        if response.status in RETRYABLE_STATUSES:
            if policy.max_attempts is not None and attempts >= policy.max_attempts:
                raise RetriesExhausted(response.status, response.body, attempts)
            logger.warning("Rate limited (status %d). Retrying in %d ms...", response.status, backoff_ms)
            await sleep(backoff_ms / 1000)
            backoff_ms = next(delays)
        elif response.status == HTTPStatus.BAD_REQUEST:
            if policy.max_attempts is not None and attempts >= policy.max_attempts:
                raise RetriesExhausted(response.status, response.body, attempts)
            logger.warning("Bad request, resending: %s", response.body)
        else:
            raise UpstreamCallFailed(response.status, response.body)


def validate_completion(response: CompletionResponse, expect_function_call: bool = False) -> Optional[Dict[str, Any]]:
    """
    Check an accepted completion finished normally.

    Returns the parsed function arguments when a function call is expected.
    """
    if response.finish_reason not in COMPLETE_FINISH_REASONS:
        raise IncompleteCompletion(response.finish_reason)

    if not expect_function_call:
        return None

    raw = response.function_arguments
    if raw is None:
        raise MalformedStructuredResponse(raw, "Completion is missing function call arguments")
    try:
        arguments = json.loads(raw)
    except json.JSONDecodeError:
        logger.error("JSON parse error from parsing %s", raw)
        raise MalformedStructuredResponse(raw)
    if not isinstance(arguments, dict):
        raise MalformedStructuredResponse(raw, "Function call arguments are not a JSON object")
    return arguments
