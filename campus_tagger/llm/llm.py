import httpx
from openai import AsyncOpenAI

from ..config import Settings
from .errors import MissingApiToken


def get_openai_client(settings: Settings) -> AsyncOpenAI:
    """Client for the primary (function calling) endpoint.

    SDK retries are disabled; `send_with_retry` decides what to retry.
    """
    if not settings.openai_api_key:
        raise MissingApiToken("OPENAI_API_KEY environment variable is required for LLM functionality.")

    return AsyncOpenAI(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        max_retries=0,
        timeout=settings.http_timeout,
    )


def get_self_hosted_client(settings: Settings) -> httpx.AsyncClient:
    """HTTP client for the self-hosted completion endpoint, with bearer auth."""
    if not settings.self_hosted_endpoint:
        raise MissingApiToken("SIPB_LLMS_API_ENDPOINT environment variable is required for the self-hosted model.")
    if not settings.self_hosted_token:
        raise MissingApiToken("SIPB_LLMS_API_TOKEN environment variable is required for the self-hosted model.")

    return httpx.AsyncClient(
        headers={
            "Authorization": f"Bearer {settings.self_hosted_token}",
            "Content-Type": "application/json",
        },
        timeout=settings.http_timeout,
    )
