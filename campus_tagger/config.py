import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

BASE_DIR = Path(__file__).resolve().parent.parent

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_HTTP_TIMEOUT = 120.0

_TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Runtime settings, read from the environment (and .env)."""

    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    model: str = DEFAULT_MODEL
    self_hosted_endpoint: Optional[str] = None
    self_hosted_token: Optional[str] = None
    debug: bool = False
    # None means retry transient failures forever
    max_attempts: Optional[int] = DEFAULT_MAX_ATTEMPTS
    http_timeout: float = DEFAULT_HTTP_TIMEOUT


def _parse_max_attempts(raw: Optional[str]) -> Optional[int]:
    if raw is None or raw.strip() == "":
        return DEFAULT_MAX_ATTEMPTS
    value = int(raw)
    if value < 0:
        raise ValueError(f"TAGGER_MAX_ATTEMPTS must be >= 0, got {value}")
    return value or None


def load_settings() -> Settings:
    load_dotenv()
    return Settings(
        openai_api_key=os.environ.get("OPENAI_API_KEY"),
        openai_base_url=os.environ.get("OPENAI_BASE_URL") or None,
        model=os.environ.get("TAGGER_MODEL") or DEFAULT_MODEL,
        self_hosted_endpoint=os.environ.get("SIPB_LLMS_API_ENDPOINT"),
        self_hosted_token=os.environ.get("SIPB_LLMS_API_TOKEN"),
        debug=os.environ.get("DEBUG_MODE", "").strip().lower() in _TRUTHY,
        max_attempts=_parse_max_attempts(os.environ.get("TAGGER_MAX_ATTEMPTS")),
        http_timeout=float(os.environ.get("TAGGER_HTTP_TIMEOUT") or DEFAULT_HTTP_TIMEOUT),
    )
