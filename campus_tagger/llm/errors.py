"""Errors raised while talking to completion endpoints."""

from typing import Optional


class TaggingError(Exception):
    """Base class for failures while extracting tags."""


class UpstreamCallFailed(TaggingError):
    """Raised when a completion endpoint answers with a non-retryable status."""

    def __init__(self, status: int, body: str, message: Optional[str] = None):
        self.status = status
        self.body = body
        super().__init__(message or f"Upstream call failed with status {status}: {body}")


class RetriesExhausted(UpstreamCallFailed):
    """Raised when a retryable status persists past the configured attempt limit."""

    def __init__(self, status: int, body: str, attempts: int):
        self.attempts = attempts
        super().__init__(status, body, f"Upstream call still failing with status {status} after {attempts} attempts")


class IncompleteCompletion(TaggingError):
    """Raised when a completion stopped for a reason other than stop or a function call."""

    def __init__(self, finish_reason: Optional[str]):
        self.finish_reason = finish_reason
        super().__init__(f"Incomplete completion, finish reason: {finish_reason}")


class MalformedStructuredResponse(TaggingError):
    """Raised when the model's structured output can't be parsed as a JSON object."""

    def __init__(self, raw: Optional[str], message: str = "Malformed structured response"):
        self.raw = raw
        super().__init__(f"{message}: {raw!r}")


class MissingApiToken(ValueError):
    """Raised when a required endpoint setting is missing or empty."""

    def __init__(self, message: str = "An API token is required for LLM functionality."):
        super().__init__(message)
