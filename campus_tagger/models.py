from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Sentinel amenity tag meaning "no amenity applies"
NO_AMENITY_TAG = "None"


class Event(BaseModel):
    """A campus event as identified in a mailing list email."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    title: str
    text: str  # Email body, sanitized before tagging


class ExtractionBackend(str, Enum):
    """How a tag category turns model reasoning into structured tags."""

    FUNCTION_CALL = "function_call"
    FREEFORM_JSON = "freeform_json"


class TagCategory(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    prompt_template: str  # Contains the title placeholder
    allowed_tags: FrozenSet[str]
    backend: ExtractionBackend
    # Function declaration with an enum-typed parameter, for FUNCTION_CALL backends
    function: Optional[Dict[str, Any]] = None
    max_tags: Optional[int] = None

    @model_validator(mode="after")
    def _require_function_for_function_call(self) -> "TagCategory":
        if self.backend == ExtractionBackend.FUNCTION_CALL and not self.function:
            raise ValueError(f"Category '{self.name}' uses function calling but declares no function")
        return self

    @property
    def function_name(self) -> Optional[str]:
        return self.function["name"] if self.function else None


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str  # "system", "user" or "assistant"
    content: str


class CompletionRequest(BaseModel):
    """A single chat completion call. Temperature is always 0."""

    model_config = ConfigDict(frozen=True)

    model: str
    messages: List[ChatMessage]
    functions: List[Dict[str, Any]] = []
    function_call: Optional[str] = None  # Name of the function the model is forced to call

    @property
    def temperature(self) -> float:
        return 0

    def message_text(self) -> str:
        """Concatenated message contents, used for rate limit accounting."""
        return "\n".join(message.content for message in self.messages)


class CompletionResponse(BaseModel):
    status: int
    finish_reason: Optional[str] = None
    content: Optional[str] = None
    function_arguments: Optional[str] = None  # Raw JSON string as returned by the model
    body: str = ""  # Raw response payload, kept for diagnostics


class CategoryOutcome(BaseModel):
    """Result-or-error of tagging one event with one category."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    category: str
    tags: FrozenSet[str] = frozenset()
    # Parsed stage-2 object, including values that aren't tags (e.g. type_of_food)
    arguments: Dict[str, Any] = {}
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class EventTags(BaseModel):
    """Tags for one event, with per-category outcomes."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    version: str
    outcomes: Dict[str, CategoryOutcome] = Field(default_factory=dict)

    @property
    def tags(self) -> FrozenSet[str]:
        """Union of all successful categories, without the sentinel tag."""
        merged = set()
        for outcome in self.outcomes.values():
            if outcome.ok:
                merged.update(outcome.tags)
        merged.discard(NO_AMENITY_TAG)
        return frozenset(merged)

    @property
    def errors(self) -> Dict[str, Exception]:
        return {name: outcome.error for name, outcome in self.outcomes.items() if outcome.error is not None}

    @property
    def food_description(self) -> Optional[str]:
        """What food the event provides, when the amenities category reported it."""
        amenities = self.outcomes.get("amenities")
        if amenities is None or not amenities.ok:
            return None
        value = amenities.arguments.get("type_of_food")
        return value if isinstance(value, str) and value.strip() else None

    def raise_for_errors(self) -> None:
        """Raise the first category error, for callers that need every category."""
        for outcome in self.outcomes.values():
            if outcome.error is not None:
                raise outcome.error

    def sorted_tags(self) -> List[str]:
        return sorted(self.tags)
