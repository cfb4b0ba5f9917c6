"""
Two-stage tag extraction.

Stage 1 asks the model to reason about which tags apply. Stage 2 shows the model
its own reasoning and asks for the conclusion in a structured form, which is then
filtered against the category's allowed tags.
"""

import abc
import json
import logging
from typing import Any, Dict, Optional

from ..models import CategoryOutcome, ChatMessage, CompletionRequest, Event, ExtractionBackend, TagCategory
from .backends import OpenAIChatBackend, SelfHostedChatBackend
from .categories import TITLE_PLACEHOLDER
from .errors import MalformedStructuredResponse
from .retry import validate_completion

logger = logging.getLogger(__name__)

FUNCTION_CALL_REMINDER = (
    "Remember, you can only pick from the tags given above. "
    "Now call the function with the tag of your conclusion:"
)

JSON_FORMAT_INSTRUCTION = """Return the chosen tags as a JSON object. The output should resemble the following:
---------------- Sample Response (for formatting reference) --------------
{
  "content-tag-1": "EECS",
  "content-tag-2": "AI"
}
---------------- End Sample Response (for formatting reference) --------------"""


def build_system_prompt(category: TagCategory, event: Event) -> str:
    return category.prompt_template.replace(TITLE_PLACEHOLDER, event.title)


def filter_allowed(category: TagCategory, structured: Dict[str, Any]) -> frozenset:
    """Keep the values of `structured` that are allowed tags, in response order."""
    tags = []
    for value in structured.values():
        if isinstance(value, str) and value in category.allowed_tags and value not in tags:
            tags.append(value)
    if category.max_tags is not None:
        tags = tags[: category.max_tags]
    return frozenset(tags)


class TwoStageExtractor(abc.ABC):
    """Shared stage sequencing for both backend dialects."""

    def __init__(self, debug: bool = False):
        self.debug = debug

    @abc.abstractmethod
    async def reason(self, category: TagCategory, event: Event, system_prompt: str) -> str:
        """Stage 1: freeform reasoning about which tags apply."""

    @abc.abstractmethod
    async def conclude(self, category: TagCategory, event: Event, system_prompt: str, reasoning: str) -> Dict[str, Any]:
        """Stage 2: the conclusion of `reasoning` as a JSON object."""

    async def extract(self, category: TagCategory, event: Event) -> CategoryOutcome:
        system_prompt = build_system_prompt(category, event)
        reasoning = await self.reason(category, event, system_prompt)
        structured = await self.conclude(category, event, system_prompt, reasoning)

        if self.debug:
            logger.debug(
                "----------Extracted Tags (%s)----------\n%s\n----------Justification---------\n%s\n----------End Response----------",
                category.name,
                structured,
                reasoning,
            )

        return CategoryOutcome(category=category.name, tags=filter_allowed(category, structured), arguments=structured)


class FunctionCallExtractor(TwoStageExtractor):
    """Stage 2 is a forced call of the category's function, whose parameter is an enum."""

    def __init__(self, backend: OpenAIChatBackend, debug: bool = False):
        super().__init__(debug=debug)
        self.backend = backend

    def _base_messages(self, system_prompt: str, event: Event):
        return [
            ChatMessage(role="system", content=system_prompt),
            ChatMessage(role="user", content=event.text),
        ]

    async def reason(self, category: TagCategory, event: Event, system_prompt: str) -> str:
        request = CompletionRequest(model=self.backend.model, messages=self._base_messages(system_prompt, event))
        response = await self.backend.complete(request)
        validate_completion(response)
        return response.content or ""

    async def conclude(self, category: TagCategory, event: Event, system_prompt: str, reasoning: str) -> Dict[str, Any]:
        messages = self._base_messages(system_prompt, event) + [
            ChatMessage(role="assistant", content=reasoning),
            ChatMessage(role="user", content=FUNCTION_CALL_REMINDER),
        ]
        request = CompletionRequest(
            model=self.backend.model,
            messages=messages,
            functions=[category.function],
            function_call=category.function_name,
        )
        response = await self.backend.complete(request)
        return validate_completion(response, expect_function_call=True)


class FreeformJsonExtractor(TwoStageExtractor):
    """Stage 2 asks the model to restate its conclusion as a JSON object."""

    def __init__(self, backend: SelfHostedChatBackend, debug: bool = False):
        super().__init__(debug=debug)
        self.backend = backend

    @staticmethod
    def reasoning_prompt(system_prompt: str, event: Event) -> str:
        return f"{system_prompt}\n```\n{event.text}\n```\n\n---------------- Response --------------\n"

    @staticmethod
    def conclusion_prompt(reasoning: str) -> str:
        return f"{reasoning}\n\n{JSON_FORMAT_INSTRUCTION}\n"

    async def reason(self, category: TagCategory, event: Event, system_prompt: str) -> str:
        return await self.backend.complete(self.reasoning_prompt(system_prompt, event))

    async def conclude(self, category: TagCategory, event: Event, system_prompt: str, reasoning: str) -> Dict[str, Any]:
        raw = await self.backend.complete(self.conclusion_prompt(reasoning))
        return parse_json_object(raw)


def parse_json_object(raw: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.error("JSON parse error from parsing %s", raw)
        raise MalformedStructuredResponse(raw)
    if not isinstance(parsed, dict):
        raise MalformedStructuredResponse(raw, "Expected a JSON object")
    return parsed


def extractor_for(
    category: TagCategory,
    primary: Optional[OpenAIChatBackend],
    self_hosted: Optional[SelfHostedChatBackend],
    debug: bool = False,
) -> TwoStageExtractor:
    """Pick the extractor matching the category's backend."""
    if category.backend == ExtractionBackend.FUNCTION_CALL:
        if primary is None:
            raise ValueError(f"Category '{category.name}' needs the function calling backend")
        return FunctionCallExtractor(primary, debug=debug)
    if self_hosted is None:
        raise ValueError(f"Category '{category.name}' needs the self-hosted backend")
    return FreeformJsonExtractor(self_hosted, debug=debug)
