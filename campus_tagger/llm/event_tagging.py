"""LLM-based event tagging."""

import asyncio
import logging
from typing import List, Optional, Sequence

from ..config import Settings
from ..models import CategoryOutcome, Event, EventTags, ExtractionBackend, TagCategory
from .backends import OpenAIChatBackend, SelfHostedChatBackend
from .categories import DEFAULT_CATEGORIES
from .extractors import TwoStageExtractor, extractor_for
from .llm import get_openai_client, get_self_hosted_client
from .rate_limiter import RateLimiterRegistry
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

# Bump when prompts or vocabularies change
TAGGER_VERSION = "TAG-20241002"


class EventTagger:
    """Runs every tag category against an event concurrently."""

    def __init__(
        self,
        primary: Optional[OpenAIChatBackend] = None,
        self_hosted: Optional[SelfHostedChatBackend] = None,
        categories: Sequence[TagCategory] = DEFAULT_CATEGORIES,
        debug: bool = False,
    ):
        self.primary = primary
        self.self_hosted = self_hosted
        self.categories = list(categories)
        self.extractors: List[TwoStageExtractor] = [
            extractor_for(category, primary, self_hosted, debug=debug) for category in self.categories
        ]

    async def __aenter__(self) -> "EventTagger":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self.primary is not None:
            await self.primary.aclose()
        if self.self_hosted is not None:
            await self.self_hosted.aclose()

    async def tag_event(self, event: Event) -> EventTags:
        """Tag an event. A failing category is reported in its outcome, not raised."""
        results = await asyncio.gather(
            *(extractor.extract(category, event) for category, extractor in zip(self.categories, self.extractors)),
            return_exceptions=True,
        )

        tags = EventTags(version=TAGGER_VERSION)
        for category, result in zip(self.categories, results):
            if isinstance(result, CategoryOutcome):
                tags.outcomes[category.name] = result
            elif isinstance(result, Exception):
                logger.error("Tagging category '%s' failed: %s", category.name, result)
                tags.outcomes[category.name] = CategoryOutcome(category=category.name, error=result)
            else:
                # Cancellation and other BaseExceptions aren't category failures
                raise result
        return tags

    async def add_tags_to_event(self, event: Event) -> List[str]:
        """Tag an event, failing if any category fails."""
        tags = await self.tag_event(event)
        tags.raise_for_errors()
        return tags.sorted_tags()


def create_event_tagger(
    settings: Settings,
    categories: Sequence[TagCategory] = DEFAULT_CATEGORIES,
    rate_limiters: Optional[RateLimiterRegistry] = None,
) -> EventTagger:
    """Build a tagger with clients for the backends the categories use."""
    backends = {category.backend for category in categories}

    primary = None
    if ExtractionBackend.FUNCTION_CALL in backends:
        primary = OpenAIChatBackend(
            get_openai_client(settings),
            settings.model,
            rate_limiters=rate_limiters if rate_limiters is not None else RateLimiterRegistry.with_defaults(),
            retry_policy=RetryPolicy(max_attempts=settings.max_attempts),
        )

    self_hosted = None
    if ExtractionBackend.FREEFORM_JSON in backends:
        self_hosted = SelfHostedChatBackend(get_self_hosted_client(settings), settings.self_hosted_endpoint)

    return EventTagger(primary, self_hosted, categories=categories, debug=settings.debug)
