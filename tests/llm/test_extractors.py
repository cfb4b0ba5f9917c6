"""Tests for the two-stage tag extractors."""

import json
import logging

import httpx
import pytest

from campus_tagger.llm.backends import OpenAIChatBackend, SelfHostedChatBackend
from campus_tagger.llm.categories import AMENITIES_CATEGORY, CONTENT_CATEGORY, FORM_CATEGORY
from campus_tagger.llm.errors import IncompleteCompletion, MalformedStructuredResponse
from campus_tagger.llm.extractors import (
    FUNCTION_CALL_REMINDER,
    FreeformJsonExtractor,
    FunctionCallExtractor,
    build_system_prompt,
    extractor_for,
    filter_allowed,
    parse_json_object,
)
from campus_tagger.models import Event
from tests.fakes import SELF_HOSTED_URL, FakeOpenAI, SelfHostedTransport, make_completion, self_hosted_reply

EVENT = Event(title="Intro to Quant Finance", text="Come learn about quant careers! Pizza provided.")

REASONING = 'Out of the the tags [Theater, Concert, Talk, ...] the event is a talk about quant careers. I choose "Talk".'


def test_system_prompt_has_title_substituted():
    """The event title replaces the placeholder in the prompt."""
    prompt = build_system_prompt(FORM_CATEGORY, EVENT)

    assert "Title: Intro to Quant Finance" in prompt
    assert "{INSERT TITLE HERE}" not in prompt


def test_filter_allowed_drops_unknown_and_non_string_values():
    """Only allowed string values survive filtering."""
    structured = {"form_tag": "Lecture", "other": 3, "also": "Talk", "dupe": "Talk"}
    assert filter_allowed(FORM_CATEGORY, structured) == frozenset({"Talk"})


def test_filter_allowed_caps_content_tags_in_response_order():
    """Content keeps its first two allowed tags."""
    structured = {"content-tag-1": "Finance", "content-tag-2": "Career", "content-tag-3": "Math"}
    assert filter_allowed(CONTENT_CATEGORY, structured) == frozenset({"Finance", "Career"})


@pytest.mark.asyncio
async def test_function_call_extractor_two_stages():
    """Stage two replays the reasoning and forces the category function."""
    client = FakeOpenAI(
        [
            make_completion(content=REASONING),
            make_completion(arguments='{"form_tag": "Talk"}', finish_reason="stop"),
        ]
    )
    extractor = FunctionCallExtractor(OpenAIChatBackend(client, "gpt-4o-mini"))

    outcome = await extractor.extract(FORM_CATEGORY, EVENT)

    assert outcome.ok
    assert outcome.tags == frozenset({"Talk"})
    assert outcome.arguments == {"form_tag": "Talk"}

    first, second = client.calls
    assert [m["role"] for m in first["messages"]] == ["system", "user"]
    assert first["messages"][1]["content"] == EVENT.text
    assert "tools" not in first

    # Stage 2 repeats stage 1 and carries the exact reasoning
    assert second["messages"][:2] == first["messages"]
    assert second["messages"][2] == {"role": "assistant", "content": REASONING}
    assert second["messages"][3] == {"role": "user", "content": FUNCTION_CALL_REMINDER}
    assert second["tool_choice"]["function"]["name"] == "tag_event_form"
    assert second["tools"][0]["function"]["parameters"]["properties"]["form_tag"]["enum"][0] == "Theater"
    assert first["temperature"] == second["temperature"] == 0


@pytest.mark.asyncio
async def test_function_call_value_outside_vocabulary_gives_no_tags():
    """Values outside the vocabulary are dropped."""
    client = FakeOpenAI(
        [
            make_completion(content=REASONING),
            make_completion(arguments='{"form_tag": "Lecture"}', finish_reason="tool_calls"),
        ]
    )
    extractor = FunctionCallExtractor(OpenAIChatBackend(client, "gpt-4o-mini"))

    outcome = await extractor.extract(FORM_CATEGORY, EVENT)

    assert outcome.tags == frozenset()


@pytest.mark.asyncio
async def test_amenities_keeps_type_of_food_as_argument():
    """type_of_food is kept as an argument, not a tag."""
    client = FakeOpenAI(
        [
            make_completion(content="Pizza provided, so Food."),
            make_completion(
                arguments='{"amenities_tag": "Free Food", "type_of_food": "pizza"}',
                function_name="tag_event_amenities",
            ),
        ]
    )
    extractor = FunctionCallExtractor(OpenAIChatBackend(client, "gpt-4o-mini"))

    outcome = await extractor.extract(AMENITIES_CATEGORY, EVENT)

    assert outcome.tags == frozenset({"Free Food"})
    assert outcome.arguments["type_of_food"] == "pizza"


@pytest.mark.asyncio
async def test_truncated_reasoning_fails_before_stage_two():
    """Truncated reasoning stops before the second request."""
    client = FakeOpenAI([make_completion(content="Out of the the", finish_reason="length")])
    extractor = FunctionCallExtractor(OpenAIChatBackend(client, "gpt-4o-mini"))

    with pytest.raises(IncompleteCompletion):
        await extractor.extract(FORM_CATEGORY, EVENT)
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_malformed_function_arguments():
    """Unparseable function arguments raise MalformedStructuredResponse."""
    client = FakeOpenAI([make_completion(content=REASONING), make_completion(arguments="form_tag: Talk")])
    extractor = FunctionCallExtractor(OpenAIChatBackend(client, "gpt-4o-mini"))

    with pytest.raises(MalformedStructuredResponse) as excinfo:
        await extractor.extract(FORM_CATEGORY, EVENT)
    assert excinfo.value.raw == "form_tag: Talk"


@pytest.mark.asyncio
async def test_debug_logs_conclusion_and_justification(caplog):
    """With debug on, each category logs its extracted tags next to the reasoning."""
    caplog.set_level(logging.DEBUG, logger="campus_tagger.llm.extractors")
    client = FakeOpenAI([make_completion(content=REASONING), make_completion(arguments='{"form_tag": "Talk"}')])
    extractor = FunctionCallExtractor(OpenAIChatBackend(client, "gpt-4o-mini"), debug=True)

    await extractor.extract(FORM_CATEGORY, EVENT)

    assert "----------Extracted Tags (form)----------" in caplog.text
    assert "{'form_tag': 'Talk'}" in caplog.text
    assert "----------Justification---------" in caplog.text
    assert REASONING in caplog.text


@pytest.mark.asyncio
async def test_debug_off_logs_nothing(caplog):
    """Without debug the stage trace stays quiet."""
    caplog.set_level(logging.DEBUG, logger="campus_tagger.llm.extractors")
    client = FakeOpenAI([make_completion(content=REASONING), make_completion(arguments='{"form_tag": "Talk"}')])
    extractor = FunctionCallExtractor(OpenAIChatBackend(client, "gpt-4o-mini"))

    await extractor.extract(FORM_CATEGORY, EVENT)

    assert "Extracted Tags" not in caplog.text

def content_transport(conclusion: str) -> SelfHostedTransport:
    def respond(prompt):
        if "Return the chosen tags as a JSON object" in prompt:
            return self_hosted_reply(conclusion)
        return self_hosted_reply("Finance and Career apply. Math doesn't.")

    return SelfHostedTransport(respond)


@pytest.mark.asyncio
async def test_freeform_json_extractor_two_stages():
    """Stage two feeds the reasoning back with the JSON instruction."""
    transport = content_transport(json.dumps({"content-tag-1": "Finance", "content-tag-2": "Career"}))
    extractor = FreeformJsonExtractor(SelfHostedChatBackend(transport.client(), SELF_HOSTED_URL))

    outcome = await extractor.extract(CONTENT_CATEGORY, EVENT)

    assert outcome.tags == frozenset({"Finance", "Career"})

    first_prompt = transport.bodies[0]["messages"][0]["content"]
    second_prompt = transport.bodies[1]["messages"][0]["content"]
    assert first_prompt.startswith(build_system_prompt(CONTENT_CATEGORY, EVENT))
    assert f"```\n{EVENT.text}\n```" in first_prompt
    assert first_prompt.endswith("---------------- Response --------------\n")
    assert second_prompt.startswith("Finance and Career apply. Math doesn't.")
    assert '"content-tag-1": "EECS"' in second_prompt


@pytest.mark.asyncio
async def test_freeform_json_filters_invented_tags():
    """Tags the model invents are dropped."""
    transport = content_transport(json.dumps({"content-tag-1": "Quant", "content-tag-2": "Finance"}))
    extractor = FreeformJsonExtractor(SelfHostedChatBackend(transport.client(), SELF_HOSTED_URL))

    outcome = await extractor.extract(CONTENT_CATEGORY, EVENT)

    assert outcome.tags == frozenset({"Finance"})


@pytest.mark.asyncio
async def test_freeform_json_empty_object_means_no_tags():
    """An empty object yields no tags."""
    transport = content_transport("{}")
    extractor = FreeformJsonExtractor(SelfHostedChatBackend(transport.client(), SELF_HOSTED_URL))

    outcome = await extractor.extract(CONTENT_CATEGORY, EVENT)

    assert outcome.tags == frozenset()


@pytest.mark.asyncio
@pytest.mark.parametrize("conclusion", ["The tags are Finance and Career.", '["Finance"]'])
async def test_freeform_json_rejects_non_object(conclusion):
    """Conclusions that are not JSON objects are malformed."""
    transport = content_transport(conclusion)
    extractor = FreeformJsonExtractor(SelfHostedChatBackend(transport.client(), SELF_HOSTED_URL))

    with pytest.raises(MalformedStructuredResponse) as excinfo:
        await extractor.extract(CONTENT_CATEGORY, EVENT)
    assert excinfo.value.raw == conclusion


def test_extractor_for_matches_backend():
    """Each category gets the extractor for its backend."""
    primary = OpenAIChatBackend(FakeOpenAI([]), "gpt-4o-mini")
    self_hosted = SelfHostedChatBackend(content_transport("{}").client(), SELF_HOSTED_URL)

    assert isinstance(extractor_for(FORM_CATEGORY, primary, self_hosted), FunctionCallExtractor)
    assert isinstance(extractor_for(CONTENT_CATEGORY, primary, self_hosted), FreeformJsonExtractor)

    with pytest.raises(ValueError):
        extractor_for(FORM_CATEGORY, None, self_hosted)
    with pytest.raises(ValueError):
        extractor_for(CONTENT_CATEGORY, primary, None)


@pytest.mark.asyncio
async def test_freeform_json_null_content_is_malformed():
    """A null completion from the self-hosted model fails as malformed before stage two."""
    transport = SelfHostedTransport(lambda prompt: httpx.Response(200, json={"choices": [{"message": {"content": None}}]}))
    extractor = FreeformJsonExtractor(SelfHostedChatBackend(transport.client(), SELF_HOSTED_URL))

    with pytest.raises(MalformedStructuredResponse):
        await extractor.extract(CONTENT_CATEGORY, EVENT)
    assert len(transport.requests) == 1


@pytest.mark.parametrize("raw", [None, 42])
def test_parse_json_object_rejects_non_text(raw):
    """Non-string input is malformed rather than a TypeError."""
    with pytest.raises(MalformedStructuredResponse):
        parse_json_object(raw)
