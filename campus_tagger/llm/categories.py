"""Tag categories: prompts, allowed vocabularies and function declarations."""

from typing import List

from ..models import ExtractionBackend, TagCategory

TITLE_PLACEHOLDER = "{INSERT TITLE HERE}"

FORM_TAGS: List[str] = [
    "Theater",
    "Concert",
    "Talk",
    "Study Break",
    "Movie Screening",
    "Game",
    "Sale",
    "Rally",
    "Dance",
    "Party",
    "Class Presentation",
]

CONTENT_TAGS: List[str] = [
    "EECS",
    "AI",
    "Math",
    "Biology",
    "Finance",
    "Career",
    "East Asian",
    "Religion",
    "Queer",
]

AMENITIES_TAGS: List[str] = ["Free Food", "Boba", "Food", "None"]

_FORM_TAG_LIST = ", ".join(FORM_TAGS)
_CONTENT_TAG_LIST = ", ".join(CONTENT_TAGS)

_PROMPT_INTRO = f"""You are a campus event tagger. Your job is to reason whether given tags apply to a specific event.

Given is an email sent by an MIT student to the dorm spam mailing list (i.e. to all MIT undergrads).
The email has been identified to contain the following event:

Title: {TITLE_PLACEHOLDER}

"""

FORM_TAG_PROMPT = _PROMPT_INTRO + f"""The email body might contain multiple events, but you only need to identify the form tag for the event above.

Start with the form of the event. Possible event forms (choose the closest one) (after | is explanation, not part of tag):
- Theater (like a play or a musical, relating to theater)
- Concert
- Talk | (including workshops)
- Movie Screening
- Game
- Sale | (including fundraising)
- Dance | (dance show or dance party)
- Rally
- Party | (including carnivals and festivals)
- Class Presentation | (usually by students demonstrating their class projects)
- Study Break | (relaxing event usually with food)

Go through each tag above and give reasons whether each tag applies. Then finally give the tag you choose and why you choose it.

Your answer must begin with: "Out of the the tags [{_FORM_TAG_LIST}]..."
"""

CONTENT_TAG_PROMPT = _PROMPT_INTRO + f"""The email body might contain multiple events, but you only need to identify the (up to two) content tags for the event above.

The event's content focuses on (choose at most two, don't have to choose any if not relevant):
- EECS | (Electrical Engineering and Computer Science)
- AI
- Math
- Biology
- Finance | (including Quant)
- Career | (related to jobs and industries)
- East Asian
- Religion
- Queer | (only if LGBTQ+ is specifically mentioned. Mentioning of a queer color doesn't count.)

Go through each tag above and give reasons whether each tag applies. Then finally give the tag you choose and why you choose it (or why none applies).

Your answer must begin with: "Out of the the tags [{_CONTENT_TAG_LIST}]..."
"""

AMENITIES_TAG_PROMPT = _PROMPT_INTRO + """The email body might contain multiple events, but you only need to identify whether the specified event contains food or boba.

If you think the email contains food, snacks, or boba, output the part of the email that indicates whether the event contains food or boba.

If you think the email does not contain food, snacks, or boba, say why the event is unlikely to provide any edible items.

At the end of your reasoning, suggest a tag from ["Food", "Boba", "None"]. (Pick boba if the event provides both)
"""

EVENT_FORM_TAG_FUNCTION = {
    "name": "tag_event_form",
    "description": "Add form tag to event",
    "parameters": {
        "type": "object",
        "properties": {
            "form_tag": {
                "type": "string",
                "description": "The tag of the form of the event.",
                "enum": FORM_TAGS,
            }
        },
        "required": ["form_tag"],
    },
}

EVENT_AMENITIES_TAG_FUNCTION = {
    "name": "tag_event_amenities",
    "description": "Add amenities tag to event",
    "parameters": {
        "type": "object",
        "properties": {
            "amenities_tag": {
                "type": "string",
                "description": "The tag of the amenities of the event (not necessary).",
                "enum": AMENITIES_TAGS,
            },
            "type_of_food": {
                "type": "string",
                "description": "What food the event provides, if tagged with 'Free Food'.",
            },
        },
        "required": ["amenities_tag", "type_of_food"],
    },
}

FORM_CATEGORY = TagCategory(
    name="form",
    prompt_template=FORM_TAG_PROMPT,
    allowed_tags=frozenset(FORM_TAGS),
    backend=ExtractionBackend.FUNCTION_CALL,
    function=EVENT_FORM_TAG_FUNCTION,
)

CONTENT_CATEGORY = TagCategory(
    name="content",
    prompt_template=CONTENT_TAG_PROMPT,
    allowed_tags=frozenset(CONTENT_TAGS),
    backend=ExtractionBackend.FREEFORM_JSON,
    max_tags=2,
)

AMENITIES_CATEGORY = TagCategory(
    name="amenities",
    prompt_template=AMENITIES_TAG_PROMPT,
    allowed_tags=frozenset(AMENITIES_TAGS),
    backend=ExtractionBackend.FUNCTION_CALL,
    function=EVENT_AMENITIES_TAG_FUNCTION,
)

DEFAULT_CATEGORIES: List[TagCategory] = [FORM_CATEGORY, CONTENT_CATEGORY, AMENITIES_CATEGORY]