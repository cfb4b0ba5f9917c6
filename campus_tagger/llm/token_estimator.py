import math
import re

# ASCII word boundaries, so accented letters split words apart
_WORD_BOUNDARY = re.compile(r"\b", re.ASCII)


def estimate_tokens(text: str) -> int:
    """
    Conservative token estimate used for rate limit accounting.

    Takes the larger of a character heuristic (4 characters per token) and a
    word heuristic (0.75 words per token), rounded up.
    """
    crude_estimate = len(text) / 4
    words = [piece for piece in _WORD_BOUNDARY.split(text) if piece.strip()]
    educated_estimate = len(words) / 0.75
    return math.ceil(max(crude_estimate, educated_estimate))
