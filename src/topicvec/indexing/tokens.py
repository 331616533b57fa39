"""Conservative token estimation used to pick a chunking strategy."""

import math

CHARS_PER_TOKEN = 3.5
SAFETY_FACTOR = 1.2


def estimate_tokens(text: str) -> int:
    """Overestimate the token count of *text*.

    Undercounting could pick a strategy that silently truncates content, so
    the estimate assumes 3.5 characters per token and adds 20% on top.
    """
    return math.ceil((len(text) / CHARS_PER_TOKEN) * SAFETY_FACTOR)
