"""Heuristic token estimation (roughly four characters per token)."""

from __future__ import annotations

import math

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Approximate LLM token count for ``text``. Not tokenizer-exact."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)
