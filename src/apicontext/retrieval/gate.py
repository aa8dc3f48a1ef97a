"""Context gate: decides whether a message needs API context at all.

Runs before any analysis or search, so it only does a handful of anchored
regex checks. Decisions:

- ``none``: conversational turn (greeting, thanks, meta question), send nothing.
- ``history``: repeat/rephrase request, conversation context is enough.
- ``filter``: run the full analyze → search → tier pipeline.
"""

from __future__ import annotations

import re
from typing import Sequence

from src.apicontext.models import ChatMessage
from src.utils.logger import get_logger

from .models import ContextDecision
from .signals import METHOD_RE, PATH_RE, has_api_signal

SHORT_MESSAGE_WORDS = 2
CONVERSATIONAL_MESSAGE_WORDS = 6

GREETING_PATTERNS = (
    re.compile(r"^(hi|hello|hey|howdy|hola|sup|yo|greetings)\b", re.IGNORECASE),
    re.compile(r"^good\s+(morning|afternoon|evening|night)\b", re.IGNORECASE),
    re.compile(r"^what'?s?\s+up\b", re.IGNORECASE),
)

ACKNOWLEDGEMENT_PATTERNS = (
    re.compile(
        r"^(thanks|thank\s+you|thx|ty|cheers|great|awesome|perfect|cool|nice|ok|okay|"
        r"got\s+it|understood|sure|noted|alright)\b",
        re.IGNORECASE,
    ),
    re.compile(r"^(that'?s?\s+)?(helpful|clear|good|enough|all)\b", re.IGNORECASE),
    re.compile(r"^(no\s+)?(more\s+)?(questions?|that'?s?\s+it|that'?s?\s+all)\b", re.IGNORECASE),
)

META_QUESTION_PATTERNS = (
    re.compile(r"^(who|what)\s+are\s+you\b", re.IGNORECASE),
    re.compile(r"^(can|what\s+can)\s+you\s+(do|help)\b", re.IGNORECASE),
    re.compile(r"^how\s+do(es)?\s+(this|you)\s+work\b", re.IGNORECASE),
    re.compile(r"^help\b", re.IGNORECASE),
)

REPEAT_PATTERNS = (
    re.compile(r"^(say\s+that\s+again|repeat|come\s+again)\b", re.IGNORECASE),
    re.compile(
        r"^(can\s+you\s+)?(rephrase|clarify|explain\s+(that|it)\s*(again|more)?)\b",
        re.IGNORECASE,
    ),
)


def _matches_any(message: str, patterns: Sequence[re.Pattern]) -> bool:
    return any(p.search(message) for p in patterns)


class ContextGate:
    """Cheap pre-classifier run on every chat turn."""

    def __init__(self) -> None:
        self.logger = get_logger("ContextGate")

    def decide(self, message: str, history: Sequence[ChatMessage]) -> ContextDecision:
        decision = self._decide(message or "", history)
        self.logger.debug(f"🚦 Gate decision '{decision}' for {len(message or '')}-char message")
        return decision

    def _decide(self, message: str, history: Sequence[ChatMessage]) -> ContextDecision:
        trimmed = message.strip()
        word_count = len(trimmed.split())
        no_signal = not has_api_signal(trimmed)

        if word_count <= SHORT_MESSAGE_WORDS and no_signal:
            if not PATH_RE.search(trimmed) and not METHOD_RE.search(trimmed):
                return "none"

        if _matches_any(trimmed, GREETING_PATTERNS):
            return "none"

        if _matches_any(trimmed, ACKNOWLEDGEMENT_PATTERNS):
            return "none"

        if _matches_any(trimmed, META_QUESTION_PATTERNS):
            return "none"

        if _matches_any(trimmed, REPEAT_PATTERNS):
            return "history" if len(history) > 0 else "none"

        if word_count <= CONVERSATIONAL_MESSAGE_WORDS and no_signal:
            return "none"

        return "filter"
