"""Heuristic query analyzer.

Turns one chat message into search signal: an intent, ordered keywords,
entity terms (the nouns worth boosting), and HTTP method / status code / path
hints. No models or embeddings. The intent taxonomy is fixed, the trigger
phrase lists below are tuned by hand.

Long messages (pasted logs, stack traces, multi-paragraph questions) are
reduced to their most API-dense span before analysis so keyword sets stay
small and precise.
"""

from __future__ import annotations

import re
from typing import Optional, Sequence

from src.apicontext.models import ChatMessage

from .models import AnalyzedQuery, MethodHint, QueryIntent
from .signals import PATH_RE, count_api_signals

MAX_QUERY_CHARS = 500
MAX_FRAGMENT_SEGMENTS = 3
MAX_KEYWORDS = 10
MAX_FOLLOW_UP_WORDS = 10

GLOBAL_QUERY_SIGNALS = (
    "all endpoints", "all routes", "all apis", "all the endpoints",
    "list all", "show all", "list endpoints", "list the endpoints",
    "summarize", "summary of", "overview", "what can", "what does this api",
    "how many endpoints", "full list", "everything", "complete list",
    "what endpoints", "which endpoints", "available endpoints",
)

STOP_WORDS = frozenset({
    "the", "a", "an", "is", "it", "in", "on", "at", "to", "for",
    "of", "and", "or", "but", "how", "what", "where", "when", "why",
    "do", "does", "did", "can", "could", "would", "should", "will", "i",
    "me", "my", "this", "that", "with", "from", "by", "be", "am",
    "are", "was", "were", "been", "being", "have", "has", "had",
    "you", "your", "we", "our", "us", "they", "their", "there", "here",
    "which", "who", "if", "so", "as", "not", "no", "any", "all", "some",
    "please", "about", "into", "than", "then", "just", "also", "these",
    "those", "its", "way", "need", "want", "know", "tell",
    "endpoint", "endpoints", "api", "apis", "request", "requests",
    "response", "responses", "call", "calls", "use", "using",
})

# Keywords that describe an action rather than name a resource
COMMON_VERBS = frozenset({
    "get", "gets", "create", "creates", "show", "list", "fetch", "retrieve",
    "read", "find", "search", "load", "download", "add", "post", "submit",
    "insert", "register", "upload", "update", "updates", "edit", "modify",
    "change", "replace", "set", "patch", "put", "delete", "deletes",
    "remove", "destroy", "cancel", "revoke", "return", "returns",
    "returned", "returning", "give", "make", "send", "run", "execute",
    "try", "test", "explain", "describe", "work", "works", "happen",
    "happens", "mean", "means", "new", "every", "able", "only", "like",
    "help", "see", "look", "check", "handle", "fix", "fail", "fails",
    "failing", "failed", "compare", "versus", "vs", "difference", "between",
})

_METHOD_LITERAL_RE = re.compile(
    r"\b(GET|POST|PUT|PATCH|DELETE|HEAD|OPTIONS)\s*/", re.IGNORECASE
)
_METHOD_WORD_RE = re.compile(r"\b(GET|POST|PUT|PATCH|DELETE)\b", re.IGNORECASE)
_STATUS_CODE_RE = re.compile(r"\b([1-5]\d{2})\b")
_URL_HOST_RE = re.compile(r"https?://[^\s/]+", re.IGNORECASE)
_NORMALIZE_RE = re.compile(r"[^\w\s/\-.{}]")
_WHITESPACE_RE = re.compile(r"\s+")
_WORD_SPLIT_RE = re.compile(r"[\s/]+")
_SEGMENT_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\n+")

_AUTH_RE = re.compile(
    r"\b(auth|authenticat\w*|authoriz\w*|oauth2?|login|log\s+in|sign\s+in|"
    r"bearer|api[\s-]?keys?|apikey|tokens?|jwt|credentials?)\b"
)
_LIST_RE = re.compile(r"\b(list|enumerate|show)\b.*\b(endpoints|routes|operations)\b")
_COMPARE_RE = re.compile(r"\b(compare|comparison|difference|differences|differ|vs|versus)\b")
_RUN_RE = re.compile(r"\b(run|execute|call|try|send|invoke)\b")
_LOOKUP_RE = re.compile(r"\b(which|where|find)\b.*\b(endpoint|route|operation)\b")

_FOLLOW_UP_LEAD_RE = re.compile(
    r"^(and|also|what\s+about|how\s+about|same\s+for|then|ok\s+and|so)\b",
    re.IGNORECASE,
)
_REFERENTIAL_RE = re.compile(
    r"\b(it|its|that|this|those|these|them|same|above|previous)\b",
    re.IGNORECASE,
)


def normalize(text: str) -> str:
    """Lowercase, drop URL hosts and punctuation (paths and braces survive)."""
    text = _URL_HOST_RE.sub(" ", text.lower())
    text = _NORMALIZE_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def extract_searchable_fragment(text: str) -> str:
    """Reduce a long message to its most API-signal-dense contiguous span.

    Messages up to MAX_QUERY_CHARS are returned unchanged. Longer ones are
    split into sentences/lines; the contiguous run of up to
    MAX_FRAGMENT_SEGMENTS segments (within MAX_QUERY_CHARS) with the most
    signal wins, ties going to the shorter and then the earlier span. With no
    signal anywhere the opening MAX_QUERY_CHARS characters are kept.
    """
    text = (text or "").strip()
    if len(text) <= MAX_QUERY_CHARS:
        return text

    segments = [s.strip() for s in _SEGMENT_SPLIT_RE.split(text) if s and s.strip()]
    signals = [count_api_signals(s) for s in segments]

    best: Optional[tuple[tuple[int, int, int], int, int]] = None
    for start in range(len(segments)):
        length = -1
        score = 0
        for end in range(start, min(start + MAX_FRAGMENT_SEGMENTS, len(segments))):
            length += len(segments[end]) + 1
            if length > MAX_QUERY_CHARS:
                break
            score += signals[end]
            key = (score, -length, -start)
            if score > 0 and (best is None or key > best[0]):
                best = (key, start, end)

    if best is None:
        return text[:MAX_QUERY_CHARS]
    _, start, end = best
    return " ".join(segments[start:end + 1])


def _detect_method_hint(original: str) -> MethodHint:
    literal = _METHOD_LITERAL_RE.search(original)
    if literal:
        return literal.group(1).upper()  # type: ignore[return-value]
    word = _METHOD_WORD_RE.search(original)
    if word:
        return word.group(1).upper()  # type: ignore[return-value]
    return "any"


def _path_references(normalized: str) -> list[str]:
    refs: list[str] = []
    for match in PATH_RE.finditer(normalized):
        ref = match.group(0).rstrip("-/")
        if ref and ref not in refs:
            refs.append(ref)
    return refs


def _extract_keywords(normalized: str) -> tuple[str, ...]:
    seen: set[str] = set()
    keywords: list[str] = []
    for raw in _WORD_SPLIT_RE.split(normalized):
        word = raw.strip(".-_")
        if len(word) < 2 or word.startswith("{") or word.endswith("}"):
            continue
        if word in STOP_WORDS or word.isdigit() or word in seen:
            continue
        seen.add(word)
        keywords.append(word)
    # Longer words are usually more specific; sort is stable for equal lengths
    keywords.sort(key=len, reverse=True)
    return tuple(keywords[:MAX_KEYWORDS])


def _detect_intent(
    normalized: str,
    is_global_query: bool,
    method_hint: MethodHint,
    entity_terms: tuple[str, ...],
    endpoint_hint: Optional[str],
    status_code_hint: Optional[int],
) -> QueryIntent:
    if _AUTH_RE.search(normalized):
        return "understand_auth"
    if is_global_query or _LIST_RE.search(normalized):
        return "list_endpoints"
    if _COMPARE_RE.search(normalized):
        return "compare_endpoints"
    if _RUN_RE.search(normalized):
        return "run_request"
    if (
        (method_hint != "any" and entity_terms)
        or endpoint_hint is not None
        or status_code_hint is not None
        or _LOOKUP_RE.search(normalized)
    ):
        return "lookup_endpoint"
    return "general"


class QueryAnalyzer:
    """Classifies a chat message into an AnalyzedQuery. Never raises."""

    def analyze(self, text: Optional[str]) -> AnalyzedQuery:
        raw_text = text if isinstance(text, str) else ("" if text is None else str(text))
        fragment = extract_searchable_fragment(raw_text)
        normalized = normalize(fragment)
        if not normalized:
            return AnalyzedQuery(raw_text=raw_text)

        method_hint = _detect_method_hint(fragment)
        status = _STATUS_CODE_RE.search(normalized)
        status_code_hint = int(status.group(1)) if status else None
        paths = _path_references(normalized)
        endpoint_hint = paths[0] if paths else None

        # A query that names a concrete path is never an overview request
        is_global_query = endpoint_hint is None and any(
            signal in normalized for signal in GLOBAL_QUERY_SIGNALS
        )

        keywords = _extract_keywords(normalized)
        entity_terms = tuple(k for k in keywords if k not in COMMON_VERBS)
        intent = _detect_intent(
            normalized,
            is_global_query,
            method_hint,
            entity_terms,
            endpoint_hint,
            status_code_hint,
        )
        is_single_endpoint_query = (
            not is_global_query
            and len(paths) == 1
            and intent in ("lookup_endpoint", "run_request")
        )

        return AnalyzedQuery(
            raw_text=raw_text,
            normalized=normalized,
            intent=intent,
            method_hint=method_hint,
            keywords=keywords,
            entity_terms=entity_terms,
            status_code_hint=status_code_hint,
            endpoint_hint=endpoint_hint,
            is_global_query=is_global_query,
            is_single_endpoint_query=is_single_endpoint_query,
        )

    def is_follow_up(self, message: str, history: Sequence[ChatMessage]) -> bool:
        """True for short referential messages ("and the response?") after an answer."""
        if not any(m.role == "assistant" for m in history):
            return False
        text = (message or "").strip()
        if not text or len(text.split()) > MAX_FOLLOW_UP_WORDS:
            return False
        if PATH_RE.search(text):
            return False
        return bool(_FOLLOW_UP_LEAD_RE.search(text) or _REFERENTIAL_RE.search(text))


def format_query_summary(query: AnalyzedQuery) -> str:
    """One-line debug rendering of an AnalyzedQuery."""
    parts = [
        f"intent={query.intent}",
        f"method={query.method_hint}",
        f"entities=[{','.join(query.entity_terms)}]",
        f"keywords=[{','.join(query.keywords)}]",
    ]
    if query.status_code_hint is not None:
        parts.append(f"status={query.status_code_hint}")
    if query.endpoint_hint is not None:
        parts.append(f"path={query.endpoint_hint}")
    if query.is_global_query:
        parts.append("global=true")
    if query.is_single_endpoint_query:
        parts.append("single=true")
    return " ".join(parts)
