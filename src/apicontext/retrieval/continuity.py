"""Conversation continuity boosts.

Endpoints discussed in recent turns get a score bump so a conversation stays
anchored on what it was talking about, and short referential follow-ups
("and the response?") pull the last discussed endpoint back in.
Pure functions over immutable results.
"""

from __future__ import annotations

import dataclasses
import re
from typing import Optional, Sequence

from src.apicontext.models import ChatMessage, Collection, Endpoint

from .models import SearchResult

HISTORY_SCAN_DEPTH = 6
CONTINUITY_BOOST = 1.4
FOLLOW_UP_BOOST = 2.0
FOLLOW_UP_INJECT_FACTOR = 1.5
FOLLOW_UP_MARKER = "(follow-up)"
# Shorter display names ("Get", "List") match too much prose
MIN_NAME_MENTION_CHARS = 4

_METHOD_PATH_RE = re.compile(
    r"\b(get|post|put|patch|delete|head|options)\s+(/[a-z][a-z0-9_\-/{}]*)",
    re.IGNORECASE,
)
_BARE_PATH_RE = re.compile(r"(?<![\w/:])/[a-z][a-z0-9_\-/{}]*", re.IGNORECASE)


def extract_mentioned_endpoints(
    history: Sequence[ChatMessage],
    collection: Collection,
    depth: int = HISTORY_SCAN_DEPTH,
) -> list[str]:
    """Ids of endpoints named in the last ``depth`` turns, in collection order.

    A mention is a ``METHOD /path`` pair, a bare path, or the endpoint's
    display name appearing verbatim (case-insensitive).
    """
    recent = list(history)[-depth:] if depth > 0 else []
    if not recent:
        return []
    combined = "\n".join(m.content for m in recent).lower()

    signatures = {
        (method.upper(), path.rstrip("/").lower() or "/")
        for method, path in _METHOD_PATH_RE.findall(combined)
    }
    paths = {p.rstrip("/").lower() or "/" for p in _BARE_PATH_RE.findall(combined)}

    mentioned: list[str] = []
    for ep in collection.endpoints:
        path = ep.path.rstrip("/").lower() or "/"
        name = ep.name.lower()
        if (
            (ep.method, path) in signatures
            or path in paths
            or (len(name) >= MIN_NAME_MENTION_CHARS and name in combined)
        ):
            if ep.id not in mentioned:
                mentioned.append(ep.id)
    return mentioned


def boost_mentioned_endpoints(
    results: Sequence[SearchResult],
    mentioned_ids: Sequence[str],
    boost_factor: float = CONTINUITY_BOOST,
) -> list[SearchResult]:
    """Multiply scores of recently mentioned endpoints.

    Re-weighting only: never adds or removes results, never lowers a score.
    Order is left to the caller's re-sort.
    """
    if not mentioned_ids:
        return list(results)
    ids = set(mentioned_ids)
    return [
        dataclasses.replace(r, score=r.score * boost_factor) if r.endpoint.id in ids else r
        for r in results
    ]


def get_last_discussed_endpoint(
    history: Sequence[ChatMessage],
    collection: Collection,
) -> Optional[Endpoint]:
    """Most recent endpoint an assistant turn talked about, or None.

    Within one turn a ``method path`` signature beats a display-name match,
    and longer (more specific) matches beat shorter ones.
    """
    for message in reversed(list(history)):
        if message.role != "assistant":
            continue
        content = message.content.lower()

        by_signature = [
            ep for ep in collection.endpoints if ep.signature.lower() in content
        ]
        if by_signature:
            return max(by_signature, key=lambda ep: len(ep.path))

        by_name = [
            ep for ep in collection.endpoints
            if len(ep.name) >= MIN_NAME_MENTION_CHARS and ep.name.lower() in content
        ]
        if by_name:
            return max(by_name, key=lambda ep: len(ep.name))
    return None


def merge_follow_up_results(
    previous: Endpoint,
    results: Sequence[SearchResult],
) -> list[SearchResult]:
    """Reinforce the previously discussed endpoint for a follow-up question.

    Present in results: its score is doubled. Absent: it is injected at the
    top with 1.5x the current top score (1.0 when results are empty).
    """
    if any(r.endpoint.id == previous.id for r in results):
        return [
            dataclasses.replace(r, score=r.score * FOLLOW_UP_BOOST)
            if r.endpoint.id == previous.id else r
            for r in results
        ]

    top_score = max((r.score for r in results), default=0.0)
    injected = SearchResult(
        endpoint=previous,
        score=top_score * FOLLOW_UP_INJECT_FACTOR if results else 1.0,
        matched_terms=(FOLLOW_UP_MARKER,),
        matched_fields=(),
    )
    return [injected, *results]
