"""API-signal detection shared by the context gate and the query analyzer.

A message carries "API signal" when it mentions API vocabulary, an HTTP
method, a URL path or an HTTP status code. All checks are single regex scans.
"""

from __future__ import annotations

import re

API_SIGNAL_TERMS = (
    "endpoint", "api", "request", "response", "status",
    "auth", "token", "header", "body", "param",
    "schema", "model", "field", "property",
    "curl", "fetch", "http", "rest",
    "collection", "swagger", "openapi", "postman",
    "error", "url", "json", "payload", "query", "webhook",
)

# Prefix match at a word start: "params", "headers", "apis" all count
API_TERM_RE = re.compile(r"\b(?:" + "|".join(API_SIGNAL_TERMS) + r")", re.IGNORECASE)
METHOD_RE = re.compile(r"\b(GET|POST|PUT|PATCH|DELETE)\b")
PATH_RE = re.compile(r"(?<![\w/:])/[a-z][a-z0-9_\-/{}]*", re.IGNORECASE)
STATUS_CODE_RE = re.compile(r"\b[1-5]\d{2}\b")


def has_api_signal(text: str) -> bool:
    return bool(
        API_TERM_RE.search(text)
        or METHOD_RE.search(text)
        or PATH_RE.search(text)
        or STATUS_CODE_RE.search(text)
    )


def count_api_signals(text: str) -> int:
    """Number of distinct signal hits, used to rank spans of a long message."""
    return (
        len(API_TERM_RE.findall(text))
        + len(METHOD_RE.findall(text))
        + len(PATH_RE.findall(text))
        + len(STATUS_CODE_RE.findall(text))
    )
