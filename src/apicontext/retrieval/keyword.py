"""BM25 keyword index over API endpoints.

Scores endpoints by relevance using Okapi BM25 over a bag of field-weighted
terms: a token found in an endpoint's name counts more than one found in its
description or parameters. Pure stdlib, no numpy or sklearn.
"""

from __future__ import annotations

import hashlib
import math
import re
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from src.apicontext.models import Collection, Endpoint
from src.utils.logger import get_logger

from .models import AnalyzedQuery, SearchOptions, SearchResult

logger = get_logger("EndpointIndex")

BM25_K1 = 1.5
BM25_B = 0.75

# Field weights: name > path > folder > description > parameters/responses
FIELD_WEIGHTS: dict[str, float] = {
    "name": 4.0,
    "path": 3.0,
    "folder": 2.0,
    "description": 1.5,
    "parameters": 1.0,
    "responses": 1.0,
}

ENTITY_TERM_BOOST = 1.8
PATH_HINT_BOOST = 3.0
AUTH_INTENT_BOOST = 2.0
STATUS_CODE_BOOST = 2.5

_CAMEL_RE = re.compile(r"([a-z0-9])([A-Z])")
_SPLIT_RE = re.compile(r"[^a-z0-9]+")
_STATUS_TOKEN_RE = re.compile(r"^[1-5]\d{2}$")


def stem(token: str) -> str:
    """Strip a few common English suffixes so "users"/"user" collide."""
    if len(token) < 4:
        return token
    if token.endswith("tion"):
        return token[:-4]
    if token.endswith("ing") and len(token) > 5:
        return token[:-3]
    if token.endswith("ed") and len(token) > 4:
        return token[:-2]
    if token.endswith("s") and not token.endswith("ss"):
        return token[:-1]
    return token


def tokenize(text: Optional[str]) -> list[str]:
    """Split camelCase and punctuation, lowercase, drop noise, stem.

    Pure numbers are dropped except HTTP status codes, which are indexed so
    "404" can find endpoints that document it.
    """
    if not text:
        return []
    words = _SPLIT_RE.split(_CAMEL_RE.sub(r"\1 \2", text).lower())
    tokens = []
    for word in words:
        if len(word) < 2:
            continue
        if word.isdigit() and not _STATUS_TOKEN_RE.match(word):
            continue
        tokens.append(stem(word))
    return tokens


def _field_texts(endpoint: Endpoint) -> dict[str, str]:
    return {
        "name": endpoint.name,
        "path": endpoint.path,
        "folder": endpoint.folder,
        "description": endpoint.description or "",
        "parameters": " ".join(
            f"{p.name} {p.description or ''}" for p in endpoint.parameters
        ),
        "responses": " ".join(
            f"{r.status_code} {r.description}" for r in endpoint.responses
        ),
    }


def collection_fingerprint(collection: Collection) -> str:
    """Stable digest of everything an index and its rendered endpoints carry.

    Any edit to an endpoint (description, parameters, responses, ...), the
    base URL or the auth schemes yields a new fingerprint.
    """
    digest = hashlib.sha1(collection.title.encode("utf-8"))
    digest.update(f"\x1d{collection.base_url}".encode("utf-8"))
    for scheme in collection.auth_schemes:
        digest.update(b"\x1d" + scheme.model_dump_json().encode("utf-8"))
    for ep in collection.endpoints:
        digest.update(b"\x1f" + ep.model_dump_json().encode("utf-8"))
    return digest.hexdigest()


@dataclass
class IndexedDocument:
    endpoint: Endpoint
    position: int
    field_lengths: dict[str, int]
    field_terms: dict[str, frozenset[str]]
    length: float


@dataclass
class EndpointIndex:
    """Inverted index for one collection. Read-only once built."""
    collection_title: str
    fingerprint: str
    documents: dict[str, IndexedDocument] = field(default_factory=dict)
    postings: dict[str, dict[str, float]] = field(default_factory=dict)
    idf: dict[str, float] = field(default_factory=dict)
    avg_doc_length: float = 1.0
    built_at: float = field(default_factory=time.time)

    @property
    def document_count(self) -> int:
        return len(self.documents)

    @property
    def vocabulary_size(self) -> int:
        return len(self.postings)

    def search(
        self,
        query: AnalyzedQuery,
        options: Optional[SearchOptions] = None,
    ) -> list[SearchResult]:
        """Rank endpoints against the query's keywords and entity terms.

        Results scoring at or below ``options.min_score`` are dropped. Ties
        keep collection order. Freshly computed on every call.
        """
        options = options or SearchOptions()
        query_terms = _query_terms(query.keywords + query.entity_terms)
        if not query_terms:
            return []

        entity_stems: set[str] = set()
        if options.boost_entity_terms:
            entity_stems = set(_query_terms(query.entity_terms))
        method_filter = (options.method_filter or "any").upper()

        scores: dict[str, float] = {}
        matched: dict[str, list[str]] = {}
        for term in query_terms:
            postings = self.postings.get(term)
            if not postings:
                continue
            idf = self.idf[term]
            for endpoint_id, tf in postings.items():
                doc = self.documents[endpoint_id]
                if method_filter != "ANY" and doc.endpoint.method != method_filter:
                    continue
                norm = 1 - BM25_B + BM25_B * (doc.length / self.avg_doc_length)
                term_score = idf * (tf * (BM25_K1 + 1)) / (tf + BM25_K1 * norm)
                if term in entity_stems:
                    term_score *= ENTITY_TERM_BOOST
                scores[endpoint_id] = scores.get(endpoint_id, 0.0) + term_score
                matched.setdefault(endpoint_id, []).append(term)

        results: list[SearchResult] = []
        for endpoint_id, score in scores.items():
            doc = self.documents[endpoint_id]
            score *= _document_boost(doc.endpoint, query)
            if score <= options.min_score:
                continue
            terms = matched[endpoint_id]
            fields = tuple(
                name for name in FIELD_WEIGHTS
                if doc.field_terms[name].intersection(terms)
            )
            results.append(
                SearchResult(
                    endpoint=doc.endpoint,
                    score=score,
                    matched_terms=tuple(terms),
                    matched_fields=fields,
                )
            )

        results.sort(key=lambda r: (-r.score, self.documents[r.endpoint.id].position))
        return results[:options.top_k]


def _query_terms(words: tuple[str, ...]) -> list[str]:
    seen: set[str] = set()
    terms: list[str] = []
    for word in words:
        for token in tokenize(word):
            if token not in seen:
                seen.add(token)
                terms.append(token)
    return terms


def _document_boost(endpoint: Endpoint, query: AnalyzedQuery) -> float:
    boost = 1.0
    if query.endpoint_hint and query.endpoint_hint.lower() in endpoint.path.lower():
        boost *= PATH_HINT_BOOST
    if query.intent == "understand_auth" and endpoint.is_auth_related:
        boost *= AUTH_INTENT_BOOST
    if query.status_code_hint is not None:
        code = str(query.status_code_hint)
        if any(r.status_code == code for r in endpoint.responses):
            boost *= STATUS_CODE_BOOST
    return boost


def build_index(collection: Collection) -> EndpointIndex:
    """Tokenize every endpoint and compute BM25 statistics for the corpus."""
    started = time.perf_counter()
    index = EndpointIndex(
        collection_title=collection.title,
        fingerprint=collection_fingerprint(collection),
    )

    for position, endpoint in enumerate(collection.endpoints):
        if endpoint.id in index.documents:
            logger.warning(
                f"⚠️ Duplicate endpoint id '{endpoint.id}' in '{collection.title}', keeping first"
            )
            continue

        weighted: Counter = Counter()
        field_lengths: dict[str, int] = {}
        field_terms: dict[str, frozenset[str]] = {}
        for name, text in _field_texts(endpoint).items():
            tokens = tokenize(text)
            field_lengths[name] = len(tokens)
            field_terms[name] = frozenset(tokens)
            for token in tokens:
                weighted[token] += FIELD_WEIGHTS[name]

        index.documents[endpoint.id] = IndexedDocument(
            endpoint=endpoint,
            position=position,
            field_lengths=field_lengths,
            field_terms=field_terms,
            length=sum(weighted.values()),
        )
        for term, tf in weighted.items():
            index.postings.setdefault(term, {})[endpoint.id] = tf

    total_docs = len(index.documents)
    if total_docs:
        avg = sum(d.length for d in index.documents.values()) / total_docs
        index.avg_doc_length = avg or 1.0

    # Probabilistic IDF, kept positive with the +1 inside the log
    for term, postings in index.postings.items():
        df = len(postings)
        index.idf[term] = math.log((total_docs - df + 0.5) / (df + 0.5) + 1)

    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        f"📚 Built index for '{collection.title}': {total_docs} endpoints, "
        f"{len(index.postings)} terms in {elapsed_ms:.1f}ms"
    )
    return index
