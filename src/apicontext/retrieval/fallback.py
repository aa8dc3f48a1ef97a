"""Escalating fallback search.

Short or jargon-heavy developer questions often match nothing on a strict
first pass. The orchestrator walks an ordered ladder of (query transform,
search options) steps, loosening precision for recall, and returns the first
non-empty result list.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Callable, Sequence

from src.utils.logger import get_logger

from .keyword import EndpointIndex
from .models import AnalyzedQuery, SearchOptions, SearchResult

DEFAULT_TOP_K = 15


@dataclass(frozen=True)
class FallbackStep:
    """One rung of the ladder."""
    name: str
    applies: Callable[[AnalyzedQuery], bool]
    transform: Callable[[AnalyzedQuery], AnalyzedQuery]
    min_score: float
    use_method_hint: bool = False
    boost_entity_terms: bool = True
    top_k: int = DEFAULT_TOP_K

    def options_for(self, query: AnalyzedQuery) -> SearchOptions:
        return SearchOptions(
            top_k=self.top_k,
            min_score=self.min_score,
            method_filter=query.method_hint if self.use_method_hint else "any",
            boost_entity_terms=self.boost_entity_terms,
        )


def _entity_terms_only(query: AnalyzedQuery) -> AnalyzedQuery:
    return dataclasses.replace(query, keywords=query.entity_terms, method_hint="any")


def _first_keyword_only(query: AnalyzedQuery) -> AnalyzedQuery:
    return dataclasses.replace(
        query,
        keywords=query.keywords[:1],
        entity_terms=(),
        method_hint="any",
    )


DEFAULT_FALLBACK_LADDER: tuple[FallbackStep, ...] = (
    FallbackStep(
        name="full_query",
        applies=lambda q: True,
        transform=lambda q: q,
        min_score=0.10,
        use_method_hint=True,
        boost_entity_terms=True,
    ),
    FallbackStep(
        name="entity_terms",
        applies=lambda q: bool(q.entity_terms),
        transform=_entity_terms_only,
        min_score=0.05,
        boost_entity_terms=True,
    ),
    FallbackStep(
        name="first_keyword",
        applies=lambda q: bool(q.keywords),
        transform=_first_keyword_only,
        min_score=0.01,
        boost_entity_terms=False,
    ),
)


class SearchOrchestrator:
    """Runs the fallback ladder against an index."""

    def __init__(self, ladder: Sequence[FallbackStep] = DEFAULT_FALLBACK_LADDER) -> None:
        self.ladder = tuple(ladder)
        self.logger = get_logger("SearchOrchestrator")

    def search_with_fallback(
        self,
        index: EndpointIndex,
        query: AnalyzedQuery,
    ) -> list[SearchResult]:
        """Return the first non-empty step's results, or [] when every step misses.

        An empty return means the caller should fall back to the
        collection-wide summary rather than show nothing.
        """
        for step in self.ladder:
            if not step.applies(query):
                continue
            step_query = step.transform(query)
            results = index.search(step_query, step.options_for(step_query))
            if results:
                self.logger.debug(
                    f"🔍 Fallback step '{step.name}' matched {len(results)} endpoint(s)"
                )
                return results
        self.logger.debug("🔍 All fallback steps empty, caller will use global summary")
        return []
