"""Relevance ranker applied after continuity and follow-up boosts.

Boosts re-weight scores without re-ordering, so results are re-sorted before
tiering. The sort is stable: equal scores keep the order search returned
them in, which is collection order.
"""

from __future__ import annotations

from typing import Sequence

from .models import SearchResult


class RelevanceRanker:
    """Ranks search results by score."""

    def rank(self, results: Sequence[SearchResult]) -> list[SearchResult]:
        """Rank results by score descending, ties keep their incoming order."""
        if not results:
            return []
        return sorted(results, key=lambda r: r.score, reverse=True)
