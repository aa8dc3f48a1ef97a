"""Tiered, budget-aware context assembly.

Full tier: complete endpoint section (~400 tokens each).
Summary tier: one-line mention (~60 tokens each).
Excluded: omitted, counted in the footer.

Tiering is a pure function of (results, query). Rendering walks the tiers
against the token budget and degrades instead of failing: a full entry that
does not fit becomes a summary line, a summary line that does not fit is
dropped. The markdown is never empty.
"""

from __future__ import annotations

import dataclasses
from typing import Sequence

from src.apicontext.models import ChatMessage, Collection
from src.utils.logger import get_logger

from .continuity import HISTORY_SCAN_DEPTH, extract_mentioned_endpoints
from .formatting import (
    format_endpoint_full,
    format_endpoint_summary,
    format_global_summary,
)
from .models import (
    TOKEN_BUDGETS,
    AnalyzedQuery,
    BudgetMode,
    BuiltContext,
    ContextCounts,
    HistoryContext,
    SearchResult,
    TieredEndpoint,
)
from .tokens import estimate_tokens

FULL_DETAIL_TOKENS = 400
SUMMARY_TOKENS = 60

FULL_DETAIL_THRESHOLD = 0.8
SUMMARY_THRESHOLD = 0.3
SINGLE_ENDPOINT_THRESHOLD = 0.9

MAX_FULL_DETAIL = 5
MAX_SUMMARY = 10
MAX_AUTH_PROMOTIONS = 3

SUMMARY_SECTION_HEADER = "\n## Related Endpoints (Summary)\n"


def _tiered(result: SearchResult, tier: str) -> TieredEndpoint:
    cost = {"full": FULL_DETAIL_TOKENS, "summary": SUMMARY_TOKENS}.get(tier, 0)
    return TieredEndpoint(
        endpoint=result.endpoint,
        tier=tier,
        score=result.score,
        estimated_tokens=cost,
    )


def promote_auth_endpoints(tiered: Sequence[TieredEndpoint]) -> tuple[TieredEndpoint, ...]:
    """Lift auth-related endpoints for auth questions. Returns a new tuple.

    Up to three auth-related entries not already full are promoted to full.
    Auth-related entries still excluded after that are promoted to summary.
    """
    promoted: list[TieredEndpoint] = []
    promotions = 0
    for item in tiered:
        if item.endpoint.is_auth_related and item.tier != "full":
            if promotions < MAX_AUTH_PROMOTIONS:
                item = dataclasses.replace(item, tier="full", estimated_tokens=FULL_DETAIL_TOKENS)
                promotions += 1
            elif item.tier == "excluded":
                item = dataclasses.replace(item, tier="summary", estimated_tokens=SUMMARY_TOKENS)
        promoted.append(item)
    return tuple(promoted)


class ContextBudgetBuilder:
    """Turns ranked search results into a budgeted markdown context."""

    def __init__(self) -> None:
        self.logger = get_logger("ContextBudgetBuilder")

    def assign_tiers(
        self,
        results: Sequence[SearchResult],
        query: AnalyzedQuery,
    ) -> tuple[TieredEndpoint, ...]:
        """Assign full/summary/excluded by score relative to the top result.

        ``results`` must already be sorted by score descending.
        """
        if not results:
            return ()

        max_score = results[0].score or 1.0

        # Single-endpoint shortcut: the named endpoint alone, in full
        if query.is_single_endpoint_query and results[0].score / max_score > SINGLE_ENDPOINT_THRESHOLD:
            tiered = (_tiered(results[0], "full"),) + tuple(
                _tiered(r, "excluded") for r in results[1:]
            )
        elif query.intent == "list_endpoints":
            # Breadth over depth
            cap = MAX_FULL_DETAIL + MAX_SUMMARY
            tiered = tuple(
                _tiered(r, "summary" if i < cap else "excluded")
                for i, r in enumerate(results)
            )
        else:
            items: list[TieredEndpoint] = []
            full_count = summary_count = 0
            for r in results:
                norm = r.score / max_score
                if full_count < MAX_FULL_DETAIL and norm >= FULL_DETAIL_THRESHOLD:
                    items.append(_tiered(r, "full"))
                    full_count += 1
                elif summary_count < MAX_SUMMARY and norm >= SUMMARY_THRESHOLD:
                    items.append(_tiered(r, "summary"))
                    summary_count += 1
                else:
                    items.append(_tiered(r, "excluded"))
            tiered = tuple(items)

        if query.intent == "understand_auth":
            tiered = promote_auth_endpoints(tiered)
        return tiered

    def build(
        self,
        query: AnalyzedQuery,
        results: Sequence[SearchResult],
        collection: Collection,
        budget_mode: BudgetMode = "balanced",
    ) -> BuiltContext:
        """Render the context for one request within ``budget_mode``'s token budget."""
        total = len(collection.endpoints)

        if query.is_global_query:
            markdown = format_global_summary(collection)
            return BuiltContext(
                markdown=markdown,
                total_estimated_tokens=estimate_tokens(markdown),
                counts=ContextCounts(total=total, full_detail=0, summary=total, excluded=0),
                budget_mode=budget_mode,
                is_global_context=True,
                truncated=False,
            )

        if not results:
            self.logger.debug("📭 No search results, falling back to collection index")
            return self.build(
                dataclasses.replace(query, is_global_query=True),
                results,
                collection,
                budget_mode,
            )

        budget = TOKEN_BUDGETS[budget_mode]
        tiered = self.assign_tiers(results, query)
        full_count = 0
        summary_count = 0
        truncated = False

        auth_summary = ", ".join(a.type for a in collection.auth_schemes) or "None"
        relevant = sum(1 for t in tiered if t.tier != "excluded")
        header = "\n".join([
            f"# {collection.title} API",
            f"Base URL: `{collection.base_url}`",
            f"Auth: {auth_summary}",
            "",
            f"> Context: {relevant} of {total} endpoints shown (filtered by relevance)",
            "",
        ])
        sections = [header]
        used = estimate_tokens(header)

        for item in (t for t in tiered if t.tier == "full"):
            if used + item.estimated_tokens <= budget:
                sections.append(format_endpoint_full(item.endpoint))
                used += item.estimated_tokens
                full_count += 1
                continue
            truncated = True
            if used <= budget:
                sections.append(format_endpoint_summary(item.endpoint))
                used += SUMMARY_TOKENS
                summary_count += 1

        summary_items = [t for t in tiered if t.tier == "summary"]
        if summary_items and used < budget:
            sections.append(SUMMARY_SECTION_HEADER)
            used += estimate_tokens(SUMMARY_SECTION_HEADER)
            for item in summary_items:
                if used + SUMMARY_TOKENS > budget:
                    truncated = True
                    break
                sections.append(format_endpoint_summary(item.endpoint))
                used += SUMMARY_TOKENS
                summary_count += 1
        elif summary_items:
            truncated = True

        excluded = max(0, total - full_count - summary_count)
        if excluded > 0:
            sections.append(
                f"\n> {excluded} additional endpoints not shown. "
                "Ask specifically about them if needed."
            )

        if truncated:
            self.logger.debug(
                f"✂️ Context truncated to fit {budget_mode} budget ({used}/{budget} tokens)"
            )

        return BuiltContext(
            markdown="\n".join(sections),
            total_estimated_tokens=used,
            counts=ContextCounts(
                total=total,
                full_detail=full_count,
                summary=summary_count,
                excluded=excluded,
            ),
            budget_mode=budget_mode,
            is_global_context=False,
            truncated=truncated,
        )

    def build_history_only(
        self,
        history: Sequence[ChatMessage],
        collection: Collection,
        depth: int = HISTORY_SCAN_DEPTH,
    ) -> HistoryContext:
        """Header plus summary lines for endpoints the recent conversation named."""
        mentioned = set(extract_mentioned_endpoints(history, collection, depth))
        endpoints = [ep for ep in collection.endpoints if ep.id in mentioned]

        lines = [
            f"# {collection.title} API",
            f"Base URL: `{collection.base_url}`",
            "",
        ]
        if endpoints:
            lines.append("## Recently Discussed Endpoints")
            lines.extend(format_endpoint_summary(ep) for ep in endpoints)
        else:
            lines.append("> Refer to the endpoints discussed earlier in this conversation.")

        return HistoryContext(markdown="\n".join(lines), matched_endpoints=len(endpoints))
