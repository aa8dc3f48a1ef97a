"""Core data models for the context filter pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal, Optional

if TYPE_CHECKING:
    from src.apicontext.models import Endpoint

QueryIntent = Literal[
    "run_request",
    "understand_auth",
    "compare_endpoints",
    "list_endpoints",
    "lookup_endpoint",
    "general",
]
MethodHint = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS", "any"]
ContextDecision = Literal["none", "history", "filter"]
ContextTier = Literal["full", "summary", "excluded"]
BudgetMode = Literal["conservative", "balanced", "generous"]
BudgetSetting = Literal["conservative", "balanced", "generous", "auto"]

TOKEN_BUDGETS: dict[str, int] = {
    "conservative": 2000,
    "balanced": 4000,
    "generous": 8000,
}


@dataclass(frozen=True)
class AnalyzedQuery:
    """What the analyzer understood from one user message."""
    raw_text: str
    normalized: str = ""
    intent: QueryIntent = "general"
    method_hint: MethodHint = "any"
    keywords: tuple[str, ...] = ()
    entity_terms: tuple[str, ...] = ()
    status_code_hint: Optional[int] = None
    endpoint_hint: Optional[str] = None
    is_global_query: bool = False
    is_single_endpoint_query: bool = False


@dataclass(frozen=True)
class SearchOptions:
    """Knobs for a single index search."""
    top_k: int = 15
    min_score: float = 0.0
    method_filter: MethodHint = "any"
    boost_entity_terms: bool = True


@dataclass(frozen=True)
class SearchResult:
    """An endpoint with its relevance score for one query."""
    endpoint: "Endpoint"
    score: float
    matched_terms: tuple[str, ...] = ()
    matched_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class TieredEndpoint:
    """A search result with its tier assignment for one build."""
    endpoint: "Endpoint"
    tier: ContextTier
    score: float
    estimated_tokens: int = 0


@dataclass(frozen=True)
class ContextCounts:
    total: int = 0
    full_detail: int = 0
    summary: int = 0
    excluded: int = 0


@dataclass(frozen=True)
class BuiltContext:
    """Rendered markdown plus accounting for one request. Never cached."""
    markdown: str
    total_estimated_tokens: int
    counts: ContextCounts
    budget_mode: BudgetMode
    is_global_context: bool = False
    truncated: bool = False


@dataclass(frozen=True)
class HistoryContext:
    """Output of the history-only path (repeat/rephrase requests)."""
    markdown: str
    matched_endpoints: int = 0


@dataclass
class ContextFilterStats:
    """Observational statistics surfaced to the chat UI."""
    total_endpoints: int
    sent_full: int = 0
    sent_summary: int = 0
    excluded: int = 0
    estimated_input_tokens: int = 0
    estimated_cost_saving_percent: int = 0
    processing_time_ms: float = 0.0
    budget_mode: str = "balanced"
    gate_decision: ContextDecision = "filter"


@dataclass
class ContextFilterResult:
    context_markdown: str
    analyzed_query: Optional[AnalyzedQuery]
    stats: ContextFilterStats
    search_results: list[SearchResult] = field(default_factory=list)
