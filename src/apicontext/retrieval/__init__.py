"""Context filter for selecting API endpoints relevant to a chat turn."""

from .analyzer import QueryAnalyzer
from .assembler import ContextBudgetBuilder
from .fallback import SearchOrchestrator
from .gate import ContextGate
from .index_cache import IndexCache
from .keyword import EndpointIndex, build_index
from .logging import ContextLogger, NullLogger
from .models import (
    AnalyzedQuery,
    BuiltContext,
    ContextFilterResult,
    ContextFilterStats,
    SearchOptions,
    SearchResult,
    TieredEndpoint,
)
from .pipeline import ContextFilterService, NoCollectionLoadedError
from .ranker import RelevanceRanker

__all__ = [
    "AnalyzedQuery",
    "BuiltContext",
    "ContextBudgetBuilder",
    "ContextFilterResult",
    "ContextFilterService",
    "ContextFilterStats",
    "ContextGate",
    "ContextLogger",
    "EndpointIndex",
    "IndexCache",
    "NoCollectionLoadedError",
    "NullLogger",
    "QueryAnalyzer",
    "RelevanceRanker",
    "SearchOptions",
    "SearchOrchestrator",
    "SearchResult",
    "TieredEndpoint",
    "build_index",
]
