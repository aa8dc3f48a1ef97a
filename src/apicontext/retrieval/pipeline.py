"""ContextFilterService: single entry point for per-turn context selection.

gate → analyze → index → search (with fallback) → continuity boost →
follow-up merge → re-rank → tier and render → stats.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Iterable, Mapping, Optional, Union

from src.apicontext.config import FilterSettings
from src.apicontext.models import ChatMessage, Collection, coerce_history
from src.utils.logger import get_logger

from .analyzer import QueryAnalyzer
from .assembler import ContextBudgetBuilder
from .continuity import (
    boost_mentioned_endpoints,
    extract_mentioned_endpoints,
    get_last_discussed_endpoint,
    merge_follow_up_results,
)
from .fallback import SearchOrchestrator
from .formatting import format_collection_markdown
from .gate import ContextGate
from .index_cache import IndexCache
from .logging import ContextLogger, NullLogger
from .models import (
    AnalyzedQuery,
    BudgetMode,
    ContextFilterResult,
    ContextFilterStats,
    SearchOptions,
    SearchResult,
)
from .ranker import RelevanceRanker
from .tokens import estimate_tokens

DEBUG_TOP_K = 10

HistoryInput = Optional[Iterable[Union[ChatMessage, Mapping[str, Any]]]]


class NoCollectionLoadedError(RuntimeError):
    """Raised when a query arrives before any collection is set."""

    def __init__(self) -> None:
        super().__init__("No collection loaded")


def determine_budget_mode(query: AnalyzedQuery) -> BudgetMode:
    """Pick a budget from what the question needs."""
    if query.is_global_query:
        return "generous"
    if query.intent in ("compare_endpoints", "understand_auth"):
        return "generous"
    if query.is_single_endpoint_query or query.intent == "run_request":
        return "conservative"
    return "balanced"


def _saving_percent(sent_tokens: int, full_tokens: int) -> int:
    if full_tokens <= 0:
        return 0
    return max(0, min(100, round((1 - sent_tokens / full_tokens) * 100)))


class ContextFilterService:
    """Owns the current collection and its index cache.

    When disabled, or for small collections: returns the full collection.
    Otherwise: returns a relevance-filtered, budgeted context.
    """

    def __init__(
        self,
        settings: Optional[FilterSettings] = None,
        context_logger: Optional[ContextLogger] = None,
        index_cache: Optional[IndexCache] = None,
        gate: Optional[ContextGate] = None,
        analyzer: Optional[QueryAnalyzer] = None,
        orchestrator: Optional[SearchOrchestrator] = None,
        ranker: Optional[RelevanceRanker] = None,
        builder: Optional[ContextBudgetBuilder] = None,
    ) -> None:
        self.settings = settings or FilterSettings()
        self.context_logger = context_logger or NullLogger()
        self.index_cache = index_cache or IndexCache()
        self.gate = gate or ContextGate()
        self.analyzer = analyzer or QueryAnalyzer()
        self.orchestrator = orchestrator or SearchOrchestrator()
        self.ranker = ranker or RelevanceRanker()
        self.builder = builder or ContextBudgetBuilder()
        self.logger = get_logger("ContextFilterService")

        self._collection: Optional[Collection] = None
        self._full_markdown: Optional[str] = None
        # Only touched from the event loop thread
        self._bg_tasks: set[asyncio.Task] = set()

    # ── Collection lifecycle ──

    @property
    def collection(self) -> Optional[Collection]:
        return self._collection

    def set_collection(self, collection: Collection) -> None:
        """Make ``collection`` current and warm its index in the background.

        Without a running event loop the index is built on the first query.
        A warm-up still running when the collection is replaced or cleared
        finishes, but its index is not cached.
        """
        previous = self._collection
        if previous is not None and previous is not collection:
            self.index_cache.invalidate(previous.title)
        self._collection = collection
        self._full_markdown = None

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self._track_task(
            asyncio.to_thread(self.index_cache.get_or_build, collection, self.index_cache.epoch),
            name=f"warm-up:{collection.title}",
        )

    def clear_collection(self) -> None:
        if self._collection is not None:
            self.index_cache.invalidate(self._collection.title)
        self._collection = None
        self._full_markdown = None

    async def warm_up(self) -> None:
        """Build the current collection's index now, off the event loop."""
        collection = self._require_collection()
        index = await asyncio.to_thread(self.index_cache.get_or_build, collection)
        self.logger.info(
            f"🔥 Index ready for '{collection.title}' ({index.document_count} endpoints)"
        )

    def _track_task(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._bg_tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._bg_tasks.discard(task)
        if not task.cancelled():
            exc = task.exception()
            if exc:
                self.logger.error(f"❌ Background task '{task.get_name()}' failed: {exc}")

    def _require_collection(self) -> Collection:
        if self._collection is None:
            raise NoCollectionLoadedError()
        return self._collection

    def _full_collection_markdown(self) -> str:
        if self._full_markdown is None and self._collection is not None:
            self._full_markdown = format_collection_markdown(self._collection)
        return self._full_markdown or ""

    # ── Query path ──

    def get_context_for_query(
        self,
        message: str,
        history: HistoryInput = None,
    ) -> ContextFilterResult:
        """Select and render the API context for one chat turn.

        Raises NoCollectionLoadedError if no collection is set. Every other
        condition degrades to a smaller or broader context.
        """
        collection = self._require_collection()
        started = time.perf_counter()
        turns = coerce_history(history)
        total = len(collection.endpoints)

        decision = self.gate.decide(message, turns)

        if decision == "none":
            result = ContextFilterResult(
                context_markdown="",
                analyzed_query=None,
                stats=ContextFilterStats(
                    total_endpoints=total,
                    sent_full=0,
                    sent_summary=0,
                    excluded=total,
                    estimated_input_tokens=0,
                    estimated_cost_saving_percent=100,
                    processing_time_ms=self._elapsed_ms(started),
                    budget_mode="none",
                    gate_decision="none",
                ),
            )
            return self._emit(message, result)

        if decision == "history":
            history_context = self.builder.build_history_only(
                turns, collection, self.settings.history_scan_depth
            )
            tokens = estimate_tokens(history_context.markdown)
            result = ContextFilterResult(
                context_markdown=history_context.markdown,
                analyzed_query=None,
                stats=ContextFilterStats(
                    total_endpoints=total,
                    sent_full=0,
                    sent_summary=history_context.matched_endpoints,
                    excluded=total - history_context.matched_endpoints,
                    estimated_input_tokens=tokens,
                    estimated_cost_saving_percent=_saving_percent(
                        tokens, estimate_tokens(self._full_collection_markdown())
                    ),
                    processing_time_ms=self._elapsed_ms(started),
                    budget_mode="history",
                    gate_decision="history",
                ),
            )
            return self._emit(message, result)

        if not self.settings.enabled:
            self.logger.debug("⏭️ Context filter disabled, sending full collection")
            return self._emit(message, self._full_result(message, started))

        if total < self.settings.small_collection_threshold:
            self.logger.debug(
                f"⏭️ Small collection ({total} endpoints), skipping filter"
            )
            return self._emit(message, self._full_result(message, started))

        query = self.analyzer.analyze(message)
        if self.settings.budget_mode != "auto":
            budget_mode: BudgetMode = self.settings.budget_mode
        else:
            budget_mode = determine_budget_mode(query)

        index = self.index_cache.get_or_build(collection)

        results: list[SearchResult] = []
        if not query.is_global_query:
            results = self.orchestrator.search_with_fallback(index, query)

        mentioned = extract_mentioned_endpoints(
            turns, collection, self.settings.history_scan_depth
        )
        results = boost_mentioned_endpoints(results, mentioned)

        if self.analyzer.is_follow_up(message, turns):
            previous = get_last_discussed_endpoint(turns, collection)
            if previous is not None:
                self.logger.debug(f"↩️ Follow-up on {previous.signature}")
                results = merge_follow_up_results(previous, results)

        results = self.ranker.rank(results)

        built = self.builder.build(query, results, collection, budget_mode)
        full_tokens = estimate_tokens(self._full_collection_markdown())

        result = ContextFilterResult(
            context_markdown=built.markdown,
            analyzed_query=query,
            stats=ContextFilterStats(
                total_endpoints=total,
                sent_full=built.counts.full_detail,
                sent_summary=built.counts.summary,
                excluded=built.counts.excluded,
                estimated_input_tokens=built.total_estimated_tokens,
                estimated_cost_saving_percent=_saving_percent(
                    built.total_estimated_tokens, full_tokens
                ),
                processing_time_ms=self._elapsed_ms(started),
                budget_mode=budget_mode,
                gate_decision="filter",
            ),
            search_results=results,
        )
        return self._emit(message, result)

    def debug_query(self, message: str) -> tuple[AnalyzedQuery, list[SearchResult]]:
        """Analysis plus the raw top-10 index hits, no floor, no fallback."""
        collection = self._require_collection()
        query = self.analyzer.analyze(message)
        index = self.index_cache.get_or_build(collection)
        results = index.search(query, SearchOptions(top_k=DEBUG_TOP_K, min_score=0.0))
        return query, results

    # ── Helpers ──

    def _full_result(self, message: str, started: float) -> ContextFilterResult:
        collection = self._require_collection()
        markdown = self._full_collection_markdown()
        total = len(collection.endpoints)
        return ContextFilterResult(
            context_markdown=markdown,
            analyzed_query=self.analyzer.analyze(message),
            stats=ContextFilterStats(
                total_endpoints=total,
                sent_full=total,
                sent_summary=0,
                excluded=0,
                estimated_input_tokens=estimate_tokens(markdown),
                estimated_cost_saving_percent=0,
                processing_time_ms=self._elapsed_ms(started),
                budget_mode="full",
                gate_decision="filter",
            ),
        )

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.perf_counter() - started) * 1000

    def _emit(self, message: str, result: ContextFilterResult) -> ContextFilterResult:
        try:
            self.context_logger.log_context(message, result)
        except Exception as e:
            self.logger.warning(f"⚠️ Context logger failed: {e}")
        return result
