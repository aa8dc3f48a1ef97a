"""End-to-end tests for ContextFilterService."""
import asyncio
from unittest.mock import MagicMock

import pytest

from src.apicontext.config import FilterSettings
from src.apicontext.retrieval.continuity import FOLLOW_UP_MARKER
from src.apicontext.retrieval.logging import ContextLogger
from src.apicontext.retrieval.models import AnalyzedQuery
from src.apicontext.retrieval.pipeline import (
    ContextFilterService,
    NoCollectionLoadedError,
    determine_budget_mode,
)
from tests.utils import assistant, build_sample_collection, build_small_collection, user


class RecordingLogger(ContextLogger):
    def __init__(self):
        self.calls = []

    def log_context(self, message, result):
        self.calls.append((message, result))


class ExplodingLogger(ContextLogger):
    def log_context(self, message, result):
        raise RuntimeError("sink down")


class TestEndToEnd:
    def setup_method(self):
        self.service = ContextFilterService()
        self.service.set_collection(build_sample_collection())

    def test_single_endpoint_question(self):
        result = self.service.get_context_for_query("GET /users/{id} returns 404, why?", [])
        q = result.analyzed_query
        assert result.stats.gate_decision == "filter"
        assert q.method_hint == "GET"
        assert "users" in q.entity_terms
        assert result.search_results[0].endpoint.id == "users-get"
        assert result.stats.sent_full == 1
        assert result.stats.sent_summary == 0
        assert result.stats.excluded == 49
        assert "https://api.example.com/v1/users/{id}" in result.context_markdown
        assert "404: User not found" in result.context_markdown
        assert result.stats.budget_mode == "conservative"
        assert 0 < result.stats.estimated_cost_saving_percent < 100

    def test_thanks_sends_nothing(self):
        result = self.service.get_context_for_query("thanks!", [])
        assert result.context_markdown == ""
        assert result.analyzed_query is None
        assert result.stats.gate_decision == "none"
        assert result.stats.sent_full == 0
        assert result.stats.sent_summary == 0
        assert result.stats.excluded == 50
        assert result.stats.estimated_input_tokens == 0
        assert result.stats.estimated_cost_saving_percent == 100
        assert result.stats.budget_mode == "none"

    def test_list_all_endpoints(self):
        result = self.service.get_context_for_query("list all endpoints", [])
        assert result.analyzed_query.is_global_query is True
        assert "## Endpoint Index" in result.context_markdown
        assert result.stats.sent_summary == 50
        assert result.stats.excluded == 0
        assert result.stats.budget_mode == "generous"

    def test_list_all_endpoints_ignores_budget_override(self):
        service = ContextFilterService(settings=FilterSettings(budget_mode="conservative"))
        service.set_collection(build_sample_collection())
        result = service.get_context_for_query("list all endpoints", [])
        assert "## Endpoint Index" in result.context_markdown
        assert result.stats.budget_mode == "conservative"

    def test_repeat_request_uses_history(self):
        history = [user("How do I log in?"), assistant("Call POST /auth/login with your email.")]
        result = self.service.get_context_for_query("can you rephrase that", history)
        assert result.stats.gate_decision == "history"
        assert result.stats.budget_mode == "history"
        assert result.stats.sent_summary == 1
        assert result.stats.excluded == 49
        assert "POST /auth/login" in result.context_markdown

    def test_follow_up_reinjects_previous_endpoint(self):
        history = [
            user("How do I fetch a user?"),
            assistant("Use GET /users/{id} to fetch a single user."),
        ]
        result = self.service.get_context_for_query("and what about the response?", history)
        assert result.stats.gate_decision == "filter"
        assert result.search_results[0].endpoint.id == "users-get"
        assert result.search_results[0].matched_terms == (FOLLOW_UP_MARKER,)
        assert result.stats.sent_full == 1
        assert "https://api.example.com/v1/users/{id}" in result.context_markdown

    def test_dict_history_accepted(self):
        history = [
            {"role": "user", "content": "How do I fetch a user?"},
            {"role": "assistant", "content": "Use GET /users/{id} to fetch a single user."},
        ]
        result = self.service.get_context_for_query("and what about the response?", history)
        assert result.search_results[0].endpoint.id == "users-get"

    def test_unmatched_question_falls_back_to_index(self):
        result = self.service.get_context_for_query(
            "how would I integrate zzqx telemetry into the quarterly pipeline", []
        )
        assert result.stats.gate_decision == "filter"
        assert "## Endpoint Index" in result.context_markdown

    def test_tier_counts_always_add_up(self):
        for message in (
            "how do I authenticate with a bearer token",
            "compare the orders and invoices resources",
            "run the create order request for me",
            "what fields does creating a product need in the body",
        ):
            stats = self.service.get_context_for_query(message, []).stats
            assert stats.sent_full + stats.sent_summary + stats.excluded == stats.total_endpoints


class TestBypasses:
    def test_small_collection_sends_everything(self):
        service = ContextFilterService()
        service.set_collection(build_small_collection(5))
        result = service.get_context_for_query("GET /things1 what does it return", [])
        assert result.stats.excluded == 0
        assert result.stats.sent_full == 5
        assert result.stats.budget_mode == "full"
        assert result.stats.estimated_cost_saving_percent == 0
        assert result.context_markdown.count("### GET") == 5

    def test_disabled_sends_everything(self):
        service = ContextFilterService(settings=FilterSettings(enabled=False))
        service.set_collection(build_sample_collection())
        result = service.get_context_for_query("GET /users/{id} returns 404, why?", [])
        assert result.stats.excluded == 0
        assert result.stats.sent_full == 50
        assert result.stats.budget_mode == "full"
        assert result.analyzed_query is not None

    def test_gate_runs_before_disabled_bypass(self):
        service = ContextFilterService(settings=FilterSettings(enabled=False))
        service.set_collection(build_sample_collection())
        result = service.get_context_for_query("thanks!", [])
        assert result.stats.gate_decision == "none"
        assert result.context_markdown == ""

    def test_budget_override(self):
        service = ContextFilterService(settings=FilterSettings(budget_mode="generous"))
        service.set_collection(build_sample_collection())
        result = service.get_context_for_query("GET /users/{id} returns 404, why?", [])
        assert result.stats.budget_mode == "generous"


class TestBudgetMode:
    @pytest.mark.parametrize("kwargs,expected", [
        ({"is_global_query": True}, "generous"),
        ({"intent": "compare_endpoints"}, "generous"),
        ({"intent": "understand_auth"}, "generous"),
        ({"is_single_endpoint_query": True, "intent": "lookup_endpoint"}, "conservative"),
        ({"intent": "run_request"}, "conservative"),
        ({"intent": "general"}, "balanced"),
    ])
    def test_determine_budget_mode(self, kwargs, expected):
        assert determine_budget_mode(AnalyzedQuery(raw_text="q", **kwargs)) == expected


class TestServiceLifecycle:
    def test_no_collection_raises(self):
        service = ContextFilterService()
        with pytest.raises(NoCollectionLoadedError):
            service.get_context_for_query("GET /users", [])
        with pytest.raises(RuntimeError):
            service.debug_query("GET /users")

    def test_clear_collection(self):
        service = ContextFilterService()
        service.set_collection(build_sample_collection())
        service.get_context_for_query("GET /users/{id} returns 404, why?", [])
        assert "Acme" in service.index_cache

        service.clear_collection()
        assert service.collection is None
        assert "Acme" not in service.index_cache
        with pytest.raises(NoCollectionLoadedError):
            service.get_context_for_query("GET /users", [])

    def test_switching_collections_invalidates_previous(self):
        service = ContextFilterService()
        service.set_collection(build_sample_collection())
        service.get_context_for_query("GET /users/{id} returns 404, why?", [])
        service.set_collection(build_sample_collection(title="Other"))
        assert "Acme" not in service.index_cache

    def test_same_title_reimport_serves_new_content(self):
        service = ContextFilterService()
        collection = build_sample_collection()
        service.set_collection(collection)
        before = service.get_context_for_query("GET /users/{id} returns 404, why?", [])
        assert "Returns a single user by id." in before.context_markdown

        edited = collection.model_copy(update={
            "endpoints": [
                ep.model_copy(update={"description": "EDITED DESCRIPTION"}) for ep in collection.endpoints
            ]
        })
        service.set_collection(edited)
        after = service.get_context_for_query("GET /users/{id} returns 404, why?", [])
        assert "EDITED DESCRIPTION" in after.context_markdown
        assert "Returns a single user by id." not in after.context_markdown

    def test_lazy_build_without_event_loop(self):
        service = ContextFilterService()
        service.set_collection(build_sample_collection())
        assert service._bg_tasks == set()
        assert "Acme" not in service.index_cache
        service.get_context_for_query("GET /users/{id} returns 404, why?", [])
        assert "Acme" in service.index_cache

    def test_debug_query(self):
        service = ContextFilterService()
        service.set_collection(build_sample_collection())
        q, results = service.debug_query("GET /users/{id} returns 404, why?")
        assert q.method_hint == "GET"
        assert 0 < len(results) <= 10
        assert results[0].endpoint.id == "users-get"

    def test_context_logger_receives_every_result(self):
        recorder = RecordingLogger()
        service = ContextFilterService(context_logger=recorder)
        service.set_collection(build_sample_collection())
        service.get_context_for_query("thanks!", [])
        service.get_context_for_query("list all endpoints", [])
        assert [m for m, _ in recorder.calls] == ["thanks!", "list all endpoints"]
        assert recorder.calls[0][1].stats.gate_decision == "none"

    def test_context_logger_failure_does_not_break_request(self):
        service = ContextFilterService(context_logger=ExplodingLogger())
        service.set_collection(build_sample_collection())
        result = service.get_context_for_query("list all endpoints", [])
        assert result.context_markdown


class TestWarmUp:
    @pytest.mark.asyncio
    async def test_set_collection_schedules_warm_up(self):
        service = ContextFilterService()
        service.set_collection(build_sample_collection())
        assert len(service._bg_tasks) == 1
        await asyncio.gather(*list(service._bg_tasks))
        await asyncio.sleep(0)
        assert "Acme" in service.index_cache
        assert service._bg_tasks == set()

    @pytest.mark.asyncio
    async def test_query_during_warm_up_builds_once(self):
        calls = []
        service = ContextFilterService()
        original = service.index_cache._builder

        def counting(collection):
            calls.append(collection.title)
            return original(collection)

        service.index_cache._builder = counting
        service.set_collection(build_sample_collection())
        result = service.get_context_for_query("GET /users/{id} returns 404, why?", [])
        await asyncio.gather(*list(service._bg_tasks))
        assert result.stats.sent_full == 1
        assert calls == ["Acme"]

    @pytest.mark.asyncio
    async def test_clear_during_warm_up_leaves_cache_empty(self):
        service = ContextFilterService()
        service.set_collection(build_sample_collection())
        service.clear_collection()
        await asyncio.gather(*list(service._bg_tasks))
        assert "Acme" not in service.index_cache
        assert len(service.index_cache) == 0

    @pytest.mark.asyncio
    async def test_switch_during_warm_up_keeps_only_current(self):
        service = ContextFilterService()
        service.set_collection(build_sample_collection())
        service.set_collection(build_sample_collection(title="Other"))
        await asyncio.gather(*list(service._bg_tasks))
        assert "Acme" not in service.index_cache
        assert "Other" in service.index_cache

    @pytest.mark.asyncio
    async def test_warm_up(self):
        service = ContextFilterService()
        service.set_collection(build_sample_collection())
        await service.warm_up()
        assert "Acme" in service.index_cache

    @pytest.mark.asyncio
    async def test_warm_up_without_collection(self):
        with pytest.raises(NoCollectionLoadedError):
            await ContextFilterService().warm_up()

    @pytest.mark.asyncio
    async def test_failed_background_task_is_logged(self):
        service = ContextFilterService()
        service.logger = MagicMock()

        async def boom():
            raise ValueError("index exploded")

        task = service._track_task(boom(), name="warm-up:broken")
        await asyncio.gather(task, return_exceptions=True)
        await asyncio.sleep(0)
        assert task not in service._bg_tasks
        service.logger.error.assert_called_once()
        assert "index exploded" in service.logger.error.call_args[0][0]
