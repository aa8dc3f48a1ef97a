"""Tests for the BM25 endpoint index."""
from src.apicontext.models import Collection
from src.apicontext.retrieval.analyzer import QueryAnalyzer
from src.apicontext.retrieval.keyword import (
    build_index,
    collection_fingerprint,
    stem,
    tokenize,
)
from src.apicontext.retrieval.models import SearchOptions
from tests.utils import build_sample_collection, make_endpoint, query


def test_tokenize_splits_camel_case_and_punctuation():
    assert tokenize("getUserById") == ["get", "user", "by", "id"]
    assert tokenize("/users/{id}/api-keys") == ["user", "id", "api", "key"]


def test_tokenize_keeps_status_codes_only():
    tokens = tokenize("Returns 404 after 12 retries")
    assert "404" in tokens
    assert "12" not in tokens


def test_tokenize_empty():
    assert tokenize("") == []
    assert tokenize(None) == []


def test_stem():
    assert stem("users") == "user"
    assert stem("listing") == "list"
    assert stem("class") == "class"
    assert stem("bus") == "bus"


class TestBuildIndex:
    def setup_method(self):
        self.collection = build_sample_collection()
        self.index = build_index(self.collection)

    def test_document_count(self):
        assert self.index.document_count == 50
        assert self.index.collection_title == "Acme"

    def test_idf_positive(self):
        assert self.index.vocabulary_size > 0
        assert all(v > 0 for v in self.index.idf.values())

    def test_rare_terms_weigh_more(self):
        # "login" appears in one endpoint, "user" in many
        assert self.index.idf["login"] > self.index.idf["user"]

    def test_duplicate_ids_keep_first(self):
        first = make_endpoint("GET", "/a", "Alpha", "dup")
        second = make_endpoint("GET", "/b", "Beta", "dup")
        index = build_index(Collection(title="Dupes", endpoints=[first, second]))
        assert index.document_count == 1
        assert index.documents["dup"].endpoint.name == "Alpha"

    def test_fingerprint_tracks_endpoint_sequence(self):
        same = build_sample_collection()
        assert collection_fingerprint(same) == self.index.fingerprint
        shorter = Collection(title="Acme", endpoints=self.collection.endpoints[:-1])
        assert collection_fingerprint(shorter) != self.index.fingerprint

    def test_fingerprint_tracks_endpoint_content(self):
        edited = self.collection.model_copy(update={
            "endpoints": [
                ep.model_copy(update={"description": "changed"}) if ep.id == "users-get" else ep
                for ep in self.collection.endpoints
            ]
        })
        assert collection_fingerprint(edited) != self.index.fingerprint
        moved = self.collection.model_copy(update={"base_url": "https://other.example.com"})
        assert collection_fingerprint(moved) != self.index.fingerprint


class TestSearch:
    def setup_method(self):
        self.collection = build_sample_collection()
        self.index = build_index(self.collection)
        self.analyzer = QueryAnalyzer()

    def test_path_and_status_question_ranks_named_endpoint_first(self):
        q = self.analyzer.analyze("GET /users/{id} returns 404, why?")
        results = self.index.search(q, SearchOptions(method_filter=q.method_hint))
        assert results[0].endpoint.id == "users-get"
        assert "user" in results[0].matched_terms
        assert "name" in results[0].matched_fields

    def test_method_filter_is_strict(self):
        results = self.index.search(query(keywords=("users",)), SearchOptions(method_filter="POST"))
        assert results
        assert all(r.endpoint.method == "POST" for r in results)

    def test_method_any_disables_filter(self):
        results = self.index.search(query(keywords=("users",)), SearchOptions(method_filter="any"))
        assert {r.endpoint.method for r in results} >= {"GET", "POST", "PUT", "DELETE"}

    def test_min_score_excludes(self):
        results = self.index.search(query(keywords=("users",)), SearchOptions(min_score=1e9))
        assert results == []

    def test_top_k_caps_results(self):
        results = self.index.search(query(keywords=("users", "orders", "products")), SearchOptions(top_k=3))
        assert len(results) == 3

    def test_sorted_by_score_descending(self):
        results = self.index.search(query(keywords=("invoices", "payments")))
        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)

    def test_ties_keep_collection_order(self):
        collection = Collection(
            title="Twins",
            endpoints=[
                make_endpoint("GET", "/x", "Alpha widget", "first"),
                make_endpoint("GET", "/y", "Alpha widget", "second"),
            ],
        )
        index = build_index(collection)
        results = index.search(query(keywords=("widget",)))
        assert [r.endpoint.id for r in results] == ["first", "second"]
        assert results[0].score == results[1].score

    def test_no_terms_no_results(self):
        assert self.index.search(query(keywords=())) == []
        assert self.index.search(query(keywords=("zzzqqq",))) == []

    def test_entity_boost_raises_score(self):
        q = query(keywords=("invoices",), entity_terms=("invoices",))
        boosted = self.index.search(q, SearchOptions(boost_entity_terms=True))
        plain = self.index.search(q, SearchOptions(boost_entity_terms=False))
        assert boosted[0].score > plain[0].score

    def test_status_code_hint_prefers_documented_code(self):
        q = query(keywords=("users",), status_code_hint=404)
        results = self.index.search(q)
        assert results[0].endpoint.id in {"users-get", "users-update"}

    def test_auth_intent_boosts_auth_related(self):
        q = query(keywords=("token",), intent="understand_auth")
        results = self.index.search(q)
        assert results
        assert results[0].endpoint.is_auth_related

    def test_search_is_repeatable(self):
        q = self.analyzer.analyze("create a new order with line items")
        assert self.index.search(q) == self.index.search(q)
