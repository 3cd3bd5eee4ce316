"""Tests for the search engine facade."""

import pytest

from textsearch import SearchEngine, create_memory_engine, create_sqlite_engine
from textsearch.analysis import Analyzer
from textsearch.analysis.filters import TokenFilter
from textsearch.backends import MemoryBackend, SQLiteBackend
from textsearch.cache import Cache, MemoryCache
from textsearch.events import EventType
from textsearch.exceptions import QueryError
from textsearch.models import SearchOptions, Suggestion


def hit_ids(result):
    return [hit.id for hit in result.hits]


class ReversingAnalyzer(Analyzer):
    def analyze(self, text):
        return [word[::-1].lower() for word in text.split()]


class BrokenCache(Cache):
    def get(self, key):
        raise ConnectionError("cache down")

    def set(self, key, value, ttl_seconds):
        raise ConnectionError("cache down")


class TestShoeScenario:
    """Two shoes sharing a category."""

    def test_both_documents_match_with_positive_scores(self, shoe_engine):
        result = shoe_engine.search("shoes")

        assert result.total == 2
        assert sorted(hit_ids(result)) == ["1", "2"]
        assert all(hit.score > 0 for hit in result.hits)

    def test_required_term(self, shoe_engine):
        result = shoe_engine.search("+red shoes")

        assert hit_ids(result) == ["1"]

    def test_category_facet(self, shoe_engine):
        result = shoe_engine.search("shoes", facets={"category": "terms"})

        assert result.facets == {"category": [{"value": "shoes", "count": 2}]}

    def test_prefix_suggestion(self, shoe_engine):
        values = [s.value for s in shoe_engine.suggest("sho")]

        assert "shoes" in values

    def test_highlighting(self, shoe_engine):
        result = shoe_engine.search("red")

        assert result.hits[0].highlight == {"title": "<mark>Red</mark> Shoes"}

    def test_sort_by_field(self, shoe_engine):
        result = shoe_engine.search("shoes", sort="price:desc")

        assert hit_ids(result) == ["2", "1"]

    def test_filter(self, shoe_engine):
        result = shoe_engine.search("shoes", filters={"price": 80})

        assert hit_ids(result) == ["2"]


class TestQueryOperators:
    """Test each clause kind end to end."""

    def test_blank_query_matches_everything(self, catalog_engine):
        assert catalog_engine.search("").total == 5
        assert catalog_engine.search("   ").total == 5

    def test_optional_terms_match_any(self, catalog_engine):
        result = catalog_engine.search("pie split")

        assert sorted(hit_ids(result)) == ["p1", "p3"]

    def test_excluded_terms(self, catalog_engine):
        result = catalog_engine.search("apple -banana")

        assert hit_ids(result) == ["p1"]

    def test_excluded_only(self, catalog_engine):
        result = catalog_engine.search("-food")

        assert sorted(hit_ids(result)) == ["p4", "p5"]

    def test_phrase(self, catalog_engine):
        result = catalog_engine.search('"apple pie"')

        assert hit_ids(result) == ["p1"]

    def test_phrases_are_combined(self, catalog_engine):
        assert catalog_engine.search('"banana split" "apple pie"').total == 0

    def test_prefix_wildcard(self, catalog_engine):
        result = catalog_engine.search("ban*")

        assert sorted(hit_ids(result)) == ["p2", "p3"]

    def test_suffix_wildcard(self, catalog_engine):
        result = catalog_engine.search("*ing")

        assert sorted(hit_ids(result)) == ["p1", "p4", "p5"]

    @pytest.mark.parametrize(
        "query", ["t-shirt", "T-Shirt", "shirt!", "shirt,", "+t-shirt", '"t-shirt"']
    )
    def test_punctuated_words_match_analyzed_terms(self, engine, query):
        engine.index("products", "tee", {"title": "Cotton T-Shirt"})
        engine.index("products", "sock", {"title": "Wool Socks"})

        result = engine.search(query)

        assert hit_ids(result) == ["tee"]
        assert result.hits[0].score > 0

    def test_excluded_hyphenated_word(self, engine):
        engine.index("products", "tee", {"title": "Cotton T-Shirt"})
        engine.index("products", "sock", {"title": "Cotton Socks"})

        assert hit_ids(engine.search("cotton -t-shirt")) == ["sock"]

    def test_title_matches_outrank_content_matches(self, engine):
        """Title postings carry three times the weight of content postings."""
        engine.index("products", "body", {"content": "Lamp"})
        engine.index("products", "head", {"title": "Lamp"})

        assert hit_ids(engine.search("lamp")) == ["head", "body"]

    def test_type_scope(self, catalog_engine):
        catalog_engine.index("articles", "a1", {"title": "Banana Bread Recipe"})

        assert hit_ids(catalog_engine.search("banana", index="articles")) == ["a1"]
        assert catalog_engine.search("banana").total == 3

    def test_field_restriction(self, catalog_engine):
        """Only postings of the listed fields take part."""
        result = catalog_engine.search("dessert", fields=["content"])

        assert sorted(hit_ids(result)) == ["p1", "p3"]
        assert catalog_engine.search("dessert", fields=["title"]).total == 0

    def test_document_boost(self, engine):
        engine.index("products", "a", {"title": "Lamp"})
        engine.index("products", "b", {"title": "Lamp", "_boost": 2})

        scores = {hit.id: hit.score for hit in engine.search("lamp").hits}

        assert scores["b"] == pytest.approx(2 * scores["a"])


class TestResultWindow:
    """Test ordering and pagination."""

    def test_scores_are_non_increasing(self, catalog_engine):
        scores = [hit.score for hit in catalog_engine.search("apple banana").hits]

        assert scores == sorted(scores, reverse=True)

    def test_pages_partition_results(self, catalog_engine):
        pages = [
            hit_ids(catalog_engine.search("", from_=offset, size=2))
            for offset in (0, 2, 4)
        ]

        assert [len(p) for p in pages] == [2, 2, 1]
        assert sorted(sum(pages, [])) == ["p1", "p2", "p3", "p4", "p5"]

    def test_offset_beyond_total(self, catalog_engine):
        result = catalog_engine.search("", from_=10)

        assert result.hits == []
        assert result.total == 5

    def test_options_object(self, catalog_engine):
        options = SearchOptions(size=1, sort={"price": "asc"})

        result = catalog_engine.search("", options)

        assert hit_ids(result) == ["p2"]

    def test_overrides_win_over_options(self, catalog_engine):
        result = catalog_engine.search("", {"size": 1}, size=3)

        assert len(result.hits) == 3

    def test_editing_a_hit_leaves_the_index_alone(self, shoe_engine):
        hit = shoe_engine.search("red").hits[0]
        hit.document["title"] = "Mutated"
        hit.document["category"] = "hats"

        assert shoe_engine.get_document("products", "1").content["title"] == "Red Shoes"
        assert shoe_engine.search('"red shoes"', filters={"category": "shoes"}).total == 1

    def test_result_serialization(self, shoe_engine):
        data = shoe_engine.search("shoes", size=1).to_dict()

        assert data["total"] == 2
        assert data["from"] == 0
        assert data["size"] == 1
        assert len(data["hits"]) == 1


class TestFacets:
    """Facets are computed over all matches, not just the page."""

    def test_terms_facet_ignores_pagination(self, catalog_engine):
        result = catalog_engine.search("", size=1, facets={"category": "terms"})

        assert result.facets["category"] == [
            {"value": "food", "count": 3},
            {"value": "apparel", "count": 1},
            {"value": "books", "count": 1},
        ]

    def test_counts_bounded_by_total(self, catalog_engine):
        result = catalog_engine.search("banana", facets={"category": {"type": "terms"}})

        assert sum(b["count"] for b in result.facets["category"]) <= result.total

    def test_list_values_form_no_terms_buckets(self, catalog_engine):
        """Only scalar values are grouped, so list-valued tags add nothing."""
        catalog_engine.index("products", "p6", {"title": "Gift Card", "tags": "gift"})

        result = catalog_engine.search("", facets={"tags": "terms"})

        assert result.facets["tags"] == [{"value": "gift", "count": 1}]
        assert result.total == 6

    def test_range_and_histogram(self, catalog_engine):
        result = catalog_engine.search(
            "",
            facets={
                "price": {
                    "type": "range",
                    "ranges": [{"to": 10}, {"from": 10, "to": 50}, {"from": 50}],
                }
            },
        )

        assert result.facets["price"] == {
            "min": 6,
            "max": 120,
            "ranges": [
                {"from": None, "to": 10, "count": 2},
                {"from": 10, "to": 50, "count": 2},
                {"from": 50, "to": None, "count": 1},
            ],
        }

        histogram = catalog_engine.search(
            "", facets={"price": {"type": "histogram", "interval": 50}}
        )
        assert histogram.facets["price"] == [
            {"key": 0, "from": 0, "to": 50, "count": 4},
            {"key": 100, "from": 100, "to": 150, "count": 1},
        ]

    def test_invalid_facet_parameters(self, catalog_engine):
        with pytest.raises(QueryError):
            catalog_engine.search("", facets={"price": {"type": "histogram", "interval": 0}})


class TestValidation:
    def test_invalid_filter_field(self, shoe_engine):
        with pytest.raises(QueryError, match="Invalid filter field"):
            shoe_engine.search("shoes", filters={"price') OR 1=1 --": 1})

    def test_invalid_options(self, shoe_engine):
        with pytest.raises(QueryError, match="Invalid search options"):
            shoe_engine.search("shoes", size="many")

    def test_unknown_sort_field_is_ignored(self, shoe_engine):
        result = shoe_engine.search("shoes", sort="secret:desc")

        assert result.total == 2


class TestSuggestions:
    """Test corrections attached to empty results."""

    def test_corrections_on_zero_results(self, shoe_engine):
        result = shoe_engine.search("shose")

        assert result.total == 0
        assert "shoes" in [s.value for s in result.suggestions]
        assert all(s.type == "correction" for s in result.suggestions)

    def test_no_corrections_when_disabled(self, shoe_engine):
        assert shoe_engine.search("shose", suggest=False).suggestions == []

    def test_no_corrections_when_results_exist(self, shoe_engine):
        assert shoe_engine.search("shoes").suggestions == []

    def test_past_queries_become_phrase_suggestions(self, shoe_engine):
        shoe_engine.search("shoes")
        shoe_engine.search("shoes")

        suggestions = shoe_engine.suggest("sho")

        assert Suggestion(type="phrase", value="shoes", score=2.0) in suggestions

    def test_completion_provider(self, shoe_engine):
        shoe_engine.add_completion_provider(
            lambda prefix, context, size: [
                Suggestion(type="completion", value=f"{prefix} {context['brand']}")
            ]
        )

        suggestions = shoe_engine.suggest("sho", context={"brand": "acme"})

        assert suggestions[-1] == Suggestion(type="completion", value="sho acme")


class TestTracking:
    """Test query logging."""

    def test_queries_are_recorded(self, shoe_engine, event_bus):
        shoe_engine.search("shoes")

        assert shoe_engine.popular_searches() == [{"query": "shoes", "count": 1}]
        event = event_bus.get_history(EventType.QUERY_EXECUTED)[-1]
        assert event.data["query"] == "shoes"
        assert event.data["total"] == 2

    def test_blank_queries_are_not_recorded(self, shoe_engine, event_bus):
        shoe_engine.search("  ")

        assert shoe_engine.popular_searches() == []
        assert event_bus.get_history(EventType.QUERY_EXECUTED) == []

    def test_zero_result_queries_are_recorded(self, shoe_engine):
        shoe_engine.search("sandals")

        record = shoe_engine.backend.queries.recent(1)[0]
        assert record.query == "sandals"
        assert record.result_count == 0


class TestCaching:
    """Test result caching."""

    @pytest.fixture
    def cached_engine(self, backend, event_bus, shoe_documents):
        engine = SearchEngine(backend=backend, cache=MemoryCache(), events=event_bus)
        engine.bulk_index("products", shoe_documents)
        return engine

    def test_repeated_search_is_served_from_cache(self, cached_engine, event_bus):
        first = cached_engine.search("shoes")
        second = cached_engine.search("shoes")

        assert second == first
        assert len(event_bus.get_history(EventType.QUERY_EXECUTED)) == 1
        assert cached_engine.get_statistics()["cache"]["hits"] == 1

    def test_whitespace_variants_share_a_key(self, cached_engine):
        options = SearchOptions()
        parse = cached_engine.parser.parse

        assert cached_engine.cache_key(parse("red  shoes "), options) == (
            cached_engine.cache_key(parse("red shoes"), options)
        )
        assert cached_engine.cache_key(parse("red shoes"), options) != (
            cached_engine.cache_key(parse("red shoes"), SearchOptions(size=5))
        )

    def test_popular_searches_are_cached(self, cached_engine):
        cached_engine.search("shoes")
        assert cached_engine.popular_searches(5) == [{"query": "shoes", "count": 1}]

        cached_engine.search("red")

        assert cached_engine.popular_searches(5) == [{"query": "shoes", "count": 1}]
        assert len(cached_engine.popular_searches(10)) == 2

    def test_broken_cache_does_not_fail_searches(self, backend, shoe_documents):
        engine = SearchEngine(backend=backend, cache=BrokenCache())
        engine.bulk_index("products", shoe_documents)

        assert engine.search("shoes").total == 2
        assert engine.popular_searches() == [{"query": "shoes", "count": 1}]


class TestExtensions:
    """Test custom analyzers and filters."""

    def test_register_analyzer(self, backend):
        from textsearch.config import FieldSpec, SearchConfig

        config = SearchConfig(index_fields={"title": FieldSpec(analyzer="reverse")})
        engine = SearchEngine(backend=backend, config=config)
        engine.register_analyzer("reverse", ReversingAnalyzer())

        engine.index("products", "1", {"title": "Red Shoes"})

        assert hit_ids(engine.search("der")) == ["1"]
        assert engine.search("red").total == 0

    def test_register_filter(self, engine):
        class DropAll(TokenFilter):
            def filter(self, tokens):
                return []

        engine.register_filter("drop_all", DropAll())

        assert "drop_all" in engine.get_statistics()["engine"]["filters"]


class TestEngineLifecycle:
    def test_statistics(self, shoe_engine):
        stats = shoe_engine.get_statistics()

        assert stats["backend"]["total_documents"] == 2
        assert "standard" in stats["engine"]["analyzers"]
        assert "cache" not in stats

    def test_factories(self, tmp_path):
        with create_memory_engine() as engine:
            assert isinstance(engine.backend, MemoryBackend)

        with create_sqlite_engine(tmp_path / "search.db") as engine:
            assert isinstance(engine.backend, SQLiteBackend)
            engine.index("products", "1", {"title": "Lamp"})

        with create_sqlite_engine(tmp_path / "search.db") as engine:
            assert engine.search("lamp").total == 1

    def test_default_engine(self):
        engine = SearchEngine()

        assert engine.search("anything").total == 0
