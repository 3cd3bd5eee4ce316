"""Tests for suggestion generation."""

from datetime import datetime, timedelta

import pytest

from textsearch.backends import MemoryBackend
from textsearch.cache import MemoryCache
from textsearch.config import SearchConfig
from textsearch.models import QueryRecord, Suggestion
from textsearch.suggest import MAX_CORRECTIONS, SuggestionEngine


@pytest.fixture
def suggestions(backend):
    for term, count in [("shoes", 3), ("shirt", 2), ("shorts", 1), ("boots", 1)]:
        for _ in range(count):
            backend.terms.increment_frequency(term)
    return SuggestionEngine(backend, SearchConfig())


class TestSuggest:
    """Test prefix suggestions."""

    def test_terms_ordered_by_frequency(self, suggestions):
        result = suggestions.suggest("sh")

        assert result == [
            Suggestion(type="term", value="shoes", score=3.0),
            Suggestion(type="term", value="shirt", score=2.0),
            Suggestion(type="term", value="shorts", score=1.0),
        ]

    def test_past_queries_follow_terms(self, suggestions, backend):
        backend.queries.record("short sleeves", 4, 1.0)
        backend.queries.record("show nothing", 0, 1.0)

        result = suggestions.suggest("sho")

        assert [s.type for s in result] == ["term", "term", "phrase"]
        assert result[-1] == Suggestion(type="phrase", value="short sleeves", score=1.0)

    def test_size_limits_merged_list(self, suggestions):
        suggestions.add_completion_provider(
            lambda prefix, context, size: [Suggestion(type="completion", value="x")]
        )

        assert len(suggestions.suggest("sh", size=2)) == 2
        assert suggestions.suggest("sh", size=0) == []

    @pytest.mark.parametrize("prefix", ["", "   ", None])
    def test_blank_prefix(self, suggestions, prefix):
        assert suggestions.suggest(prefix) == []

    def test_providers_receive_context(self, suggestions):
        calls = []

        def provider(prefix, context, size):
            calls.append((prefix, context, size))
            return []

        suggestions.add_completion_provider(provider)
        suggestions.suggest(" boo ", size=4, context={"user": "u1"})

        assert calls == [("boo", {"user": "u1"}, 4)]


class TestCorrections:
    """Test spelling corrections."""

    def test_replaces_misspelled_word(self, suggestions):
        result = suggestions.generate_suggestions("red shoez")

        assert result[0] == Suggestion(type="correction", value="red shoes", score=3.0)

    def test_short_words_are_not_corrected(self, suggestions):
        assert suggestions.generate_suggestions("sh") == []

    def test_whole_words_only(self, suggestions):
        """Only the misspelled word changes, not substrings of other words."""
        result = suggestions.generate_suggestions("boot bootcamp")

        assert Suggestion(type="correction", value="boots bootcamp", score=1.0) in result

    def test_at_most_five(self, backend):
        for term in ["cat", "bat", "hat", "mat", "rat", "sat", "vat"]:
            backend.terms.increment_frequency(term)
        engine = SuggestionEngine(backend, SearchConfig(fuzzy_distance=1))

        assert len(engine.generate_suggestions("fat")) == MAX_CORRECTIONS


class TestPopularSearches:
    def test_counts_recent_queries(self, suggestions, backend):
        for query in ["boots", "shoes", "boots"]:
            backend.queries.record(query, 1, 1.0)

        assert suggestions.popular_searches(10) == [
            {"query": "boots", "count": 2},
            {"query": "shoes", "count": 1},
        ]

    def test_old_queries_are_ignored(self):
        backend = MemoryBackend()
        backend._state.queries.append(
            QueryRecord(
                query="ancient",
                result_count=1,
                elapsed_ms=1.0,
                created_at=datetime.now() - timedelta(days=8),
            )
        )
        backend.queries.record("fresh", 1, 1.0)

        engine = SuggestionEngine(backend, SearchConfig())

        assert engine.popular_searches() == [{"query": "fresh", "count": 1}]

    def test_results_are_cached_per_limit(self, backend):
        cache = MemoryCache()
        engine = SuggestionEngine(backend, SearchConfig(), cache)
        backend.queries.record("boots", 1, 1.0)

        assert engine.popular_searches(1) == [{"query": "boots", "count": 1}]
        assert cache.get("popular_searches:1") == [{"query": "boots", "count": 1}]
        assert cache.get("popular_searches:2") is None
