"""Term, phrase and completion suggestions plus typo corrections."""

import logging
import re
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from .backends import SearchBackend
from .cache import Cache, NullCache, cached_get, cached_set
from .config import SearchConfig
from .models import Suggestion

logger = logging.getLogger(__name__)

CompletionProvider = Callable[[str, dict[str, Any], int], list[Suggestion]]

POPULAR_WINDOW = timedelta(days=7)
POPULAR_TTL = 3600
MAX_CORRECTIONS = 5


class SuggestionEngine:
    """Builds suggestions from term statistics and the query log."""

    def __init__(
        self,
        backend: SearchBackend,
        config: SearchConfig,
        cache: Cache | None = None,
    ):
        self.backend = backend
        self.config = config
        self.cache = cache or NullCache()
        self.completion_providers: list[CompletionProvider] = []

    def add_completion_provider(self, provider: CompletionProvider) -> None:
        """Register a callable ``(prefix, context, size) -> list[Suggestion]``."""
        self.completion_providers.append(provider)

    def suggest(
        self, prefix: str, size: int = 10, context: dict[str, Any] | None = None
    ) -> list[Suggestion]:
        """Suggestions for a prefix: terms, then past queries, then completions.

        Args:
            prefix: Text typed so far
            size: Maximum number of suggestions
            context: Opaque context handed to completion providers

        Returns:
            At most ``size`` suggestions
        """
        prefix = (prefix or "").strip()
        if not prefix or size <= 0:
            return []

        suggestions = [
            Suggestion(
                type="term",
                value=term,
                score=float(self.backend.terms.term_frequency(term)),
            )
            for term in self.backend.terms.prefix_match(prefix, size)
        ]
        suggestions.extend(
            Suggestion(type="phrase", value=query, score=float(count))
            for query, count in self.backend.queries.prefix_match(prefix, size)
        )
        for provider in self.completion_providers:
            suggestions.extend(provider(prefix, context or {}, size))

        return suggestions[:size]

    def generate_suggestions(self, query: str) -> list[Suggestion]:
        """Spelling corrections for a query that found nothing.

        Every query word at least ``min_word_length`` long is compared with
        the indexed terms; each close term yields the query with that word
        replaced.
        """
        suggestions: list[Suggestion] = []
        for word in dict.fromkeys(query.lower().split()):
            if len(word) < self.config.min_word_length:
                continue

            similar = self.backend.terms.find_similar(word, self.config.fuzzy_distance)
            pattern = re.compile(rf"(?<!\S){re.escape(word)}(?!\S)", re.IGNORECASE)
            for term, frequency in similar[:MAX_CORRECTIONS]:
                suggestions.append(
                    Suggestion(
                        type="correction",
                        value=pattern.sub(lambda _: term, query),
                        score=float(frequency),
                    )
                )

        return suggestions[:MAX_CORRECTIONS]

    def popular_searches(self, limit: int = 10) -> list[dict[str, Any]]:
        """Most frequent queries of the last seven days, memoized for an hour."""
        key = f"popular_searches:{limit}"
        cached = cached_get(self.cache, key)
        if cached is not None:
            return cached

        since = datetime.now() - POPULAR_WINDOW
        popular = [
            {"query": query, "count": count}
            for query, count in self.backend.queries.popular(limit, since=since)
        ]
        cached_set(self.cache, key, popular, POPULAR_TTL)
        return popular
