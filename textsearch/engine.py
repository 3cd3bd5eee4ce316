"""Search engine facade coordinating indexing, retrieval and suggestions."""

import hashlib
import json
import logging
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import msgspec

from .analysis import (
    Analyzer,
    AnalyzerRegistry,
    FilterRegistry,
    TokenFilter,
    build_custom_analyzer,
)
from .backends import MemoryBackend, SearchBackend, SQLiteBackend
from .cache import Cache, NullCache, cached_get, cached_set
from .config import SearchConfig
from .events import EventBus, EventType
from .exceptions import QueryError
from .facets import FacetEngine
from .indexer import Indexer
from .models import AnalyzedQuery, Document, SearchOptions, SearchResult, Suggestion
from .query import QueryParser
from .retriever import Retriever
from .suggest import CompletionProvider, SuggestionEngine

logger = logging.getLogger(__name__)


class SearchEngine:
    """Full-text search engine.

    Coordinates the analyzer pipeline, the indexer, the retriever, facets
    and suggestions on top of a storage backend, a result cache and an
    event bus.
    """

    def __init__(
        self,
        backend: SearchBackend | None = None,
        cache: Cache | None = None,
        events: EventBus | None = None,
        config: SearchConfig | None = None,
    ):
        """Initialize search engine.

        Args:
            backend: Storage backend (default: MemoryBackend)
            cache: Result cache (default: no caching)
            events: Event bus receiving lifecycle events
            config: Engine configuration (default: SearchConfig())
        """
        self.config = config or SearchConfig()
        self.backend = backend or MemoryBackend()
        self.cache = cache or NullCache()
        self.events = events or EventBus()

        self.analyzers = AnalyzerRegistry()
        self.filters = FilterRegistry()
        for name, spec in self.config.analyzers.items():
            self.analyzers.register(
                name,
                build_custom_analyzer(
                    self.analyzers, self.filters, spec.tokenizer, spec.filters
                ),
            )

        self.parser = QueryParser(self.analyzers.get("standard"))
        self.indexer = Indexer(self.backend, self.config, self.analyzers, self.events)
        self.retriever = Retriever(self.backend, self.config)
        self.facets = FacetEngine()
        self.suggestions = SuggestionEngine(self.backend, self.config, self.cache)

    def search(
        self,
        query: str,
        options: SearchOptions | Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> SearchResult:
        """Execute a search query.

        Args:
            query: Raw query string with optional operators
            options: Search options, as ``SearchOptions`` or a plain mapping
            **overrides: Individual option values, e.g. ``size=5``

        Returns:
            Ranked, paginated results with facets and suggestions

        Raises:
            QueryError: If options, filters or facet parameters are invalid
        """
        start = time.perf_counter()
        options = self.build_options(options, **overrides)
        analyzed = self.parser.parse(query)

        key = self.cache_key(analyzed, options)
        cached = cached_get(self.cache, key)
        if cached is not None:
            logger.debug(f"Cache hit for {analyzed.original!r}")
            return cached

        result, rows = self.retriever.execute(analyzed, options)
        if options.facets:
            result = result.with_facets(self.facets.aggregate(rows, options.facets))
        if options.suggest and result.total == 0 and not analyzed.is_empty:
            result = result.with_suggestions(
                self.suggestions.generate_suggestions(analyzed.original)
            )
        result = msgspec.structs.replace(
            result, took_ms=(time.perf_counter() - start) * 1000
        )

        self._track(analyzed.original, result)
        cached_set(self.cache, key, result, self.config.cache_ttl)
        return result

    def index(self, type: str, id: str, document: dict[str, Any]) -> Document:
        """Index a document, replacing any previous version."""
        return self.indexer.index(type, id, document)

    def delete(self, type: str, id: str) -> bool:
        """Delete a document; True if it existed."""
        return self.indexer.delete(type, id)

    def bulk_index(self, type: str, documents: Mapping[Any, dict[str, Any]]) -> int:
        """Index a mapping of id to document atomically."""
        return self.indexer.bulk_index(type, documents)

    def reindex(self, type: str) -> int:
        """Rebuild postings of a type from stored tokens."""
        return self.indexer.reindex(type)

    def get_document(self, type: str, id: str) -> Document | None:
        return self.backend.documents.get(type, str(id))

    def suggest(
        self, prefix: str, size: int = 10, context: dict[str, Any] | None = None
    ) -> list[Suggestion]:
        return self.suggestions.suggest(prefix, size=size, context=context)

    def generate_suggestions(self, query: str) -> list[Suggestion]:
        return self.suggestions.generate_suggestions(query)

    def popular_searches(self, limit: int = 10) -> list[dict[str, Any]]:
        return self.suggestions.popular_searches(limit)

    def register_analyzer(self, name: str, analyzer: Analyzer) -> None:
        """Register an analyzer usable from ``index_fields``."""
        self.analyzers.register(name, analyzer)
        logger.debug(f"Registered analyzer {name!r}")

    def register_filter(self, name: str, token_filter: TokenFilter) -> None:
        """Register a token filter usable in custom analyzers."""
        self.filters.register(name, token_filter)
        logger.debug(f"Registered token filter {name!r}")

    def add_completion_provider(self, provider: CompletionProvider) -> None:
        self.suggestions.add_completion_provider(provider)

    def build_options(
        self,
        options: SearchOptions | Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> SearchOptions:
        """Merge ``options`` and ``overrides`` into validated ``SearchOptions``."""
        if isinstance(options, SearchOptions):
            data = msgspec.to_builtins(options)
        else:
            data = dict(options or {})
        data.update(overrides)
        if "from_" in data:
            data["from"] = data.pop("from_")

        try:
            return msgspec.convert(data, SearchOptions)
        except msgspec.ValidationError as e:
            raise QueryError(f"Invalid search options: {e}") from e

    def cache_key(self, query: AnalyzedQuery, options: SearchOptions) -> str:
        normalized = " ".join(query.original.split())
        payload = json.dumps(
            [normalized, msgspec.to_builtins(options)], sort_keys=True, default=str
        )
        return "search:" + hashlib.md5(payload.encode()).hexdigest()

    def get_statistics(self) -> dict[str, Any]:
        """Get search engine statistics.

        Returns:
            Dictionary with engine, backend and cache statistics
        """
        stats: dict[str, Any] = {
            "engine": {
                "analyzers": self.analyzers.names(),
                "filters": self.filters.names(),
                "index_fields": list(self.config.index_fields),
            },
            "backend": self.backend.get_statistics(),
        }
        cache_stats = getattr(self.cache, "stats", None)
        if callable(cache_stats):
            stats["cache"] = cache_stats()
        return stats

    def close(self) -> None:
        self.backend.close()

    def __enter__(self) -> "SearchEngine":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _track(self, query: str, result: SearchResult) -> None:
        if not query.strip():
            return
        self.backend.queries.record(query, result.total, result.took_ms)
        self.events.emit(
            EventType.QUERY_EXECUTED,
            query=query,
            total=result.total,
            took_ms=result.took_ms,
        )


def create_memory_engine(
    config: SearchConfig | None = None, cache: Cache | None = None
) -> SearchEngine:
    """Create a SearchEngine with in-memory backend."""
    return SearchEngine(backend=MemoryBackend(), cache=cache, config=config)


def create_sqlite_engine(
    path: Path | str,
    config: SearchConfig | None = None,
    cache: Cache | None = None,
) -> SearchEngine:
    """Create a SearchEngine persisting to a SQLite database at ``path``."""
    return SearchEngine(backend=SQLiteBackend(path), cache=cache, config=config)
