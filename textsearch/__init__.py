"""Full-text search and indexing engine.

This package provides term extraction, inverted-index maintenance, TF-IDF
relevance scoring, faceted aggregation, query operators, highlighting and
suggestions on top of pluggable storage backends.

Main components:
- SearchEngine: Core search orchestrator
- Analyzer pipeline with token filters
- Query parsing with phrase, required, excluded and wildcard operators
- Multiple backends (Memory, SQLite)
- Facets, highlighting and suggestions
"""

from .analysis import (
    Analyzer,
    AnalyzerRegistry,
    CustomAnalyzer,
    FilterRegistry,
    KeywordAnalyzer,
    PhoneticAnalyzer,
    StandardAnalyzer,
    StemmingAnalyzer,
    TokenFilter,
)
from .backends import MemoryBackend, SearchBackend, SQLiteBackend
from .cache import Cache, MemoryCache, NullCache
from .config import FieldSpec, SearchConfig, load_config
from .engine import SearchEngine, create_memory_engine, create_sqlite_engine
from .events import Event, EventBus, EventType
from .exceptions import (
    ConfigError,
    IndexingError,
    QueryError,
    SearchError,
    StorageError,
)
from .models import (
    AnalyzedQuery,
    Document,
    Posting,
    SearchHit,
    SearchOptions,
    SearchResult,
    Suggestion,
    Token,
)
from .query import QueryParser

__all__ = [
    # Engine
    "SearchEngine",
    "create_memory_engine",
    "create_sqlite_engine",
    # Configuration
    "SearchConfig",
    "FieldSpec",
    "load_config",
    # Analysis
    "Analyzer",
    "AnalyzerRegistry",
    "CustomAnalyzer",
    "FilterRegistry",
    "KeywordAnalyzer",
    "PhoneticAnalyzer",
    "StandardAnalyzer",
    "StemmingAnalyzer",
    "TokenFilter",
    "QueryParser",
    # Backends and collaborators
    "SearchBackend",
    "MemoryBackend",
    "SQLiteBackend",
    "Cache",
    "MemoryCache",
    "NullCache",
    "Event",
    "EventBus",
    "EventType",
    # Models
    "AnalyzedQuery",
    "Document",
    "Posting",
    "SearchHit",
    "SearchOptions",
    "SearchResult",
    "Suggestion",
    "Token",
    # Exceptions
    "SearchError",
    "IndexingError",
    "QueryError",
    "StorageError",
    "ConfigError",
]

__version__ = "1.0.0"
