"""Storage backends for the search engine."""

from .base import (
    CandidateSpec,
    DocumentStore,
    InvertedIndex,
    QueryLog,
    ScoredRow,
    SearchBackend,
    TermStatistics,
)
from .memory import MemoryBackend
from .sqlite import SQLiteBackend

__all__ = [
    "CandidateSpec",
    "DocumentStore",
    "InvertedIndex",
    "MemoryBackend",
    "QueryLog",
    "SQLiteBackend",
    "ScoredRow",
    "SearchBackend",
    "TermStatistics",
]
