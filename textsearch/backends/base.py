"""Collaborator interfaces for storage backends.

A backend bundles the document store, the inverted index, term statistics
and the query log behind one ``transaction()`` so that a document, its
postings and the term counters change together.
"""

import re
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..models import Document, Posting, QueryRecord, Token


@dataclass
class CandidateSpec:
    """Structured candidate query passed to backends.

    ``filters`` maps validated field names to an exact value or a list of
    accepted values. ``fields`` restricts which postings take part in term
    clauses and scoring.
    """

    type: str | None = None
    must: list[str] = field(default_factory=list)
    should: list[str] = field(default_factory=list)
    must_not: list[str] = field(default_factory=list)
    phrases: list[str] = field(default_factory=list)
    wildcards: list[str] = field(default_factory=list)
    fields: list[str] | None = None
    filters: dict[str, Any] = field(default_factory=dict)

    @property
    def scoring_terms_requested(self) -> bool:
        return bool(self.must or self.should or self.wildcards)


@dataclass
class ScoredRow:
    """A candidate document with its aggregated score."""

    document: Document
    score: float

    @property
    def key(self) -> tuple[str, str]:
        return self.document.key


class DocumentStore(ABC):
    """Persists raw documents and their extracted tokens."""

    @abstractmethod
    def upsert(
        self,
        type: str,
        id: str,
        document: dict[str, Any],
        tokens: list[Token],
        boost: float = 1.0,
    ) -> Document:
        """Insert or replace the document stored under ``(type, id)``."""
        pass

    @abstractmethod
    def get(self, type: str, id: str) -> Document | None:
        pass

    @abstractmethod
    def delete(self, type: str, id: str) -> bool:
        """Delete a document; True if it existed."""
        pass

    @abstractmethod
    def count(self, type: str | None = None) -> int:
        pass

    @abstractmethod
    def all(self, type: str) -> Iterator[Document]:
        pass


class InvertedIndex(ABC):
    """Stores postings and answers candidate queries."""

    @abstractmethod
    def upsert_postings(self, type: str, id: str, postings: list[Posting]) -> None:
        pass

    @abstractmethod
    def delete_postings(self, type: str, id: str | None = None) -> int:
        """Delete postings of one document, or of a whole type when ``id`` is None.

        Returns:
            Number of postings removed
        """
        pass

    @abstractmethod
    def query(self, spec: CandidateSpec) -> list[ScoredRow]:
        """Return every matching document with its score, in no particular order."""
        pass

    @abstractmethod
    def term_document_frequency(self, term: str) -> int:
        """Number of distinct documents with at least one posting for ``term``."""
        pass

    @abstractmethod
    def postings(self, type: str, id: str) -> list[Posting]:
        pass


class TermStatistics(ABC):
    """Global per-term counters."""

    @abstractmethod
    def increment_frequency(self, term: str) -> None:
        pass

    @abstractmethod
    def term_frequency(self, term: str) -> int:
        pass

    @abstractmethod
    def find_similar(self, term: str, max_edit_distance: int) -> list[tuple[str, int]]:
        """Terms within ``max_edit_distance`` of ``term`` (itself excluded).

        Returns:
            ``(term, frequency)`` pairs, most frequent first
        """
        pass

    @abstractmethod
    def prefix_match(self, prefix: str, limit: int) -> list[str]:
        """Terms starting with ``prefix``, most frequent first."""
        pass


class QueryLog(ABC):
    """History of executed queries."""

    @abstractmethod
    def record(self, query: str, result_count: int, elapsed_ms: float) -> None:
        pass

    @abstractmethod
    def prefix_match(self, prefix: str, limit: int) -> list[tuple[str, int]]:
        """Queries starting with ``prefix`` that returned results.

        Returns:
            ``(query, count)`` pairs, most frequent first
        """
        pass

    @abstractmethod
    def popular(self, limit: int, since: datetime | None = None) -> list[tuple[str, int]]:
        pass

    @abstractmethod
    def recent(self, limit: int) -> list[QueryRecord]:
        pass


class SearchBackend(ABC):
    """Complete storage backend used by the engine.

    Exposes the four collaborators as attributes. They share one lock, so a
    read never observes a half-applied ``transaction()``.
    """

    name = "base"

    documents: DocumentStore
    index: InvertedIndex
    terms: TermStatistics
    queries: QueryLog

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Context manager making the enclosed changes atomic.

        Nested transactions join the outermost one.
        """
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove all documents, postings, term statistics and query history."""
        pass

    def get_statistics(self) -> dict[str, Any]:
        return {"backend": self.name, "total_documents": self.documents.count()}

    def close(self) -> None:
        pass


def wildcard_regex(pattern: str) -> re.Pattern:
    """Compile a ``*`` wildcard pattern into an anchored regex."""
    parts = (re.escape(part) for part in pattern.split("*"))
    return re.compile("^" + ".*".join(parts) + "$")


def like_pattern(pattern: str, escape: str = "\\") -> str:
    """Translate a ``*`` wildcard pattern into a SQL LIKE pattern."""
    escaped = (
        pattern.replace(escape, escape * 2)
        .replace("%", f"{escape}%")
        .replace("_", f"{escape}_")
    )
    return escaped.replace("*", "%")
