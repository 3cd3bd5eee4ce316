"""Data models for the search engine using msgspec for performance."""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any

import msgspec


class Token(msgspec.Struct, frozen=True, array_like=True):
    """A single analyzed token tagged with its source field and weight."""

    term: str
    field: str
    weight: float


class Posting(msgspec.Struct, frozen=True, kw_only=True):
    """One ``(document, term, field)`` entry of the inverted index."""

    type: str
    document_id: str
    term: str
    field: str
    frequency: int
    weight: float
    score: float


class Document(msgspec.Struct, frozen=True, kw_only=True):
    """A stored document with the tokens extracted from it.

    ``content`` is the caller's raw field map and is treated as opaque,
    apart from phrase matching, filtering, sorting and highlighting.
    """

    type: str
    id: str
    content: dict[str, Any]
    tokens: list[Token] = msgspec.field(default_factory=list)
    boost: float = 1.0
    indexed_at: float = msgspec.field(default_factory=time.time)

    @property
    def key(self) -> tuple[str, str]:
        return (self.type, self.id)

    @property
    def text(self) -> str:
        """Lowercased raw text of every value in the document."""
        return " ".join(_flatten_text(self.content)).lower()


def _flatten_text(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, dict):
        parts = []
        for item in value.values():
            parts.extend(_flatten_text(item))
        return parts
    if isinstance(value, list | tuple | set):
        parts = []
        for item in value:
            parts.extend(_flatten_text(item))
        return parts
    return [str(value)]


class AnalyzedQuery(msgspec.Struct, frozen=True, kw_only=True):
    """Immutable result of parsing a raw query string.

    Each raw substring is claimed by exactly one clause set.
    """

    original: str
    tokens: tuple[str, ...] = ()
    must: tuple[str, ...] = ()
    should: tuple[str, ...] = ()
    must_not: tuple[str, ...] = ()
    phrase: tuple[str, ...] = ()
    wildcard: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        """True when no clause set holds anything."""
        return not (
            self.must or self.should or self.must_not or self.phrase or self.wildcard
        )

    @property
    def all_terms(self) -> list[str]:
        """Terms used for highlighting: required, optional, then generic tokens."""
        terms = []
        for term in (*self.must, *self.should, *self.tokens):
            if term and term not in terms:
                terms.append(term)
        return terms


class SearchOptions(msgspec.Struct, frozen=True, kw_only=True):
    """Per-request search options."""

    index: str | None = None
    fields: list[str] | None = None
    filters: dict[str, Any] = msgspec.field(default_factory=dict)
    facets: dict[str, Any] = msgspec.field(default_factory=dict)
    sort: Any = None
    from_: int = msgspec.field(default=0, name="from")
    size: int = 20
    highlight: bool = True
    fuzzy: bool = False
    suggest: bool = True


class SearchHit(msgspec.Struct, frozen=True, kw_only=True):
    """A single ranked hit."""

    type: str
    id: str
    score: float
    document: dict[str, Any]
    highlight: dict[str, str] = msgspec.field(default_factory=dict)


class Suggestion(msgspec.Struct, frozen=True, kw_only=True):
    """A term, phrase, completion or correction suggestion."""

    type: str
    value: str
    score: float = 0.0


class SearchResult(msgspec.Struct, frozen=True, kw_only=True):
    """Complete search results with pagination window and enhancements."""

    hits: list[SearchHit]
    total: int
    from_: int = msgspec.field(default=0, name="from")
    size: int = 20
    facets: dict[str, Any] = msgspec.field(default_factory=dict)
    suggestions: list[Suggestion] = msgspec.field(default_factory=list)
    took_ms: float = 0.0

    @property
    def is_empty(self) -> bool:
        """Check if no results were found."""
        return self.total == 0

    @property
    def top_hit(self) -> SearchHit | None:
        """Get the highest ranked result."""
        return self.hits[0] if self.hits else None

    def with_facets(self, facets: dict[str, Any]) -> SearchResult:
        return msgspec.structs.replace(self, facets=facets)

    def with_suggestions(self, suggestions: list[Suggestion]) -> SearchResult:
        return msgspec.structs.replace(self, suggestions=suggestions)

    def to_dict(self) -> dict[str, Any]:
        return msgspec.to_builtins(self)


class QueryRecord(msgspec.Struct, frozen=True, kw_only=True):
    """An executed query as kept in the query log."""

    query: str
    result_count: int
    elapsed_ms: float
    created_at: datetime = msgspec.field(default_factory=datetime.now)
