"""Query execution: candidate retrieval, ranking, pagination and highlighting."""

import copy
import logging
import re
import time
from collections.abc import Iterable
from numbers import Number
from typing import Any

from .backends import CandidateSpec, ScoredRow, SearchBackend
from .config import SearchConfig
from .exceptions import QueryError
from .models import AnalyzedQuery, SearchHit, SearchOptions, SearchResult
from .scoring import recency_factor

logger = logging.getLogger(__name__)

SCORE_FIELDS = frozenset({"_score", "relevance"})
SORT_DIRECTIONS = ("asc", "desc")
FIELD_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def parse_sort(sort: Any, sortable_fields: Iterable[str]) -> list[tuple[str, str]]:
    """Normalize a caller sort specification into ``(field, direction)`` pairs.

    Accepts ``"field"``, ``"field:dir"``, ``{field: dir}`` or a list of those.
    Score aliases become ``"_score"``. Fields outside ``sortable_fields`` and
    directions other than asc/desc are dropped.
    """
    if not sort:
        return []

    allowed = set(sortable_fields)
    items = sort if isinstance(sort, list | tuple) else [sort]
    pairs: list[tuple[Any, Any]] = []
    for item in items:
        if isinstance(item, str):
            field, _, direction = item.partition(":")
            pairs.append((field.strip(), direction.strip() or None))
        elif isinstance(item, dict):
            pairs.extend(item.items())
        else:
            logger.debug(f"Ignoring sort clause {item!r}")

    clauses = []
    for field, direction in pairs:
        if field in SCORE_FIELDS:
            field = "_score"
        elif field not in allowed:
            logger.debug(f"Ignoring unsortable field {field!r}")
            continue

        if direction is None:
            direction = "desc" if field == "_score" else "asc"
        direction = str(direction).lower()
        if direction not in SORT_DIRECTIONS:
            logger.debug(f"Ignoring sort direction {direction!r} for {field}")
            continue
        clauses.append((field, direction))
    return clauses


def validate_filters(filters: dict[str, Any]) -> dict[str, Any]:
    """Check that every filter targets a plain top-level field name.

    Raises:
        QueryError: If a field name is not an identifier
    """
    for field in filters:
        if not isinstance(field, str) or not FIELD_NAME_PATTERN.match(field):
            raise QueryError(f"Invalid filter field: {field!r}")
    return dict(filters)


def _sort_value(value: Any) -> tuple[int, Any]:
    # NULL < numbers < text < everything else
    if value is None:
        return (0, 0)
    if isinstance(value, Number):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    return (3, str(value))


def sort_rows(rows: list[ScoredRow], clauses: list[tuple[str, str]]) -> list[ScoredRow]:
    """Order rows by the sort clauses, score descending when there are none.

    Ties always break on ``(type, id)``.
    """
    ordered = sorted(rows, key=lambda row: row.key)
    for field, direction in reversed(clauses or [("_score", "desc")]):
        reverse = direction == "desc"
        if field == "_score":
            ordered.sort(key=lambda row: row.score, reverse=reverse)
        else:
            ordered.sort(
                key=lambda row: _sort_value(row.document.content.get(field)),
                reverse=reverse,
            )
    return ordered


class Highlighter:
    """Wraps whole-word query term matches in HTML-style tags."""

    def __init__(self, tag: str = "mark"):
        self.tag = tag

    def build_pattern(self, terms: Iterable[str]) -> re.Pattern | None:
        unique = sorted({t for t in terms if t}, key=lambda t: (-len(t), t))
        if not unique:
            return None
        alternatives = "|".join(re.escape(term) for term in unique)
        return re.compile(rf"\b({alternatives})\b", re.IGNORECASE)

    def highlight(
        self,
        document: dict[str, Any],
        terms: Iterable[str],
        fields: Iterable[str],
    ) -> dict[str, str]:
        """Highlight ``fields`` of ``document``.

        Returns:
            Highlighted text for every field that contained a match
        """
        pattern = self.build_pattern(terms)
        if pattern is None:
            return {}

        replacement = rf"<{self.tag}>\1</{self.tag}>"
        highlights = {}
        for field in fields:
            value = document.get(field)
            if value is None:
                continue
            text = " ".join(str(v) for v in value) if isinstance(value, list) else str(value)
            highlighted, count = pattern.subn(replacement, text)
            if count:
                highlights[field] = highlighted
        return highlights


class Retriever:
    """Executes analyzed queries against a backend."""

    def __init__(self, backend: SearchBackend, config: SearchConfig):
        self.backend = backend
        self.config = config
        self.highlighter = Highlighter(config.highlight_tag)

    def build_spec(self, query: AnalyzedQuery, options: SearchOptions) -> CandidateSpec:
        """Translate a parsed query and options into a backend candidate query."""
        should = list(dict.fromkeys(query.should))
        if options.fuzzy:
            should = self.expand_fuzzy(should)

        return CandidateSpec(
            type=options.index,
            must=list(dict.fromkeys(query.must)),
            should=should,
            must_not=list(dict.fromkeys(query.must_not)),
            phrases=list(query.phrase),
            wildcards=list(query.wildcard),
            fields=list(options.fields) if options.fields else None,
            filters=validate_filters(options.filters),
        )

    def expand_fuzzy(self, terms: list[str]) -> list[str]:
        """Add indexed terms close to every term that has no exact postings."""
        expanded = list(terms)
        for term in terms:
            if self.backend.index.term_document_frequency(term) > 0:
                continue
            similar = self.backend.terms.find_similar(term, self.config.fuzzy_distance)
            if similar:
                logger.debug(f"Fuzzy expansion of {term!r}: {[t for t, _ in similar]}")
            for candidate, _ in similar:
                if candidate not in expanded:
                    expanded.append(candidate)
        return expanded

    def candidates(self, query: AnalyzedQuery, options: SearchOptions) -> list[ScoredRow]:
        """All matching rows, scored and sorted, before pagination."""
        spec = self.build_spec(query, options)
        rows = self.backend.index.query(spec)

        if self.config.boost_recent:
            now = time.time()
            for row in rows:
                row.score *= recency_factor(row.document.indexed_at, now)

        clauses = parse_sort(options.sort, self.config.sortable_fields)
        return sort_rows(rows, clauses)

    def execute(
        self, query: AnalyzedQuery, options: SearchOptions
    ) -> tuple[SearchResult, list[ScoredRow]]:
        """Run a query and build the paginated result.

        Returns:
            The result and the complete candidate list (for facets)
        """
        start = time.perf_counter()
        rows = self.candidates(query, options)

        offset = max(0, options.from_)
        size = max(0, min(options.size, self.config.max_results))
        page = rows[offset : offset + size]

        terms = query.all_terms
        fields = options.fields or list(self.config.index_fields)
        hits = []
        for row in page:
            content = row.document.content
            highlight = (
                self.highlighter.highlight(content, terms, fields)
                if options.highlight
                else {}
            )
            hits.append(
                SearchHit(
                    type=row.document.type,
                    id=row.document.id,
                    score=row.score,
                    document=copy.deepcopy(content),
                    highlight=highlight,
                )
            )

        result = SearchResult(
            hits=hits,
            total=len(rows),
            from_=offset,
            size=size,
            took_ms=(time.perf_counter() - start) * 1000,
        )
        return result, rows
