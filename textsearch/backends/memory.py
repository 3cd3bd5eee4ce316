"""In-memory search backend for testing and lightweight scenarios."""

import copy
import threading
from collections import Counter, defaultdict
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

import msgspec
from rapidfuzz.distance import Levenshtein

from ..models import Document, Posting, QueryRecord, Token
from .base import (
    CandidateSpec,
    DocumentStore,
    InvertedIndex,
    QueryLog,
    ScoredRow,
    SearchBackend,
    TermStatistics,
    wildcard_regex,
)

DocKey = tuple[str, str]


def _detached(document: Document) -> Document:
    """Copy of a stored document whose content callers may freely mutate."""
    return msgspec.structs.replace(document, content=copy.deepcopy(document.content))


class _MemoryState:
    """Shared state guarded by one re-entrant lock.

    While a transaction is open every mutation appends its inverse to
    ``journal``; rolling back replays the journal backwards.
    """

    def __init__(self):
        self.lock = threading.RLock()
        self.documents: dict[DocKey, Document] = {}
        self.postings: dict[DocKey, list[Posting]] = {}
        self.term_docs: dict[str, set[DocKey]] = defaultdict(set)
        self.term_freq: Counter[str] = Counter()
        self.queries: list[QueryRecord] = []
        self.journal: list[Callable[[], None]] | None = None
        self.depth = 0

    def log_undo(self, undo: Callable[[], None]) -> None:
        if self.journal is not None:
            self.journal.append(undo)

    def set_document(self, key: DocKey, document: Document | None) -> None:
        previous = self.documents.get(key)
        if document is None:
            self.documents.pop(key, None)
        else:
            self.documents[key] = document
        self.log_undo(lambda: self.set_document(key, previous))

    def set_postings(self, key: DocKey, postings: list[Posting]) -> None:
        previous = self.postings.get(key, [])
        for posting in previous:
            docs = self.term_docs.get(posting.term)
            if docs is not None:
                docs.discard(key)
                if not docs:
                    del self.term_docs[posting.term]
        if postings:
            self.postings[key] = list(postings)
            for posting in postings:
                self.term_docs[posting.term].add(key)
        else:
            self.postings.pop(key, None)
        self.log_undo(lambda: self.set_postings(key, previous))

    def add_term_frequency(self, term: str, delta: int) -> None:
        self.term_freq[term] += delta
        if self.term_freq[term] <= 0:
            del self.term_freq[term]
        self.log_undo(lambda: self.add_term_frequency(term, -delta))

    def reset(self) -> None:
        self.documents.clear()
        self.postings.clear()
        self.term_docs.clear()
        self.term_freq.clear()
        self.queries.clear()


class MemoryDocumentStore(DocumentStore):
    def __init__(self, state: _MemoryState):
        self._state = state

    def upsert(
        self,
        type: str,
        id: str,
        document: dict[str, Any],
        tokens: list[Token],
        boost: float = 1.0,
    ) -> Document:
        stored = Document(
            type=type,
            id=id,
            content=copy.deepcopy(dict(document)),
            tokens=list(tokens),
            boost=boost,
        )
        with self._state.lock:
            self._state.set_document((type, id), stored)
        return _detached(stored)

    def get(self, type: str, id: str) -> Document | None:
        with self._state.lock:
            stored = self._state.documents.get((type, id))
        return _detached(stored) if stored is not None else None

    def delete(self, type: str, id: str) -> bool:
        with self._state.lock:
            if (type, id) not in self._state.documents:
                return False
            self._state.set_document((type, id), None)
            return True

    def count(self, type: str | None = None) -> int:
        with self._state.lock:
            if type is None:
                return len(self._state.documents)
            return sum(1 for doc_type, _ in self._state.documents if doc_type == type)

    def all(self, type: str) -> Iterator[Document]:
        with self._state.lock:
            documents = [d for d in self._state.documents.values() if d.type == type]
        return iter(documents)


class MemoryInvertedIndex(InvertedIndex):
    def __init__(self, state: _MemoryState):
        self._state = state

    def upsert_postings(self, type: str, id: str, postings: list[Posting]) -> None:
        with self._state.lock:
            self._state.set_postings((type, id), postings)

    def delete_postings(self, type: str, id: str | None = None) -> int:
        with self._state.lock:
            if id is not None:
                keys = [(type, id)] if (type, id) in self._state.postings else []
            else:
                keys = [key for key in self._state.postings if key[0] == type]

            removed = 0
            for key in keys:
                removed += len(self._state.postings[key])
                self._state.set_postings(key, [])
            return removed

    def postings(self, type: str, id: str) -> list[Posting]:
        with self._state.lock:
            return list(self._state.postings.get((type, id), []))

    def term_document_frequency(self, term: str) -> int:
        with self._state.lock:
            return len(self._state.term_docs.get(term, ()))

    def query(self, spec: CandidateSpec) -> list[ScoredRow]:
        wildcards = [wildcard_regex(pattern) for pattern in spec.wildcards]
        should = set(spec.should)
        must_not = set(spec.must_not)

        rows = []
        with self._state.lock:
            for key, document in self._state.documents.items():
                if spec.type is not None and document.type != spec.type:
                    continue

                postings = self._state.postings.get(key, [])
                if spec.fields is not None:
                    postings = [p for p in postings if p.field in spec.fields]
                terms = {p.term for p in postings}

                if any(term not in terms for term in spec.must):
                    continue
                if should and not (terms & should):
                    continue
                if terms & must_not:
                    continue
                if spec.phrases:
                    text = document.text
                    if not all(phrase in text for phrase in spec.phrases):
                        continue

                wildcard_terms: set[str] = set()
                matched_all = True
                for regex in wildcards:
                    matched = {term for term in terms if regex.match(term)}
                    if not matched:
                        matched_all = False
                        break
                    wildcard_terms |= matched
                if not matched_all:
                    continue

                if not matches_filters(document.content, spec.filters):
                    continue

                if spec.scoring_terms_requested:
                    scoring = set(spec.must) | should | wildcard_terms
                    postings = [p for p in postings if p.term in scoring]
                score = sum(p.score * p.weight for p in postings) * document.boost
                rows.append(ScoredRow(document=document, score=score))

        return rows


def matches_filters(content: dict[str, Any], filters: dict[str, Any]) -> bool:
    """Exact-value or list-membership test on top-level document fields."""
    for field, expected in filters.items():
        value = content.get(field)
        if expected is None:
            if value is not None:
                return False
        elif value is None:
            return False
        elif isinstance(expected, list | tuple | set):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


class MemoryTermStatistics(TermStatistics):
    def __init__(self, state: _MemoryState):
        self._state = state

    def increment_frequency(self, term: str) -> None:
        with self._state.lock:
            self._state.add_term_frequency(term, 1)

    def term_frequency(self, term: str) -> int:
        with self._state.lock:
            return self._state.term_freq.get(term, 0)

    def find_similar(self, term: str, max_edit_distance: int) -> list[tuple[str, int]]:
        with self._state.lock:
            items = list(self._state.term_freq.items())

        similar = [
            (candidate, frequency)
            for candidate, frequency in items
            if candidate != term
            and Levenshtein.distance(term, candidate, score_cutoff=max_edit_distance)
            <= max_edit_distance
        ]
        return sorted(similar, key=lambda x: (-x[1], x[0]))

    def prefix_match(self, prefix: str, limit: int) -> list[str]:
        prefix = prefix.lower()
        with self._state.lock:
            items = [
                (term, frequency)
                for term, frequency in self._state.term_freq.items()
                if term.startswith(prefix)
            ]
        items.sort(key=lambda x: (-x[1], x[0]))
        return [term for term, _ in items[:limit]]


class MemoryQueryLog(QueryLog):
    def __init__(self, state: _MemoryState):
        self._state = state

    def record(self, query: str, result_count: int, elapsed_ms: float) -> None:
        entry = QueryRecord(query=query, result_count=result_count, elapsed_ms=elapsed_ms)
        with self._state.lock:
            self._state.queries.append(entry)
            self._state.log_undo(self._state.queries.pop)

    def prefix_match(self, prefix: str, limit: int) -> list[tuple[str, int]]:
        prefix = prefix.lower()
        with self._state.lock:
            counter = Counter(
                q.query
                for q in self._state.queries
                if q.result_count > 0 and q.query.lower().startswith(prefix)
            )
        return _most_common(counter, limit)

    def popular(self, limit: int, since: datetime | None = None) -> list[tuple[str, int]]:
        with self._state.lock:
            counter = Counter(
                q.query
                for q in self._state.queries
                if since is None or q.created_at >= since
            )
        return _most_common(counter, limit)

    def recent(self, limit: int) -> list[QueryRecord]:
        with self._state.lock:
            return self._state.queries[-limit:][::-1]


def _most_common(counter: Counter[str], limit: int) -> list[tuple[str, int]]:
    return sorted(counter.items(), key=lambda x: (-x[1], x[0]))[:limit]


class MemoryBackend(SearchBackend):
    """In-memory search backend implementation."""

    name = "memory"

    def __init__(self):
        self._state = _MemoryState()
        self.documents = MemoryDocumentStore(self._state)
        self.index = MemoryInvertedIndex(self._state)
        self.terms = MemoryTermStatistics(self._state)
        self.queries = MemoryQueryLog(self._state)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        state = self._state
        with state.lock:
            outermost = state.depth == 0
            if outermost:
                state.journal = []
            state.depth += 1
            try:
                yield
            except BaseException:
                if outermost:
                    self._rollback()
                raise
            finally:
                state.depth -= 1
                if outermost:
                    state.journal = None

    def _rollback(self) -> None:
        journal, self._state.journal = self._state.journal or [], None
        for undo in reversed(journal):
            undo()

    def clear(self) -> None:
        with self._state.lock:
            self._state.reset()

    def get_statistics(self) -> dict[str, Any]:
        with self._state.lock:
            return {
                "backend": self.name,
                "total_documents": len(self._state.documents),
                "total_postings": sum(len(p) for p in self._state.postings.values()),
                "total_terms": len(self._state.term_freq),
                "total_queries": len(self._state.queries),
            }
