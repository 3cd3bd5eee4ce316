"""Document indexer maintaining the inverted index."""

import logging
from collections.abc import Mapping
from typing import Any

from .analysis import AnalyzerRegistry
from .backends import SearchBackend
from .config import SearchConfig
from .events import EventBus, EventType
from .exceptions import IndexingError
from .models import Document, Posting, Token
from .scoring import compute_idf, compute_term_score

logger = logging.getLogger(__name__)


class Indexer:
    """Turns documents into weighted postings.

    Storing a document, rebuilding its postings and updating the term
    statistics happen inside one backend transaction. Lifecycle events are
    published once that transaction has committed.
    """

    def __init__(
        self,
        backend: SearchBackend,
        config: SearchConfig,
        analyzers: AnalyzerRegistry,
        events: EventBus | None = None,
    ):
        self.backend = backend
        self.config = config
        self.analyzers = analyzers
        self.events = events

    def index(self, type: str, id: str, document: dict[str, Any]) -> Document:
        """Index a single document, replacing any previous version.

        Args:
            type: Document type (index name)
            id: Document identifier within the type
            document: Raw field map; ``_boost`` sets the document boost

        Returns:
            The stored document

        Raises:
            IndexingError: If the document cannot be stored
        """
        id = str(id)
        try:
            with self.backend.transaction():
                stored = self._index_document(type, id, document)
        except IndexingError:
            raise
        except Exception as e:
            raise IndexingError(f"Failed to index {type}/{id}: {e}") from e

        logger.info(f"Indexed {type}/{id} with {len(stored.tokens)} tokens")
        self._emit(EventType.DOCUMENT_INDEXED, type=type, id=id)
        return stored

    def delete(self, type: str, id: str) -> bool:
        """Remove a document and its postings.

        Returns:
            True if the document existed
        """
        id = str(id)
        with self.backend.transaction():
            self.backend.index.delete_postings(type, id)
            existed = self.backend.documents.delete(type, id)

        if existed:
            logger.info(f"Deleted {type}/{id}")
        else:
            logger.debug(f"Delete of unknown document {type}/{id}")
        self._emit(EventType.DOCUMENT_DELETED, type=type, id=id, existed=existed)
        return existed

    def bulk_index(self, type: str, documents: Mapping[Any, dict[str, Any]]) -> int:
        """Index many documents atomically.

        Either every document is indexed or, on the first failure, none are.

        Args:
            type: Document type shared by all documents
            documents: Mapping of document id to raw field map

        Returns:
            Number of documents indexed
        """
        ids = []
        try:
            with self.backend.transaction():
                for id, document in documents.items():
                    self._index_document(type, str(id), document)
                    ids.append(str(id))
        except Exception as e:
            raise IndexingError(
                f"Bulk indexing of {type} rolled back after {len(ids)} documents: {e}"
            ) from e

        logger.info(f"Bulk indexed {len(ids)} {type} documents")
        self._emit(EventType.BULK_INDEXED, type=type, ids=ids, count=len(ids))
        return len(ids)

    def reindex(self, type: str) -> int:
        """Rebuild the postings of every stored document of ``type``.

        Stored token lists are reused; documents are not re-analyzed.

        Returns:
            Number of documents reindexed
        """
        count = 0
        with self.backend.transaction():
            self.backend.index.delete_postings(type)
            for document in list(self.backend.documents.all(type)):
                self.rebuild_postings(type, document.id, document.tokens)
                count += 1

        logger.info(f"Reindexed {count} {type} documents")
        self._emit(EventType.REINDEXED, type=type, count=count)
        return count

    def extract_index_data(self, document: dict[str, Any]) -> dict[str, list[str]]:
        """Collect the text of every configured index field present in ``document``."""
        data = {}
        for field in self.config.index_fields:
            value = document.get(field)
            if value is None:
                continue
            items = value if isinstance(value, list | tuple) else [value]
            texts = [str(item) for item in items if item is not None]
            if texts:
                data[field] = texts
        return data

    def tokenize(self, data: dict[str, list[str]]) -> list[Token]:
        tokens = []
        for field, texts in data.items():
            spec = self.config.index_fields[field]
            analyzer = self.analyzers.get(spec.analyzer)
            for text in texts:
                for term in analyzer.analyze(text):
                    tokens.append(Token(term=term, field=field, weight=spec.weight))
        return tokens

    def rebuild_postings(self, type: str, id: str, tokens: list[Token]) -> list[Posting]:
        """Replace the postings of one document and bump term statistics.

        The document itself must already be stored so that it counts
        towards the total used for IDF.
        """
        index = self.backend.index
        index.delete_postings(type, id)

        frequencies: dict[tuple[str, str], int] = {}
        weights: dict[tuple[str, str], float] = {}
        for token in tokens:
            key = (token.term, token.field)
            frequencies[key] = frequencies.get(key, 0) + 1
            weights.setdefault(key, token.weight)

        total_docs = self.backend.documents.count()
        idf_cache: dict[str, float] = {}
        postings = []
        for (term, field), frequency in frequencies.items():
            if term not in idf_cache:
                doc_freq = index.term_document_frequency(term) + 1
                idf_cache[term] = compute_idf(total_docs, doc_freq)
            weight = weights[(term, field)]
            postings.append(
                Posting(
                    type=type,
                    document_id=id,
                    term=term,
                    field=field,
                    frequency=frequency,
                    weight=weight,
                    score=compute_term_score(frequency, idf_cache[term], weight),
                )
            )

        index.upsert_postings(type, id, postings)
        for term in dict.fromkeys(token.term for token in tokens):
            self.backend.terms.increment_frequency(term)
        return postings

    def _index_document(self, type: str, id: str, document: dict[str, Any]) -> Document:
        if not isinstance(document, Mapping):
            raise IndexingError(f"Document {type}/{id} must be a mapping")
        try:
            boost = float(document.get("_boost", 1.0))
        except (TypeError, ValueError) as e:
            raise IndexingError(f"Invalid _boost for {type}/{id}") from e

        tokens = self.tokenize(self.extract_index_data(document))
        stored = self.backend.documents.upsert(type, id, dict(document), tokens, boost)
        self.rebuild_postings(type, id, tokens)
        return stored

    def _emit(self, event_type: EventType, **data: Any) -> None:
        if self.events is not None:
            self.events.emit(event_type, **data)
