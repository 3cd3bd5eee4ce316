"""SQLite storage backend for persistent indexes."""

import logging
import sqlite3
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import msgspec
from rapidfuzz.distance import Levenshtein

from ..exceptions import StorageError
from ..models import Document, Posting, QueryRecord, Token
from .base import (
    CandidateSpec,
    DocumentStore,
    InvertedIndex,
    QueryLog,
    ScoredRow,
    SearchBackend,
    TermStatistics,
    like_pattern,
)

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS documents (
        type TEXT NOT NULL,
        document_id TEXT NOT NULL,
        content TEXT NOT NULL,
        text TEXT NOT NULL,
        tokens TEXT NOT NULL,
        boost REAL NOT NULL DEFAULT 1.0,
        indexed_at REAL NOT NULL,
        PRIMARY KEY (type, document_id)
    );

    CREATE TABLE IF NOT EXISTS postings (
        type TEXT NOT NULL,
        document_id TEXT NOT NULL,
        term TEXT NOT NULL,
        field TEXT NOT NULL,
        frequency INTEGER NOT NULL,
        weight REAL NOT NULL,
        score REAL NOT NULL,
        PRIMARY KEY (type, document_id, term, field)
    );

    CREATE INDEX IF NOT EXISTS idx_postings_term ON postings(term);

    CREATE TABLE IF NOT EXISTS terms (
        term TEXT PRIMARY KEY,
        frequency INTEGER NOT NULL DEFAULT 0
    );

    CREATE TABLE IF NOT EXISTS queries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        query TEXT NOT NULL,
        result_count INTEGER NOT NULL,
        elapsed_ms REAL NOT NULL,
        created_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_queries_created ON queries(created_at);
"""

_token_decoder = msgspec.json.Decoder(list[Token])


def _levenshtein(a: str | None, b: str | None) -> int | None:
    if a is None or b is None:
        return None
    return Levenshtein.distance(a, b)


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


class _Database:
    """Connection wrapper shared by the collaborators of one backend."""

    def __init__(self, db_path: Path | str):
        self.db_path = db_path
        self.lock = threading.RLock()
        self.depth = 0
        try:
            self.conn: sqlite3.Connection | None = sqlite3.connect(
                str(db_path), check_same_thread=False, isolation_level=None
            )
            self.connection.row_factory = sqlite3.Row
            self.connection.create_function(
                "levenshtein", 2, _levenshtein, deterministic=True
            )
            self.connection.execute("PRAGMA journal_mode=WAL")
            self.connection.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open search database {db_path}: {e}") from e

    @property
    def connection(self) -> sqlite3.Connection:
        if self.conn is None:
            raise StorageError("Database connection is closed")
        return self.conn

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        with self.lock:
            try:
                return self.connection.execute(sql, params)
            except sqlite3.Error as e:
                raise StorageError(f"Database error: {e}") from e

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        with self.lock:
            return self.execute(sql, params).fetchall()

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        with self.lock:
            return self.execute(sql, params).fetchone()

    def close(self) -> None:
        with self.lock:
            if self.conn is not None:
                self.conn.close()
                self.conn = None


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        type=row["type"],
        id=row["document_id"],
        content=msgspec.json.decode(row["content"]),
        tokens=_token_decoder.decode(row["tokens"]),
        boost=row["boost"],
        indexed_at=row["indexed_at"],
    )


class SQLiteDocumentStore(DocumentStore):
    def __init__(self, db: _Database):
        self._db = db

    def upsert(
        self,
        type: str,
        id: str,
        document: dict[str, Any],
        tokens: list[Token],
        boost: float = 1.0,
    ) -> Document:
        stored = Document(
            type=type, id=id, content=dict(document), tokens=list(tokens), boost=boost
        )
        self._db.execute(
            """
            INSERT INTO documents
                (type, document_id, content, text, tokens, boost, indexed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(type, document_id) DO UPDATE SET
                content = excluded.content,
                text = excluded.text,
                tokens = excluded.tokens,
                boost = excluded.boost,
                indexed_at = excluded.indexed_at
            """,
            (
                type,
                id,
                msgspec.json.encode(stored.content).decode(),
                stored.text,
                msgspec.json.encode(stored.tokens).decode(),
                boost,
                stored.indexed_at,
            ),
        )
        return stored

    def get(self, type: str, id: str) -> Document | None:
        row = self._db.fetchone(
            "SELECT * FROM documents WHERE type = ? AND document_id = ?", (type, id)
        )
        return _row_to_document(row) if row else None

    def delete(self, type: str, id: str) -> bool:
        cursor = self._db.execute(
            "DELETE FROM documents WHERE type = ? AND document_id = ?", (type, id)
        )
        return cursor.rowcount > 0

    def count(self, type: str | None = None) -> int:
        if type is None:
            row = self._db.fetchone("SELECT COUNT(*) FROM documents")
        else:
            row = self._db.fetchone(
                "SELECT COUNT(*) FROM documents WHERE type = ?", (type,)
            )
        return row[0]

    def all(self, type: str) -> Iterator[Document]:
        rows = self._db.fetchall(
            "SELECT * FROM documents WHERE type = ? ORDER BY rowid", (type,)
        )
        return (_row_to_document(row) for row in rows)


class SQLiteInvertedIndex(InvertedIndex):
    def __init__(self, db: _Database):
        self._db = db

    def upsert_postings(self, type: str, id: str, postings: list[Posting]) -> None:
        with self._db.lock:
            self._db.execute(
                "DELETE FROM postings WHERE type = ? AND document_id = ?", (type, id)
            )
            for posting in postings:
                self._db.execute(
                    """
                    INSERT INTO postings
                        (type, document_id, term, field, frequency, weight, score)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        type,
                        id,
                        posting.term,
                        posting.field,
                        posting.frequency,
                        posting.weight,
                        posting.score,
                    ),
                )

    def delete_postings(self, type: str, id: str | None = None) -> int:
        if id is None:
            cursor = self._db.execute("DELETE FROM postings WHERE type = ?", (type,))
        else:
            cursor = self._db.execute(
                "DELETE FROM postings WHERE type = ? AND document_id = ?", (type, id)
            )
        return cursor.rowcount

    def postings(self, type: str, id: str) -> list[Posting]:
        rows = self._db.fetchall(
            """
            SELECT * FROM postings WHERE type = ? AND document_id = ?
            ORDER BY rowid
            """,
            (type, id),
        )
        return [
            Posting(
                type=row["type"],
                document_id=row["document_id"],
                term=row["term"],
                field=row["field"],
                frequency=row["frequency"],
                weight=row["weight"],
                score=row["score"],
            )
            for row in rows
        ]

    def term_document_frequency(self, term: str) -> int:
        row = self._db.fetchone(
            """
            SELECT COUNT(*) FROM (
                SELECT DISTINCT type, document_id FROM postings WHERE term = ?
            )
            """,
            (term,),
        )
        return row[0]

    def query(self, spec: CandidateSpec) -> list[ScoredRow]:
        field_sql = ""
        field_params: list[Any] = []
        if spec.fields is not None:
            field_sql = f" AND p.field IN ({_placeholders(spec.fields)})"
            field_params = list(spec.fields)

        def postings_exist(condition: str) -> str:
            return (
                "EXISTS (SELECT 1 FROM postings p"
                " WHERE p.type = d.type AND p.document_id = d.document_id"
                f" AND {condition}{field_sql})"
            )

        where: list[str] = []
        params: list[Any] = []

        if spec.type is not None:
            where.append("d.type = ?")
            params.append(spec.type)

        for term in spec.must:
            where.append(postings_exist("p.term = ?"))
            params.extend([term, *field_params])

        if spec.should:
            where.append(postings_exist(f"p.term IN ({_placeholders(spec.should)})"))
            params.extend([*spec.should, *field_params])

        if spec.must_not:
            where.append(
                "NOT " + postings_exist(f"p.term IN ({_placeholders(spec.must_not)})")
            )
            params.extend([*spec.must_not, *field_params])

        for phrase in spec.phrases:
            where.append("instr(d.text, ?) > 0")
            params.append(phrase)

        wildcard_likes = [like_pattern(pattern) for pattern in spec.wildcards]
        for pattern in wildcard_likes:
            where.append(postings_exist("p.term LIKE ? ESCAPE '\\'"))
            params.extend([pattern, *field_params])

        for field, expected in spec.filters.items():
            path = f'$."{field}"'
            if expected is None:
                where.append("json_extract(d.content, ?) IS NULL")
                params.append(path)
            elif isinstance(expected, list | tuple | set):
                values = list(expected)
                if not values:
                    where.append("0")
                    continue
                where.append(
                    f"json_extract(d.content, ?) IN ({_placeholders(values)})"
                )
                params.extend([path, *values])
            else:
                where.append("json_extract(d.content, ?) = ?")
                params.extend([path, expected])

        score_conditions: list[str] = []
        score_params: list[Any] = []
        if spec.scoring_terms_requested:
            terms = list(dict.fromkeys([*spec.must, *spec.should]))
            if terms:
                score_conditions.append(f"p.term IN ({_placeholders(terms)})")
                score_params.extend(terms)
            for pattern in wildcard_likes:
                score_conditions.append("p.term LIKE ? ESCAPE '\\'")
                score_params.append(pattern)
        score_filter = (
            " AND (" + " OR ".join(score_conditions) + ")" if score_conditions else ""
        )

        sql = f"""
            SELECT d.*, COALESCE((
                SELECT SUM(p.score * p.weight) FROM postings p
                WHERE p.type = d.type AND p.document_id = d.document_id
                {field_sql}{score_filter}
            ), 0) * d.boost AS relevance
            FROM documents d
            {"WHERE " + " AND ".join(where) if where else ""}
        """
        rows = self._db.fetchall(sql, [*field_params, *score_params, *params])
        logger.debug(f"Candidate query matched {len(rows)} documents")
        return [
            ScoredRow(document=_row_to_document(row), score=row["relevance"])
            for row in rows
        ]


class SQLiteTermStatistics(TermStatistics):
    def __init__(self, db: _Database):
        self._db = db

    def increment_frequency(self, term: str) -> None:
        self._db.execute(
            """
            INSERT INTO terms (term, frequency) VALUES (?, 1)
            ON CONFLICT(term) DO UPDATE SET frequency = frequency + 1
            """,
            (term,),
        )

    def term_frequency(self, term: str) -> int:
        row = self._db.fetchone("SELECT frequency FROM terms WHERE term = ?", (term,))
        return row["frequency"] if row else 0

    def find_similar(self, term: str, max_edit_distance: int) -> list[tuple[str, int]]:
        rows = self._db.fetchall(
            """
            SELECT term, frequency FROM terms
            WHERE term != ? AND levenshtein(term, ?) <= ?
            ORDER BY frequency DESC, term
            """,
            (term, term, max_edit_distance),
        )
        return [(row["term"], row["frequency"]) for row in rows]

    def prefix_match(self, prefix: str, limit: int) -> list[str]:
        rows = self._db.fetchall(
            """
            SELECT term FROM terms WHERE term LIKE ? ESCAPE '\\'
            ORDER BY frequency DESC, term LIMIT ?
            """,
            (like_pattern(prefix.lower()) + "%", limit),
        )
        return [row["term"] for row in rows]


class SQLiteQueryLog(QueryLog):
    def __init__(self, db: _Database):
        self._db = db

    def record(self, query: str, result_count: int, elapsed_ms: float) -> None:
        self._db.execute(
            """
            INSERT INTO queries (query, result_count, elapsed_ms, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                query,
                result_count,
                elapsed_ms,
                datetime.now().isoformat(timespec="microseconds"),
            ),
        )

    def prefix_match(self, prefix: str, limit: int) -> list[tuple[str, int]]:
        rows = self._db.fetchall(
            """
            SELECT query, COUNT(*) AS count FROM queries
            WHERE result_count > 0 AND query LIKE ? ESCAPE '\\'
            GROUP BY query
            ORDER BY count DESC, query
            LIMIT ?
            """,
            (like_pattern(prefix) + "%", limit),
        )
        return [(row["query"], row["count"]) for row in rows]

    def popular(self, limit: int, since: datetime | None = None) -> list[tuple[str, int]]:
        where = ""
        params: list[Any] = []
        if since is not None:
            where = "WHERE created_at >= ?"
            params.append(since.isoformat(timespec="microseconds"))
        rows = self._db.fetchall(
            f"""
            SELECT query, COUNT(*) AS count FROM queries
            {where}
            GROUP BY query
            ORDER BY count DESC, query
            LIMIT ?
            """,
            (*params, limit),
        )
        return [(row["query"], row["count"]) for row in rows]

    def recent(self, limit: int) -> list[QueryRecord]:
        rows = self._db.fetchall(
            "SELECT * FROM queries ORDER BY id DESC LIMIT ?", (limit,)
        )
        return [
            QueryRecord(
                query=row["query"],
                result_count=row["result_count"],
                elapsed_ms=row["elapsed_ms"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]


class SQLiteBackend(SearchBackend):
    """SQLite-based search backend.

    Writes outside ``transaction()`` commit immediately. Inside one they are
    applied between ``BEGIN`` and ``COMMIT`` and rolled back on error.
    """

    name = "sqlite"

    def __init__(self, db_path: Path | str = ":memory:"):
        self.db_path = db_path
        self._db = _Database(db_path)
        self.documents = SQLiteDocumentStore(self._db)
        self.index = SQLiteInvertedIndex(self._db)
        self.terms = SQLiteTermStatistics(self._db)
        self.queries = SQLiteQueryLog(self._db)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        db = self._db
        with db.lock:
            outermost = db.depth == 0
            if outermost:
                db.execute("BEGIN")
            db.depth += 1
            try:
                yield
                if outermost:
                    db.execute("COMMIT")
            except BaseException:
                if outermost and db.connection.in_transaction:
                    db.execute("ROLLBACK")
                raise
            finally:
                db.depth -= 1

    def clear(self) -> None:
        with self.transaction():
            for table in ("documents", "postings", "terms", "queries"):
                self._db.execute(f"DELETE FROM {table}")

    def get_statistics(self) -> dict[str, Any]:
        def count(table: str) -> int:
            return self._db.fetchone(f"SELECT COUNT(*) FROM {table}")[0]

        return {
            "backend": self.name,
            "database": str(self.db_path),
            "total_documents": count("documents"),
            "total_postings": count("postings"),
            "total_terms": count("terms"),
            "total_queries": count("queries"),
        }

    def close(self) -> None:
        self._db.close()
