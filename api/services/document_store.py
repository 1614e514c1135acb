"""Relational document store: Postgres for deployment, in-memory for single-process use."""
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from uuid import UUID
import psycopg2
from psycopg2.extras import RealDictCursor
from pydantic import BaseModel, Field
from shared.config import config
from shared.exceptions import StoreUnavailableError
from shared.models import Document, SearchFilters, SortField, SortOrder
import logging

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    SortField.CREATED_AT: "created_at",
    SortField.NAME: "name",
    SortField.SIZE: "size_bytes",
    SortField.CONFIDENCE: "confidence",
}

DOCUMENT_COLUMNS = (
    "id", "owner_id", "name", "media_type", "size_bytes", "category", "confidence",
    "keywords", "language", "document_type", "extracted_text", "blob_path",
    "created_at", "updated_at",
)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class DocumentCriteria(BaseModel):
    """A normalized retrieval request: owner scope, text, filters, order and page."""
    owner_id: str
    text: str = ""
    filters: SearchFilters = Field(default_factory=SearchFilters)
    sort_by: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC
    limit: int = 20
    offset: int = 0

    def matches(self, document: Document) -> bool:
        """Filter predicate; absent filters impose no constraint."""
        if document.owner_id != self.owner_id:
            return False

        if self.text:
            text_hit = (
                self.text in document.name.lower()
                or self.text in document.extracted_text.lower()
                or self.text in (k.lower() for k in document.keywords)
                or self.text in document.category.value.lower()
            )
            if not text_hit:
                return False

        f = self.filters
        if f.category is not None and document.category != f.category:
            return False
        if f.date_from is not None and _aware(document.created_at) < _aware(f.date_from):
            return False
        if f.date_to is not None and _aware(document.created_at) > _aware(f.date_to):
            return False
        if f.media_type is not None and document.media_type != f.media_type:
            return False
        if f.min_size is not None and document.size_bytes < f.min_size:
            return False
        if f.max_size is not None and document.size_bytes > f.max_size:
            return False
        if f.language is not None and document.language != f.language:
            return False
        return True

    def sort_key(self, document: Document):
        if self.sort_by == SortField.NAME:
            return document.name.lower()
        if self.sort_by == SortField.SIZE:
            return document.size_bytes
        if self.sort_by == SortField.CONFIDENCE:
            return document.confidence
        return _aware(document.created_at)


class DocumentStore(ABC):
    """CRUD and query operations over Document rows."""

    @abstractmethod
    def insert(self, document: Document) -> Document:
        ...

    @abstractmethod
    def get(self, document_id: UUID, owner_id: str) -> Optional[Document]:
        ...

    @abstractmethod
    def delete(self, document_id: UUID, owner_id: str) -> bool:
        ...

    @abstractmethod
    def query(self, criteria: DocumentCriteria) -> Tuple[List[Document], int]:
        """Return (page of matching documents, total match count)."""

    @abstractmethod
    def list_for_owner(self, owner_id: str) -> List[Document]:
        ...


class InMemoryDocumentStore(DocumentStore):
    """Process-local store evaluating criteria with DocumentCriteria.matches."""

    def __init__(self):
        self._documents: Dict[UUID, Document] = {}
        self._lock = threading.Lock()

    def insert(self, document: Document) -> Document:
        with self._lock:
            self._documents[document.id] = document
        return document

    def get(self, document_id: UUID, owner_id: str) -> Optional[Document]:
        with self._lock:
            document = self._documents.get(document_id)
        if document is None or document.owner_id != owner_id:
            return None
        return document

    def delete(self, document_id: UUID, owner_id: str) -> bool:
        with self._lock:
            document = self._documents.get(document_id)
            if document is None or document.owner_id != owner_id:
                return False
            del self._documents[document_id]
            return True

    def query(self, criteria: DocumentCriteria) -> Tuple[List[Document], int]:
        with self._lock:
            snapshot = list(self._documents.values())
        matching = [d for d in snapshot if criteria.matches(d)]
        matching.sort(key=criteria.sort_key, reverse=criteria.sort_order == SortOrder.DESC)
        page = matching[criteria.offset:criteria.offset + criteria.limit]
        return page, len(matching)

    def list_for_owner(self, owner_id: str) -> List[Document]:
        with self._lock:
            return [d for d in self._documents.values() if d.owner_id == owner_id]


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_where_clause(criteria: DocumentCriteria) -> Tuple[str, list]:
    """Translate criteria into a parameterised WHERE clause.

    Args:
        criteria: Normalized retrieval request

    Returns:
        (SQL fragment without the WHERE keyword, parameter list)
    """
    clauses = ["owner_id = %s"]
    params: list = [criteria.owner_id]

    if criteria.text:
        like = f"%{_escape_like(criteria.text)}%"
        clauses.append(
            "(name ILIKE %s OR extracted_text ILIKE %s "
            "OR %s = ANY(SELECT lower(k) FROM unnest(keywords) AS k) OR category ILIKE %s)"
        )
        params.extend([like, like, criteria.text, like])

    f = criteria.filters
    if f.category is not None:
        clauses.append("category = %s")
        params.append(f.category.value)
    if f.date_from is not None:
        clauses.append("created_at >= %s")
        params.append(f.date_from)
    if f.date_to is not None:
        clauses.append("created_at <= %s")
        params.append(f.date_to)
    if f.media_type is not None:
        clauses.append("media_type = %s")
        params.append(f.media_type)
    if f.min_size is not None:
        clauses.append("size_bytes >= %s")
        params.append(f.min_size)
    if f.max_size is not None:
        clauses.append("size_bytes <= %s")
        params.append(f.max_size)
    if f.language is not None:
        clauses.append("language = %s")
        params.append(f.language)

    return " AND ".join(clauses), params


class PostgresDocumentStore(DocumentStore):
    """Service for document rows in PostgreSQL."""

    def __init__(self, database_url: str = None):
        self.database_url = database_url or config.DATABASE_URL
        self._ensure_table_exists()

    def _connect(self):
        try:
            return psycopg2.connect(self.database_url)
        except psycopg2.Error as e:
            logger.error(f"Error connecting to database: {e}")
            raise StoreUnavailableError("Document store unreachable", str(e))

    def _execute(self, sql: str, params=(), fetch: str = None):
        conn = self._connect()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(sql, params)
                if fetch == "one":
                    result = cur.fetchone()
                elif fetch == "all":
                    result = cur.fetchall()
                else:
                    result = cur.rowcount
            conn.commit()
            return result
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Database error: {e}")
            raise StoreUnavailableError("Document store query failed", str(e))
        finally:
            conn.close()

    def _ensure_table_exists(self):
        """Ensure the documents table and its owner index exist."""
        self._execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                id UUID PRIMARY KEY,
                owner_id TEXT NOT NULL,
                name TEXT NOT NULL,
                media_type TEXT NOT NULL,
                size_bytes BIGINT NOT NULL,
                category TEXT NOT NULL DEFAULT 'Other',
                confidence DOUBLE PRECISION NOT NULL DEFAULT 0,
                keywords TEXT[] NOT NULL DEFAULT '{}',
                language TEXT NOT NULL DEFAULT 'en',
                document_type TEXT,
                extracted_text TEXT NOT NULL DEFAULT '',
                blob_path TEXT,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
            CREATE INDEX IF NOT EXISTS documents_owner_created_idx
                ON documents (owner_id, created_at DESC);
            """
        )

    @staticmethod
    def _to_document(row: dict) -> Document:
        return Document.model_validate({column: row[column] for column in DOCUMENT_COLUMNS})

    def insert(self, document: Document) -> Document:
        values = document.model_dump()
        values["id"] = str(document.id)
        values["category"] = document.category.value
        self._execute(
            f"INSERT INTO documents ({', '.join(DOCUMENT_COLUMNS)}) "
            f"VALUES ({', '.join(['%s'] * len(DOCUMENT_COLUMNS))})",
            [values[column] for column in DOCUMENT_COLUMNS]
        )
        return document

    def get(self, document_id: UUID, owner_id: str) -> Optional[Document]:
        row = self._execute(
            "SELECT * FROM documents WHERE id = %s AND owner_id = %s",
            (str(document_id), owner_id),
            fetch="one"
        )
        return self._to_document(row) if row else None

    def delete(self, document_id: UUID, owner_id: str) -> bool:
        deleted = self._execute(
            "DELETE FROM documents WHERE id = %s AND owner_id = %s",
            (str(document_id), owner_id)
        )
        return deleted > 0

    def query(self, criteria: DocumentCriteria) -> Tuple[List[Document], int]:
        where, params = build_where_clause(criteria)
        column = SORT_COLUMNS[criteria.sort_by]
        direction = "ASC" if criteria.sort_order == SortOrder.ASC else "DESC"

        count_row = self._execute(f"SELECT COUNT(*) AS total FROM documents WHERE {where}", params, fetch="one")
        rows = self._execute(
            f"SELECT * FROM documents WHERE {where} ORDER BY {column} {direction}, id LIMIT %s OFFSET %s",
            params + [criteria.limit, criteria.offset],
            fetch="all"
        )
        return [self._to_document(row) for row in rows], int(count_row["total"])

    def list_for_owner(self, owner_id: str) -> List[Document]:
        rows = self._execute(
            "SELECT * FROM documents WHERE owner_id = %s ORDER BY created_at DESC",
            (owner_id,),
            fetch="all"
        )
        return [self._to_document(row) for row in rows]
