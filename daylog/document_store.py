"""
Revisioned document store using SQLite.

Each document is a JSON object keyed by ``_id`` and carrying an opaque
``_rev`` revision token assigned by the store. Writes are conditional:

- put() of an existing live document must name its current ``_rev``
- put() of a new id (or over a deleted tombstone) must not name a stale one
- remove() must name the current ``_rev``

Anything else is rejected with StoreConflictError, so two writers racing on
the same id never silently overwrite each other. The revision check and the
write happen inside one IMMEDIATE transaction, which makes each document
linearizable across processes.

Deleted documents leave a tombstone so get() can report 'deleted' rather
than 'missing', and so revision generations keep increasing if the id is
reused.
"""

import hashlib
import json
import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .errors import StoreConflictError, StoreMissingError
from .types import HUMAN_ID, Document

logger = logging.getLogger(__name__)


@dataclass
class PutResult:
    """Outcome of a successful write."""
    id: str
    rev: str


def _make_rev(generation: int, body_json: str) -> str:
    digest = hashlib.md5(body_json.encode("utf-8")).hexdigest()
    return f"{generation}-{digest}"


def _generation(rev: str) -> int:
    head = rev.split("-", 1)[0]
    return int(head) if head.isdigit() else 0


def _extract_human_id(body: dict[str, Any]) -> Optional[str]:
    meta = body.get("meta")
    if isinstance(meta, dict):
        human_id = meta.get(HUMAN_ID)
        if isinstance(human_id, str) and human_id:
            return human_id
    return None


class DocumentStore:
    """
    SQLite-backed store of revisioned JSON documents.

    Implements DocumentStoreProtocol: get / put / remove with optimistic
    concurrency, plus read-only prefix queries on ``_id`` and
    ``meta.humanId`` for quick-id lookup.
    """

    def __init__(self, store_path: Path):
        """
        Args:
            store_path: Path to SQLite database file
        """
        self._db_path = store_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        # isolation_level=None gives us manual transaction control
        # so we can use BEGIN IMMEDIATE around the revision check
        self._conn = sqlite3.connect(
            str(self._db_path), check_same_thread=False,
            isolation_level=None,
        )
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                rev TEXT NOT NULL,
                deleted INTEGER NOT NULL DEFAULT 0,
                body_json TEXT NOT NULL DEFAULT '{}',
                human_id TEXT,
                updated_at TEXT NOT NULL
            )
        """)

        # Index for humanId prefix lookups
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_documents_human_id
            ON documents(human_id)
        """)

        # Index for recency listing
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_documents_updated
            ON documents(updated_at)
        """)

    def _now(self) -> str:
        """Current timestamp in ISO format."""
        return datetime.now(timezone.utc).isoformat()

    def _row_to_doc(self, row: sqlite3.Row) -> Document:
        doc: Document = {"_id": row["id"], "_rev": row["rev"]}
        doc.update(json.loads(row["body_json"]))
        return doc

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def put(self, doc: Document) -> PutResult:
        """
        Write a document, checking its revision.

        Args:
            doc: Document with ``_id``; ``_rev`` must be the current revision
                when overwriting a live document, and absent when creating

        Returns:
            PutResult with the id and the newly assigned revision

        Raises:
            StoreConflictError: If ``_rev`` is stale or the id is taken
        """
        doc_id = doc.get("_id")
        if not isinstance(doc_id, str) or not doc_id:
            raise ValueError("document must have a non-empty string _id")
        expected = doc.get("_rev")
        body = {k: v for k, v in doc.items() if k not in ("_id", "_rev")}
        body_json = json.dumps(body, ensure_ascii=False)
        digest_json = json.dumps(body, ensure_ascii=False, sort_keys=True)

        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                row = self._conn.execute(
                    "SELECT rev, deleted FROM documents WHERE id = ?", (doc_id,)
                ).fetchone()
                if row is None:
                    if expected is not None:
                        raise StoreConflictError(
                            f"Document update conflict: {doc_id} does not exist",
                            id=doc_id,
                        )
                    generation = 0
                elif row["deleted"]:
                    if expected is not None and expected != row["rev"]:
                        raise StoreConflictError(
                            f"Document update conflict: {doc_id}", id=doc_id,
                        )
                    generation = _generation(row["rev"])
                else:
                    if expected != row["rev"]:
                        raise StoreConflictError(
                            f"Document update conflict: {doc_id}", id=doc_id,
                        )
                    generation = _generation(row["rev"])

                rev = _make_rev(generation + 1, digest_json)
                self._conn.execute("""
                    INSERT OR REPLACE INTO documents
                    (id, rev, deleted, body_json, human_id, updated_at)
                    VALUES (?, ?, 0, ?, ?, ?)
                """, (doc_id, rev, body_json, _extract_human_id(body), self._now()))
                self._conn.execute("COMMIT")
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise

        logger.debug("put %s rev=%s", doc_id, rev)
        return PutResult(id=doc_id, rev=rev)

    def remove(self, id: str, rev: str) -> PutResult:
        """
        Delete a document, leaving a tombstone.

        Args:
            id: Document identifier
            rev: The revision being deleted (must be current)

        Returns:
            PutResult with the tombstone revision

        Raises:
            StoreMissingError: If there is no live document at the id
            StoreConflictError: If rev is not the current revision
        """
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                row = self._conn.execute(
                    "SELECT rev, deleted FROM documents WHERE id = ?", (id,)
                ).fetchone()
                if row is None:
                    raise StoreMissingError(f"missing: {id}", id=id, reason="missing")
                if row["deleted"]:
                    raise StoreMissingError(f"deleted: {id}", id=id, reason="deleted")
                if rev != row["rev"]:
                    raise StoreConflictError(
                        f"Document update conflict: {id}", id=id,
                    )
                new_rev = _make_rev(_generation(row["rev"]) + 1, "{}")
                self._conn.execute("""
                    UPDATE documents
                    SET rev = ?, deleted = 1, body_json = '{}', human_id = NULL,
                        updated_at = ?
                    WHERE id = ?
                """, (new_rev, self._now(), id))
                self._conn.execute("COMMIT")
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise

        logger.debug("remove %s rev=%s", id, rev)
        return PutResult(id=id, rev=new_rev)

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, id: str) -> Document:
        """
        Get a document by ID.

        Raises:
            StoreMissingError: reason 'missing' if never stored,
                'deleted' if removed
        """
        row = self._conn.execute("""
            SELECT id, rev, deleted, body_json FROM documents
            WHERE id = ?
        """, (id,)).fetchone()
        if row is None:
            raise StoreMissingError(f"missing: {id}", id=id, reason="missing")
        if row["deleted"]:
            raise StoreMissingError(f"deleted: {id}", id=id, reason="deleted")
        return self._row_to_doc(row)

    def exists(self, id: str) -> bool:
        """Check if a live document exists."""
        row = self._conn.execute("""
            SELECT 1 FROM documents
            WHERE id = ? AND deleted = 0
        """, (id,)).fetchone()
        return row is not None

    def find_by_id_prefix(self, prefix: str) -> list[Document]:
        """Live documents whose ``_id`` starts with prefix, ordered by id."""
        cursor = self._conn.execute("""
            SELECT id, rev, body_json FROM documents
            WHERE deleted = 0 AND substr(id, 1, ?) = ?
            ORDER BY id
        """, (len(prefix), prefix))
        return [self._row_to_doc(row) for row in cursor]

    def find_by_human_id_prefix(self, prefix: str) -> list[Document]:
        """Live documents whose ``meta.humanId`` starts with prefix."""
        cursor = self._conn.execute("""
            SELECT id, rev, body_json FROM documents
            WHERE deleted = 0 AND human_id IS NOT NULL
              AND substr(human_id, 1, ?) = ?
            ORDER BY id
        """, (len(prefix), prefix))
        return [self._row_to_doc(row) for row in cursor]

    def all_docs(self, limit: Optional[int] = None) -> list[Document]:
        """
        List live documents, most recently written first.

        Args:
            limit: Maximum number to return (None for all)
        """
        if limit:
            cursor = self._conn.execute("""
                SELECT id, rev, body_json FROM documents
                WHERE deleted = 0
                ORDER BY updated_at DESC
                LIMIT ?
            """, (limit,))
        else:
            cursor = self._conn.execute("""
                SELECT id, rev, body_json FROM documents
                WHERE deleted = 0
                ORDER BY updated_at DESC
            """)
        return [self._row_to_doc(row) for row in cursor]

    def count(self) -> int:
        """Count live documents."""
        cursor = self._conn.execute(
            "SELECT COUNT(*) FROM documents WHERE deleted = 0"
        )
        return cursor.fetchone()[0]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
