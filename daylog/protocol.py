"""
Protocol definition for the revisioned document store.

The document control layer only talks to the store through this
interface, so any store with per-document optimistic concurrency
(SQLite locally, a CouchDB-style server, an in-memory fake in tests)
can sit underneath it.
"""

from typing import Optional, Protocol, runtime_checkable

from .document_store import PutResult
from .types import Document


@runtime_checkable
class DocumentStoreProtocol(Protocol):
    """
    Revisioned document storage.

    Implemented by:
    - DocumentStore (local SQLite)

    get() raises StoreMissingError; put() and remove() raise
    StoreConflictError when the revision they name is not current.
    Revision tokens are opaque; callers only compare them for equality.
    """

    def get(self, id: str) -> Document: ...

    def put(self, doc: Document) -> PutResult: ...

    def remove(self, id: str, rev: str) -> PutResult: ...

    def find_by_id_prefix(self, prefix: str) -> list[Document]: ...

    def find_by_human_id_prefix(self, prefix: str) -> list[Document]: ...

    def all_docs(self, limit: Optional[int] = None) -> list[Document]: ...

    def count(self) -> int: ...

    def close(self) -> None: ...
