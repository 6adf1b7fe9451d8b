"""
Shared pytest fixtures for daylog tests.

Tests run against a real SQLite DocumentStore in a temp directory.
Fault injection wraps it rather than mocking it out.
"""

from pathlib import Path
from typing import Any, Optional

import pytest

from daylog.document_store import DocumentStore
from daylog.errors import StoreConflictError
from daylog.output import Output, Show


class RecordingOutput(Output):
    """Output sink that remembers notifications instead of printing them.

    Notifications still go to the daylog logger, as with a real Output.
    """

    def __init__(self):
        super().__init__(Show.NONE)
        self.events: list[tuple[str, str, tuple]] = []

    def _emit(self, action: str, text: str, level: Show, docs: tuple = ()) -> None:
        self.events.append((action, text, docs))
        super()._emit(action, text, level, docs)

    @property
    def actions(self) -> list[str]:
        return [action for action, _, _ in self.events]


class FlakyStore:
    """
    DocumentStore wrapper that counts writes and can fail them on demand.

    Unknown attributes pass through to the real store.
    """

    def __init__(self, real_store: DocumentStore):
        self._real = real_store
        self.put_calls: list[dict] = []
        self.remove_calls: list[tuple[str, str]] = []
        self.fail_put_ids: set[str] = set()
        self.fail_remove = False

    def __getattr__(self, name):
        return getattr(self._real, name)

    def put(self, doc):
        self.put_calls.append(doc)
        if doc.get("_id") in self.fail_put_ids:
            raise StoreConflictError(f"simulated conflict on {doc['_id']}", id=doc["_id"])
        return self._real.put(doc)

    def remove(self, id, rev):
        self.remove_calls.append((id, rev))
        if self.fail_remove:
            raise StoreConflictError(f"simulated conflict removing {id}", id=id)
        return self._real.remove(id, rev)

    @property
    def write_count(self) -> int:
        return len(self.put_calls) + len(self.remove_calls)


def make_datum(
    data: dict[str, Any],
    *,
    occur_time: Optional[str] = "2026-03-02T08:15:00.000Z",
    human_id: str = "abc123xyz0",
    **meta: Any,
) -> dict[str, Any]:
    """A datum payload (no _id) with fixed metadata."""
    full_meta: dict[str, Any] = {
        "humanId": human_id,
        "createTime": "2026-03-02T08:15:00.000000Z",
        "modifyTime": "2026-03-02T08:15:00.000000Z",
        "utcOffset": 0,
    }
    if occur_time is not None:
        full_meta["occurTime"] = occur_time
    full_meta.update(meta)
    return {"data": dict(data), "meta": full_meta}


@pytest.fixture
def store(tmp_path: Path):
    """Fresh SQLite document store."""
    db = DocumentStore(tmp_path / "documents.db")
    yield db
    db.close()


@pytest.fixture
def flaky_store(store):
    """Store wrapper with write counting and fault injection."""
    return FlakyStore(store)


@pytest.fixture
def output():
    return RecordingOutput()


@pytest.fixture
def store_dir(tmp_path: Path, monkeypatch) -> Path:
    """Store directory for Journal / CLI tests, also set in the environment."""
    path = tmp_path / "daylog-store"
    monkeypatch.setenv("DAYLOG_STORE_PATH", str(path))
    return path
