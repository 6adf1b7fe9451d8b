"""
Core API for daylog.

Journal ties a store directory together: config, the document database,
the operations log, and the output sink. The CLI works only through it.

- add(): build a datum payload → add_doc
- update(): quick id → update_doc (with the resolved _rev as guard)
- get() / delete(): quick id → document
"""

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional, Union

from .config import StoreConfig, get_config_dir, load_or_create_config
from .document_control import add_doc, add_id_and_metadata, delete_doc, update_doc
from .document_store import DocumentStore
from .errors import StoreMissingError
from .logging_config import configure_ops_log
from .output import Output
from .quick_id import resolve_quick_id
from .types import OCCUR_TIME, UTC_OFFSET, Document, to_occur_time, validate_id

logger = logging.getLogger(__name__)


class Journal:
    """
    A daylog store on disk.

    Args:
        store_path: Store directory (default: DAYLOG_STORE_PATH or ~/.daylog)
        output: Notification sink (default: show level from config)
    """

    def __init__(
        self,
        store_path: Optional[Path] = None,
        *,
        output: Optional[Output] = None,
    ):
        self._store_path = Path(store_path).expanduser() if store_path else get_config_dir()
        self._store_path.mkdir(parents=True, exist_ok=True)
        self.config: StoreConfig = load_or_create_config(self._store_path)
        self._ops_handler = configure_ops_log(self._store_path)
        self._db = DocumentStore(self.config.db_path)
        self.output = output if output is not None else Output(self.config.show)
        logger.debug("Opened store at %s", self._store_path)

    @property
    def store_path(self) -> Path:
        return self._store_path

    @property
    def db(self) -> DocumentStore:
        return self._db

    # -------------------------------------------------------------------------
    # Write operations
    # -------------------------------------------------------------------------

    def add(
        self,
        data: dict[str, Any],
        *,
        occur_time: Union[str, datetime, date, None] = None,
        utc_offset: Optional[float] = None,
        id: Optional[str] = None,
        id_structure: Optional[str] = None,
        conflict_strategy: Optional[str] = None,
    ) -> Document:
        """
        Record new data.

        Args:
            data: User content
            occur_time: When it happened (see add_id_and_metadata)
            utc_offset: Offset in hours for a string occur_time
            id: Explicit id instead of the derived one
            id_structure: Custom id template
            conflict_strategy: Merge strategy to apply if the id is taken

        Returns:
            The stored document
        """
        if id is not None:
            validate_id(id)
        payload = add_id_and_metadata(
            data,
            occur_time=occur_time,
            utc_offset=utc_offset,
            id_structure=id_structure,
            human_id_length=self.config.human_id_length,
            id=id,
        )
        return add_doc(
            self._db, payload,
            conflict_strategy=conflict_strategy, output=self.output,
        )

    def update(
        self,
        quick_id: str,
        data: dict[str, Any],
        *,
        strategy: Optional[str] = None,
        occur_time: Union[datetime, date, None] = None,
    ) -> Document:
        """
        Merge data into the document a quick id points to.

        The revision seen when resolving the quick id goes along with the
        payload, so a concurrent change in between fails instead of being
        merged over.
        """
        doc = resolve_quick_id(self._db, quick_id)
        payload: Document = {"data": data, "meta": {}}
        if occur_time is not None:
            payload["meta"][OCCUR_TIME], payload["meta"][UTC_OFFSET] = to_occur_time(occur_time)
        payload["_rev"] = doc["_rev"]
        return update_doc(
            self._db, doc["_id"], payload,
            update_strategy=strategy or self.config.default_strategy,
            output=self.output,
        )

    def delete(self, quick_id: str) -> Document:
        """Delete the document a quick id points to; returns it."""
        doc = resolve_quick_id(self._db, quick_id)
        return delete_doc(self._db, doc["_id"], output=self.output)

    # -------------------------------------------------------------------------
    # Read operations
    # -------------------------------------------------------------------------

    def get(self, quick_id: str) -> Document:
        """Look up a document by quick id (prefix of _id or humanId)."""
        doc = resolve_quick_id(self._db, quick_id)
        self.output.exists(doc)
        return doc

    def get_exact(self, id: str) -> Optional[Document]:
        """Document at exactly this id, or None."""
        try:
            return self._db.get(id)
        except StoreMissingError:
            return None

    def list_recent(self, limit: int = 10) -> list[Document]:
        return self._db.all_docs(limit=limit)

    def count(self) -> int:
        return self._db.count()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database and detach the operations log."""
        self._db.close()
        if self._ops_handler is not None:
            logging.getLogger("daylog").removeHandler(self._ops_handler)
            self._ops_handler.close()
            self._ops_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
