"""
daylog

A personal event/data log kept in a revisioned document store.

Quick Start:
    from daylog import Journal

    with Journal() as journal:          # uses ~/.daylog/
        doc = journal.add({"field": "pushups", "reps": 20})
        journal.update(doc["meta"]["humanId"][:3], {"reps": 25})

CLI Usage:
    daylog add -f pushups reps=20
    daylog update <quick id> reps=25
    daylog get <quick id>

Records are keyed by what they describe (field + time), so logging the
same event twice lands on the same id, and editing the field or time
renames the record.

Environment Variables:
    DAYLOG_STORE_PATH  - Override default store location
    DAYLOG_VERBOSE     - Set to 1 for debug logging
"""

from .api import Journal
from .combine import ABSENT, UPDATE_STRATEGIES, combine_data
from .document_control import add_doc, add_id_and_metadata, delete_doc, update_doc
from .document_store import DocumentStore
from .errors import (
    AmbiguousError,
    DaylogError,
    DocExistsError,
    IdError,
    NoDocToDeleteError,
    NoDocToUpdateError,
    NotFoundError,
    StoreConflictError,
    StoreMissingError,
    UpdateDocError,
)
from .ids import assemble_id, try_assemble_id
from .output import Output, Show
from .quick_id import resolve_quick_id

__all__ = [
    "ABSENT",
    "AmbiguousError",
    "DaylogError",
    "DocExistsError",
    "DocumentStore",
    "IdError",
    "Journal",
    "NoDocToDeleteError",
    "NoDocToUpdateError",
    "NotFoundError",
    "Output",
    "Show",
    "StoreConflictError",
    "StoreMissingError",
    "UPDATE_STRATEGIES",
    "UpdateDocError",
    "add_doc",
    "add_id_and_metadata",
    "assemble_id",
    "combine_data",
    "delete_doc",
    "resolve_quick_id",
    "try_assemble_id",
    "update_doc",
]
