"""
Create, update and delete documents on top of a revisioned store.

update_doc() is the only way an existing document changes:

    fetch → revision check → merge (per variant) → no-diff?
          → re-derive id → write in place, or rename (put new, remove old)
          → re-read

Nothing here retries. Store conflicts on the same id propagate unchanged;
a rename onto an id that is already taken raises DocExistsError carrying
both documents.

A rename is two writes. If the process dies after the new document is
stored and before the old one is removed, both remain; the new one is
never lost.
"""

import copy
import logging
from datetime import date, datetime
from typing import Any, Optional, Union

from .combine import ABSENT, combine_data, is_no_diff, strip_absent
from .errors import (
    DocExistsError,
    NoDocToDeleteError,
    NoDocToUpdateError,
    StoreConflictError,
    StoreMissingError,
    UpdateDocError,
)
from .ids import (
    DEFAULT_HUMAN_ID_LENGTH,
    assemble_id,
    compile_field,
    literal_template,
    new_human_id,
    try_assemble_id,
)
from .output import Output
from .protocol import DocumentStoreProtocol
from .types import (
    CREATE_TIME,
    FIELD_KEY,
    FIELD_STRUCTURE,
    HUMAN_ID,
    ID_STRUCTURE,
    MODIFY_TIME,
    OCCUR_TIME,
    UTC_OFFSET,
    Document,
    DocKind,
    classify,
    is_datum,
    is_view,
    to_occur_time,
    utc_now,
)

logger = logging.getLogger(__name__)


def _set_field_structure(meta: dict[str, Any], field: Any) -> None:
    if field is ABSENT or field is None:
        meta.pop(FIELD_STRUCTURE, None)
    else:
        meta[FIELD_STRUCTURE] = field if isinstance(field, str) else str(field)


def add_id_and_metadata(
    data: dict[str, Any],
    *,
    occur_time: Union[str, datetime, date, None] = None,
    utc_offset: Optional[float] = None,
    id_structure: Optional[str] = None,
    human_id_length: int = DEFAULT_HUMAN_ID_LENGTH,
    id: Optional[str] = None,
) -> Document:
    """
    Wrap user data into a new datum payload with metadata and an id.

    Args:
        data: User content; ``data.field`` becomes the field structure
        occur_time: When the event happened, as a stored occurTime string
            or a date/datetime to convert (None: no occurTime)
        utc_offset: Offset in hours, when occur_time is a string
        id_structure: Custom id template stored in ``meta.idStructure``
        human_id_length: Length of the generated humanId
        id: Use this id instead of deriving one; kept across later edits
            unless id_structure says otherwise

    Returns:
        Payload with ``_id``, ``data`` and ``meta``

    Raises:
        IdError: If no id can be derived (e.g. no occurTime)
    """
    now = utc_now()
    meta: dict[str, Any] = {
        HUMAN_ID: new_human_id(human_id_length),
        CREATE_TIME: now,
        MODIFY_TIME: now,
    }
    if isinstance(occur_time, (datetime, date)):
        meta[OCCUR_TIME], meta[UTC_OFFSET] = to_occur_time(occur_time)
    elif occur_time is not None:
        meta[OCCUR_TIME] = occur_time
        meta[UTC_OFFSET] = utc_offset if utc_offset is not None else 0
    if id_structure is not None:
        meta[ID_STRUCTURE] = id_structure
    elif id is not None:
        # later edits re-derive this same id
        meta[ID_STRUCTURE] = literal_template(id)
    if FIELD_KEY in data:
        _set_field_structure(meta, data[FIELD_KEY])

    payload: Document = {"data": copy.deepcopy(data), "meta": meta}
    compile_field(payload)
    payload["_id"] = id if id is not None else assemble_id(payload)
    return payload


def _same_content(existing: Document, payload: Document) -> bool:
    """Content equality that ignores revision and bookkeeping metadata."""
    if is_datum(existing) and is_datum(payload):
        return existing["data"] == payload["data"]
    strip = ("_rev", "meta")
    return (
        {k: v for k, v in existing.items() if k not in strip}
        == {k: v for k, v in payload.items() if k not in strip}
    )


def add_doc(
    db: DocumentStoreProtocol,
    payload: Document,
    *,
    conflict_strategy: Optional[str] = None,
    output: Optional[Output] = None,
) -> Document:
    """
    Store a new document.

    The id is the payload's ``_id``, or derived from its content.
    When a document already lives at that id:

    - identical content: report it and return the existing document
    - conflict_strategy given: merge into it via update_doc()
    - otherwise: DocExistsError

    Raises:
        IdError: If the payload has no id and none can be derived
        DocExistsError: If the id is taken by different content
    """
    output = output or Output()
    payload = strip_absent(payload)
    payload.pop("_rev", None)
    if not payload.get("_id"):
        payload["_id"] = assemble_id(payload)
    doc_id = payload["_id"]

    try:
        db.put(payload)
    except StoreConflictError:
        existing = db.get(doc_id)
        if _same_content(existing, payload):
            output.exists(existing)
            return existing
        if conflict_strategy is not None:
            logger.info("Merging into existing %s (%s)", doc_id, conflict_strategy)
            return update_doc(
                db, doc_id, payload,
                update_strategy=conflict_strategy, output=output,
            )
        output.exists(existing)
        output.failed(payload)
        raise DocExistsError(payload, existing) from None

    new_doc = db.get(doc_id)
    output.create(new_doc)
    return new_doc


def update_doc(
    db: DocumentStoreProtocol,
    id: str,
    payload: Document,
    update_strategy: str = "update",
    output: Optional[Output] = None,
) -> Document:
    """
    Merge a payload into the document at id, renaming it if its id changes.

    Args:
        db: Document store
        id: Id of the document to update
        payload: Datum payload (its ``data`` is merged), view payload, or
            plain fields; an explicit ``_rev`` must match the stored one
        update_strategy: Merge strategy (see combine_data)
        output: Notification sink

    Returns:
        The stored document after the update, or the original one
        unchanged when the merge made no difference

    Raises:
        NoDocToUpdateError: If nothing lives at id
        UpdateDocError: If ``_rev`` is stale or the strategy doesn't apply
        DocExistsError: If a rename collides with an existing document
        StoreConflictError: If the document changed underneath us
    """
    output = output or Output()
    try:
        old_doc = db.get(id)
    except StoreMissingError as e:
        raise NoDocToUpdateError(id) from e

    if payload.get("_rev") is not None and payload["_rev"] != old_doc["_rev"]:
        raise UpdateDocError(f"_rev does not match document to update: {id}")

    if is_datum(payload):
        new_data = payload["data"]
    else:
        new_data = {k: v for k, v in payload.items() if k != "_rev"}

    if update_strategy == "useOld":
        output.no_diff(old_doc)
        return old_doc

    kind = classify(old_doc)
    if kind is DocKind.VIEW and not is_view(payload):
        kind = DocKind.DATA_ONLY

    if kind is DocKind.VIEW:
        if update_strategy not in ("update", "useNew"):
            raise UpdateDocError(
                f"update strategy '{update_strategy}' not supported for view documents"
            )
        if is_no_diff(old_doc["views"], payload["views"]):
            output.no_diff(old_doc)
            return old_doc
        updated = copy.deepcopy(old_doc)
        del updated["_rev"]
        updated["views"] = copy.deepcopy(payload["views"])
        if isinstance(updated.get("meta"), dict):
            updated["meta"][MODIFY_TIME] = utc_now()

    elif kind is DocKind.DATUM:
        old_data = old_doc["data"]
        new_data = {k: v for k, v in new_data.items() if k != "_id"}
        updated_data = combine_data(old_data, new_data, update_strategy)
        # occurTime/utcOffset arrive in the payload's meta, already resolved
        time_changes = {}
        if is_datum(payload):
            for key in (OCCUR_TIME, UTC_OFFSET):
                if key in payload["meta"] and payload["meta"][key] != old_doc["meta"].get(key):
                    time_changes[key] = payload["meta"][key]
        if is_no_diff(old_data, updated_data) and not time_changes:
            output.no_diff(old_doc)
            return old_doc
        meta = copy.deepcopy(old_doc["meta"])
        meta.update(time_changes)
        meta[MODIFY_TIME] = utc_now()
        if FIELD_KEY in new_data and updated_data.get(FIELD_KEY, ABSENT) != old_data.get(FIELD_KEY, ABSENT):
            _set_field_structure(meta, updated_data.get(FIELD_KEY, ABSENT))
        updated = {"data": updated_data, "meta": meta}
        compile_field(updated)

    else:
        old_data = copy.deepcopy(old_doc)
        del old_data["_rev"]
        updated = combine_data(old_data, new_data, update_strategy)
        updated.setdefault("_id", id)
        if is_no_diff(old_data, updated):
            output.no_diff(old_doc)
            return old_doc

    new_id = try_assemble_id(updated)
    if new_id is None:
        logger.debug("No id derivable for %s after update; keeping it", id)
        new_id = id
    updated["_id"] = new_id

    if new_id == id:
        updated["_rev"] = old_doc["_rev"]
        try:
            db.put(updated)
        except StoreConflictError:
            output.failed(updated)
            raise
    else:
        updated.pop("_rev", None)
        try:
            db.put(updated)
        except StoreConflictError:
            existing = db.get(new_id)
            output.exists(existing)
            output.failed(updated)
            raise DocExistsError(updated, existing) from None
        try:
            db.remove(id, old_doc["_rev"])
        except (StoreConflictError, StoreMissingError):
            logger.warning(
                "Renamed %s to %s but could not remove %s; both now exist", id, new_id, id,
            )
            raise
        logger.info("Renamed %s -> %s", id, new_id)
        output.rename(id, new_id)

    new_doc = db.get(new_id)
    output.update(old_doc, new_doc)
    return new_doc


def delete_doc(
    db: DocumentStoreProtocol,
    id: str,
    output: Optional[Output] = None,
) -> Document:
    """
    Remove the document at id.

    Returns:
        The document as it was before deletion

    Raises:
        NoDocToDeleteError: If nothing lives at id
        StoreConflictError: If it changed between read and delete
    """
    output = output or Output()
    try:
        doc = db.get(id)
    except StoreMissingError as e:
        raise NoDocToDeleteError(id) from e
    db.remove(id, doc["_rev"])
    output.delete(doc)
    return doc
