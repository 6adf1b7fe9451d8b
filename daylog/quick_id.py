"""
Quick-id lookup: find one document from a short typed prefix.

A prefix is matched against both ``_id`` and ``meta.humanId``. To the user
these are one namespace, so the prefix only has to be unique across the
union of the two. Lookup never writes to the store.
"""

import logging

from .errors import AmbiguousError, NotFoundError, StoreMissingError
from .protocol import DocumentStoreProtocol
from .types import Document

logger = logging.getLogger(__name__)


def quick_id_candidates(db: DocumentStoreProtocol, quick_id: str) -> list[Document]:
    """All live documents whose ``_id`` or ``meta.humanId`` starts with quick_id."""
    by_id: dict[str, Document] = {}
    for doc in db.find_by_id_prefix(quick_id):
        by_id[doc["_id"]] = doc
    for doc in db.find_by_human_id_prefix(quick_id):
        by_id.setdefault(doc["_id"], doc)
    return list(by_id.values())


def resolve_quick_id(db: DocumentStoreProtocol, quick_id: str) -> Document:
    """
    Resolve a quick id to exactly one document.

    An exact ``_id`` match wins over longer ids sharing it as a prefix, so
    such a document can still be reached. It does not win over another
    document whose humanId starts with the quick id.

    Args:
        db: Document store
        quick_id: Prefix of an ``_id`` or ``meta.humanId``

    Returns:
        The matching document

    Raises:
        NotFoundError: If nothing matches
        AmbiguousError: If more than one document matches
    """
    if not quick_id:
        raise NotFoundError(quick_id)
    try:
        exact = db.get(quick_id)
    except StoreMissingError:
        logger.debug("No document at exact id %r, matching prefixes", quick_id)
        candidates = quick_id_candidates(db, quick_id)
    else:
        others = [
            doc for doc in db.find_by_human_id_prefix(quick_id)
            if doc["_id"] != exact["_id"]
        ]
        if not others:
            return exact
        candidates = [exact, *others]

    if not candidates:
        raise NotFoundError(quick_id)
    if len(candidates) > 1:
        ids = sorted(doc["_id"] for doc in candidates)
        logger.debug("Quick id %r matched %d documents", quick_id, len(ids))
        raise AmbiguousError(quick_id, ids)
    return candidates[0]
