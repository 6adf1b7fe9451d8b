"""
Notifications from the document layer to the user.

Document control calls these on the way through (exists, no diff,
created, updated, renamed, failed, deleted). They only report; nothing
they do feeds back into control flow. Every notification is also written
to the ``daylog`` logger so the ops log records it whatever the show level.
"""

import json
import logging
from enum import Enum
from typing import Optional

import typer

from .types import Document, short_summary

logger = logging.getLogger(__name__)


class Show(str, Enum):
    NONE = "none"
    MINIMAL = "minimal"
    STANDARD = "standard"
    VERBOSE = "verbose"


_RANK = {Show.NONE: 0, Show.MINIMAL: 1, Show.STANDARD: 2, Show.VERBOSE: 3}


class Output:
    """
    Presentation sink with a show level.

    Args:
        show: How much to print (NONE prints nothing, VERBOSE adds documents)
        as_json: Print documents as JSON only, without action lines
    """

    def __init__(self, show: Show = Show.NONE, as_json: bool = False):
        self.show = Show(show)
        self.as_json = as_json

    def _shows(self, level: Show) -> bool:
        return _RANK[self.show] >= _RANK[level]

    def _emit(self, action: str, text: str, level: Show, docs: tuple = ()) -> None:
        logger.info("%s %s", action, text)
        if self.as_json or not self._shows(level):
            return
        typer.echo(f"{action}: {text}", err=True)
        if self._shows(Show.VERBOSE):
            for doc in docs:
                typer.echo(json.dumps(doc, indent=2, ensure_ascii=False, default=str), err=True)

    def exists(self, doc: Document) -> None:
        self._emit("EXISTS", f"{doc.get('_id')} {short_summary(doc)}".rstrip(), Show.MINIMAL, (doc,))

    def no_diff(self, doc: Document) -> None:
        self._emit("NODIFF", str(doc.get("_id")), Show.STANDARD, (doc,))

    def create(self, doc: Document) -> None:
        self._emit("CREATE", f"{doc.get('_id')} {short_summary(doc)}".rstrip(), Show.STANDARD, (doc,))

    def update(self, old: Document, new: Document) -> None:
        self._emit("UPDATE", f"{new.get('_id')} {short_summary(new)}".rstrip(), Show.STANDARD, (old, new))

    def rename(self, old_id: str, new_id: str) -> None:
        self._emit("RENAME", f"{old_id} -> {new_id}", Show.STANDARD)

    def failed(self, payload: Optional[Document]) -> None:
        payload = payload or {}
        self._emit("FAILED", str(payload.get("_id")), Show.MINIMAL, (payload,))

    def delete(self, doc: Document) -> None:
        self._emit("DELETE", str(doc.get("_id")), Show.STANDARD, (doc,))
