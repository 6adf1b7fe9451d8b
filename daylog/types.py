"""
Document shapes and timestamp helpers.

Documents are plain JSON-compatible dicts. There are three variants,
told apart structurally:

- datum:     {_id, _rev, data: {...}, meta: {...}}
- view:      {_id, _rev, views: {...}}
- data-only: {_id, _rev, ...freeform fields}
"""

import re
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

Document = dict[str, Any]

# Metadata keys
HUMAN_ID = "humanId"
CREATE_TIME = "createTime"
MODIFY_TIME = "modifyTime"
OCCUR_TIME = "occurTime"
UTC_OFFSET = "utcOffset"
FIELD_STRUCTURE = "fieldStructure"
ID_STRUCTURE = "idStructure"

# Key in data that holds the compiled composite field value
FIELD_KEY = "field"


class DocKind(Enum):
    DATUM = "datum"
    VIEW = "view"
    DATA_ONLY = "data-only"


def is_view(doc: Document) -> bool:
    return isinstance(doc.get("views"), dict)


def is_datum(doc: Document) -> bool:
    return isinstance(doc.get("data"), dict) and isinstance(doc.get("meta"), dict)


def classify(doc: Document) -> DocKind:
    """Decide which variant a document or payload is."""
    if is_view(doc):
        return DocKind.VIEW
    if is_datum(doc):
        return DocKind.DATUM
    return DocKind.DATA_ONLY


def utc_now() -> str:
    """Current UTC timestamp: YYYY-MM-DDTHH:MM:SS.ffffffZ.

    Microsecond precision keeps modifyTime increasing across quick
    successive writes.
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def to_occur_time(when: Union[datetime, date, None] = None) -> tuple[str, float]:
    """
    Convert a point in time to the (occurTime, utcOffset) pair stored in meta.

    A date gives a date-only occurTime with offset 0. A datetime is stored
    in UTC, with its original offset (in hours) kept alongside. Naive
    datetimes are taken as local time.

    Args:
        when: The time the record concerns (default: now)

    Returns:
        Tuple of (occurTime, utcOffset)
    """
    if when is None:
        when = datetime.now().astimezone()
    if isinstance(when, date) and not isinstance(when, datetime):
        return when.isoformat(), 0
    if when.tzinfo is None:
        when = when.astimezone()
    offset = when.utcoffset()
    hours = offset.total_seconds() / 3600 if offset is not None else 0
    if hours == int(hours):
        hours = int(hours)
    utc = when.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z", hours


MAX_ID_LENGTH = 1024

# Same blocklist as user-facing ids elsewhere: control chars, quotes,
# backslash, shell metacharacters
_ID_BLOCKED_RE = re.compile(r'[\x00-\x1f\x7f\\`<>|;"\']')

# Characters replaced when a value is interpolated into an id
_ID_UNSAFE_RE = re.compile(r'[\s\x00-\x1f\x7f\\`<>|;"\']+')


def validate_id(id: str) -> None:
    """Validate a document ID: length and no dangerous characters."""
    if not id or len(id) > MAX_ID_LENGTH:
        raise ValueError(f"ID must be 1-{MAX_ID_LENGTH} characters")
    if _ID_BLOCKED_RE.search(id):
        raise ValueError(f"ID contains invalid characters: {id!r}")


def sanitize_id_part(value: Any) -> str:
    """Render a value for use inside an id."""
    if isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, str):
        text = value
    elif value is None:
        text = "null"
    else:
        text = str(value)
    return _ID_UNSAFE_RE.sub("_", text.strip())


def short_summary(doc: Optional[Document], width: int = 60) -> str:
    """One-line rendering of a document's content for messages."""
    if not doc:
        return ""
    body = doc.get("data") if is_datum(doc) else {
        k: v for k, v in doc.items() if not k.startswith("_")
    }
    text = " ".join(f"{k}={v}" for k, v in (body or {}).items())
    if len(text) > width:
        text = text[:width - 3] + "..."
    return text
