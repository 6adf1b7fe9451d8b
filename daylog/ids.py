"""
Identifier assembly: derive a document's canonical ``_id`` from its content.

Datum documents are keyed by what they describe, so two independent
submissions of the same event land on the same id:

    <field>:<occurTime>      e.g.  pushups:2026-03-02T08:15:00.000Z
    <occurTime>              when the record has no field

The field part comes from ``meta.fieldStructure`` (a template such as
``%project%_%task%`` or a literal name) interpolated against ``data``, or
from ``data.field`` when there is no structure. A custom template in
``meta.idStructure`` replaces the default layout entirely.

Placeholders are ``%name%`` (required) or ``%?name%`` (optional, empty
when missing). Names are looked up in ``data`` first, then ``meta``.
``%%`` is a literal percent sign.
"""

import re
import secrets
import string
from typing import Any, Optional

from .errors import IdError
from .types import (
    FIELD_KEY,
    FIELD_STRUCTURE,
    ID_STRUCTURE,
    OCCUR_TIME,
    Document,
    DocKind,
    classify,
    sanitize_id_part,
    validate_id,
)

ID_DELIMITER = ":"
DEFAULT_HUMAN_ID_LENGTH = 10

_PLACEHOLDER_RE = re.compile(r"%%|%(\?)?([^%]+)%")
_HUMAN_ID_ALPHABET = string.ascii_lowercase + string.digits


def interpolate(template: str, *sources: Optional[dict[str, Any]], sanitize: bool = True) -> str:
    """
    Fill ``%name%`` placeholders in template from the first source that has the key.

    Args:
        template: Text with placeholders
        sources: Mappings searched in order
        sanitize: Make interpolated values safe for use in an id

    Raises:
        IdError: If a required placeholder has no value
    """
    def replace(match: re.Match) -> str:
        if match.group(0) == "%%":
            return "%"
        optional, name = match.group(1), match.group(2)
        for source in sources:
            if isinstance(source, dict) and name in source:
                value = source[name]
                if sanitize:
                    return sanitize_id_part(value)
                return value if isinstance(value, str) else str(value)
        if optional:
            return ""
        raise IdError(f"no value for {name!r} required by {template!r}")

    return _PLACEHOLDER_RE.sub(replace, template)


def _field_part(data: dict[str, Any], meta: dict[str, Any]) -> str:
    structure = meta.get(FIELD_STRUCTURE)
    if structure is not None:
        if not isinstance(structure, str):
            raise IdError(f"fieldStructure must be a string, not {type(structure).__name__}")
        return sanitize_id_part(interpolate(structure, data, sanitize=False))
    if data.get(FIELD_KEY) is not None:
        return sanitize_id_part(data[FIELD_KEY])
    return ""


def _checked(id: str) -> str:
    try:
        validate_id(id)
    except ValueError as e:
        raise IdError(str(e)) from e
    return id


def assemble_id(payload: Document, id_structure: Optional[str] = None) -> str:
    """
    Derive the canonical id for a payload.

    Deterministic and side-effect free: payloads that agree on the values
    the template references get the same id, whatever else they contain.

    Args:
        payload: Datum, view or data-only payload
        id_structure: Template overriding the payload's own id layout

    Returns:
        The id

    Raises:
        IdError: If a value needed for the id is missing or malformed
    """
    if classify(payload) is DocKind.DATUM:
        data = payload["data"]
        meta = payload["meta"]
        structure = id_structure if id_structure is not None else meta.get(ID_STRUCTURE)
        if structure is not None:
            return _checked(interpolate(structure, data, meta))

        occur_time = meta.get(OCCUR_TIME)
        if occur_time is None or occur_time == "":
            raise IdError("occurTime is required to derive an id")
        field = _field_part(data, meta)
        parts = [field, sanitize_id_part(occur_time)] if field else [sanitize_id_part(occur_time)]
        return _checked(ID_DELIMITER.join(parts))

    if id_structure is not None:
        return _checked(interpolate(id_structure, payload))
    existing = payload.get("_id")
    if isinstance(existing, str) and existing:
        return existing
    raise IdError("payload has no id and no id structure to derive one from")


def try_assemble_id(payload: Document, id_structure: Optional[str] = None) -> Optional[str]:
    """assemble_id(), returning None where no id can be derived."""
    try:
        return assemble_id(payload, id_structure)
    except IdError:
        return None


def literal_template(text: str) -> str:
    """Template that interpolates to exactly text."""
    return text.replace("%", "%%")


def compile_field(payload: Document) -> Document:
    """
    Set ``data.field`` from ``meta.fieldStructure``, in place.

    Leaves the payload alone when it is not a datum payload, has no field
    structure, or the structure refers to data that isn't there.
    """
    if classify(payload) is not DocKind.DATUM:
        return payload
    structure = payload["meta"].get(FIELD_STRUCTURE)
    if not isinstance(structure, str):
        return payload
    try:
        payload["data"][FIELD_KEY] = interpolate(structure, payload["data"], sanitize=False)
    except IdError:
        pass
    return payload


def new_human_id(length: int = DEFAULT_HUMAN_ID_LENGTH) -> str:
    """Random lowercase alphanumeric id for typing at the command line."""
    return "".join(secrets.choice(_HUMAN_ID_ALPHABET) for _ in range(length))
