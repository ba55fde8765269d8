"""Item normalization: turning host items into BSON-ready documents.

Host items arrive as flat, loosely-typed mappings. Before a document is sent
to MongoDB it is projected onto the selected fields, dotted keys are expanded
into nested documents when dot notation is on, date fields become datetimes
and identifier fields become ObjectIds.

Date and identifier coercion differ: a value that does not parse
as a date is passed through untouched, while a value that cannot become an
ObjectId raises IdentifierCoercionError and aborts that record.

Example:
    >>> prepare_items(
    ...     [{"name": "Ada", "address.city": "London", "born": "1815-12-10"}],
    ...     fields=[],
    ...     use_dot_notation=True,
    ...     date_fields=["born"],
    ... )
    [{'name': 'Ada', 'address': {'city': 'London'}, 'born': datetime.datetime(1815, 12, 10, 0, 0, tzinfo=datetime.timezone.utc)}]
"""

import copy
import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

from bson import ObjectId

from .exceptions import IdentifierCoercionError

logger = logging.getLogger(__name__)

IDENTIFIER_FIELD = "_id"

_MISSING = object()


# ============================================================================
# VALUE COERCION
# ============================================================================


def coerce_object_id(value: Any, field_name: str | None = None) -> ObjectId:
    """Convert a value to an ObjectId.

    None generates a fresh ObjectId, an ObjectId is returned unchanged and a
    24-character hex string is parsed.

    Raises:
        IdentifierCoercionError: For any other value
    """
    if value is None:
        return ObjectId()
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)

    raise IdentifierCoercionError(
        message=(
            f"{value!r} is not a valid ObjectId, it must be a 12-byte input "
            f"or a 24-character hex string"
        ),
        details={"field": field_name, "value": value},
    )


def coerce_date(value: Any) -> Any:
    """Best-effort conversion of a value to a timezone-aware datetime.

    Strings are parsed as ISO 8601 (a trailing "Z" is accepted, naive values
    are taken as UTC) and numbers as milliseconds since the Unix epoch.
    Anything that cannot be converted is returned unchanged.
    """
    if isinstance(value, datetime):
        return value

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logger.debug(f"Leaving out-of-range timestamp unchanged: {value!r}")
            return value

    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Leaving unparsable date unchanged: {value!r}")
            return value
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    return value


# ============================================================================
# PATH HELPERS
# ============================================================================


def get_path(document: Mapping[str, Any], path: str) -> Any:
    """Read a dotted path from nested mappings, returning _MISSING if absent."""
    value: Any = document
    for key in path.split("."):
        if not isinstance(value, Mapping) or key not in value:
            return _MISSING
        value = value[key]
    return value


def set_path(document: dict[str, Any], path: str, value: Any) -> None:
    """Assign a value at a dotted path, creating intermediate dicts.

    An intermediate that is not a dict is replaced by one.
    """
    head, _, rest = path.partition(".")
    if not rest:
        document[head] = value
        return

    child = document.get(head)
    if not isinstance(child, dict):
        child = {}
        document[head] = child
    set_path(child, rest, value)


def _lookup(document: Mapping[str, Any], key: str, use_dot_notation: bool) -> Any:
    if key in document:
        return document[key]
    if use_dot_notation and "." in key:
        return get_path(document, key)
    return _MISSING


def _assign(document: dict[str, Any], key: str, value: Any, use_dot_notation: bool) -> None:
    if use_dot_notation and "." in key:
        set_path(document, key, value)
    else:
        document[key] = value


def _replace(document: dict[str, Any], key: str, value: Any, use_dot_notation: bool) -> None:
    # Write back to wherever _lookup found the value.
    if key in document:
        document[key] = value
    else:
        _assign(document, key, value, use_dot_notation)


# ============================================================================
# NORMALIZATION
# ============================================================================


def normalize_item(
    item: Mapping[str, Any],
    fields: Sequence[str] = (),
    update_key: str = "",
    use_dot_notation: bool = False,
    date_fields: Iterable[str] = (),
    oid_fields: Iterable[str] = (),
) -> dict[str, Any]:
    """Build the normalized document for a single host item.

    Args:
        item: The host item's JSON payload (never modified)
        fields: Keys to copy; empty means every key of the item
        update_key: Key used to match documents for update-style operations;
            it is always copied when a field selection is active
        use_dot_notation: Expand dotted keys into nested documents
        date_fields: Keys whose values are coerced to datetimes
        oid_fields: Keys whose values are coerced to ObjectIds

    Returns:
        A new document sharing no mutable state with ``item``

    Raises:
        IdentifierCoercionError: If an identifier field holds an invalid value
    """
    if fields:
        candidates = list(fields)
        if update_key and update_key not in candidates:
            candidates.append(update_key)
    else:
        candidates = list(item.keys())

    document: dict[str, Any] = {}

    for key in candidates:
        value = _lookup(item, key, use_dot_notation)
        if value is _MISSING:
            continue
        _assign(document, key, copy.deepcopy(value), use_dot_notation)

    for key in date_fields:
        value = _lookup(document, key, use_dot_notation)
        if value is not _MISSING:
            _replace(document, key, coerce_date(value), use_dot_notation)

    for key in oid_fields:
        value = _lookup(document, key, use_dot_notation)
        if value is not _MISSING:
            _replace(document, key, coerce_object_id(value, field_name=key), use_dot_notation)

    return document


def prepare_items(
    items: Sequence[Mapping[str, Any]],
    fields: Sequence[str] = (),
    update_key: str = "",
    use_dot_notation: bool = False,
    date_fields: Iterable[str] = (),
    oid_fields: Iterable[str] = (),
) -> list[dict[str, Any]]:
    """Normalize every item, preserving order and cardinality.

    Raises:
        IdentifierCoercionError: On the first item with an invalid identifier
    """
    date_fields = list(date_fields)
    oid_fields = list(oid_fields)
    return [
        normalize_item(item, fields, update_key, use_dot_notation, date_fields, oid_fields)
        for item in items
    ]


def split_update_document(
    document: Mapping[str, Any],
    update_key: str,
    use_dot_notation: bool = False,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Derive the match filter and the update body for an update-style operation.

    When the update key is ``_id`` its value is coerced to an ObjectId for the
    filter and removed from the body, so the identifier never appears in a
    $set or replacement document. Other update keys stay in the body.

    Returns:
        ``(filter, body)``

    Raises:
        IdentifierCoercionError: If the update key is ``_id`` and its value is invalid
    """
    body = dict(document)

    if update_key == IDENTIFIER_FIELD:
        value = coerce_object_id(body.pop(IDENTIFIER_FIELD, None), field_name=IDENTIFIER_FIELD)
    else:
        value = _lookup(document, update_key, use_dot_notation)
        if value is _MISSING:
            value = None

    return {update_key: value}, body
