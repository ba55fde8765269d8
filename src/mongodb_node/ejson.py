"""Extended JSON parsing for user-supplied queries, pipelines and sort specs.

Query strings are written in MongoDB Extended JSON, so type markers such as
``{"$oid": ...}``, ``{"$date": ...}`` and ``{"$numberLong": ...}`` come back
as ObjectId, datetime and Int64 values. Parsing is delegated to
``bson.json_util``.

Example:
    >>> parse_query('{"_id": "507f1f77bcf86cd799439011", "age": {"$gt": 21}}')
    {'_id': ObjectId('507f1f77bcf86cd799439011'), 'age': {'$gt': 21}}
"""

import logging
from typing import Any

from bson import json_util
from bson.errors import BSONError
from bson.json_util import JSONOptions, JSONMode

from .exceptions import ParseError
from .normalizer import coerce_object_id

logger = logging.getLogger(__name__)

# Timezone-aware datetimes so $date values compare cleanly with stored dates.
EJSON_OPTIONS = JSONOptions(json_mode=JSONMode.RELAXED, tz_aware=True)


def parse_extended_json(text: str) -> Any:
    """Parse an Extended JSON string into native Python / BSON values.

    Args:
        text: Extended JSON text

    Returns:
        The parsed value tree (dict, list or scalar)

    Raises:
        ParseError: If the text is not valid JSON
    """
    try:
        return json_util.loads(text, json_options=EJSON_OPTIONS)
    except (ValueError, TypeError, BSONError) as e:
        # json.JSONDecodeError is a ValueError; bson raises TypeError for
        # malformed type wrappers such as {"$oid": 1}, InvalidId for bad hex.
        logger.warning(f"Invalid Extended JSON: {e}")
        raise ParseError(
            message=f"Invalid Extended JSON: {e}",
            details={"text": text},
            original_exception=e,
        ) from e


def parse_query(text: str, coerce_id: bool = True) -> Any:
    """Parse a query, filter or pipeline string.

    When ``coerce_id`` is set and the parsed value is a mapping whose
    top-level ``_id`` is a plain string, that string is coerced to an
    ObjectId, so users can paste a raw hex id instead of writing
    ``{"$oid": ...}``. Only the literal ``_id`` key gets this treatment.

    Raises:
        ParseError: If the text is blank or not valid JSON
        IdentifierCoercionError: If ``_id`` is a string but not valid hex
    """
    query = parse_extended_json(text)

    raw_id = query.get("_id") if isinstance(query, dict) else None
    if coerce_id and isinstance(raw_id, str) and raw_id:
        query["_id"] = coerce_object_id(raw_id, field_name="_id")

    return query


def parse_sort(text: str | None) -> dict[str, Any] | None:
    """Parse the sort option of a find.

    Returns:
        The sort mapping when it is a non-empty plain dict, otherwise None

    Raises:
        ParseError: If the text is not valid JSON
    """
    if text is None or not text.strip():
        return None

    sort = parse_extended_json(text)
    if type(sort) is dict and sort:
        return sort

    logger.debug(f"Ignoring sort option that is not a non-empty object: {text!r}")
    return None
