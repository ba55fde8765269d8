"""Result serialization for values handed back to the host.

Verb results contain ObjectIds (in ``_id`` and any reference fields, and in
the ids generated by inserts). The host only understands JSON-compatible
values, so every ObjectId is rewritten to its 24-character hex string.
"""

from typing import Any

from bson import ObjectId


def stringify_object_ids(value: Any) -> Any:
    """Return ``value`` with every ObjectId replaced by its hex string.

    Recurses into dicts, lists and tuples. Other values (including datetimes)
    are left alone. Applying it twice gives the same result as applying it once.

    Example:
        >>> stringify_object_ids({"_id": ObjectId("507f1f77bcf86cd799439011"), "tags": []})
        {'_id': '507f1f77bcf86cd799439011', 'tags': []}
    """
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {key: stringify_object_ids(item) for key, item in value.items()}
    if isinstance(value, list):
        return [stringify_object_ids(item) for item in value]
    if isinstance(value, tuple):
        return tuple(stringify_object_ids(item) for item in value)
    return value
