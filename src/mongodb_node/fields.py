"""Field-list parsing for the node's comma-separated field options."""


def prepare_fields(fields: str | None) -> list[str]:
    """Split a comma-separated field list into trimmed field names.

    Empty and whitespace-only entries are dropped, so an empty result means
    "no restriction" to the item normalizer.

    Args:
        fields: Raw option value, e.g. ``"name, address.city,,"``

    Returns:
        Ordered list of field names

    Example:
        >>> prepare_fields(" name, address.city ,, ")
        ['name', 'address.city']
    """
    if not fields:
        return []
    return [name.strip() for name in fields.split(",") if name.strip()]
