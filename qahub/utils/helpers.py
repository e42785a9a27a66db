"""Shared input-coercion helpers used by services and blueprints.

coerce_str_list:  tags / attachments payloads → clean list of strings
parse_bool:       query-string flags ("1", "true", "yes")
parse_int:        ids from payloads, raising ValidationError on junk
"""

from qahub.core.exceptions import ValidationError


_TRUE_VALUES = {"1", "true", "yes", "on"}


def coerce_str_list(value, field, unique=True):
    """Return a list of stripped, non-empty strings.

    ``unique`` drops repeats while keeping first-seen order (tags behave as a
    set); attachments pass ``unique=False`` and keep every entry in order.

    Raises:
        ValidationError: value is not a list of strings.
    """
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"{field} must be a list of strings",
                              details={field: "list of strings"})
    result = []
    for item in value:
        item = item.strip()
        if not item:
            continue
        if unique and item in result:
            continue
        result.append(item)
    return result


def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def parse_int(value, field):
    """Parse an integer id, raising ValidationError on bad input."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={field: "integer"})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer",
                              details={field: "integer"}) from None


def parse_int_list(value, field):
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list of ids", details={field: "list"})
    seen = []
    for item in value:
        number = parse_int(item, field)
        if number not in seen:
            seen.append(number)
    return seen
