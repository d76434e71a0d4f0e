"""Named value converters usable in field mappings."""
from datetime import datetime, timezone
from typing import Any, Callable
import math
import re
import uuid
import orjson


class TransformError(ValueError):
    """Raised when a value cannot be converted."""
    pass


TransformFunction = Callable[[Any], Any]

_NUMERIC_LITERAL = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")

_TRUE_STRINGS = {"true", "1", "yes"}
_FALSE_STRINGS = {"false", "0", "no"}

_GENDER_VARIANTS = {
    "male": {"m", "male", "man", "1"},
    "female": {"f", "female", "woman", "2"},
    "other": {"o", "other", "x", "3"},
    "unknown": {"u", "unknown", "n/a", "null", "0", ""},
}


def _stringify(value: Any) -> str:
    """String coercion used by every string transform."""
    if isinstance(value, str):
        return value
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return orjson.dumps(value).decode()
    return str(value)


def to_upper_case(value: Any) -> str:
    return _stringify(value).upper()


def to_lower_case(value: Any) -> str:
    return _stringify(value).lower()


def trim(value: Any) -> str:
    return _stringify(value).strip()


def to_string(value: Any) -> str:
    return _stringify(value)


def to_number(value: Any) -> int | float:
    """
    Convert to a number.

    Booleans become 1/0, null and blank strings become 0. Integral results
    are returned as int.
    """
    if isinstance(value, bool):
        return int(value)
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        if not _NUMERIC_LITERAL.fullmatch(text):
            raise TransformError(f'Cannot convert "{value}" to number')
        number = float(text)
    else:
        raise TransformError(f'Cannot convert "{_stringify(value)}" to number')

    if not math.isfinite(number):
        raise TransformError(f'Cannot convert "{_stringify(value)}" to number')
    if number.is_integer():
        return int(number)
    return number


def to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    elif isinstance(value, (int, float)):
        return value != 0
    raise TransformError(f'Cannot convert "{_stringify(value)}" to boolean')


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Epoch milliseconds
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        return datetime.fromisoformat(text)
    raise ValueError(f"unsupported type {type(value).__name__}")


def format_date(value: Any) -> str:
    """Re-emit a timestamp as ISO-8601 UTC with millisecond precision."""
    try:
        parsed = _parse_datetime(value)
    except (ValueError, OverflowError, OSError) as e:
        raise TransformError(f"Date formatting failed: Invalid date: {_stringify(value)} ({e})")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    parsed = parsed.astimezone(timezone.utc)
    return parsed.strftime("%Y-%m-%dT%H:%M:%S.") + f"{parsed.microsecond // 1000:03d}Z"


def map_gender(value: Any) -> Any:
    """Normalize gender aliases; unrecognized values pass through unchanged."""
    normalized = _stringify(value).lower().strip()
    for gender, variants in _GENDER_VARIANTS.items():
        if normalized in variants:
            return gender
    return value


def generate_uuid(value: Any = None) -> str:
    """Ignore the input and return a fresh UUID v4."""
    return str(uuid.uuid4())


TRANSFORMS: dict[str, TransformFunction] = {
    "toUpperCase": to_upper_case,
    "toLowerCase": to_lower_case,
    "trim": trim,
    "toString": to_string,
    "toNumber": to_number,
    "toBoolean": to_boolean,
    "formatDate": format_date,
    "mapGender": map_gender,
    "generateUUID": generate_uuid,
}

TRANSFORM_NAMES = tuple(TRANSFORMS)


def get_transform(name: str) -> TransformFunction:
    """
    Look up a transform by name.

    Raises:
        TransformError: if the name is not part of the vocabulary
    """
    try:
        return TRANSFORMS[name]
    except KeyError:
        raise TransformError(f"Unknown transformation function: {name}")


def apply_transform(value: Any, name: str) -> Any:
    return get_transform(name)(value)
