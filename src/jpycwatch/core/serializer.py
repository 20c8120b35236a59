"""Transport-safe serialization for values holding big integers and datetimes.

JSON consumers outside Python (browsers in particular) lose precision on
integers beyond 2**53 and have no datetime type. ``serialize`` therefore
writes such integers as decimal-digit strings and datetimes as ISO-8601
UTC strings with millisecond precision; ``deserialize`` turns them back.
Sub-millisecond precision is dropped. Naive datetimes are rejected since
their offset is unknown.

Known limitation: restoration is heuristic. Any string of 15 or more
digits (optionally signed) comes back as an ``int`` and any string that
matches ``YYYY-MM-DDTHH:mm:ss(.sss)?Z`` comes back as a ``datetime``, even
when the original value was a legitimate string.
"""

import json
import re
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import structlog

from jpycwatch.constants.resilience import (
    BIGINT_DIGIT_THRESHOLD,
    CACHE_SCHEMA_VERSION,
    JS_MAX_SAFE_INTEGER,
)

log = structlog.get_logger(__name__)

VERSION_KEY = "__version"
VALUE_KEY = "__value"

_BIGINT_PATTERN = re.compile(rf"^-?\d{{{BIGINT_DIGIT_THRESHOLD},}}$")
_ISO_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{3})?Z$")


def _format_datetime(value: datetime) -> str:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"Cannot serialize naive datetime {value.isoformat()}")
    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def to_transport(value: Any) -> Any:
    """Recursively convert a value into a JSON-compatible structure.

    Unsafe integers become digit strings, datetimes become ISO strings,
    enums become their values, tuples/sets become lists.
    """
    if isinstance(value, Enum):
        return to_transport(value.value)
    if value is None or isinstance(value, (str, float, bool)):
        return value
    if isinstance(value, int):
        return str(value) if abs(value) > JS_MAX_SAFE_INTEGER else value
    if isinstance(value, datetime):
        return _format_datetime(value)
    if isinstance(value, Mapping):
        return {str(to_transport(key)): to_transport(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_transport(item) for item in value]
    return value


def from_transport(value: Any) -> Any:
    """Inverse of :func:`to_transport` (heuristic, see module docstring)."""
    if isinstance(value, str):
        if _BIGINT_PATTERN.match(value):
            return int(value)
        if _ISO_PATTERN.match(value):
            try:
                return datetime.strptime(
                    value.replace("Z", "+0000"),
                    "%Y-%m-%dT%H:%M:%S.%f%z" if "." in value else "%Y-%m-%dT%H:%M:%S%z",
                )
            except ValueError:
                return value
        return value
    if isinstance(value, list):
        return [from_transport(item) for item in value]
    if isinstance(value, dict):
        return {key: from_transport(val) for key, val in value.items()}
    return value


def serialize(value: Any) -> str:
    """Serialize a value to JSON text tagged with the schema version."""
    processed = to_transport(value)
    if isinstance(processed, dict):
        payload = {VERSION_KEY: CACHE_SCHEMA_VERSION, **processed}
    else:
        payload = {VERSION_KEY: CACHE_SCHEMA_VERSION, VALUE_KEY: processed}
    return json.dumps(payload, ensure_ascii=False)


def deserialize(text: str) -> Any:
    """Parse JSON produced by :func:`serialize` and restore big ints / datetimes.

    A schema version mismatch is logged, never rejected.

    Raises:
        json.JSONDecodeError: If the text is not valid JSON.
    """
    parsed = json.loads(text)
    if not isinstance(parsed, dict):
        return from_transport(parsed)

    version = parsed.pop(VERSION_KEY, None)
    if version is not None and version != CACHE_SCHEMA_VERSION:
        log.warning(
            "serializer_schema_version_mismatch",
            expected=CACHE_SCHEMA_VERSION,
            actual=version,
        )

    if set(parsed) == {VALUE_KEY}:
        return from_transport(parsed[VALUE_KEY])
    return from_transport(parsed)


def read_schema_version(text: str) -> str | None:
    """Return the schema version tag of serialized text, None if absent or unparseable."""
    try:
        parsed = json.loads(text)
    except ValueError:
        return None
    if isinstance(parsed, dict):
        version = parsed.get(VERSION_KEY)
        return version if isinstance(version, str) else None
    return None
