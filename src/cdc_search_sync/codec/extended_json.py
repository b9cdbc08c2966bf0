"""MongoDB extended-JSON decoding.

Change events arrive in relaxed extended JSON, and producers are not
consistent about it: the same field may be a bare scalar in one message and a
type-tagged wrapper in the next.  Three wrappers are recognized:

- ``{"$numberLong": "<digits>"}``: 64-bit signed integer
- ``{"$oid": "<hex>"}``: object identifier (kept as a string)
- ``{"$date": <millis | ISO-8601>}``: absolute instant (UTC)

``decode`` parses the text and replaces every wrapper object with an
``ExtendedValue`` that carries its already-resolved native value, so the
mapper can still tell a wrapped ``_id`` from a bare one.  Plain values pass
through untouched.  The ``as_*`` accessors are the only place that turns
either shape into the type a target field needs.

Field-level failures never abort a document: an unparseable ``$numberLong``
becomes 0 and an unparseable date becomes ``None``, each with a warning.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

import structlog

from cdc_search_sync.errors import DecodeError, FailureKind

logger = structlog.get_logger()

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_DIGITS = re.compile(r"^[+-]?\d+$")


class WrapperKind(StrEnum):
    """Type tag of an extended-JSON wrapper object."""

    INTEGER = "$numberLong"
    IDENTIFIER = "$oid"
    TIMESTAMP = "$date"


@dataclass(frozen=True, slots=True)
class ExtendedValue:
    """A scalar that arrived inside a type-tagged wrapper.

    ``value`` is the resolved native value: ``int`` for INTEGER, ``str`` for
    IDENTIFIER, ``datetime | None`` for TIMESTAMP.
    """

    kind: WrapperKind
    value: Any


StructuredValue = dict[str, Any] | list[Any]


def decode(text: str) -> StructuredValue | DecodeError:
    """Parse *text* and resolve extended-JSON wrappers."""
    try:
        parsed = json.loads(text)
    except (ValueError, RecursionError) as exc:
        return DecodeError(FailureKind.MALFORMED, f"Malformed JSON: {exc}")
    if not isinstance(parsed, dict | list):
        return DecodeError(
            FailureKind.MALFORMED,
            f"Malformed JSON: expected an object or array, got {type(parsed).__name__}",
        )
    return resolve(parsed)


def resolve(value: Any, path: str = "$") -> Any:
    """Recursively replace wrapper objects in *value* with ``ExtendedValue``."""
    if isinstance(value, dict):
        wrapper = _as_wrapper(value, path)
        if wrapper is not None:
            return wrapper
        return {k: resolve(v, f"{path}.{k}") for k, v in value.items()}
    if isinstance(value, list):
        return [resolve(item, f"{path}[{i}]") for i, item in enumerate(value)]
    return value


def _as_wrapper(obj: dict[str, Any], path: str) -> ExtendedValue | None:
    if len(obj) != 1:
        return None
    key, payload = next(iter(obj.items()))
    if key == WrapperKind.INTEGER:
        return ExtendedValue(WrapperKind.INTEGER, _parse_long(payload, path))
    if key == WrapperKind.IDENTIFIER and isinstance(payload, str):
        return ExtendedValue(WrapperKind.IDENTIFIER, payload)
    if key == WrapperKind.TIMESTAMP:
        return ExtendedValue(WrapperKind.TIMESTAMP, _parse_date_payload(payload, path))
    return None


def _parse_long(raw: Any, path: str) -> int:
    if isinstance(raw, int) and not isinstance(raw, bool):
        candidate = raw
    elif isinstance(raw, str) and _DIGITS.match(raw.strip()):
        candidate = int(raw.strip())
    else:
        logger.warning("extended_json.invalid_long", path=path, value=repr(raw))
        return 0
    if not _INT64_MIN <= candidate <= _INT64_MAX:
        logger.warning("extended_json.long_out_of_range", path=path, value=repr(raw))
        return 0
    return candidate


def _parse_date_payload(raw: Any, path: str) -> datetime | None:
    # Canonical mode nests the millis: {"$date": {"$numberLong": "..."}}
    if isinstance(raw, dict) and set(raw) == {WrapperKind.INTEGER.value}:
        raw = _parse_long(raw[WrapperKind.INTEGER.value], path)
    return _parse_instant(raw, path)


def _parse_instant(raw: Any, path: str) -> datetime | None:
    if isinstance(raw, int) and not isinstance(raw, bool):
        try:
            return _EPOCH + timedelta(milliseconds=raw)
        except OverflowError:
            logger.warning("extended_json.invalid_date", path=path, value=repr(raw))
            return None
    if isinstance(raw, str):
        try:
            parsed = datetime.fromisoformat(raw.strip())
        except ValueError:
            logger.warning("extended_json.invalid_date", path=path, value=raw)
            return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    logger.warning("extended_json.invalid_date", path=path, value=repr(raw))
    return None


# -- accessors ----------------------------------------------------------------


def as_long(value: Any, path: str = "$") -> int:
    """Resolve a counter: wrapped, bare number or numeric string; 0 otherwise."""
    if value is None:
        return 0
    if isinstance(value, ExtendedValue):
        if value.kind is WrapperKind.INTEGER:
            return int(value.value)
        logger.warning("extended_json.not_a_number", path=path, kind=str(value.kind))
        return 0
    if isinstance(value, float) and math.isfinite(value):
        return _parse_long(int(value), path)
    return _parse_long(value, path)


def as_instant(value: Any, path: str = "$") -> datetime | None:
    """Resolve a date: ``$date`` wrapper, bare epoch millis or bare ISO-8601."""
    if value is None:
        return None
    if isinstance(value, ExtendedValue):
        if value.kind is WrapperKind.TIMESTAMP:
            return value.value  # type: ignore[no-any-return]
        if value.kind is WrapperKind.INTEGER:
            return _parse_instant(value.value, path)
        logger.warning("extended_json.invalid_date", path=path, kind=str(value.kind))
        return None
    return _parse_instant(value, path)


def as_identifier(value: Any) -> str | None:
    """Return the string inside an ``$oid`` wrapper, else ``None``."""
    if isinstance(value, ExtendedValue) and value.kind is WrapperKind.IDENTIFIER:
        return value.value  # type: ignore[no-any-return]
    return None


def as_text(value: Any) -> str | None:
    """Tolerant string accessor: unwrap, stringify, keep ``None``."""
    if value is None:
        return None
    if isinstance(value, ExtendedValue):
        if value.kind is WrapperKind.TIMESTAMP:
            return value.value.isoformat() if value.value is not None else None
        return str(value.value)
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict | list):
        return json.dumps(to_plain(value), separators=(",", ":"))
    return str(value)


def to_plain(value: Any) -> Any:
    """Convert a resolved tree back to JSON-compatible natives (for display)."""
    if isinstance(value, ExtendedValue):
        if isinstance(value.value, datetime):
            return value.value.isoformat()
        return value.value
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    return value
