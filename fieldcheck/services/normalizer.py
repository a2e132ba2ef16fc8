from __future__ import annotations

import json
from datetime import UTC, datetime
from functools import singledispatch
from typing import Any

from ..models.cell_value import (
    Attachments,
    Checkbox,
    Empty,
    GroupChats,
    MultiSelect,
    Number,
    Opaque,
    Segments,
    SingleSelect,
    Text,
    Timestamp,
    Unsupported,
    Users,
    classify,
)
from ..models.field_meta import FieldType

"""Cell text normalizer.

Single authority translating any cell payload to the canonical text used by
uniqueness checks, rule checks and reports. Every input maps to some string;
nothing here raises.
"""

__all__ = [
    "UNSUPPORTED_TEXT",
    "TIMESTAMP_THRESHOLD_MS",
    "normalize",
    "normalize_raw",
]

# Stable marker for cell shapes validation does not look into. Two such cells
# compare equal, so they count as duplicates of each other under exists:true.
UNSUPPORTED_TEXT = "[validation not supported for this cell type]"

# Plain numbers above this are taken as epoch milliseconds (after ~2001)
TIMESTAMP_THRESHOLD_MS = 1_000_000_000_000


def _iso_from_millis(millis: int | float) -> str | None:
    try:
        dt = datetime.fromtimestamp(millis / 1000, UTC)
    except (OverflowError, OSError, ValueError):
        return None
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _number_text(value: int | float) -> str:
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return str(value)
        if value.is_integer() and abs(value) < 1e16:
            return str(int(value))
        return repr(value)
    return str(value)


@singledispatch
def normalize(value: Any) -> str:
    """Normalize a cell value (variant or raw payload) to text."""
    return normalize(classify(value))


@normalize.register
def _(value: Empty) -> str:
    return ""


@normalize.register
def _(value: Text) -> str:
    return value.text


@normalize.register
def _(value: Number) -> str:
    if value.value > TIMESTAMP_THRESHOLD_MS:
        iso = _iso_from_millis(value.value)
        if iso is not None:
            return iso
    return _number_text(value.value)


@normalize.register
def _(value: Timestamp) -> str:
    return _iso_from_millis(value.millis) or _number_text(value.millis)


@normalize.register
def _(value: Checkbox) -> str:
    return "true" if value.checked else "false"


@normalize.register
def _(value: SingleSelect) -> str:
    return value.option.text


@normalize.register
def _(value: MultiSelect) -> str:
    return ",".join(o.text for o in value.options)


@normalize.register
def _(value: Users) -> str:
    return ",".join(u.name for u in value.users)


@normalize.register
def _(value: Attachments) -> str:
    # name + size + upload timestamp identifies a file well enough for duplicates
    return ",".join(
        f"{a.name}{'' if a.size is None else a.size}{'' if a.timestamp is None else a.timestamp}"
        for a in value.items
    )


@normalize.register
def _(value: Segments) -> str:
    return "".join(s.text for s in value.segments)


@normalize.register
def _(value: GroupChats) -> str:
    return ",".join(c.id for c in value.chats)


@normalize.register
def _(value: Unsupported) -> str:
    return UNSUPPORTED_TEXT


@normalize.register
def _(value: Opaque) -> str:
    try:
        return json.dumps(value.raw, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value.raw)


def normalize_raw(raw: Any, field_type: FieldType | int | None = None) -> str:
    """Classify a raw payload with an optional column type hint, then normalize."""
    return normalize(classify(raw, field_type))
