from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Row models for the validation engine.

Record is the raw row as delivered by a data source. RowData is the same row
after every cell went through the normalizer; it is what the engine and the
session cache work with.
"""

__all__ = [
    "Record",
    "RowData",
]


@dataclass(frozen=True)
class Record:
    """Raw row from the data source (cell payloads keyed by column id)."""
    record_id: str
    fields: dict[str, Any] = field(default_factory=dict)
    last_modified_by: str | None = None  # user id of the last editor, when known
    last_modified_time: int | None = None  # epoch milliseconds


@dataclass(frozen=True)
class RowData:
    """Logical representation of a single row after normalization.

    ``row_number`` is the 1-based position in the visible row ordering, not
    the storage order and not the record id.
    """
    row_number: int
    record_id: str
    fields: dict[str, str]  # column id -> normalized text
    last_modified_by: str | None = None
    last_modified_time: int | None = None

    def value(self, column_id: str) -> str:
        # a cell with no stored value is validated as an empty string
        return self.fields.get(column_id, "")
