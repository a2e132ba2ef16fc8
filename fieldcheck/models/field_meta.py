from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

"""Column (field) metadata model.

Field metadata is owned by the data source. Both adapters translate their own
payloads into ColumnMetadata so the engine never sees SDK shapes.
"""

__all__ = [
    "FieldType",
    "ColumnMetadata",
]


class FieldType(IntEnum):
    """Column type codes used by the table platform."""
    UNKNOWN = 0
    TEXT = 1
    NUMBER = 2
    SINGLE_SELECT = 3
    MULTI_SELECT = 4
    DATETIME = 5
    CHECKBOX = 7
    USER = 11
    PHONE = 13
    URL = 15
    ATTACHMENT = 17
    SINGLE_LINK = 18
    LOOKUP = 19
    FORMULA = 20
    DUPLEX_LINK = 21
    LOCATION = 22
    GROUP_CHAT = 23
    CREATED_TIME = 1001
    MODIFIED_TIME = 1002
    CREATED_USER = 1003
    MODIFIED_USER = 1004
    AUTO_NUMBER = 1005

    @classmethod
    def from_code(cls, code: Any) -> FieldType:
        try:
            return cls(int(code))
        except (TypeError, ValueError):
            return cls.UNKNOWN


@dataclass(frozen=True)
class ColumnMetadata:
    """A named, typed column of the table.

    ``description`` is kept in whatever shape the platform returned (plain
    text, a list of rich-text segments, or an object with a ``content``
    list); the rule extractor understands all three.
    """
    id: str
    name: str
    type: FieldType = FieldType.TEXT
    description: Any = None
    properties: dict[str, Any] = field(default_factory=dict)  # options for select columns

    @property
    def options(self) -> list[dict[str, Any]]:
        opts = self.properties.get("options") if self.properties else None
        return list(opts) if isinstance(opts, list) else []
