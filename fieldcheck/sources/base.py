from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from ..models.field_meta import ColumnMetadata
from ..models.row_data import Record

"""Data-source interface.

Both adapters (embedded host bridge and remote REST API) expose the same
small surface: current selection, table handles with paginated records and
field metadata, and views defining the visible row order. Handles that
support push notifications additionally implement ObservableTable.
"""

__all__ = [
    "DataSourceError",
    "Selection",
    "RecordPage",
    "Unsubscribe",
    "ViewHandle",
    "TableHandle",
    "ObservableTable",
    "DataSource",
]

Unsubscribe = Callable[[], None]


class DataSourceError(Exception):
    """Transport or API failure while talking to the data source."""


@dataclass(frozen=True)
class Selection:
    table_id: str | None = None
    view_id: str | None = None


@dataclass(frozen=True)
class RecordPage:
    records: list[Record] = field(default_factory=list)
    has_more: bool = False
    page_token: str | None = None


@runtime_checkable
class ViewHandle(Protocol):
    async def get_visible_record_ids(self) -> list[str]: ...


@runtime_checkable
class TableHandle(Protocol):
    id: str

    async def get_field_meta_list(self) -> list[ColumnMetadata]: ...

    async def get_records(self, page_size: int, page_token: str | None = None) -> RecordPage: ...

    async def get_cell_value(self, column_id: str, record_id: str) -> Any: ...

    async def set_cell_value(self, column_id: str, record_id: str, value: Any) -> bool: ...

    async def get_view(self, view_id: str) -> ViewHandle: ...


@runtime_checkable
class ObservableTable(TableHandle, Protocol):
    def on_record_add(self, handler: Callable[[Sequence[str]], Any]) -> Unsubscribe: ...

    def on_record_modify(self, handler: Callable[[], Any]) -> Unsubscribe: ...

    def on_record_delete(self, handler: Callable[[], Any]) -> Unsubscribe: ...


@runtime_checkable
class DataSource(Protocol):
    async def get_selection(self) -> Selection: ...

    async def get_table(self, table_id: str) -> TableHandle: ...

    def on_selection_change(self, handler: Callable[[], Any]) -> Unsubscribe | None: ...
