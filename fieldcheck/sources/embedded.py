from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from ..models.field_meta import ColumnMetadata, FieldType
from ..models.row_data import Record
from .base import DataSourceError, RecordPage, Selection, Unsubscribe

"""Embedded adapter over a host SDK bridge.

The bridge is whatever object the host runtime exposes (camelCase async
methods, ``base.getSelection()``, ``base.getTableById()``, table-level
``onRecordAdd`` / ``onRecordModify`` / ``onRecordDelete`` subscriptions that
return an "off" callable). This module translates it to the DataSource
protocol and wraps bridge failures in DataSourceError.
"""

__all__ = [
    "EmbeddedSource",
    "EmbeddedTable",
    "EmbeddedView",
]

logger = logging.getLogger(__name__)


def _get(obj: Any, key: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _column(meta: Any) -> ColumnMetadata:
    return ColumnMetadata(
        id=str(_get(meta, "id", "")),
        name=str(_get(meta, "name", "")),
        type=FieldType.from_code(_get(meta, "type")),
        description=_get(meta, "description"),
        properties=_get(meta, "property") or {},
    )


def _record(raw: Any) -> Record:
    modified_by = _get(raw, "lastModifiedBy")
    modified = _get(raw, "lastModifiedTime")
    return Record(
        record_id=str(_get(raw, "recordId", "")),
        fields=dict(_get(raw, "fields") or {}),
        last_modified_by=str(_get(modified_by, "id")) if _get(modified_by, "id") else None,
        last_modified_time=int(modified) if isinstance(modified, (int, float)) else None,
    )


def _added_ids(event: Any) -> list[str]:
    data = _get(event, "data", event)
    if isinstance(data, (list, tuple)):
        return [str(x) for x in data]
    return []


async def _guard(label: str, coro: Any) -> Any:
    try:
        return await coro
    except DataSourceError:
        raise
    except Exception as e:
        raise DataSourceError(f"{label}: {e}") from e


class EmbeddedView:
    def __init__(self, raw: Any) -> None:
        self._raw = raw

    async def get_visible_record_ids(self) -> list[str]:
        ids = await _guard("getVisibleRecordIdList", self._raw.getVisibleRecordIdList())
        return [str(i) for i in ids if i]


class EmbeddedTable:
    def __init__(self, raw: Any, table_id: str) -> None:
        self._raw = raw
        self.id = table_id

    async def get_field_meta_list(self) -> list[ColumnMetadata]:
        metas = await _guard("getFieldMetaList", self._raw.getFieldMetaList())
        return [_column(m) for m in metas or []]

    async def get_records(self, page_size: int, page_token: str | None = None) -> RecordPage:
        params: dict[str, Any] = {"pageSize": page_size}
        if page_token:
            params["pageToken"] = page_token
        resp = await _guard("getRecords", self._raw.getRecords(params))
        return RecordPage(
            records=[_record(r) for r in _get(resp, "records") or []],
            has_more=bool(_get(resp, "hasMore")),
            page_token=_get(resp, "pageToken"),
        )

    async def get_cell_value(self, column_id: str, record_id: str) -> Any:
        return await _guard("getCellValue", self._raw.getCellValue(column_id, record_id))

    async def set_cell_value(self, column_id: str, record_id: str, value: Any) -> bool:
        return bool(await _guard("setCellValue", self._raw.setCellValue(column_id, record_id, value)))

    async def get_view(self, view_id: str) -> EmbeddedView:
        return EmbeddedView(await _guard("getViewById", self._raw.getViewById(view_id)))

    def on_record_add(self, handler: Callable[[Sequence[str]], Any]) -> Unsubscribe:
        return self._raw.onRecordAdd(lambda event: handler(_added_ids(event)))

    def on_record_modify(self, handler: Callable[[], Any]) -> Unsubscribe:
        return self._raw.onRecordModify(lambda event=None: handler())

    def on_record_delete(self, handler: Callable[[], Any]) -> Unsubscribe:
        return self._raw.onRecordDelete(lambda event=None: handler())


class EmbeddedSource:
    def __init__(self, bridge: Any) -> None:
        self._bridge = bridge

    async def get_selection(self) -> Selection:
        sel = await _guard("getSelection", self._bridge.base.getSelection())
        return Selection(table_id=_get(sel, "tableId"), view_id=_get(sel, "viewId"))

    async def get_table(self, table_id: str) -> EmbeddedTable:
        raw = await _guard("getTableById", self._bridge.base.getTableById(table_id))
        return EmbeddedTable(raw, table_id)

    def on_selection_change(self, handler: Callable[[], Any]) -> Unsubscribe | None:
        return self._bridge.base.onSelectionChange(lambda event=None: handler())
