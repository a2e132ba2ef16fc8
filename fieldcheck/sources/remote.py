from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx

from ..models.field_meta import ColumnMetadata, FieldType
from ..models.row_data import Record
from .base import DataSourceError, RecordPage, Selection, Unsubscribe

"""Remote-API adapter over the bitable open REST API.

The API keys record fields by column *name*; the adapter translates them to
column ids so the rest of the package works with ids only. Every response
carries a ``code`` (0 = success) which is checked on each call.

The REST API offers no push subscriptions, so this adapter does not
implement ObservableTable; callers run single passes instead.
"""

__all__ = [
    "DEFAULT_BASE_URL",
    "RemoteSource",
    "RemoteTable",
    "RemoteView",
]

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://open.larksuite.com/open-apis"
_FIELD_PAGE_SIZE = 100


async def _call(client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
    try:
        resp = await client.request(method, url, **kwargs)
        resp.raise_for_status()
        payload = resp.json()
    except httpx.HTTPStatusError as e:
        raise DataSourceError(f"{method} {url}: HTTP {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise DataSourceError(f"{method} {url}: {e}") from e
    except ValueError as e:
        raise DataSourceError(f"{method} {url}: invalid JSON response") from e

    if not isinstance(payload, dict):
        raise DataSourceError(f"{method} {url}: unexpected response shape")
    if payload.get("code") != 0:
        raise DataSourceError(f"{method} {url}: code={payload.get('code')} msg={payload.get('msg')}")
    return payload.get("data") or {}


def _column_from_item(item: dict[str, Any]) -> ColumnMetadata:
    return ColumnMetadata(
        id=str(item.get("field_id", "")),
        name=str(item.get("field_name", "")),
        type=FieldType.from_code(item.get("type")),
        description=item.get("description"),
        properties=item.get("property") or {},
    )


def _user_id(raw: Any) -> str | None:
    if isinstance(raw, dict):
        uid = raw.get("id")
        return str(uid) if uid else None
    return None


class RemoteView:
    def __init__(self, table: RemoteTable, view_id: str, page_size: int = 100) -> None:
        self._table = table
        self.id = view_id
        self._page_size = page_size

    async def get_visible_record_ids(self) -> list[str]:
        """Record ids in the order (and under the filter) of this view."""
        ids: list[str] = []
        token: str | None = None
        while True:
            params: dict[str, Any] = {"view_id": self.id, "page_size": self._page_size}
            if token:
                params["page_token"] = token
            data = await _call(self._table.client, "GET", self._table.url("records"), params=params)
            ids.extend(str(item.get("record_id")) for item in data.get("items") or [])
            if not data.get("has_more"):
                return ids
            next_token = data.get("page_token")
            if not next_token or next_token == token:
                raise DataSourceError("view pagination stalled")
            token = next_token


class RemoteTable:
    def __init__(self, client: httpx.AsyncClient, app_token: str, table_id: str, base_url: str = DEFAULT_BASE_URL) -> None:
        self.client = client
        self.app_token = app_token
        self.id = table_id
        self._base_url = base_url.rstrip("/")
        self._columns: list[ColumnMetadata] | None = None

    def url(self, *parts: str) -> str:
        path = "/".join(parts)
        return f"{self._base_url}/bitable/v1/apps/{self.app_token}/tables/{self.id}/{path}"

    async def get_field_meta_list(self) -> list[ColumnMetadata]:
        columns: list[ColumnMetadata] = []
        token: str | None = None
        while True:
            params: dict[str, Any] = {"page_size": _FIELD_PAGE_SIZE}
            if token:
                params["page_token"] = token
            data = await _call(self.client, "GET", self.url("fields"), params=params)
            columns.extend(_column_from_item(item) for item in data.get("items") or [])
            if not data.get("has_more"):
                break
            next_token = data.get("page_token")
            if not next_token or next_token == token:
                raise DataSourceError("field pagination stalled")
            token = next_token
        self._columns = columns
        logger.debug(f"table {self.id}: {len(columns)} fields")
        return columns

    async def _name_to_id(self) -> dict[str, str]:
        columns = self._columns if self._columns is not None else await self.get_field_meta_list()
        return {c.name: c.id for c in columns}

    async def _id_to_name(self, column_id: str) -> str:
        for name, cid in (await self._name_to_id()).items():
            if cid == column_id:
                return name
        raise DataSourceError(f"unknown column id {column_id!r}")

    def _record(self, item: dict[str, Any], name_to_id: dict[str, str]) -> Record:
        raw_fields = item.get("fields") or {}
        fields = {name_to_id.get(name, name): value for name, value in raw_fields.items()}
        modified = item.get("last_modified_time")
        return Record(
            record_id=str(item.get("record_id")),
            fields=fields,
            last_modified_by=_user_id(item.get("last_modified_by")),
            last_modified_time=int(modified) if isinstance(modified, (int, float)) else None,
        )

    async def get_records(self, page_size: int, page_token: str | None = None) -> RecordPage:
        params: dict[str, Any] = {
            "page_size": page_size,
            "automatic_fields": "true",
            "user_id_type": "open_id",
        }
        if page_token:
            params["page_token"] = page_token
        data = await _call(self.client, "GET", self.url("records"), params=params)
        name_to_id = await self._name_to_id()
        return RecordPage(
            records=[self._record(item, name_to_id) for item in data.get("items") or []],
            has_more=bool(data.get("has_more")),
            page_token=data.get("page_token"),
        )

    async def get_cell_value(self, column_id: str, record_id: str) -> Any:
        name = await self._id_to_name(column_id)
        data = await _call(self.client, "GET", self.url("records", record_id))
        record = data.get("record") or {}
        return (record.get("fields") or {}).get(name)

    async def set_cell_value(self, column_id: str, record_id: str, value: Any) -> bool:
        name = await self._id_to_name(column_id)
        await _call(self.client, "PUT", self.url("records", record_id), json={"fields": {name: value}})
        return True

    async def get_view(self, view_id: str) -> RemoteView:
        return RemoteView(self, view_id)


class RemoteSource:
    """Fixed selection (app, table, view) over the REST API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        app_token: str,
        table_id: str,
        view_id: str | None = None,
        *,
        base_url: str = DEFAULT_BASE_URL,
    ) -> None:
        self._client = client
        self._app_token = app_token
        self._selection = Selection(table_id=table_id, view_id=view_id)
        self._base_url = base_url

    @property
    def app_token(self) -> str:
        return self._app_token

    async def get_selection(self) -> Selection:
        return self._selection

    async def get_table(self, table_id: str) -> RemoteTable:
        return RemoteTable(self._client, self._app_token, table_id, self._base_url)

    def on_selection_change(self, handler: Callable[[], Any]) -> Unsubscribe | None:
        return None
