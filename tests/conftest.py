# Shared pytest fixtures: in-memory data source
from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import pytest

from fieldcheck.models.field_meta import ColumnMetadata, FieldType
from fieldcheck.models.row_data import Record, RowData
from fieldcheck.sources.base import DataSourceError, RecordPage, Selection


def rule_column(
    column_id: str,
    name: str,
    validator: str | None = None,
    *,
    type: FieldType = FieldType.TEXT,
    extra: dict[str, Any] | None = None,
    properties: dict[str, Any] | None = None,
) -> ColumnMetadata:
    """Column whose description embeds ``{"validator": ...}`` as a text segment."""
    description = None
    if validator is not None:
        payload = {"validator": validator, **(extra or {})}
        description = [{"type": "text", "text": json.dumps(payload)}]
    return ColumnMetadata(id=column_id, name=name, type=type, description=description, properties=properties or {})


def rows_for(column_id: str, values: Sequence[str]) -> list[RowData]:
    return [
        RowData(row_number=i + 1, record_id=f"rec{i + 1}", fields={column_id: v})
        for i, v in enumerate(values)
    ]


class FakeView:
    def __init__(self, table: FakeTable) -> None:
        self._table = table

    async def get_visible_record_ids(self) -> list[str]:
        return list(self._table.visible_ids)


class FakeTable:
    """ObservableTable kept in memory; records are listed in storage order."""

    def __init__(self, table_id: str, columns: list[ColumnMetadata], records: list[Record]) -> None:
        self.id = table_id
        self.columns = columns
        self.records = records
        self.visible_ids = [r.record_id for r in records]
        self.writes: list[tuple[str, str, Any]] = []
        self.set_results: list[bool] = []  # consumed first; then True
        self.fail_fetch = False
        self.fetch_gate: asyncio.Event | None = None
        self.fetch_calls = 0
        self.handlers: dict[str, list[Callable[..., Any]]] = {"add": [], "modify": [], "delete": []}
        self.unsubscribe_calls: dict[str, int] = {"add": 0, "modify": 0, "delete": 0}

    async def get_field_meta_list(self) -> list[ColumnMetadata]:
        if self.fail_fetch:
            raise DataSourceError("fields unavailable")
        return list(self.columns)

    async def get_records(self, page_size: int, page_token: str | None = None) -> RecordPage:
        self.fetch_calls += 1
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if self.fail_fetch:
            raise DataSourceError("records unavailable")
        start = int(page_token or 0)
        chunk = self.records[start:start + page_size]
        end = start + len(chunk)
        has_more = end < len(self.records)
        return RecordPage(records=chunk, has_more=has_more, page_token=str(end) if has_more else None)

    async def get_cell_value(self, column_id: str, record_id: str) -> Any:
        for r in self.records:
            if r.record_id == record_id:
                return r.fields.get(column_id)
        return None

    async def set_cell_value(self, column_id: str, record_id: str, value: Any) -> bool:
        self.writes.append((column_id, record_id, value))
        ok = self.set_results.pop(0) if self.set_results else True
        if ok:
            for i, r in enumerate(self.records):
                if r.record_id == record_id:
                    self.records[i] = Record(record_id, {**r.fields, column_id: value})
        return ok

    async def get_view(self, view_id: str) -> FakeView:
        return FakeView(self)

    def _subscribe(self, kind: str, handler: Callable[..., Any]) -> Callable[[], None]:
        self.handlers[kind].append(handler)

        def off() -> None:
            self.unsubscribe_calls[kind] += 1
            self.handlers[kind].remove(handler)

        return off

    def on_record_add(self, handler: Callable[[Sequence[str]], Any]) -> Callable[[], None]:
        return self._subscribe("add", handler)

    def on_record_modify(self, handler: Callable[[], Any]) -> Callable[[], None]:
        return self._subscribe("modify", handler)

    def on_record_delete(self, handler: Callable[[], Any]) -> Callable[[], None]:
        return self._subscribe("delete", handler)

    def emit(self, kind: str, *args: Any) -> None:
        for handler in list(self.handlers[kind]):
            handler(*args)


class FakeSource:
    def __init__(self, tables: dict[str, FakeTable], table_id: str | None, view_id: str | None = "view1") -> None:
        self.tables = tables
        self.selection = Selection(table_id=table_id, view_id=view_id)
        self.selection_handlers: list[Callable[[], Any]] = []
        self.selection_unsubscribe_calls = 0

    async def get_selection(self) -> Selection:
        return self.selection

    async def get_table(self, table_id: str) -> FakeTable:
        if table_id not in self.tables:
            raise DataSourceError(f"no table {table_id}")
        return self.tables[table_id]

    def on_selection_change(self, handler: Callable[[], Any]) -> Callable[[], None]:
        self.selection_handlers.append(handler)

        def off() -> None:
            self.selection_unsubscribe_calls += 1
            self.selection_handlers.remove(handler)

        return off

    def select(self, table_id: str, view_id: str | None = "view1") -> None:
        self.selection = Selection(table_id=table_id, view_id=view_id)
        for handler in list(self.selection_handlers):
            handler()


@pytest.fixture()
def name_table() -> FakeTable:
    """Three rows, column "Name" must be unique: Alice / Bob / Alice."""
    columns = [
        rule_column("fldName", "Name", "string|exists:true"),
        rule_column("fldNote", "Note"),
    ]
    records = [
        Record("recA", {"fldName": "Alice", "fldNote": "x"}, last_modified_by="ou_1", last_modified_time=1_700_000_000_000),
        Record("recB", {"fldName": "Bob"}, last_modified_by="ou_2", last_modified_time=1_700_000_100_000),
        Record("recC", {"fldName": [{"type": "text", "text": "Ali"}, {"type": "text", "text": "ce"}]},
               last_modified_by="ou_3", last_modified_time=1_700_000_050_000),
    ]
    return FakeTable("tbl1", columns, records)


@pytest.fixture()
def fake_source(name_table: FakeTable) -> FakeSource:
    return FakeSource({"tbl1": name_table}, "tbl1")


@pytest.fixture()
def temp_workdir(monkeypatch, tmp_path: Path) -> Path:
    (tmp_path / "config").mkdir()
    monkeypatch.chdir(tmp_path)
    for var in (
        "FIELDCHECK_ACCESS_TOKEN",
        "FIELDCHECK_WEBHOOK_URL",
        "FIELDCHECK_APP_TOKEN",
        "FIELDCHECK_TABLE_ID",
        "FIELDCHECK_VIEW_ID",
    ):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


@pytest.fixture()
def sample_config_yaml() -> str:
    return """engine:
  chunk_size: 2
  debounce_seconds: 0.1
  page_size: 50
retry:
  attempts: 2
  base_delay: 0.5
  max_delay: 2
remote:
  app_token: app123
  table_id: tbl1
  view_id: view1
notification:
  title: Validation report
  locale: en_us
messages:
  stringExists: "Duplicate value"
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "fieldcheck.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg
