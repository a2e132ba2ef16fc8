from __future__ import annotations

import logging
from collections.abc import Sequence

from ..models.field_meta import ColumnMetadata
from ..models.row_data import Record, RowData
from ..services.normalizer import normalize_raw
from ..sources.base import DataSourceError, TableHandle

"""Row reader.

Fetches every record of a table page by page, orders them by the view's
visible record list and normalizes each cell. Row numbers are assigned from
that visible order.
"""

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "fetch_all_records",
    "read_rows",
    "to_row_data",
]

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


async def fetch_all_records(table: TableHandle, page_size: int = DEFAULT_PAGE_SIZE) -> list[Record]:
    """Loop over ``get_records`` until ``has_more`` is false."""
    records: list[Record] = []
    token: str | None = None
    pages = 0
    while True:
        page = await table.get_records(page_size, token)
        pages += 1
        records.extend(page.records)
        if not page.has_more:
            break
        if not page.page_token or page.page_token == token:
            raise DataSourceError(f"pagination stalled after {pages} pages (token={page.page_token!r})")
        token = page.page_token
    logger.debug(f"fetched {len(records)} records in {pages} pages")
    return records


def to_row_data(row_number: int, record: Record, columns: Sequence[ColumnMetadata]) -> RowData:
    fields = {c.id: normalize_raw(record.fields.get(c.id), c.type) for c in columns}
    return RowData(
        row_number=row_number,
        record_id=record.record_id,
        fields=fields,
        last_modified_by=record.last_modified_by,
        last_modified_time=record.last_modified_time,
    )


async def read_rows(
    table: TableHandle,
    columns: Sequence[ColumnMetadata],
    view_id: str | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> list[RowData]:
    """Read normalized rows in visible order.

    Without a view the storage order is used. Visible ids with no fetched
    record are skipped; records hidden by the view are left out.
    """
    records = await fetch_all_records(table, page_size)
    if view_id is None:
        ordered = records
    else:
        view = await table.get_view(view_id)
        visible = await view.get_visible_record_ids()
        by_id = {r.record_id: r for r in records}
        ordered = [by_id[rid] for rid in visible if rid in by_id]
        missing = len(visible) - len(ordered)
        if missing:
            logger.debug(f"{missing} visible ids had no fetched record")

    return [to_row_data(i + 1, rec, columns) for i, rec in enumerate(ordered)]
