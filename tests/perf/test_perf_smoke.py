from __future__ import annotations

import time

import pytest
from conftest import rule_column

from fieldcheck.models.row_data import RowData
from fieldcheck.services.engine import validate

"""Performance smoke test: a 20k-row table with several rule columns.

Thresholds are lenient so CI stays stable; the point is catching accidental
quadratic behaviour (e.g. a uniqueness scan per row).
"""

ROWS = 20_000


def _dataset() -> tuple[list, list[RowData]]:
    columns = [
        rule_column("id", "Id", "string|exists:true"),
        rule_column("qty", "Qty", "number|min:0|max:1000"),
        rule_column("mail", "Mail", "email"),
        rule_column("kind", "Kind", '{"type": "enum", "values": ["a", "b", "c"]}'),
    ]
    rows = [
        RowData(
            row_number=i + 1,
            record_id=f"rec{i}",
            fields={
                "id": f"ID-{i % (ROWS - 10)}",  # ten duplicate pairs at the end
                "qty": str(i % 1200),
                "mail": f"user{i}@example.com",
                "kind": "abcd"[i % 4],
            },
        )
        for i in range(ROWS)
    ]
    return columns, rows


@pytest.mark.perf
@pytest.mark.asyncio
async def test_validate_20k_rows_quickly():
    columns, rows = _dataset()
    start = time.perf_counter()
    report = await validate(rows, columns, chunk_size=1000)
    elapsed = time.perf_counter() - start

    assert elapsed < 10.0, f"validation too slow: {elapsed:.3f}s"
    assert report.total_rows == ROWS
    assert report.columns_validated == 4
    assert sum(1 for v in report.violations if v.column_name == "Id") == 20
    assert sum(1 for v in report.violations if v.column_name == "Kind") == ROWS // 4
    assert report.throughput_rows_per_sec > 0
