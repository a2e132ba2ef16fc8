from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from conftest import rows_for, rule_column

from fieldcheck.models.field_meta import ColumnMetadata
from fieldcheck.models.row_data import RowData
from fieldcheck.services.cache import ValidationSession
from fieldcheck.services.engine import ISSUE_INVALID_JSON, ISSUE_INVALID_RULE, validate


def _key(records):
    return [(r.row_number, r.column_name, r.problem_type, r.conflict_rows) for r in records]


@pytest.mark.asyncio
async def test_uniqueness_flags_both_duplicates():
    col = rule_column("f1", "Name", "string|exists:true")
    report = await validate(rows_for("f1", ["a", "b", "a", "c"]), [col])
    assert [(v.row_number, v.conflict_rows) for v in report.violations] == [(1, (3,)), (3, (1,))]
    assert report.state == "violations"
    assert report.columns_validated == 1
    assert report.total_rows == 4


@pytest.mark.asyncio
async def test_empty_values_are_exempt_from_uniqueness():
    col = rule_column("f1", "Name", "string|exists:true")
    report = await validate(rows_for("f1", ["", "a", ""]), [col])
    assert report.violations == []
    assert report.state == "clean"


@pytest.mark.asyncio
async def test_missing_cell_is_validated_as_empty():
    col = rule_column("f1", "Owner", "string|required")
    rows = [
        RowData(row_number=1, record_id="r1", fields={"f1": "Ann"}),
        RowData(row_number=2, record_id="r2", fields={}),
    ]
    report = await validate(rows, [col])
    assert [(v.row_number, v.error_types) for v in report.violations] == [(2, ("required",))]
    assert report.violations[0].cell_value == ""


@pytest.mark.asyncio
async def test_malformed_rule_json_reported_once_and_other_columns_run():
    bad = ColumnMetadata(id="f1", name="Broken", description=[{"type": "text", "text": '{"validator": "{bad json'}])
    good = rule_column("f2", "Name", "string|exists:true")
    rows = [
        RowData(1, "r1", {"f1": "x", "f2": "a"}),
        RowData(2, "r2", {"f1": "y", "f2": "a"}),
    ]
    report = await validate(rows, [bad, good])

    assert [(i.column_name, i.kind) for i in report.issues] == [("Broken", ISSUE_INVALID_JSON)]
    assert len(report.violations) == 2
    assert report.state == "error"
    assert report.first_issue.column_name == "Broken"


@pytest.mark.asyncio
async def test_invalid_validator_rule_skips_column():
    bad = rule_column("f1", "Score", "number|min:abc")
    good = rule_column("f2", "Due", "date")
    rows = [RowData(1, "r1", {"f1": "1", "f2": "nope"})]
    report = await validate(rows, [bad, good])

    (issue,) = report.issues
    assert issue.kind == ISSUE_INVALID_RULE
    assert "invalid validator rule for column 'Score'" in issue.message
    assert [v.column_name for v in report.violations] == ["Due"]
    assert report.columns_validated == 1
    assert report.columns_skipped == 1


@pytest.mark.asyncio
async def test_columns_without_rule_are_skipped_silently():
    cols = [rule_column("f1", "Note"), rule_column("f2", "Name", "string")]
    report = await validate(rows_for("f1", ["x"]), cols)
    assert report.issues == []
    assert report.columns_total == 2
    assert report.columns_validated == 1
    assert report.columns_skipped == 1
    assert {s.column_name: s.status for s in report.column_stats} == {"Note": "no_rule", "Name": "validated"}


@pytest.mark.asyncio
async def test_chunking_does_not_change_results():
    values = [str(i % 7) for i in range(50)]
    col = rule_column("f1", "Bucket", "string|exists:true|max:0")
    small = await validate(rows_for("f1", values), [col], chunk_size=3)
    large = await validate(rows_for("f1", values), [col], chunk_size=1000)
    assert _key(small.violations) == _key(large.violations)
    assert small.column_stats[0].total_chunks == 17
    assert large.column_stats[0].total_chunks == 1


@pytest.mark.asyncio
async def test_expiry_uses_injected_clock():
    now = datetime(2024, 6, 1, tzinfo=UTC)
    col = rule_column("f1", "Due", "date|expire:1d")
    values = [(now - timedelta(hours=25)).isoformat(), (now - timedelta(hours=23)).isoformat()]
    report = await validate(rows_for("f1", values), [col], clock=lambda: now)
    assert [(v.row_number, v.error_types) for v in report.violations] == [(1, ("dateExpire",))]


@pytest.mark.asyncio
async def test_session_reuses_compiled_check_until_invalidated():
    session = ValidationSession()
    col = rule_column("f1", "Name", "string|exists:true")
    rows = rows_for("f1", ["a", "a"])

    await validate(rows, [col], session)
    first = session.cached_check("f1")
    await validate(rows, [col], session)
    assert session.cached_check("f1") is first

    session.invalidate("modified")
    await validate(rows, [col], session)
    assert session.cached_check("f1") is not first


@pytest.mark.asyncio
async def test_shared_session_recounts_duplicates_for_new_rows():
    session = ValidationSession()
    col = rule_column("f1", "Name", "string|exists:true")

    first = await validate(rows_for("f1", ["Alice", "Bob", "Alice"]), [col], session)
    assert [(v.row_number, v.conflict_rows) for v in first.violations] == [(1, (3,)), (3, (1,))]

    second = await validate(rows_for("f1", ["Alice", "Bob", "Carol"]), [col], session)
    assert second.violations == []


@pytest.mark.asyncio
async def test_column_done_callback_and_messages():
    seen = []
    col = rule_column("f1", "Name", "string|exists:true")
    report = await validate(
        rows_for("f1", ["a", "a"]),
        [col, rule_column("f2", "Other")],
        messages={"stringExists": "dup"},
        on_column_done=seen.append,
    )
    assert sorted(s.column_name for s in seen) == ["Name", "Other"]
    assert {v.problem_type for v in report.violations} == {"dup"}


@pytest.mark.asyncio
async def test_chunk_size_must_be_positive():
    with pytest.raises(ValueError):
        await validate([], [], chunk_size=0)
