from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from ..models.rule import CheckError
from ..models.violation import UNIQUENESS_ERROR, ViolationRecord

"""Violation aggregator.

Turns raw per-cell failures into row-numbered ViolationRecords and groups
records into notification summaries.
"""

__all__ = [
    "RawFailure",
    "ColumnFailures",
    "ProblemSummary",
    "build_value_index",
    "aggregate",
    "format_for_notification",
]


@dataclass(frozen=True)
class RawFailure:
    row_number: int
    record_id: str
    cell_value: str
    errors: tuple[CheckError, ...]


@dataclass
class ColumnFailures:
    """All failures of one column plus the value index built for that column."""
    column_name: str
    value_index: dict[str, list[int]]
    failures: list[RawFailure] = field(default_factory=list)


@dataclass(frozen=True)
class ProblemSummary:
    problem_type: str
    field_name: str
    row_numbers: tuple[int, ...]


def build_value_index(values: Sequence[str]) -> dict[str, list[int]]:
    """Map each non-empty (trimmed) value to the 1-based rows holding it.

    Built once per column before rows are checked. Empty and whitespace-only
    values are left out, so they never conflict with anything.
    """
    index: dict[str, list[int]] = {}
    for i, value in enumerate(values):
        key = value.strip()
        if key:
            index.setdefault(key, []).append(i + 1)
    return index


def _dedupe(items: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for item in items:
        seen.setdefault(item, None)
    return list(seen)


def aggregate(columns: Iterable[ColumnFailures]) -> list[ViolationRecord]:
    """Build one ViolationRecord per failing (row, column).

    Failures reported more than once for the same cell are merged; their
    messages are comma-joined into a single ``problem_type``.
    """
    records: list[ViolationRecord] = []
    for col in columns:
        merged: dict[int, list[RawFailure]] = {}
        for failure in col.failures:
            merged.setdefault(failure.row_number, []).append(failure)

        for row_number, failures in merged.items():
            first = failures[0]
            errors = [e for f in failures for e in f.errors]
            types = tuple(_dedupe(e.type for e in errors))
            problem = ", ".join(_dedupe(e.message for e in errors)) or "unknown"

            conflict_rows = None
            if UNIQUENESS_ERROR in types:
                key = first.cell_value.strip()
                if key:
                    others = [r for r in col.value_index.get(key, []) if r != row_number]
                    conflict_rows = tuple(others)

            records.append(
                ViolationRecord.create(
                    record_id=first.record_id,
                    row_number=row_number,
                    column_name=col.column_name,
                    cell_value=first.cell_value,
                    problem_type=problem,
                    error_types=types,
                    conflict_rows=conflict_rows,
                )
            )
    return records


def format_for_notification(records: Iterable[ViolationRecord]) -> list[ProblemSummary]:
    """Group records by problem type, then by column.

    One summary per (problem type, column) with the sorted, de-duplicated row
    numbers; for uniqueness problems the conflict rows are folded in too.
    Groups keep first-seen order.
    """
    grouped: dict[str, dict[str, set[int]]] = {}
    for rec in records:
        rows = grouped.setdefault(rec.problem_type, {}).setdefault(rec.column_name, set())
        rows.add(rec.row_number)
        if rec.is_uniqueness and rec.conflict_rows:
            rows.update(rec.conflict_rows)

    return [
        ProblemSummary(problem_type=problem, field_name=name, row_numbers=tuple(sorted(rows)))
        for problem, by_field in grouped.items()
        for name, rows in by_field.items()
    ]
