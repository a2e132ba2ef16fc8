from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from ..models.field_meta import ColumnMetadata
from ..models.row_data import RowData
from ..models.validation_result import (
    STATUS_FAILED,
    STATUS_NO_RULE,
    STATUS_VALIDATED,
    ChunkStatsAccumulator,
    ColumnStat,
    ValidationReport,
)
from ..models.violation import ConfigIssue
from .aggregator import ColumnFailures, RawFailure, aggregate, build_value_index
from .cache import ValidationSession
from .compiler import RuleCompileError, compile_rule
from .rule_config import RuleConfigError, extract_rule_config

"""Batch validation engine.

For every column carrying a rule: collect the normalized column values,
build the value -> rows index, compile (or reuse) the column check, run it
over every row in fixed-size chunks, then aggregate failures.

Columns run concurrently as separate tasks sharing no mutable state; the
report is built only after all of them finished. Between chunks the column
task yields to the event loop so change handlers stay responsive. Chunking
never changes the outcome.
"""

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "ISSUE_INVALID_JSON",
    "ISSUE_INVALID_RULE",
    "validate",
]

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1000
ISSUE_INVALID_JSON = "invalid_rule_json"
ISSUE_INVALID_RULE = "invalid_validator_rule"


@dataclass
class _ColumnOutcome:
    stat: ColumnStat
    failures: ColumnFailures | None = None
    issues: list[ConfigIssue] = field(default_factory=list)


async def _validate_column(
    column: ColumnMetadata,
    rows: Sequence[RowData],
    session: ValidationSession,
    chunk_size: int,
    messages: Mapping[str, str] | None,
    clock: Callable[[], datetime] | None,
) -> _ColumnOutcome:
    issues: list[ConfigIssue] = []

    def on_rule_error(err: RuleConfigError) -> None:
        issues.append(ConfigIssue(column_name=column.name, kind=ISSUE_INVALID_JSON, message=str(err)))

    spec = extract_rule_config(column, on_error=on_rule_error)
    if spec is None:
        status = STATUS_FAILED if issues else STATUS_NO_RULE
        return _ColumnOutcome(stat=ColumnStat(column_name=column.name, status=status), issues=issues)

    values = [row.value(column.id) for row in rows]
    try:
        check = session.compiled(
            column.id,
            spec.validator,
            lambda: compile_rule(
                spec.validator, values, field=column.name, messages=messages, clock=clock
            ),
            values,
        )
    except RuleCompileError as e:
        msg = f"invalid validator rule for column '{column.name}': {e}"
        logger.warning(msg)
        issues.append(ConfigIssue(column_name=column.name, kind=ISSUE_INVALID_RULE, message=msg))
        return _ColumnOutcome(stat=ColumnStat(column_name=column.name, status=STATUS_FAILED), issues=issues)

    logger.debug(f"column '{column.name}' rule={spec.validator} rows={len(rows)}")
    result = ColumnFailures(column_name=column.name, value_index=build_value_index(values))
    chunks = ChunkStatsAccumulator()
    started = time.perf_counter()

    for start in range(0, len(rows), chunk_size):
        chunk_started = time.perf_counter()
        for offset, row in enumerate(rows[start:start + chunk_size]):
            row_number = start + offset + 1
            value = values[row_number - 1]
            outcome = check(value)
            if outcome is not True:
                result.failures.append(
                    RawFailure(
                        row_number=row_number,
                        record_id=row.record_id,
                        cell_value=value,
                        errors=tuple(outcome),
                    )
                )
        chunks.add_chunk_time(time.perf_counter() - chunk_started)
        await asyncio.sleep(0)

    total_chunks, avg_chunk, p95_chunk = chunks.get_stats()
    stat = ColumnStat(
        column_name=column.name,
        status=STATUS_VALIDATED,
        checked_rows=len(rows),
        violations=len({f.row_number for f in result.failures}),
        elapsed_seconds=time.perf_counter() - started,
        total_chunks=total_chunks,
        avg_chunk_seconds=avg_chunk,
        p95_chunk_seconds=p95_chunk,
    )
    logger.debug(f"column '{column.name}' done violations={stat.violations}")
    return _ColumnOutcome(stat=stat, failures=result)


async def validate(
    rows: Sequence[RowData],
    columns: Sequence[ColumnMetadata],
    session: ValidationSession | None = None,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    messages: Mapping[str, str] | None = None,
    clock: Callable[[], datetime] | None = None,
    on_column_done: Callable[[ColumnStat], None] | None = None,
) -> ValidationReport:
    """Validate ``rows`` against the rules embedded in ``columns``.

    Args:
        rows: normalized rows in visible order (position i is row number i + 1)
        columns: column metadata; columns without a rule are skipped silently
        session: cache holding compiled checks; a throwaway one when omitted
        chunk_size: rows checked per event-loop turn
        messages: message overrides keyed by problem-type code
        clock: "now" provider for expiry rules
        on_column_done: called with each ColumnStat as soon as its column ends

    Returns:
        ValidationReport with merged violations and column config issues
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    session = session or ValidationSession()
    start_time = datetime.now(UTC)

    async def run(column: ColumnMetadata) -> _ColumnOutcome:
        outcome = await _validate_column(column, rows, session, chunk_size, messages, clock)
        if on_column_done is not None:
            on_column_done(outcome.stat)
        return outcome

    outcomes = await asyncio.gather(*(run(c) for c in columns))

    violations = aggregate(o.failures for o in outcomes if o.failures is not None)
    issues = [i for o in outcomes for i in o.issues]
    stats = [o.stat for o in outcomes]
    validated = sum(1 for s in stats if s.status == STATUS_VALIDATED)

    end_time = datetime.now(UTC)
    elapsed = (end_time - start_time).total_seconds()
    checked_cells = sum(s.checked_rows for s in stats)
    throughput = checked_cells / elapsed if elapsed > 0 else 0.0

    return ValidationReport(
        violations=violations,
        issues=issues,
        columns_total=len(columns),
        columns_validated=validated,
        columns_skipped=len(columns) - validated,
        total_rows=len(rows),
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=elapsed,
        throughput_rows_per_sec=throughput,
        column_stats=stats,
    )
