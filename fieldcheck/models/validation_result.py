from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from datetime import datetime

from .violation import ConfigIssue, ViolationRecord

"""Validation pass result models.

This module defines the models aggregating one validation pass: per-column
statistics, the merged violation list and the column-level config issues.
"""

__all__ = [
    "ColumnStat",
    "ValidationReport",
    "ChunkStatsAccumulator",
]

STATUS_VALIDATED = "validated"
STATUS_NO_RULE = "no_rule"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class ColumnStat:
    """Per-column statistics for one pass."""
    column_name: str
    status: str  # validated / no_rule / failed
    checked_rows: int = 0
    violations: int = 0
    elapsed_seconds: float = 0.0
    total_chunks: int = 0
    avg_chunk_seconds: float = 0.0
    p95_chunk_seconds: float = 0.0


@dataclass(frozen=True)
class ValidationReport:
    """Merged outcome of one validation pass.

    The report is only built after every column finished, so a consumer never
    sees a partial result.
    """
    violations: list[ViolationRecord]
    issues: list[ConfigIssue]
    columns_total: int
    columns_validated: int
    columns_skipped: int
    total_rows: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    throughput_rows_per_sec: float
    column_stats: list[ColumnStat] = field(default_factory=list)

    @property
    def state(self) -> str:
        """Displayed state: ``error``, ``violations`` or ``clean`` (mutually exclusive)."""
        if self.issues:
            return "error"
        if self.violations:
            return "violations"
        return "clean"

    @property
    def first_issue(self) -> ConfigIssue | None:
        # only one error banner is shown at a time
        return self.issues[0] if self.issues else None


class ChunkStatsAccumulator:
    """Accumulates chunk timing for a ColumnStat."""

    def __init__(self) -> None:
        self.chunk_times: list[float] = []

    def add_chunk_time(self, elapsed_seconds: float) -> None:
        self.chunk_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Calculate chunk statistics.

        Returns:
            tuple: (total_chunks, avg_chunk_seconds, p95_chunk_seconds)
        """
        if not self.chunk_times:
            return (0, 0.0, 0.0)

        total = len(self.chunk_times)
        avg = statistics.mean(self.chunk_times)
        if total == 1:
            p95 = self.chunk_times[0]
        else:
            p95 = statistics.quantiles(self.chunk_times, n=20, method="inclusive")[18]
        return (total, avg, p95)
