from __future__ import annotations

from ..models.validation_result import ValidationReport

"""Summary line rendering for a validation pass.

Format:
SUMMARY columns={validated}/{total} skipped={skipped} rows={rows}
violations={violations} issues={issues} elapsed_sec={elapsed} throughput_rps={throughput}
"""

__all__ = [
    "format_number",
    "render_summary_line",
]


def format_number(value: float) -> str:
    """Integers without a fraction, tiny values without scientific notation."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if abs(value) < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return str(round(value, 3))


def render_summary_line(report: ValidationReport) -> str:
    """Render the SUMMARY line for ``report``.

    Examples:
        >>> from datetime import datetime, timezone
        >>> t = datetime(2024, 1, 1, tzinfo=timezone.utc)
        >>> report = ValidationReport(
        ...     violations=[], issues=[], columns_total=3, columns_validated=2,
        ...     columns_skipped=1, total_rows=1000, start_time=t, end_time=t,
        ...     elapsed_seconds=2.0, throughput_rows_per_sec=1000.0,
        ... )
        >>> render_summary_line(report)
        'SUMMARY columns=2/3 skipped=1 rows=1000 violations=0 issues=0 elapsed_sec=2 throughput_rps=1000'
    """
    return (
        f"SUMMARY columns={report.columns_validated}/{report.columns_total} "
        f"skipped={report.columns_skipped} "
        f"rows={report.total_rows} "
        f"violations={len(report.violations)} "
        f"issues={len(report.issues)} "
        f"elapsed_sec={format_number(report.elapsed_seconds)} "
        f"throughput_rps={format_number(report.throughput_rows_per_sec)}"
    )
