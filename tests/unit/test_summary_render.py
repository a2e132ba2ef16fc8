from __future__ import annotations

from datetime import UTC, datetime

from fieldcheck.models.validation_result import ValidationReport
from fieldcheck.models.violation import ConfigIssue, ViolationRecord
from fieldcheck.services.summary import format_number, render_summary_line

T0 = datetime(2024, 1, 1, tzinfo=UTC)


def _report(**overrides) -> ValidationReport:
    data = dict(
        violations=[],
        issues=[],
        columns_total=4,
        columns_validated=3,
        columns_skipped=1,
        total_rows=1200,
        start_time=T0,
        end_time=T0,
        elapsed_seconds=1.5,
        throughput_rows_per_sec=2400.0,
    )
    data.update(overrides)
    return ValidationReport(**data)


def test_render_summary_line_basic():
    line = render_summary_line(_report())
    assert line == "SUMMARY columns=3/4 skipped=1 rows=1200 violations=0 issues=0 elapsed_sec=1.5 throughput_rps=2400"


def test_render_counts_violations_and_issues():
    v = ViolationRecord.create("r1", 1, "Name", "a", "dup", ("stringExists",), (2,))
    issue = ConfigIssue("Broken", "invalid_rule_json", "bad")
    line = render_summary_line(_report(violations=[v, v], issues=[issue]))
    assert "violations=2 issues=1" in line


def test_format_number():
    assert format_number(0) == "0"
    assert format_number(2.0) == "2"
    assert format_number(0.0012) == "0.0012"
    assert format_number(0.0000004) == "0"
    assert format_number(1.23456) == "1.235"
