from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ViolationRecord model.

One record per failing cell. When several predicates fail on the same cell
their messages are joined into ``problem_type`` and the individual codes are
kept in ``error_types``. ``conflict_rows`` is only set for uniqueness
violations and lists the 1-based row numbers of the *other* rows sharing the
value.
"""

__all__ = [
    "ViolationRecord",
    "ConfigIssue",
]

UNIQUENESS_ERROR = "stringExists"


@dataclass(frozen=True)
class ViolationRecord:
    """Structured violation record.

    Attributes:
        record_id: Opaque record id from the data source
        row_number: 1-based position in the visible row ordering
        column_name: Name of the failing column
        cell_value: Normalized text of the cell
        problem_type: Comma-joined failure messages
        error_types: Problem-type codes in the order they were reported
        conflict_rows: Other rows holding the same value (uniqueness only)
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
    """
    record_id: str
    row_number: int
    column_name: str
    cell_value: str
    problem_type: str
    error_types: tuple[str, ...]
    timestamp: str
    conflict_rows: tuple[int, ...] | None = None

    @staticmethod
    def create(
        record_id: str,
        row_number: int,
        column_name: str,
        cell_value: str,
        problem_type: str,
        error_types: tuple[str, ...],
        conflict_rows: tuple[int, ...] | None = None,
    ) -> ViolationRecord:
        """Create a new ViolationRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ViolationRecord(
            record_id=record_id,
            row_number=row_number,
            column_name=column_name,
            cell_value=cell_value,
            problem_type=problem_type,
            error_types=error_types,
            timestamp=ts,
            conflict_rows=conflict_rows,
        )

    @property
    def is_uniqueness(self) -> bool:
        return UNIQUENESS_ERROR in self.error_types

    def to_json_line(self) -> str:
        """Serialize to a single JSON line."""
        data = asdict(self)
        data["error_types"] = list(self.error_types)
        data["conflict_rows"] = list(self.conflict_rows) if self.conflict_rows is not None else None
        return json.dumps(data, ensure_ascii=False)


@dataclass(frozen=True)
class ConfigIssue:
    """Column-scoped configuration problem (the column is skipped for the pass).

    kind is ``invalid_rule_json`` when the embedded JSON could not be parsed,
    ``invalid_validator_rule`` when the rule string did not compile.
    """
    column_name: str
    kind: str
    message: str
