"""Domain models for the column rule validation engine."""

from .cell_value import CellValue, classify
from .field_meta import ColumnMetadata, FieldType
from .row_data import Record, RowData
from .rule import CheckError, RuleSpecification
from .validation_result import ChunkStatsAccumulator, ColumnStat, ValidationReport
from .violation import ConfigIssue, ViolationRecord

__all__ = [
    # Table models
    "CellValue",
    "classify",
    "ColumnMetadata",
    "FieldType",
    "Record",
    "RowData",
    # Rule models
    "CheckError",
    "RuleSpecification",
    # Results
    "ChunkStatsAccumulator",
    "ColumnStat",
    "ConfigIssue",
    "ValidationReport",
    "ViolationRecord",
]
