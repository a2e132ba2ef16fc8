from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from ..models.field_meta import ColumnMetadata, FieldType
from ..sources.base import DataSourceError, TableHandle
from .compiler import RuleCompileError, rule_default
from .normalizer import normalize_raw
from .retry import RetryExhausted, retry_async
from .rule_config import extract_rule_config

"""Default population for newly added rows.

Rules may declare ``default``; when rows are added, empty cells of such
columns are backfilled. This runs outside validation proper and never aborts
the caller: every write is retried with capped backoff and final failures
are returned (and logged) instead of raised.
"""

__all__ = [
    "DefaultWriteFailure",
    "UnsupportedDefault",
    "cell_value_for_type",
    "populate_defaults",
]

logger = logging.getLogger(__name__)


class UnsupportedDefault(Exception):
    """The column type (or option set) cannot hold the declared default."""


class _WriteRejected(Exception):
    pass


@dataclass(frozen=True)
class DefaultWriteFailure:
    column_name: str
    record_id: str
    reason: str


def cell_value_for_type(column: ColumnMetadata, default: Any) -> Any:
    """Convert a declared default to the cell shape of ``column``.

    Raises:
        UnsupportedDefault: column type not writable, or no matching option
    """
    text = "" if default is None else str(default)
    if column.type == FieldType.TEXT:
        return text
    if column.type == FieldType.NUMBER:
        if isinstance(default, (int, float)) and not isinstance(default, bool):
            return float(default)
        try:
            return float(text)
        except ValueError:
            return 0
    if column.type == FieldType.SINGLE_SELECT:
        for opt in column.options:
            if opt.get("name") == text:
                return {"id": opt.get("id"), "text": opt.get("name")}
        raise UnsupportedDefault(f"no option named {text!r} in column '{column.name}'")
    raise UnsupportedDefault(f"defaults not supported for {column.type.name} column '{column.name}'")


def _defaults_by_column(columns: Iterable[ColumnMetadata]) -> list[tuple[ColumnMetadata, Any]]:
    out: list[tuple[ColumnMetadata, Any]] = []
    for column in columns:
        spec = extract_rule_config(column)
        if spec is None:
            continue
        try:
            default = rule_default(spec.validator)
        except RuleCompileError:
            continue
        if default is None:
            continue
        try:
            out.append((column, cell_value_for_type(column, default)))
        except UnsupportedDefault as e:
            logger.warning(f"default skipped: {e}")
    return out


async def populate_defaults(
    table: TableHandle,
    columns: Sequence[ColumnMetadata],
    record_ids: Iterable[str],
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 5.0,
    sleep: Any = None,
) -> list[DefaultWriteFailure]:
    """Write declared defaults into empty cells of ``record_ids``.

    Returns:
        Writes that still failed after all retries
    """
    targets = _defaults_by_column(columns)
    if not targets:
        return []

    retry_kwargs: dict[str, Any] = {
        "attempts": attempts,
        "base_delay": base_delay,
        "max_delay": max_delay,
    }
    if sleep is not None:
        retry_kwargs["sleep"] = sleep

    failures: list[DefaultWriteFailure] = []
    for record_id in record_ids:
        for column, value in targets:
            try:
                current = await table.get_cell_value(column.id, record_id)
            except DataSourceError as e:
                logger.error(f"cannot read '{column.name}' of {record_id}: {e}")
                failures.append(DefaultWriteFailure(column_name=column.name, record_id=record_id, reason=str(e)))
                continue
            if normalize_raw(current, column.type).strip():
                continue

            async def write(column: ColumnMetadata = column, value: Any = value) -> None:
                ok = await table.set_cell_value(column.id, record_id, value)
                if not ok:
                    raise _WriteRejected("set_cell_value returned false")

            try:
                await retry_async(write, label=f"default write {column.name}/{record_id}", **retry_kwargs)
            except RetryExhausted as e:
                logger.error(f"default for '{column.name}' not written to {record_id}: {e.last_error}")
                failures.append(
                    DefaultWriteFailure(column_name=column.name, record_id=record_id, reason=str(e.last_error))
                )
            else:
                logger.debug(f"default written column='{column.name}' record={record_id}")
    return failures
