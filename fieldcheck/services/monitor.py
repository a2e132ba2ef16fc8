from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..config.loader import EngineConfig, RetryConfig
from ..models.field_meta import ColumnMetadata
from ..models.validation_result import ValidationReport
from ..sources.base import DataSource, DataSourceError, ObservableTable, Selection, TableHandle, Unsubscribe
from ..table.reader import read_rows
from .cache import ValidationSession
from .defaults import populate_defaults
from .engine import validate

"""Table change monitor.

Keeps one table context alive: subscribes to row and selection changes,
invalidates the session cache on every change, coalesces bursts of edits
with a debounce timer and runs validation passes one at a time.

A trigger arriving while a pass is in flight is dropped, not queued; the
next change (or the debounce timer) starts a fresh pass that sees the latest
state. A selection change during a pass discards that pass's report and
schedules a pass for the newly selected table once it ends.
"""

__all__ = [
    "MonitorState",
    "TableMonitor",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonitorState:
    """Last published outcome. ``error`` and a clean report never coexist."""
    report: ValidationReport | None = None
    error: str | None = None

    @property
    def status(self) -> str:
        if self.error is not None:
            return "error"
        if self.report is None:
            return "idle"
        return self.report.state

    @property
    def message(self) -> str | None:
        if self.error is not None:
            return self.error
        issue = self.report.first_issue if self.report else None
        return issue.message if issue else None


class TableMonitor:
    def __init__(
        self,
        source: DataSource,
        session: ValidationSession | None = None,
        engine: EngineConfig | None = None,
        retry: RetryConfig | None = None,
        *,
        on_report: Callable[[MonitorState], Any] | None = None,
        messages: Mapping[str, str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.source = source
        self.session = session or ValidationSession()
        self.engine = engine or EngineConfig()
        self.retry = retry or RetryConfig()
        self.on_report = on_report
        self.messages = messages
        self.clock = clock

        self.state = MonitorState()
        self.passes_started = 0
        self._table: TableHandle | None = None
        self._selection = Selection()
        self._in_flight = False
        self._switch_pending = False
        self._running = False
        self._timer: asyncio.TimerHandle | None = None
        self._table_unsubs: list[Unsubscribe] = []
        self._selection_unsub: Unsubscribe | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def table(self) -> TableHandle | None:
        return self._table

    # -- lifecycle --------------------------------------------------------

    async def start(self) -> ValidationReport | None:
        """Subscribe to changes, attach to the selected table and run the first pass."""
        if self._running:
            return self.state.report
        self._running = True
        self._selection_unsub = self.source.on_selection_change(self._on_selection_change)
        try:
            await self._attach()
        except DataSourceError as e:
            self._publish(MonitorState(error=f"cannot attach to table: {e}"))
            logger.error(f"attach failed: {e}")
            return None
        return await self.trigger()

    async def stop(self) -> None:
        """Cancel the debounce timer and release every subscription exactly once."""
        self._running = False
        self._cancel_timer()
        self._detach()
        if self._selection_unsub is not None:
            unsub, self._selection_unsub = self._selection_unsub, None
            unsub()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _attach(self) -> None:
        self._selection = await self.source.get_selection()
        if not self._selection.table_id:
            self._table = None
            logger.info("no table selected")
            return
        table = await self.source.get_table(self._selection.table_id)
        self._table = table
        if isinstance(table, ObservableTable):
            self._table_unsubs = [
                table.on_record_add(self._on_record_add),
                table.on_record_modify(self._on_record_change),
                table.on_record_delete(self._on_record_change),
            ]
        logger.debug(f"attached to table {table.id} view={self._selection.view_id}")

    def _detach(self) -> None:
        unsubs, self._table_unsubs = self._table_unsubs, []
        for unsub in unsubs:
            if unsub is not None:
                unsub()
        self._table = None

    # -- event handlers ---------------------------------------------------

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(_log_task_failure)
        return task

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _arm_debounce(self) -> None:
        if not self._running:
            return
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.engine.debounce_seconds, self._on_debounce_elapsed)

    def _on_debounce_elapsed(self) -> None:
        self._timer = None
        if self._running:
            self._spawn(self.trigger())

    def _on_record_change(self) -> None:
        if not self._running:
            return
        self.session.invalidate("records changed")
        self._arm_debounce()

    def _on_record_add(self, record_ids: Sequence[str]) -> None:
        if not self._running:
            return
        self.session.invalidate("records added")
        self._spawn(self._handle_added(list(record_ids)))

    async def _handle_added(self, record_ids: list[str]) -> None:
        table = self._table
        if table is not None and record_ids:
            try:
                columns = await table.get_field_meta_list()
                failures = await populate_defaults(
                    table,
                    columns,
                    record_ids,
                    attempts=self.retry.attempts,
                    base_delay=self.retry.base_delay,
                    max_delay=self.retry.max_delay,
                )
            except DataSourceError as e:
                logger.error(f"default population aborted: {e}")
            else:
                if failures:
                    logger.warning(f"{len(failures)} default values could not be written")
            self.session.invalidate("defaults written")
        self._arm_debounce()

    def _on_selection_change(self) -> None:
        if not self._running:
            return
        self._spawn(self._switch_table())

    async def _switch_table(self) -> None:
        self._cancel_timer()
        self._detach()
        self.session.invalidate("selection changed")
        try:
            await self._attach()
        except DataSourceError as e:
            logger.error(f"attach failed: {e}")
            self._publish(MonitorState(error=f"cannot attach to table: {e}"))
            return
        if self._in_flight:
            # the running pass belongs to the old table; rerun once it ends
            self._switch_pending = True
            return
        await self.trigger()

    # -- passes -----------------------------------------------------------

    def _publish(self, state: MonitorState) -> None:
        self.state = state
        if self.on_report is not None:
            self.on_report(state)

    async def trigger(self) -> ValidationReport | None:
        """Run a pass unless one is in flight.

        Returns None when the trigger was dropped or the pass aborted on a
        data-source failure (published as the error state).
        """
        if self._in_flight:
            logger.debug("validation already in flight; trigger dropped")
            return None
        self._in_flight = True
        table = self._table
        try:
            return await self.run_pass()
        except DataSourceError as e:
            logger.error(f"validation pass aborted: {e}")
            if self._table is table:
                self._publish(MonitorState(error=str(e)))
            return None
        finally:
            self._in_flight = False
            if self._switch_pending:
                self._switch_pending = False
                self._arm_debounce()

    async def run_pass(self) -> ValidationReport:
        """One full validation pass over the attached table.

        Raises:
            DataSourceError: fetching fields, records or the view failed
        """
        self.passes_started += 1
        table = self._table
        if table is None:
            raise DataSourceError("no table attached")
        view_id = self._selection.view_id

        columns: list[ColumnMetadata] = await table.get_field_meta_list()
        rows = await self.session.load_rows(
            lambda: read_rows(table, columns, view_id, self.engine.page_size)
        )
        report = await validate(
            rows,
            columns,
            self.session,
            chunk_size=self.engine.chunk_size,
            messages=self.messages,
            clock=self.clock,
        )
        for issue in report.issues:
            logger.warning(f"column '{issue.column_name}': {issue.message}")
        logger.info(
            f"pass {self.passes_started}: rows={report.total_rows} "
            f"violations={len(report.violations)} issues={len(report.issues)}"
        )
        if self._table is not table:
            logger.debug(f"selection changed during pass {self.passes_started}; report not published")
            return report
        self._publish(MonitorState(report=report))
        return report


def _log_task_failure(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"background task failed: {exc!r}", exc_info=exc)
