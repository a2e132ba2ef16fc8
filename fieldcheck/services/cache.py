from __future__ import annotations

import asyncio
import hashlib
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from ..models.row_data import RowData
from .compiler import CompiledCheck

"""Session cache for normalized rows and compiled checks.

One ValidationSession per active table context replaces module-level caches.
Writers are the initializer and the change handlers (``invalidate``);
readers are validation passes.

Invalidation swaps the whole snapshot in one synchronous step, so a reader on
the event loop sees either the old snapshot or an empty one, never a mix. A
load that was started before an invalidation is returned to its caller but
not stored.
"""

__all__ = [
    "ValidationSession",
]

logger = logging.getLogger(__name__)


@dataclass
class _Snapshot:
    generation: int
    rows: list[RowData] | None = None
    checks: dict[str, tuple[str, str | None, CompiledCheck]] | None = None


class ValidationSession:
    def __init__(self) -> None:
        self._snapshot = _Snapshot(generation=0, checks={})
        self._load_lock = asyncio.Lock()

    @property
    def generation(self) -> int:
        return self._snapshot.generation

    @property
    def rows(self) -> list[RowData] | None:
        return self._snapshot.rows

    def invalidate(self, reason: str = "") -> None:
        """Drop cached rows and compiled checks."""
        self._snapshot = _Snapshot(generation=self._snapshot.generation + 1, checks={})
        logger.debug(f"cache invalidated gen={self._snapshot.generation} reason={reason or '-'}")

    async def load_rows(self, loader: Callable[[], Awaitable[list[RowData]]]) -> list[RowData]:
        """Return cached rows, or run ``loader`` and cache its result."""
        async with self._load_lock:
            snap = self._snapshot
            if snap.rows is not None:
                return snap.rows
            rows = await loader()
            if self._snapshot is snap:
                snap.rows = rows
            else:
                logger.debug("rows loaded across an invalidation; not cached")
            return rows

    def compiled(
        self,
        column_id: str,
        rule: str,
        build: Callable[[], CompiledCheck],
        values: Sequence[Any] | None = None,
    ) -> CompiledCheck:
        """Return the cached check for ``column_id`` or compile and cache it.

        Checks close over the column values they were built from, so an entry
        is reused only while the rule text and a fingerprint of ``values`` are
        unchanged and no invalidation happened since it was built.
        """
        snap = self._snapshot
        checks = snap.checks if snap.checks is not None else {}
        digest = _fingerprint(values)
        cached = checks.get(column_id)
        if cached is not None and cached[0] == rule and cached[1] == digest:
            return cached[2]
        check = build()
        if self._snapshot is snap:
            checks[column_id] = (rule, digest, check)
            snap.checks = checks
        return check

    def cached_check(self, column_id: str) -> CompiledCheck | None:
        entry = (self._snapshot.checks or {}).get(column_id)
        return entry[2] if entry else None


def _fingerprint(values: Sequence[Any] | None) -> str | None:
    if values is None:
        return None
    return hashlib.sha1(repr(list(values)).encode("utf-8")).hexdigest()
