from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..models.validation_result import STATUS_VALIDATED, ColumnStat

"""Column progress display with tqdm (TTY only).

One bar per pass, advanced once per finished column. In non-TTY
environments (CI, piped output) no bar is created so logs stay free of
control sequences.
"""

__all__ = [
    "ColumnProgress",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ColumnProgress:
    """Progress bar over the columns of a validation pass.

    Pass ``column_done`` as the engine's ``on_column_done`` callback.
    """

    def __init__(self, total_columns: int, *, description: str = "Validating columns") -> None:
        self.total_columns = total_columns
        self.description = description
        self.done = 0
        self.violations = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_columns,
                desc=description,
                unit="col",
                leave=True,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def column_done(self, stat: ColumnStat) -> None:
        self.done += 1
        if stat.status == STATUS_VALIDATED:
            self.violations += stat.violations
        if self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_postfix(column=stat.column_name, violations=self.violations)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ColumnProgress:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
