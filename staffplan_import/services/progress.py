from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..db.batch_insert import BatchMetrics

"""Progress display with tqdm (TTY only).

A single row counter fed by the bulk-insert metrics callback: every executed
batch advances the bar by its row count and shows the table being written. In
non-TTY environments (CI, piped output) no bar is created, so the log output
stays free of control sequences.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    """True if stdout is a TTY and progress should be displayed."""
    return sys.stdout.isatty()


class ProgressTracker:
    """Row progress for one import run."""

    def __init__(self, *, description: str = "Importing rows") -> None:
        self.description = description
        self.rows = 0
        self.batches = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=None,
                desc=description,
                unit="row",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def on_batch(self, metrics: BatchMetrics) -> None:
        """Metrics callback: count one executed batch."""
        self.rows += metrics.batch_size
        self.batches += 1
        if self.enabled and self.pbar is not None:
            self.pbar.update(metrics.batch_size)
            self.pbar.set_postfix(table=metrics.table, batches=self.batches)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
