from __future__ import annotations

import time
from unittest.mock import MagicMock, patch

from staffplan_import.db.batch_insert import BatchMetrics
from staffplan_import.services.progress import ProgressTracker, is_tty_enabled


def _metrics(table: str, size: int) -> BatchMetrics:
    now = time.time()
    return BatchMetrics(table=table, batch_size=size, elapsed_seconds=0.01, start_time=now, end_time=now)


def test_non_tty_creates_no_bar():
    with patch("staffplan_import.services.progress.is_tty_enabled", return_value=False):
        tracker = ProgressTracker()
    assert tracker.pbar is None
    tracker.on_batch(_metrics("roles", 5))
    tracker.on_batch(_metrics("resources", 3))
    assert tracker.rows == 8
    assert tracker.batches == 2
    tracker.close()


def test_tty_updates_bar():
    bar = MagicMock()
    with patch("staffplan_import.services.progress.is_tty_enabled", return_value=True), \
            patch("staffplan_import.services.progress.tqdm", return_value=bar) as factory:
        with ProgressTracker(description="staffing") as tracker:
            tracker.on_batch(_metrics("allocations", 20000))
    assert factory.call_args.kwargs["desc"] == "staffing"
    assert factory.call_args.kwargs["unit"] == "row"
    bar.update.assert_called_once_with(20000)
    bar.set_postfix.assert_called_once_with(table="allocations", batches=1)
    bar.close.assert_called_once()
    assert tracker.pbar is None


def test_is_tty_enabled_follows_stdout():
    with patch("sys.stdout") as stdout:
        stdout.isatty.return_value = False
        assert is_tty_enabled() is False
        stdout.isatty.return_value = True
        assert is_tty_enabled() is True
