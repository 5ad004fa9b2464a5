from __future__ import annotations

from ..models.processing_result import ImportSummary

"""SUMMARY line rendering.

Format::

    SUMMARY type=<import type> status=<state> rows=<n> warnings=<w> batches=<b> elapsed_sec=<s>

The ``SUMMARY`` label itself is added by the logging formatter, so the returned
string starts at ``type=``.
"""


def _format_seconds(seconds: float) -> str:
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        # avoid scientific notation for very small numbers
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.3f}".rstrip("0").rstrip(".")


def render_summary_line(summary: ImportSummary) -> str:
    """Render the key=value part of the SUMMARY line.

    >>> from staffplan_import.models import ImportState, ImportSummary, ImportType
    >>> s = ImportSummary(ImportType.STAFFING, "ok", ["w"], ImportState.COMMITTED,
    ...                   inserted_rows={"allocations": 10}, elapsed_seconds=2.0, total_batches=1)
    >>> render_summary_line(s)
    'type=staffing status=committed rows=10 warnings=1 batches=1 elapsed_sec=2'
    """
    return (
        f"type={summary.import_type.value} "
        f"status={summary.state.value} "
        f"rows={summary.total_inserted_rows} "
        f"warnings={len(summary.warnings)} "
        f"batches={summary.total_batches} "
        f"elapsed_sec={_format_seconds(summary.elapsed_seconds)}"
    )
