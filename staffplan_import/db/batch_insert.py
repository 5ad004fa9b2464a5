from __future__ import annotations

import math
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd
from psycopg2.extras import execute_values

"""Batched multi-row INSERT on top of psycopg2.extras.execute_values.

Rows are split so that no single statement binds more than ``parameter_ceiling``
values (PostgreSQL's wire protocol caps a statement at 65535 parameters; 60000
leaves headroom). Each batch is issued as exactly one statement followed by the
caller-supplied conflict clause, which is the only knob importers have for
idempotent re-import (DO NOTHING vs DO UPDATE).

Batches run sequentially on the caller's cursor. This module never commits or
rolls back; the transaction boundary belongs to the orchestrator.
"""

__all__ = [
    "PARAMETER_CEILING",
    "DEFAULT_CONFLICT_CLAUSE",
    "BatchInsertError",
    "BatchMetrics",
    "InsertResult",
    "rows_per_batch",
    "plan_batches",
    "bulk_insert",
]

PARAMETER_CEILING = 60000
DEFAULT_CONFLICT_CLAUSE = "ON CONFLICT DO NOTHING"


class BatchInsertError(Exception):
    pass


@dataclass(frozen=True)
class BatchMetrics:
    """Timing data for a single batch statement."""
    table: str
    batch_size: int  # Number of rows in this batch
    elapsed_seconds: float  # Time spent on execute_values call
    start_time: float  # Start timestamp (time.time())
    end_time: float  # End timestamp (time.time())


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int  # rows handed to the database, conflicts included
    batches: int = 0


def rows_per_batch(column_count: int, parameter_ceiling: int = PARAMETER_CEILING) -> int:
    if column_count <= 0:
        raise BatchInsertError("at least one column is required")
    return max(1, parameter_ceiling // column_count)


def plan_batches(
    rows: Sequence[Sequence[Any]],
    column_count: int,
    parameter_ceiling: int = PARAMETER_CEILING,
) -> list[list[Sequence[Any]]]:
    """Split ``rows`` into consecutive batches that respect the parameter ceiling.

    Order is preserved within and across batches; the last batch may be shorter.
    """
    size = rows_per_batch(column_count, parameter_ceiling)
    return [list(rows[i:i + size]) for i in range(0, len(rows), size)]


def _coerce_value(value: Any) -> Any:
    if value is None or isinstance(value, (list, tuple, dict, str, bytes)):
        return value
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    try:
        if pd.isna(value):  # NaT, pd.NA
            return None
    except (TypeError, ValueError):
        pass
    return value


def _coerce_row(row: Sequence[Any], column_count: int) -> tuple[Any, ...]:
    if len(row) != column_count:
        raise BatchInsertError(
            f"row has {len(row)} values but {column_count} columns were declared: {row!r}"
        )
    return tuple(_coerce_value(v) for v in row)


def bulk_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Sequence[Sequence[Any]],
    conflict_clause: str = DEFAULT_CONFLICT_CLAUSE,
    parameter_ceiling: int = PARAMETER_CEILING,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> InsertResult:
    """Insert ``rows`` into ``table`` in parameter-bounded batches.

    Parameters
    ----------
    cursor: psycopg2 cursor (inside the orchestrator's transaction)
    table: target table name (fixed per importer, never user input)
    columns: insert column names, in row-value order
    rows: row tuples; NaN/NaT/pd.NA are bound as NULL
    conflict_clause: appended verbatim, e.g.
        ``ON CONFLICT (assignment_id, allocation_date) DO UPDATE SET percentage = EXCLUDED.percentage``
    parameter_ceiling: max bound values per statement
    metrics_callback: called once per executed batch with BatchMetrics.
        Not invoked when ``rows`` is empty.

    Raises
    ------
    BatchInsertError: malformed rows, or any database error.
        Nothing is rolled back here.
    """
    if not rows:
        return InsertResult(inserted_rows=0, batches=0)

    column_count = len(columns)
    batches = plan_batches(rows, column_count, parameter_ceiling)

    cols_sql = ",".join(f'"{c}"' for c in columns)
    sql = f"INSERT INTO {table} ({cols_sql}) VALUES %s"
    if conflict_clause:
        sql += f" {conflict_clause}"

    inserted = 0
    for batch in batches:
        values = [_coerce_row(r, column_count) for r in batch]
        start_time = time.time()
        try:
            # page_size == len(batch): one statement per batch
            execute_values(cursor, sql, values, page_size=len(values))
        except Exception as e:
            raise BatchInsertError(f"insert into {table} failed: {e}") from e
        finally:
            end_time = time.time()
            if metrics_callback is not None:
                metrics_callback(
                    BatchMetrics(
                        table=table,
                        batch_size=len(values),
                        elapsed_seconds=end_time - start_time,
                        start_time=start_time,
                        end_time=end_time,
                    )
                )
        inserted += len(values)

    return InsertResult(inserted_rows=inserted, batches=len(batches))
