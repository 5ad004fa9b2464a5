from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from ...db.batch_insert import BatchMetrics, InsertResult, bulk_insert
from ...excel.dates import format_for_storage, parse_date
from ...models.import_models import ImportSettings, SheetLayout
from ..lookups import EntityIndex, build_lookup

"""Shared plumbing for the per-domain importers.

Every importer module exposes ``LAYOUTS`` and ``import_rows(ctx, payload)``.
Row-level problems are reported through ``ctx.warn`` and never raise; only
database failures (BatchInsertError, driver errors on lookups) propagate to the
orchestrator, which owns the transaction.
"""

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]
Payload = Mapping[str, Sequence[Row]]

_TRUE_VALUES = {"si", "sì", "s", "true", "vero", "yes", "y", "x", "1"}
_FALSE_VALUES = {"no", "n", "false", "falso", "0"}
_LIST_SPLIT_RE = re.compile(r"[;,]")


@dataclass
class ImportContext:
    """Invocation-scoped state handed to an importer.

    The cursor is shared by every helper for the whole run; nothing reached from
    here may commit or roll back.
    """
    cursor: Any
    settings: ImportSettings = field(default_factory=ImportSettings)
    warnings: list[str] = field(default_factory=list)
    metrics_callback: Callable[[BatchMetrics], None] | None = None
    inserted_rows: dict[str, int] = field(default_factory=dict)

    def warn(self, message: str) -> None:
        logger.debug("warning: %s", message)
        self.warnings.append(message)

    def lookup(self, query: str) -> dict[str, str]:
        return build_lookup(self.cursor, query)

    def index(self, query: str) -> EntityIndex:
        return EntityIndex(self.lookup(query))

    def insert(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        conflict_clause: str,
    ) -> InsertResult:
        result = bulk_insert(
            self.cursor,
            table,
            columns,
            rows,
            conflict_clause=conflict_clause,
            parameter_ceiling=self.settings.parameter_ceiling,
            metrics_callback=self.metrics_callback,
        )
        if result.inserted_rows:
            self.inserted_rows[table] = self.inserted_rows.get(table, 0) + result.inserted_rows
            logger.debug("table=%s rows=%d batches=%d", table, result.inserted_rows, result.batches)
        return result


def sheet_rows(payload: Payload, layout: SheetLayout) -> Iterator[tuple[str, Row]]:
    """Yield ``(label, row)`` pairs; the label names the sheet and spreadsheet line.

    Data row ``i`` (0-based) lives on spreadsheet line ``i + 2`` (line 1 is the header).
    """
    for i, row in enumerate(payload.get(layout.payload_key) or ()):
        yield f"{layout.sheet_name} riga {i + 2}", row


def missing_required(row: Row, layout: SheetLayout) -> list[str]:
    return [h for h in layout.headers if h in layout.required and cell_text(row, h) is None]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def cell_text(row: Row, header: str) -> str | None:
    value = row.get(header)
    if _is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def parse_number(value: Any) -> float | None:
    """Numbers or numeric strings ("1.234,5", "50%", "12.5"); anything else -> None."""
    if _is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().rstrip("%").strip().replace(" ", "")
        if "," in text:
            # Italian notation: dot thousands separator, comma decimal separator
            text = text.replace(".", "").replace(",", ".")
        try:
            number = float(text)
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return number


def cell_number(row: Row, header: str, default: float | None = None) -> float | None:
    number = parse_number(row.get(header))
    return default if number is None else number


def cell_int(row: Row, header: str, default: int | None = None) -> int | None:
    number = parse_number(row.get(header))
    return default if number is None else int(round(number))


def cell_bool(row: Row, header: str, default: bool = False) -> bool:
    value = row.get(header)
    if isinstance(value, bool):
        return value
    text = cell_text(row, header)
    if text is None:
        return default
    lowered = text.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


def cell_date(row: Row, header: str) -> date | None:
    return parse_date(row.get(header))


def cell_storage_date(row: Row, header: str) -> str | None:
    return format_for_storage(row.get(header))


def cell_list(row: Row, header: str) -> list[str]:
    text = cell_text(row, header)
    if text is None:
        return []
    return [part.strip() for part in _LIST_SPLIT_RE.split(text) if part.strip()]


def uuid_array(ids: Sequence[str]) -> str:
    """Array literal for a ``uuid[]`` column.

    Sent as an untyped literal so PostgreSQL coerces it to the target column type;
    a Python list would be adapted as ``text[]``, which has no assignment cast.
    """
    return "{" + ",".join(ids) + "}"
