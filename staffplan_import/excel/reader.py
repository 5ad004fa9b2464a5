from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from ..models.import_models import SheetLayout

"""Workbook reader: turns an .xlsx file into the ``{payload key: [row, ...]}`` payload.

The first row of each sheet is the header. Data rows are dicts keyed by header
label; empty cells are left out so that importers see them as absent.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "SheetHeaderError",
    "MissingColumnsError",
    "SheetData",
    "read_excel_file",
    "normalize_sheet",
    "read_workbook",
]


class SheetHeaderError(Exception):
    """Raised when the header row is missing or empty."""


class MissingColumnsError(Exception):
    """Raised when required columns are missing in the sheet header."""


@dataclass
class SheetData:
    sheet_name: str
    columns: list[str]
    rows: list[dict[str, Any]]


def read_excel_file(
    path: Path, target_sheets: Iterable[str] | None = None, keep_na_strings: list[str] | None = None
) -> dict[str, pd.DataFrame]:
    """Read an Excel file returning raw DataFrames keyed by sheet name.

    Parameters
    ----------
    path: workbook path
    target_sheets: restrict to these sheet names (None reads every sheet)
    keep_na_strings: strings that must stay literal instead of becoming NaN (e.g. ['NA'])
    """
    import pandas._libs.parsers as parsers

    if keep_na_strings:
        na_values = list(parsers.STR_NA_VALUES - set(keep_na_strings))
        keep_default_na = False
    else:
        na_values = None
        keep_default_na = True

    targets = set(target_sheets) if target_sheets is not None else None
    dfs: dict[str, pd.DataFrame] = {}
    with pd.ExcelFile(path, engine="openpyxl") as xls:
        for name in xls.sheet_names:
            if targets is not None and str(name) not in targets:
                continue
            df = xls.parse(name, header=None, keep_default_na=keep_default_na, na_values=na_values)
            dfs[str(name)] = df
    return dfs


def _header_label(value: Any) -> str | None:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    label = str(value).strip()
    return label or None


def _cell_value(value: Any) -> Any:
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, np.generic):
        return value.item()
    return value


def normalize_sheet(
    df: pd.DataFrame,
    sheet_name: str,
    required_columns: Iterable[str] | None = None,
) -> SheetData:
    """Normalize a raw DataFrame using its first row as header.

    Blank header cells drop their column. Fully empty rows are skipped.

    Raises:
        SheetHeaderError: the sheet has no non-blank header cell
        MissingColumnsError: a required column is absent from the header
    """
    if df.shape[0] < 1:
        raise SheetHeaderError(f"sheet '{sheet_name}' has no header row")
    labels = [_header_label(c) for c in df.iloc[0].tolist()]
    if not any(labels):
        raise SheetHeaderError(f"sheet '{sheet_name}' has an empty header row")

    if required_columns is not None:
        missing = set(required_columns) - {label for label in labels if label}
        if missing:
            raise MissingColumnsError(f"sheet '{sheet_name}' missing columns: {sorted(missing)}")

    rows: list[dict[str, Any]] = []
    for _, raw in df.iloc[1:].iterrows():
        if raw.isna().all():
            continue
        row: dict[str, Any] = {}
        for label, value in zip(labels, raw.tolist(), strict=False):
            if label is None or pd.isna(value):
                continue
            if isinstance(value, str) and not value.strip():
                continue
            row[label] = _cell_value(value)
        if row:
            rows.append(row)
    return SheetData(sheet_name=sheet_name, columns=[label for label in labels if label], rows=rows)


def read_workbook(
    path: Path,
    layouts: Iterable[SheetLayout],
    keep_na_strings: list[str] | None = None,
) -> dict[str, list[dict[str, Any]]]:
    """Read the sheets named by ``layouts`` into an import payload.

    A sheet missing from the workbook yields an empty list for its payload key.
    """
    layouts = list(layouts)
    raw = read_excel_file(path, {layout.sheet_name for layout in layouts}, keep_na_strings)
    payload: dict[str, list[dict[str, Any]]] = {}
    for layout in layouts:
        df = raw.get(layout.sheet_name)
        if df is None:
            logger.debug("sheet=%s not found in %s", layout.sheet_name, path)
            payload[layout.payload_key] = []
            continue
        sheet = normalize_sheet(df, layout.sheet_name, layout.required)
        logger.debug("sheet=%s rows=%d", layout.sheet_name, len(sheet.rows))
        payload[layout.payload_key] = sheet.rows
    return payload
