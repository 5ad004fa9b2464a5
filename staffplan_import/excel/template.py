from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

import pandas as pd

from ..models.import_models import SheetLayout

"""Blank workbook templates: one sheet per layout, header row only."""

logger = logging.getLogger(__name__)


def write_template(layouts: Iterable[SheetLayout], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for layout in layouts:
            pd.DataFrame(columns=list(layout.headers)).to_excel(
                writer, sheet_name=layout.sheet_name, index=False
            )
            logger.debug("template sheet=%s columns=%d", layout.sheet_name, len(layout.headers))
    return path
