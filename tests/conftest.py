# Shared pytest fixtures
from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

_INSERT_TABLE_RE = re.compile(r"^INSERT INTO (\S+)")


class FakeCursor:
    """Recording stand-in for a psycopg2 cursor.

    ``responses`` maps a query fragment to the rows ``fetchall`` returns for it;
    the longest fragment contained in the executed SQL wins. Inserts issued via
    the patched ``execute_values`` are recorded in ``inserts`` as
    ``(table, sql, rows, page_size)``.
    """

    def __init__(self, responses: dict[str, list[tuple]] | None = None, fail_on: str | None = None) -> None:
        self.responses = responses or {}
        self.fail_on = fail_on
        self.executed: list[tuple[str, Any]] = []
        self.inserts: list[tuple[str, str, list[tuple], int]] = []
        self._result: list[tuple] = []

    def execute(self, sql: str, params: Any = None) -> None:
        self.executed.append((sql, params))
        if self.fail_on is not None and self.fail_on in sql:
            raise RuntimeError(f"boom on {self.fail_on}")
        matches = [k for k in self.responses if k in sql]
        if matches:
            self._result = list(self.responses[max(matches, key=len)])
        else:
            self._result = []

    def fetchall(self) -> list[tuple]:
        return self._result

    @property
    def control(self) -> list[str]:
        """Transaction control statements, in order."""
        return [sql for sql, _ in self.executed if sql in ("BEGIN", "COMMIT", "ROLLBACK")]

    def rows_for(self, table: str) -> list[tuple]:
        return [row for t, _sql, rows, _ps in self.inserts if t == table for row in rows]

    def statements_for(self, table: str) -> list[str]:
        return [sql for t, sql, _rows, _ps in self.inserts if t == table]


@pytest.fixture(autouse=True)
def patch_execute_values(monkeypatch):
    """Route bulk inserts into the FakeCursor instead of psycopg2."""
    import staffplan_import.db.batch_insert as bi

    def fake_execute_values(cursor, sql, rows, page_size=100, template=None):
        if getattr(cursor, "fail_on", None) and cursor.fail_on in sql:
            raise RuntimeError(f"boom on {cursor.fail_on}")
        table = _INSERT_TABLE_RE.match(sql).group(1)
        cursor.inserts.append((table, sql, list(rows), page_size))

    monkeypatch.setattr(bi, "execute_values", fake_execute_values)
    return fake_execute_values


@pytest.fixture(autouse=True)
def clean_logging():
    from staffplan_import.logging.init import reset_logging

    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def fake_cursor_factory():
    def _make(responses: dict[str, list[tuple]] | None = None, fail_on: str | None = None) -> FakeCursor:
        return FakeCursor(responses, fail_on)
    return _make


@pytest.fixture()
def ctx_factory(fake_cursor_factory):
    """Build an ImportContext over a FakeCursor."""
    from staffplan_import.models.import_models import ImportSettings
    from staffplan_import.services.importers.base import ImportContext

    def _make(responses: dict[str, list[tuple]] | None = None, **settings: Any) -> ImportContext:
        return ImportContext(cursor=fake_cursor_factory(responses), settings=ImportSettings(**settings))
    return _make


@pytest.fixture()
def temp_workdir(monkeypatch, tmp_path: Path) -> Path:
    (tmp_path / "config").mkdir()
    (tmp_path / "data").mkdir()
    monkeypatch.chdir(tmp_path)
    for var in ("DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE"):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


@pytest.fixture()
def sample_config_yaml() -> str:
    return """database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: staffplan
parameter_ceiling: 60000
long_term_threshold_days: 60
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


def make_workbook(path: Path, sheets: dict[str, list[list[object]]]) -> Path:
    """Write a real .xlsx whose sheets contain ``rows`` verbatim (first row = header)."""
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for sheet_name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
    return path


@pytest.fixture()
def workbook_factory(tmp_path: Path):
    def _make(name: str, sheets: dict[str, list[list[object]]]) -> Path:
        return make_workbook(tmp_path / name, sheets)
    return _make
