from __future__ import annotations

import json
import re
from pathlib import Path

from staffplan_import.logging.error_log import ErrorLogBuffer
from staffplan_import.models.error_record import SEVERITY_ERROR, ErrorRecord


def test_flush_without_records_creates_nothing(tmp_path: Path) -> None:
    buf = ErrorLogBuffer(logs_dir=tmp_path / "logs")
    assert buf.flush() is None
    assert not (tmp_path / "logs").exists()


def test_flush_writes_one_json_line_per_record(tmp_path: Path) -> None:
    buf = ErrorLogBuffer(logs_dir=tmp_path / "logs")
    buf.extend_warnings("staffing", ["Staffing riga 2: risorsa 'X' non trovata, riga saltata.", "second"])
    buf.append(ErrorRecord.create("staffing", SEVERITY_ERROR, "IMPORT_ROLLED_BACK", "boom"))
    path = buf.flush()
    assert path is not None
    assert re.fullmatch(r"import-\d{8}-\d{6}\.log", path.name)
    lines = path.read_text(encoding="utf-8").splitlines()
    records = [json.loads(line) for line in lines]
    assert [r["severity"] for r in records] == ["WARNING", "WARNING", "ERROR"]
    assert records[0]["error_type"] == "ROW_SKIPPED"
    assert records[0]["message"].startswith("Staffing riga 2")
    assert records[2]["error_type"] == "IMPORT_ROLLED_BACK"
    assert len(buf) == 0


def test_second_flush_appends_to_same_file(tmp_path: Path) -> None:
    buf = ErrorLogBuffer(logs_dir=tmp_path)
    buf.extend_warnings("leaves", ["a"])
    first = buf.flush()
    buf.extend_warnings("leaves", ["b"])
    second = buf.flush()
    assert first == second
    assert len(first.read_text(encoding="utf-8").splitlines()) == 2


def test_default_directory_is_relative_logs(temp_workdir: Path) -> None:
    buf = ErrorLogBuffer()
    buf.extend_warnings("skills", ["w"])
    path = buf.flush()
    assert path.parent.resolve() == (temp_workdir / "logs").resolve()
