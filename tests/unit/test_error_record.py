from __future__ import annotations

import json
from dataclasses import FrozenInstanceError

import pytest

from staffplan_import.models.error_record import SEVERITY_ERROR, SEVERITY_WARNING, ErrorRecord


def test_create_uses_utc_z_timestamp():
    rec = ErrorRecord.create("staffing", SEVERITY_ERROR, "DB_CONNECTION_ERROR", "down")
    assert rec.timestamp.endswith("Z")
    assert "+00:00" not in rec.timestamp
    assert rec.severity == "ERROR"


def test_warning_shortcut():
    rec = ErrorRecord.warning("leaves", "Assenze riga 3: ...")
    assert rec.severity == SEVERITY_WARNING
    assert rec.error_type == "ROW_SKIPPED"
    assert rec.import_type == "leaves"


def test_json_line_keeps_accents_and_fields():
    rec = ErrorRecord.warning("tutor_mapping", "la risorsa non può essere tutor di sé stessa")
    line = rec.to_json_line()
    assert "può" in line
    data = json.loads(line)
    assert set(data) == {"timestamp", "import_type", "severity", "error_type", "message"}


def test_record_is_frozen():
    rec = ErrorRecord.warning("skills", "x")
    with pytest.raises(FrozenInstanceError):
        rec.message = "y"  # type: ignore[misc]
