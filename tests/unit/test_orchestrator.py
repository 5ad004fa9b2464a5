from __future__ import annotations

import pytest

from staffplan_import.db.batch_insert import BatchMetrics
from staffplan_import.models import ImportSettings, ImportState, ImportType
from staffplan_import.models.processing_result import DRY_RUN_MESSAGE, SUCCESS_MESSAGE
from staffplan_import.services import orchestrator
from staffplan_import.services.orchestrator import (
    ImportProcessingError,
    InvalidPayloadError,
    UnknownImportTypeError,
    handle_import_request,
    layouts_for,
    resolve_import_type,
    run_import,
    validate_payload,
)

STAFFING_RESPONSES = {
    "SELECT id, name FROM resources": [("res-mario", "Mario Rossi")],
    "SELECT id, name FROM projects": [("prj-alpha", "Alpha")],
}
STAFFING_PAYLOAD = {"staffing": [
    {"Resource Name": "Mario Rossi", "Project Name": "Alpha", "2024-01-10": 50},
    {"Resource Name": "Nobody", "Project Name": "Alpha", "2024-01-10": 50},
]}


def test_every_import_type_has_an_importer() -> None:
    assert set(orchestrator.IMPORTERS) == set(ImportType)
    for import_type in ImportType:
        module = orchestrator.IMPORTERS[import_type]
        assert callable(module.import_rows)
        assert module.LAYOUTS


def test_resolve_import_type() -> None:
    assert resolve_import_type("staffing") is ImportType.STAFFING
    assert resolve_import_type(" leaves ") is ImportType.LEAVES
    assert resolve_import_type(ImportType.SKILLS) is ImportType.SKILLS
    with pytest.raises(UnknownImportTypeError, match="non valido"):
        resolve_import_type("payroll")


def test_layouts_for_accepts_string() -> None:
    keys = [layout.payload_key for layout in layouts_for("skills")]
    assert keys == ["skills", "resource_skills"]


@pytest.mark.parametrize(
    "payload",
    [
        ["not", "a", "mapping"],
        {"staffing": "oops"},
        {"staffing": [{"ok": 1}, "row"]},
    ],
)
def test_validate_payload_rejects_bad_shapes(payload) -> None:
    with pytest.raises(InvalidPayloadError):
        validate_payload(ImportType.STAFFING, payload)


def test_validate_payload_ignores_unknown_keys() -> None:
    validate_payload(ImportType.STAFFING, {"staffing": [], "whatever": "ignored", "leaves": None})


def test_run_import_commits_once(fake_cursor_factory) -> None:
    """BEGIN, importer statements, COMMIT, nothing else."""
    cur = fake_cursor_factory(STAFFING_RESPONSES)
    summary = run_import(cur, "staffing", STAFFING_PAYLOAD)
    assert cur.control == ["BEGIN", "COMMIT"]
    assert cur.executed[0][0] == "BEGIN"
    assert cur.executed[-1][0] == "COMMIT"
    assert summary.state is ImportState.COMMITTED
    assert summary.message == SUCCESS_MESSAGE
    assert len(summary.warnings) == 1 and "Nobody" in summary.warnings[0]
    assert summary.inserted_rows == {"assignments": 1, "allocations": 1}
    assert summary.total_inserted_rows == 2
    assert summary.total_batches == 2
    assert summary.to_response() == {"message": SUCCESS_MESSAGE, "warnings": summary.warnings}


def test_dry_run_rolls_back(fake_cursor_factory) -> None:
    cur = fake_cursor_factory(STAFFING_RESPONSES)
    summary = run_import(cur, ImportType.STAFFING, STAFFING_PAYLOAD, dry_run=True)
    assert cur.control == ["BEGIN", "ROLLBACK"]
    assert summary.state is ImportState.ROLLED_BACK
    assert summary.dry_run is True
    assert summary.message == DRY_RUN_MESSAGE
    # statements still ran so warnings and counts are real
    assert summary.inserted_rows["allocations"] == 1


def test_failure_rolls_back_everything(fake_cursor_factory) -> None:
    cur = fake_cursor_factory(STAFFING_RESPONSES, fail_on="INSERT INTO allocations")
    with pytest.raises(ImportProcessingError, match="allocations") as exc:
        run_import(cur, "staffing", STAFFING_PAYLOAD)
    assert cur.control == ["BEGIN", "ROLLBACK"]
    assert exc.value.__cause__ is not None


def test_failing_rollback_does_not_mask_original_error(fake_cursor_factory, caplog) -> None:
    cur = fake_cursor_factory(STAFFING_RESPONSES, fail_on="allocations")
    original_execute = cur.execute

    def execute(sql, params=None):
        if sql == "ROLLBACK":
            raise RuntimeError("connection lost")
        return original_execute(sql, params)

    cur.execute = execute
    with pytest.raises(ImportProcessingError, match="allocations"):
        run_import(cur, "staffing", STAFFING_PAYLOAD)
    assert "rollback failed" in caplog.text


def test_begin_failure(fake_cursor_factory) -> None:
    cur = fake_cursor_factory(fail_on="BEGIN")
    with pytest.raises(ImportProcessingError, match="begin"):
        run_import(cur, "staffing", STAFFING_PAYLOAD)
    assert [sql for sql, _ in cur.executed] == ["BEGIN"]


def test_validation_errors_execute_nothing(fake_cursor_factory) -> None:
    cur = fake_cursor_factory()
    with pytest.raises(UnknownImportTypeError):
        run_import(cur, "payroll", {})
    with pytest.raises(InvalidPayloadError):
        run_import(cur, "staffing", {"staffing": 3})
    assert cur.executed == []


def test_metrics_callback_receives_every_batch(fake_cursor_factory) -> None:
    cur = fake_cursor_factory(STAFFING_RESPONSES)
    seen: list[BatchMetrics] = []
    run_import(cur, "staffing", STAFFING_PAYLOAD, metrics_callback=seen.append)
    assert [m.table for m in seen] == ["assignments", "allocations"]


def test_settings_reach_the_importers(fake_cursor_factory) -> None:
    cur = fake_cursor_factory({
        "SELECT id, name FROM resources": [("res-mario", "Mario Rossi")],
        "SELECT id, name FROM projects": [("prj-alpha", "Alpha")],
    })
    payload = {"staffing": [{"Resource Name": "Mario Rossi", "Project Name": "Alpha",
                             "2024-01-10": 10, "2024-01-11": 20, "2024-01-12": 30}]}
    summary = run_import(cur, "staffing", payload, ImportSettings(parameter_ceiling=3))
    assert summary.inserted_rows["allocations"] == 3
    assert len(cur.statements_for("allocations")) == 3


def test_rerun_is_idempotent(fake_cursor_factory) -> None:
    """Rows persisted by the first run are seen as existing by the second."""
    payload = {"roles": [{"Nome Ruolo": "Developer"}], "clients": [{"Nome Cliente": "Acme"}]}
    first = fake_cursor_factory()
    run_import(first, "core_entities", payload)
    role_id, role_name = first.rows_for("roles")[0][:2]
    client_id, client_name = first.rows_for("clients")[0][:2]

    second = fake_cursor_factory({
        "SELECT id, name FROM roles": [(role_id, role_name)],
        "SELECT id, name FROM clients": [(client_id, client_name)],
    })
    summary = run_import(second, "core_entities", payload)
    assert second.inserts == []
    assert summary.warnings == []
    assert second.control == ["BEGIN", "COMMIT"]


class TestHandleImportRequest:
    def test_ok(self, fake_cursor_factory) -> None:
        status, body = handle_import_request(fake_cursor_factory(STAFFING_RESPONSES), "staffing", STAFFING_PAYLOAD)
        assert status == 200
        assert body["message"] == SUCCESS_MESSAGE
        assert len(body["warnings"]) == 1

    def test_unknown_type_is_400(self, fake_cursor_factory) -> None:
        cur = fake_cursor_factory()
        status, body = handle_import_request(cur, "payroll", {})
        assert status == 400
        assert "payroll" in body["error"]
        assert cur.executed == []

    def test_bad_payload_is_400(self, fake_cursor_factory) -> None:
        status, body = handle_import_request(fake_cursor_factory(), "staffing", [1, 2])
        assert status == 400
        assert "error" in body

    def test_failure_is_500(self, fake_cursor_factory) -> None:
        cur = fake_cursor_factory(STAFFING_RESPONSES, fail_on="INSERT")
        status, body = handle_import_request(cur, "staffing", STAFFING_PAYLOAD)
        assert status == 500
        assert set(body) == {"error"}
        assert cur.control == ["BEGIN", "ROLLBACK"]
