from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path

import pytest

import staffplan_import.cli.__main__ as cli

"""End-to-end CLI runs on real workbooks: core entities first, then the staffing
grid that references them. The database is a FakeCursor whose lookup results are
fed from the rows the previous run inserted.
"""


@pytest.fixture()
def fake_connection(monkeypatch, fake_cursor_factory):
    cursors = []
    responses: dict = {}

    @contextmanager
    def _connection(cfg):
        cur = fake_cursor_factory(responses)
        cursors.append(cur)
        yield cur

    monkeypatch.setattr(cli, "_db_connection", _connection)
    return cursors, responses


def test_core_entities_then_staffing(temp_workdir: Path, write_config: Path, workbook_factory, fake_connection, capsys):
    cursors, responses = fake_connection
    core = workbook_factory("core.xlsx", {
        "Config_Sedi": [["Valore"], ["Milano"], ["Roma"]],
        "Ruoli": [["Nome Ruolo", "Costo Giornaliero"], ["Developer", 400], ["Architect", 650]],
        "Clienti": [["Nome Cliente", "Settore"], ["Acme", "Retail"]],
        "Risorse": [
            ["Nome Risorsa", "Email", "Ruolo", "Sede"],
            ["Mario Rossi", "mario@example.com", "Developer", "Milano"],
            ["Anna Bianchi", "anna@example.com", "Architect", "Roma"],
        ],
        "Progetti": [["Nome Progetto", "Cliente", "Data Inizio"], ["Alpha", "Acme", "2024-01-01"]],
    })
    assert cli.main(["--type", "core_entities", "--file", str(core)]) == cli.EXIT_SUCCESS
    first = cursors[0]
    assert first.control == ["BEGIN", "COMMIT"]
    tables = [t for t, *_ in first.inserts]
    assert tables == ["locations", "roles", "clients", "resources", "projects"]
    assert "rows=8" in capsys.readouterr().out

    # second run sees the first run's rows as stored data
    responses["SELECT id, name FROM resources"] = [(r[0], r[1]) for r in first.rows_for("resources")]
    responses["SELECT id, name FROM projects"] = [(p[0], p[1]) for p in first.rows_for("projects")]
    grid = workbook_factory("staffing.xlsx", {"Staffing": [
        ["Resource Name", "Project Name", "Client Name", "2024-01-10", "2024-01-11", "Totale"],
        ["Mario Rossi", "Alpha", "Acme", 50, 0, 50],
        ["Anna Bianchi", "Alpha", "Acme", 100, 100, 200],
    ]})
    assert cli.main(["--type", "staffing", "--file", str(grid)]) == cli.EXIT_SUCCESS
    second = cursors[1]
    assert len(second.rows_for("assignments")) == 2
    allocations = second.rows_for("allocations")
    assert sorted((a[1], a[2]) for a in allocations) == [
        ("2024-01-10", 50), ("2024-01-10", 100), ("2024-01-11", 100),
    ]
    assert not (temp_workdir / "logs").exists()


def test_template_round_trip(temp_workdir: Path, fake_connection):
    cursors, _ = fake_connection
    template = temp_workdir / "data" / "leaves-template.xlsx"
    assert cli.main(["--type", "leaves", "--template", str(template)]) == cli.EXIT_SUCCESS
    # an untouched template imports nothing and commits cleanly
    assert cli.main(["--type", "leaves", "--file", str(template)]) == cli.EXIT_SUCCESS
    assert cursors[0].inserts == []
    assert cursors[0].control == ["BEGIN", "COMMIT"]
