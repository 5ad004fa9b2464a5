from __future__ import annotations

import logging
import numbers

from ...excel.dates import SERIAL_EPOCH_OFFSET, format_for_storage
from ...models.import_models import SheetLayout
from ..lookups import new_id, resolve
from .base import ImportContext, Payload, cell_text, parse_number, sheet_rows

"""Staffing grid import: one row per resource/project pair, one column per day.

Every header that is not reserved and parses to a date is an allocation column.
Allocations are upserted so that re-importing a grid overwrites percentages.
"""

logger = logging.getLogger(__name__)

RESOURCE = "Resource Name"
PROJECT = "Project Name"
CLIENT = "Client Name"
RESERVED_HEADERS = frozenset({RESOURCE, PROJECT, CLIENT})

STAFFING = SheetLayout(
    payload_key="staffing",
    sheet_name="Staffing",
    headers=(RESOURCE, PROJECT, CLIENT),
    required=frozenset({RESOURCE, PROJECT}),
)

LAYOUTS: tuple[SheetLayout, ...] = (STAFFING,)


def _serial(header):
    if isinstance(header, str) and header.strip().isdigit():
        return int(header)
    if isinstance(header, numbers.Real) and not isinstance(header, bool):
        return header
    return None


def _date_columns(rows) -> dict[str, str]:
    """Map each non-reserved header that parses to a date onto its storage form."""
    columns: dict[str, str] = {}
    for _label, row in rows:
        for header in row:
            if header in RESERVED_HEADERS or header in columns:
                continue
            # numeric headers are spreadsheet serials written without a date format;
            # only serials after 1970-01-01 count, so ids and years stay plain columns
            serial = _serial(header)
            if serial is not None:
                day = format_for_storage(serial) if serial > SERIAL_EPOCH_OFFSET else None
            else:
                day = format_for_storage(header)
            if day is not None:
                columns[header] = day
    return columns


def import_rows(ctx: ImportContext, payload: Payload) -> None:
    rows = list(sheet_rows(payload, STAFFING))
    if not rows:
        return

    resources = ctx.lookup("SELECT id, name FROM resources")
    projects = ctx.lookup("SELECT id, name FROM projects")
    assignments = ctx.lookup(
        "SELECT id, resource_id::text || '-' || project_id::text FROM assignments"
    )
    date_columns = _date_columns(rows)

    new_assignments: dict[str, tuple[str, str, str]] = {}
    allocations: dict[str, tuple[str, str, int]] = {}

    for label, row in rows:
        resource_name = cell_text(row, RESOURCE)
        project_name = cell_text(row, PROJECT)
        resource_id = resolve(resources, resource_name)
        project_id = resolve(projects, project_name)
        if resource_id is None:
            ctx.warn(f"{label}: risorsa '{resource_name or ''}' non trovata, riga saltata.")
            continue
        if project_id is None:
            ctx.warn(f"{label}: progetto '{project_name or ''}' non trovato, riga saltata.")
            continue

        pair_key = f"{resource_id}-{project_id}"
        assignment_id = resolve(assignments, pair_key)
        if assignment_id is None and pair_key in new_assignments:
            assignment_id = new_assignments[pair_key][0]

        row_allocations: list[tuple[str, int]] = []
        for header, day in date_columns.items():
            number = parse_number(row.get(header))
            if number is None:
                continue
            percentage = int(round(number))
            if percentage <= 0:
                continue
            row_allocations.append((day, percentage))

        if not row_allocations:
            continue
        if assignment_id is None:
            assignment_id = new_id()
            new_assignments[pair_key] = (assignment_id, resource_id, project_id)

        for day, percentage in row_allocations:
            # last value wins for the same assignment and day
            allocations[f"{assignment_id}|{day}"] = (assignment_id, day, percentage)

    ctx.insert(
        "assignments",
        ("id", "resource_id", "project_id"),
        list(new_assignments.values()),
        "ON CONFLICT (resource_id, project_id) DO NOTHING",
    )
    ctx.insert(
        "allocations",
        ("assignment_id", "allocation_date", "percentage"),
        list(allocations.values()),
        "ON CONFLICT (assignment_id, allocation_date) DO UPDATE SET percentage = EXCLUDED.percentage",
    )
