from __future__ import annotations

import logging

from ...models.import_models import SheetLayout
from ..lookups import new_id, resolve
from .base import (
    ImportContext,
    Payload,
    cell_bool,
    cell_date,
    cell_list,
    cell_text,
    missing_required,
    sheet_rows,
    uuid_array,
)

"""Leave request import."""

logger = logging.getLogger(__name__)

STATUSES = ("PENDING", "APPROVED", "REJECTED")
DEFAULT_STATUS = "PENDING"

LEAVES = SheetLayout(
    payload_key="leaves",
    sheet_name="Assenze",
    headers=(
        "Nome Risorsa", "Tipo Assenza", "Data Inizio", "Data Fine", "Stato", "Manager",
        "Approvatori", "Note", "Mezza Giornata",
    ),
    required=frozenset({"Nome Risorsa", "Tipo Assenza", "Data Inizio", "Data Fine"}),
)

LAYOUTS: tuple[SheetLayout, ...] = (LEAVES,)

COLUMNS = (
    "id", "resource_id", "type_id", "start_date", "end_date", "status", "manager_id",
    "notes", "approver_ids", "is_half_day",
)

EXISTING_QUERY = (
    "SELECT id, resource_id::text || '|' || type_id::text || '|' || "
    "start_date::text || '|' || end_date::text FROM leave_requests"
)


def import_rows(ctx: ImportContext, payload: Payload) -> None:
    rows = list(sheet_rows(payload, LEAVES))
    if not rows:
        return

    resources = ctx.lookup("SELECT id, name FROM resources")
    leave_types = ctx.lookup("SELECT id, name FROM leave_types")
    existing = ctx.lookup(EXISTING_QUERY)
    seen: set[str] = set()
    queued = []

    for label, row in rows:
        missing = missing_required(row, LEAVES)
        if missing:
            ctx.warn(f"{label}: assenza saltata, campi obbligatori mancanti ({', '.join(missing)}).")
            continue

        resource_name = cell_text(row, "Nome Risorsa")
        resource_id = resolve(resources, resource_name)
        if resource_id is None:
            ctx.warn(f"{label}: assenza saltata, la risorsa '{resource_name}' non è stata trovata.")
            continue
        type_name = cell_text(row, "Tipo Assenza")
        type_id = resolve(leave_types, type_name)
        if type_id is None:
            ctx.warn(f"{label}: assenza saltata, il tipo '{type_name}' non è stato trovato.")
            continue

        start = cell_date(row, "Data Inizio")
        end = cell_date(row, "Data Fine")
        if start is None or end is None:
            ctx.warn(f"{label}: assenza saltata, date non valide.")
            continue
        if end < start:
            ctx.warn(f"{label}: assenza saltata, la data fine precede la data inizio.")
            continue

        key = f"{resource_id}|{type_id}|{start.isoformat()}|{end.isoformat()}"
        if key in existing:
            continue
        if key in seen:
            ctx.warn(f"{label}: assenza di '{resource_name}' duplicata nel file, saltata.")
            continue
        seen.add(key)

        half_day = cell_bool(row, "Mezza Giornata")
        if half_day and start != end:
            ctx.warn(f"{label}: mezza giornata ammessa solo su un singolo giorno, flag ignorato.")
            half_day = False

        status = (cell_text(row, "Stato") or DEFAULT_STATUS).upper()
        if status not in STATUSES:
            ctx.warn(f"{label}: stato '{status}' non valido, impostato {DEFAULT_STATUS}.")
            status = DEFAULT_STATUS

        manager_name = cell_text(row, "Manager")
        manager_id = resolve(resources, manager_name)
        if manager_name is not None and manager_id is None:
            ctx.warn(f"{label}: manager '{manager_name}' non trovato, campo lasciato vuoto.")

        approver_ids = []
        for approver in cell_list(row, "Approvatori"):
            approver_id = resolve(resources, approver)
            if approver_id is None:
                ctx.warn(f"{label}: approvatore '{approver}' non trovato, ignorato.")
                continue
            if approver_id not in approver_ids:
                approver_ids.append(approver_id)

        queued.append((
            new_id(),
            resource_id,
            type_id,
            start.isoformat(),
            end.isoformat(),
            status,
            manager_id,
            cell_text(row, "Note"),
            uuid_array(approver_ids),
            half_day,
        ))

    ctx.insert("leave_requests", COLUMNS, queued, "ON CONFLICT (id) DO NOTHING")
