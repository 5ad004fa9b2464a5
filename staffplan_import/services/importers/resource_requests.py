from __future__ import annotations

import logging
import re

from ...excel.dates import inclusive_days
from ...models.import_models import SheetLayout
from ..lookups import new_id, normalize_key, resolve
from .base import (
    ImportContext,
    Payload,
    cell_bool,
    cell_date,
    cell_int,
    cell_text,
    missing_required,
    sheet_rows,
)

"""Resource request import (open staffing needs per project and role)."""

logger = logging.getLogger(__name__)

CODE_PREFIX = "HCR"
CODE_RE = re.compile(r"^hcr(\d+)$")
STATUSES = ("ATTIVA", "STANDBY", "CHIUSA")
DEFAULT_STATUS = "ATTIVA"

REQUESTS = SheetLayout(
    payload_key="resource_requests",
    sheet_name="Richieste_Risorse",
    headers=(
        "Codice Richiesta", "Progetto", "Ruolo", "Richiedente", "Data Inizio", "Data Fine",
        "Impegno %", "Urgente", "Richiesta Tecnica", "OSR Aperta", "Numero OSR", "Note", "Stato",
    ),
    required=frozenset({"Progetto", "Ruolo", "Data Inizio", "Data Fine"}),
)

LAYOUTS: tuple[SheetLayout, ...] = (REQUESTS,)

COLUMNS = (
    "id", "request_code", "project_id", "role_id", "requestor_id", "start_date", "end_date",
    "commitment_percentage", "is_urgent", "is_long_term", "is_tech_request", "is_osr_open",
    "osr_number", "notes", "status",
)

# stored identity of a request without a code
EXISTING_QUERY = (
    "SELECT id, project_id::text || '|' || role_id::text || '|' || "
    "start_date::text || '|' || end_date::text FROM resource_requests"
)


def format_code(number: int) -> str:
    return f"{CODE_PREFIX}{number:05d}"


def highest_code_number(codes) -> int:
    """Largest numeric suffix among ``HCR<digits>`` codes (case-insensitive), 0 if none."""
    highest = 0
    for code in codes:
        key = normalize_key(code)
        match = CODE_RE.match(key) if key else None
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


def import_rows(ctx: ImportContext, payload: Payload) -> None:
    rows = list(sheet_rows(payload, REQUESTS))
    if not rows:
        return

    projects = ctx.lookup("SELECT id, name FROM projects")
    roles = ctx.lookup("SELECT id, name FROM roles")
    resources = ctx.lookup("SELECT id, name FROM resources")
    existing_codes = ctx.lookup("SELECT id, request_code FROM resource_requests")
    existing_requests = ctx.lookup(EXISTING_QUERY)

    # generated codes continue after every code already stored or named in the sheet
    next_number = highest_code_number(
        list(existing_codes) + [cell_text(row, "Codice Richiesta") for _label, row in rows]
    ) + 1
    seen_codes: set[str] = set()
    seen_requests: set[str] = set()
    queued = []

    for label, row in rows:
        missing = missing_required(row, REQUESTS)
        if missing:
            ctx.warn(f"{label}: richiesta saltata, campi obbligatori mancanti ({', '.join(missing)}).")
            continue

        code = cell_text(row, "Codice Richiesta")
        if code is not None:
            key = normalize_key(code)
            if key in existing_codes:
                continue
            if key in seen_codes:
                ctx.warn(f"{label}: codice richiesta '{code}' duplicato nel file, riga saltata.")
                continue

        project_name = cell_text(row, "Progetto")
        project_id = resolve(projects, project_name)
        if project_id is None:
            ctx.warn(f"{label}: richiesta saltata, il progetto '{project_name}' non è stato trovato.")
            continue
        role_name = cell_text(row, "Ruolo")
        role_id = resolve(roles, role_name)
        if role_id is None:
            ctx.warn(f"{label}: richiesta saltata, il ruolo '{role_name}' non è stato trovato.")
            continue

        start = cell_date(row, "Data Inizio")
        end = cell_date(row, "Data Fine")
        if start is None or end is None:
            ctx.warn(f"{label}: richiesta saltata, date non valide.")
            continue
        if end < start:
            ctx.warn(f"{label}: richiesta saltata, la data fine precede la data inizio.")
            continue

        request_key = normalize_key(f"{project_id}|{role_id}|{start.isoformat()}|{end.isoformat()}")
        if code is None and request_key in existing_requests:
            continue
        if request_key in seen_requests:
            ctx.warn(f"{label}: richiesta duplicata nel file (stesso progetto, ruolo e date), riga saltata.")
            continue

        requestor_name = cell_text(row, "Richiedente")
        requestor_id = resolve(resources, requestor_name)
        if requestor_name is not None and requestor_id is None:
            ctx.warn(f"{label}: richiedente '{requestor_name}' non trovato, campo lasciato vuoto.")

        status = (cell_text(row, "Stato") or DEFAULT_STATUS).upper()
        if status not in STATUSES:
            ctx.warn(f"{label}: stato '{status}' non valido, impostato {DEFAULT_STATUS}.")
            status = DEFAULT_STATUS

        if code is None:
            code = format_code(next_number)
            next_number += 1
        seen_codes.add(normalize_key(code))
        seen_requests.add(request_key)

        queued.append((
            new_id(),
            code,
            project_id,
            role_id,
            requestor_id,
            start.isoformat(),
            end.isoformat(),
            cell_int(row, "Impegno %", 100),
            cell_bool(row, "Urgente"),
            inclusive_days(start, end) > ctx.settings.long_term_threshold_days,
            cell_bool(row, "Richiesta Tecnica"),
            cell_bool(row, "OSR Aperta"),
            cell_text(row, "Numero OSR"),
            cell_text(row, "Note"),
            status,
        ))

    ctx.insert("resource_requests", COLUMNS, queued, "ON CONFLICT (id) DO NOTHING")
