from __future__ import annotations

import logging

from ...models.import_models import SheetLayout
from ..lookups import EntityIndex, new_id, normalize_key
from .base import (
    ImportContext,
    Payload,
    cell_bool,
    cell_date,
    cell_int,
    cell_number,
    cell_storage_date,
    cell_text,
    missing_required,
    sheet_rows,
)

"""Core entities: configuration dictionaries, calendar, roles, clients, resources, projects.

Flush order matters inside the shared transaction: roles and clients are written
before the resources and projects that reference them.
"""

logger = logging.getLogger(__name__)

VALUE = "Valore"

# payload key -> (sheet name, table)
DICTIONARIES: dict[str, tuple[str, str]] = {
    "functions": ("Config_Funzioni", "functions"),
    "industries": ("Config_Industry", "industries"),
    "seniority_levels": ("Config_Seniority", "seniority_levels"),
    "project_statuses": ("Config_StatiProgetto", "project_statuses"),
    "client_sectors": ("Config_Settori", "client_sectors"),
    "locations": ("Config_Sedi", "locations"),
}

CALENDAR = SheetLayout(
    payload_key="calendar",
    sheet_name="Calendario",
    headers=("Nome Evento", "Data", "Tipo", "Sede"),
    required=frozenset({"Nome Evento", "Data", "Tipo"}),
)
ROLES = SheetLayout(
    payload_key="roles",
    sheet_name="Ruoli",
    headers=("Nome Ruolo", "Livello Seniority", "Costo Giornaliero", "Costo Standard", "Spese Giornaliere"),
    required=frozenset({"Nome Ruolo"}),
)
CLIENTS = SheetLayout(
    payload_key="clients",
    sheet_name="Clienti",
    headers=("Nome Cliente", "Settore", "Email Contatto"),
    required=frozenset({"Nome Cliente"}),
)
RESOURCES = SheetLayout(
    payload_key="resources",
    sheet_name="Risorse",
    headers=(
        "Nome Risorsa", "Email", "Ruolo", "Funzione", "Industry", "Sede", "Data Assunzione",
        "Anzianità Lavorativa", "Note", "Max Staffing %", "Dimesso", "Ultimo Giorno", "Talent",
    ),
    required=frozenset({"Nome Risorsa", "Email", "Ruolo"}),
)
PROJECTS = SheetLayout(
    payload_key="projects",
    sheet_name="Progetti",
    headers=(
        "Nome Progetto", "Cliente", "Data Inizio", "Data Fine", "Budget", "% Realizzazione",
        "Project Manager", "Stato", "Note",
    ),
    required=frozenset({"Nome Progetto"}),
)

DICTIONARY_LAYOUTS = tuple(
    SheetLayout(payload_key=key, sheet_name=sheet, headers=(VALUE,), required=frozenset({VALUE}))
    for key, (sheet, _table) in DICTIONARIES.items()
)

LAYOUTS: tuple[SheetLayout, ...] = DICTIONARY_LAYOUTS + (CALENDAR, ROLES, CLIENTS, RESOURCES, PROJECTS)


def _skip_missing(ctx: ImportContext, label: str, missing: list[str]) -> None:
    ctx.warn(f"{label}: saltata, campi obbligatori mancanti ({', '.join(missing)}).")


def _import_dictionaries(ctx: ImportContext, payload: Payload) -> None:
    for layout in DICTIONARY_LAYOUTS:
        _sheet, table = DICTIONARIES[layout.payload_key]
        rows = list(sheet_rows(payload, layout))
        if not rows:
            continue
        index = ctx.index(f"SELECT id, value FROM {table}")
        queued: list[tuple[str, str]] = []
        for label, row in rows:
            value = cell_text(row, VALUE)
            if value is None:
                _skip_missing(ctx, label, [VALUE])
                continue
            if value in index:
                continue
            queued.append((index.get_or_create(value), value))
        ctx.insert(table, ("id", "value"), queued, "ON CONFLICT (value) DO NOTHING")


def _import_calendar(ctx: ImportContext, payload: Payload) -> None:
    rows = list(sheet_rows(payload, CALENDAR))
    if not rows:
        return
    ctx.cursor.execute("SELECT date, location FROM company_calendar")
    seen = {(str(d), normalize_key(loc) or "") for d, loc in ctx.cursor.fetchall()}
    queued = []
    for label, row in rows:
        missing = missing_required(row, CALENDAR)
        if missing:
            _skip_missing(ctx, label, missing)
            continue
        day = cell_storage_date(row, "Data")
        if day is None:
            ctx.warn(f"{label}: evento '{cell_text(row, 'Nome Evento')}' saltato, data non valida.")
            continue
        location = cell_text(row, "Sede")
        key = (day, normalize_key(location) or "")
        if key in seen:
            continue
        seen.add(key)
        queued.append((new_id(), cell_text(row, "Nome Evento"), day, cell_text(row, "Tipo"), location))
    ctx.insert(
        "company_calendar",
        ("id", "name", "date", "type", "location"),
        queued,
        "ON CONFLICT (date, location) DO NOTHING",
    )


def _import_roles(ctx: ImportContext, payload: Payload, roles: EntityIndex) -> None:
    queued = []
    for label, row in sheet_rows(payload, ROLES):
        name = cell_text(row, "Nome Ruolo")
        if name is None:
            _skip_missing(ctx, label, ["Nome Ruolo"])
            continue
        if roles.is_persisted(name):
            continue
        if roles.is_pending(name):
            ctx.warn(f"{label}: ruolo '{name}' duplicato nel file, saltato.")
            continue
        queued.append((
            roles.get_or_create(name),
            name,
            cell_text(row, "Livello Seniority"),
            cell_number(row, "Costo Giornaliero", 0.0),
            cell_number(row, "Costo Standard"),
            cell_number(row, "Spese Giornaliere"),
        ))
    ctx.insert(
        "roles",
        ("id", "name", "seniority_level", "daily_cost", "standard_cost", "daily_expenses"),
        queued,
        "ON CONFLICT (name) DO NOTHING",
    )


def _import_clients(ctx: ImportContext, payload: Payload, clients: EntityIndex) -> None:
    queued = []
    for label, row in sheet_rows(payload, CLIENTS):
        name = cell_text(row, "Nome Cliente")
        if name is None:
            _skip_missing(ctx, label, ["Nome Cliente"])
            continue
        if clients.is_persisted(name):
            continue
        if clients.is_pending(name):
            ctx.warn(f"{label}: cliente '{name}' duplicato nel file, saltato.")
            continue
        queued.append((clients.get_or_create(name), name, cell_text(row, "Settore"), cell_text(row, "Email Contatto")))
    ctx.insert("clients", ("id", "name", "sector", "contact_email"), queued, "ON CONFLICT (name) DO NOTHING")


def _import_resources(ctx: ImportContext, payload: Payload, roles: EntityIndex) -> None:
    rows = list(sheet_rows(payload, RESOURCES))
    if not rows:
        return
    resources = ctx.index("SELECT id, email FROM resources")
    queued = []
    for label, row in rows:
        missing = missing_required(row, RESOURCES)
        if missing:
            name = cell_text(row, "Nome Risorsa") or "senza nome"
            ctx.warn(f"{label}: risorsa '{name}' saltata, campi obbligatori mancanti ({', '.join(missing)}).")
            continue
        name = cell_text(row, "Nome Risorsa")
        email = cell_text(row, "Email")
        role_name = cell_text(row, "Ruolo")
        if resources.is_persisted(email):
            continue
        if resources.is_pending(email):
            ctx.warn(f"{label}: risorsa '{name}' saltata, email '{email}' duplicata nel file.")
            continue
        role_id = roles.resolve(role_name)
        if role_id is None:
            ctx.warn(f"{label}: risorsa '{name}' saltata, il ruolo '{role_name}' non è stato trovato.")
            continue
        queued.append((
            resources.get_or_create(email),
            name,
            email,
            role_id,
            cell_text(row, "Funzione"),
            cell_text(row, "Industry"),
            cell_text(row, "Sede"),
            cell_storage_date(row, "Data Assunzione"),
            cell_int(row, "Anzianità Lavorativa", 0),
            cell_text(row, "Note"),
            cell_int(row, "Max Staffing %", 100),
            cell_bool(row, "Dimesso"),
            cell_storage_date(row, "Ultimo Giorno"),
            cell_bool(row, "Talent"),
        ))
    ctx.insert(
        "resources",
        (
            "id", "name", "email", "role_id", "function", "industry", "location", "hire_date",
            "work_seniority", "notes", "max_staffing_percentage", "resigned", "last_day_of_work", "is_talent",
        ),
        queued,
        "ON CONFLICT (email) DO NOTHING",
    )


def _import_projects(ctx: ImportContext, payload: Payload, clients: EntityIndex) -> None:
    rows = list(sheet_rows(payload, PROJECTS))
    if not rows:
        return
    ctx.cursor.execute("SELECT id, name, client_id FROM projects")
    # (name, client_id) is the stored uniqueness; pending projects join the same set
    seen = {(normalize_key(name), str(client_id) if client_id else None) for _id, name, client_id in ctx.cursor.fetchall()}
    queued = []
    for label, row in rows:
        name = cell_text(row, "Nome Progetto")
        if name is None:
            _skip_missing(ctx, label, ["Nome Progetto"])
            continue
        client_name = cell_text(row, "Cliente")
        client_id = None
        if client_name is not None:
            client_id = clients.resolve(client_name)
            if client_id is None:
                ctx.warn(f"{label}: progetto '{name}' saltato, il cliente '{client_name}' non è stato trovato.")
                continue
        key = (normalize_key(name), client_id)
        if key in seen:
            continue
        seen.add(key)
        start = cell_date(row, "Data Inizio")
        end = cell_date(row, "Data Fine")
        if start and end and end < start:
            ctx.warn(f"{label}: progetto '{name}', data fine precedente alla data inizio; date ignorate.")
            start = end = None
        queued.append((
            new_id(),
            name,
            client_id,
            start.isoformat() if start else None,
            end.isoformat() if end else None,
            cell_number(row, "Budget", 0.0),
            cell_int(row, "% Realizzazione", 100),
            cell_text(row, "Project Manager"),
            cell_text(row, "Stato"),
            cell_text(row, "Note"),
        ))
    ctx.insert(
        "projects",
        (
            "id", "name", "client_id", "start_date", "end_date", "budget",
            "realization_percentage", "project_manager", "status", "notes",
        ),
        queued,
        "ON CONFLICT (name, client_id) DO NOTHING",
    )


def import_rows(ctx: ImportContext, payload: Payload) -> None:
    _import_dictionaries(ctx, payload)
    _import_calendar(ctx, payload)

    roles = ctx.index("SELECT id, name FROM roles")
    _import_roles(ctx, payload, roles)

    clients = ctx.index("SELECT id, name FROM clients")
    _import_clients(ctx, payload, clients)

    _import_resources(ctx, payload, roles)
    _import_projects(ctx, payload, clients)
