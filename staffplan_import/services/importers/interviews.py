from __future__ import annotations

import logging

from ...models.import_models import SheetLayout
from ..lookups import new_id, normalize_key, resolve
from .base import (
    ImportContext,
    Payload,
    cell_date,
    cell_list,
    cell_storage_date,
    cell_text,
    missing_required,
    sheet_rows,
    uuid_array,
)

"""Candidate interview import."""

logger = logging.getLogger(__name__)

DEFAULT_STATUS = "Aperto"

INTERVIEWS = SheetLayout(
    payload_key="interviews",
    sheet_name="Colloqui",
    headers=(
        "Nome Candidato", "Cognome Candidato", "Data di Nascita", "Funzione", "Ruolo Proposto",
        "Codice Richiesta", "Sintesi CV", "Intervistatori", "Data Colloquio", "Feedback", "Note",
        "Esito Assunzione", "Data Ingresso", "Stato",
    ),
    required=frozenset({"Nome Candidato", "Cognome Candidato"}),
)

LAYOUTS: tuple[SheetLayout, ...] = (INTERVIEWS,)

COLUMNS = (
    "id", "resource_request_id", "candidate_name", "candidate_surname", "birth_date", "function",
    "role_id", "cv_summary", "interviewers_ids", "interview_date", "feedback", "notes",
    "hiring_status", "entry_date", "status",
)

EXISTING_QUERY = (
    "SELECT id, candidate_name || '|' || candidate_surname || '|' || "
    "COALESCE(interview_date::text, '') FROM interviews"
)


def natural_key(name: str, surname: str, interview_date: str | None) -> str:
    return normalize_key(f"{name}|{surname}|{interview_date or ''}") or ""


def import_rows(ctx: ImportContext, payload: Payload) -> None:
    rows = list(sheet_rows(payload, INTERVIEWS))
    if not rows:
        return

    roles = ctx.lookup("SELECT id, name FROM roles")
    requests = ctx.lookup("SELECT id, request_code FROM resource_requests")
    resources = ctx.lookup("SELECT id, name FROM resources")
    existing = ctx.lookup(EXISTING_QUERY)
    seen: set[str] = set()
    queued = []

    for label, row in rows:
        missing = missing_required(row, INTERVIEWS)
        if missing:
            ctx.warn(f"{label}: colloquio saltato, campi obbligatori mancanti ({', '.join(missing)}).")
            continue
        name = cell_text(row, "Nome Candidato")
        surname = cell_text(row, "Cognome Candidato")
        interview_date = cell_date(row, "Data Colloquio")
        interview_day = interview_date.isoformat() if interview_date else None

        key = natural_key(name, surname, interview_day)
        if key in existing:
            continue
        if key in seen:
            ctx.warn(f"{label}: colloquio di '{name} {surname}' duplicato nel file, saltato.")
            continue
        seen.add(key)

        role_name = cell_text(row, "Ruolo Proposto")
        role_id = resolve(roles, role_name)
        if role_name is not None and role_id is None:
            ctx.warn(f"{label}: ruolo '{role_name}' non trovato, campo lasciato vuoto.")

        request_code = cell_text(row, "Codice Richiesta")
        request_id = resolve(requests, request_code)
        if request_code is not None and request_id is None:
            ctx.warn(f"{label}: richiesta '{request_code}' non trovata, campo lasciato vuoto.")

        interviewer_ids = []
        for interviewer in cell_list(row, "Intervistatori"):
            interviewer_id = resolve(resources, interviewer)
            if interviewer_id is None:
                ctx.warn(f"{label}: intervistatore '{interviewer}' non trovato, ignorato.")
                continue
            if interviewer_id not in interviewer_ids:
                interviewer_ids.append(interviewer_id)

        queued.append((
            new_id(),
            request_id,
            name,
            surname,
            cell_storage_date(row, "Data di Nascita"),
            cell_text(row, "Funzione"),
            role_id,
            cell_text(row, "Sintesi CV"),
            uuid_array(interviewer_ids),
            interview_day,
            cell_text(row, "Feedback"),
            cell_text(row, "Note"),
            cell_text(row, "Esito Assunzione"),
            cell_storage_date(row, "Data Ingresso"),
            cell_text(row, "Stato") or DEFAULT_STATUS,
        ))

    ctx.insert("interviews", COLUMNS, queued, "ON CONFLICT (id) DO NOTHING")
