from __future__ import annotations

import logging

from ...models.import_models import SheetLayout
from ..lookups import normalize_key
from .base import ImportContext, Payload, cell_text, sheet_rows

"""Tutor assignment: sets ``resources.tutor_id`` for existing resources, by email."""

logger = logging.getLogger(__name__)

TUTORS = SheetLayout(
    payload_key="tutors",
    sheet_name="Tutor",
    headers=("Email Risorsa", "Email Tutor"),
    required=frozenset({"Email Risorsa"}),
)

LAYOUTS: tuple[SheetLayout, ...] = (TUTORS,)


def import_rows(ctx: ImportContext, payload: Payload) -> None:
    rows = list(sheet_rows(payload, TUTORS))
    if not rows:
        return

    ctx.cursor.execute("SELECT id, email, name FROM resources")
    by_email: dict[str, tuple[str, str, str]] = {}
    for resource_id, email, name in ctx.cursor.fetchall():
        key = normalize_key(email)
        if key is not None:
            by_email.setdefault(key, (str(resource_id), email, name))

    queued: dict[str, tuple[str, str, str, str | None]] = {}
    for label, row in rows:
        email = cell_text(row, "Email Risorsa")
        resource = by_email.get(normalize_key(email) or "")
        if resource is None:
            ctx.warn(f"{label}: risorsa con email '{email or ''}' non trovata, riga saltata.")
            continue
        resource_id, stored_email, name = resource

        tutor_email = cell_text(row, "Email Tutor")
        tutor_id = None
        if tutor_email is not None:
            tutor = by_email.get(normalize_key(tutor_email) or "")
            if tutor is None:
                ctx.warn(f"{label}: tutor con email '{tutor_email}' non trovato, tutor rimosso.")
            elif tutor[0] == resource_id:
                ctx.warn(f"{label}: la risorsa '{name}' non può essere tutor di sé stessa, tutor rimosso.")
            else:
                tutor_id = tutor[0]

        queued[resource_id] = (resource_id, name, stored_email, tutor_id)

    # upsert on rows that always exist: only tutor_id changes
    ctx.insert(
        "resources",
        ("id", "name", "email", "tutor_id"),
        list(queued.values()),
        "ON CONFLICT (id) DO UPDATE SET tutor_id = EXCLUDED.tutor_id",
    )
