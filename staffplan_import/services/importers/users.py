from __future__ import annotations

import logging

from ...models.import_models import SheetLayout
from ..lookups import EntityIndex, normalize_key, resolve
from .base import ImportContext, Payload, cell_bool, cell_text, missing_required, sheet_rows

"""Application users, page permissions and entity visibility per role."""

logger = logging.getLogger(__name__)

VALID_ROLES = frozenset({
    "SIMPLE", "SIMPLE_EXT",
    "MANAGER", "MANAGER_EXT",
    "SENIOR MANAGER", "SENIOR MANAGER_EXT",
    "ASSOCIATE DIRECTOR", "ASSOCIATE DIRECTOR_EXT",
    "MANAGING DIRECTOR", "MANAGING DIRECTOR_EXT",
    "ADMIN",
})

# never a valid hash: imported accounts cannot log in until a password is set
IMPORTED_PASSWORD_MARKER = "!IMPORTED"

USERS = SheetLayout(
    payload_key="users",
    sheet_name="Utenti",
    headers=("Username", "Ruolo", "Email Risorsa", "Attivo"),
    required=frozenset({"Username", "Ruolo"}),
)
PERMISSIONS = SheetLayout(
    payload_key="permissions",
    sheet_name="Permessi",
    headers=("Ruolo", "Pagina", "Consentito"),
    required=frozenset({"Ruolo", "Pagina"}),
)
VISIBILITY = SheetLayout(
    payload_key="entity_visibility",
    sheet_name="Visibilita",
    headers=("Ruolo", "Entità", "Visibile"),
    required=frozenset({"Ruolo", "Entità"}),
)

LAYOUTS: tuple[SheetLayout, ...] = (USERS, PERMISSIONS, VISIBILITY)


def normalize_role(raw: str | None) -> str | None:
    if raw is None:
        return None
    role = " ".join(raw.split()).upper()
    return role if role in VALID_ROLES else None


def _import_users(ctx: ImportContext, payload: Payload) -> None:
    rows = list(sheet_rows(payload, USERS))
    if not rows:
        return
    # usernames match case-insensitively; a stored account keeps its own spelling
    ctx.cursor.execute("SELECT id, username FROM app_users")
    stored_names: dict[str, str] = {}
    persisted: dict[str, str] = {}
    for user_id, stored in ctx.cursor.fetchall():
        key = normalize_key(stored)
        if key is not None and key not in persisted:
            persisted[key] = str(user_id)
            stored_names[str(user_id)] = stored
    users = EntityIndex(persisted)
    resources = ctx.lookup("SELECT id, email FROM resources")
    queued: dict[str, tuple] = {}
    for label, row in rows:
        missing = missing_required(row, USERS)
        if missing:
            ctx.warn(f"{label}: utente saltato, campi obbligatori mancanti ({', '.join(missing)}).")
            continue
        username = cell_text(row, "Username")
        role = normalize_role(cell_text(row, "Ruolo"))
        if role is None:
            ctx.warn(f"{label}: utente '{username}' saltato, ruolo '{cell_text(row, 'Ruolo')}' non valido.")
            continue
        email = cell_text(row, "Email Risorsa")
        resource_id = resolve(resources, email)
        if email is not None and resource_id is None:
            ctx.warn(f"{label}: risorsa con email '{email}' non trovata, utente non collegato.")
        user_id = users.get_or_create(username)
        queued[user_id] = (
            user_id,
            stored_names.get(user_id, username),
            IMPORTED_PASSWORD_MARKER,
            role,
            resource_id,
            cell_bool(row, "Attivo", default=True),
            True,
        )
    ctx.insert(
        "app_users",
        ("id", "username", "password_hash", "role", "resource_id", "is_active", "must_change_password"),
        list(queued.values()),
        "ON CONFLICT (id) DO UPDATE SET role = EXCLUDED.role, "
        "resource_id = EXCLUDED.resource_id, is_active = EXCLUDED.is_active",
    )


def _import_role_flags(
    ctx: ImportContext,
    payload: Payload,
    layout: SheetLayout,
    target_header: str,
    flag_header: str,
    table: str,
    columns: tuple[str, str, str],
) -> None:
    queued: dict[str, tuple[str, str, bool]] = {}
    for label, row in sheet_rows(payload, layout):
        missing = missing_required(row, layout)
        if missing:
            ctx.warn(f"{label}: riga saltata, campi obbligatori mancanti ({', '.join(missing)}).")
            continue
        role = normalize_role(cell_text(row, "Ruolo"))
        if role is None:
            ctx.warn(f"{label}: ruolo '{cell_text(row, 'Ruolo')}' non valido, riga saltata.")
            continue
        target = cell_text(row, target_header)
        queued[f"{role}|{target}"] = (role, target, cell_bool(row, flag_header, default=True))
    role_col, target_col, flag_col = columns
    ctx.insert(
        table,
        columns,
        list(queued.values()),
        f"ON CONFLICT ({role_col}, {target_col}) DO UPDATE SET {flag_col} = EXCLUDED.{flag_col}",
    )


def import_rows(ctx: ImportContext, payload: Payload) -> None:
    _import_users(ctx, payload)
    _import_role_flags(
        ctx, payload, PERMISSIONS, "Pagina", "Consentito",
        "role_permissions", ("role", "page_path", "is_allowed"),
    )
    _import_role_flags(
        ctx, payload, VISIBILITY, "Entità", "Visibile",
        "role_entity_visibility", ("role", "entity", "is_visible"),
    )

