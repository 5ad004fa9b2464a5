from __future__ import annotations

import logging

from ...models.import_models import SheetLayout
from ..lookups import EntityIndex, normalize_key, resolve
from .base import (
    ImportContext,
    Payload,
    Row,
    cell_bool,
    cell_int,
    cell_storage_date,
    cell_text,
    sheet_rows,
)

"""Skill taxonomy and resource skill import.

Runs in two phases inside the same transaction. Phase 1 registers every macro
category, category and skill named anywhere in the workbook (definition sheet
first, then the association sheet) and flushes them parent-first. Phase 2 writes
the resource/skill associations, whose skill references are then guaranteed to
resolve.
"""

logger = logging.getLogger(__name__)

SKILL = "Nome Competenza"
CATEGORY = "Ambito"
MACRO = "Macro Ambito"

DEFINITIONS = SheetLayout(
    payload_key="skills",
    sheet_name="Competenze",
    headers=(SKILL, CATEGORY, MACRO, "Certificazione"),
    required=frozenset({SKILL}),
)
ASSOCIATIONS = SheetLayout(
    payload_key="resource_skills",
    sheet_name="Associazioni",
    headers=("Nome Risorsa", SKILL, "Livello", "Data Conseguimento", "Data Scadenza", CATEGORY, MACRO),
    required=frozenset({"Nome Risorsa", SKILL}),
)

LAYOUTS: tuple[SheetLayout, ...] = (DEFINITIONS, ASSOCIATIONS)

MIN_LEVEL = 1
MAX_LEVEL = 5


class SkillTaxonomy:
    """Pending taxonomy entities and links collected during phase 1."""

    def __init__(self, macros: EntityIndex, categories: EntityIndex, skills: EntityIndex) -> None:
        self.macros = macros
        self.categories = categories
        self.skills = skills
        self.new_macros: dict[str, tuple[str, str]] = {}
        self.new_categories: dict[str, tuple[str, str]] = {}
        self.new_skills: dict[str, tuple[str, str, bool]] = {}
        self.category_macro_links: dict[str, tuple[str, str]] = {}
        self.skill_category_links: dict[str, tuple[str, str]] = {}

    def _ensure(self, index: EntityIndex, queue: dict, name: str) -> str:
        entity_id = index.get_or_create(name)
        key = normalize_key(name)
        if index.is_pending(name) and key not in queue:
            queue[key] = (entity_id, name)
        return entity_id

    def register(self, row: Row, certification: bool = False) -> str:
        """Create (or find) the skill and taxonomy named by ``row``; return the skill id."""
        skill_name = cell_text(row, SKILL)
        skill_id = self.skills.get_or_create(skill_name)
        key = normalize_key(skill_name)
        if self.skills.is_pending(skill_name) and key not in self.new_skills:
            self.new_skills[key] = (skill_id, skill_name, certification)

        category_name = cell_text(row, CATEGORY)
        macro_name = cell_text(row, MACRO)
        category_id = None
        if category_name is not None:
            category_id = self._ensure(self.categories, self.new_categories, category_name)
            self.skill_category_links[f"{skill_id}|{category_id}"] = (skill_id, category_id)
        if macro_name is not None:
            macro_id = self._ensure(self.macros, self.new_macros, macro_name)
            if category_id is not None:
                self.category_macro_links[f"{category_id}|{macro_id}"] = (category_id, macro_id)
        return skill_id

    def flush(self, ctx: ImportContext) -> None:
        ctx.insert(
            "skill_macro_categories", ("id", "name"), list(self.new_macros.values()),
            "ON CONFLICT (name) DO NOTHING",
        )
        ctx.insert(
            "skill_categories", ("id", "name"), list(self.new_categories.values()),
            "ON CONFLICT (name) DO NOTHING",
        )
        ctx.insert(
            "skill_category_macro_map", ("category_id", "macro_category_id"),
            list(self.category_macro_links.values()),
            "ON CONFLICT (category_id, macro_category_id) DO NOTHING",
        )
        ctx.insert(
            "skills", ("id", "name", "is_certification"), list(self.new_skills.values()),
            "ON CONFLICT (name) DO NOTHING",
        )
        ctx.insert(
            "skill_skill_category_map", ("skill_id", "category_id"),
            list(self.skill_category_links.values()),
            "ON CONFLICT (skill_id, category_id) DO NOTHING",
        )


def _import_taxonomy(ctx: ImportContext, payload: Payload) -> SkillTaxonomy:
    taxonomy = SkillTaxonomy(
        macros=ctx.index("SELECT id, name FROM skill_macro_categories"),
        categories=ctx.index("SELECT id, name FROM skill_categories"),
        skills=ctx.index("SELECT id, name FROM skills"),
    )
    for label, row in sheet_rows(payload, DEFINITIONS):
        if cell_text(row, SKILL) is None:
            ctx.warn(f"{label}: competenza senza nome, riga saltata.")
            continue
        taxonomy.register(row, certification=cell_bool(row, "Certificazione"))
    for _label, row in sheet_rows(payload, ASSOCIATIONS):
        if cell_text(row, SKILL) is not None:
            taxonomy.register(row)
    taxonomy.flush(ctx)
    return taxonomy


def _import_associations(ctx: ImportContext, payload: Payload, taxonomy: SkillTaxonomy) -> None:
    rows = list(sheet_rows(payload, ASSOCIATIONS))
    if not rows:
        return
    resources = ctx.lookup("SELECT id, name FROM resources")
    queued: dict[str, tuple] = {}
    for label, row in rows:
        resource_name = cell_text(row, "Nome Risorsa")
        skill_name = cell_text(row, SKILL)
        if resource_name is None or skill_name is None:
            ctx.warn(f"{label}: associazione saltata, risorsa o competenza mancante.")
            continue
        resource_id = resolve(resources, resource_name)
        if resource_id is None:
            ctx.warn(f"{label}: associazione saltata, la risorsa '{resource_name}' non è stata trovata.")
            continue
        skill_id = taxonomy.skills.resolve(skill_name)

        level = cell_int(row, "Livello")
        if level is not None and not MIN_LEVEL <= level <= MAX_LEVEL:
            ctx.warn(f"{label}: livello {level} fuori intervallo ({MIN_LEVEL}-{MAX_LEVEL}), campo lasciato vuoto.")
            level = None

        queued[f"{resource_id}|{skill_id}"] = (
            resource_id,
            skill_id,
            level,
            cell_storage_date(row, "Data Conseguimento"),
            cell_storage_date(row, "Data Scadenza"),
        )
    ctx.insert(
        "resource_skills",
        ("resource_id", "skill_id", "level", "acquisition_date", "expiration_date"),
        list(queued.values()),
        "ON CONFLICT (resource_id, skill_id) DO UPDATE SET level = EXCLUDED.level, "
        "acquisition_date = EXCLUDED.acquisition_date, expiration_date = EXCLUDED.expiration_date",
    )


def import_rows(ctx: ImportContext, payload: Payload) -> None:
    taxonomy = _import_taxonomy(ctx, payload)
    _import_associations(ctx, payload, taxonomy)
