from __future__ import annotations

import uuid
from collections.abc import Callable
from typing import Any

"""Natural-key resolution (name / email -> surrogate id).

Each importer builds its lookup maps once per invocation with one unfiltered read
per entity type, then resolves every row against those in-memory maps. Entities
that a workbook introduces (and may reference from several rows before anything
is flushed) are registered in a ``pending`` map so that every reference to the
same normalized key gets the same synthesized id.

Maps are invocation-local: they live on the ImportContext / EntityIndex objects
of one run and are never cached at module level.
"""

__all__ = [
    "new_id",
    "normalize_key",
    "build_lookup",
    "resolve",
    "get_or_create",
    "EntityIndex",
]


def new_id() -> str:
    return str(uuid.uuid4())


def normalize_key(raw: Any) -> str | None:
    """Trim and lower-case a natural key; empty results become ``None``."""
    if raw is None:
        return None
    key = str(raw).strip().lower()
    return key or None


def build_lookup(cursor: Any, query: str) -> dict[str, str]:
    """Index the rows of ``query`` by normalized natural key.

    ``query`` must select the surrogate id first and the natural key second,
    e.g. ``SELECT id, name FROM roles``. When two stored rows normalize to the
    same key the first one returned wins.
    """
    cursor.execute(query)
    lookup: dict[str, str] = {}
    for row in cursor.fetchall():
        key = normalize_key(row[1])
        if key is None:
            continue
        lookup.setdefault(key, str(row[0]))
    return lookup


def resolve(lookup: dict[str, str], raw: Any) -> str | None:
    key = normalize_key(raw)
    if key is None:
        return None
    return lookup.get(key)


def get_or_create(
    raw: Any,
    persisted: dict[str, str],
    pending: dict[str, str],
    id_factory: Callable[[], str] = new_id,
) -> str:
    """Return the id for ``raw``, synthesizing and registering one if unknown.

    Lookup order is persisted (already stored) -> pending (seen earlier in this
    invocation) -> new id registered in ``pending``.

    Raises:
        ValueError: if ``raw`` normalizes to an empty key
    """
    key = normalize_key(raw)
    if key is None:
        raise ValueError("cannot create an entity for an empty natural key")
    if key in persisted:
        return persisted[key]
    if key not in pending:
        pending[key] = id_factory()
    return pending[key]


class EntityIndex:
    """Persisted + pending lookup pair for one entity type."""

    def __init__(self, persisted: dict[str, str] | None = None, id_factory: Callable[[], str] = new_id) -> None:
        self.persisted: dict[str, str] = persisted if persisted is not None else {}
        self.pending: dict[str, str] = {}
        self._id_factory = id_factory

    @classmethod
    def load(cls, cursor: Any, query: str) -> EntityIndex:
        return cls(build_lookup(cursor, query))

    def resolve(self, raw: Any) -> str | None:
        key = normalize_key(raw)
        if key is None:
            return None
        return self.persisted.get(key) or self.pending.get(key)

    def get_or_create(self, raw: Any) -> str:
        return get_or_create(raw, self.persisted, self.pending, self._id_factory)

    def is_persisted(self, raw: Any) -> bool:
        key = normalize_key(raw)
        return key is not None and key in self.persisted

    def is_pending(self, raw: Any) -> bool:
        key = normalize_key(raw)
        return key is not None and key in self.pending

    def __contains__(self, raw: object) -> bool:
        return self.resolve(raw) is not None
