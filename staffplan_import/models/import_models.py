from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

"""Import request models: import types, transaction states, settings, sheet layouts."""

__all__ = [
    "ImportType",
    "ImportState",
    "ImportSettings",
    "SheetLayout",
]


class ImportType(str, Enum):
    """Closed set of import kinds; each maps to exactly one importer."""
    CORE_ENTITIES = "core_entities"
    STAFFING = "staffing"
    RESOURCE_REQUESTS = "resource_requests"
    INTERVIEWS = "interviews"
    SKILLS = "skills"
    LEAVES = "leaves"
    USERS_PERMISSIONS = "users_permissions"
    TUTOR_MAPPING = "tutor_mapping"


class ImportState(str, Enum):
    RECEIVED = "received"
    TRANSACTION_OPEN = "transaction_open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class ImportSettings:
    """Tunables shared by every importer of one invocation."""
    parameter_ceiling: int = 60000  # max bound values per INSERT statement
    long_term_threshold_days: int = 60  # resource requests longer than this are long-term


@dataclass(frozen=True)
class SheetLayout:
    """Fixed shape of one logical sheet.

    ``payload_key`` is the key the importer reads from the request payload,
    ``sheet_name`` the worksheet name in the workbook template. ``headers`` are the
    human-readable column labels, matched exactly.
    """
    payload_key: str
    sheet_name: str
    headers: tuple[str, ...]
    required: frozenset[str] = field(default_factory=frozenset)
