from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from types import ModuleType
from typing import Any

from ..db.batch_insert import BatchMetrics
from ..models.import_models import ImportSettings, ImportState, ImportType, SheetLayout
from ..models.processing_result import (
    DRY_RUN_MESSAGE,
    SUCCESS_MESSAGE,
    BatchStatsAccumulator,
    ImportSummary,
)
from .importers import (
    core_entities,
    interviews,
    leaves,
    resource_requests,
    skills,
    staffing,
    tutors,
    users,
)
from .importers.base import ImportContext

"""Import orchestration: one import request, one transaction.

The orchestrator validates the request, opens the transaction, dispatches to the
importer of the requested type and closes the transaction. It is the only place
that issues BEGIN / COMMIT / ROLLBACK; importers and the bulk-insert executor
only run statements on the shared cursor.

Row-level problems never reach this module as exceptions (they come back as
warnings). Anything that is raised between BEGIN and COMMIT rolls the whole
invocation back.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "IMPORTERS",
    "ImportProcessingError",
    "UnknownImportTypeError",
    "InvalidPayloadError",
    "layouts_for",
    "resolve_import_type",
    "validate_payload",
    "run_import",
    "handle_import_request",
]

IMPORTERS: dict[ImportType, ModuleType] = {
    ImportType.CORE_ENTITIES: core_entities,
    ImportType.STAFFING: staffing,
    ImportType.RESOURCE_REQUESTS: resource_requests,
    ImportType.INTERVIEWS: interviews,
    ImportType.SKILLS: skills,
    ImportType.LEAVES: leaves,
    ImportType.USERS_PERMISSIONS: users,
    ImportType.TUTOR_MAPPING: tutors,
}


class ImportProcessingError(Exception):
    """Base exception for invocation-level failures."""


class UnknownImportTypeError(ImportProcessingError):
    pass


class InvalidPayloadError(ImportProcessingError):
    pass


def resolve_import_type(raw: Any) -> ImportType:
    if isinstance(raw, ImportType):
        return raw
    try:
        return ImportType(str(raw).strip())
    except ValueError as e:
        known = ", ".join(t.value for t in ImportType)
        raise UnknownImportTypeError(f"Tipo di importazione non valido: '{raw}' (ammessi: {known})") from e


def layouts_for(import_type: ImportType | str) -> tuple[SheetLayout, ...]:
    return IMPORTERS[resolve_import_type(import_type)].LAYOUTS


def validate_payload(import_type: ImportType, payload: Any) -> None:
    """Check the payload shape: a mapping of sheet key -> list of row mappings.

    Keys no layout of ``import_type`` knows about are ignored.

    Raises:
        InvalidPayloadError: on any shape violation
    """
    if not isinstance(payload, Mapping):
        raise InvalidPayloadError(f"payload must be a mapping, got {type(payload).__name__}")
    known = {layout.payload_key for layout in layouts_for(import_type)}
    for key, rows in payload.items():
        if key not in known:
            logger.debug("type=%s ignoring unknown payload key %r", import_type.value, key)
            continue
        if rows is None:
            continue
        if not isinstance(rows, (list, tuple)):
            raise InvalidPayloadError(f"'{key}' must be a list of rows, got {type(rows).__name__}")
        for i, row in enumerate(rows):
            if not isinstance(row, Mapping):
                raise InvalidPayloadError(f"'{key}' row {i} must be a mapping, got {type(row).__name__}")


def _rollback(cursor: Any, import_type: ImportType) -> None:
    try:
        cursor.execute("ROLLBACK")
    except Exception as rollback_e:
        # logged only; the original error is the one that propagates
        logger.error("type=%s rollback failed: %s", import_type.value, rollback_e)


def run_import(
    cursor: Any,
    import_type: ImportType | str,
    payload: Any,
    settings: ImportSettings | None = None,
    *,
    dry_run: bool = False,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> ImportSummary:
    """Run one import invocation inside a single transaction.

    Args:
        cursor: DB-API cursor on a connection with autocommit disabled
        import_type: one of ImportType (or its string value)
        payload: ``{payload key: [row mapping, ...]}``
        settings: tunables; defaults to ImportSettings()
        dry_run: run every statement, then roll back instead of committing
        metrics_callback: receives one BatchMetrics per executed batch

    Returns:
        ImportSummary with the ordered warnings

    Raises:
        UnknownImportTypeError: unknown ``import_type``, nothing executed
        InvalidPayloadError: malformed payload, nothing executed
        ImportProcessingError: any failure after BEGIN (the transaction is rolled back)
    """
    import_type = resolve_import_type(import_type)
    validate_payload(import_type, payload)
    settings = settings or ImportSettings()
    state = ImportState.RECEIVED
    started = time.perf_counter()

    stats = BatchStatsAccumulator()

    def _on_batch(metrics: BatchMetrics) -> None:
        stats.add_batch_time(metrics.elapsed_seconds)
        if metrics_callback is not None:
            metrics_callback(metrics)

    ctx = ImportContext(cursor=cursor, settings=settings, metrics_callback=_on_batch)
    importer = IMPORTERS[import_type]

    try:
        cursor.execute("BEGIN")
    except Exception as e:
        logger.error("type=%s could not open transaction: %s", import_type.value, e)
        raise ImportProcessingError(f"transaction begin failed: {e}") from e
    state = ImportState.TRANSACTION_OPEN
    logger.debug("type=%s state=%s dry_run=%s", import_type.value, state.value, dry_run)

    try:
        importer.import_rows(ctx, payload)
        if dry_run:
            cursor.execute("ROLLBACK")
            state = ImportState.ROLLED_BACK
        else:
            cursor.execute("COMMIT")
            state = ImportState.COMMITTED
    except Exception as e:
        _rollback(cursor, import_type)
        state = ImportState.ROLLED_BACK
        logger.error("type=%s import failed, transaction rolled back: %s", import_type.value, e)
        raise ImportProcessingError(str(e)) from e

    elapsed = time.perf_counter() - started
    total_batches, avg_batch, p95_batch = stats.get_stats()
    logger.debug(
        "type=%s state=%s warnings=%d batches=%d elapsed=%.3f",
        import_type.value, state.value, len(ctx.warnings), total_batches, elapsed,
    )
    return ImportSummary(
        import_type=import_type,
        message=DRY_RUN_MESSAGE if dry_run else SUCCESS_MESSAGE,
        warnings=list(ctx.warnings),
        state=state,
        inserted_rows=dict(ctx.inserted_rows),
        elapsed_seconds=elapsed,
        total_batches=total_batches,
        avg_batch_seconds=avg_batch,
        p95_batch_seconds=p95_batch,
        dry_run=dry_run,
    )


def handle_import_request(
    cursor: Any,
    import_type: Any,
    payload: Any,
    settings: ImportSettings | None = None,
) -> tuple[int, dict[str, Any]]:
    """Request-level entry point: ``(status code, body)``.

    200 with ``{"message", "warnings"}`` on commit, 400 with ``{"error"}`` for an
    unknown type or malformed payload, 500 with ``{"error"}`` for anything that
    forced a rollback.
    """
    try:
        summary = run_import(cursor, import_type, payload, settings)
    except (UnknownImportTypeError, InvalidPayloadError) as e:
        return 400, {"error": str(e)}
    except ImportProcessingError as e:
        return 500, {"error": str(e)}
    return 200, summary.to_response()
