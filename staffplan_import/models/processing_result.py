from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from typing import Any

from .import_models import ImportState, ImportType

"""Import result models: the per-invocation summary and batch timing statistics."""

SUCCESS_MESSAGE = "Importazione completata."
DRY_RUN_MESSAGE = "Simulazione completata: nessuna modifica salvata."


@dataclass(frozen=True)
class ImportSummary:
    """Outcome of one successful import invocation.

    ``warnings`` keeps row order. ``inserted_rows`` counts rows handed to the
    database per table (rows absorbed by a conflict clause are included).
    """
    import_type: ImportType
    message: str
    warnings: list[str]
    state: ImportState
    inserted_rows: dict[str, int] = field(default_factory=dict)
    elapsed_seconds: float = 0.0
    total_batches: int = 0
    avg_batch_seconds: float = 0.0
    p95_batch_seconds: float = 0.0
    dry_run: bool = False

    @property
    def total_inserted_rows(self) -> int:
        return sum(self.inserted_rows.values())

    def to_response(self) -> dict[str, Any]:
        """Body returned to the caller on success."""
        return {"message": self.message, "warnings": list(self.warnings)}


class BatchStatsAccumulator:
    """Collects batch timings and reduces them to (count, mean, p95)."""

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Calculate batch statistics.

        Returns:
            tuple: (total_batches, avg_batch_seconds, p95_batch_seconds)
        """
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]  # 95th percentile (19th out of 20 quantiles, 0-indexed)

        return (total_batches, avg_batch_seconds, p95_batch_seconds)
