from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the JSON Lines import log.

One record per row-level warning and one per fatal (invocation-level) error,
so an operator can audit a run after the console output is gone.
"""

__all__ = [
    "ErrorRecord",
    "SEVERITY_WARNING",
    "SEVERITY_ERROR",
]

SEVERITY_WARNING = "WARNING"
SEVERITY_ERROR = "ERROR"


@dataclass(frozen=True)
class ErrorRecord:
    """Structured record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        import_type: import type value (e.g. "staffing"), or "<none>" before dispatch
        severity: WARNING for skipped/degraded rows, ERROR for a rolled-back run
        error_type: classification in UPPER_SNAKE_CASE format
        message: human-readable description
    """
    timestamp: str  # ISO8601 UTC
    import_type: str
    severity: str
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(import_type: str, severity: str, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            import_type=import_type,
            severity=severity,
            error_type=error_type,
            message=message,
        )

    @staticmethod
    def warning(import_type: str, message: str) -> ErrorRecord:
        return ErrorRecord.create(import_type, SEVERITY_WARNING, "ROW_SKIPPED", message)

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
