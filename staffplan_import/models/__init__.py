"""Domain models for the staffing bulk importer."""

from .config_models import AppConfig, DatabaseConfig
from .error_record import ErrorRecord
from .import_models import ImportSettings, ImportState, ImportType, SheetLayout
from .processing_result import BatchStatsAccumulator, ImportSummary

__all__ = [
    # Configuration models
    "AppConfig",
    "DatabaseConfig",
    # Import models
    "ImportSettings",
    "ImportState",
    "ImportType",
    "SheetLayout",
    # Results
    "BatchStatsAccumulator",
    "ErrorRecord",
    "ImportSummary",
]
