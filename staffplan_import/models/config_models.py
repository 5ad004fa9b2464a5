from __future__ import annotations

from dataclasses import dataclass

from .import_models import ImportSettings

"""Configuration dataclasses, produced by config.loader from config/import.yml."""


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration.

    Used as fallback when environment variables are not set.
    Environment variables take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class AppConfig:
    """Root configuration object for the importer CLI."""
    database: DatabaseConfig
    parameter_ceiling: int = 60000
    long_term_threshold_days: int = 60

    @property
    def settings(self) -> ImportSettings:
        return ImportSettings(
            parameter_ceiling=self.parameter_ceiling,
            long_term_threshold_days=self.long_term_threshold_days,
        )
