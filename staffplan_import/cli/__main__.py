from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from ..config.loader import DEFAULT_CONFIG_PATH, ConfigError, default_config, load_config
from ..excel.reader import MissingColumnsError, SheetHeaderError, normalize_sheet, read_excel_file, read_workbook
from ..excel.template import write_template
from ..logging.error_log import ErrorLogBuffer
from ..logging.init import log_summary, setup_logging
from ..models.config_models import AppConfig, DatabaseConfig
from ..models.error_record import SEVERITY_ERROR, ErrorRecord
from ..models.import_models import ImportType
from ..services.orchestrator import (
    ImportProcessingError,
    UnknownImportTypeError,
    layouts_for,
    resolve_import_type,
    run_import,
)
from ..services.progress import ProgressTracker
from ..services.summary import render_summary_line

"""CLI entry point: ``python -m staffplan_import.cli --type <type> --file <xlsx>``.

Exit codes:
    0  committed (or simulated) without warnings
    2  committed (or simulated) with row warnings
    1  fatal: config, file, connection, unknown type, or rolled-back import
"""

EXIT_SUCCESS = 0
EXIT_WARNINGS = 2
EXIT_FATAL = 1


def build_dsn(db_cfg: DatabaseConfig) -> str:
    """Resolve connection parameters.

    Precedence: DATABASE_URL / PGDSN (whole DSN), then the individual PG*
    variables, then the ``database`` section of the config file.
    """
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def _db_connection(cfg: AppConfig):  # pragma: no cover (thin wrapper; exercised with a live database)
    """psycopg2 connection + cursor with autocommit off; the orchestrator owns BEGIN/COMMIT."""
    conn = psycopg2.connect(build_dsn(cfg.database))
    try:
        conn.autocommit = False
        with conn.cursor() as cur:
            yield cur
    finally:
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; its values override the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="python -m staffplan_import.cli",
        description="Bulk spreadsheet import for the staffing database",
    )
    p.add_argument("--type", dest="import_type", required=True,
                   help=f"Import type ({', '.join(t.value for t in ImportType)})")
    p.add_argument("--file", type=Path, help="Workbook (.xlsx) to import")
    p.add_argument("--config", type=Path, default=None,
                   help=f"YAML config (default: {DEFAULT_CONFIG_PATH} when present)")
    p.add_argument("--dry-run", action="store_true", help="Run the import, then roll back")
    p.add_argument("--json", action="store_true", help="Print the response body as JSON")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--template", type=Path, metavar="OUT_XLSX",
                   help="Write a blank template workbook for --type and exit")
    p.add_argument("--inspect-data", action="store_true",
                   help="Print sheet headers & first rows of --file then exit")
    return p.parse_args(argv)


def _resolve_config(path: Path | None) -> AppConfig:
    if path is not None:
        return load_config(path)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return default_config()


def _inspect_data(path: Path) -> int:
    raw = read_excel_file(path)
    print(f"FILE: {path.name}")
    for sname, df in raw.items():
        try:
            sd = normalize_sheet(df, sname)
        except SheetHeaderError as e:
            print(f"  SHEET: {sname} error={e}")
            continue
        print(f"  SHEET: {sname} cols={sd.columns} rows={len(sd.rows)}")
        # datetimes are not JSON serializable; show them in ISO form
        safe_rows = [
            {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in r.items()}
            for r in sd.rows[:3]
        ]
        print("    sample_rows=", safe_rows)
    return EXIT_SUCCESS


def _fatal(logger: logging.Logger, error_log: ErrorLogBuffer, import_type: str, error_type: str, message: str) -> int:
    logger.error(message)
    error_log.append(ErrorRecord.create(import_type, SEVERITY_ERROR, error_type, message))
    error_log.flush()
    return EXIT_FATAL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # only read sys.argv when no list is given (an empty list is a valid argv in tests)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)

    if args.debug:
        logger = setup_logging(logging.DEBUG)
        logger.debug("debug mode enabled")

    error_log = ErrorLogBuffer()

    try:
        import_type = resolve_import_type(args.import_type)
    except UnknownImportTypeError as e:
        return _fatal(logger, error_log, "<none>", "UNKNOWN_IMPORT_TYPE", str(e))
    type_label = import_type.value

    if args.template is not None:
        out = write_template(layouts_for(import_type), args.template)
        logger.info(f"template written: {out}")
        return EXIT_SUCCESS

    if args.file is None:
        return _fatal(logger, error_log, type_label, "FILE_NOT_FOUND", "--file is required")
    if not args.file.exists():
        return _fatal(logger, error_log, type_label, "FILE_NOT_FOUND", f"file not found: {args.file}")

    if args.inspect_data:
        return _inspect_data(args.file)

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = _resolve_config(args.config)
    except ConfigError as e:
        return _fatal(logger, error_log, type_label, "CONFIG_ERROR", f"config: {e}")

    try:
        payload = read_workbook(args.file, layouts_for(import_type))
    except (SheetHeaderError, MissingColumnsError) as e:
        return _fatal(logger, error_log, type_label, "SHEET_ERROR", f"sheet: {e}")
    except (OSError, ValueError) as e:
        return _fatal(logger, error_log, type_label, "FILE_READ_ERROR", f"read: {e}")

    logger.info(f"Importing {args.file.name} type={type_label}" + (" (dry run)" if args.dry_run else ""))

    try:
        with _db_connection(cfg) as cur, ProgressTracker() as progress:
            summary = run_import(
                cur,
                import_type,
                payload,
                cfg.settings,
                dry_run=args.dry_run,
                metrics_callback=progress.on_batch,
            )
    except ImportProcessingError as e:
        return _fatal(logger, error_log, type_label, "IMPORT_ROLLED_BACK", f"import: {e}")
    except psycopg2.Error as e:
        return _fatal(logger, error_log, type_label, "DB_CONNECTION_ERROR", f"database: {e}")

    for warning in summary.warnings:
        logger.warning(warning)
    error_log.extend_warnings(type_label, summary.warnings)
    log_path = error_log.flush()
    if log_path is not None:
        logger.info(f"warnings written to {log_path}")

    if args.json:
        print(json.dumps(summary.to_response(), ensure_ascii=False))
    else:
        logger.info(summary.message)
    log_summary(render_summary_line(summary))

    return EXIT_WARNINGS if summary.warnings else EXIT_SUCCESS


def run() -> Any:  # pragma: no cover
    raise SystemExit(main())


if __name__ == "__main__":  # pragma: no cover
    run()
