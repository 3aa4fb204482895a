from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from contextlib import contextmanager
from pathlib import Path

import psycopg2
from dotenv import load_dotenv

from billing_recon.config.loader import DEFAULT_CONFIG_PATH, ConfigError, ReconConfig, load_config
from billing_recon.db.archive import DatabaseArchive, UpstreamStorageError, ensure_archive_table
from billing_recon.excel.reader import MalformedWorkbookError, parse_workbook
from billing_recon.logging.init import log_summary, set_debug, setup_logging
from billing_recon.models.requests import RequestedBy, SummaryRequest
from billing_recon.services.engine import ExportedFile, ReconciliationService
from billing_recon.services.ingest import IngestError, load_uploads, scan_upload_directory
from billing_recon.services.summary import render_summary_line

"""CLI entrypoint: ``python -m billing_recon.cli``.

One run = one upload batch:
- load config (``config/recon.yml``) and ``.env``
- ingest every spreadsheet of the source directory as one batch
  (archived to PostgreSQL when a connection is available, mock mode otherwise)
- log per-metric totals, write the pivot export (and optionally the
  year-over-year export) to the output directory
- print the SUMMARY line

Exit codes: 0 all files parsed, 2 some files failed, 1 fatal.
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

DEFAULT_USER = "cli"


PG_ENV_KEYS = ("PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE")


def resolve_dsn(cfg: ReconConfig) -> str:
    """Build the libpq connection string.

    Resolution order: DATABASE_URL / PGDSN, then individual PGHOST/PGPORT/
    PGUSER/PGPASSWORD/PGDATABASE variables (the ``database`` section fills the
    ones left unset), then the ``database.dsn`` config key, then the
    ``database`` section alone. ``.env`` values are already in the environment
    (loaded with override).
    """
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN")
    if dsn:
        return dsn
    if db_cfg.dsn and not any(os.getenv(key) for key in PG_ENV_KEYS):
        return db_cfg.dsn
    host = os.getenv("PGHOST") or db_cfg.host or "localhost"
    port = os.getenv("PGPORT") or (str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER") or db_cfg.user or "postgres"
    password = os.getenv("PGPASSWORD") or db_cfg.password or ""
    database = os.getenv("PGDATABASE") or db_cfg.database or "postgres"
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def _db_connection(cfg: ReconConfig):  # pragma: no cover (thin wrapper)
    """psycopg2 connection + cursor for the DSN from :func:`resolve_dsn`."""
    conn = psycopg2.connect(resolve_dsn(cfg))
    conn.autocommit = True  # DatabaseArchive issues BEGIN/COMMIT per file
    try:
        cur = conn.cursor()
        try:
            yield cur
        finally:
            cur.close()
    finally:
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; its values win over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _month(value: str) -> int:
    month = int(value)
    if not 1 <= month <= 12:
        raise argparse.ArgumentTypeError(f"month must be within 1-12, got {value}")
    return month


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Utility billing reconciliation and report engine")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to the YAML config")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print headers & first blocks of each file then exit")
    p.add_argument("--user", default=DEFAULT_USER, help="User id recorded with archived uploads")
    p.add_argument("--apartment", help="Only this apartment label (exact match)")
    p.add_argument("--date-from", help="Inclusive period start filter")
    p.add_argument("--date-to", help="Inclusive period end filter")
    p.add_argument("--metric", action="append", default=[], help="Metric to include (repeatable)")
    p.add_argument("--only-mismatches", action="store_true", help="Keep only rows that need attention")
    p.add_argument("--no-validation", action="store_true", help="Omit validation-derived summary fields")
    p.add_argument("--export-column", action="append", default=[], help="Export column key (repeatable)")
    p.add_argument("--no-yearly-summary", action="store_true", help="Skip the annual rollup section")
    p.add_argument("--yoy", action="store_true", help="Also write the year-over-year export")
    p.add_argument("--comparison-month", type=_month, help="Closing month for the year-over-year export")
    return p.parse_args(argv)


def _inspect_data(cfg: ReconConfig) -> int:
    directory = Path(cfg.source_directory)
    try:
        paths = scan_upload_directory(directory)
    except IngestError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    if not paths:
        print("inspect: no spreadsheet files")
        return EXIT_SUCCESS_ALL
    for path in paths:
        print(f"FILE: {path.name}")
        try:
            workbook = parse_workbook(path.read_bytes(), path.name)
        except (MalformedWorkbookError, OSError) as e:
            print(f"  read_error: {e}")
            continue
        print(f"  metrics={list(workbook.headers)} records={workbook.record_count}")
        for record in workbook.records[:3]:
            sample = {m.metric: (m.start_value, m.end_value, m.consumption) for m in record.metrics}
            print(f"    {record.apartment} {record.date_from} -> {record.date_to} {sample}")
    return EXIT_SUCCESS_ALL


def _build_request(session_id: str, cfg: ReconConfig, args: argparse.Namespace) -> SummaryRequest:
    return SummaryRequest(
        session_id=session_id,
        apartment=args.apartment,
        date_from=args.date_from,
        date_to=args.date_to,
        metrics=tuple(args.metric),
        include_validation=not args.no_validation,
        include_only_mismatches=args.only_mismatches,
        export_columns=tuple(args.export_column) or cfg.export.columns,
        include_yearly_summary=cfg.export.include_yearly_summary and not args.no_yearly_summary,
        comparison_month=args.comparison_month or cfg.export.comparison_month,
    )


def _write_export(output_dir: Path, exported: ExportedFile) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    target = output_dir / exported.file_name
    target.write_bytes(exported.content)
    return target


def _run_batch(
    service: ReconciliationService, cfg: ReconConfig, args: argparse.Namespace, logger: logging.Logger
) -> int:
    started = time.perf_counter()
    try:
        paths = scan_upload_directory(Path(cfg.source_directory))
        if not paths:
            logger.info("no spreadsheet files found")
            log_summary(render_summary_line(0, 0, 0, 0, 0, 0.0)[8:])
            return EXIT_SUCCESS_ALL
        result = service.upload_files(load_uploads(paths), RequestedBy(user_id=args.user))
    except (IngestError, OSError) as e:
        logger.error(f"ingest: {e}")
        return EXIT_FATAL

    for record in result.uploaded_files:
        if record.error:
            logger.warning(f"archive: {record.source_file_name}: {record.error}")

    draft = result.analysis_draft
    if draft is None:
        logger.error(f"no file could be parsed: {result.analysis_draft_error}")
        log_summary(
            render_summary_line(
                result.files_count, 0, result.failed_files, 0, 0, time.perf_counter() - started
            )[8:]
        )
        return EXIT_FATAL

    logger.info(
        f"session={draft.session_id[:8]} apartments={len(draft.apartments)} "
        f"metrics={len(draft.available_metrics)} period={draft.period_range.min}..{draft.period_range.max}"
    )

    request = _build_request(draft.session_id, cfg, args)
    summary = service.build_summary(request)
    for totals in summary.totals_by_metric:
        logger.info(
            f"metric={totals.metric} rows={totals.row_count} consumption={totals.total_consumption} "
            f"reported={totals.reported_total} computed={totals.computed_total} difference={totals.difference}"
        )

    output_dir = Path(cfg.output_directory)
    target = _write_export(output_dir, service.build_summary_excel_file(request))
    logger.info(f"export written: {target}")
    if args.yoy:
        target = _write_export(output_dir, service.build_year_over_year_excel_file(request))
        logger.info(f"year over year export written: {target}")

    summary_line = render_summary_line(
        result.files_count,
        result.parsed_files,
        result.failed_files,
        draft.records_count,
        summary.stats.invalid_rows,
        time.perf_counter() - started,
    )
    # log_summary adds the "SUMMARY " label itself
    log_summary(summary_line[8:])

    return EXIT_PARTIAL_FAILURE if result.failed_files > 0 else EXIT_SUCCESS_ALL


def _archive_for(cursor, cfg: ReconConfig, logger: logging.Logger) -> DatabaseArchive | None:
    try:
        ensure_archive_table(cursor, cfg.archive.table)
    except UpstreamStorageError as e:
        logger.warning(f"archive disabled: {e}")
        return None
    return DatabaseArchive(cursor, cfg.archive.table)


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # Only read sys.argv when called without arguments (tests pass [])
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.debug:
        set_debug(True)
        logger.debug("debug mode enabled")

    directory = Path(cfg.source_directory)
    if not directory.exists():
        logger.error(f"directory not found: {directory}")
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(cfg)

    logger.info(f"Processing files from: {directory}")

    # DISABLE_DB_CONNECT=1 forces mock mode (no archival), e.g. in tests
    if os.getenv("DISABLE_DB_CONNECT") == "1" or not cfg.archive.enabled:
        logger.debug("archive disabled -> mock mode")
        return _run_batch(ReconciliationService.from_config(cfg), cfg, args, logger)

    try:
        with _db_connection(cfg) as cur:
            logger.info("mode=live")
            service = ReconciliationService.from_config(cfg, archive=_archive_for(cur, cfg, logger))
            return _run_batch(service, cfg, args, logger)
    except psycopg2.OperationalError as db_e:
        # SUPPRESS_DB_WARNING=1 keeps the fallback quiet in tests
        if os.getenv("SUPPRESS_DB_WARNING") == "1":
            logger.debug(f"DB connection failed -> fallback to mock mode: {db_e}")
        else:
            logger.info(f"DB connection failed -> fallback to mock mode: {db_e}")
    return _run_batch(ReconciliationService.from_config(cfg), cfg, args, logger)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
