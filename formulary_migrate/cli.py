from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from .builders import BUILDER_REGISTRY, get_builder
from .compiler import RichTextCompiler
from .config import (
    ConfigError,
    Settings,
    SourceEntry,
    configure_logging,
    load_run_config,
    load_settings,
    validate_identifier,
)
from .models import RecordDefaults
from .pipeline import MigrationPipeline, MigrationStats
from .sheets import read_rows
from .store_base import RecordStore, RecordStoreError
from .store_jsonl import JsonlRecordStore
from .store_postgres import PostgresRecordStore, create_db_engine

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_ROW_FAILURES = 2
DEFAULT_DRY_RUN_OUTPUT = Path("migration_dry_run.jsonl")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Migrate formulary spreadsheets into the medication and formulation tables.",
    )
    parser.add_argument(
        "--run-config",
        type=Path,
        help="YAML file listing the spreadsheet sources to migrate.",
    )
    parser.add_argument(
        "--source",
        choices=sorted(BUILDER_REGISTRY),
        help="Builder for a single spreadsheet given with --input.",
    )
    parser.add_argument("--input", type=Path, help="Spreadsheet to migrate with --source.")
    parser.add_argument("--sheet", help="Sheet name (default: first sheet).")
    parser.add_argument("--pharmacy-id", type=int, help="Override PHARMACY_ID for every source.")
    parser.add_argument("--workers", type=int, help="Concurrent formulation builds (default: MIGRATION_WORKERS).")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Write records to a JSON lines file instead of the database.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=DEFAULT_DRY_RUN_OUTPUT,
        help="JSON lines file for --dry-run.",
    )
    parser.add_argument("--env-file", type=Path, help="Optional .env file with database settings.")
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (repeatable).",
    )
    return parser.parse_args(argv)


def resolve_sources(args: argparse.Namespace) -> List[SourceEntry]:
    if args.run_config:
        sources = load_run_config(args.run_config).sources
        if not sources:
            raise ConfigError(f"No valid sources in {args.run_config}")
        return sources
    if not args.source or not args.input:
        raise ConfigError("Pass --run-config, or both --source and --input.")
    return [
        SourceEntry(
            name=args.source,
            builder=args.source,
            path=args.input,
            sheet_name=args.sheet if args.sheet else 0,
        )
    ]


def open_store(args: argparse.Namespace, settings: Settings):
    """Return (store, engine); engine is None for dry runs."""

    if args.dry_run:
        return JsonlRecordStore(args.output), None

    schema = validate_identifier(settings.db_schema)
    engine = create_db_engine(settings)
    try:
        connection = engine.connect()
    except SQLAlchemyError as exc:
        engine.dispose()
        raise RecordStoreError(f"Could not connect to {settings.db_host}:{settings.db_port}: {exc}") from exc
    return PostgresRecordStore(connection, schema), engine


def migrate_source(
    source: SourceEntry,
    store: RecordStore,
    compiler: RichTextCompiler,
    settings: Settings,
    args: argparse.Namespace,
) -> MigrationStats:
    pharmacy_id = settings.pharmacy_id
    if args.pharmacy_id is not None:
        pharmacy_id = args.pharmacy_id
    elif source.pharmacy_id is not None:
        pharmacy_id = source.pharmacy_id
    defaults = RecordDefaults(
        pharmacy_id=pharmacy_id,
        created_by=settings.created_by,
        edited_by=settings.edited_by,
        status=source.status,
    )
    builder = get_builder(source.builder, compiler=compiler, options=source.canonicalize, defaults=defaults)
    rows = read_rows(source.path, source.sheet_name)
    LOGGER.info("Migrating source '%s' (%s) from %s", source.name, source.builder, source.path)
    workers = args.workers or settings.workers
    return MigrationPipeline(builder, store, workers=workers).run(rows)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        settings = load_settings(args.env_file)
        sources = resolve_sources(args)
        store, engine = open_store(args, settings)
    except (ConfigError, RecordStoreError) as exc:
        LOGGER.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR

    compiler = RichTextCompiler(timeout=settings.compile_timeout, isolated=settings.compile_isolated)
    failed = False
    try:
        for source in sources:
            try:
                stats = migrate_source(source, store, compiler, settings, args)
            except (FileNotFoundError, ValueError) as exc:
                LOGGER.error("Failed to read %s: %s", source.path, exc)
                failed = True
                continue
            LOGGER.info("Source '%s': %s", source.name, stats.summary())
            failed = failed or not stats.ok
    finally:
        store.close()
        if engine is not None:
            engine.dispose()

    return EXIT_ROW_FAILURES if failed else EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
