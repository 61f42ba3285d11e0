#!/usr/bin/env python3
"""CLI for event certificates management tasks.

Usage:
    python -m cli <command>

Commands:
    generate             Generate certificates for an event from a participants CSV
    import-certificates  Bulk insert certificate rows from a CSV export
    migrate              Run database migrations
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _get_alembic_config():
    from alembic.config import Config

    api_dir = Path(__file__).resolve().parent
    cfg = Config(str(api_dir / "alembic.ini"))
    # Make script_location absolute so it works from any working directory.
    cfg.set_main_option("script_location", str(api_dir / "alembic"))
    return cfg


async def _generate(event_id: int, csv_path: Path, output_format: str | None) -> int:
    from core.config import get_settings
    from core.database import create_engine, create_session_maker, dispose_engine
    from core.storage import create_object_store
    from schemas import EventId
    from services.csv_import import parse_participants_csv
    from services.generation_service import generate_certificates

    parsed = parse_participants_csv(csv_path.read_bytes())
    if parsed.skipped:
        logger.warning(f"Skipped {parsed.skipped} rows missing email, name or category")

    engine = create_engine()
    store = create_object_store(get_settings())
    try:
        async with create_session_maker(engine)() as session:
            report = await generate_certificates(
                session,
                store,
                EventId(event_id),
                parsed.rows,
                output_format=output_format,
                skipped=parsed.skipped,
            )
            await session.commit()
    finally:
        await store.close()
        await dispose_engine(engine)

    print(report.model_dump_json(indent=2))
    return 0 if report.failed_count == 0 else 2


def cmd_generate(args: argparse.Namespace) -> int:
    """Generate certificates for an event from a CSV file."""
    from services.csv_import import CsvImportError
    from services.events_service import EventNotFoundError
    from services.generation_service import NoTemplatesError

    try:
        return asyncio.run(_generate(args.event_id, args.csv, args.format))
    except (EventNotFoundError, NoTemplatesError, CsvImportError) as e:
        logger.error(str(e))
        return 1


async def _import_certificates(csv_path: Path) -> int:
    from core.database import create_engine, create_session_maker, dispose_engine
    from services.certificates_service import bulk_add_certificates
    from services.csv_import import parse_certificates_csv

    parsed = parse_certificates_csv(csv_path.read_bytes())

    engine = create_engine()
    try:
        async with create_session_maker(engine)() as session:
            result = await bulk_add_certificates(session, parsed.rows)
            await session.commit()
    finally:
        await dispose_engine(engine)

    logger.info(
        f"Uploaded {result.uploaded} certificates, "
        f"skipped {result.skipped + parsed.skipped} rows"
    )
    return 0


def cmd_import_certificates(args: argparse.Namespace) -> int:
    """Bulk insert certificate rows from a CSV file."""
    from services.csv_import import CsvImportError

    try:
        return asyncio.run(_import_certificates(args.csv))
    except CsvImportError as e:
        logger.error(str(e))
        return 1


def cmd_migrate(args: argparse.Namespace) -> int:
    """Run database migrations."""
    from alembic import command

    cfg = _get_alembic_config()

    match args.action:
        case "upgrade":
            logger.info("Running database migrations...")
            command.upgrade(cfg, args.target or "head")
            logger.info("Migrations complete")
        case "downgrade":
            command.downgrade(cfg, args.target or "-1")
        case "current":
            command.current(cfg)
        case "history":
            command.history(cfg)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Event Certificates CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    generate = subparsers.add_parser(
        "generate",
        help="Generate certificates for an event from a participants CSV",
    )
    generate.add_argument("event_id", type=int, help="Event ID")
    generate.add_argument("csv", type=Path, help="CSV with email, name, category")
    generate.add_argument(
        "--format",
        choices=["pdf", "png"],
        default=None,
        help="Output format (default: CERTIFICATE_OUTPUT_FORMAT)",
    )

    import_certs = subparsers.add_parser(
        "import-certificates",
        help="Bulk insert certificate rows from a CSV export",
    )
    import_certs.add_argument("csv", type=Path, help="CSV with certificate links")

    migrate = subparsers.add_parser("migrate", help="Run database migrations")
    migrate.add_argument(
        "action",
        nargs="?",
        default="upgrade",
        choices=["upgrade", "downgrade", "current", "history"],
    )
    migrate.add_argument("target", nargs="?", default=None, help="Target revision")

    args = parser.parse_args(argv)

    if args.command == "generate":
        return cmd_generate(args)
    elif args.command == "import-certificates":
        return cmd_import_certificates(args)
    elif args.command == "migrate":
        return cmd_migrate(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
