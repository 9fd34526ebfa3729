"""Command-line entry point for table migration and recovery."""

import argparse
import logging
import sys
from typing import List, Optional

from .config import DEFAULT_CONFIG_PATH, load_config, load_environment
from .errors import MigrationError
from .models.migration import MigrationRun
from .orchestrator import MigrationOrchestrator
from .recovery import RecoveryOrchestrator
from .services.events import EventEmitter, log_progress
from .services.ledger import FAILED_ROWS_KEY, JsonFileLedgerStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Table Migration Tool - Migrate rows and attachments between tables"
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to migration config file")
    common.add_argument("--env-file", help="Path to .env file with credentials (default: ./.env)")
    common.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    run_options = argparse.ArgumentParser(add_help=False)
    run_options.add_argument("--ledger-dir", default=".", help="Directory for results and failure ledgers")
    run_options.add_argument("--work-dir", help="Directory for downloads and staged documents")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Full migration
    subparsers.add_parser("migrate", parents=[common, run_options], help="Migrate every row of the source table")

    # Recovery
    recover_parser = subparsers.add_parser(
        "recover",
        parents=[common, run_options],
        help="Retry only the rows recorded in a failure ledger",
    )
    recover_parser.add_argument(
        "--ledger",
        default=FAILED_ROWS_KEY,
        help="Ledger to recover from (e.g. failed-rows or still-failed-rows)",
    )

    # Mapping plan
    subparsers.add_parser("plan", parents=[common], help="Show the resolved column mapping")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if args.command not in ("migrate", "recover", "plan"):
        parser.print_help()
        return EXIT_FATAL

    try:
        load_environment(args.env_file)
        config = load_config(args.config)

        if args.command == "plan":
            return run_plan(config)
        if args.command == "migrate":
            return run_migration(args, config)
        return run_recovery(args, config)

    except MigrationError as e:
        logger.error(f"{type(e).__name__}: {e.message}")
        return EXIT_FATAL


def _events() -> EventEmitter:
    events = EventEmitter()
    events.subscribe(log_progress)
    return events


def run_plan(config) -> int:
    """Print the resolved column mapping."""
    orchestrator = MigrationOrchestrator.from_config(config)
    mappings = orchestrator.plan()

    print("\n" + "=" * 60)
    print("COLUMN MAPPING PLAN")
    print("=" * 60)
    for mapping in mappings:
        print(
            f"{mapping.source.name} [{mapping.source.format_type}] -> "
            f"{mapping.destination.name} [{mapping.destination.format_type}]  "
            f"({mapping.directive.describe()})"
        )
    print(f"\n{len(mappings)} columns mapped")
    return EXIT_OK


def run_migration(args, config) -> int:
    """Run a full migration."""
    orchestrator = MigrationOrchestrator.from_config(
        config,
        ledger_store=JsonFileLedgerStore(args.ledger_dir),
        work_dir=args.work_dir,
        events=_events(),
    )
    result = orchestrator.run_migration()
    _print_summary("MIGRATION COMPLETE", result)
    if result.failed:
        print(f"Retry failed rows with: tablemigrate recover --config {args.config} --ledger-dir {args.ledger_dir}")
    return EXIT_PARTIAL if result.failed else EXIT_OK


def run_recovery(args, config) -> int:
    """Recover the rows listed in a failure ledger."""
    orchestrator = RecoveryOrchestrator.from_config(
        config,
        ledger_store=JsonFileLedgerStore(args.ledger_dir),
        work_dir=args.work_dir,
        events=_events(),
        ledger_key=args.ledger,
    )
    result = orchestrator.run_migration()
    _print_summary("RECOVERY COMPLETE", result)
    if result.failed:
        print(
            "Retry the remaining rows with: "
            f"tablemigrate recover --config {args.config} --ledger-dir {args.ledger_dir} --ledger still-failed-rows"
        )
    return EXIT_PARTIAL if result.failed else EXIT_OK


def _print_summary(title: str, result: MigrationRun) -> None:
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)
    print(f"Status: {result.status.value}")
    print(f"Rows Processed: {result.total_rows}")
    print(f"Succeeded: {len(result.succeeded)}")
    print(f"Failed: {len(result.failed)}")
    print(f"Files Processed: {result.files_processed}")
    if result.duration_seconds:
        print(f"Duration: {result.duration_seconds:.2f} seconds")


if __name__ == "__main__":
    sys.exit(main())
