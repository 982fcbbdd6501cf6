"""Command line interface for running migration plans."""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from .clients.rest_client import RestOrgClient
from .config import SCHEMA_CACHE_DIR, load_settings
from .confirm import Confirm, always_abort, always_continue, prompt_confirm
from .errors import MigrationError, PlanLoadError
from .models.plan import load_plan
from .orchestrator import MigrationOrchestrator

logger = logging.getLogger(__name__)

EXIT_COMPLETED = 0
EXIT_ABORTED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="orgmigrate",
        description="Org Migration Tool - Move records between orgs with a migration plan"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Run a plan
    run_parser = subparsers.add_parser("run", help="Run a migration plan")
    run_parser.add_argument("--file", "-f", help="Path to the migration plan (default: migration_plan.py)")
    run_parser.add_argument("--source", "-s", help="Source org alias, overrides the plan")
    run_parser.add_argument("--destination", "-d", help="Destination org alias, overrides the plan")
    run_parser.add_argument("--name", "-n", help="Run only the step with this name")
    run_parser.add_argument("--settings", help="Path to the settings file")
    run_parser.add_argument("--schema-dir", default=SCHEMA_CACHE_DIR, help="Directory of cached object describes")

    answer = run_parser.add_mutually_exclusive_group()
    answer.add_argument("--yes", "-y", action="store_true", help="Continue after every failure")
    answer.add_argument("--no", action="store_true", help="Abort on the first failure")

    run_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    return parser


def choose_confirm(args) -> Optional[Confirm]:
    """Confirmation strategy from the flags, or the terminal when interactive."""
    if args.yes:
        return always_continue
    if args.no:
        return always_abort
    if sys.stdin.isatty():
        return prompt_confirm
    return None


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

    if args.command == "run":
        return run_migration(args)

    parser.print_help()
    return EXIT_USAGE


def run_migration(args) -> int:
    """Run a migration plan file."""
    confirm = choose_confirm(args)
    if confirm is None:
        print("Not running in a terminal: pass --yes or --no to decide what happens on failures",
              file=sys.stderr)
        return EXIT_USAGE

    try:
        settings = load_settings(args.settings)
        plan_path = settings.resolve_plan_path(args.file)
        plan = load_plan(plan_path)
    except MigrationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    orchestrator = MigrationOrchestrator(
        plan,
        RestOrgClient(settings),
        confirm,
        source=args.source,
        destination=args.destination,
        settings=settings,
        only_step=args.name,
        schema_cache_dir=args.schema_dir if os.path.isdir(args.schema_dir) else None,
        report_dir=str(Path(plan.base_dir) / "logs"),
    )

    try:
        result = orchestrator.run_migration()
    except PlanLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    print("\n" + "=" * 60)
    print("MIGRATION COMPLETE" if not result.aborted else "MIGRATION ABORTED")
    print("=" * 60)
    print(f"Status: {result.status.value}")
    print(f"Steps: {len(result.steps)}")
    for step in result.steps:
        print(f"  {step.index} - {step.name}: {step.status.value}")
    print(f"Records Queried: {result.total_records_queried}")
    print(f"Records Written: {result.total_records_written}")
    print(f"Failed: {result.total_records_failed}")
    if result.aborted:
        print(f"Aborted at: {result.aborted_at_step} ({result.abort_reason})")
    if result.duration_seconds:
        print(f"Duration: {result.duration_seconds:.2f} seconds")

    return EXIT_ABORTED if result.aborted else EXIT_COMPLETED


if __name__ == "__main__":
    sys.exit(main())
