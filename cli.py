#!/usr/bin/env python3
"""
Interview Dispatch: Command Line Interface
Reads interview scheduling rows, sends one invitation per round, and
records every outcome in Airtable.

Usage:
    python cli.py --csv ./input/data.csv
    python cli.py --csv ./input/data.csv --force      # resend already-processed rounds
    python cli.py --list-records                      # show what the table holds

Exit code is non-zero only for startup failures (missing configuration,
schema provisioning failing, unreadable input, unsupported mode).
"""
import argparse
import logging
import sys
from collections import Counter
from pathlib import Path

import httpx

from config.settings import config, missing_required_settings
from memory.airtable_schema import AirtableSchemaProvisioner, SchemaError
from memory.airtable_store import AirtableError, AirtableStore
from orchestrator.batch import BatchOrchestrator
from orchestrator.dispatch import RoundDispatcher
from outputs.formatters import format_summary, format_unit_line
from outputs.mailersend_notifier import MailerSendNotifier
from triggers.csv_source import CsvSourceError, read_csv_rows

logger = logging.getLogger("dispatch.cli")


def setup_logging(debug: bool = False):
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Interview Dispatch: send round invitations and track them in Airtable",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python cli.py --csv ./input/data.csv
  python cli.py --csv ./input/data.csv --force --verbose
        """,
    )
    parser.add_argument("--csv", type=Path, default=None, help="Path to the scheduling CSV export")
    parser.add_argument(
        "--use-airtable",
        action="store_true",
        help="Read input rows from the Airtable table itself (not implemented)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        default=None,
        help="Resend rounds that already have a record (default: FORCE_SEND env var)",
    )
    parser.add_argument(
        "--list-records",
        action="store_true",
        help="Print a status breakdown of the outcome table and exit",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def cmd_list_records(store: AirtableStore) -> int:
    """Status breakdown of every record in the outcome table."""
    counts = Counter()
    total = 0
    try:
        for record in store.iter_records():
            counts[record.fields.get("mail_status", "unknown")] += 1
            total += 1
    except (AirtableError, httpx.HTTPError) as e:
        print(f"ERROR: Could not read the outcome table: {e}")
        return 1

    print(f"\n{'=' * 60}")
    print(f"Outcome table: {total} records")
    for status, count in sorted(counts.items()):
        print(f"  {status:<10} {count}")
    print(f"{'=' * 60}\n")
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose or config.debug)

    if not args.csv and not args.use_airtable and not args.list_records:
        print("ERROR: Must specify either --csv <path> or --use-airtable")
        print("\nUsage:")
        print("  python cli.py --csv ./input/data.csv")
        print("  python cli.py --use-airtable")
        return 1

    if args.use_airtable:
        print("ERROR: --use-airtable mode is not implemented in this version")
        print("Please use --csv mode with the scheduling CSV export")
        return 1

    missing = missing_required_settings()
    if missing:
        print(f"ERROR: Missing required environment variables: {', '.join(missing)}")
        print("\nPlease set these in your .env file or environment")
        return 1

    store = AirtableStore()
    try:
        if args.list_records:
            return cmd_list_records(store)

        try:
            report = AirtableSchemaProvisioner(store).ensure_required_fields()
        except SchemaError as e:
            print(f"ERROR: Failed to set up Airtable fields: {e}")
            print("You may need to create the required fields manually")
            return 1
        store.lookup_enabled = report.has_lookup_field

        try:
            rows = read_csv_rows(args.csv)
        except CsvSourceError as e:
            print(f"ERROR: {e}")
            return 1

        notifier = MailerSendNotifier()
        if not notifier.check_connection():
            logger.warning("MailerSend token check failed - sends will likely fail")

        force = config.dispatch.force_send if args.force is None else args.force
        mode = "FORCE RESEND" if force else "LIVE"
        print(f"\n{'=' * 60}")
        print(f"Interview Dispatch [{mode}]")
        print(f"Source: {args.csv}")
        print(f"Rows:   {len(rows)}")
        print(f"Table:  {config.airtable.table_name}")
        print(f"{'=' * 60}\n")

        dispatcher = RoundDispatcher(
            store=store,
            notifier=notifier,
            allowed_domains=config.dispatch.allowed_link_domains,
        )
        orchestrator = BatchOrchestrator(
            dispatcher,
            timezone_name=config.dispatch.default_timezone,
            force_send=force,
            on_result=lambda result: print(format_unit_line(result)),
        )
        try:
            summary = orchestrator.run(rows)
        finally:
            notifier.close()

        print()
        print(format_summary(summary))
        print("\nProcessing complete!")
        return 0
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
