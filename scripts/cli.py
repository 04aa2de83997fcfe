"""Minimal CLI entry point for running and inspecting the email piping pipeline."""

from __future__ import annotations

import argparse
import getpass
import logging
import sys

from email_piping.config.settings import SettingsProvider
from email_piping.core.models import CycleSummary
from email_piping.pipeline.cycle import IngestionCycle
from email_piping.pipeline.scheduler import CycleRunner, IntervalScheduler
from email_piping.storage.run_log import SqliteRunLog


def setup_logging(level: str) -> None:
    """Configure logging with timestamp and module info."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def format_summary(summary: CycleSummary) -> str:
    return (
        f"total={summary.total_messages} "
        f"created={summary.created_count} "
        f"updated={summary.updated_count} "
        f"skipped={summary.skipped_count} "
        f"failed={summary.failed_count}"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Email Piping - Turn mailbox messages into helpdesk tickets"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("run-once", help="Run a single ingestion cycle")

    watch_parser = subparsers.add_parser("watch", help="Run cycles on the configured interval")
    watch_parser.add_argument(
        "--max-cycles",
        type=int,
        default=None,
        dest="max_cycles",
        help="Stop after N cycles (default: run until interrupted)",
    )

    encrypt_parser = subparsers.add_parser(
        "encrypt", help="Encrypt a password for use in PIPING_*_PASSWORD settings"
    )
    encrypt_parser.add_argument(
        "--stdin", action="store_true", help="Read the secret from stdin instead of prompting"
    )

    log_parser = subparsers.add_parser("log", help="Show recorded runs, newest first")
    log_parser.add_argument("--limit", type=int, default=20, help="Number of entries to show")

    return parser


def _validate_args(args: argparse.Namespace) -> None:
    """Reject non-positive counts."""
    if getattr(args, "max_cycles", None) is not None and args.max_cycles <= 0:
        print("Error: --max-cycles must be positive", file=sys.stderr)
        sys.exit(1)
    if getattr(args, "limit", 1) <= 0:
        print("Error: --limit must be positive", file=sys.stderr)
        sys.exit(1)


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    _validate_args(args)

    provider = SettingsProvider()
    settings = provider.get_settings()
    setup_logging(settings.log_level)

    try:
        if args.command == "encrypt":
            secret = sys.stdin.readline().rstrip("\n") if args.stdin else getpass.getpass("Secret: ")
            print(provider.encrypt_secret(secret, settings))

        elif args.command == "log":
            with SqliteRunLog(settings.database_path, settings.max_log_entries) as run_log:
                entries = run_log.entries(limit=args.limit)
            if not entries:
                print("No piping entries recorded yet.")
            for entry in entries:
                print(
                    f"  {entry.timestamp:%Y-%m-%d %H:%M:%S}  "
                    f"created={entry.created_count} "
                    f"updated={entry.updated_count} "
                    f"total={entry.processed_count}"
                )

        elif args.command == "run-once":
            cycle = IngestionCycle.from_settings(provider)
            try:
                summary = cycle.run()
            finally:
                cycle.close()
            print(f"\nComplete: {format_summary(summary)}")

        elif args.command == "watch":
            cycle = IngestionCycle.from_settings(provider)
            runner = CycleRunner(cycle)
            scheduler = IntervalScheduler(
                runner.run_ingestion_cycle,
                lambda: provider.get_settings().poll_interval_seconds,
            )
            try:
                count = scheduler.run_forever(max_cycles=args.max_cycles)
            finally:
                cycle.close()
            print(f"\nRan {count} cycles")

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
