"""Command-line interface for running refresh batches and reading refresh logs.

Usage::

    python -m analytics_refresh.cli run --campaign camp_1 --campaign camp_2
    python -m analytics_refresh.cli run --all-active --format json
    python -m analytics_refresh.cli logs --limit 10
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from analytics_refresh.app import configure_logging
from analytics_refresh.config import get_settings
from analytics_refresh.refresh.orchestrator import (
    TRIGGER_MANUAL,
    TRIGGER_SCHEDULED,
    BatchOrchestrator,
)
from analytics_refresh.refresh.progress import ProgressChannel, ProgressEvent, StreamEvent
from analytics_refresh.scrapers.client import ScraperClient
from analytics_refresh.scrapers.profiles import load_platform_profiles
from analytics_refresh.store.schema import close_analytics_db, init_analytics_db
from analytics_refresh.store.store import AnalyticsStore


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser.

    Returns:
        A configured :class:`argparse.ArgumentParser`.
    """
    parser = argparse.ArgumentParser(description="Campaign analytics refresh")
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Path to the analytics database (default: STORE_DB_PATH setting)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run one refresh batch")
    target = run.add_mutually_exclusive_group(required=True)
    target.add_argument(
        "--campaign",
        action="append",
        dest="campaign_ids",
        help="Campaign ID to refresh (repeatable)",
    )
    target.add_argument(
        "--all-active",
        action="store_true",
        help="Refresh every active, live or published campaign",
    )
    run.add_argument(
        "--format",
        type=str,
        choices=["table", "json"],
        default="table",
        dest="output_format",
        help="Output format (default: table)",
    )

    logs = subparsers.add_parser("logs", help="List recent refresh logs")
    logs.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Maximum results (default: 20)",
    )
    logs.add_argument(
        "--format",
        type=str,
        choices=["table", "json"],
        default="table",
        dest="output_format",
        help="Output format (default: table)",
    )

    return parser


def configure_cli_logging(production: bool = False) -> None:
    """Send log lines to stderr so stdout carries only refresh output."""
    configure_logging(production=production, stream=sys.stderr)


def format_event(event: StreamEvent) -> str:
    """Format one stream event as a human-readable line."""
    if isinstance(event, ProgressEvent):
        p = event.progress
        line = f"[{p.status}] {p.name} ({p.campaign_id}) {p.processed_urls}/{p.total_urls}"
        return f"{line} - {p.error}" if p.error else line
    wire = event.to_wire()
    if wire["type"] == "error":
        return f"Refresh failed: {wire['message']}"
    summary = wire["summary"]
    return (
        f"Done: {summary['successful']}/{summary['total']} succeeded, "
        f"{summary['failed']} failed ({summary['skipped']} skipped), "
        f"{summary['resourceUsageMB']} MB used"
        + (", resource limit reached" if summary["resourceLimitReached"] else "")
        + (", cancelled" if summary["cancelled"] else "")
    )


def format_logs_table(rows: list[dict[str, Any]]) -> str:
    """Format refresh-log rows as a table.

    Args:
        rows: Rows from ``AnalyticsStore.list_refresh_logs``.

    Returns:
        Formatted table string with header row.
    """
    if not rows:
        return "No refresh logs found."

    headers = ["ID", "Trigger", "Started", "Completed", "OK", "Failed", "Skipped", "MB"]
    widths = [5, 10, 20, 20, 4, 6, 7, 10]
    lines: list[str] = []

    header_line = "  ".join(h.ljust(w) for h, w in zip(headers, widths, strict=True))
    lines.append(header_line)
    lines.append("-" * len(header_line))

    for row in rows:
        cells = [
            row["id"],
            row["trigger_type"],
            row["started_at"],
            row["completed_at"],
            row["successful_campaigns"],
            row["failed_campaigns"],
            row["skipped_campaigns"],
            row["resource_usage_mb"],
        ]
        lines.append(
            "  ".join(
                ("" if c is None else str(c)).ljust(w)
                for c, w in zip(cells, widths, strict=True)
            )
        )

    return "\n".join(lines)


async def run_batch(
    orchestrator: BatchOrchestrator,
    campaign_ids: list[str],
    trigger_type: str,
    output_format: str,
) -> int:
    """Run one batch, printing every event as it arrives.

    Returns:
        Process exit code: 0 when every campaign completed, 1 otherwise.
    """
    channel = ProgressChannel()
    task = asyncio.create_task(orchestrator.run(campaign_ids, channel, trigger_type))
    async for event in channel:
        if output_format == "json":
            print(json.dumps(event.to_wire()))
        else:
            print(format_event(event))
    summary = await task
    if summary is None or summary.failed:
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and dispatch the command."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_cli_logging(settings.production)

    db_path = Path(args.db) if args.db else settings.store_db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = init_analytics_db(db_path)
    store = AnalyticsStore(conn)

    try:
        if args.command == "logs":
            rows = store.list_refresh_logs(args.limit)
            if args.output_format == "json":
                print(json.dumps(rows, indent=2))
            else:
                print(format_logs_table(rows))
            return 0

        if args.all_active:
            campaign_ids = store.list_active_campaign_ids()
            trigger_type = TRIGGER_SCHEDULED
            if not campaign_ids:
                print("No active campaigns to refresh.")
                return 0
        else:
            campaign_ids = args.campaign_ids
            trigger_type = TRIGGER_MANUAL

        profiles = load_platform_profiles(settings.platform_profiles_path)
        scraper = ScraperClient(
            base_url=settings.functions_base_url,
            api_key=settings.functions_api_key.get_secret_value(),
            profiles=profiles,
            timeout=settings.scraper_timeout,
        )
        orchestrator = BatchOrchestrator.from_settings(settings, store, scraper, profiles)
        return asyncio.run(run_batch(orchestrator, campaign_ids, trigger_type, args.output_format))
    finally:
        close_analytics_db(conn)


if __name__ == "__main__":
    sys.exit(main())
