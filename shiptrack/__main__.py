"""Main entry point for shiptrack."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from shiptrack import __version__
from shiptrack.config.settings import Settings
from shiptrack.utils.logging import configure_logging

CATEGORY_CHOICES = ["container", "bl", "booking"]


def _write_json(payload: object) -> None:
    def _default(value: object):
        to_dict = getattr(value, "to_dict", None)
        if callable(to_dict):
            return to_dict()
        model_dump = getattr(value, "model_dump", None)
        if callable(model_dump):
            return model_dump(mode="json")
        return str(value)

    print(json.dumps(payload, indent=2, default=_default))


def _print_progress(event: object) -> None:
    from shiptrack.tracking.events import (
        CandidatePollTick,
        CandidateStarted,
        CandidateTerminal,
    )

    if isinstance(event, CandidateStarted):
        print(
            f"[{event.index + 1}/{event.total}] trying {event.candidate}",
            file=sys.stderr,
        )
    elif isinstance(event, CandidatePollTick):
        print(
            f"    {event.candidate}: poll {event.attempt}/{event.max_attempts}",
            file=sys.stderr,
        )
    elif isinstance(event, CandidateTerminal):
        suffix = f" ({event.error})" if event.error else ""
        print(f"    {event.candidate}: {event.outcome.value}{suffix}", file=sys.stderr)


def _print_result(result) -> None:
    print(f"Carrier: {result.carrier_name or result.carrier_code or '-'}")
    print(f"Status: {result.status_label or '-'}")
    if result.route.origin or result.route.destination:
        print(f"Route: {result.route.origin or '?'} -> {result.route.destination or '?'}")
    for key_date in result.key_dates:
        actual = " (actual)" if key_date.is_actual else ""
        print(f"{key_date.label.capitalize()}: {key_date.value or '-'}{actual}")
    if result.last_movement:
        print(f"Last movement: {result.last_movement}")
    if result.vessel and result.vessel.name:
        print(f"Vessel: {result.vessel.name}")
    for unit in result.sub_units:
        print(f"  - {unit.number or '?'}: {unit.status_label or '-'}")


def _print_log(entries) -> None:
    for entry in entries:
        error = f" ({entry.error})" if entry.error else ""
        print(
            f"  {entry.candidate}: {entry.outcome.value}, {entry.attempts} poll(s){error}"
        )


async def _run_shipments_command(parsed: argparse.Namespace, db_path: Path) -> int:
    from shiptrack.shipments.repository import ShipmentRepository
    from shiptrack.tracking.models import TrackingCategory

    repo = ShipmentRepository(db_path)
    await repo.initialize()

    try:
        if parsed.shipments_cmd == "stats":
            counts = await repo.get_carrier_counts()
            if not counts:
                print("No shipments")
            for carrier, count in counts.items():
                print(f"{carrier}: {count}")
            return 0

        if parsed.shipments_cmd == "lookup":
            if parsed.job_id:
                record = await repo.get_by_job_id(parsed.job_id)
            elif parsed.reference:
                record = await repo.get_by_reference(parsed.reference)
            else:
                print("Provide --job-id or --reference", file=sys.stderr)
                return 1

            if record is None:
                print("Not found")
                return 1

            print(json.dumps(record.to_dict(), indent=2))
            return 0

        if parsed.shipments_cmd == "recent":
            category_filter = (
                TrackingCategory.parse(parsed.category) if parsed.category else None
            )
            records = await repo.list_recent(limit=parsed.limit, category=category_filter)
            for rec in records:
                print(
                    f"{rec.resolved_at.isoformat()} {rec.carrier} {rec.reference} "
                    f"{rec.status_label or '-'} {rec.job_id}"
                )
            return 0

        print("Unknown shipments command", file=sys.stderr)
        return 1
    finally:
        await repo.close()


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="shiptrack",
        description="shiptrack: find the carrier behind a tracking reference",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m shiptrack track DFSU7162007
  python -m shiptrack track HLCUIZ1250599742 --category bl --carrier HAPAG-LLOYD
  python -m shiptrack shipments recent
  python -m shiptrack tag 12345 urgent reefer
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Set the log level (overrides settings)",
    )

    parser.add_argument(
        "--poll-log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Set the level for per-poll logs (DEBUG shows every poll)",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Available commands",
    )

    # track
    track_parser = subparsers.add_parser(
        "track",
        help="Resolve a container, bill of lading or booking reference",
    )
    track_parser.add_argument("reference", help="Tracking reference")
    track_parser.add_argument(
        "--category",
        choices=CATEGORY_CHOICES,
        default="container",
        help="Reference category (default: container)",
    )
    track_parser.add_argument(
        "--carrier",
        type=str,
        default=None,
        help="Carrier keyname (e.g. MSC); omit to auto-detect",
    )
    track_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full outcome as JSON",
    )
    track_parser.add_argument(
        "--no-save",
        action="store_true",
        help="Do not store the resolved shipment",
    )
    track_parser.add_argument(
        "--quiet",
        action="store_true",
        help="Do not print per-candidate progress",
    )

    # lines
    lines_parser = subparsers.add_parser(
        "lines",
        help="List candidate carriers in auto-detect order",
    )
    lines_parser.add_argument(
        "--category",
        choices=CATEGORY_CHOICES,
        default="container",
        help="Reference category (default: container)",
    )
    lines_parser.add_argument(
        "--remote",
        action="store_true",
        help="Ask the provider for its current carrier list",
    )

    # refresh
    refresh_parser = subparsers.add_parser(
        "refresh",
        help="Re-track a stored shipment by job id",
    )
    refresh_parser.add_argument("job_id", help="Provider job id of the shipment")

    # tag
    tag_parser = subparsers.add_parser(
        "tag",
        help="Add or remove tags on a stored shipment",
    )
    tag_parser.add_argument("job_id", help="Provider job id of the shipment")
    tag_parser.add_argument("tags", nargs="+", help="Tag names")
    tag_parser.add_argument(
        "--remove",
        action="store_true",
        help="Remove the tags instead of adding them",
    )

    # shipments
    shipments_parser = subparsers.add_parser(
        "shipments",
        help="Resolved shipment utilities (recent, lookup, stats)",
    )
    shipments_subparsers = shipments_parser.add_subparsers(
        dest="shipments_cmd",
        title="shipments",
        description="Shipment store operations",
        required=True,
    )

    shipments_stats = shipments_subparsers.add_parser(
        "stats", help="Show shipments per carrier"
    )
    shipments_stats.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Override shipments DB path (defaults to settings)",
    )

    shipments_lookup = shipments_subparsers.add_parser("lookup", help="Lookup shipment")
    shipments_lookup.add_argument(
        "--job-id",
        type=str,
        default=None,
        help="Job id to lookup",
    )
    shipments_lookup.add_argument(
        "--reference",
        type=str,
        default=None,
        help="Tracking reference to lookup",
    )
    shipments_lookup.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Override shipments DB path (defaults to settings)",
    )

    shipments_recent = shipments_subparsers.add_parser(
        "recent", help="List recently resolved shipments"
    )
    shipments_recent.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Maximum number of records",
    )
    shipments_recent.add_argument(
        "--category",
        choices=CATEGORY_CHOICES,
        default=None,
        help="Optional category filter",
    )
    shipments_recent.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Override shipments DB path (defaults to settings)",
    )

    return parser


def main(args: list[str] | None = None) -> int:
    """Main entry point for the application.

    Args:
        args: Command line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = create_parser()
    parsed = parser.parse_args(args)

    try:
        settings = Settings()
    except Exception as e:
        print(f"Error loading settings: {e}", file=sys.stderr)
        return 1

    log_level = parsed.log_level or settings.log_level
    logger = configure_logging(
        level=log_level,
        poll_level=parsed.poll_log_level or settings.poll_log_level,
    )

    if parsed.command is None:
        parser.print_help()
        return 0

    logger.debug(f"shiptrack v{__version__} running {parsed.command}")

    from shiptrack.tracking.models import TrackingCategory

    if parsed.command == "track":
        from shiptrack.tracking import service as tracking_service
        from shiptrack.tracking.errors import ResolutionError, TrackingError

        category = TrackingCategory.parse(parsed.category)
        try:
            outcome = asyncio.run(
                tracking_service.run_tracking(
                    settings,
                    parsed.reference,
                    category,
                    carrier=parsed.carrier,
                    save=not parsed.no_save,
                    progress=None if parsed.quiet else _print_progress,
                )
            )
        except ResolutionError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            if parsed.json:
                _write_json(exc.outcome)
            else:
                print(f"Candidates tried: {exc.candidates_tried}")
                _print_log(exc.per_candidate_log)
            return 1
        except (TrackingError, ValueError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1

        if parsed.json:
            _write_json(outcome)
            return 0

        print(f"Reference: {outcome.reference}")
        print(f"Resolved via: {outcome.winner}")
        print(f"Job id: {outcome.job_id}")
        print(
            f"Candidates tried: {outcome.candidates_tried}, polls: {outcome.attempts}"
        )
        if outcome.result is not None:
            _print_result(outcome.result)
        return 0

    if parsed.command == "lines":
        from shiptrack.tracking import service as tracking_service
        from shiptrack.tracking.errors import TrackingError

        category = TrackingCategory.parse(parsed.category)
        try:
            providers = asyncio.run(
                tracking_service.list_available_lines(
                    settings, category, remote=parsed.remote
                )
            )
        except TrackingError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1

        for index, provider in enumerate(providers, start=1):
            print(f"{index:>3}. {provider.id} ({provider.display_name})")
        return 0

    if parsed.command == "refresh":
        from shiptrack.tracking import service as tracking_service
        from shiptrack.tracking.errors import TrackingError

        try:
            result = asyncio.run(tracking_service.run_refresh(settings, parsed.job_id))
        except (TrackingError, ValueError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1

        if result is None:
            print("No result available")
            return 1
        _print_result(result)
        return 0

    if parsed.command == "tag":
        from shiptrack.tracking import service as tracking_service
        from shiptrack.tracking.errors import TrackingError

        try:
            tags = asyncio.run(
                tracking_service.run_tagging(
                    settings, parsed.job_id, parsed.tags, remove=parsed.remove
                )
            )
        except (TrackingError, ValueError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1

        print(f"Tags: {', '.join(tags) if tags else '(none)'}")
        return 0

    if parsed.command == "shipments":
        db_path = getattr(parsed, "db", None) or settings.shipments_db_path
        return asyncio.run(_run_shipments_command(parsed, db_path))

    print(f"Unknown command: {parsed.command}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
