"""CLI for filling gaps in a rolling tally timeline."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from app.config import settings
from tally.propagator import PropagationResult, Propagator
from tally.records import TimelineRecord
from tally.storage import JsonFileTimelineStorage

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(levelname)-5.5s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def _report(results: list[PropagationResult]) -> int:
    """Log a summary of each run. Returns 0 if nothing failed, else 1."""
    failed = 0
    for result in results:
        for d in result.derivations:
            logger.info(f"  index {d.index}: {d.field.value} = {d.value} (span {d.span})")
        for failure in result.failures:
            logger.error(f"  {failure}")
        failed += len(result.failures)

    total = sum(len(r.derivations) for r in results)
    logger.info(f"Derived {total} value(s) over {len(results)} run(s)")
    if failed:
        logger.error(f"{failed} task(s) failed")
        return 1
    return 0


def _format_record(index: int, record: TimelineRecord) -> str:
    count = "?" if not record.has_count else str(record.count)
    totals = ", ".join(f"{span}:{total}" for span, total in sorted(record.totals.items()))
    return f"{index:>6}  count={count:<6} totals={{{totals}}}"


async def fill_file_command(
    path: Path,
    index: int | None,
    spans: list[int],
    fill_all: bool = False,
    dedupe: bool = True,
) -> int:
    """Propagate over a JSON timeline file and save the result.

    Args:
        path: JSON timeline file.
        index: Target index (ignored with fill_all).
        spans: Rolling-total window lengths.
        fill_all: Run once for every stored index, ascending.
        dedupe: Drop tasks already waiting in the queue.

    Returns:
        0 on success, 1 if any task failed.
    """
    storage = JsonFileTimelineStorage(path)
    propagator = Propagator(spans, storage, dedupe=dedupe)

    indices = sorted(storage.records) if fill_all else [index]
    results = await propagator.run_many(indices)
    storage.save()
    return _report(results)


async def fill_db_command(
    index: int | None,
    spans: list[int],
    fill_all: bool = False,
    dedupe: bool = True,
) -> int:
    """Propagate over the database timeline and commit the writes.

    Writes made before a task failure are committed too.
    """
    from app.crud.timeline import SQLTimelineStorage
    from app.models.base import async_session_maker

    async with async_session_maker() as session:
        storage = SQLTimelineStorage(session)
        propagator = Propagator(spans, storage, dedupe=dedupe)

        indices = await storage.list_indices() if fill_all else [index]
        results = await propagator.run_many(indices)
        await session.commit()
        return _report(results)


async def show_command(path: Path | None, start: int, end: int) -> int:
    """Print stored records between start and end (inclusive)."""
    if path is not None:
        storage = JsonFileTimelineStorage(path)
        records = {
            i: r for i, r in storage.snapshot().items() if start <= i <= end
        }
    else:
        from app.crud.timeline import SQLTimelineStorage
        from app.models.base import async_session_maker

        async with async_session_maker() as session:
            records = await SQLTimelineStorage(session).get_range(start, end)

    if not records:
        print("No records in range.")
        return 0
    for index in sorted(records):
        print(_format_record(index, records[index]))
    return 0


async def init_db_command() -> int:
    """Create the timeline tables."""
    from app.models import create_tables

    await create_tables()
    logger.info("Created tables")
    return 0


def _add_source_args(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--file",
        type=Path,
        help="JSON timeline file (default: use the database)",
    )
    source.add_argument(
        "--database",
        action="store_true",
        help="Use the database configured by DATABASE_URL",
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(description="Rolling tally backfill CLI")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Fill command
    fill_parser = subparsers.add_parser(
        "fill", help="Derive unknown counts and totals around an index"
    )
    fill_parser.add_argument(
        "index",
        type=int,
        nargs="?",
        help="Target index",
    )
    fill_parser.add_argument(
        "--all",
        dest="fill_all",
        action="store_true",
        help="Run for every stored index in ascending order",
    )
    fill_parser.add_argument(
        "--spans",
        type=int,
        nargs="+",
        default=None,
        help=f"Window lengths (default: {settings.default_spans})",
    )
    fill_parser.add_argument(
        "--dedupe",
        action=argparse.BooleanOptionalAction,
        default=settings.dedupe_tasks,
        help="Drop tasks already waiting in the work queue",
    )
    _add_source_args(fill_parser)

    # Show command
    show_parser = subparsers.add_parser("show", help="Print records in a range")
    show_parser.add_argument("start", type=int, help="First index")
    show_parser.add_argument("end", type=int, help="Last index (inclusive)")
    _add_source_args(show_parser)

    # Init-db command
    subparsers.add_parser("init-db", help="Create database tables")

    args = parser.parse_args(argv)

    if args.command == "fill":
        if args.index is None and not args.fill_all:
            fill_parser.error("an index is required unless --all is given")
        spans = args.spans or settings.default_spans
        try:
            if args.file is not None:
                return asyncio.run(
                    fill_file_command(
                        args.file, args.index, spans, args.fill_all, args.dedupe
                    )
                )
            return asyncio.run(
                fill_db_command(args.index, spans, args.fill_all, args.dedupe)
            )
        except ValueError as e:
            logger.error(str(e))
            return 1

    elif args.command == "show":
        try:
            return asyncio.run(show_command(args.file, args.start, args.end))
        except ValueError as e:
            logger.error(str(e))
            return 1

    elif args.command == "init-db":
        return asyncio.run(init_db_command())

    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
