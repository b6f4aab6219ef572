"""Run one manual vote drain against the configured database."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from tally_stage.api.v1.dependencies import build_scheduler
from tally_stage.core.entry_kinds import EntryKind
from tally_stage.core.settings import MAX_BATCH_SIZE
from tally_stage.db.session import create_tables
from tally_stage.services.errors import TallyError
from tally_stage.services.scheduler import RunReport


def clamp_batch_size(value: int) -> int:
    return min(max(value, 1), MAX_BATCH_SIZE)


async def _drain(args: argparse.Namespace) -> RunReport:
    scheduler = build_scheduler()
    if args.batch_size is not None:
        scheduler.config.batch_size = clamp_batch_size(args.batch_size)
    return await scheduler.process_all(
        thread_id=args.thread,
        entry_id=args.entry,
        entry_kind=args.kind,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Fold every uncounted vote into tallies")
    parser.add_argument("--thread", default=None, help="Only drain votes under this thread")
    parser.add_argument(
        "--entry",
        default=None,
        help="Only drain votes for this entry (requires --thread)",
    )
    parser.add_argument(
        "--kind",
        default=None,
        choices=[kind.value for kind in EntryKind],
        help="Only drain one entry kind (defaults to all configured kinds)",
    )
    parser.add_argument("--batch-size", type=int, default=None, help="Votes per page")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables first (SQLite development databases)",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if args.create_tables:
        create_tables()
        print("[drain] tables ensured")

    try:
        report = asyncio.run(_drain(args))
    except TallyError as exc:
        print(f"[drain] ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    print(
        f"[drain] processed {report.total_processed} votes in {report.pages_processed} pages"
        + (f" (stopped early: {report.error})" if report.error else "")
    )


if __name__ == "__main__":
    main()
