"""Read-only backlog statistics for the vote ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from tally_stage.core.entry_kinds import EntryKind
from tally_stage.core.settings import settings
from tally_stage.services.ledger import VoteLedger

SAMPLE_ENTRY_COUNT = 5


@dataclass(frozen=True)
class VoteSample:
    """Abbreviated view of one pending vote."""

    entry_id: str
    thread_id: str
    voter_id: str
    magnitude: Decimal


@dataclass
class BacklogStats:
    """Sampled size of the uncounted backlog.

    ``uncounted_count`` covers one bounded page only; ``has_more`` reports
    whether the ledger holds further matching votes beyond it.
    """

    uncounted_count: int
    has_more: bool
    sample_entries: list[VoteSample] = field(default_factory=list)


async def get_backlog_stats(
    ledger: VoteLedger,
    entry_kind: EntryKind | str,
    thread_id: str | None = None,
    entry_id: str | None = None,
    *,
    sample_size: int | None = None,
    sample_entries: int = SAMPLE_ENTRY_COUNT,
) -> BacklogStats:
    """Sample the uncounted votes matching a filter with a single page fetch.

    Args:
        ledger: Vote ledger to query.
        entry_kind: Kind of entry the votes target.
        thread_id: Optional thread filter.
        entry_id: Optional entry filter; requires ``thread_id``.
        sample_size: Page size of the probe; defaults to the configured value.
        sample_entries: Number of votes echoed back in ``sample_entries``.
    """
    page = await ledger.fetch_uncounted(
        entry_kind,
        thread_id=thread_id,
        entry_id=entry_id,
        limit=sample_size or settings.tally_stats_sample_size,
    )
    return BacklogStats(
        uncounted_count=len(page.items),
        has_more=page.next_bookmark is not None,
        sample_entries=[
            VoteSample(
                entry_id=vote.entry_id,
                thread_id=vote.thread_id,
                voter_id=vote.voter_id,
                magnitude=vote.magnitude,
            )
            for vote in page.items[:sample_entries]
        ],
    )
