"""Aggregation transaction folding vote records into tallies.

``count_votes`` is the only writer of ``EntryTally``, ``RankEntry`` and
``VoterReceipt`` and the only path that deletes ``VoteRecord`` rows. A
batch runs in one session transaction: it either commits every listed
vote or leaves the store untouched.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal, Inexact, localcontext

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tally_stage.core.settings import MAX_BATCH_SIZE
from tally_stage.models import EntryTally, RankEntry, VoterReceipt, VoteRecord
from tally_stage.services.errors import (
    TallyError,
    TallyStorageError,
    TallyValidationError,
    VoteNotFoundError,
)
from tally_stage.services.rank_key import rank_key

# Configure logger for this module
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TallySnapshot:
    """Entry total after a batch committed."""

    entry_kind: str
    thread_id: str
    entry_id: str
    total_magnitude: Decimal
    rank_key: str


@dataclass
class CountSummary:
    """Outcome of a committed aggregation batch."""

    counted: int = 0
    tallies: list[TallySnapshot] = field(default_factory=list)


def exact_add(left: Decimal, right: Decimal) -> Decimal:
    """Add two decimals without rounding, whatever their size."""
    top = max(left.adjusted(), right.adjusted()) + 1
    bottom = min(left.as_tuple().exponent, right.as_tuple().exponent)
    assert isinstance(bottom, int)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, top - bottom + 1)
        ctx.traps[Inexact] = True
        return left + right


def _validate_batch(vote_keys: Sequence[str]) -> None:
    if not vote_keys:
        raise TallyValidationError("At least one vote id is required")
    if len(vote_keys) > MAX_BATCH_SIZE:
        raise TallyValidationError(
            f"Too many votes to process. Maximum {MAX_BATCH_SIZE} votes per request."
        )


def _fold_vote(db: Session, key: str, touched: dict[tuple[str, str, str], EntryTally]) -> None:
    vote = db.get(VoteRecord, key)
    if vote is None:
        raise VoteNotFoundError(key)
    if vote.magnitude < 0:
        raise TallyValidationError(f"Vote {key} has negative magnitude {vote.magnitude}")

    tally_id = (vote.entry_kind, vote.thread_id, vote.entry_id)
    tally = db.get(EntryTally, tally_id)
    if tally is None:
        tally = EntryTally(
            entry_kind=vote.entry_kind,
            thread_id=vote.thread_id,
            entry_id=vote.entry_id,
            total_magnitude=Decimal("0"),
            vote_count=0,
            rank_key=None,
        )
        db.add(tally)

    tally.total_magnitude = exact_add(tally.total_magnitude, vote.magnitude)
    tally.vote_count += 1

    if tally.rank_key is not None:
        previous = db.get(
            RankEntry, (vote.entry_kind, vote.thread_id, tally.rank_key, vote.entry_id)
        )
        if previous is None:
            raise TallyStorageError(
                f"Rank index out of sync for {vote.entry_kind}/{vote.thread_id}/{vote.entry_id}"
            )
        db.delete(previous)
        # The replacement shares the entry's unique slot, so the delete must land first.
        db.flush()

    ranking = RankEntry(
        entry_kind=vote.entry_kind,
        thread_id=vote.thread_id,
        rank_key=rank_key(tally.total_magnitude, vote.vote_id),
        entry_id=vote.entry_id,
        total_magnitude=tally.total_magnitude,
    )
    tally.rank_key = ranking.rank_key

    db.add(ranking)
    db.add(
        VoterReceipt(
            voter_id=vote.voter_id,
            vote_key=vote.key,
            vote_id=vote.vote_id,
            entry_kind=vote.entry_kind,
            thread_id=vote.thread_id,
            entry_id=vote.entry_id,
            magnitude=vote.magnitude,
        )
    )
    db.delete(vote)
    db.flush()
    touched[tally_id] = tally


def count_votes(
    db: Session,
    vote_keys: Sequence[str],
    *,
    thread_id: str | None = None,
    entry_id: str | None = None,
) -> CountSummary:
    """Fold the listed votes into their entries' tallies and commit.

    Args:
        db: Session owning the unit of work; committed on success and rolled
            back on any failure.
        vote_keys: Ledger keys of the votes to count, 1 to 1000 of them,
            processed in order.
        thread_id: Optional addressing hint, not enforced.
        entry_id: Optional addressing hint, not enforced.

    Returns:
        Number of votes counted and the resulting totals of touched entries.

    Raises:
        TallyValidationError: Empty or oversized batch, or a negative magnitude.
        VoteNotFoundError: A listed vote no longer exists.
        TallyStorageError: The store failed or the rank index is inconsistent.
    """
    _validate_batch(vote_keys)
    logger.debug(
        "Counting %d votes (thread=%s, entry=%s)",
        len(vote_keys),
        thread_id or "all",
        entry_id or "all",
    )

    touched: dict[tuple[str, str, str], EntryTally] = {}
    try:
        for key in vote_keys:
            _fold_vote(db, key, touched)
        summary = CountSummary(
            counted=len(vote_keys),
            tallies=[
                TallySnapshot(
                    entry_kind=kind,
                    thread_id=thread,
                    entry_id=entry,
                    total_magnitude=tally.total_magnitude,
                    rank_key=tally.rank_key or "",
                )
                for (kind, thread, entry), tally in touched.items()
            ],
        )
        db.commit()
    except TallyError:
        db.rollback()
        raise
    except (ValueError, ArithmeticError) as exc:
        # Totals outside the range of the rank key encoder or the decimal context.
        db.rollback()
        raise TallyValidationError(str(exc)) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise TallyStorageError(f"Failed to count votes: {exc}") from exc

    logger.info("Counted %d votes across %d entries", summary.counted, len(summary.tallies))
    return summary


class VoteCounter:
    """Runs aggregation batches off the event loop, one session per batch."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    async def count(
        self,
        vote_keys: Sequence[str],
        *,
        thread_id: str | None = None,
        entry_id: str | None = None,
    ) -> CountSummary:
        """Count one batch in a worker thread."""
        return await asyncio.to_thread(self._count, list(vote_keys), thread_id, entry_id)

    def _count(
        self, vote_keys: list[str], thread_id: str | None, entry_id: str | None
    ) -> CountSummary:
        with self._session_factory() as db:
            return count_votes(db, vote_keys, thread_id=thread_id, entry_id=entry_id)
