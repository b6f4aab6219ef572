"""Read helpers over aggregated tallies, the rank index and voter receipts."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from tally_stage.core.entry_kinds import EntryKind
from tally_stage.models import EntryTally, RankEntry, VoterReceipt


def top_entries(
    db: Session, entry_kind: EntryKind, thread_id: str, limit: int = 10
) -> list[RankEntry]:
    """Return the highest-voted entries of a thread, largest total first."""
    stmt = (
        select(RankEntry)
        .where(RankEntry.entry_kind == entry_kind.value, RankEntry.thread_id == thread_id)
        .order_by(RankEntry.rank_key)
        .limit(limit)
    )
    return list(db.scalars(stmt))


def get_tally(
    db: Session, entry_kind: EntryKind, thread_id: str, entry_id: str
) -> EntryTally | None:
    """Return the running total of one entry, or None if it has no counted votes."""
    return db.get(EntryTally, (entry_kind.value, thread_id, entry_id))


def list_receipts(db: Session, voter_id: str, limit: int = 50) -> list[VoterReceipt]:
    """Return a voter's receipts, newest vote first."""
    stmt = (
        select(VoterReceipt)
        .where(VoterReceipt.voter_id == voter_id)
        .order_by(VoterReceipt.vote_id, VoterReceipt.vote_key)
        .limit(limit)
    )
    return list(db.scalars(stmt))
