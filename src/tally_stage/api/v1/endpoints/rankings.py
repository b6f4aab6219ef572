"""Read endpoints over aggregated tallies and receipts."""

from fastapi import APIRouter, HTTPException, Query, status

from tally_stage.core.entry_kinds import EntryKind
from tally_stage.schemas.tally import RankingOut, ReceiptOut, TallyOut
from tally_stage.services import rankings

from ..dependencies import SessionDep

router = APIRouter(prefix="/tally", tags=["rankings"])


@router.get("/rankings", response_model=list[RankingOut])
async def get_rankings(
    db: SessionDep,
    thread_id: str = Query("", alias="threadId"),
    entry_kind: EntryKind = Query(EntryKind.SUBMISSION, alias="entryKind"),
    limit: int = Query(10, ge=1, le=100),
) -> list[RankingOut]:
    """Return the top entries of a thread by total burned value."""
    rows = rankings.top_entries(db, entry_kind, thread_id, limit)
    return [
        RankingOut(
            position=position,
            entry_id=row.entry_id,
            total_magnitude=row.total_magnitude,
            rank_key=row.rank_key,
        )
        for position, row in enumerate(rows, start=1)
    ]


@router.get("/counts", response_model=TallyOut)
async def get_vote_count(
    db: SessionDep,
    entry_id: str = Query(..., alias="entryId"),
    thread_id: str = Query("", alias="threadId"),
    entry_kind: EntryKind = Query(EntryKind.SUBMISSION, alias="entryKind"),
) -> TallyOut:
    """Return the running total of one entry."""
    tally = rankings.get_tally(db, entry_kind, thread_id, entry_id)
    if tally is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No counted votes for entry"
        )
    return TallyOut.model_validate(tally)


@router.get("/receipts/{voter_id}", response_model=list[ReceiptOut])
async def get_voter_receipts(
    voter_id: str,
    db: SessionDep,
    limit: int = Query(50, ge=1, le=500),
) -> list[ReceiptOut]:
    """Return the receipts documenting a voter's counted votes."""
    return [ReceiptOut.model_validate(row) for row in rankings.list_receipts(db, voter_id, limit)]
