"""Operator endpoints controlling vote aggregation."""

from __future__ import annotations

from typing import NoReturn

from fastapi import APIRouter, HTTPException, Query, status

from tally_stage.core.entry_kinds import EntryKind
from tally_stage.schemas.tally import (
    BacklogStatsOut,
    CountVotesRequest,
    CountVotesResponse,
    EnabledState,
    EnabledUpdate,
    ProcessAllRequest,
    ProcessAllResponse,
    SchedulerStatusOut,
    TallyOut,
)
from tally_stage.services.errors import (
    AggregationInProgressError,
    TallyError,
    TallyValidationError,
    VoteNotFoundError,
)
from tally_stage.services.stats import get_backlog_stats

from ..dependencies import SchedulerDep

router = APIRouter(prefix="/tally", tags=["tally"])


def _raise_http(exc: TallyError) -> NoReturn:
    if isinstance(exc, AggregationInProgressError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, TallyValidationError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, VoteNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    else:
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    raise HTTPException(status_code=code, detail=str(exc)) from exc


@router.post("/process-all", response_model=ProcessAllResponse)
async def process_all_votes(
    scheduler: SchedulerDep,
    payload: ProcessAllRequest | None = None,
) -> ProcessAllResponse:
    """Drain every uncounted vote matching the optional filter.

    Returns 409 while another aggregation run is active. Errors on the
    first page are returned as HTTP errors; later failures end the drain
    and are reported next to the progress already committed.
    """
    payload = payload or ProcessAllRequest()
    try:
        report = await scheduler.process_all(
            thread_id=payload.thread_id,
            entry_id=payload.entry_id,
            entry_kind=payload.entry_kind,
        )
    except TallyError as exc:
        _raise_http(exc)

    return ProcessAllResponse(
        success=report.success,
        total_processed=report.total_processed,
        pages_processed=report.pages_processed,
        error=report.error,
    )


@router.post("/count", response_model=CountVotesResponse)
async def count_votes(payload: CountVotesRequest, scheduler: SchedulerDep) -> CountVotesResponse:
    """Count an explicit batch of ledger keys in one transaction."""
    try:
        summary = await scheduler.count_batch(
            payload.votes, thread_id=payload.thread_id, entry_id=payload.entry_id
        )
    except TallyError as exc:
        _raise_http(exc)

    return CountVotesResponse(
        processed_count=summary.counted,
        tallies=[
            TallyOut(
                entry_kind=EntryKind(tally.entry_kind),
                thread_id=tally.thread_id,
                entry_id=tally.entry_id,
                total_magnitude=tally.total_magnitude,
                rank_key=tally.rank_key,
            )
            for tally in summary.tallies
        ],
    )


@router.get("/stats", response_model=BacklogStatsOut)
async def get_vote_stats(
    scheduler: SchedulerDep,
    entry_kind: EntryKind = Query(EntryKind.SUBMISSION, alias="entryKind"),
    thread_id: str | None = Query(None, alias="threadId"),
    entry_id: str | None = Query(None, alias="entryId"),
) -> BacklogStatsOut:
    """Sample the uncounted backlog for a filter with one bounded page fetch."""
    try:
        stats = await get_backlog_stats(
            scheduler.ledger, entry_kind, thread_id=thread_id, entry_id=entry_id
        )
    except TallyError as exc:
        _raise_http(exc)
    return BacklogStatsOut.model_validate(stats)


@router.get("/service/status", response_model=SchedulerStatusOut)
async def get_service_status(scheduler: SchedulerDep) -> SchedulerStatusOut:
    """Return scheduler configuration and busy/idle state."""
    return SchedulerStatusOut.model_validate(scheduler.status())


@router.get("/service/enabled", response_model=EnabledState)
async def get_service_enabled(scheduler: SchedulerDep) -> EnabledState:
    """Return whether interval runs are enabled."""
    return EnabledState(enabled=scheduler.enabled)


@router.put("/service/enabled", response_model=EnabledState)
async def set_service_enabled(payload: EnabledUpdate, scheduler: SchedulerDep) -> EnabledState:
    """Enable or disable interval runs without stopping the timer."""
    return EnabledState(enabled=scheduler.set_enabled(payload.enabled))


@router.post("/service/toggle", response_model=EnabledState)
async def toggle_service(scheduler: SchedulerDep) -> EnabledState:
    """Flip the enabled flag."""
    return EnabledState(enabled=scheduler.toggle())


@router.post("/service/start", response_model=SchedulerStatusOut)
async def start_service(scheduler: SchedulerDep) -> SchedulerStatusOut:
    """Start the interval timer."""
    await scheduler.start()
    return SchedulerStatusOut.model_validate(scheduler.status())


@router.post("/service/stop", response_model=SchedulerStatusOut)
async def stop_service(scheduler: SchedulerDep) -> SchedulerStatusOut:
    """Stop the interval timer after any in-flight page completes."""
    await scheduler.stop()
    return SchedulerStatusOut.model_validate(scheduler.status())
