"""Shared FastAPI dependencies for the v1 API."""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from tally_stage.db.session import SessionLocal, get_db
from tally_stage.services.counting import VoteCounter
from tally_stage.services.ledger import SqlVoteLedger
from tally_stage.services.scheduler import SchedulerConfig, TallyScheduler


def build_scheduler(
    session_factory: Callable[[], Session] = SessionLocal,
    config: SchedulerConfig | None = None,
) -> TallyScheduler:
    """Wire a scheduler to the SQL ledger and aggregation transaction."""
    return TallyScheduler(
        ledger=SqlVoteLedger(session_factory),
        counter=VoteCounter(session_factory),
        config=config,
    )


def get_scheduler(request: Request) -> TallyScheduler:
    """Return the process-wide scheduler stored on the application state."""
    scheduler: TallyScheduler | None = getattr(request.app.state, "tally_scheduler", None)
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Vote aggregation service is not initialized",
        )
    return scheduler


SessionDep = Annotated[Session, Depends(get_db)]
SchedulerDep = Annotated[TallyScheduler, Depends(get_scheduler)]
