"""Tally-related Pydantic schemas.

Operator clients expect camelCase field names, so every model serializes
through an alias generator while still accepting snake_case input.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tally_stage.core.entry_kinds import EntryKind
from tally_stage.core.settings import MAX_BATCH_SIZE


class CamelModel(BaseModel):
    """Base model emitting camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ProcessAllRequest(CamelModel):
    """Filter for a manual drain."""

    thread_id: str | None = Field(None, description="Only drain votes under this thread")
    entry_id: str | None = Field(None, description="Only drain votes for this entry")
    entry_kind: EntryKind | None = Field(None, description="Only drain this entry kind")


class ProcessAllResponse(CamelModel):
    """Outcome of a manual drain."""

    success: bool
    total_processed: int
    pages_processed: int
    error: str | None = None


class CountVotesRequest(CamelModel):
    """Explicit batch of ledger keys to count."""

    votes: list[str] = Field(..., min_length=1, max_length=MAX_BATCH_SIZE)
    thread_id: str | None = None
    entry_id: str | None = None


class TallyOut(CamelModel):
    """Running total of one entry."""

    entry_kind: EntryKind
    thread_id: str
    entry_id: str
    total_magnitude: Decimal
    vote_count: int | None = None
    rank_key: str | None = None


class CountVotesResponse(CamelModel):
    """Result of a committed aggregation batch."""

    success: bool = True
    processed_count: int
    tallies: list[TallyOut]


class EnabledUpdate(CamelModel):
    """New value for the scheduler's enabled flag."""

    enabled: bool


class EnabledState(CamelModel):
    """Current value of the scheduler's enabled flag."""

    enabled: bool


class RunReportOut(CamelModel):
    """Summary of the last aggregation run."""

    trigger: str
    success: bool
    total_processed: int
    pages_processed: int
    completed: bool
    error: str | None = None


class SchedulerStatusOut(CamelModel):
    """Scheduler configuration and run state."""

    enabled: bool
    running: bool
    busy: bool
    interval_ms: int
    batch_size: int
    max_pages_per_run: int
    entry_kinds: list[EntryKind]
    last_run: RunReportOut | None = None


class VoteSampleOut(CamelModel):
    """Abbreviated pending vote."""

    entry_id: str
    thread_id: str
    voter_id: str
    magnitude: Decimal


class BacklogStatsOut(CamelModel):
    """Sampled size of the uncounted backlog."""

    uncounted_count: int
    has_more: bool
    sample_entries: list[VoteSampleOut]


class RankingOut(CamelModel):
    """One row of a thread's leaderboard."""

    position: int
    entry_id: str
    total_magnitude: Decimal
    rank_key: str


class ReceiptOut(CamelModel):
    """Audit record of one counted vote."""

    voter_id: str
    vote_key: str
    vote_id: str
    entry_kind: EntryKind
    thread_id: str
    entry_id: str
    magnitude: Decimal
