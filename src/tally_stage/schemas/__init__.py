"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .tally import (
    BacklogStatsOut,
    CountVotesRequest,
    CountVotesResponse,
    EnabledState,
    EnabledUpdate,
    ProcessAllRequest,
    ProcessAllResponse,
    RankingOut,
    ReceiptOut,
    RunReportOut,
    SchedulerStatusOut,
    TallyOut,
    VoteSampleOut,
)

__all__ = [
    "BacklogStatsOut",
    "CountVotesRequest", "CountVotesResponse",
    "EnabledState", "EnabledUpdate",
    "ProcessAllRequest", "ProcessAllResponse",
    "RankingOut", "ReceiptOut",
    "RunReportOut", "SchedulerStatusOut",
    "TallyOut", "VoteSampleOut",
]
