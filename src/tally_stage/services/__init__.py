"""Service layer for vote aggregation."""

from .counting import CountSummary, VoteCounter, count_votes
from .ledger import LedgerPage, LedgerVote, SqlVoteLedger, VoteLedger
from .scheduler import RunReport, SchedulerConfig, SchedulerStatus, TallyScheduler

__all__ = [
    "CountSummary", "VoteCounter", "count_votes",
    "LedgerPage", "LedgerVote", "SqlVoteLedger", "VoteLedger",
    "RunReport", "SchedulerConfig", "SchedulerStatus", "TallyScheduler",
]
