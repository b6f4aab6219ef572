# src/tally_stage/models/__init__.py
"""SQLAlchemy models for the Tally Stage service."""

from .tally import EntryTally, RankEntry, VoterReceipt
from .vote import VoteRecord

__all__ = [
    "EntryTally", "RankEntry", "VoterReceipt",
    "VoteRecord",
]
