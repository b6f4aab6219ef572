"""Exceptions raised by the aggregation pipeline."""

from __future__ import annotations


class TallyError(RuntimeError):
    """Base exception for vote aggregation failures."""


class TallyValidationError(TallyError):
    """Raised when a request or a vote record fails validation.

    Covers empty or oversized batches, negative magnitudes, unknown entry
    kinds and malformed bookmarks.
    """


class DuplicateVoteError(TallyValidationError):
    """Raised when a vote key has already been recorded or counted."""


class VoteNotFoundError(TallyError):
    """Raised when a referenced vote record no longer exists."""

    def __init__(self, vote_key: str) -> None:
        super().__init__(f"Vote not found: {vote_key}")
        self.vote_key = vote_key


class TallyStorageError(TallyError):
    """Raised when the backing store fails during aggregation."""


class LedgerError(TallyStorageError):
    """Raised when querying the vote ledger fails."""


class AggregationInProgressError(TallyError):
    """Raised when an aggregation run is requested while another is active."""

    def __init__(self) -> None:
        super().__init__("Vote processing already in progress")
