"""Vote ledger access: paginated reads of uncounted votes and vote appends.

The ledger is the append-only store of cast votes. The aggregation
pipeline only reads it page by page; the casting flow (authenticated
elsewhere) appends to it through :meth:`SqlVoteLedger.append_vote`.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tally_stage.core.entry_kinds import EntryKind, parse_entry_kind, strategy_for
from tally_stage.core.settings import MAX_BATCH_SIZE
from tally_stage.models import VoterReceipt, VoteRecord
from tally_stage.services.errors import (
    DuplicateVoteError,
    LedgerError,
    TallyValidationError,
)
from tally_stage.services.rank_key import encode_magnitude, inverse_time_key

# Configure logger for this module
logger = logging.getLogger(__name__)

KEY_SEPARATOR = "|"
DEFAULT_PAGE_SIZE = 100


@dataclass(frozen=True)
class LedgerVote:
    """Detached snapshot of one uncounted vote."""

    key: str
    entry_kind: EntryKind
    thread_id: str
    entry_id: str
    vote_id: str
    voter_id: str
    magnitude: Decimal

    @classmethod
    def from_record(cls, record: VoteRecord) -> LedgerVote:
        return cls(
            key=record.key,
            entry_kind=EntryKind(record.entry_kind),
            thread_id=record.thread_id,
            entry_id=record.entry_id,
            vote_id=record.vote_id,
            voter_id=record.voter_id,
            magnitude=record.magnitude,
        )


@dataclass
class LedgerPage:
    """One page of uncounted votes.

    ``next_bookmark`` is ``None`` once the end of the matching set has been
    reached as of query time.
    """

    items: list[LedgerVote] = field(default_factory=list)
    next_bookmark: str | None = None


class VoteLedger(Protocol):
    """Read interface the aggregation scheduler consumes."""

    async def fetch_uncounted(
        self,
        entry_kind: EntryKind | str,
        thread_id: str | None = None,
        entry_id: str | None = None,
        bookmark: str | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> LedgerPage:
        ...


def vote_key(
    entry_kind: EntryKind, thread_id: str, entry_id: str, vote_id: str, voter_id: str
) -> str:
    """Return the composite ledger key for a vote."""
    tag = strategy_for(entry_kind).tag
    return KEY_SEPARATOR.join((tag, thread_id, entry_id, vote_id, voter_id))


def encode_bookmark(key: str) -> str:
    """Return an opaque pagination token positioned after ``key``."""
    return base64.urlsafe_b64encode(key.encode("utf-8")).decode().rstrip("=")


def decode_bookmark(bookmark: str) -> str:
    """Return the ledger key a bookmark points after.

    Raises:
        TallyValidationError: If the bookmark is not a token issued by this ledger.
    """
    padding = "=" * (-len(bookmark) % 4)
    try:
        raw = base64.b64decode(bookmark + padding, altchars=b"-_", validate=True)
        return raw.decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise TallyValidationError(f"Malformed bookmark: {bookmark!r}") from exc


def _check_identifier(name: str, value: str, *, allow_empty: bool = False) -> None:
    if not value and not allow_empty:
        raise TallyValidationError(f"{name} must not be empty")
    if KEY_SEPARATOR in value:
        raise TallyValidationError(f"{name} must not contain {KEY_SEPARATOR!r}")


def _as_entry_kind(value: EntryKind | str) -> EntryKind:
    try:
        return parse_entry_kind(value)
    except ValueError as exc:
        raise TallyValidationError(str(exc)) from exc


class SqlVoteLedger:
    """Vote ledger backed by the ``vote_record`` table.

    Pages are keyset-paginated on the vote key, so consumed (deleted) rows
    never shift later pages.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        """Initialize the ledger.

        Args:
            session_factory: Callable returning a new SQLAlchemy session; each
                call is used for a single query or append and then closed.
        """
        self._session_factory = session_factory

    async def fetch_uncounted(
        self,
        entry_kind: EntryKind | str,
        thread_id: str | None = None,
        entry_id: str | None = None,
        bookmark: str | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> LedgerPage:
        """Return up to ``limit`` uncounted votes matching the filter.

        Args:
            entry_kind: Kind of entry the votes target.
            thread_id: Optional thread filter.
            entry_id: Optional entry filter; requires ``thread_id``.
            bookmark: Token returned as ``next_bookmark`` by a previous page.
            limit: Page size, between 1 and 1000.

        Raises:
            TallyValidationError: For invalid filters, limits or bookmarks.
            LedgerError: If the query fails.
        """
        kind = _as_entry_kind(entry_kind)
        if not 1 <= limit <= MAX_BATCH_SIZE:
            raise TallyValidationError(f"limit must be between 1 and {MAX_BATCH_SIZE}")
        if entry_id is not None and thread_id is None:
            raise TallyValidationError("entry_id filter requires thread_id")
        after = decode_bookmark(bookmark) if bookmark else None

        return await asyncio.to_thread(self._fetch_page, kind, thread_id, entry_id, after, limit)

    def _fetch_page(
        self,
        kind: EntryKind,
        thread_id: str | None,
        entry_id: str | None,
        after: str | None,
        limit: int,
    ) -> LedgerPage:
        stmt = select(VoteRecord).where(VoteRecord.entry_kind == kind.value)
        if thread_id is not None:
            stmt = stmt.where(VoteRecord.thread_id == thread_id)
        if entry_id is not None:
            stmt = stmt.where(VoteRecord.entry_id == entry_id)
        if after is not None:
            stmt = stmt.where(VoteRecord.key > after)
        # One extra row tells us whether another page exists.
        stmt = stmt.order_by(VoteRecord.key).limit(limit + 1)

        try:
            with self._session_factory() as db:
                records = list(db.scalars(stmt))
                items = [LedgerVote.from_record(record) for record in records[:limit]]
        except SQLAlchemyError as exc:
            raise LedgerError(f"Failed to fetch votes: {exc}") from exc

        next_bookmark = None
        if len(records) > limit:
            next_bookmark = encode_bookmark(items[-1].key)

        logger.debug(
            "Fetched %d uncounted %s votes (more=%s)",
            len(items),
            kind.value,
            next_bookmark is not None,
        )
        return LedgerPage(items=items, next_bookmark=next_bookmark)

    async def append_vote(
        self,
        *,
        entry_kind: EntryKind | str,
        thread_id: str,
        entry_id: str,
        voter_id: str,
        magnitude: Decimal | str | int,
        vote_id: str | None = None,
        cast_at: datetime | None = None,
    ) -> LedgerVote:
        """Record a cast vote in the ledger.

        Args:
            entry_kind: Kind of entry being voted on.
            thread_id: Thread containing the entry ("" for top-level threads).
            entry_id: Identity of the voted-on entry.
            voter_id: Identity of the voter.
            magnitude: Positive amount of burned value.
            vote_id: Explicit vote id; derived from ``cast_at`` when omitted.
            cast_at: Cast time; defaults to now.

        Raises:
            TallyValidationError: For malformed input.
            DuplicateVoteError: If the vote key is pending or was already counted.
            LedgerError: If the write fails.
        """
        kind = _as_entry_kind(entry_kind)
        strategy = strategy_for(kind)
        try:
            amount = Decimal(magnitude)
        except (InvalidOperation, ValueError, TypeError) as exc:
            raise TallyValidationError(f"Invalid magnitude: {magnitude!r}") from exc
        if not amount.is_finite() or amount <= 0:
            raise TallyValidationError(f"Magnitude must be positive, got {magnitude!r}")
        try:
            encode_magnitude(amount)
        except ValueError as exc:
            raise TallyValidationError(str(exc)) from exc

        _check_identifier("thread_id", thread_id, allow_empty=not strategy.thread_required)
        _check_identifier("entry_id", entry_id)
        _check_identifier("voter_id", voter_id)
        if vote_id is None:
            vote_id = inverse_time_key(cast_at or datetime.now(UTC))
        _check_identifier("vote_id", vote_id)

        record = VoteRecord(
            key=vote_key(kind, thread_id, entry_id, vote_id, voter_id),
            entry_kind=kind.value,
            thread_id=thread_id,
            entry_id=entry_id,
            vote_id=vote_id,
            voter_id=voter_id,
            magnitude=amount,
        )
        return await asyncio.to_thread(self._insert, record)

    def _insert(self, record: VoteRecord) -> LedgerVote:
        try:
            with self._session_factory() as db:
                if db.get(VoteRecord, record.key) is not None:
                    raise DuplicateVoteError(f"Vote already recorded: {record.key}")
                if db.get(VoterReceipt, (record.voter_id, record.key)) is not None:
                    raise DuplicateVoteError(f"Vote already counted: {record.key}")
                db.add(record)
                db.commit()
                return LedgerVote.from_record(record)
        except SQLAlchemyError as exc:
            raise LedgerError(f"Failed to record vote: {exc}") from exc
