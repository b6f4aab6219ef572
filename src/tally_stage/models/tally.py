# src/tally_stage/models/tally.py
"""Durable aggregation results: running totals, rank index and receipts."""

from decimal import Decimal

from sqlalchemy import BigInteger, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tally_stage.db.session import Base
from tally_stage.models.types import ExactDecimal


class EntryTally(Base):
    """Running total of every vote ever folded for one entry.

    Created on the first counted vote and updated in place afterwards;
    tallies are never deleted.
    """

    __tablename__ = "entry_tally"

    entry_kind: Mapped[str] = mapped_column(String(16), primary_key=True)
    thread_id: Mapped[str] = mapped_column(Text, primary_key=True)
    entry_id: Mapped[str] = mapped_column(Text, primary_key=True)

    total_magnitude: Mapped[Decimal] = mapped_column(
        ExactDecimal, nullable=False, default=Decimal("0")
    )
    vote_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Points at the live RankEntry; NULL until the first vote is counted.
    rank_key: Mapped[str | None] = mapped_column(Text, nullable=True)


class RankEntry(Base):
    """Secondary index row ordering entries by total within a thread.

    Ascending ``rank_key`` order is descending total order, so "top N"
    reads are a bounded index scan.
    """

    __tablename__ = "rank_entry"
    __table_args__ = (
        # At most one live rank row per entry.
        UniqueConstraint("entry_kind", "thread_id", "entry_id", name="uq_rank_entry_entry"),
        Index("ix_rank_entry_scope", "entry_kind", "thread_id", "rank_key"),
    )

    entry_kind: Mapped[str] = mapped_column(String(16), primary_key=True)
    thread_id: Mapped[str] = mapped_column(Text, primary_key=True)
    rank_key: Mapped[str] = mapped_column(Text, primary_key=True)
    entry_id: Mapped[str] = mapped_column(Text, primary_key=True)

    total_magnitude: Mapped[Decimal] = mapped_column(ExactDecimal, nullable=False)


class VoterReceipt(Base):
    """Write-once audit record documenting one counted vote."""

    __tablename__ = "voter_receipt"

    voter_id: Mapped[str] = mapped_column(Text, primary_key=True)
    vote_key: Mapped[str] = mapped_column(Text, primary_key=True)

    vote_id: Mapped[str] = mapped_column(String(32), nullable=False)
    entry_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    thread_id: Mapped[str] = mapped_column(Text, nullable=False)
    entry_id: Mapped[str] = mapped_column(Text, nullable=False)
    magnitude: Mapped[Decimal] = mapped_column(ExactDecimal, nullable=False)
