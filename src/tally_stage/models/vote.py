# src/tally_stage/models/vote.py
"""Pending vote records awaiting aggregation."""

from decimal import Decimal

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tally_stage.db.session import Base
from tally_stage.models.types import ExactDecimal


class VoteRecord(Base):
    """One cast vote that has not been folded into a tally yet.

    Rows are appended by the vote-casting flow and deleted by the
    aggregation transaction once counted; they are never updated.
    """

    __tablename__ = "vote_record"
    __table_args__ = (
        Index("ix_vote_record_scope", "entry_kind", "thread_id", "entry_id"),
    )

    # Composite of kind tag, thread, entry, vote id and voter; doubles as the
    # ledger pagination key.
    key: Mapped[str] = mapped_column(Text, primary_key=True)

    entry_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    # Empty string for top-level entries.
    thread_id: Mapped[str] = mapped_column(Text, nullable=False, default="")
    entry_id: Mapped[str] = mapped_column(Text, nullable=False)

    # Inverse-time key; newer votes sort first.
    vote_id: Mapped[str] = mapped_column(String(32), nullable=False)
    voter_id: Mapped[str] = mapped_column(Text, nullable=False)

    magnitude: Mapped[Decimal] = mapped_column(ExactDecimal, nullable=False)
