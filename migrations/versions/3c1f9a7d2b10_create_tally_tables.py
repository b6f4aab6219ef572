"""create tally tables

Revision ID: 3c1f9a7d2b10
Revises:
Create Date: 2026-10-18 09:12:40.511203

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c1f9a7d2b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the ledger, tally, rank index and receipt tables."""
    op.create_table(
        "vote_record",
        sa.Column("key", sa.Text(), nullable=False),
        sa.Column("entry_kind", sa.String(length=16), nullable=False),
        sa.Column("thread_id", sa.Text(), nullable=False),
        sa.Column("entry_id", sa.Text(), nullable=False),
        sa.Column("vote_id", sa.String(length=32), nullable=False),
        sa.Column("voter_id", sa.Text(), nullable=False),
        sa.Column("magnitude", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )
    op.create_index(
        "ix_vote_record_scope",
        "vote_record",
        ["entry_kind", "thread_id", "entry_id"],
    )

    op.create_table(
        "entry_tally",
        sa.Column("entry_kind", sa.String(length=16), nullable=False),
        sa.Column("thread_id", sa.Text(), nullable=False),
        sa.Column("entry_id", sa.Text(), nullable=False),
        sa.Column("total_magnitude", sa.Text(), nullable=False),
        sa.Column("vote_count", sa.BigInteger(), nullable=False),
        sa.Column("rank_key", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("entry_kind", "thread_id", "entry_id"),
    )

    op.create_table(
        "rank_entry",
        sa.Column("entry_kind", sa.String(length=16), nullable=False),
        sa.Column("thread_id", sa.Text(), nullable=False),
        sa.Column("rank_key", sa.Text(), nullable=False),
        sa.Column("entry_id", sa.Text(), nullable=False),
        sa.Column("total_magnitude", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("entry_kind", "thread_id", "rank_key", "entry_id"),
        sa.UniqueConstraint("entry_kind", "thread_id", "entry_id", name="uq_rank_entry_entry"),
    )
    op.create_index(
        "ix_rank_entry_scope",
        "rank_entry",
        ["entry_kind", "thread_id", "rank_key"],
    )

    op.create_table(
        "voter_receipt",
        sa.Column("voter_id", sa.Text(), nullable=False),
        sa.Column("vote_key", sa.Text(), nullable=False),
        sa.Column("vote_id", sa.String(length=32), nullable=False),
        sa.Column("entry_kind", sa.String(length=16), nullable=False),
        sa.Column("thread_id", sa.Text(), nullable=False),
        sa.Column("entry_id", sa.Text(), nullable=False),
        sa.Column("magnitude", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("voter_id", "vote_key"),
    )


def downgrade() -> None:
    """Drop the tally tables."""
    op.drop_table("voter_receipt")
    op.drop_index("ix_rank_entry_scope", table_name="rank_entry")
    op.drop_table("rank_entry")
    op.drop_table("entry_tally")
    op.drop_index("ix_vote_record_scope", table_name="vote_record")
    op.drop_table("vote_record")
