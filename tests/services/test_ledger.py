# tests/services/test_ledger.py
"""Tests for paginated ledger reads and vote appends."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from tally_stage.core.entry_kinds import EntryKind
from tally_stage.services.counting import count_votes
from tally_stage.services.errors import (
    DuplicateVoteError,
    LedgerError,
    TallyValidationError,
)
from tally_stage.services.ledger import (
    SqlVoteLedger,
    decode_bookmark,
    encode_bookmark,
    vote_key,
)
from tally_stage.services.rank_key import inverse_time_key

THREAD_ID = "fire-001"


def test_vote_key_layout() -> None:
    key = vote_key(EntryKind.SUBMISSION, THREAD_ID, "sub-001", "0000000000000042", "alice")
    assert key == "RWBS|fire-001|sub-001|0000000000000042|alice"


def test_bookmark_round_trip_and_rejects_garbage() -> None:
    key = "RWBF||thread-9|0000000000000001|bob"
    assert decode_bookmark(encode_bookmark(key)) == key
    with pytest.raises(TallyValidationError):
        decode_bookmark("%%%not-a-bookmark")


@pytest.mark.asyncio
async def test_pages_cover_each_vote_once(ledger: SqlVoteLedger, add_votes) -> None:
    keys = add_votes(["1"] * 5)

    seen: list[str] = []
    bookmark = None
    pages = 0
    while True:
        page = await ledger.fetch_uncounted(
            EntryKind.SUBMISSION, thread_id=THREAD_ID, bookmark=bookmark, limit=2
        )
        seen.extend(vote.key for vote in page.items)
        pages += 1
        if page.next_bookmark is None:
            break
        bookmark = page.next_bookmark

    assert seen == sorted(keys)
    assert pages == 3


@pytest.mark.asyncio
async def test_exact_page_has_no_bookmark(ledger: SqlVoteLedger, add_votes) -> None:
    add_votes(["1", "2"])

    page = await ledger.fetch_uncounted(EntryKind.SUBMISSION, limit=2)

    assert len(page.items) == 2
    assert page.next_bookmark is None


@pytest.mark.asyncio
async def test_filters_by_kind_thread_and_entry(ledger: SqlVoteLedger, add_votes) -> None:
    add_votes(["1"], entry_id="sub-a")
    add_votes(["1", "1"], entry_id="sub-b")
    add_votes(["1"], thread_id="fire-002", entry_id="sub-a")
    add_votes(["1"], thread_id="", entry_id="fire-001", entry_kind=EntryKind.THREAD)

    by_thread = await ledger.fetch_uncounted(EntryKind.SUBMISSION, thread_id=THREAD_ID)
    by_entry = await ledger.fetch_uncounted(
        "submission", thread_id=THREAD_ID, entry_id="sub-b"
    )
    threads = await ledger.fetch_uncounted(EntryKind.THREAD)

    assert len(by_thread.items) == 3
    assert {vote.entry_id for vote in by_entry.items} == {"sub-b"}
    assert len(by_entry.items) == 2
    assert [vote.entry_kind for vote in threads.items] == [EntryKind.THREAD]


@pytest.mark.asyncio
async def test_counted_votes_leave_the_ledger(
    ledger: SqlVoteLedger, session_factory, add_votes
) -> None:
    keys = add_votes(["1", "2", "3"])
    with session_factory() as db:
        count_votes(db, keys[:2])

    page = await ledger.fetch_uncounted(EntryKind.SUBMISSION)

    assert [vote.key for vote in page.items] == [keys[2]]
    assert page.items[0].magnitude == Decimal("3")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs",
    [
        {"limit": 0},
        {"limit": 1001},
        {"entry_id": "sub-001"},
        {"bookmark": "%%%"},
    ],
)
async def test_fetch_rejects_invalid_queries(ledger: SqlVoteLedger, kwargs) -> None:
    with pytest.raises(TallyValidationError):
        await ledger.fetch_uncounted(EntryKind.SUBMISSION, **kwargs)


@pytest.mark.asyncio
async def test_fetch_rejects_unknown_kind(ledger: SqlVoteLedger) -> None:
    with pytest.raises(TallyValidationError, match="Unsupported entry kind"):
        await ledger.fetch_uncounted("comment")


@pytest.mark.asyncio
async def test_query_failures_become_ledger_errors(mocker) -> None:
    session = mocker.MagicMock()
    session.__enter__.return_value = session
    session.scalars.side_effect = OperationalError("SELECT", {}, Exception("disk I/O error"))
    ledger = SqlVoteLedger(lambda: session)

    with pytest.raises(LedgerError, match="Failed to fetch votes"):
        await ledger.fetch_uncounted(EntryKind.SUBMISSION)


class TestAppendVote:
    @pytest.mark.asyncio
    async def test_append_derives_vote_id_from_cast_time(self, ledger: SqlVoteLedger) -> None:
        cast_at = datetime(2024, 5, 1, 8, 30, tzinfo=UTC)

        vote = await ledger.append_vote(
            entry_kind=EntryKind.SUBMISSION,
            thread_id=THREAD_ID,
            entry_id="sub-001",
            voter_id="alice",
            magnitude="2.5",
            cast_at=cast_at,
        )

        assert vote.vote_id == inverse_time_key(cast_at)
        assert vote.key == vote_key(
            EntryKind.SUBMISSION, THREAD_ID, "sub-001", vote.vote_id, "alice"
        )
        page = await ledger.fetch_uncounted(EntryKind.SUBMISSION)
        assert [v.key for v in page.items] == [vote.key]
        assert page.items[0].magnitude == Decimal("2.5")

    @pytest.mark.asyncio
    async def test_newer_votes_sort_first(self, ledger: SqlVoteLedger) -> None:
        for hour in (8, 9):
            await ledger.append_vote(
                entry_kind="submission",
                thread_id=THREAD_ID,
                entry_id="sub-001",
                voter_id="alice",
                magnitude=1,
                cast_at=datetime(2024, 5, 1, hour, tzinfo=UTC),
            )

        page = await ledger.fetch_uncounted(EntryKind.SUBMISSION)

        assert [v.vote_id for v in page.items] == [
            inverse_time_key(datetime(2024, 5, 1, 9, tzinfo=UTC)),
            inverse_time_key(datetime(2024, 5, 1, 8, tzinfo=UTC)),
        ]

    @pytest.mark.asyncio
    async def test_top_level_thread_votes_need_no_parent(self, ledger: SqlVoteLedger) -> None:
        vote = await ledger.append_vote(
            entry_kind=EntryKind.THREAD,
            thread_id="",
            entry_id="fire-001",
            voter_id="bob",
            magnitude=1,
            vote_id="0000000000000001",
        )
        assert vote.key == "RWBF||fire-001|0000000000000001|bob"

    @pytest.mark.asyncio
    async def test_duplicate_pending_vote_rejected(self, ledger: SqlVoteLedger) -> None:
        kwargs = dict(
            entry_kind=EntryKind.SUBMISSION,
            thread_id=THREAD_ID,
            entry_id="sub-001",
            voter_id="alice",
            magnitude=1,
            vote_id="0000000000000001",
        )
        await ledger.append_vote(**kwargs)
        with pytest.raises(DuplicateVoteError, match="already recorded"):
            await ledger.append_vote(**kwargs)

    @pytest.mark.asyncio
    async def test_counted_vote_cannot_be_replayed(
        self, ledger: SqlVoteLedger, session_factory
    ) -> None:
        kwargs = dict(
            entry_kind=EntryKind.SUBMISSION,
            thread_id=THREAD_ID,
            entry_id="sub-001",
            voter_id="alice",
            magnitude=1,
            vote_id="0000000000000001",
        )
        vote = await ledger.append_vote(**kwargs)
        with session_factory() as db:
            count_votes(db, [vote.key])

        with pytest.raises(DuplicateVoteError, match="already counted"):
            await ledger.append_vote(**kwargs)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"magnitude": 0},
            {"magnitude": "-1"},
            {"magnitude": "NaN"},
            {"magnitude": "lots"},
            {"magnitude": "1E+9990"},
            {"thread_id": ""},
            {"entry_id": ""},
            {"voter_id": "a|b"},
            {"entry_kind": "comment"},
        ],
    )
    async def test_invalid_votes_rejected(self, ledger: SqlVoteLedger, overrides) -> None:
        kwargs = dict(
            entry_kind=EntryKind.SUBMISSION,
            thread_id=THREAD_ID,
            entry_id="sub-001",
            voter_id="alice",
            magnitude=1,
        )
        kwargs.update(overrides)
        with pytest.raises(TallyValidationError):
            await ledger.append_vote(**kwargs)


@pytest.mark.asyncio
async def test_unrankable_magnitude_never_reaches_the_ledger(ledger: SqlVoteLedger) -> None:
    with pytest.raises(TallyValidationError, match="too large to encode"):
        await ledger.append_vote(
            entry_kind=EntryKind.SUBMISSION,
            thread_id=THREAD_ID,
            entry_id="sub-001",
            voter_id="whale",
            magnitude="1E+9990",
        )
    await ledger.append_vote(
        entry_kind=EntryKind.SUBMISSION,
        thread_id=THREAD_ID,
        entry_id="sub-001",
        voter_id="alice",
        magnitude="1",
    )

    page = await ledger.fetch_uncounted(EntryKind.SUBMISSION)

    assert [vote.voter_id for vote in page.items] == ["alice"]
