# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from decimal import Decimal
from itertools import count

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TALLY_AUTOSTART"] = "false"

from tally_stage.api.v1.dependencies import build_scheduler
from tally_stage.core.entry_kinds import EntryKind
from tally_stage.db.session import Base
from tally_stage.db.session import get_db as app_get_session
from tally_stage.main import app as fastapi_app
from tally_stage.models import VoteRecord
from tally_stage.services.counting import VoteCounter
from tally_stage.services.ledger import SqlVoteLedger, vote_key
from tally_stage.services.scheduler import SchedulerConfig, TallyScheduler

TEST_DB_URL = "sqlite://"
THREAD_ID = "fire-001"

_VOTE_ID_COUNTER = count(1)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> Iterator[sessionmaker[Session]]:
    """Session factory bound to the shared in-memory database.

    Tables are emptied after each test since the code under test commits.
    """
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    try:
        yield factory
    finally:
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def add_votes(session_factory: sessionmaker[Session]) -> Callable[..., list[str]]:
    """Return a helper inserting pending votes and returning their ledger keys."""

    def _add_votes(
        magnitudes: list[Decimal | str | int],
        *,
        entry_id: str = "sub-001",
        thread_id: str = THREAD_ID,
        entry_kind: EntryKind = EntryKind.SUBMISSION,
        voter_prefix: str = "voter",
    ) -> list[str]:
        keys: list[str] = []
        with session_factory() as db:
            for index, magnitude in enumerate(magnitudes):
                vote_id = str(next(_VOTE_ID_COUNTER)).zfill(16)
                voter_id = f"{voter_prefix}-{index}"
                key = vote_key(entry_kind, thread_id, entry_id, vote_id, voter_id)
                db.add(
                    VoteRecord(
                        key=key,
                        entry_kind=entry_kind.value,
                        thread_id=thread_id,
                        entry_id=entry_id,
                        vote_id=vote_id,
                        voter_id=voter_id,
                        magnitude=Decimal(magnitude),
                    )
                )
                keys.append(key)
            db.commit()
        return keys

    return _add_votes


@pytest.fixture()
def ledger(session_factory: sessionmaker[Session]) -> SqlVoteLedger:
    return SqlVoteLedger(session_factory)


@pytest.fixture()
def counter(session_factory: sessionmaker[Session]) -> VoteCounter:
    return VoteCounter(session_factory)


@pytest.fixture()
def scheduler_config() -> SchedulerConfig:
    return SchedulerConfig(
        interval_ms=50,
        batch_size=2,
        max_pages_per_run=10,
        enabled=True,
        entry_kinds=(EntryKind.SUBMISSION,),
    )


@pytest.fixture()
def scheduler(
    ledger: SqlVoteLedger, counter: VoteCounter, scheduler_config: SchedulerConfig
) -> TallyScheduler:
    return TallyScheduler(ledger, counter, scheduler_config)


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def api_scheduler(
    app: FastAPI,
    session_factory: sessionmaker[Session],
    scheduler_config: SchedulerConfig,
) -> Iterator[TallyScheduler]:
    """Install a scheduler bound to the test database on the app state."""
    scheduler = build_scheduler(session_factory, scheduler_config)
    app.state.tally_scheduler = scheduler
    try:
        yield scheduler
    finally:
        app.state.tally_scheduler = None


@pytest.fixture()
def client(
    app: FastAPI,
    session_factory: sessionmaker[Session],
    api_scheduler: TallyScheduler,
) -> Iterator[TestClient]:
    def _get_session_override() -> Generator[Session, None, None]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        with TestClient(app, base_url="http://test") as test_client:
            yield test_client
    finally:
        app.dependency_overrides.pop(app_get_session, None)
