"""Shared test fixtures."""
import os

# Keep tests off the on-disk database and the background scheduler.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SYNC_ENABLED"] = "false"

from datetime import datetime, timezone
from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from backlog.models.sync import SyncHistory  # noqa: F401
from backlog.models.backlog import BacklogItem


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="make_item")
def make_item_fixture():
    """Factory for BacklogItem instances with sensible defaults."""

    def _make(**overrides) -> BacklogItem:
        fields = dict(
            id="issue-1",
            identifier="VIX-1",
            title="Test Issue",
            priority=3,
            status="In Progress",
            status_type="started",
            team_id="team-1",
            team_name="Vixxo",
            created_at=datetime(2026, 2, 5, 10, 0, tzinfo=timezone.utc),
            updated_at=datetime(2026, 2, 5, 12, 0, tzinfo=timezone.utc),
            sort_order=1.0,
            url="https://linear.app/vixxo/issue/VIX-1",
        )
        fields.update(overrides)
        return BacklogItem(**fields)

    return _make
