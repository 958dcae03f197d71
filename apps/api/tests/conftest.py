from datetime import datetime, timedelta, timezone
from typing import Any, List

import pytest
from fastapi.testclient import TestClient

from nettrailers_core.types import MediaType, to_epoch_ms
from nettrailers_interactions.config import TrackingConfig
from nettrailers_interactions.interactions_repo import InteractionsRepo
from nettrailers_interactions.interactions_service import InteractionsService
from nettrailers_interactions.schemas import (
    ContentRef,
    InteractionCreate,
    InteractionType,
)
from nettrailers_interactions.tracking import InteractionTracker
from nettrailers_store.memory_store import MemoryDocumentStore

TEST_USER_ID = "00000000-0000-0000-0000-000000000000"


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)

    @property
    def now_ms(self) -> int:
        return to_epoch_ms(self.now)


class RecordingQueue:
    def __init__(self):
        self.enqueued: List[str] = []

    def enqueue(self, user_id: str) -> None:
        self.enqueued.append(user_id)


class CountingStore(MemoryDocumentStore):
    """Memory store that counts committed document writes."""

    def __init__(self, **kwargs: Any):
        super().__init__(**kwargs)
        self.writes = 0

    def _write(self, ref, data, merge):
        self.writes += 1
        super()._write(ref, data, merge)


def make_event(
    content_id: int = 603,
    interaction_type: InteractionType = InteractionType.VIEW_MODAL,
    genre_ids: List[int] | None = None,
    **kwargs: Any,
) -> InteractionCreate:
    return InteractionCreate(
        content_id=content_id,
        media_type=kwargs.pop("media_type", MediaType.MOVIE),
        interaction_type=interaction_type,
        genre_ids=[28, 878] if genre_ids is None else genre_ids,
        **kwargs,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store() -> CountingStore:
    return CountingStore()


@pytest.fixture()
def repo(store) -> InteractionsRepo:
    return InteractionsRepo(store)


@pytest.fixture()
def refresh_queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture()
def service(repo, clock, refresh_queue) -> InteractionsService:
    return InteractionsService(
        repo, config=TrackingConfig(), refresh_queue=refresh_queue, clock=clock
    )


@pytest.fixture()
def tracker(service) -> InteractionTracker:
    return InteractionTracker(service)


@pytest.fixture()
def matrix() -> ContentRef:
    return ContentRef(id=603, media_type=MediaType.MOVIE, genre_ids=[28, 878])


@pytest.fixture()
def test_client(monkeypatch):
    # in-memory store and static genres: no network during tests
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("TMDB_API_KEY", "")

    # Import after env is set to avoid pydantic settings errors
    from app.main import app  # type: ignore
    from app.deps.supabase_client import get_current_user_id  # type: ignore

    # Override the dependency to avoid real Supabase calls
    def _fake_user_id():
        return TEST_USER_ID

    app.dependency_overrides[get_current_user_id] = _fake_user_id

    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()
