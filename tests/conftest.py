from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from otm.config import Settings
from otm.main import create_app
from otm.metrics import reset_metrics
from otm.storage import MessageStore


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'messages.db'}"


@pytest.fixture
def store(database_url, clock):
    s = MessageStore(database_url, clock=clock)
    s.init_schema()
    yield s
    s.close()


@pytest.fixture
def client(store, monkeypatch):
    monkeypatch.setenv("PURGE_INTERVAL_SECONDS", "0")
    reset_metrics()
    app = create_app(Settings(), store=store)
    with TestClient(app) as c:
        yield c
