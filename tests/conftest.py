from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from database import MemoryStorage, MongoStorage
from main import create_app


class TickingClock:
    """Returns a strictly increasing UTC time, one second per call."""

    def __init__(self, start=datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self):
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture(params=["memory", "mongodb"])
def storage(request, clock):
    if request.param == "memory":
        return MemoryStorage(clock=clock)
    mongomock = pytest.importorskip("mongomock")
    mongo = mongomock.MongoClient()
    mongo.drop_database("storefront_test")
    return MongoStorage(mongo["storefront_test"], clock=clock)


@pytest.fixture
def client():
    with TestClient(create_app(MemoryStorage(), seed=False)) as c:
        yield c
