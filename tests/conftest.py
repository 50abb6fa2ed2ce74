"""Pytest configuration and fixtures."""

import random
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from luckydraw.config import Settings
from luckydraw.logic import DrawService
from luckydraw.main import create_app
from luckydraw.schemas import Prize
from luckydraw.storage import (DEADLINE_KEY, DESCRIPTION_KEY, TITLE_KEY, VALID_DAYS_KEY,
                               MemoryStore)


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    # naive -> campaign timezone (Asia/Taipei)
    return FixedClock(datetime(2025, 3, 26, 10, 0, 0))


@pytest.fixture
def campaign_settings():
    return {
        TITLE_KEY: "週年慶抽獎",
        DESCRIPTION_KEY: "每支電話限抽一次",
        DEADLINE_KEY: "2025/3/26",
        VALID_DAYS_KEY: "6",
    }


@pytest.fixture
def prizes():
    return [Prize(name="A", rate="10"), Prize(name="B", rate="0"), Prize(name="C", rate=0)]


@pytest.fixture
def store(campaign_settings, prizes):
    return MemoryStore(settings=campaign_settings, prizes=prizes)


@pytest.fixture
def service(store, clock):
    return DrawService(store, timeout=2.0, clock=clock, rng=random.Random(7))


@pytest.fixture
def make_client(clock):
    def _make(store, **settings):
        svc = DrawService(store, timeout=2.0, clock=clock, rng=random.Random(7))
        app = create_app(service=svc, settings=Settings(store_backend="memory", **settings))
        return TestClient(app)
    return _make


@pytest.fixture
def client(service):
    app = create_app(service=service, settings=Settings(store_backend="memory"))
    with TestClient(app) as c:
        yield c
