"""Shared fixtures for lead intelligence engine tests."""

import os
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

# Tests run against in-memory stores unless a test builds its own database
os.environ.pop("DATABASE_URL", None)
os.environ.setdefault("LOG_LEVEL", "WARNING")

from journey.models import Touchpoint  # noqa: E402


T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class SequentialIds:
    """Deterministic id provider."""

    def __init__(self):
        self.counter = 0

    def new_id(self, prefix: str) -> str:
        self.counter += 1
        return f"{prefix}_{self.counter}"


def make_touchpoint(tp_type="sms_reply", engagement=0.5, timestamp=T0, payload=None, tp_id="tp_x"):
    return Touchpoint(
        id=tp_id,
        type=tp_type,
        timestamp=timestamp,
        channel="sms",
        payload=payload or {},
        engagement_score=engagement,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ids():
    return SequentialIds()


@pytest.fixture
def client():
    """Create a FastAPI test client with in-memory stores."""
    from api.main import create_app
    from config.settings import Settings

    app = create_app(Settings(database_url=None, log_level="WARNING"))
    with TestClient(app) as test_client:
        yield test_client
