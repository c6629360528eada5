"""
Shared fixtures.

Every engine under test runs on a FixedClock so decay, recency windows
and daily caps are deterministic.
"""

from datetime import datetime, timedelta, timezone

import pytest

from match_engine.engine import MatchEngine
from match_engine.models.user import GeoPoint, UserRecord


NOW = datetime(2024, 9, 15, 12, 0, tzinfo=timezone.utc)
CITY = GeoPoint(latitude=40.7128, longitude=-74.0060)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_user(user_id: str, now: datetime = NOW, **overrides) -> UserRecord:
    """A complete, active, established user; override any attribute."""
    values = dict(
        user_id=user_id,
        age=30,
        location=CITY,
        photo_count=5,
        bio="Dog person, amateur cook.",
        interests=['hiking', 'music', 'travel', 'cooking', 'art'],
        created_at=now - timedelta(days=120),
        last_active_at=now - timedelta(minutes=30),
    )
    values.update(overrides)
    return UserRecord(**values)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def engine(clock):
    """In-memory engine with a viewer and two candidates."""
    users = [
        make_user('viewer', clock.now),
        make_user('alice', clock.now, age=29),
        make_user('bella', clock.now, age=33),
    ]
    engine = MatchEngine.in_memory(users=users, clock=clock)
    yield engine
    engine.close()
