"""
Shared fixtures for AccessRisk unit tests.

Events are generated on a fixed day (2026-10-19 UTC) so hour-of-day buckets
are predictable; seconds are offset so no two events share a timestamp.
"""

from datetime import datetime, timedelta, timezone

import pytest
import structlog

from accessrisk.services.shared.models import LogEvent

WINDOW_DAY = datetime(2026, 10, 19, tzinfo=timezone.utc)

# access_count per hour for the reference user: hour 12 is the spike
U1_COUNTS = {8: 10, 9: 11, 10: 9, 11: 10, 12: 200}


def build_events(
    user_id: str,
    counts_by_hour: dict[int, int],
    resource: str = "r1",
    status: str = "OK",
    day_offset: int = 0,
) -> list[LogEvent]:
    events = []
    for hour, n in counts_by_hour.items():
        for i in range(n):
            ts = WINDOW_DAY + timedelta(days=day_offset, hours=hour, seconds=i)
            events.append(LogEvent(
                timestamp=ts,
                user_id=user_id,
                resource_id=resource,
                status=status,
                source_ip="10.0.0.5",
            ))
    return events


@pytest.fixture
def event_factory():
    return build_events


@pytest.fixture
def u1_events() -> list[LogEvent]:
    return build_events("U1", U1_COUNTS)


@pytest.fixture(autouse=True)
def _reset_structlog():
    """The CLI reconfigures structlog globally; restore defaults after every test."""
    yield
    structlog.reset_defaults()
