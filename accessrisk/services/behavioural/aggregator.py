"""
Feature Aggregation
--------------------
Turns a window of LogEvent records into hour-of-day buckets per user.

Two steps:
  resolve_events()     - parse each timestamp into the analysis timezone and
                         drop events that cannot be placed (tallied, not fatal)
  aggregate_buckets()  - group the resolved events by (user_id, hour)

Per-bucket counters:
  access_count      - events in the bucket
  unique_resources  - distinct resource_id values in the bucket
  failed_attempts   - events with status == "FAILED"

Hours with no events produce no bucket.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, timezone, tzinfo

import structlog

from accessrisk.services.shared.errors import InputStructureError
from accessrisk.services.shared.models import (
    Bucket, BucketKey, Diagnostics, LogEvent, TimedEvent, TimestampValue,
)

logger = structlog.get_logger()


def parse_timestamp(value: TimestampValue) -> datetime | None:
    """
    Resolve a raw timestamp to an aware datetime. Returns None when it cannot be parsed.
    Naive datetimes and offset-less strings are taken as UTC.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, (int, float)):
        try:
            ts = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            ts = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def resolve_events(
    events: Iterable[LogEvent],
    tz: tzinfo = timezone.utc,
    diagnostics: Diagnostics | None = None,
) -> list[TimedEvent]:
    """
    Place every event on the analysis clock.
    Events with an unparseable timestamp, or without user_id / resource_id, are
    dropped and counted in diagnostics.
    """
    diag = diagnostics if diagnostics is not None else Diagnostics()
    try:
        iterator = iter(events)
    except TypeError as exc:
        raise InputStructureError(f"events must be an iterable of LogEvent, got {type(events).__name__}") from exc

    resolved: list[TimedEvent] = []
    for ev in iterator:
        if not isinstance(ev, LogEvent):
            raise InputStructureError(f"expected LogEvent, got {type(ev).__name__}")
        diag.events_received += 1

        if not ev.user_id or not ev.resource_id:
            diag.dropped_missing_field += 1
            continue

        ts = parse_timestamp(ev.timestamp)
        if ts is None:
            diag.dropped_unparseable_timestamp += 1
            continue

        try:
            local = ts.astimezone(tz)
        except (OverflowError, ValueError):
            # instant exists but falls outside datetime range in the analysis zone
            diag.dropped_unparseable_timestamp += 1
            continue
        resolved.append(TimedEvent(event=ev, instant=local, hour=local.hour))

    diag.events_accepted += len(resolved)
    if diag.events_dropped:
        logger.info(
            "events_dropped",
            unparseable_timestamp=diag.dropped_unparseable_timestamp,
            missing_field=diag.dropped_missing_field,
        )
    return resolved


def aggregate_buckets(timed_events: Iterable[TimedEvent]) -> dict[BucketKey, Bucket]:
    """Group resolved events into one Bucket per (user_id, hour), ordered by key."""
    counts:    dict[BucketKey, int]      = defaultdict(int)
    failures:  dict[BucketKey, int]      = defaultdict(int)
    resources: dict[BucketKey, set[str]] = defaultdict(set)

    for te in timed_events:
        key = (te.user_id, te.hour)
        counts[key] += 1
        resources[key].add(te.resource_id)
        if te.event.is_failed:
            failures[key] += 1

    return {
        key: Bucket(
            user_id=key[0],
            hour=key[1],
            access_count=counts[key],
            unique_resources=len(resources[key]),
            failed_attempts=failures[key],
        )
        for key in sorted(counts)
    }
