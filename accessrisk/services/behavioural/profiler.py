"""
Behavioral Pattern Profiling
------------------------------
Builds each user's baseline over the whole window, independently of the
anomaly pass (every accepted event counts, flagged or not).

  typical_hours     - distinct hours with at least one event, ascending
  common_resources  - top-k resource_id by access frequency; equal counts are
                      ordered by resource_id ascending so the cut is stable
  failure_rate      - share of the user's events with status FAILED
"""

from collections import Counter, defaultdict
from collections.abc import Iterable

import structlog

from accessrisk.services.shared.models import TimedEvent, UserPattern

logger = structlog.get_logger()


def top_resources(counts: Counter, k: int) -> tuple[str, ...]:
    """Sort by (-count, resource_id) and slice."""
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return tuple(resource for resource, _ in ranked[:k])


def _failure_rate(failed: int, total: int) -> float:
    if total == 0:
        return 0.0
    return failed / total


def build_user_patterns(
    timed_events: Iterable[TimedEvent],
    top_k: int = 5,
) -> dict[str, UserPattern]:
    """One UserPattern for every user in the resolved events, ordered by user_id."""
    hours:     dict[str, set[int]] = defaultdict(set)
    resources: dict[str, Counter]  = defaultdict(Counter)
    totals:    dict[str, int]      = defaultdict(int)
    failures:  dict[str, int]      = defaultdict(int)

    for te in timed_events:
        uid = te.user_id
        hours[uid].add(te.hour)
        resources[uid][te.resource_id] += 1
        totals[uid] += 1
        if te.event.is_failed:
            failures[uid] += 1

    patterns = {
        uid: UserPattern(
            user_id=uid,
            typical_hours=tuple(sorted(hours[uid])),
            common_resources=top_resources(resources[uid], top_k),
            failure_rate=_failure_rate(failures[uid], totals[uid]),
        )
        for uid in sorted(totals)
    }
    logger.info("user_patterns_built", users=len(patterns))
    return patterns
