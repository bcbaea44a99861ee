"""
Unit tests for the risk join, normalization and ranking.
"""

import pytest

from accessrisk.services.shared.config import AnalysisConfig
from accessrisk.services.shared.models import (
    AnomalyRecord, Bucket, Diagnostics, UserPattern, RISK_TABLE_COLUMNS,
)


# ── Helpers ────────────────────────────────────────────────────────────────────

def make_record(user_id: str, hour: int, score: float = 0.0) -> AnomalyRecord:
    return AnomalyRecord(
        user_id=user_id,
        hour=hour,
        metric_name="access_count",
        observed_value=10.0,
        lower_bound=0.0,
        upper_bound=20.0,
        anomaly_score=score,
        is_anomaly=score > 0,
    )


def make_bucket(user_id: str, hour: int, unique: int) -> Bucket:
    return Bucket(user_id=user_id, hour=hour, access_count=max(unique, 1) * 2,
                  unique_resources=unique, failed_attempts=0)


def make_pattern(user_id: str, failure_rate: float = 0.0) -> UserPattern:
    return UserPattern(user_id=user_id, typical_hours=(9,), common_resources=("r1",),
                       failure_rate=failure_rate)


# ── normalize_unique_resources ─────────────────────────────────────────────────

def test_unique_resources_scaled_by_window_max():
    from accessrisk.services.behavioural.risk_scoring import normalize_unique_resources
    buckets = {b.key: b for b in [make_bucket("a", 1, 2), make_bucket("a", 2, 8), make_bucket("b", 3, 4)]}
    scores = normalize_unique_resources(buckets)
    assert scores == {("a", 1): 0.25, ("a", 2): 1.0, ("b", 3): 0.5}
    assert all(0.0 <= s <= 1.0 for s in scores.values())
    assert max(scores.values()) == 1.0


def test_zero_max_gives_zero_scores():
    from accessrisk.services.behavioural.risk_scoring import normalize_unique_resources
    buckets = {b.key: b for b in [make_bucket("a", 1, 0), make_bucket("b", 2, 0)]}
    assert normalize_unique_resources(buckets) == {("a", 1): 0.0, ("b", 2): 0.0}


def test_empty_window_normalizes_to_nothing():
    from accessrisk.services.behavioural.risk_scoring import normalize_unique_resources
    assert normalize_unique_resources({}) == {}


# ── compute_risk_scores ────────────────────────────────────────────────────────

def test_composite_uses_default_weights():
    from accessrisk.services.behavioural.risk_scoring import compute_risk_scores
    buckets = {b.key: b for b in [make_bucket("a", 9, 2), make_bucket("z", 1, 4)]}
    scores = compute_risk_scores(
        [make_record("a", 9, score=1.0)],
        {"a": make_pattern("a", failure_rate=0.5)},
        buckets,
    )
    row = scores[0]
    assert row.unique_resources_score == pytest.approx(0.5)
    assert row.risk_score == pytest.approx(0.4 * 1.0 + 0.3 * 0.5 + 0.3 * 0.5)
    assert row.rank == 1


def test_custom_weights_are_applied():
    from accessrisk.services.behavioural.risk_scoring import compute_risk_scores
    cfg = AnalysisConfig(anomaly_weight=1.0, failure_weight=0.0, resource_weight=0.0)
    buckets = {("a", 9): make_bucket("a", 9, 3)}
    scores = compute_risk_scores([make_record("a", 9, 0.6)], {"a": make_pattern("a", 0.9)}, buckets, cfg)
    assert scores[0].risk_score == pytest.approx(0.6)


def test_ordering_and_tie_break():
    from accessrisk.services.behavioural.risk_scoring import compute_risk_scores
    buckets = {b.key: b for b in [
        make_bucket("bob", 3, 1), make_bucket("bob", 1, 1),
        make_bucket("amy", 7, 1), make_bucket("cat", 2, 1),
    ]}
    records = [
        make_record("bob", 3, 0.5),
        make_record("bob", 1, 0.5),
        make_record("amy", 7, 0.5),
        make_record("cat", 2, 0.9),
    ]
    patterns = {u: make_pattern(u) for u in ("amy", "bob", "cat")}

    scores = compute_risk_scores(records, patterns, buckets)

    assert [(s.user_id, s.hour) for s in scores] == [("cat", 2), ("amy", 7), ("bob", 1), ("bob", 3)]
    assert [s.rank for s in scores] == [1, 2, 3, 4]
    for first, second in zip(scores, scores[1:]):
        assert first.risk_score >= second.risk_score


def test_missing_pattern_keeps_row_with_defaults():
    from accessrisk.services.behavioural.risk_scoring import compute_risk_scores
    diag = Diagnostics()
    buckets = {("ghost", 4): make_bucket("ghost", 4, 5)}

    scores = compute_risk_scores([make_record("ghost", 4, 0.8)], {}, buckets, diagnostics=diag)

    assert len(scores) == 1
    assert scores[0].failure_rate == 0.0
    assert scores[0].unique_resources_score == 0.0
    assert scores[0].risk_score == pytest.approx(0.4 * 0.8)
    assert diag.pattern_defaults == [("ghost", 4)]


def test_missing_bucket_is_counted():
    from accessrisk.services.behavioural.risk_scoring import compute_risk_scores
    diag = Diagnostics()
    scores = compute_risk_scores([make_record("a", 4, 0.0)], {"a": make_pattern("a", 1.0)}, {}, diagnostics=diag)
    assert scores[0].unique_resources_score == 0.0
    assert scores[0].risk_score == pytest.approx(0.3)
    assert diag.bucket_lookup_misses == 1


def test_no_records_gives_empty_table():
    from accessrisk.services.behavioural.risk_scoring import compute_risk_scores
    assert compute_risk_scores([], {"a": make_pattern("a")}, {("a", 1): make_bucket("a", 1, 1)}) == []


def test_frame_has_published_columns():
    from accessrisk.services.behavioural.risk_scoring import compute_risk_scores, risk_scores_to_frame
    buckets = {("a", 9): make_bucket("a", 9, 2)}
    frame = risk_scores_to_frame(compute_risk_scores([make_record("a", 9, 0.2)], {"a": make_pattern("a")}, buckets))
    assert list(frame.columns) == list(RISK_TABLE_COLUMNS)
    assert frame.loc[0, "rank"] == 1


def test_empty_frame_still_has_columns():
    from accessrisk.services.behavioural.risk_scoring import risk_scores_to_frame
    frame = risk_scores_to_frame([])
    assert frame.empty
    assert list(frame.columns) == list(RISK_TABLE_COLUMNS)
