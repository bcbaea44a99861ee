"""
Behavioral Anomaly Detection
------------------------------
Flags buckets whose access_count is unusual for that user, judged only
against the user's own series.

Algorithm (per user)
--------------------
1. Order the user's buckets by hour and take the access_count series.
2. Additive decomposition into trend + seasonal + residual
   (statsmodels seasonal_decompose, period = seasonal_period). A series
   shorter than two full periods is not decomposed: trend and seasonal are 0
   and the raw series is the residual.
3. Q1 / Q3 of the residual, IQR = Q3 - Q1.
4. Fence: [Q1 - k*IQR, Q3 + k*IQR], k from AnalysisConfig.iqr_k.
5. Residual outside the fence -> is_anomaly, anomaly_score =
   min(distance beyond the fence / IQR, 1). Zero IQR -> nothing is flagged.

Users with fewer than min_buckets_for_detection valid buckets are skipped
(no records). Buckets with a malformed access_count are dropped one by one.
Series points are ordered by hour of day, not by clock time, so a window
that crosses midnight is not chronological on the seasonal path.
"""

import math
from collections import defaultdict
from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np
import pandas as pd
import structlog
from statsmodels.tsa.seasonal import seasonal_decompose

from accessrisk.services.shared.config import AnalysisConfig
from accessrisk.services.shared.models import (
    AnomalyRecord, Bucket, BucketKey, Diagnostics, MetricName,
)

logger = structlog.get_logger()

PRIMARY_METRIC = MetricName.access_count.value
IQR_EPSILON = 1e-9      # IQR at or below this counts as zero variance


# ── Decomposition ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Decomposition:
    observed:         pd.Series
    trend:            pd.Series
    seasonal:         pd.Series
    residual:         pd.Series
    seasonal_applied: bool

    @property
    def fitted(self) -> pd.Series:
        return self.trend + self.seasonal


def decompose_series(series: pd.Series, period: int) -> Decomposition:
    """Additive trend/seasonal/residual split; positional index on the result."""
    observed = pd.Series(series, dtype=float).reset_index(drop=True)

    if len(observed) < 2 * period:
        zeros = pd.Series(0.0, index=observed.index)
        return Decomposition(
            observed=observed,
            trend=zeros,
            seasonal=zeros.copy(),
            residual=observed.copy(),
            seasonal_applied=False,
        )

    result = seasonal_decompose(
        observed,
        model="additive",
        period=period,
        extrapolate_trend="freq",
    )
    return Decomposition(
        observed=observed,
        trend=result.trend,
        seasonal=result.seasonal,
        residual=result.resid,
        seasonal_applied=True,
    )


# ── IQR fence ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class IqrFence:
    q1: float
    q3: float
    k:  float

    @property
    def iqr(self) -> float:
        return self.q3 - self.q1

    @property
    def lower(self) -> float:
        return self.q1 - self.k * self.iqr

    @property
    def upper(self) -> float:
        return self.q3 + self.k * self.iqr

    @property
    def degenerate(self) -> bool:
        return self.iqr <= IQR_EPSILON

    def distance_outside(self, value: float) -> float:
        if value > self.upper:
            return value - self.upper
        if value < self.lower:
            return self.lower - value
        return 0.0

    def is_outlier(self, value: float) -> bool:
        if self.degenerate:
            return False
        return value < self.lower or value > self.upper

    def score(self, value: float) -> float:
        if self.degenerate:
            return 0.0
        return min(max(self.distance_outside(value) / self.iqr, 0.0), 1.0)


def iqr_fence(residual: pd.Series, k: float) -> IqrFence:
    """Quartiles use linear interpolation between order statistics."""
    q1, q3 = np.percentile(residual.to_numpy(dtype=float), [25, 75])
    return IqrFence(q1=float(q1), q3=float(q3), k=k)


# ── Per-user detection ────────────────────────────────────────────────────────

@dataclass
class UserDetection:
    user_id:   str
    records:   list[AnomalyRecord] = field(default_factory=list)
    skipped:   int                 = 0
    evaluated: bool                = False
    error:     Optional[str]       = None


def _valid_bucket(bucket: Any) -> bool:
    if not isinstance(bucket, Bucket):
        return False
    hour = bucket.hour
    if isinstance(hour, bool) or not isinstance(hour, int) or not 0 <= hour <= 23:
        return False
    count = bucket.access_count
    if count is None or isinstance(count, bool):
        return False
    if isinstance(count, (int, np.integer)):
        return count >= 0
    if isinstance(count, float):
        return math.isfinite(count) and count >= 0 and count.is_integer()
    return False


def detect_user_anomalies(
    user_id: str,
    buckets: Iterable[Bucket],
    config: AnalysisConfig,
) -> UserDetection:
    """Run decomposition + IQR fence over one user's buckets."""
    outcome = UserDetection(user_id=user_id)

    valid: list[Bucket] = []
    for b in buckets:
        if _valid_bucket(b):
            valid.append(b)
        else:
            outcome.skipped += 1
            logger.debug("bucket_skipped_malformed", user_id=user_id, bucket=repr(b))
    valid.sort(key=lambda b: b.hour)

    if len(valid) < config.min_buckets_for_detection:
        return outcome

    series = pd.Series([float(b.access_count) for b in valid])
    decomposition = decompose_series(series, config.seasonal_period)
    fence = iqr_fence(decomposition.residual, config.iqr_k)
    fitted = decomposition.fitted

    for i, b in enumerate(valid):
        resid = float(decomposition.residual.iloc[i])
        base  = float(fitted.iloc[i])
        outcome.records.append(AnomalyRecord(
            user_id=user_id,
            hour=b.hour,
            metric_name=PRIMARY_METRIC,
            observed_value=float(b.access_count),
            lower_bound=base + fence.lower,
            upper_bound=base + fence.upper,
            anomaly_score=fence.score(resid),
            is_anomaly=fence.is_outlier(resid),
        ))

    outcome.evaluated = True
    return outcome


def _detect_safely(user_id: str, buckets: list[Bucket], config: AnalysisConfig) -> UserDetection:
    try:
        return detect_user_anomalies(user_id, buckets, config)
    except (ValueError, ArithmeticError) as exc:
        logger.warning("anomaly_detection_user_error", user_id=user_id, error=str(exc))
        return UserDetection(user_id=user_id, error=str(exc))


# ── Window-level entry point ──────────────────────────────────────────────────

def detect_anomalies(
    buckets: Mapping[BucketKey, Bucket] | Iterable[Bucket],
    config: AnalysisConfig | None = None,
    diagnostics: Diagnostics | None = None,
) -> list[AnomalyRecord]:
    """
    Evaluate every user in the window. Returns records ordered by (user_id, hour).
    With config.max_workers > 1 users are evaluated on a thread pool; the merge
    order is the same as the sequential path.
    """
    cfg  = config or AnalysisConfig()
    diag = diagnostics if diagnostics is not None else Diagnostics()

    items = buckets.values() if isinstance(buckets, Mapping) else buckets
    by_user: dict[str, list[Bucket]] = defaultdict(list)
    for b in items:
        user_id = getattr(b, "user_id", None)
        if not user_id:
            diag.buckets_skipped_malformed += 1
            continue
        by_user[user_id].append(b)

    users = sorted(by_user)
    if cfg.max_workers > 1 and len(users) > 1:
        with ThreadPoolExecutor(max_workers=cfg.max_workers) as pool:
            outcomes = list(pool.map(lambda u: _detect_safely(u, by_user[u], cfg), users))
    else:
        outcomes = [_detect_safely(u, by_user[u], cfg) for u in users]

    records: list[AnomalyRecord] = []
    for outcome in outcomes:
        diag.buckets_skipped_malformed += outcome.skipped
        if outcome.error is not None:
            diag.users_failed.append(outcome.user_id)
        elif outcome.evaluated:
            diag.users_evaluated.append(outcome.user_id)
            records.extend(outcome.records)
        else:
            diag.users_not_evaluated.append(outcome.user_id)

    flagged = sum(1 for r in records if r.is_anomaly)
    logger.info(
        "anomaly_detection_complete",
        users_evaluated=len(diag.users_evaluated),
        users_not_evaluated=len(diag.users_not_evaluated),
        users_failed=len(diag.users_failed),
        records=len(records),
        flagged=flagged,
    )
    return records
