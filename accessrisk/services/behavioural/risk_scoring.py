"""
Risk Scoring
-------------
Fuses anomaly output with the user baselines into one ranked table.

For every AnomalyRecord (left join on user_id):
  anomaly_score           - from the detector, already 0-1
  failure_rate            - from the user's UserPattern, already 0-1
  unique_resources_score  - bucket.unique_resources / max unique_resources of
                            any bucket in the window (0 when that max is 0)

  risk_score = anomaly_weight * anomaly_score
             + failure_weight * failure_rate
             + resource_weight * unique_resources_score

Order: risk_score desc, user_id asc, hour asc. Ranks run 1..n with no gaps.
A record whose user has no pattern keeps its row with failure_rate and
unique_resources_score at 0; this is logged and listed in diagnostics.
"""

from collections.abc import Iterable, Mapping

import pandas as pd
import structlog

from accessrisk.services.shared.config import AnalysisConfig
from accessrisk.services.shared.models import (
    AnomalyRecord, Bucket, BucketKey, Diagnostics, RiskScore, UserPattern,
    RISK_TABLE_COLUMNS,
)

logger = structlog.get_logger()


def normalize_unique_resources(buckets: Mapping[BucketKey, Bucket]) -> dict[BucketKey, float]:
    """Scale every bucket's unique_resources by the window-wide maximum."""
    peak = max((b.unique_resources for b in buckets.values()), default=0)
    if peak <= 0:
        return {key: 0.0 for key in buckets}
    return {key: b.unique_resources / peak for key, b in buckets.items()}


def composite_score(
    anomaly_score: float,
    failure_rate: float,
    unique_resources_score: float,
    config: AnalysisConfig,
) -> float:
    return (
        config.anomaly_weight * anomaly_score
        + config.failure_weight * failure_rate
        + config.resource_weight * unique_resources_score
    )


def rank_key(row: RiskScore) -> tuple[float, str, int]:
    return (-row.risk_score, row.user_id, row.hour)


def compute_risk_scores(
    anomalies: Iterable[AnomalyRecord],
    patterns: Mapping[str, UserPattern],
    buckets: Mapping[BucketKey, Bucket],
    config: AnalysisConfig | None = None,
    diagnostics: Diagnostics | None = None,
) -> list[RiskScore]:
    """Join, score and rank. Returns a new list; inputs are not modified."""
    cfg  = config or AnalysisConfig()
    diag = diagnostics if diagnostics is not None else Diagnostics()
    resource_scores = normalize_unique_resources(buckets)

    unranked: list[RiskScore] = []
    for rec in anomalies:
        key = (rec.user_id, rec.hour)
        pattern = patterns.get(rec.user_id)

        if pattern is None:
            diag.pattern_defaults.append(key)
            logger.warning("risk_score_pattern_missing", user_id=rec.user_id, hour=rec.hour)
            failure_rate = 0.0
            resource_score = 0.0
        else:
            failure_rate = pattern.failure_rate
            resource_score = resource_scores.get(key)
            if resource_score is None:
                diag.bucket_lookup_misses += 1
                logger.warning("risk_score_bucket_missing", user_id=rec.user_id, hour=rec.hour)
                resource_score = 0.0

        unranked.append(RiskScore(
            user_id=rec.user_id,
            hour=rec.hour,
            anomaly_score=rec.anomaly_score,
            failure_rate=failure_rate,
            unique_resources_score=resource_score,
            risk_score=composite_score(rec.anomaly_score, failure_rate, resource_score, cfg),
            rank=0,
        ))

    ranked = [
        RiskScore(**{**row.as_dict(), "rank": position})
        for position, row in enumerate(sorted(unranked, key=rank_key), start=1)
    ]

    logger.info(
        "risk_scores_computed",
        count=len(ranked),
        top_user=ranked[0].user_id if ranked else None,
        top_score=round(ranked[0].risk_score, 4) if ranked else None,
        pattern_defaults=len(diag.pattern_defaults),
    )
    return ranked


def risk_scores_to_frame(risk_scores: Iterable[RiskScore]) -> pd.DataFrame:
    """Risk table as a DataFrame with the published column order."""
    rows = [row.as_dict() for row in risk_scores]
    return pd.DataFrame(rows, columns=list(RISK_TABLE_COLUMNS))
