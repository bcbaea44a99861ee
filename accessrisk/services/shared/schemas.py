"""
Pydantic request/response schemas for the AccessRisk analysis service.
Field names and order of RiskScoreOut match the published risk table.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ── Configuration overrides ───────────────────────────────────────────────────

class AnalysisConfigIn(BaseModel):
    """Per-request overrides; unset fields keep the service defaults."""
    alpha:                     Optional[float] = None
    anomaly_weight:            Optional[float] = None
    failure_weight:            Optional[float] = None
    resource_weight:           Optional[float] = None
    min_buckets_for_detection: Optional[int]   = None
    top_k_resources:           Optional[int]   = None
    timezone:                  Optional[str]   = None
    seasonal_period:           Optional[int]   = None
    iqr_multiplier:            Optional[float] = None
    max_workers:               Optional[int]   = None


# ── Analysis ──────────────────────────────────────────────────────────────────

class AnalyzeRequest(BaseModel):
    """
    Body for POST /api/analyze.
    events are raw log records; the ingest normalizer maps field aliases
    (ts, user, resource, ip, ...) onto LogEvent and counts non-objects as
    records_unreadable.
    """
    events:         list[Any]
    config:         AnalysisConfigIn = Field(default_factory=AnalysisConfigIn)
    window_label:   Optional[str]    = None
    request_review: bool             = False


class RiskScoreOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    rank:                   int
    user_id:                str
    hour:                   int
    risk_score:             float
    anomaly_score:          float
    failure_rate:           float
    unique_resources_score: float


class UserPatternOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    user_id:          str
    typical_hours:    list[int]
    common_resources: list[str]
    failure_rate:     float


class AnomalyRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    user_id:        str
    hour:           int
    metric_name:    str
    observed_value: float
    lower_bound:    float
    upper_bound:    float
    anomaly_score:  float
    is_anomaly:     bool


class AnalyzeResponse(BaseModel):
    window_label:      Optional[str] = None
    risk_scores:       list[RiskScoreOut]
    patterns:          list[UserPatternOut]
    anomalies:         list[AnomalyRecordOut]
    diagnostics:       dict[str, Any]
    reviews_submitted: list[str] = []
