"""
AccessRisk data models - every record that flows through the pipeline.

Stage ownership (each stage only creates its own records, downstream stages
read them by value):
  LogEvent       - input, supplied by the caller / ingest normalizer
  Bucket         - Feature Aggregator
  AnomalyRecord  - Anomaly Detector
  UserPattern    - Pattern Profiler
  RiskScore      - Risk Scoring Engine

All records are frozen dataclasses. Diagnostics is the one mutable object and
belongs to a single pipeline run.
"""

import enum
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Optional, Union


# ── Enumerations ──────────────────────────────────────────────────────────────

class EventStatus(str, enum.Enum):
    ok     = "OK"
    failed = "FAILED"


class MetricName(str, enum.Enum):
    access_count     = "access_count"
    unique_resources = "unique_resources"
    failed_attempts  = "failed_attempts"


TimestampValue = Union[datetime, str, int, float, None]

BucketKey = tuple[str, int]     # (user_id, hour_of_day)


# ── Input ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class LogEvent:
    """
    One access-log line. timestamp is kept as supplied (datetime, ISO-8601
    string or epoch seconds); the aggregator resolves it.
    """
    timestamp:   TimestampValue
    user_id:     Optional[str]
    resource_id: Optional[str]
    status:      str           = EventStatus.ok.value
    source_ip:   Optional[str] = None

    @property
    def is_failed(self) -> bool:
        return self.status == EventStatus.failed.value


@dataclass(frozen=True)
class TimedEvent:
    """A LogEvent whose timestamp resolved to an instant in the analysis timezone."""
    event:   LogEvent
    instant: datetime
    hour:    int

    @property
    def user_id(self) -> str:
        return self.event.user_id

    @property
    def resource_id(self) -> str:
        return self.event.resource_id


# ── Derived records ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Bucket:
    user_id:          str
    hour:             int
    access_count:     int
    unique_resources: int
    failed_attempts:  int

    @property
    def key(self) -> BucketKey:
        return (self.user_id, self.hour)


@dataclass(frozen=True)
class AnomalyRecord:
    user_id:        str
    hour:           int
    metric_name:    str
    observed_value: float
    lower_bound:    float
    upper_bound:    float
    anomaly_score:  float         # 0-1, 0 inside bounds
    is_anomaly:     bool


@dataclass(frozen=True)
class UserPattern:
    user_id:          str
    typical_hours:    tuple[int, ...]
    common_resources: tuple[str, ...]
    failure_rate:     float


@dataclass(frozen=True)
class RiskScore:
    user_id:                str
    hour:                   int
    anomaly_score:          float
    failure_rate:           float
    unique_resources_score: float
    risk_score:             float
    rank:                   int

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


# Column order of the published risk table.
RISK_TABLE_COLUMNS: tuple[str, ...] = (
    "rank",
    "user_id",
    "hour",
    "risk_score",
    "anomaly_score",
    "failure_rate",
    "unique_resources_score",
)


# ── Run bookkeeping ───────────────────────────────────────────────────────────

@dataclass
class Diagnostics:
    """Counts of everything a run skipped, excluded or defaulted."""
    events_received:               int = 0
    events_accepted:               int = 0
    dropped_unparseable_timestamp: int = 0
    dropped_missing_field:         int = 0
    records_unreadable:            int = 0
    buckets_skipped_malformed:     int = 0
    bucket_lookup_misses:          int = 0
    users_evaluated:               list[str] = field(default_factory=list)
    users_not_evaluated:           list[str] = field(default_factory=list)
    users_failed:                  list[str] = field(default_factory=list)
    pattern_defaults:              list[BucketKey] = field(default_factory=list)

    @property
    def events_dropped(self) -> int:
        return self.dropped_unparseable_timestamp + self.dropped_missing_field

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["pattern_defaults"] = [list(k) for k in self.pattern_defaults]
        data["events_dropped"] = self.events_dropped
        return data


@dataclass(frozen=True)
class AnalysisResult:
    """Everything a completed run produced, in stage order."""
    buckets:     dict[BucketKey, Bucket]
    anomalies:   list[AnomalyRecord]
    patterns:    dict[str, UserPattern]
    risk_scores: list[RiskScore]
    diagnostics: Diagnostics
