"""
Access-log analysis pipeline
------------------------------
analyze_access_logs() is the one entry point callers need:

  events -> resolve_events -> aggregate_buckets -> detect_anomalies ─┐
                          └-> build_user_patterns ───────────────────┴-> compute_risk_scores

Configuration is built and validated first, so an invalid setting raises
ConfigurationError before any event is consumed. A run either returns a
complete AnalysisResult or raises; partial rankings are never returned.
"""

import time
from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from accessrisk.services.behavioural.aggregator import aggregate_buckets, resolve_events
from accessrisk.services.behavioural.anomaly_detection import detect_anomalies
from accessrisk.services.behavioural.profiler import build_user_patterns
from accessrisk.services.behavioural.risk_scoring import compute_risk_scores
from accessrisk.services.shared.config import AnalysisConfig
from accessrisk.services.shared.models import AnalysisResult, Diagnostics, LogEvent

logger = structlog.get_logger()


def _coerce_config(config: AnalysisConfig | Mapping[str, Any] | None) -> AnalysisConfig:
    if isinstance(config, AnalysisConfig):
        return config
    return AnalysisConfig.from_mapping(config)


def analyze_access_logs(
    events: Iterable[LogEvent],
    config: AnalysisConfig | Mapping[str, Any] | None = None,
    diagnostics: Diagnostics | None = None,
) -> AnalysisResult:
    """
    Score one analysis window.
    `diagnostics` may carry counts from an earlier step (e.g. unreadable raw
    records from the ingest normalizer); a fresh one is created otherwise.
    """
    cfg  = _coerce_config(config)
    diag = diagnostics if diagnostics is not None else Diagnostics()
    started = time.monotonic()

    timed     = resolve_events(events, cfg.tzinfo, diag)
    buckets   = aggregate_buckets(timed)
    anomalies = detect_anomalies(buckets, cfg, diag)
    patterns  = build_user_patterns(timed, top_k=cfg.top_k_resources)
    scores    = compute_risk_scores(anomalies, patterns, buckets, cfg, diag)

    logger.info(
        "access_log_analysis_complete",
        events_received=diag.events_received,
        events_accepted=diag.events_accepted,
        buckets=len(buckets),
        users=len(patterns),
        anomalies=sum(1 for a in anomalies if a.is_anomaly),
        risk_rows=len(scores),
        duration_ms=round((time.monotonic() - started) * 1000, 1),
    )
    return AnalysisResult(
        buckets=buckets,
        anomalies=anomalies,
        patterns=patterns,
        risk_scores=scores,
        diagnostics=diag,
    )
