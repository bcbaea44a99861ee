"""
Window analysis routes.

POST /api/analyze
GET  /api/config/defaults
"""

from dataclasses import asdict

import structlog
from fastapi import APIRouter, Depends, HTTPException

from accessrisk.services.behavioural.pipeline import analyze_access_logs
from accessrisk.services.ingest.normalizer import normalize_records
from accessrisk.services.review import dispatcher as review
from accessrisk.services.shared.config import AnalysisConfig
from accessrisk.services.shared.errors import ConfigurationError
from accessrisk.services.shared.models import Diagnostics, RiskScore
from accessrisk.services.shared.schemas import (
    AnalyzeRequest, AnalyzeResponse, AnomalyRecordOut, RiskScoreOut, UserPatternOut,
)

router = APIRouter()
logger = structlog.get_logger()


def get_default_config() -> AnalysisConfig:
    """FastAPI dependency: service-wide defaults from ACCESSRISK_* env vars."""
    try:
        return AnalysisConfig.from_env()
    except ConfigurationError as exc:
        logger.error("service_config_invalid", error=str(exc))
        raise HTTPException(status_code=500, detail=f"service misconfigured: {exc}")


def _request_reviews(risk_scores: list[RiskScore], window_label: str | None) -> list[str]:
    if not review.REVIEW_SERVICE_URL:
        logger.warning("review_requested_without_url")
        return []
    candidates = review.select_review_candidates(risk_scores)
    if not candidates:
        return []
    with review.ReviewDispatcher(review.REVIEW_SERVICE_URL) as dispatcher:
        return dispatcher.submit(candidates, window_label=window_label)


@router.post("/analyze", response_model=AnalyzeResponse)
def analyze_window(req: AnalyzeRequest, base: AnalysisConfig = Depends(get_default_config)):
    """
    Score the submitted events as one analysis window.
    Configuration errors are rejected with 422 before any event is processed.
    """
    try:
        cfg = base.with_overrides(**req.config.model_dump())
    except ConfigurationError as exc:
        raise HTTPException(status_code=422, detail=f"configuration error: {exc}")

    diag = Diagnostics()
    events = normalize_records(req.events, diag)
    result = analyze_access_logs(events, cfg, diag)

    submitted: list[str] = []
    if req.request_review:
        submitted = _request_reviews(result.risk_scores, req.window_label)

    logger.info(
        "window_analyzed",
        window=req.window_label,
        events=len(req.events),
        risk_rows=len(result.risk_scores),
        reviews=len(submitted),
    )
    return AnalyzeResponse(
        window_label=req.window_label,
        risk_scores=[RiskScoreOut.model_validate(r) for r in result.risk_scores],
        patterns=[UserPatternOut.model_validate(p) for p in result.patterns.values()],
        anomalies=[AnomalyRecordOut.model_validate(a) for a in result.anomalies],
        diagnostics=result.diagnostics.as_dict(),
        reviews_submitted=submitted,
    )


@router.get("/config/defaults")
def config_defaults(base: AnalysisConfig = Depends(get_default_config)):
    """Effective defaults, including the IQR multiplier derived from alpha."""
    return {**asdict(base), "iqr_k": base.iqr_k}
