"""
Review handoff to the identity / permission service.

The scoring core never calls out. Callers that want a review workflow pick
candidates from a finished ranking and hand them over here:

    candidates = select_review_candidates(result.risk_scores, threshold=0.5)
    with ReviewDispatcher("http://identity:8300") as dispatcher:
        dispatcher.submit(candidates, window_label="2026-10-19T14")

POST {base_url}/api/reviews, one request per user. A failed request is
logged and skipped; the remaining candidates are still sent.

Environment:
  ACCESSRISK_REVIEW_URL              identity service base URL (unset = disabled)
  ACCESSRISK_REVIEW_THRESHOLD        minimum risk_score for a candidate (0.5)
  ACCESSRISK_REVIEW_TIMEOUT_SECONDS  per-request timeout (5)
"""

import os
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Optional

import httpx
import structlog

from accessrisk.services.shared.models import RiskScore

logger = structlog.get_logger()

REVIEW_SERVICE_URL    = os.getenv("ACCESSRISK_REVIEW_URL", "")
REVIEW_RISK_THRESHOLD = float(os.getenv("ACCESSRISK_REVIEW_THRESHOLD", "0.5"))
REVIEW_TIMEOUT        = float(os.getenv("ACCESSRISK_REVIEW_TIMEOUT_SECONDS", "5"))


@dataclass(frozen=True)
class ReviewCandidate:
    user_id:    str
    risk_score: float
    rank:       int
    hour:       int

    def payload(self, window_label: Optional[str] = None) -> dict[str, Any]:
        return {
            "user_id":      self.user_id,
            "reason":       f"access risk {self.risk_score:.3f} (rank {self.rank}, hour {self.hour:02d})",
            "risk_score":   round(self.risk_score, 6),
            "rank":         self.rank,
            "hour":         self.hour,
            "window":       window_label,
            "requested_by": "accessrisk",
        }


def select_review_candidates(
    risk_scores: Iterable[RiskScore],
    threshold: float = REVIEW_RISK_THRESHOLD,
    limit: Optional[int] = None,
) -> list[ReviewCandidate]:
    """Best-ranked row per user with risk_score >= threshold, in rank order."""
    candidates: list[ReviewCandidate] = []
    seen: set[str] = set()
    for row in sorted(risk_scores, key=lambda r: r.rank):
        if row.risk_score < threshold:
            break
        if row.user_id in seen:
            continue
        seen.add(row.user_id)
        candidates.append(ReviewCandidate(
            user_id=row.user_id,
            risk_score=row.risk_score,
            rank=row.rank,
            hour=row.hour,
        ))
        if limit is not None and len(candidates) >= limit:
            break
    return candidates


class ReviewDispatcher:
    def __init__(
        self,
        base_url: str = REVIEW_SERVICE_URL,
        client: httpx.Client | None = None,
        timeout: float = REVIEW_TIMEOUT,
    ):
        if not base_url:
            raise ValueError("review service URL is not configured (ACCESSRISK_REVIEW_URL)")
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def submit(
        self,
        candidates: Iterable[ReviewCandidate],
        window_label: Optional[str] = None,
    ) -> list[str]:
        """Send each candidate; returns the user_ids the service accepted."""
        submitted: list[str] = []
        total = 0
        for c in candidates:
            total += 1
            try:
                resp = self._client.post(f"{self.base_url}/api/reviews", json=c.payload(window_label))
                resp.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning("review_submit_failed", user_id=c.user_id, error=str(exc))
                continue
            submitted.append(c.user_id)

        logger.info("review_candidates_submitted", submitted=len(submitted), total=total)
        return submitted

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "ReviewDispatcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
