"""
Integration test: analysis service end-to-end over HTTP.
Requires: the analysis service running on port 8400
  (uvicorn accessrisk.services.analysis.main:app --port 8400)

Flow:
1. POST a window where one user has a single-hour burst
2. Assert the burst hour is ranked first with the full anomaly component
3. Assert the effective defaults endpoint reports the derived IQR multiplier

Run with: pytest tests/integration/test_analysis_service.py -v
"""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

ANALYSIS_URL = "http://localhost:8400"

_WINDOW_DAY = datetime(2026, 10, 19, tzinfo=timezone.utc)


def _service_running() -> bool:
    try:
        r = httpx.get(f"{ANALYSIS_URL}/health", timeout=2.0)
        return r.status_code == 200
    except httpx.HTTPError:
        return False


def _events(user_id: str, counts_by_hour: dict[int, int], resource: str) -> list[dict]:
    return [
        {
            "timestamp": (_WINDOW_DAY + timedelta(hours=h, seconds=i)).isoformat(),
            "user_id": user_id,
            "resource_id": resource,
            "status": "OK",
        }
        for h, n in counts_by_hour.items()
        for i in range(n)
    ]


@pytest.mark.integration
def test_burst_hour_ranked_first():
    if not _service_running():
        pytest.skip("analysis service not running")

    events = (
        _events("U1", {8: 10, 9: 11, 10: 9, 11: 10, 12: 200}, "r1")
        + _events("U2", {9: 5, 10: 5, 11: 5, 12: 5}, "r1")
    )
    r = httpx.post(
        f"{ANALYSIS_URL}/api/analyze",
        json={"events": events, "window_label": "integration"},
        timeout=30.0,
    )
    assert r.status_code == 200, r.text
    body = r.json()

    top = body["risk_scores"][0]
    assert top["user_id"] == "U1"
    assert top["hour"] == 12
    assert top["anomaly_score"] == pytest.approx(1.0)
    assert [row["rank"] for row in body["risk_scores"]] == list(range(1, len(body["risk_scores"]) + 1))
    assert body["diagnostics"]["events_accepted"] == len(events)


@pytest.mark.integration
def test_config_defaults_exposed():
    if not _service_running():
        pytest.skip("analysis service not running")

    r = httpx.get(f"{ANALYSIS_URL}/api/config/defaults", timeout=5.0)
    assert r.status_code == 200
    body = r.json()
    assert 0.0 < body["alpha"] < 1.0
    assert body["iqr_k"] >= 0.0
