"""
AccessRisk Analysis Service (port 8400)
-----------------------------------------
Scores one window of access-log events per request:
  POST /api/analyze          → ranked risk table + baselines + diagnostics
  GET  /api/config/defaults  → effective defaults from ACCESSRISK_* env vars

Configuration from the environment is validated at start-up; a bad value
stops the service instead of serving misleading scores.
"""

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from accessrisk.services.shared.config import AnalysisConfig

logging.basicConfig(level=logging.INFO)
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    cfg = AnalysisConfig.from_env()
    logger.info(
        "accessrisk_analysis_starting",
        alpha=cfg.alpha,
        iqr_k=round(cfg.iqr_k, 4),
        weights=cfg.weights,
        min_buckets=cfg.min_buckets_for_detection,
        timezone=cfg.timezone,
    )
    yield
    logger.info("accessrisk_analysis_stopping")


app = FastAPI(
    title="AccessRisk Analysis Service",
    version="0.1.0",
    description="Ranks users for security review from a window of access-log events.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routes ────────────────────────────────────────────────────────────────────
from accessrisk.services.analysis.routes_analysis import router as analysis_router  # noqa: E402

app.include_router(analysis_router, prefix="/api", tags=["Analysis"])


@app.get("/health", tags=["Health"])
def health():
    return {"status": "healthy", "service": "accessrisk-analysis", "version": "0.1.0"}
