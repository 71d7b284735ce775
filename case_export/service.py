"""
Export Service: HTTP Surface for the Export Flow

A narrow FastAPI service: "export this work type from this server".
Each request runs its own orchestrator, so each export owns its own
browser session.

SECURITY NOTES:
- Credentials arrive per request and are never stored or logged
- Run this next to the browser (it launches Chromium per export)
- Limit network access to trusted callers

USAGE:
    uvicorn case_export.service:app --host 0.0.0.0 --port 8081

    POST http://localhost:8081/exports
    {
        "base_url": "https://tenant.example.com",
        "work_type_key": "instruction-matter",
        "username": "...",
        "password": "...",
        "headless": true
    }
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Callable
import importlib.util
import logging
import os

from fastapi import Depends, FastAPI

from .auth.token import Credentials
from .config import ExportSettings
from .logging_setup import setup_logging
from .orchestrator import ExportOrchestrator
from .schemas import ExportRequest, ExportResponse, HealthResponse

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[ExportSettings], ExportOrchestrator]


def get_settings() -> ExportSettings:
    return ExportSettings.from_env(os.environ.get("CASE_EXPORT_ENV_FILE", ".env"))


def get_orchestrator_factory() -> OrchestratorFactory:
    return ExportOrchestrator


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    setup_logging(log_file=os.environ.get("CASE_EXPORT_LOG_FILE") or None)
    logger.info("=" * 60)
    logger.info("  CASE EXPORT SERVICE STARTING")
    logger.info("=" * 60)
    logger.info("  Health Check:  GET  /health")
    logger.info("  Run Export:    POST /exports")
    yield
    logger.info("  CASE EXPORT SERVICE SHUTTING DOWN")


app = FastAPI(
    title="Case Export Service",
    description="Authenticated export-package jobs: submit, poll, download",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health", response_model=HealthResponse)
async def health_check(settings: ExportSettings = Depends(get_settings)) -> HealthResponse:
    available = importlib.util.find_spec("playwright") is not None
    return HealthResponse(
        status="healthy" if available else "degraded",
        playwright_available=available,
        download_dir=str(settings.download_path),
    )


@app.post("/exports", response_model=ExportResponse)
async def create_export(
    req: ExportRequest,
    settings: ExportSettings = Depends(get_settings),
    make_orchestrator: OrchestratorFactory = Depends(get_orchestrator_factory),
) -> ExportResponse:
    """
    Run one export end to end and report where the package landed.

    Without username/password a human must log in in the browser window,
    so headless should be false for those requests.
    """
    credentials = None
    if req.username and req.password is not None:
        credentials = Credentials(req.username, req.password.get_secret_value())

    run_settings = settings.with_overrides(headless=req.headless)
    logger.info(
        f"[SERVICE] Export requested: {req.work_type_key} from {req.base_url} "
        f"(credentials={'yes' if credentials else 'manual'}, headless={run_settings.headless})"
    )

    outcome = await make_orchestrator(run_settings).run(
        req.base_url, req.work_type_key, credentials
    )
    return ExportResponse.from_outcome(outcome)
