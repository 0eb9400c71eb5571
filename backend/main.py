"""
Retyrment - FastAPI Backend
===========================
API server for the retirement corpus reconciliation engine.

Architecture:
1. The scenario calculator produces a RetirementProjection upstream
2. This service reconciles it with goals, loans, expenses and investments
3. Nothing is stored; every request is a pure computation over its body
"""

import os
import logging
from datetime import date, datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Local imports
from planning_constants import EngineSettings, get_all_thresholds
from models import (
    CalculationInput,
    GoalResolutionRequest,
    TimelineRequest,
)
from corpus_errors import InvalidInputError, TimelineIntegrityError
from corpus_engine import GoalShortfallResolver, ReconciliationEngine, TimelineMerger

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION SETUP
# =============================================================================

settings = EngineSettings.from_env()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Retyrment reconciliation engine starting up...")
    logger.info("Active thresholds: %s", settings.model_dump())
    yield
    logger.info("Retyrment reconciliation engine shutting down...")


app = FastAPI(
    title="Retyrment",
    description="Retirement corpus projection and goal-reconciliation API",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],  # React dev servers
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# API ENDPOINTS
# =============================================================================

@app.get("/")
async def root():
    """API health check."""
    return {
        "service": "Retyrment",
        "version": "1.0.0",
        "status": "healthy",
    }


@app.get("/api/health")
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "components": {
            "timeline_merger": "ready",
            "goal_resolver": "ready",
            "alert_prioritizer": "ready",
        }
    }


# --- RECONCILIATION ---

@app.post("/api/retirement/reconcile")
async def reconcile(request: CalculationInput):
    """
    Run the full reconciliation: merged timeline, corrected goal funding,
    emergency fund status, gap classification and prioritized alerts.
    """
    engine = ReconciliationEngine(settings)
    result = engine.calculate(request)

    logger.info(
        "Reconciled projection: %d timeline points, %d goals, %d alerts",
        len(result.merged_timeline), len(result.resolved_goals), len(result.alerts),
    )
    return result.model_dump(by_alias=True, mode="json")


@app.post("/api/retirement/timeline")
async def merge_timeline(request: TimelineRequest):
    """Merge the accumulation matrix and the post-retirement projection."""
    projection = request.projection
    summary = projection.summary

    retirement_year = ReconciliationEngine.retirement_year(projection, request.as_of or date.today())

    points = TimelineMerger().merge(
        projection.matrix,
        projection.income_projection,
        retirement_year=retirement_year,
        retirement_age=summary.retirement_age,
        life_expectancy=summary.life_expectancy,
        interpolate=request.interpolate_post_retirement,
    )
    return {
        "timeline": [p.model_dump(by_alias=True) for p in points],
        "retirementYear": retirement_year,
    }


# --- GOALS ---

@app.post("/api/goals/resolve")
async def resolve_goals(request: GoalResolutionRequest):
    """Correct each goal's funding percent against the matrix row for its target year."""
    resolved = GoalShortfallResolver().resolve_all(request.goals, request.matrix)
    return {
        "goals": [r.model_dump(by_alias=True, mode="json") for r in resolved],
        "shortfallCount": sum(1 for r in resolved if r.has_shortfall),
    }


# --- REFERENCE DATA ---

@app.get("/api/reference/thresholds")
async def get_thresholds():
    """Get the active alert thresholds."""
    return get_all_thresholds(settings)


# --- ERROR HANDLERS ---

@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request, exc: InvalidInputError):
    logger.info(f"Rejected request: {exc.message}")
    return JSONResponse(status_code=400, content=exc.to_dict())


@app.exception_handler(TimelineIntegrityError)
async def timeline_integrity_handler(request, exc: TimelineIntegrityError):
    return JSONResponse(status_code=422, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if os.getenv("DEBUG") else "An error occurred"
        }
    )


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
