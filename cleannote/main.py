"""
main.py - FastAPI application entrypoint for CleanNote

Purpose:
- Wires the feature routers into one FastAPI app:
    auth      -> /auth/register, /auth/login, /auth/logout, /auth/session
    entries   -> /entries CRUD and the AI tidy routes
    stats     -> /dashboard/stats
    insights  -> /insights, /insights/generate, /insights/save
    voice     -> /voice/transcribe
- Configures logging (LOG_LEVEL env var) and exposes /health.

Every protected route resolves the user through auth.get_current_user and
passes the user id explicitly into the core functions.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from . import auth
from . import entries
from . import insights
from . import stats
from . import voice
from .dates import utcnow
from .gcp_clients import GEMINI_API_KEY, GEMINI_MODEL, GCP_PROJECT

# Configure logging (configurable via LOG_LEVEL env var)
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
_logger = logging.getLogger(__name__)


# -------------------------
# Startup
# -------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log which model backend is configured; clients are created lazily."""
    _logger.info("CleanNote starting up")
    if not (GEMINI_API_KEY or GCP_PROJECT):
        _logger.warning("No GEMINI_API_KEY or GCP_PROJECT set; AI tidy and insights will fail")
    yield
    _logger.info("CleanNote shutting down")


# FastAPI app and routers
app = FastAPI(title="CleanNote", lifespan=lifespan)
app.include_router(auth.router)
app.include_router(entries.router)
app.include_router(stats.router)
app.include_router(insights.router)
app.include_router(voice.router)


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "model": GEMINI_MODEL,
        "model_configured": bool(GEMINI_API_KEY or GCP_PROJECT),
    }


# -------------------------
# Run with Uvicorn when executed directly
# -------------------------
if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("cleannote.main:app", host="0.0.0.0", port=port, reload=True)
