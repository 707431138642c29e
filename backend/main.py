"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import fms
from config import settings
from database import get_session_local
from logging_config import setup_logging
from services.sync_log_service import SyncLogService

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Fail sync runs left ``running`` by a previous process."""
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        count = SyncLogService.fail_interrupted_runs(db)
        db.commit()
        if count:
            logger.info("Marked %d interrupted FMS sync run(s) as failed", count)
    except Exception:
        db.rollback()
        logger.warning("Interrupted sync recovery failed on startup", exc_info=True)
    finally:
        db.close()
    yield


app = FastAPI(
    title="FMS Sync",
    description="Facility Management System sync and change review",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(fms.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
