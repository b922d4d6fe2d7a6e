"""
Health check endpoints.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from coursehub.config import settings
from coursehub.db import get_db
from coursehub.scheduler.jobs import scheduler

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check():
    """Process is up. No dependencies are touched."""
    return {"status": "healthy", "service": "coursehub"}


@router.get("/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """
    Ready to take payments.

    503 when the database is unreachable. Missing Stripe keys and a stopped
    reconciliation scheduler are reported but do not fail the check.
    """
    checks = {
        "stripe": "configured" if settings.stripe_secret_key else "missing_secret_key",
        "stripe_webhook": "configured" if settings.stripe_webhook_secret else "missing_secret",
        "scheduler": "running" if scheduler.running else "stopped",
    }

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "connected"
    except Exception as e:
        checks["database"] = f"error: {e}"
        return JSONResponse(status_code=503, content={"status": "not_ready", **checks})

    return {"status": "ready", **checks}


@router.get("/live")
async def liveness_check():
    """Event loop is responsive. Used by the orchestrator for restarts."""
    return {"status": "alive"}
