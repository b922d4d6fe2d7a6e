"""
Coursehub - course sales backend

Main FastAPI application with:
- Stripe checkout, webhook and manual confirmation
- Referral commissions and agent payouts
- Admin ledger management
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import select
from starlette.exceptions import HTTPException

from coursehub.api import api_router
from coursehub.config import settings
from coursehub.db import get_db_context
from coursehub.models import User, UserRole
from coursehub.scheduler.jobs import scheduler, setup_scheduler
from coursehub.schemas.common import ErrorResponse
from coursehub.services.exceptions import LedgerError
from coursehub.utils.password import hash_password

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def ensure_admin_account() -> None:
    """Create the bootstrap admin if no admin exists yet."""
    async with get_db_context() as db:
        result = await db.execute(
            select(User).where(User.role == UserRole.ADMIN).limit(1)
        )
        if result.scalar_one_or_none():
            return

        logger.info("Creating admin account...")
        db.add(
            User(
                username=settings.admin_username,
                email=settings.admin_email,
                password_hash=hash_password(settings.admin_password),
                role=UserRole.ADMIN,
                is_active=True,
            )
        )
        logger.info(f"Admin account created: {settings.admin_username}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
    - Creates admin account if not exists
    - Starts the reconciliation scheduler

    Shutdown:
    - Stops the scheduler
    """
    logger.info("Starting Coursehub...")

    await ensure_admin_account()

    if settings.enable_scheduler:
        setup_scheduler()
        scheduler.start()

    logger.info("Coursehub started successfully!")

    yield

    # Shutdown
    logger.info("Shutting down Coursehub...")
    if scheduler.running:
        scheduler.shutdown(wait=False)


# Create FastAPI application
app = FastAPI(
    title="Coursehub",
    description="Course sales, referral commissions and agent payouts",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=exc.message, error=exc.to_dict()).model_dump(mode="json"),
    )


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=str(exc.detail)).model_dump(mode="json"),
        headers=getattr(exc, "headers", None),
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            message="Invalid request",
            error={"code": "validation_error", "details": jsonable_errors(exc)},
        ).model_dump(mode="json"),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(message="Internal server error").model_dump(mode="json"),
    )


# Include routers
app.include_router(api_router)  # /api/* endpoints


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "coursehub.main:app",
        host="0.0.0.0",
        port=8000,
        reload=not settings.is_production,
    )
