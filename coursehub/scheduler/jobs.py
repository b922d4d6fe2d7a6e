"""
Background job definitions using APScheduler.

Jobs include:
- Ledger reconciliation (commission backfill + agent totals)
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from coursehub.config import settings
from coursehub.db import get_db_context
from coursehub.services.reconciliation import run_reconciliation

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()


async def reconciliation_job():
    """Backfill missing commissions and fix drifted agent totals."""
    logger.debug("Running ledger reconciliation job")
    try:
        async with get_db_context() as db:
            result = await run_reconciliation(db)
        backfill = result["backfill"]
        if backfill["created"] or backfill["failed"] or result["corrections"]:
            logger.info(
                f"Reconciliation job: {len(backfill['created'])} commissions created, "
                f"{len(backfill['failed'])} failed, "
                f"{len(result['corrections'])} agent totals corrected"
            )
    except Exception as e:
        logger.error(f"Reconciliation job error: {e}")


def setup_scheduler():
    """
    Configure and add all scheduled jobs.

    Called during application startup.
    """
    scheduler.add_job(
        reconciliation_job,
        trigger=IntervalTrigger(minutes=settings.reconciliation_interval_minutes),
        id="ledger_reconciliation",
        name="Reconcile commission ledger",
        replace_existing=True,
        max_instances=1,
    )

    logger.info("Scheduler configured with jobs")
