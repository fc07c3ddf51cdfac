"""
Scheduled Task Module

Uses APScheduler to re-verify the secure session in the background, independently
of request traffic.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from attested_proxy.services.session import SecureSession

logger = logging.getLogger(__name__)

REFRESH_JOB_ID = "refresh_secure_session"

# Global Scheduler Instance
_scheduler: Optional[AsyncIOScheduler] = None


async def refresh_session_task(session: SecureSession):
    """
    Scheduled Session Refresh Task

    Re-verifies the secure session. A failed attempt leaves the previous session in
    force; the next attempt happens on the next tick.
    """
    logger.info("Starting scheduled secure session refresh")

    try:
        snapshot = await session.reset()
        logger.info(
            f"Secure session refresh completed (last verified at {snapshot.last_verified_at_ms})"
        )
    except Exception as e:
        logger.error(f"Secure session refresh failed: {str(e)}", exc_info=True)


def start_scheduler(session: SecureSession, interval_seconds: int):
    """
    Start Scheduled Task Scheduler

    Args:
        session: Session to refresh
        interval_seconds: Refresh interval
    """
    global _scheduler

    if _scheduler is not None:
        logger.warning("Scheduler already started")
        return

    _scheduler = AsyncIOScheduler()

    _scheduler.add_job(
        refresh_session_task,
        trigger=IntervalTrigger(seconds=interval_seconds),
        args=[session],
        id=REFRESH_JOB_ID,
        name="Re-verify secure session",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    _scheduler.start()
    logger.info(f"Scheduler started: secure session refresh every {interval_seconds} seconds")


def shutdown_scheduler():
    """
    Shutdown Scheduled Task Scheduler

    Gracefully stops all scheduled tasks.
    """
    global _scheduler

    if _scheduler is None:
        return

    _scheduler.shutdown(wait=True)
    _scheduler = None
    logger.info("Scheduler shutdown completed")


def get_scheduler() -> Optional[AsyncIOScheduler]:
    """
    Get Scheduler Instance

    Returns:
        Optional[AsyncIOScheduler]: Scheduler instance or None
    """
    return _scheduler
