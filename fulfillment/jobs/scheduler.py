"""
APScheduler Configuration

Background jobs:
- Locked bid sweep (release stock of unpaid locks)
- Bid / enquiry expiry
- Division stock monitor
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from fulfillment.config import settings

logger = logging.getLogger(__name__)

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 60,  # Allow 60 seconds grace time for misfires
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.SCHEDULER_TIMEZONE
)


async def run_job(job_name: str):
    """
    Entry point used by APScheduler.

    Errors are logged here so a failing run never takes the scheduler down.
    """
    from fulfillment.jobs import JOBS

    try:
        result = await JOBS[job_name]()
        logger.debug(f"Job '{job_name}' completed: {result}")
    except Exception as e:
        logger.error(f"Job '{job_name}' failed: {e}")


def start_scheduler():
    """Start the background job scheduler."""
    if not scheduler.running:
        # Release stock held by unpaid locked bids
        scheduler.add_job(
            run_job,
            'interval',
            minutes=settings.LOCKED_BID_SWEEP_INTERVAL_MINUTES,
            args=['release_expired_locked_bids'],
            id='release_expired_locked_bids',
            name='Release Expired Locked Bids',
            replace_existing=True,
        )

        # Expire stale bids and enquiries
        scheduler.add_job(
            run_job,
            'interval',
            minutes=settings.BID_EXPIRY_SWEEP_INTERVAL_MINUTES,
            args=['expire_stale_bids_and_enquiries'],
            id='expire_stale_bids_and_enquiries',
            name='Expire Stale Bids and Enquiries',
            replace_existing=True,
        )

        # Top up low division stock
        scheduler.add_job(
            run_job,
            'interval',
            minutes=settings.INVENTORY_MONITOR_INTERVAL_MINUTES,
            args=['monitor_division_stock'],
            id='monitor_division_stock',
            name='Monitor Division Stock',
            replace_existing=True,
        )

        scheduler.start()
        logger.info("Background job scheduler started")

        # Log all scheduled jobs
        jobs = scheduler.get_jobs()
        for job in jobs:
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Get status of all scheduled jobs."""
    jobs = scheduler.get_jobs()
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in jobs
    ]
