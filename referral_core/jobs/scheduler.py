"""
APScheduler Configuration

Background job scheduler for the referral program. Jobs share the
application's event loop and open their own database sessions.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from referral_core.config import settings

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
    timezone='UTC'
)


async def run_job(job_name: str):
    """Run a referral job by name, logging instead of raising on failure."""
    from referral_core.jobs import referral_jobs

    try:
        result = await getattr(referral_jobs, job_name)()
        logger.info(f"Job '{job_name}' completed: {result}")
    except Exception as e:
        logger.error(f"Job '{job_name}' failed: {e}")


def start_scheduler():
    """Start the background job scheduler."""
    if not scheduler.running:
        # Expire referrals past their attribution window
        scheduler.add_job(
            run_job,
            'interval',
            minutes=settings.REFERRAL_EXPIRY_INTERVAL_MINUTES,
            args=['expire_stale_referrals'],
            id='expire_stale_referrals',
            name='Expire Stale Referrals',
            replace_existing=True,
        )

        # Mature commission past the return window
        scheduler.add_job(
            run_job,
            'interval',
            minutes=settings.COMMISSION_MATURITY_INTERVAL_MINUTES,
            args=['mature_commissions'],
            id='mature_commissions',
            name='Mature Commissions',
            replace_existing=True,
        )

        scheduler.start()
        logger.info("Background job scheduler started")

        for job in scheduler.get_jobs():
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
