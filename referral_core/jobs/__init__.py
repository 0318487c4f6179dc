"""
Background Jobs Module

Handles scheduled tasks for:
- Referral expiry
- Commission maturity
"""

from referral_core.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler, get_job_status
from referral_core.jobs.referral_jobs import expire_stale_referrals, mature_commissions

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "get_job_status",
    "expire_stale_referrals",
    "mature_commissions",
]
