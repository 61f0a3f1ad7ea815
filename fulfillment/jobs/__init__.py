"""
Background Jobs Module

Handles scheduled tasks for:
- Locked bid stock release
- Bid / enquiry expiry
- Division stock replenishment
"""

from fulfillment.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler, get_job_status
from fulfillment.jobs.bid_jobs import release_expired_locked_bids, expire_stale_bids_and_enquiries
from fulfillment.jobs.inventory_jobs import monitor_division_stock

JOBS = {
    "release_expired_locked_bids": release_expired_locked_bids,
    "expire_stale_bids_and_enquiries": expire_stale_bids_and_enquiries,
    "monitor_division_stock": monitor_division_stock,
}

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "get_job_status",
    "release_expired_locked_bids",
    "expire_stale_bids_and_enquiries",
    "monitor_division_stock",
    "JOBS",
]
