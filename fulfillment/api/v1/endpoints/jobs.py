"""Background job API endpoints."""
from fastapi import APIRouter

from fulfillment.api.deps import DB
from fulfillment.jobs import get_job_status
from fulfillment.jobs.scheduler import scheduler
from fulfillment.services.bid_service import BidService


router = APIRouter(tags=["Jobs"])


@router.get("/status")
async def job_status():
    return {"success": True, "running": scheduler.running, "jobs": get_job_status()}


@router.post("/run-expiry")
async def run_expiry(db: DB):
    """Run the locked bid, bid and enquiry expiry sweeps now."""
    service = BidService(db)
    locked_bids = await service.expire_overdue_locks()
    bids = await service.expire_stale_bids()
    enquiries = await service.expire_stale_enquiries()
    return {
        "success": True,
        "expired": {"locked_bids": locked_bids, "bids": bids, "enquiries": enquiries},
    }
