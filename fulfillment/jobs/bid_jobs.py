"""
Bid Expiry Jobs

- Release stock held by locked bids whose payment window has passed
- Expire bids and enquiries past their validity
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from fulfillment.database import get_db_session
from fulfillment.services.bid_service import BidService

logger = logging.getLogger(__name__)


async def release_expired_locked_bids(now: Optional[datetime] = None) -> int:
    """
    Expire unpaid locked bids.

    Runs every LOCKED_BID_SWEEP_INTERVAL_MINUTES. Each overdue lock has
    its stock released and its cart rows removed.
    """
    start_time = datetime.now(timezone.utc)
    try:
        async with get_db_session() as session:
            expired = await BidService(session).expire_overdue_locks(now)

        elapsed = (datetime.now(timezone.utc) - start_time).total_seconds()
        if expired:
            logger.info(f"Released stock from {expired} expired locked bid(s) in {elapsed:.2f}s")
        return expired

    except Exception as e:
        logger.error(f"Locked bid sweep failed: {e}")
        raise


async def expire_stale_bids_and_enquiries(now: Optional[datetime] = None) -> Dict[str, int]:
    """Mark bids and enquiries past their validity as EXPIRED."""
    try:
        async with get_db_session() as session:
            service = BidService(session)
            bids = await service.expire_stale_bids(now)
            enquiries = await service.expire_stale_enquiries(now)

        if bids or enquiries:
            logger.info(f"Expired {bids} bid(s) and {enquiries} enquiry(ies)")
        return {"bids": bids, "enquiries": enquiries}

    except Exception as e:
        logger.error(f"Bid / enquiry expiry failed: {e}")
        raise
