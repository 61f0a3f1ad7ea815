"""Bid and locked bid API endpoints."""
from typing import Optional
import uuid

from fastapi import APIRouter, Query, status

from fulfillment.api.deps import DB
from fulfillment.schemas.bid import (
    BidCreate,
    BidResponse,
    RejectBidRequest,
    LockBidRequest,
    CancelLockRequest,
    PayLockRequest,
    LockedBidResponse,
)
from fulfillment.services.bid_service import BidService


router = APIRouter(tags=["Bids"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_bid(data: BidCreate, db: DB):
    bid = await BidService(db).create_bid(data)
    return {"success": True, "data": BidResponse.model_validate(bid)}


@router.get("/locked")
async def list_locked_bids(db: DB, user_id: uuid.UUID = Query(...)):
    locks = await BidService(db).list_locked_bids(user_id)
    return {"success": True, "data": [LockedBidResponse.model_validate(lock) for lock in locks]}


@router.get("/{bid_id}")
async def get_bid(bid_id: uuid.UUID, db: DB):
    bid = await BidService(db).get_bid(bid_id)
    return {"success": True, "data": BidResponse.model_validate(bid)}


@router.post("/{bid_id}/lock", status_code=status.HTTP_201_CREATED)
async def lock_bid(bid_id: uuid.UUID, db: DB, data: Optional[LockBidRequest] = None):
    """
    Lock an accepted bid.

    Reserves stock for every bid line and adds them to the customer's
    cart. The customer then has BID_PAYMENT_WINDOW_MINUTES to pay.
    """
    locked = await BidService(db).lock_bid(bid_id, admin_id=data.admin_id if data else None)
    return {
        "success": True,
        "data": LockedBidResponse.model_validate(locked),
        "message": "Bid locked, stock reserved",
    }


@router.post("/{bid_id}/reject")
async def reject_bid(bid_id: uuid.UUID, data: RejectBidRequest, db: DB):
    bid = await BidService(db).reject_bid(bid_id, data.reason)
    return {"success": True, "data": BidResponse.model_validate(bid)}


# ==================== Locked bids ====================

@router.get("/{locked_bid_id}/validate")
async def validate_locked_bid(locked_bid_id: uuid.UUID, db: DB, user_id: uuid.UUID = Query(...)):
    """Whether a locked bid can still be paid. Read-only."""
    result = await BidService(db).validate_locked_bid(locked_bid_id, user_id)
    return {"success": True, **result}


@router.post("/{locked_bid_id}/cancel")
async def cancel_locked_bid(locked_bid_id: uuid.UUID, data: CancelLockRequest, db: DB):
    locked = await BidService(db).cancel_locked_bid(locked_bid_id, data.user_id, data.reason)
    return {
        "success": True,
        "data": LockedBidResponse.model_validate(locked),
        "message": "Locked bid cancelled, stock released",
    }


@router.post("/{locked_bid_id}/pay")
async def pay_locked_bid(locked_bid_id: uuid.UUID, data: PayLockRequest, db: DB):
    result = await BidService(db).pay_locked_bid(locked_bid_id, data.user_id, data.payment_reference)
    return {
        "success": True,
        "data": LockedBidResponse.model_validate(result["locked_bid"]),
        "confirmed": result["confirmed"],
        "message": "Payment recorded, stock deducted",
    }
