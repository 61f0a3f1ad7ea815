"""Product enquiry API endpoints."""
import uuid

from fastapi import APIRouter, status

from fulfillment.api.deps import DB
from fulfillment.schemas.bid import EnquiryCreate, EnquiryResponse, AcceptBidRequest, BidResponse
from fulfillment.services.bid_service import BidService


router = APIRouter(tags=["Enquiries"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_enquiry(data: EnquiryCreate, db: DB):
    enquiry = await BidService(db).create_enquiry(data.user_id, data.delivery_pincode, data.message)
    return {"success": True, "data": EnquiryResponse.model_validate(enquiry)}


@router.get("/{enquiry_id}")
async def get_enquiry(enquiry_id: uuid.UUID, db: DB):
    enquiry = await BidService(db).get_enquiry(enquiry_id)
    return {"success": True, "data": EnquiryResponse.model_validate(enquiry)}


@router.post("/{enquiry_id}/accept-bid")
async def accept_bid(enquiry_id: uuid.UUID, data: AcceptBidRequest, db: DB):
    """Customer accepts one of the bids made on their enquiry."""
    service = BidService(db)
    bid = await service.accept_bid(enquiry_id, data.bid_id, data.user_id)
    bid = await service.get_bid(bid.id)
    return {
        "success": True,
        "data": BidResponse.model_validate(bid),
        "message": "Bid accepted, awaiting lock",
    }
