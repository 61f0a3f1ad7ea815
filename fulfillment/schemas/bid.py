"""Enquiry, bid and locked bid schemas."""
from decimal import Decimal
from pydantic import BaseModel, Field

from fulfillment.schemas.base import BaseResponseSchema, BaseCreateSchema, Pincode
from typing import Optional, List
from datetime import datetime
import uuid


class EnquiryCreate(BaseCreateSchema):
    user_id: uuid.UUID
    delivery_pincode: Optional[Pincode] = None
    message: Optional[str] = Field(None, max_length=2000)


class EnquiryResponse(BaseResponseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    delivery_pincode: Optional[str] = None
    message: Optional[str] = None
    status: str
    expires_at: Optional[datetime] = None
    created_at: datetime


class BidProductIn(BaseModel):
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0)
    gst_percentage: Optional[Decimal] = Field(None, ge=0, le=100)


class BidCreate(BaseCreateSchema):
    enquiry_id: uuid.UUID
    products: List[BidProductIn] = Field(..., min_length=1)
    validity_hours: Optional[int] = Field(None, ge=1, le=720)
    terms: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[uuid.UUID] = None


class BidProductResponse(BaseResponseSchema):
    id: uuid.UUID
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    product_name: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    gst_percentage: Optional[Decimal] = None
    warehouse_id: Optional[uuid.UUID] = None


class BidResponse(BaseResponseSchema):
    id: uuid.UUID
    enquiry_id: uuid.UUID
    bid_type: str
    status: str
    validity_hours: int
    expires_at: datetime
    terms: Optional[str] = None
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: datetime
    products: List[BidProductResponse] = []


class AcceptBidRequest(BaseCreateSchema):
    bid_id: uuid.UUID
    user_id: uuid.UUID


class RejectBidRequest(BaseCreateSchema):
    reason: Optional[str] = Field(None, max_length=1000)


class LockBidRequest(BaseCreateSchema):
    admin_id: Optional[uuid.UUID] = None


class CancelLockRequest(BaseCreateSchema):
    user_id: uuid.UUID
    reason: Optional[str] = Field(None, max_length=1000)


class PayLockRequest(BaseCreateSchema):
    user_id: uuid.UUID
    payment_reference: str = Field(..., min_length=1, max_length=100)


class LockedBidResponse(BaseResponseSchema):
    id: uuid.UUID
    bid_id: uuid.UUID
    enquiry_id: uuid.UUID
    user_id: uuid.UUID
    subtotal: Decimal
    gst_amount: Decimal
    final_amount: Decimal
    stock_reserved: bool
    stock_reserved_at: Optional[datetime] = None
    payment_deadline: datetime
    status: str
    payment_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    cancelled_reason: Optional[str] = None
    created_at: datetime
