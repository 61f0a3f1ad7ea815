"""Delivery zone and availability schemas."""
from pydantic import BaseModel, Field

from fulfillment.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema, Pincode
from fulfillment.schemas.warehouse import PincodeEntry
from typing import Optional, List
from datetime import datetime
import uuid


class ZoneCreate(BaseCreateSchema):
    code: str = Field(..., min_length=2, max_length=30)
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = None
    pincodes: List[PincodeEntry] = Field(default_factory=list)


class ZoneUpdate(BaseUpdateSchema):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class ZonePincodeResponse(BaseResponseSchema):
    id: uuid.UUID
    pincode: str
    city: Optional[str] = None
    state: Optional[str] = None


class ZoneResponse(BaseResponseSchema):
    id: uuid.UUID
    code: str
    name: str
    description: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None


class ZoneDetailResponse(ZoneResponse):
    pincodes: List[ZonePincodeResponse] = []
    warehouse_ids: List[uuid.UUID] = []


class ZonePincodesRequest(BaseCreateSchema):
    pincodes: List[PincodeEntry] = Field(..., min_length=1)


class PincodeValidateRequest(BaseCreateSchema):
    pincode: Pincode
    product_id: Optional[uuid.UUID] = None


class AvailabilityLine(BaseModel):
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    quantity: int = Field(default=1, ge=1)


class CartAvailabilityRequest(BaseCreateSchema):
    pincode: Pincode
    items: List[AvailabilityLine] = Field(..., min_length=1)


class TransferRequest(BaseCreateSchema):
    """Manual stock move, or zonal -> division top-up when from_warehouse_id is omitted."""
    product_id: uuid.UUID
    to_warehouse_id: uuid.UUID
    from_warehouse_id: Optional[uuid.UUID] = None
    variant_id: Optional[uuid.UUID] = None
    quantity: Optional[int] = Field(None, ge=1)
    notes: Optional[str] = None
