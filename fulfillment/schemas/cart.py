"""Cart and checkout stock schemas."""
from decimal import Decimal
from pydantic import BaseModel, Field

from fulfillment.schemas.base import BaseResponseSchema, BaseCreateSchema, Pincode
from typing import Optional, List
from datetime import datetime
import uuid


class CartAddRequest(BaseCreateSchema):
    user_id: uuid.UUID
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    quantity: int = Field(default=1, ge=1)
    pincode: Optional[Pincode] = None


class CartUpdateRequest(BaseCreateSchema):
    quantity: int = Field(..., ge=1)


class CartItemResponse(BaseResponseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    warehouse_id: Optional[uuid.UUID] = None
    quantity: int
    is_bid_product: bool
    locked_bid_id: Optional[uuid.UUID] = None
    bid_unit_price: Optional[Decimal] = None
    checkout_order_id: Optional[str] = None
    added_at: Optional[datetime] = None


class ValidateDeliveryRequest(BaseCreateSchema):
    user_id: uuid.UUID
    pincode: Pincode


class ReserveStockRequest(BaseCreateSchema):
    user_id: uuid.UUID
    pincode: Pincode
    order_id: str = Field(..., min_length=1, max_length=64)


class StockAssignment(BaseModel):
    """Warehouse a checked-out line was reserved at."""
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    warehouse_id: uuid.UUID
    quantity: int = Field(..., ge=1)


class ConfirmStockRequest(BaseCreateSchema):
    order_id: str = Field(..., min_length=1, max_length=64)
    # Confirms every order reservation when omitted
    assignments: Optional[List[StockAssignment]] = None


class ReleaseStockRequest(BaseCreateSchema):
    order_id: str = Field(..., min_length=1, max_length=64)
