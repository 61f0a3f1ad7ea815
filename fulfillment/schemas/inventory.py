"""Product stock schemas."""
from pydantic import Field

from fulfillment.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema
from typing import Optional
from datetime import datetime
import uuid


class ProductStockCreate(BaseCreateSchema):
    """Map a product to a warehouse with an initial stock level."""
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    stock_quantity: int = Field(default=0, ge=0)
    minimum_threshold: int = Field(default=0, ge=0)


class ProductStockUpdate(BaseUpdateSchema):
    variant_id: Optional[uuid.UUID] = None
    stock_quantity: int = Field(..., ge=0)
    minimum_threshold: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None


class ProductStockResponse(BaseResponseSchema):
    id: uuid.UUID
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    warehouse_id: uuid.UUID
    stock_quantity: int
    reserved_quantity: int
    available_quantity: int
    minimum_threshold: int
    version: int
    is_active: bool
    updated_at: Optional[datetime] = None
