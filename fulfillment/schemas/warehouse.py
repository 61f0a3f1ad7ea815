"""Warehouse directory schemas for API requests/responses."""
from pydantic import BaseModel, Field

from fulfillment.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema, Pincode
from typing import Optional, List
from datetime import datetime
import uuid

from fulfillment.models.warehouse import WarehouseType


class PincodeEntry(BaseModel):
    """Pincode with optional locality details."""
    pincode: Pincode
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)


class ZoneAssignment(BaseModel):
    """Zonal warehouse -> zone mapping with priority."""
    zone_id: uuid.UUID
    priority: int = Field(default=100, ge=1, le=1000)


class WarehouseCreate(BaseCreateSchema):
    """Warehouse creation schema."""
    code: str = Field(..., min_length=2, max_length=20)
    name: str = Field(..., min_length=2, max_length=200)
    warehouse_type: WarehouseType = WarehouseType.ZONAL
    parent_warehouse_id: Optional[uuid.UUID] = None
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    pincode: Optional[str] = Field(None, max_length=10)
    notes: Optional[str] = None
    # Zonal only
    zones: List[ZoneAssignment] = Field(default_factory=list)
    # Division only
    pincode_assignments: List[PincodeEntry] = Field(default_factory=list)


class WarehouseUpdate(BaseUpdateSchema):
    """Warehouse update schema. Type is fixed after creation."""
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    parent_warehouse_id: Optional[uuid.UUID] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None


class WarehouseResponse(BaseResponseSchema):
    """Warehouse response schema."""
    id: uuid.UUID
    code: str
    name: str
    warehouse_type: str
    parent_warehouse_id: Optional[uuid.UUID] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class WarehouseHierarchyNode(WarehouseResponse):
    """Zonal warehouse with its divisions."""
    divisions: List[WarehouseResponse] = []


class WarehousePincodeResponse(BaseResponseSchema):
    id: uuid.UUID
    warehouse_id: uuid.UUID
    pincode: str
    city: Optional[str] = None
    state: Optional[str] = None
    is_active: bool


class PincodeAssignRequest(BaseCreateSchema):
    """Assign pincodes to a division warehouse."""
    pincodes: List[PincodeEntry] = Field(..., min_length=1)


class WarehouseZonesRequest(BaseCreateSchema):
    """Replace the zone mappings of a zonal warehouse."""
    zones: List[ZoneAssignment] = Field(default_factory=list)


class AvailablePincode(BaseModel):
    pincode: str
    city: Optional[str] = None
    state: Optional[str] = None
    is_available: bool
    assigned_to_division: Optional[uuid.UUID] = None
