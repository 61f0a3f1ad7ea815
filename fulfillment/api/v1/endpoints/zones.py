"""Delivery zone API endpoints."""
from typing import Optional
import uuid

from fastapi import APIRouter, Query, status
from sqlalchemy import select

from fulfillment.api.deps import DB
from fulfillment.models.serviceability import WarehouseZone
from fulfillment.schemas.serviceability import (
    ZoneCreate,
    ZoneUpdate,
    ZoneResponse,
    ZoneDetailResponse,
    ZonePincodesRequest,
    PincodeValidateRequest,
)
from fulfillment.services.warehouse_service import WarehouseService


router = APIRouter(tags=["Delivery Zones"])


@router.get("")
async def list_zones(db: DB, is_active: Optional[bool] = Query(None)):
    zones = await WarehouseService(db).list_zones(is_active=is_active)
    return {
        "success": True,
        "data": [
            {
                **ZoneResponse.model_validate(z["zone"]).model_dump(),
                "pincode_count": z["pincode_count"],
                "warehouse_count": z["warehouse_count"],
            }
            for z in zones
        ],
        "count": len(zones),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_zone(data: ZoneCreate, db: DB):
    service = WarehouseService(db)
    zone = await service.create_zone(data)
    zone = await service.get_zone(zone.id, with_pincodes=True)
    return {
        "success": True,
        "data": ZoneDetailResponse.model_validate(zone),
        "message": "Zone created successfully",
    }


@router.get("/statistics")
async def zone_statistics(db: DB):
    stats = await WarehouseService(db).get_zone_statistics()
    return {"success": True, "data": stats}


@router.post("/validate-pincode")
async def validate_pincode(data: PincodeValidateRequest, db: DB):
    """Zones, division and candidate warehouses covering a pincode."""
    result = await WarehouseService(db).validate_pincode(data.pincode, data.product_id)
    return {"success": True, "data": result}


@router.get("/{zone_id}")
async def get_zone(zone_id: uuid.UUID, db: DB):
    zone = await WarehouseService(db).get_zone(zone_id, with_pincodes=True)
    result = await db.execute(
        select(WarehouseZone.warehouse_id)
        .where(WarehouseZone.zone_id == zone_id)
        .order_by(WarehouseZone.priority)
    )
    detail = ZoneDetailResponse.model_validate(zone)
    detail.warehouse_ids = list(result.scalars().all())
    return {"success": True, "data": detail}


@router.put("/{zone_id}")
async def update_zone(zone_id: uuid.UUID, data: ZoneUpdate, db: DB):
    zone = await WarehouseService(db).update_zone(zone_id, data)
    return {"success": True, "data": ZoneResponse.model_validate(zone)}


@router.delete("/{zone_id}")
async def delete_zone(zone_id: uuid.UUID, db: DB):
    await WarehouseService(db).delete_zone(zone_id)
    return {"success": True, "message": "Zone deleted successfully"}


@router.post("/{zone_id}/pincodes", status_code=status.HTTP_201_CREATED)
async def add_zone_pincodes(zone_id: uuid.UUID, data: ZonePincodesRequest, db: DB):
    result = await WarehouseService(db).add_zone_pincodes(zone_id, data.pincodes)
    return {"success": True, "data": result}


@router.delete("/{zone_id}/pincodes/{pincode}")
async def remove_zone_pincode(zone_id: uuid.UUID, pincode: str, db: DB):
    await WarehouseService(db).remove_zone_pincode(zone_id, pincode)
    return {"success": True, "message": f"Pincode {pincode} removed from zone"}
