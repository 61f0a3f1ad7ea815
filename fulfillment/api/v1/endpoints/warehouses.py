"""Warehouse directory API endpoints."""
from typing import Optional
import uuid

from fastapi import APIRouter, Query, status

from fulfillment.api.deps import DB
from fulfillment.models.warehouse import WarehouseType
from fulfillment.schemas.inventory import ProductStockCreate, ProductStockUpdate, ProductStockResponse
from fulfillment.schemas.warehouse import (
    WarehouseCreate,
    WarehouseUpdate,
    WarehouseResponse,
    WarehouseHierarchyNode,
    WarehousePincodeResponse,
    PincodeAssignRequest,
    WarehouseZonesRequest,
    AvailablePincode,
)
from fulfillment.services.serviceability_service import ServiceabilityService
from fulfillment.services.warehouse_service import WarehouseService


router = APIRouter(tags=["Warehouses"])


@router.get("")
async def list_warehouses(
    db: DB,
    warehouse_type: Optional[WarehouseType] = Query(None),
    is_active: Optional[bool] = Query(None),
):
    """List warehouses, optionally filtered by type and active flag."""
    warehouses = await WarehouseService(db).list_warehouses(
        warehouse_type=warehouse_type.value if warehouse_type else None,
        is_active=is_active,
    )
    return {
        "success": True,
        "data": [WarehouseResponse.model_validate(w) for w in warehouses],
        "count": len(warehouses),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_warehouse(data: WarehouseCreate, db: DB):
    warehouse = await WarehouseService(db).create_warehouse(data)
    return {
        "success": True,
        "data": WarehouseResponse.model_validate(warehouse),
        "message": "Warehouse created successfully",
    }


@router.get("/hierarchy")
async def get_hierarchy(db: DB):
    """Zonal warehouses with their divisions, plus nationwide warehouses."""
    hierarchy = await WarehouseService(db).get_hierarchy()
    zonal = []
    for warehouse, divisions in hierarchy["zonal"]:
        node = WarehouseHierarchyNode.model_validate(warehouse)
        node.divisions = [WarehouseResponse.model_validate(d) for d in divisions]
        zonal.append(node)
    return {
        "success": True,
        "data": {
            "nationwide": [WarehouseResponse.model_validate(w) for w in hierarchy["nationwide"]],
            "zonal": zonal,
        },
    }


@router.get("/find-for-order")
async def find_for_order(
    db: DB,
    pincode: str = Query(..., min_length=6, max_length=6),
    product_type: str = Query("zonal"),
    product_id: Optional[uuid.UUID] = Query(None),
):
    """Ordered candidate warehouses for a delivery pincode."""
    candidates = await ServiceabilityService(db).find_candidate_warehouses(
        pincode, product_type=product_type, product_id=product_id
    )
    return {
        "success": True,
        "pincode": pincode,
        "data": candidates,
        "deliverable": bool(candidates),
    }


@router.get("/{warehouse_id}")
async def get_warehouse(warehouse_id: uuid.UUID, db: DB):
    warehouse = await WarehouseService(db).get_warehouse(warehouse_id)
    return {"success": True, "data": WarehouseResponse.model_validate(warehouse)}


@router.put("/{warehouse_id}")
async def update_warehouse(warehouse_id: uuid.UUID, data: WarehouseUpdate, db: DB):
    warehouse = await WarehouseService(db).update_warehouse(warehouse_id, data)
    return {"success": True, "data": WarehouseResponse.model_validate(warehouse)}


@router.delete("/{warehouse_id}")
async def delete_warehouse(warehouse_id: uuid.UUID, db: DB):
    """Deactivate a warehouse."""
    warehouse = await WarehouseService(db).deactivate_warehouse(warehouse_id)
    return {
        "success": True,
        "data": WarehouseResponse.model_validate(warehouse),
        "message": "Warehouse deactivated successfully",
    }


@router.get("/{warehouse_id}/children")
async def get_children(warehouse_id: uuid.UUID, db: DB):
    children = await WarehouseService(db).get_children(warehouse_id)
    return {"success": True, "data": [WarehouseResponse.model_validate(w) for w in children]}


# ==================== Products ====================

@router.get("/{warehouse_id}/products")
async def list_warehouse_products(warehouse_id: uuid.UUID, db: DB):
    rows = await WarehouseService(db).list_warehouse_products(warehouse_id)
    return {"success": True, "data": [ProductStockResponse.model_validate(r) for r in rows]}


@router.post("/{warehouse_id}/products", status_code=status.HTTP_201_CREATED)
async def add_product_to_warehouse(warehouse_id: uuid.UUID, data: ProductStockCreate, db: DB):
    row = await WarehouseService(db).map_product(warehouse_id, data)
    return {
        "success": True,
        "data": ProductStockResponse.model_validate(row),
        "message": "Product added to warehouse",
    }


@router.put("/{warehouse_id}/products/{product_id}")
async def update_warehouse_product(
    warehouse_id: uuid.UUID,
    product_id: uuid.UUID,
    data: ProductStockUpdate,
    db: DB,
):
    row = await WarehouseService(db).update_product_stock(warehouse_id, product_id, data)
    return {"success": True, "data": ProductStockResponse.model_validate(row)}


@router.delete("/{warehouse_id}/products/{product_id}")
async def remove_warehouse_product(
    warehouse_id: uuid.UUID,
    product_id: uuid.UUID,
    db: DB,
    variant_id: Optional[uuid.UUID] = Query(None),
):
    await WarehouseService(db).remove_product(warehouse_id, product_id, variant_id)
    return {"success": True, "message": "Product removed from warehouse"}


# ==================== Pincodes & zones ====================

@router.get("/{warehouse_id}/pincodes")
async def list_warehouse_pincodes(
    warehouse_id: uuid.UUID,
    db: DB,
    include_inactive: bool = Query(False),
):
    rows = await WarehouseService(db).list_warehouse_pincodes(warehouse_id, include_inactive)
    return {"success": True, "data": [WarehousePincodeResponse.model_validate(r) for r in rows]}


@router.post("/{warehouse_id}/pincodes", status_code=status.HTTP_201_CREATED)
async def add_warehouse_pincodes(warehouse_id: uuid.UUID, data: PincodeAssignRequest, db: DB):
    rows = await WarehouseService(db).assign_pincodes(warehouse_id, data.pincodes)
    return {
        "success": True,
        "data": [WarehousePincodeResponse.model_validate(r) for r in rows],
        "message": "Pincodes assigned successfully",
    }


@router.delete("/{warehouse_id}/pincodes/{pincode}")
async def remove_warehouse_pincode(warehouse_id: uuid.UUID, pincode: str, db: DB):
    row = await WarehouseService(db).remove_pincode(warehouse_id, pincode)
    return {
        "success": True,
        "data": WarehousePincodeResponse.model_validate(row),
        "message": "Pincode assignment removed successfully",
    }


@router.get("/{warehouse_id}/available-pincodes")
async def get_available_pincodes(warehouse_id: uuid.UUID, db: DB):
    """Parent zonal coverage, flagged by whether a division already holds each pincode."""
    pincodes = [AvailablePincode(**p) for p in await WarehouseService(db).get_available_pincodes(warehouse_id)]
    return {
        "success": True,
        "data": pincodes,
        "total_available": sum(1 for p in pincodes if p.is_available),
        "total_assigned": sum(1 for p in pincodes if not p.is_available),
    }


@router.put("/{warehouse_id}/zones")
async def set_warehouse_zones(warehouse_id: uuid.UUID, data: WarehouseZonesRequest, db: DB):
    mappings = await WarehouseService(db).set_warehouse_zones(warehouse_id, data.zones)
    return {
        "success": True,
        "data": [
            {"zone_id": str(m.zone_id), "priority": m.priority}
            for m in mappings
        ],
    }
