"""Product availability and stock transfer API endpoints."""
from typing import Optional
import uuid

from fastapi import APIRouter, Query

from fulfillment.api.deps import DB
from fulfillment.schemas.serviceability import CartAvailabilityRequest, TransferRequest
from fulfillment.services.replenishment_service import ReplenishmentService
from fulfillment.services.serviceability_service import CartLine, ServiceabilityService
from fulfillment.services.stock_ledger_service import StockLedgerService
from fulfillment.services.warehouse_service import WarehouseService


router = APIRouter(tags=["Product Availability"])


@router.get("/products/{product_id}/stock-summary")
async def stock_summary(product_id: uuid.UUID, db: DB):
    """Stock, reserved and available quantities of a product per warehouse."""
    summary = await WarehouseService(db).get_product_stock_summary(product_id)
    return {"success": True, "data": summary}


@router.post("/cart")
async def check_cart_availability(data: CartAvailabilityRequest, db: DB):
    result = await ServiceabilityService(db).check_cart_availability(
        [
            CartLine(product_id=line.product_id, quantity=line.quantity, variant_id=line.variant_id)
            for line in data.items
        ],
        data.pincode,
    )
    return {"success": True, **result}


@router.post("/transfer")
async def transfer_stock(data: TransferRequest, db: DB):
    """
    Move stock between warehouses.

    Without from_warehouse_id the target must be a division and stock is
    pulled from its parent zonal warehouse.
    """
    if data.from_warehouse_id is None:
        result = await ReplenishmentService(db).transfer_to_division(
            data.product_id, data.to_warehouse_id, data.quantity, data.variant_id
        )
    else:
        quantity = data.quantity or 1
        result = await StockLedgerService(db).transfer(
            data.product_id,
            data.from_warehouse_id,
            data.to_warehouse_id,
            quantity,
            variant_id=data.variant_id,
            notes=data.notes,
        )
    return {"success": True, "data": result, "message": "Stock transferred successfully"}


@router.post("/monitor-transfer")
async def monitor_transfer(db: DB):
    """Run the division replenishment sweep now."""
    result = await ReplenishmentService(db).monitor_and_transfer()
    return {
        "success": True,
        "data": result,
        "transfers_count": len(result["transfers"]),
        "skipped_count": len(result["skipped"]),
    }


@router.get("/{pincode}/{product_id}")
async def check_availability(
    pincode: str,
    product_id: uuid.UUID,
    db: DB,
    quantity: int = Query(1, ge=1),
    variant_id: Optional[uuid.UUID] = Query(None),
):
    """Resolve which warehouse would deliver a product to a pincode."""
    resolution = await ServiceabilityService(db).resolve_warehouse(product_id, pincode, quantity, variant_id)
    return {"success": True, "data": resolution.to_dict()}
