"""Cart and checkout stock API endpoints."""
import uuid

from fastapi import APIRouter, status

from fulfillment.api.deps import DB
from fulfillment.schemas.cart import (
    CartAddRequest,
    CartUpdateRequest,
    CartItemResponse,
    ValidateDeliveryRequest,
    ReserveStockRequest,
    ConfirmStockRequest,
    ReleaseStockRequest,
)
from fulfillment.services.cart_service import CartService


router = APIRouter(tags=["Cart"])


@router.post("/add", status_code=status.HTTP_201_CREATED)
async def add_to_cart(data: CartAddRequest, db: DB):
    item = await CartService(db).add_to_cart(
        data.user_id, data.product_id, data.quantity, data.variant_id, data.pincode
    )
    return {
        "success": True,
        "data": CartItemResponse.model_validate(item),
        "message": "Item added to cart",
    }


@router.put("/update/{cart_item_id}")
async def update_cart_item(cart_item_id: uuid.UUID, data: CartUpdateRequest, db: DB):
    item = await CartService(db).update_quantity(cart_item_id, data.quantity)
    return {"success": True, "data": CartItemResponse.model_validate(item)}


@router.delete("/remove/{cart_item_id}")
async def remove_cart_item(cart_item_id: uuid.UUID, db: DB):
    released = await CartService(db).remove_item(cart_item_id)
    return {"success": True, "released_units": released, "message": "Item removed from cart"}


@router.delete("/clear/{user_id}")
async def clear_cart(user_id: uuid.UUID, db: DB):
    result = await CartService(db).clear_cart(user_id)
    return {"success": True, **result}


@router.post("/validate-delivery")
async def validate_delivery(data: ValidateDeliveryRequest, db: DB):
    result = await CartService(db).validate_delivery(data.user_id, data.pincode)
    return {"success": True, **result}


@router.post("/reserve-stock")
async def reserve_stock(data: ReserveStockRequest, db: DB):
    """Move the cart's holds onto an order before payment."""
    result = await CartService(db).reserve_for_order(data.user_id, data.pincode, data.order_id)
    return {"success": True, **result}


@router.post("/confirm-stock-deduction")
async def confirm_stock_deduction(data: ConfirmStockRequest, db: DB):
    result = await CartService(db).confirm_order_stock(data.order_id, data.assignments)
    return {"success": True, **result}


@router.post("/release-stock")
async def release_stock(data: ReleaseStockRequest, db: DB):
    result = await CartService(db).release_order_stock(data.order_id)
    return {"success": True, **result}


@router.get("/{user_id}/has-bid-products")
async def has_bid_products(user_id: uuid.UUID, db: DB):
    result = await CartService(db).has_bid_products(user_id)
    return {"success": True, **result}


@router.get("/{user_id}")
async def get_cart(user_id: uuid.UUID, db: DB):
    items = await CartService(db).get_cart(user_id)
    return {
        "success": True,
        "data": [CartItemResponse.model_validate(i) for i in items],
        "count": len(items),
        "total_quantity": sum(i.quantity for i in items),
    }
