"""
Cart Service.

Regular cart lines reserve stock the moment they are added
(``cart_item`` reference). At checkout the hold is moved to the order
(``order`` reference) at the warehouse the delivery pincode resolves to;
payment confirms it and abandonment releases it back to the cart.

Bid lines are inserted by the bid lock and their stock is held by the
locked bid, so the cart never reserves or releases for them.
"""
import logging
import uuid
from datetime import datetime
from typing import Optional, List, Dict, Any

from sqlalchemy import select, delete, and_
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.clock import utc_now, as_utc
from fulfillment.core.exceptions import (
    FulfillmentError,
    InsufficientStock,
    NotFoundError,
    ValidationError,
)
from fulfillment.models.bid import LockedBid, LockedBidStatus
from fulfillment.models.cart import CartItem
from fulfillment.models.inventory import ReferenceType
from fulfillment.models.product import Product
from fulfillment.schemas.cart import StockAssignment
from fulfillment.services.bid_service import BidService
from fulfillment.services.serviceability_service import ServiceabilityService, CartLine
from fulfillment.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)

CART_REF = ReferenceType.CART_ITEM.value
ORDER_REF = ReferenceType.ORDER.value


class CartService:
    """Service for cart lines and checkout stock handling."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = StockLedgerService(db)
        self.resolver = ServiceabilityService(db)
        self.bids = BidService(db)

    async def _user_items(self, user_id: uuid.UUID) -> List[CartItem]:
        result = await self.db.execute(
            select(CartItem)
            .where(CartItem.user_id == user_id)
            .order_by(CartItem.added_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_item(self, cart_item_id: uuid.UUID) -> CartItem:
        item = await self.db.get(CartItem, cart_item_id)
        if not item:
            raise NotFoundError("Cart item not found")
        return item

    async def get_cart(self, user_id: uuid.UUID, now: Optional[datetime] = None) -> List[CartItem]:
        """
        Cart lines of a user.

        Bid lines whose lock can no longer be paid are expired (stock
        released, rows removed) before the cart is returned.
        """
        now = now or utc_now()
        items = await self._user_items(user_id)
        lock_ids = {item.locked_bid_id for item in items if item.is_bid_product and item.locked_bid_id}
        if not lock_ids:
            return items

        result = await self.db.execute(select(LockedBid).where(LockedBid.id.in_(lock_ids)))
        stale = False
        for locked in result.scalars().all():
            if locked.status == LockedBidStatus.PENDING_PAYMENT.value:
                if now >= as_utc(locked.payment_deadline):
                    await self.bids.expire_locked_bid(locked)
                    stale = True
            else:
                await self.db.execute(delete(CartItem).where(CartItem.locked_bid_id == locked.id))
                stale = True

        if stale:
            await self.db.flush()
            items = await self._user_items(user_id)
        return items

    async def has_bid_products(self, user_id: uuid.UUID) -> Dict[str, Any]:
        items = await self.get_cart(user_id)
        bid_items = [item for item in items if item.is_bid_product]
        return {
            "has_bid_products": bool(bid_items),
            "locked_bid_ids": sorted({str(item.locked_bid_id) for item in bid_items if item.locked_bid_id}),
        }

    async def _choose_warehouse(
        self,
        product_id: uuid.UUID,
        quantity: int,
        variant_id: Optional[uuid.UUID],
        pincode: Optional[str],
    ) -> uuid.UUID:
        if pincode:
            resolution = await self.resolver.resolve_warehouse(product_id, pincode, quantity, variant_id)
            if resolution.deliverable:
                return resolution.warehouse_id
            raise InsufficientStock(
                f"Product cannot be delivered to {pincode} in quantity {quantity}",
                details={"product_id": str(product_id), "pincode": pincode, "requested": quantity},
            )

        best = await self.resolver.find_max_available_warehouse(product_id, quantity, variant_id)
        if best is None:
            raise InsufficientStock(
                f"Insufficient stock: {quantity} requested",
                details={"product_id": str(product_id), "requested": quantity},
            )
        return best[0].id

    async def add_to_cart(
        self,
        user_id: uuid.UUID,
        product_id: uuid.UUID,
        quantity: int = 1,
        variant_id: Optional[uuid.UUID] = None,
        pincode: Optional[str] = None,
    ) -> CartItem:
        """Add a line (or grow an existing one) and reserve its stock."""
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        product = await self.db.get(Product, product_id)
        if not product or not product.is_active:
            raise NotFoundError("Product not found")

        variant_cond = CartItem.variant_id.is_(None) if variant_id is None else CartItem.variant_id == variant_id
        result = await self.db.execute(
            select(CartItem).where(
                and_(
                    CartItem.user_id == user_id,
                    CartItem.product_id == product_id,
                    CartItem.is_bid_product == False,
                    variant_cond,
                )
            )
        )
        existing = result.scalars().first()

        if existing:
            if existing.checkout_order_id:
                raise ValidationError("Item is being checked out and cannot be changed")
            await self.ledger.reserve(
                product_id, existing.warehouse_id, quantity, CART_REF, str(existing.id), variant_id=variant_id
            )
            existing.quantity += quantity
            await self.db.flush()
            logger.info(f"Cart item {existing.id} grown to {existing.quantity}")
            return existing

        warehouse_id = await self._choose_warehouse(product_id, quantity, variant_id, pincode)
        item = CartItem(
            id=uuid.uuid4(),
            user_id=user_id,
            product_id=product_id,
            variant_id=variant_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            is_bid_product=False,
        )
        await self.ledger.reserve(product_id, warehouse_id, quantity, CART_REF, str(item.id), variant_id=variant_id)
        self.db.add(item)
        await self.db.flush()
        logger.info(f"Added {product.sku} x{quantity} to cart of {user_id} from warehouse {warehouse_id}")
        return item

    @staticmethod
    def _check_mutable(item: CartItem) -> None:
        if item.is_bid_product:
            raise ValidationError("Bid items cannot be modified or removed manually")
        if item.checkout_order_id:
            raise ValidationError("Item is being checked out and cannot be changed")

    async def update_quantity(self, cart_item_id: uuid.UUID, quantity: int) -> CartItem:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        item = await self.get_item(cart_item_id)
        self._check_mutable(item)

        delta = quantity - item.quantity
        if delta > 0:
            await self.ledger.reserve(
                item.product_id, item.warehouse_id, delta, CART_REF, str(item.id), variant_id=item.variant_id
            )
        elif delta < 0:
            await self.ledger.release(
                item.product_id, item.warehouse_id, CART_REF, str(item.id),
                quantity=-delta, variant_id=item.variant_id,
            )
        item.quantity = quantity
        await self.db.flush()
        return item

    async def remove_item(self, cart_item_id: uuid.UUID) -> int:
        """Remove a line and release its hold. Returns the units released."""
        item = await self.get_item(cart_item_id)
        self._check_mutable(item)
        released = await self.ledger.release(
            item.product_id, item.warehouse_id, CART_REF, str(item.id), variant_id=item.variant_id
        )
        await self.db.delete(item)
        await self.db.flush()
        return released

    async def clear_cart(self, user_id: uuid.UUID) -> Dict[str, int]:
        """Remove every regular line not in checkout; bid lines stay."""
        removed = 0
        released = 0
        for item in await self._user_items(user_id):
            if item.is_bid_product or item.checkout_order_id:
                continue
            released += await self.ledger.release(
                item.product_id, item.warehouse_id, CART_REF, str(item.id), variant_id=item.variant_id
            )
            await self.db.delete(item)
            removed += 1
        await self.db.flush()
        logger.info(f"Cleared {removed} item(s) from cart of {user_id}")
        return {"removed": removed, "released_units": released}

    async def validate_delivery(self, user_id: uuid.UUID, pincode: str) -> Dict[str, Any]:
        """Resolve each regular line against a pincode without touching stock."""
        items = [item for item in await self.get_cart(user_id) if not item.is_bid_product]
        if not items:
            raise ValidationError("Cart is empty")
        return await self.resolver.check_cart_availability(
            [
                CartLine(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    variant_id=item.variant_id,
                    extra={"cart_item_id": str(item.id)},
                )
                for item in items
            ],
            pincode,
        )

    # ==================== Checkout ====================

    async def reserve_for_order(self, user_id: uuid.UUID, pincode: str, order_id: str) -> Dict[str, Any]:
        """
        Move each regular line's hold from the cart to the order.

        The hold is released, the line resolved against the delivery
        pincode and re-reserved there under the order. When that fails
        the cart hold is taken back at its original warehouse. Lines
        already moved to this order are reported, not reserved again.
        """
        items = await self.get_cart(user_id)
        if not items:
            raise ValidationError("Cart is empty")

        results = []
        for item in items:
            entry = {
                "cart_item_id": str(item.id),
                "product_id": str(item.product_id),
                "variant_id": str(item.variant_id) if item.variant_id else None,
                "quantity": item.quantity,
            }

            if item.is_bid_product:
                entry.update(reserved=True, warehouse_id=str(item.warehouse_id) if item.warehouse_id else None,
                             source=ReferenceType.LOCKED_BID.value, message="Held by locked bid")
                results.append(entry)
                continue

            if item.checkout_order_id == order_id:
                entry.update(reserved=True, warehouse_id=str(item.warehouse_id), source=ORDER_REF,
                             message="Already reserved for this order")
                results.append(entry)
                continue

            if item.checkout_order_id:
                entry.update(reserved=False, message="Item is reserved for another order")
                results.append(entry)
                continue

            original_warehouse = item.warehouse_id
            released = await self.ledger.release(
                item.product_id, original_warehouse, CART_REF, str(item.id), variant_id=item.variant_id
            )
            try:
                resolution = await self.resolver.resolve_warehouse(
                    item.product_id, pincode, item.quantity, item.variant_id
                )
                if not resolution.deliverable:
                    raise InsufficientStock(resolution.message)
                await self.ledger.reserve(
                    item.product_id, resolution.warehouse_id, item.quantity,
                    ORDER_REF, order_id, variant_id=item.variant_id,
                )
            except FulfillmentError as e:
                entry.update(reserved=False, message=e.message)
                if released:
                    await self._restore_cart_hold(item, original_warehouse, released)
                results.append(entry)
                continue

            item.warehouse_id = resolution.warehouse_id
            item.checkout_order_id = order_id
            entry.update(
                reserved=True,
                warehouse_id=str(resolution.warehouse_id),
                warehouse_name=resolution.warehouse_name,
                tier=resolution.tier,
                delivery_days=resolution.delivery_days,
                source=ORDER_REF,
                message="Reserved",
            )
            results.append(entry)

        await self.db.flush()
        all_reserved = all(r["reserved"] for r in results)
        logger.info(
            f"Order {order_id}: reserved {sum(1 for r in results if r['reserved'])}/{len(results)} cart line(s)"
        )
        return {"order_id": order_id, "all_reserved": all_reserved, "items": results}

    async def _restore_cart_hold(self, item: CartItem, warehouse_id: uuid.UUID, quantity: int) -> bool:
        try:
            await self.ledger.reserve(
                item.product_id, warehouse_id, quantity, CART_REF, str(item.id), variant_id=item.variant_id
            )
            return True
        except InsufficientStock:
            logger.warning(f"Could not restore cart hold for item {item.id} at {warehouse_id}")
            return False

    async def confirm_order_stock(
        self,
        order_id: str,
        assignments: Optional[List[StockAssignment]] = None,
    ) -> Dict[str, Any]:
        """
        Permanently deduct the order's stock and drop the settled cart lines.

        With explicit assignments only part of the order may be confirmed.
        Lines whose order hold is still ACTIVE stay in the cart, marked for
        the order, so a later confirm or release can settle them.
        """
        if assignments:
            confirmed = []
            for a in assignments:
                await self.ledger.confirm(
                    a.product_id, a.warehouse_id, a.quantity, ORDER_REF, order_id, variant_id=a.variant_id
                )
                confirmed.append({
                    "product_id": str(a.product_id),
                    "variant_id": str(a.variant_id) if a.variant_id else None,
                    "warehouse_id": str(a.warehouse_id),
                    "quantity": a.quantity,
                })
        else:
            confirmed = await self.ledger.confirm_reference(ORDER_REF, order_id)
            if not confirmed:
                raise NotFoundError(f"No active reservations for order {order_id}")

        still_held = {
            (r.product_id, r.variant_id, r.warehouse_id)
            for r in await self.ledger.get_active_reservations(ORDER_REF, order_id)
        }
        result = await self.db.execute(select(CartItem).where(CartItem.checkout_order_id == order_id))
        removed = 0
        for item in result.scalars().all():
            if (item.product_id, item.variant_id, item.warehouse_id) in still_held:
                continue
            await self.db.delete(item)
            removed += 1
        await self.db.flush()

        logger.info(
            f"Order {order_id}: confirmed {len(confirmed)} line(s), removed {removed} cart item(s), "
            f"{len(still_held)} hold(s) left open"
        )
        return {"order_id": order_id, "confirmed": confirmed, "removed_cart_items": removed}

    async def release_order_stock(self, order_id: str) -> Dict[str, Any]:
        """Release the order's holds and hand them back to the cart lines."""
        released = await self.ledger.release_reference(ORDER_REF, order_id)

        result = await self.db.execute(
            select(CartItem)
            .where(CartItem.checkout_order_id == order_id)
            .execution_options(populate_existing=True)
        )
        restored = 0
        lost = []
        for item in result.scalars().all():
            item.checkout_order_id = None
            if await self._restore_cart_hold(item, item.warehouse_id, item.quantity):
                restored += 1
            else:
                lost.append(str(item.id))
        await self.db.flush()

        logger.info(f"Order {order_id}: released {released} unit(s), restored {restored} cart hold(s)")
        return {
            "order_id": order_id,
            "released_units": released,
            "restored_items": restored,
            "unrestored_item_ids": lost,
        }
