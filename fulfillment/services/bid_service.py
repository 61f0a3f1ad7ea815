"""
Bid Service.

Enquiry -> bid -> accept -> lock -> pay workflow.

Locking a bid reserves stock for every line under the ``locked_bid``
reference and gives the customer BID_PAYMENT_WINDOW_MINUTES to pay.
Unpaid locks are expired by the scheduler (and lazily when the cart is
read) through the same release path as a manual cancel.
"""
import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, List, Dict, Any

from sqlalchemy import select, update, delete, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fulfillment.config import settings
from fulfillment.core.clock import utc_now, as_utc
from fulfillment.core.exceptions import (
    AuthorizationError,
    DuplicateActiveLock,
    FulfillmentError,
    InsufficientStock,
    InvalidStateTransition,
    NotFoundError,
)
from fulfillment.models.bid import (
    ProductEnquiry,
    EnquiryBid,
    BidProduct,
    LockedBid,
    EnquiryStatus,
    BidType,
    BidStatus,
    LockedBidStatus,
)
from fulfillment.models.cart import CartItem
from fulfillment.models.inventory import ReferenceType
from fulfillment.models.product import Product
from fulfillment.schemas.bid import BidCreate
from fulfillment.services.serviceability_service import ServiceabilityService
from fulfillment.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)

LOCK_REF = ReferenceType.LOCKED_BID.value


class BidService:
    """Service for enquiries, bids and locked bids."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = StockLedgerService(db)
        self.resolver = ServiceabilityService(db)

    # ==================== Enquiries ====================

    async def create_enquiry(
        self,
        user_id: uuid.UUID,
        delivery_pincode: Optional[str] = None,
        message: Optional[str] = None,
    ) -> ProductEnquiry:
        enquiry = ProductEnquiry(
            user_id=user_id,
            delivery_pincode=delivery_pincode,
            message=message,
            status=EnquiryStatus.OPEN.value,
            expires_at=utc_now() + timedelta(days=settings.ENQUIRY_VALIDITY_DAYS),
        )
        self.db.add(enquiry)
        await self.db.flush()
        logger.info(f"Enquiry {enquiry.id} opened by user {user_id}")
        return enquiry

    async def get_enquiry(self, enquiry_id: uuid.UUID) -> ProductEnquiry:
        enquiry = await self.db.get(ProductEnquiry, enquiry_id)
        if not enquiry:
            raise NotFoundError("Enquiry not found")
        return enquiry

    # ==================== Bids ====================

    async def get_bid(self, bid_id: uuid.UUID) -> EnquiryBid:
        result = await self.db.execute(
            select(EnquiryBid)
            .where(EnquiryBid.id == bid_id)
            .options(selectinload(EnquiryBid.products))
            .execution_options(populate_existing=True)
        )
        bid = result.scalar_one_or_none()
        if not bid:
            raise NotFoundError("Bid not found")
        return bid

    async def create_bid(self, data: BidCreate) -> EnquiryBid:
        enquiry = await self.get_enquiry(data.enquiry_id)
        if enquiry.status not in (EnquiryStatus.OPEN.value, EnquiryStatus.NEGOTIATING.value):
            raise InvalidStateTransition(f"Cannot bid on an enquiry in status {enquiry.status}")

        validity_hours = data.validity_hours or settings.DEFAULT_BID_VALIDITY_HOURS
        bid = EnquiryBid(
            enquiry_id=enquiry.id,
            bid_type=BidType.SINGLE_PRODUCT.value if len(data.products) == 1 else BidType.MULTI_PRODUCT.value,
            status=BidStatus.ACTIVE.value,
            validity_hours=validity_hours,
            expires_at=utc_now() + timedelta(hours=validity_hours),
            terms=data.terms,
            notes=data.notes,
            created_by=data.created_by,
        )
        self.db.add(bid)
        await self.db.flush()

        for line in data.products:
            product = await self.db.get(Product, line.product_id)
            if not product or not product.is_active:
                raise NotFoundError(f"Product {line.product_id} not found")
            gst = line.gst_percentage if line.gst_percentage is not None else product.gst_percentage
            self.db.add(BidProduct(
                bid_id=bid.id,
                product_id=product.id,
                variant_id=line.variant_id,
                product_name=product.name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                total_price=line.unit_price * line.quantity,
                gst_percentage=gst,
            ))
        await self.db.flush()
        logger.info(f"Bid {bid.id} created for enquiry {enquiry.id} ({len(data.products)} line(s))")
        return await self.get_bid(bid.id)

    async def _expire_bid_and_raise(self, bid: EnquiryBid) -> None:
        """Persist the EXPIRED status before rejecting the request."""
        bid.status = BidStatus.EXPIRED.value
        await self.db.commit()
        logger.info(f"Bid {bid.id} expired on access")
        raise InvalidStateTransition("Bid has expired")

    async def accept_bid(
        self,
        enquiry_id: uuid.UUID,
        bid_id: uuid.UUID,
        user_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> EnquiryBid:
        now = now or utc_now()
        enquiry = await self.get_enquiry(enquiry_id)
        if enquiry.user_id != user_id:
            raise AuthorizationError("You can only accept bids on your own enquiries")
        if enquiry.status not in (EnquiryStatus.OPEN.value, EnquiryStatus.NEGOTIATING.value):
            raise InvalidStateTransition(f"Cannot accept a bid on an enquiry in status {enquiry.status}")

        bid = await self.get_bid(bid_id)
        if bid.enquiry_id != enquiry.id:
            raise NotFoundError("Bid not found for this enquiry")
        if bid.status != BidStatus.ACTIVE.value:
            raise InvalidStateTransition(f"Bid is {bid.status}, only ACTIVE bids can be accepted")
        if now >= as_utc(bid.expires_at):
            await self._expire_bid_and_raise(bid)

        bid.status = BidStatus.ACCEPTED.value
        enquiry.status = EnquiryStatus.NEGOTIATING.value
        await self.db.flush()
        logger.info(f"Bid {bid.id} accepted by user {user_id}")
        return bid

    async def reject_bid(self, bid_id: uuid.UUID, reason: Optional[str] = None) -> EnquiryBid:
        bid = await self.get_bid(bid_id)
        if bid.status not in (BidStatus.ACTIVE.value, BidStatus.ACCEPTED.value):
            raise InvalidStateTransition(f"Cannot reject a bid in status {bid.status}")
        bid.status = BidStatus.REJECTED.value
        bid.rejection_reason = reason
        await self.db.flush()
        logger.info(f"Bid {bid.id} rejected")
        return bid

    # ==================== Locking ====================

    async def _pending_lock_for_user(self, user_id: uuid.UUID) -> Optional[LockedBid]:
        result = await self.db.execute(
            select(LockedBid).where(
                and_(
                    LockedBid.user_id == user_id,
                    LockedBid.status == LockedBidStatus.PENDING_PAYMENT.value,
                )
            )
        )
        return result.scalars().first()

    async def _pick_warehouse(self, line: BidProduct, pincode: Optional[str]) -> uuid.UUID:
        """Resolver choice for the enquiry pincode, else the best-stocked warehouse."""
        if pincode:
            resolution = await self.resolver.resolve_warehouse(
                line.product_id, pincode, line.quantity, line.variant_id
            )
            if resolution.deliverable:
                return resolution.warehouse_id
        else:
            best = await self.resolver.find_max_available_warehouse(
                line.product_id, line.quantity, line.variant_id
            )
            if best:
                return best[0].id

        raise InsufficientStock(
            f"Insufficient stock for {line.product_name or line.product_id}: {line.quantity} requested",
            details={"product_id": str(line.product_id), "requested": line.quantity},
        )

    async def lock_bid(
        self,
        bid_id: uuid.UUID,
        admin_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> LockedBid:
        """
        Lock an accepted bid and reserve stock for all of its lines.

        All-or-nothing: if any line cannot be reserved, every reservation
        already taken for this lock is released and the lock row removed
        before the error propagates.
        """
        now = now or utc_now()
        bid = await self.get_bid(bid_id)
        if bid.status != BidStatus.ACCEPTED.value:
            raise InvalidStateTransition(f"Bid is {bid.status}, only ACCEPTED bids can be locked")
        if now >= as_utc(bid.expires_at):
            await self._expire_bid_and_raise(bid)

        enquiry = await self.get_enquiry(bid.enquiry_id)
        if enquiry.status != EnquiryStatus.NEGOTIATING.value:
            raise InvalidStateTransition(f"Cannot lock a bid on an enquiry in status {enquiry.status}")
        if await self._pending_lock_for_user(enquiry.user_id):
            logger.warning(f"Lock of bid {bid.id} refused: user {enquiry.user_id} already has a pending lock")
            raise DuplicateActiveLock("User already has a locked bid awaiting payment")

        subtotal = sum((Decimal(p.total_price) for p in bid.products), Decimal("0"))
        gst_amount = sum(
            (Decimal(p.total_price) * Decimal(p.gst_percentage or 0) / Decimal("100") for p in bid.products),
            Decimal("0"),
        ).quantize(Decimal("0.01"))

        locked = LockedBid(
            bid_id=bid.id,
            enquiry_id=enquiry.id,
            user_id=enquiry.user_id,
            subtotal=subtotal,
            gst_amount=gst_amount,
            final_amount=subtotal + gst_amount,
            payment_deadline=now + timedelta(minutes=settings.BID_PAYMENT_WINDOW_MINUTES),
            status=LockedBidStatus.PENDING_PAYMENT.value,
            locked_by=admin_id,
        )
        bid_ref, user_ref = bid.id, enquiry.user_id
        self.db.add(locked)
        try:
            await self.db.flush()
        except IntegrityError as e:
            # Rollback expires every loaded row, so only the captured ids are safe to read
            await self.db.rollback()
            logger.warning(f"Lock of bid {bid_ref} for user {user_ref} hit a lock constraint: {e.orig}")
            raise DuplicateActiveLock("User already has a locked bid awaiting payment")

        reference_id = str(locked.id)
        try:
            for line in bid.products:
                warehouse_id = await self._pick_warehouse(line, enquiry.delivery_pincode)
                await self.ledger.reserve(
                    line.product_id, warehouse_id, line.quantity,
                    LOCK_REF, reference_id, variant_id=line.variant_id,
                )
                line.warehouse_id = warehouse_id
        except FulfillmentError:
            released = await self.ledger.release_reference(LOCK_REF, reference_id)
            for line in bid.products:
                line.warehouse_id = None
            await self.db.delete(locked)
            await self.db.flush()
            logger.warning(f"Lock of bid {bid.id} failed, released {released} unit(s)")
            raise

        locked.stock_reserved = True
        locked.stock_reserved_at = now
        bid.status = BidStatus.LOCKED.value
        enquiry.status = EnquiryStatus.LOCKED.value

        for line in bid.products:
            self.db.add(CartItem(
                user_id=enquiry.user_id,
                product_id=line.product_id,
                variant_id=line.variant_id,
                warehouse_id=line.warehouse_id,
                quantity=line.quantity,
                is_bid_product=True,
                locked_bid_id=locked.id,
                bid_unit_price=line.unit_price,
            ))
        await self.db.flush()

        logger.info(
            f"Bid {bid.id} locked as {locked.id} for user {enquiry.user_id}, "
            f"amount {locked.final_amount}, pay by {locked.payment_deadline.isoformat()}"
        )
        return locked

    # ==================== Locked bids ====================

    async def get_locked_bid(self, locked_bid_id: uuid.UUID) -> LockedBid:
        locked = await self.db.get(LockedBid, locked_bid_id)
        if not locked:
            raise NotFoundError("Locked bid not found")
        return locked

    @staticmethod
    def _check_owner(locked: LockedBid, user_id: uuid.UUID) -> None:
        if locked.user_id != user_id:
            raise AuthorizationError("This locked bid belongs to another user")

    async def validate_locked_bid(
        self,
        locked_bid_id: uuid.UUID,
        user_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Whether the lock can still be paid. Never changes state."""
        now = now or utc_now()
        locked = await self.get_locked_bid(locked_bid_id)
        self._check_owner(locked, user_id)

        deadline = as_utc(locked.payment_deadline)
        reason = None
        if locked.status == LockedBidStatus.PAID.value:
            reason = "Locked bid has already been paid"
        elif locked.status == LockedBidStatus.CANCELLED.value:
            reason = "Locked bid was cancelled"
        elif locked.status == LockedBidStatus.EXPIRED.value or now >= deadline:
            reason = "Payment window has expired"

        return {
            "valid": reason is None,
            "reason": reason,
            "status": locked.status,
            "payment_deadline": deadline.isoformat(),
            "seconds_remaining": max(int((deadline - now).total_seconds()), 0) if reason is None else 0,
            "final_amount": str(locked.final_amount),
        }

    async def _close_lock(
        self,
        locked: LockedBid,
        status: LockedBidStatus,
        enquiry_status: EnquiryStatus,
        reason: Optional[str] = None,
        closed_by: Optional[uuid.UUID] = None,
    ) -> int:
        """Release the lock's stock, drop its cart rows and move it to a final status."""
        released = await self.ledger.release_reference(LOCK_REF, str(locked.id))
        await self.db.execute(
            delete(CartItem).where(CartItem.locked_bid_id == locked.id)
        )

        locked.status = status.value
        locked.stock_reserved = False
        locked.cancelled_reason = reason
        locked.cancelled_by = closed_by

        await self.db.execute(
            update(EnquiryBid)
            .where(EnquiryBid.id == locked.bid_id)
            .values(status=BidStatus.EXPIRED.value)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.execute(
            update(ProductEnquiry)
            .where(ProductEnquiry.id == locked.enquiry_id)
            .values(status=enquiry_status.value)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.flush()
        logger.info(f"Locked bid {locked.id} -> {status.value}, released {released} unit(s)")
        return released

    async def cancel_locked_bid(
        self,
        locked_bid_id: uuid.UUID,
        user_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> LockedBid:
        locked = await self.get_locked_bid(locked_bid_id)
        self._check_owner(locked, user_id)
        if locked.status != LockedBidStatus.PENDING_PAYMENT.value:
            raise InvalidStateTransition(f"Cannot cancel a locked bid in status {locked.status}")

        await self._close_lock(
            locked,
            LockedBidStatus.CANCELLED,
            EnquiryStatus.CLOSED,
            reason=reason or "Cancelled by customer",
            closed_by=user_id,
        )
        return locked

    async def expire_locked_bid(self, locked: LockedBid) -> int:
        """Expire one PENDING_PAYMENT lock. No-op for any other status."""
        if locked.status != LockedBidStatus.PENDING_PAYMENT.value:
            return 0
        return await self._close_lock(
            locked,
            LockedBidStatus.EXPIRED,
            EnquiryStatus.EXPIRED,
            reason="Payment window expired",
        )

    async def pay_locked_bid(
        self,
        locked_bid_id: uuid.UUID,
        user_id: uuid.UUID,
        payment_reference: str,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Record payment and turn the lock's reservations into permanent deductions."""
        now = now or utc_now()
        locked = await self.get_locked_bid(locked_bid_id)
        self._check_owner(locked, user_id)
        if locked.status != LockedBidStatus.PENDING_PAYMENT.value:
            raise InvalidStateTransition(f"Cannot pay a locked bid in status {locked.status}")
        if now >= as_utc(locked.payment_deadline):
            await self.expire_locked_bid(locked)
            await self.db.commit()
            raise InvalidStateTransition("Payment window has expired")

        confirmed = await self.ledger.confirm_reference(LOCK_REF, str(locked.id))
        await self.db.execute(
            delete(CartItem).where(CartItem.locked_bid_id == locked.id)
        )
        locked.status = LockedBidStatus.PAID.value
        locked.stock_reserved = False
        locked.payment_reference = payment_reference
        locked.paid_at = now
        await self.db.execute(
            update(ProductEnquiry)
            .where(ProductEnquiry.id == locked.enquiry_id)
            .values(status=EnquiryStatus.CLOSED.value)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.flush()
        logger.info(f"Locked bid {locked.id} paid ({payment_reference}), confirmed {len(confirmed)} line(s)")
        return {"locked_bid": locked, "confirmed": confirmed}

    # ==================== Sweeps ====================

    async def expire_overdue_locks(self, now: Optional[datetime] = None) -> int:
        """Expire every PENDING_PAYMENT lock past its deadline. Returns the count."""
        now = now or utc_now()
        result = await self.db.execute(
            select(LockedBid).where(
                and_(
                    LockedBid.status == LockedBidStatus.PENDING_PAYMENT.value,
                    LockedBid.payment_deadline <= now,
                )
            )
        )
        overdue = list(result.scalars().all())
        for locked in overdue:
            await self.expire_locked_bid(locked)
        return len(overdue)

    async def expire_stale_bids(self, now: Optional[datetime] = None) -> int:
        now = now or utc_now()
        result = await self.db.execute(
            update(EnquiryBid)
            .where(
                and_(
                    EnquiryBid.status.in_([BidStatus.ACTIVE.value, BidStatus.ACCEPTED.value]),
                    EnquiryBid.expires_at <= now,
                )
            )
            .values(status=BidStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def expire_stale_enquiries(self, now: Optional[datetime] = None) -> int:
        now = now or utc_now()
        result = await self.db.execute(
            update(ProductEnquiry)
            .where(
                and_(
                    ProductEnquiry.status.in_([EnquiryStatus.OPEN.value, EnquiryStatus.NEGOTIATING.value]),
                    ProductEnquiry.expires_at <= now,
                )
            )
            .values(status=EnquiryStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def list_locked_bids(self, user_id: uuid.UUID) -> List[LockedBid]:
        result = await self.db.execute(
            select(LockedBid).where(LockedBid.user_id == user_id).order_by(LockedBid.created_at.desc())
        )
        return list(result.scalars().all())
