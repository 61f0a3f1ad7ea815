"""Enquiry -> bid -> lock -> pay / cancel / expire."""
import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select, func

from fulfillment.core.clock import utc_now
from fulfillment.core.exceptions import (
    AuthorizationError,
    DuplicateActiveLock,
    InsufficientStock,
    InvalidStateTransition,
)
from fulfillment.models.bid import (
    ProductEnquiry,
    EnquiryBid,
    LockedBid,
    EnquiryStatus,
    BidStatus,
    LockedBidStatus,
)
from fulfillment.models.cart import CartItem
from fulfillment.schemas.bid import BidCreate, BidProductIn
from fulfillment.services.bid_service import BidService


async def _status(session, model, row_id):
    return await session.scalar(select(model.status).where(model.id == row_id))


async def _bid_cart_rows(session, locked_id) -> int:
    return await session.scalar(select(func.count(CartItem.id)).where(CartItem.locked_bid_id == locked_id))


async def test_enquiry_to_accepted_bid(session, network):
    service = BidService(session)
    user_id = uuid.uuid4()

    enquiry = await service.create_enquiry(user_id, "400001", "Need 20 units")
    bid = await service.create_bid(BidCreate(
        enquiry_id=enquiry.id,
        products=[BidProductIn(product_id=network.product.id, quantity=20, unit_price=Decimal("90.00"))],
    ))
    assert bid.status == BidStatus.ACTIVE.value
    assert bid.bid_type == "SINGLE_PRODUCT"
    assert bid.products[0].total_price == Decimal("1800.00")
    assert bid.products[0].gst_percentage == Decimal("18")

    with pytest.raises(AuthorizationError):
        await service.accept_bid(enquiry.id, bid.id, uuid.uuid4())

    accepted = await service.accept_bid(enquiry.id, bid.id, user_id)
    assert accepted.status == BidStatus.ACCEPTED.value
    assert await _status(session, ProductEnquiry, enquiry.id) == EnquiryStatus.NEGOTIATING.value


async def test_expired_bid_cannot_be_accepted(session, network):
    service = BidService(session)
    user_id = uuid.uuid4()
    enquiry = await service.create_enquiry(user_id)
    bid = await service.create_bid(BidCreate(
        enquiry_id=enquiry.id,
        validity_hours=1,
        products=[BidProductIn(product_id=network.product.id, quantity=1, unit_price=Decimal("10"))],
    ))

    with pytest.raises(InvalidStateTransition):
        await service.accept_bid(enquiry.id, bid.id, user_id, now=utc_now() + timedelta(hours=2))

    assert await _status(session, EnquiryBid, bid.id) == BidStatus.EXPIRED.value


async def test_lock_reserves_stock_and_fills_cart(session, seed, network):
    await seed.stock(network.product, network.division, 10)
    user_id = uuid.uuid4()
    bid = await seed.accepted_bid(user_id, [(network.product, 2, Decimal("100.00"))], delivery_pincode="400001")
    now = utc_now()

    locked = await BidService(session).lock_bid(bid.id, now=now)

    assert locked.status == LockedBidStatus.PENDING_PAYMENT.value
    assert locked.subtotal == Decimal("200.00")
    assert locked.gst_amount == Decimal("36.00")
    assert locked.final_amount == Decimal("236.00")
    assert locked.stock_reserved is True
    assert locked.payment_deadline == now + timedelta(minutes=30)

    assert await seed.levels(network.product.id, network.division.id) == (10, 2)
    assert await seed.active_held("locked_bid", locked.id) == 2
    assert await _status(session, EnquiryBid, bid.id) == BidStatus.LOCKED.value
    assert await _status(session, ProductEnquiry, bid.enquiry_id) == EnquiryStatus.LOCKED.value

    rows = (await session.execute(
        select(CartItem.is_bid_product, CartItem.bid_unit_price, CartItem.warehouse_id)
        .where(CartItem.locked_bid_id == locked.id)
    )).all()
    assert [tuple(r) for r in rows] == [(True, Decimal("100.00"), network.division.id)]


async def test_lock_without_pincode_uses_best_stocked_warehouse(session, seed, network):
    await seed.stock(network.product, network.zonal_a, 3)
    await seed.stock(network.product, network.zonal_b, 8)
    bid = await seed.accepted_bid(uuid.uuid4(), [(network.product, 2, Decimal("50"))])

    locked = await BidService(session).lock_bid(bid.id)

    assert await seed.levels(network.product.id, network.zonal_b.id) == (8, 2)
    assert await seed.levels(network.product.id, network.zonal_a.id) == (3, 0)
    assert locked.status == LockedBidStatus.PENDING_PAYMENT.value


async def test_lock_reserves_every_line(session, seed, network):
    second = await seed.product("SKU-SECOND", gst_percentage=Decimal("5"))
    await seed.stock(network.product, network.zonal_a, 10)
    await seed.stock(second, network.zonal_a, 10)
    bid = await seed.accepted_bid(
        uuid.uuid4(),
        [(network.product, 2, Decimal("50")), (second, 3, Decimal("20"))],
        delivery_pincode="400002",
    )

    locked = await BidService(session).lock_bid(bid.id)

    assert await seed.levels(network.product.id, network.zonal_a.id) == (10, 2)
    assert await seed.levels(second.id, network.zonal_a.id) == (10, 3)
    assert locked.subtotal == Decimal("160")
    assert locked.gst_amount == Decimal("21.00")
    assert await _bid_cart_rows(session, locked.id) == 2


async def test_lock_is_all_or_nothing(session, seed, network):
    second = await seed.product("SKU-SCARCE")
    third = await seed.product("SKU-THIRD")
    await seed.stock(network.product, network.zonal_a, 10)
    await seed.stock(second, network.zonal_a, 1)
    await seed.stock(third, network.zonal_a, 10)
    bid = await seed.accepted_bid(
        uuid.uuid4(),
        [(network.product, 4, Decimal("10")), (second, 5, Decimal("10")), (third, 1, Decimal("10"))],
        delivery_pincode="400002",
    )

    with pytest.raises(InsufficientStock):
        await BidService(session).lock_bid(bid.id)

    assert await seed.levels(network.product.id, network.zonal_a.id) == (10, 0)
    assert await seed.levels(second.id, network.zonal_a.id) == (1, 0)
    assert await seed.levels(third.id, network.zonal_a.id) == (10, 0)
    assert await session.scalar(select(func.count(LockedBid.id))) == 0
    assert await _status(session, EnquiryBid, bid.id) == BidStatus.ACCEPTED.value


async def test_one_pending_lock_per_user(session, seed, network):
    await seed.stock(network.product, network.zonal_a, 10)
    user_id = uuid.uuid4()
    first = await seed.accepted_bid(user_id, [(network.product, 1, Decimal("10"))])
    second = await seed.accepted_bid(user_id, [(network.product, 1, Decimal("10"))])
    service = BidService(session)

    await service.lock_bid(first.id)
    with pytest.raises(DuplicateActiveLock):
        await service.lock_bid(second.id)

    assert await seed.levels(network.product.id, network.zonal_a.id) == (10, 1)


async def test_only_accepted_bids_lock(session, seed, network):
    bid = await seed.accepted_bid(uuid.uuid4(), [(network.product, 1, Decimal("10"))])
    service = BidService(session)
    await service.reject_bid(bid.id, "Price too high")

    with pytest.raises(InvalidStateTransition):
        await service.lock_bid(bid.id)


async def test_cancel_releases_everything(session, seed, network):
    await seed.stock(network.product, network.zonal_a, 10)
    user_id = uuid.uuid4()
    bid = await seed.accepted_bid(user_id, [(network.product, 3, Decimal("10"))])
    service = BidService(session)
    locked = await service.lock_bid(bid.id)

    with pytest.raises(AuthorizationError):
        await service.cancel_locked_bid(locked.id, uuid.uuid4())

    await service.cancel_locked_bid(locked.id, user_id, "Changed my mind")

    assert await _status(session, LockedBid, locked.id) == LockedBidStatus.CANCELLED.value
    assert await _status(session, EnquiryBid, bid.id) == BidStatus.EXPIRED.value
    assert await _status(session, ProductEnquiry, bid.enquiry_id) == EnquiryStatus.CLOSED.value
    assert await seed.levels(network.product.id, network.zonal_a.id) == (10, 0)
    assert await _bid_cart_rows(session, locked.id) == 0

    with pytest.raises(InvalidStateTransition):
        await service.cancel_locked_bid(locked.id, user_id)


async def test_user_can_lock_again_after_cancel(session, seed, network):
    await seed.stock(network.product, network.zonal_a, 10)
    user_id = uuid.uuid4()
    first = await seed.accepted_bid(user_id, [(network.product, 1, Decimal("10"))])
    second = await seed.accepted_bid(user_id, [(network.product, 1, Decimal("10"))])
    service = BidService(session)

    locked = await service.lock_bid(first.id)
    await service.cancel_locked_bid(locked.id, user_id)
    relocked = await service.lock_bid(second.id)

    assert relocked.status == LockedBidStatus.PENDING_PAYMENT.value


async def test_pay_turns_hold_into_deduction(session, seed, network):
    await seed.stock(network.product, network.zonal_a, 10)
    user_id = uuid.uuid4()
    bid = await seed.accepted_bid(user_id, [(network.product, 4, Decimal("25"))])
    service = BidService(session)
    now = utc_now()
    locked = await service.lock_bid(bid.id, now=now)

    result = await service.pay_locked_bid(locked.id, user_id, "PAY-123", now=now + timedelta(minutes=10))

    assert result["locked_bid"].status == LockedBidStatus.PAID.value
    assert result["locked_bid"].payment_reference == "PAY-123"
    assert [c["quantity"] for c in result["confirmed"]] == [4]
    assert await seed.levels(network.product.id, network.zonal_a.id) == (6, 0)
    assert await _status(session, ProductEnquiry, bid.enquiry_id) == EnquiryStatus.CLOSED.value
    assert await _bid_cart_rows(session, locked.id) == 0

    with pytest.raises(InvalidStateTransition):
        await service.pay_locked_bid(locked.id, user_id, "PAY-124")


async def test_pay_after_deadline_expires_the_lock(session, seed, network):
    await seed.stock(network.product, network.zonal_a, 10)
    user_id = uuid.uuid4()
    bid = await seed.accepted_bid(user_id, [(network.product, 4, Decimal("25"))])
    service = BidService(session)
    now = utc_now()
    locked = await service.lock_bid(bid.id, now=now)

    with pytest.raises(InvalidStateTransition):
        await service.pay_locked_bid(locked.id, user_id, "PAY-LATE", now=now + timedelta(minutes=31))

    assert await _status(session, LockedBid, locked.id) == LockedBidStatus.EXPIRED.value
    assert await _status(session, ProductEnquiry, bid.enquiry_id) == EnquiryStatus.EXPIRED.value
    assert await seed.levels(network.product.id, network.zonal_a.id) == (10, 0)


async def test_validate_never_changes_state(session, seed, network):
    await seed.stock(network.product, network.zonal_a, 10)
    user_id = uuid.uuid4()
    bid = await seed.accepted_bid(user_id, [(network.product, 1, Decimal("10"))])
    service = BidService(session)
    now = utc_now()
    locked = await service.lock_bid(bid.id, now=now)

    live = await service.validate_locked_bid(locked.id, user_id, now=now + timedelta(minutes=5))
    assert live["valid"] is True
    assert 0 < live["seconds_remaining"] <= 25 * 60

    late = await service.validate_locked_bid(locked.id, user_id, now=now + timedelta(hours=1))
    assert late["valid"] is False
    assert late["reason"] == "Payment window has expired"
    assert await _status(session, LockedBid, locked.id) == LockedBidStatus.PENDING_PAYMENT.value
    assert await seed.levels(network.product.id, network.zonal_a.id) == (10, 1)

    with pytest.raises(AuthorizationError):
        await service.validate_locked_bid(locked.id, uuid.uuid4())


async def _enquiry_with_bids(service, user_id, product, count):
    enquiry = await service.create_enquiry(user_id, "400001")
    bids = []
    for _ in range(count):
        bids.append(await service.create_bid(BidCreate(
            enquiry_id=enquiry.id,
            products=[BidProductIn(product_id=product.id, quantity=1, unit_price=Decimal("10"))],
        )))
    return enquiry, bids


async def test_locked_enquiry_refuses_further_acceptance(session, seed, network):
    await seed.stock(network.product, network.division, 10)
    service = BidService(session)
    user_id = uuid.uuid4()
    enquiry, (first, second) = await _enquiry_with_bids(service, user_id, network.product, 2)

    await service.accept_bid(enquiry.id, first.id, user_id)
    await service.lock_bid(first.id)

    with pytest.raises(InvalidStateTransition):
        await service.accept_bid(enquiry.id, second.id, user_id)

    assert await _status(session, ProductEnquiry, enquiry.id) == EnquiryStatus.LOCKED.value
    assert await _status(session, EnquiryBid, second.id) == BidStatus.ACTIVE.value


async def test_lock_needs_a_negotiating_enquiry(session, seed, network):
    await seed.stock(network.product, network.division, 10)
    service = BidService(session)
    user_id = uuid.uuid4()
    enquiry, (first, second) = await _enquiry_with_bids(service, user_id, network.product, 2)
    await service.accept_bid(enquiry.id, first.id, user_id)
    await service.accept_bid(enquiry.id, second.id, user_id)

    locked = await service.lock_bid(first.id)
    with pytest.raises(InvalidStateTransition):
        await service.lock_bid(second.id)

    await service.cancel_locked_bid(locked.id, user_id)
    with pytest.raises(InvalidStateTransition):
        await service.lock_bid(second.id)

    assert await session.scalar(select(func.count(LockedBid.id))) == 1
    assert await seed.levels(network.product.id, network.division.id) == (10, 0)
