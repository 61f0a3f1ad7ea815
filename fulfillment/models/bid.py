"""
Enquiry / bid / locked bid models.

Flow:
1. User raises a ProductEnquiry for a delivery pincode
2. Admin answers with an EnquiryBid (one or more BidProduct lines)
3. User accepts the bid, admin locks it
4. Locking creates a LockedBid (PENDING_PAYMENT) and reserves stock
   for every line; the user has a short payment window
"""
from enum import Enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, Boolean, ForeignKey, Integer, DateTime, Numeric
from sqlalchemy import Index, text
from sqlalchemy.orm import relationship
import uuid

from fulfillment.database import Base
from fulfillment.db_types import UUIDType


class EnquiryStatus(str, Enum):
    OPEN = "OPEN"
    NEGOTIATING = "NEGOTIATING"
    LOCKED = "LOCKED"
    CLOSED = "CLOSED"
    EXPIRED = "EXPIRED"


class BidType(str, Enum):
    SINGLE_PRODUCT = "SINGLE_PRODUCT"
    MULTI_PRODUCT = "MULTI_PRODUCT"


class BidStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    LOCKED = "LOCKED"
    EXPIRED = "EXPIRED"


class LockedBidStatus(str, Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAID = "PAID"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class ProductEnquiry(Base):
    """Customer request for a negotiated price."""

    __tablename__ = "product_enquiries"

    id = Column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUIDType(as_uuid=True), nullable=False, index=True)
    delivery_pincode = Column(String(10))
    message = Column(Text)
    status = Column(String(20), nullable=False, default=EnquiryStatus.OPEN.value, index=True)
    expires_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    bids = relationship("EnquiryBid", back_populates="enquiry", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<ProductEnquiry {self.id} {self.status}>"


class EnquiryBid(Base):
    """Admin offer answering an enquiry."""

    __tablename__ = "enquiry_bids"

    id = Column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)
    enquiry_id = Column(
        UUIDType(as_uuid=True),
        ForeignKey("product_enquiries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    bid_type = Column(String(20), nullable=False, default=BidType.SINGLE_PRODUCT.value)
    status = Column(String(20), nullable=False, default=BidStatus.ACTIVE.value, index=True)
    validity_hours = Column(Integer, nullable=False, default=24)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    terms = Column(Text)
    notes = Column(Text)
    created_by = Column(UUIDType(as_uuid=True))
    rejection_reason = Column(Text)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    enquiry = relationship("ProductEnquiry", back_populates="bids")
    products = relationship("BidProduct", back_populates="bid", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<EnquiryBid {self.id} {self.status}>"


class BidProduct(Base):
    """One priced line of a bid."""

    __tablename__ = "bid_products"

    id = Column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)
    bid_id = Column(
        UUIDType(as_uuid=True),
        ForeignKey("enquiry_bids.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(UUIDType(as_uuid=True), ForeignKey("products.id"), nullable=False)
    variant_id = Column(UUIDType(as_uuid=True), ForeignKey("product_variants.id"), nullable=True)
    product_name = Column(String(255))
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    gst_percentage = Column(Numeric(5, 2), default=18)

    # Filled when the bid is locked
    warehouse_id = Column(UUIDType(as_uuid=True), ForeignKey("warehouses.id"), nullable=True)

    bid = relationship("EnquiryBid", back_populates="products")

    def __repr__(self):
        return f"<BidProduct {self.product_id} x{self.quantity} @ {self.unit_price}>"


class LockedBid(Base):
    """
    Accepted bid with stock held pending payment.

    At most one PENDING_PAYMENT lock per user, enforced by a partial
    unique index.
    """

    __tablename__ = "locked_bids"
    __table_args__ = (
        Index(
            "uq_locked_bids_user_pending",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'PENDING_PAYMENT'"),
            sqlite_where=text("status = 'PENDING_PAYMENT'"),
        ),
    )

    id = Column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)
    bid_id = Column(UUIDType(as_uuid=True), ForeignKey("enquiry_bids.id"), nullable=False, index=True)
    enquiry_id = Column(UUIDType(as_uuid=True), ForeignKey("product_enquiries.id"), nullable=False, unique=True)
    user_id = Column(UUIDType(as_uuid=True), nullable=False, index=True)

    # Pricing
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    gst_amount = Column(Numeric(12, 2), nullable=False, default=0)
    final_amount = Column(Numeric(12, 2), nullable=False, default=0)

    # Stock hold
    stock_reserved = Column(Boolean, default=False, nullable=False)
    stock_reserved_at = Column(DateTime(timezone=True))
    payment_deadline = Column(DateTime(timezone=True), nullable=False)

    status = Column(String(20), nullable=False, default=LockedBidStatus.PENDING_PAYMENT.value, index=True)
    locked_by = Column(UUIDType(as_uuid=True))

    payment_reference = Column(String(100))
    paid_at = Column(DateTime(timezone=True))
    cancelled_reason = Column(Text)
    cancelled_by = Column(UUIDType(as_uuid=True))

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    bid = relationship("EnquiryBid")
    enquiry = relationship("ProductEnquiry")

    def __repr__(self):
        return f"<LockedBid {self.id} {self.status} deadline={self.payment_deadline}>"
