"""Inventory models for per-warehouse stock, reservations and movements."""
from enum import Enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, Boolean, ForeignKey, Integer, DateTime
from sqlalchemy import UniqueConstraint, CheckConstraint, Index
from sqlalchemy.orm import relationship
import uuid

from fulfillment.database import Base
from fulfillment.db_types import UUIDType


class ReferenceType(str, Enum):
    """What a reservation is held for."""
    CART_ITEM = "cart_item"
    ORDER = "order"
    LOCKED_BID = "locked_bid"


class ReservationStatus(str, Enum):
    """Stock reservation status enum."""
    ACTIVE = "ACTIVE"  # Holding reserved_quantity
    CONFIRMED = "CONFIRMED"  # Deducted from stock
    RELEASED = "RELEASED"  # Returned to available


class MovementType(str, Enum):
    """Stock movement type enum."""
    RESERVE = "RESERVE"
    CONFIRM = "CONFIRM"
    RELEASE = "RELEASE"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    ADJUSTMENT = "ADJUSTMENT"


class ProductWarehouseStock(Base):
    """
    Stock of one product (or variant) at one warehouse.

    reserved_quantity only moves through the stock ledger, and every
    mutation bumps version.
    """

    __tablename__ = "product_warehouse_stock"
    __table_args__ = (
        UniqueConstraint("product_id", "variant_id", "warehouse_id", name="uq_product_warehouse_stock"),
        CheckConstraint("reserved_quantity >= 0", name="ck_pws_reserved_non_negative"),
        CheckConstraint("reserved_quantity <= stock_quantity", name="ck_pws_reserved_within_stock"),
    )

    id = Column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)

    product_id = Column(UUIDType(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    variant_id = Column(UUIDType(as_uuid=True), ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True)
    warehouse_id = Column(UUIDType(as_uuid=True), ForeignKey("warehouses.id", ondelete="CASCADE"), nullable=False, index=True)

    stock_quantity = Column(Integer, default=0, nullable=False)
    reserved_quantity = Column(Integer, default=0, nullable=False)
    minimum_threshold = Column(Integer, default=0, nullable=False)
    version = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    product = relationship("Product")
    warehouse = relationship("Warehouse")

    @property
    def available_quantity(self) -> int:
        return (self.stock_quantity or 0) - (self.reserved_quantity or 0)

    def __repr__(self):
        return f"<ProductWarehouseStock {self.product_id}@{self.warehouse_id}: {self.stock_quantity}/{self.reserved_quantity}>"


class StockReservation(Base):
    """Quantity held against one (reference, product, variant, warehouse)."""

    __tablename__ = "stock_reservations"
    __table_args__ = (
        Index(
            "ix_stock_reservations_reference",
            "reference_type", "reference_id", "status",
        ),
        CheckConstraint("quantity >= 0", name="ck_reservation_quantity_non_negative"),
    )

    id = Column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)

    reference_type = Column(String(20), nullable=False, comment="cart_item, order, locked_bid")
    reference_id = Column(String(64), nullable=False)

    product_id = Column(UUIDType(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    variant_id = Column(UUIDType(as_uuid=True), ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True)
    warehouse_id = Column(UUIDType(as_uuid=True), ForeignKey("warehouses.id", ondelete="CASCADE"), nullable=False)

    quantity = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=ReservationStatus.ACTIVE.value, index=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    def __repr__(self):
        return f"<StockReservation {self.reference_type}:{self.reference_id} x{self.quantity} {self.status}>"


class StockMovement(Base):
    """Append-only log of stock ledger mutations."""

    __tablename__ = "stock_movements"

    id = Column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)
    movement_type = Column(String(20), nullable=False, index=True)

    product_id = Column(UUIDType(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    variant_id = Column(UUIDType(as_uuid=True), ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True)
    warehouse_id = Column(UUIDType(as_uuid=True), ForeignKey("warehouses.id", ondelete="CASCADE"), nullable=False, index=True)

    quantity = Column(Integer, nullable=False)
    stock_after = Column(Integer, nullable=False)
    reserved_after = Column(Integer, nullable=False)

    # Reference (cart_item / order / locked_bid / transfer)
    reference_type = Column(String(20))
    reference_id = Column(String(64))
    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    def __repr__(self):
        return f"<StockMovement {self.movement_type} {self.quantity}>"
