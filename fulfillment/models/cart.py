"""Shopping cart line items."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import Integer, Boolean, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment.database import Base
from fulfillment.db_types import UUIDType


class CartItem(Base):
    """
    A product line in a user's cart.

    Regular lines hold a cart_item reservation at warehouse_id from the
    moment they are added. Bid lines (is_bid_product) are inserted by the
    bid lock and their stock is held by the locked bid instead.
    """
    __tablename__ = "cart_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), nullable=False, index=True)
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False
    )
    variant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("product_variants.id", ondelete="CASCADE"),
        nullable=True
    )
    warehouse_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("warehouses.id", ondelete="SET NULL"),
        nullable=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Bid lines
    is_bid_product: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    locked_bid_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("locked_bids.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )
    bid_unit_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    # Set while the line's stock is held under an order reservation
    checkout_order_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    product = relationship("Product")

    def __repr__(self) -> str:
        return f"<CartItem {self.product_id} x{self.quantity} user={self.user_id}>"
