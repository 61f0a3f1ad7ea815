"""Product catalog models (only the fields fulfillment needs)."""
from enum import Enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, Boolean, ForeignKey, DateTime, Numeric
from sqlalchemy.orm import relationship
import uuid

from fulfillment.database import Base
from fulfillment.db_types import JSONType, UUIDType


class DeliveryType(str, Enum):
    """How far a product may ship."""
    NATIONWIDE = "nationwide"  # Falls back to nationwide warehouses
    ZONAL = "zonal"  # Division and zonal tiers only


class Product(Base):
    """Sellable product."""

    __tablename__ = "products"

    id = Column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sku = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    delivery_type = Column(String(20), nullable=False, default=DeliveryType.ZONAL.value)

    # Restricts the zonal tier to these zone ids when set
    allowed_zone_ids = Column(JSONType, nullable=True)

    price = Column(Numeric(12, 2), default=0)
    gst_percentage = Column(Numeric(5, 2), default=18)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    variants = relationship("ProductVariant", back_populates="product", cascade="all, delete-orphan")

    @property
    def ships_nationwide(self) -> bool:
        return self.delivery_type == DeliveryType.NATIONWIDE.value

    def __repr__(self):
        return f"<Product {self.sku}: {self.name}>"


class ProductVariant(Base):
    """Product variant (size, colour...)."""

    __tablename__ = "product_variants"

    id = Column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id = Column(
        UUIDType(as_uuid=True),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sku = Column(String(50), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(12, 2))
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    product = relationship("Product", back_populates="variants")

    def __repr__(self):
        return f"<ProductVariant {self.sku}>"
