"""
Delivery zone models.

Zonal coverage model:
1. DeliveryZone - A named grouping of pincodes
2. ZonePincode - Pincode membership of a zone
3. WarehouseZone - Which zonal warehouses serve a zone, with priority

A zonal warehouse covers the union of the pincodes of its mapped zones.
"""
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text
from sqlalchemy import UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment.database import Base
from fulfillment.db_types import UUIDType

if TYPE_CHECKING:
    from fulfillment.models.warehouse import Warehouse


class DeliveryZone(Base):
    """
    Delivery zone.

    Example:
    - WEST-1 groups the Mumbai and Thane pincodes
    - NORTH-1 groups the Delhi NCR pincodes
    """
    __tablename__ = "delivery_zones"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    pincodes: Mapped[List["ZonePincode"]] = relationship(
        "ZonePincode",
        back_populates="zone",
        cascade="all, delete-orphan"
    )
    warehouse_mappings: Mapped[List["WarehouseZone"]] = relationship(
        "WarehouseZone",
        back_populates="zone",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<DeliveryZone {self.code}: {self.name}>"


class ZonePincode(Base):
    """Pincode membership of a delivery zone."""
    __tablename__ = "zone_pincodes"
    __table_args__ = (
        UniqueConstraint("zone_id", "pincode", name="uq_zone_pincode"),
        Index("ix_zone_pincodes_pincode", "pincode"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    zone_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("delivery_zones.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    pincode: Mapped[str] = mapped_column(String(10), nullable=False)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    zone: Mapped["DeliveryZone"] = relationship("DeliveryZone", back_populates="pincodes")

    def __repr__(self) -> str:
        return f"<ZonePincode {self.pincode} in {self.zone_id}>"


class WarehouseZone(Base):
    """Zonal warehouse serving a delivery zone."""
    __tablename__ = "warehouse_zones"
    __table_args__ = (
        UniqueConstraint("warehouse_id", "zone_id", name="uq_warehouse_zone"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("warehouses.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    zone_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("delivery_zones.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Priority (lower = higher priority)
    priority: Mapped[int] = mapped_column(
        Integer,
        default=100,
        comment="Lower value = tried first when several zonal warehouses serve a zone"
    )

    warehouse: Mapped["Warehouse"] = relationship("Warehouse", back_populates="zone_mappings")
    zone: Mapped["DeliveryZone"] = relationship("DeliveryZone", back_populates="warehouse_mappings")

    def __repr__(self) -> str:
        return f"<WarehouseZone {self.warehouse_id} -> {self.zone_id} (p{self.priority})>"
