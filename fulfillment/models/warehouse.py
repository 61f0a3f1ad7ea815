"""Warehouse model for the nationwide / zonal / division hierarchy."""
from enum import Enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, Boolean, ForeignKey, DateTime, Index, text
from sqlalchemy.orm import relationship
import uuid

from fulfillment.database import Base
from fulfillment.db_types import UUIDType


class WarehouseType(str, Enum):
    """Warehouse type enum."""
    NATIONWIDE = "nationwide"  # Serves any pincode in the country
    ZONAL = "zonal"  # Serves the pincodes of its mapped delivery zones
    DIVISION = "division"  # Child of a zonal warehouse, serves assigned pincodes


class Warehouse(Base):
    """Warehouse model for storing inventory locations."""

    __tablename__ = "warehouses"

    id = Column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(String(20), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    warehouse_type = Column(String(20), nullable=False, default=WarehouseType.ZONAL.value, index=True)

    # Only divisions have a parent, and the parent must be zonal
    parent_warehouse_id = Column(
        UUIDType(as_uuid=True),
        ForeignKey("warehouses.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Address
    city = Column(String(100))
    state = Column(String(100))
    pincode = Column(String(10))

    is_active = Column(Boolean, default=True, nullable=False)
    notes = Column(Text)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    parent = relationship("Warehouse", remote_side=[id], back_populates="children")
    children = relationship("Warehouse", back_populates="parent")
    zone_mappings = relationship(
        "WarehouseZone",
        back_populates="warehouse",
        cascade="all, delete-orphan",
    )
    pincode_assignments = relationship(
        "WarehousePincode",
        back_populates="warehouse",
        cascade="all, delete-orphan",
    )

    @property
    def is_division(self) -> bool:
        return self.warehouse_type == WarehouseType.DIVISION.value

    @property
    def is_zonal(self) -> bool:
        return self.warehouse_type == WarehouseType.ZONAL.value

    def __repr__(self):
        return f"<Warehouse {self.code}: {self.name} ({self.warehouse_type})>"


class WarehousePincode(Base):
    """
    Direct pincode assignment of a division warehouse.

    A pincode may be actively assigned to at most one division, enforced
    by a partial unique index. The assignment is validated against the
    parent zonal coverage when made.
    """

    __tablename__ = "warehouse_pincodes"
    __table_args__ = (
        Index("ix_warehouse_pincodes_pincode_active", "pincode", "is_active"),
        Index(
            "uq_warehouse_pincodes_active",
            "pincode",
            unique=True,
            postgresql_where=text("is_active = true"),
            sqlite_where=text("is_active = true"),
        ),
    )

    id = Column(UUIDType(as_uuid=True), primary_key=True, default=uuid.uuid4)
    warehouse_id = Column(
        UUIDType(as_uuid=True),
        ForeignKey("warehouses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    pincode = Column(String(10), nullable=False)
    city = Column(String(100))
    state = Column(String(100))
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    warehouse = relationship("Warehouse", back_populates="pincode_assignments")

    def __repr__(self):
        return f"<WarehousePincode {self.pincode} -> {self.warehouse_id}>"
