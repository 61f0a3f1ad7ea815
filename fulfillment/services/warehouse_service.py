"""
Warehouse Directory Service.

Handles:
1. Warehouse CRUD with hierarchy rules (division -> zonal parent)
2. Delivery zones and their pincodes
3. Zonal warehouse -> zone mappings (priority)
4. Division pincode assignments, validated against the parent's coverage
5. Product -> warehouse stock rows
"""
import logging
import uuid
from typing import Optional, List, Dict, Any, Set

from sqlalchemy import select, update, delete, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fulfillment.core.exceptions import NotFoundError, ValidationError
from fulfillment.models.inventory import ProductWarehouseStock
from fulfillment.models.product import Product
from fulfillment.models.serviceability import DeliveryZone, ZonePincode, WarehouseZone
from fulfillment.models.warehouse import Warehouse, WarehousePincode, WarehouseType
from fulfillment.schemas.inventory import ProductStockCreate, ProductStockUpdate
from fulfillment.schemas.serviceability import ZoneCreate, ZoneUpdate
from fulfillment.schemas.warehouse import (
    WarehouseCreate,
    WarehouseUpdate,
    PincodeEntry,
    ZoneAssignment,
)
from fulfillment.services.serviceability_service import ServiceabilityService
from fulfillment.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)


class WarehouseService:
    """Service for the warehouse hierarchy, zones and pincode coverage."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.serviceability = ServiceabilityService(db)
        self.ledger = StockLedgerService(db)

    # ==================== Warehouses ====================

    async def get_warehouse(self, warehouse_id: uuid.UUID) -> Warehouse:
        warehouse = await self.db.get(Warehouse, warehouse_id)
        if not warehouse:
            raise NotFoundError("Warehouse not found")
        return warehouse

    async def list_warehouses(
        self,
        warehouse_type: Optional[str] = None,
        is_active: Optional[bool] = None,
        parent_warehouse_id: Optional[uuid.UUID] = None,
    ) -> List[Warehouse]:
        query = select(Warehouse)
        if warehouse_type:
            query = query.where(Warehouse.warehouse_type == warehouse_type)
        if is_active is not None:
            query = query.where(Warehouse.is_active == is_active)
        if parent_warehouse_id:
            query = query.where(Warehouse.parent_warehouse_id == parent_warehouse_id)
        result = await self.db.execute(query.order_by(Warehouse.warehouse_type, Warehouse.code))
        return list(result.scalars().all())

    async def _validate_parent(
        self,
        warehouse_type: str,
        parent_warehouse_id: Optional[uuid.UUID],
    ) -> Optional[Warehouse]:
        """Divisions need an active zonal parent; other types take none."""
        if warehouse_type != WarehouseType.DIVISION.value:
            if parent_warehouse_id:
                raise ValidationError(f"{warehouse_type.title()} warehouses cannot have a parent warehouse")
            return None

        if not parent_warehouse_id:
            raise ValidationError("Division warehouses require a parent zonal warehouse")
        parent = await self.db.get(Warehouse, parent_warehouse_id)
        if not parent:
            raise NotFoundError("Parent warehouse not found")
        if not parent.is_zonal:
            raise ValidationError("Division warehouses can only be children of zonal warehouses")
        if not parent.is_active:
            raise ValidationError("Parent zonal warehouse is inactive")
        return parent

    async def create_warehouse(self, data: WarehouseCreate) -> Warehouse:
        warehouse_type = data.warehouse_type.value
        existing = await self.db.execute(select(Warehouse.id).where(Warehouse.code == data.code))
        if existing.first():
            raise ValidationError(f"Warehouse code {data.code} already exists")

        await self._validate_parent(warehouse_type, data.parent_warehouse_id)
        if data.zones and warehouse_type != WarehouseType.ZONAL.value:
            raise ValidationError("Only zonal warehouses can be mapped to delivery zones")
        if data.pincode_assignments and warehouse_type != WarehouseType.DIVISION.value:
            raise ValidationError("Only division warehouses can have pincode assignments")

        warehouse = Warehouse(
            code=data.code,
            name=data.name,
            warehouse_type=warehouse_type,
            parent_warehouse_id=data.parent_warehouse_id,
            city=data.city,
            state=data.state,
            pincode=data.pincode,
            notes=data.notes,
        )
        self.db.add(warehouse)
        await self.db.flush()

        if data.zones:
            await self.set_warehouse_zones(warehouse.id, data.zones)
        if data.pincode_assignments:
            await self.assign_pincodes(warehouse.id, data.pincode_assignments)

        logger.info(f"Created {warehouse_type} warehouse {warehouse.code}")
        return warehouse

    async def update_warehouse(self, warehouse_id: uuid.UUID, data: WarehouseUpdate) -> Warehouse:
        warehouse = await self.get_warehouse(warehouse_id)
        update_data = data.model_dump(exclude_unset=True)

        if "parent_warehouse_id" in update_data:
            await self._validate_parent(warehouse.warehouse_type, update_data["parent_warehouse_id"])
        if update_data.get("is_active") is False and warehouse.is_active:
            await self._check_can_deactivate(warehouse)

        for field, value in update_data.items():
            setattr(warehouse, field, value)
        await self.db.flush()
        logger.info(f"Updated warehouse {warehouse.code}: {sorted(update_data)}")
        return warehouse

    async def _check_can_deactivate(self, warehouse: Warehouse) -> None:
        reserved = await self.db.execute(
            select(func.coalesce(func.sum(ProductWarehouseStock.reserved_quantity), 0)).where(
                ProductWarehouseStock.warehouse_id == warehouse.id
            )
        )
        if reserved.scalar() > 0:
            raise ValidationError("Cannot deactivate a warehouse that holds reserved stock")

        children = await self.db.execute(
            select(func.count(Warehouse.id)).where(
                and_(
                    Warehouse.parent_warehouse_id == warehouse.id,
                    Warehouse.is_active == True,
                )
            )
        )
        if children.scalar() > 0:
            raise ValidationError("Cannot deactivate a zonal warehouse with active divisions")

    async def deactivate_warehouse(self, warehouse_id: uuid.UUID) -> Warehouse:
        """Soft delete. Refused while stock is reserved or divisions are active."""
        warehouse = await self.get_warehouse(warehouse_id)
        await self._check_can_deactivate(warehouse)
        warehouse.is_active = False
        await self.db.flush()
        logger.info(f"Deactivated warehouse {warehouse.code}")
        return warehouse

    async def get_children(self, warehouse_id: uuid.UUID) -> List[Warehouse]:
        await self.get_warehouse(warehouse_id)
        return await self.list_warehouses(parent_warehouse_id=warehouse_id)

    async def get_hierarchy(self) -> Dict[str, List]:
        """Zonal warehouses with their divisions, plus nationwide warehouses."""
        warehouses = await self.list_warehouses()
        divisions: Dict[uuid.UUID, List[Warehouse]] = {}
        for wh in warehouses:
            if wh.is_division and wh.parent_warehouse_id:
                divisions.setdefault(wh.parent_warehouse_id, []).append(wh)

        return {
            "nationwide": [wh for wh in warehouses if wh.warehouse_type == WarehouseType.NATIONWIDE.value],
            "zonal": [
                (wh, divisions.get(wh.id, []))
                for wh in warehouses
                if wh.is_zonal
            ],
        }

    # ==================== Zone mapping & coverage ====================

    async def set_warehouse_zones(
        self,
        warehouse_id: uuid.UUID,
        zones: List[ZoneAssignment],
    ) -> List[WarehouseZone]:
        """Replace the zone mappings of a zonal warehouse."""
        warehouse = await self.get_warehouse(warehouse_id)
        if not warehouse.is_zonal:
            raise ValidationError("Only zonal warehouses can be mapped to delivery zones")

        zone_ids = [z.zone_id for z in zones]
        if len(set(zone_ids)) != len(zone_ids):
            raise ValidationError("Duplicate zone in mapping")
        if zone_ids:
            result = await self.db.execute(select(DeliveryZone.id).where(DeliveryZone.id.in_(zone_ids)))
            missing = set(zone_ids) - set(result.scalars().all())
            if missing:
                raise NotFoundError(f"Delivery zone(s) not found: {', '.join(str(z) for z in missing)}")

        await self.db.execute(delete(WarehouseZone).where(WarehouseZone.warehouse_id == warehouse_id))
        mappings = [
            WarehouseZone(warehouse_id=warehouse_id, zone_id=z.zone_id, priority=z.priority)
            for z in zones
        ]
        self.db.add_all(mappings)
        await self.db.flush()
        logger.info(f"Mapped warehouse {warehouse.code} to {len(mappings)} zone(s)")
        return mappings

    async def get_zonal_coverage(self, warehouse_id: uuid.UUID) -> Dict[str, ZonePincode]:
        """Pincodes of every active zone mapped to a zonal warehouse."""
        result = await self.db.execute(
            select(ZonePincode)
            .join(DeliveryZone, DeliveryZone.id == ZonePincode.zone_id)
            .join(WarehouseZone, WarehouseZone.zone_id == DeliveryZone.id)
            .where(
                and_(
                    WarehouseZone.warehouse_id == warehouse_id,
                    DeliveryZone.is_active == True,
                )
            )
            .order_by(ZonePincode.pincode)
        )
        coverage: Dict[str, ZonePincode] = {}
        for zp in result.scalars().all():
            coverage.setdefault(zp.pincode, zp)
        return coverage

    async def get_available_pincodes(self, warehouse_id: uuid.UUID) -> List[Dict[str, Any]]:
        """
        Pincodes a new division under this zonal warehouse could take.

        Accepts a division id too, in which case its parent's coverage
        is listed.
        """
        warehouse = await self.get_warehouse(warehouse_id)
        if warehouse.is_division:
            warehouse = await self.get_warehouse(warehouse.parent_warehouse_id)
        if not warehouse.is_zonal:
            raise ValidationError("Available pincodes are only defined for zonal warehouses")

        coverage = await self.get_zonal_coverage(warehouse.id)
        assigned = await self._active_assignments(list(coverage))
        return [
            {
                "pincode": pincode,
                "city": zp.city,
                "state": zp.state,
                "is_available": pincode not in assigned,
                "assigned_to_division": assigned.get(pincode),
            }
            for pincode, zp in coverage.items()
        ]

    async def _active_assignments(self, pincodes: List[str]) -> Dict[str, uuid.UUID]:
        if not pincodes:
            return {}
        result = await self.db.execute(
            select(WarehousePincode.pincode, WarehousePincode.warehouse_id).where(
                and_(
                    WarehousePincode.pincode.in_(pincodes),
                    WarehousePincode.is_active == True,
                )
            )
        )
        return {row.pincode: row.warehouse_id for row in result.all()}

    # ==================== Division pincodes ====================

    async def list_warehouse_pincodes(
        self,
        warehouse_id: uuid.UUID,
        include_inactive: bool = False,
    ) -> List[WarehousePincode]:
        await self.get_warehouse(warehouse_id)
        query = select(WarehousePincode).where(WarehousePincode.warehouse_id == warehouse_id)
        if not include_inactive:
            query = query.where(WarehousePincode.is_active == True)
        result = await self.db.execute(query.order_by(WarehousePincode.pincode))
        return list(result.scalars().all())

    async def assign_pincodes(
        self,
        warehouse_id: uuid.UUID,
        pincodes: List[PincodeEntry],
    ) -> List[WarehousePincode]:
        """
        Assign pincodes to a division.

        Every pincode must be covered by the parent zonal warehouse and
        free of active assignments to other divisions. Nothing is written
        unless the whole batch passes.
        """
        warehouse = await self.get_warehouse(warehouse_id)
        if not warehouse.is_division:
            raise ValidationError("Only division warehouses can have pincode assignments")

        requested = list(dict.fromkeys(p.pincode for p in pincodes))
        coverage = await self.get_zonal_coverage(warehouse.parent_warehouse_id)
        outside = [p for p in requested if p not in coverage]
        if outside:
            raise ValidationError(
                f"Pincodes not served by the parent zonal warehouse: {', '.join(outside)}",
                details={"invalid_pincodes": outside},
            )

        assigned = await self._active_assignments(requested)
        conflicts = [p for p in requested if p in assigned and assigned[p] != warehouse_id]
        if conflicts:
            raise ValidationError(
                f"Pincodes already assigned to another division warehouse: {', '.join(conflicts)}",
                details={"conflicting_pincodes": conflicts},
            )

        existing = await self.db.execute(
            select(WarehousePincode).where(
                and_(
                    WarehousePincode.warehouse_id == warehouse_id,
                    WarehousePincode.pincode.in_(requested),
                )
            )
        )
        existing_rows = {row.pincode: row for row in existing.scalars().all()}

        saved = []
        for entry in pincodes:
            if entry.pincode in {r.pincode for r in saved}:
                continue
            row = existing_rows.get(entry.pincode)
            if row is None:
                row = WarehousePincode(
                    warehouse_id=warehouse_id,
                    pincode=entry.pincode,
                    city=entry.city or coverage[entry.pincode].city,
                    state=entry.state or coverage[entry.pincode].state,
                )
                self.db.add(row)
            else:
                row.is_active = True
            saved.append(row)

        division_code = warehouse.code
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"Pincode assignment to {division_code} hit the active-pincode constraint: {e.orig}")
            raise ValidationError(
                "Pincodes already assigned to another division warehouse",
                details={"conflicting_pincodes": requested},
            )
        logger.info(f"Assigned {len(saved)} pincode(s) to division {division_code}")
        return saved

    async def remove_pincode(self, warehouse_id: uuid.UUID, pincode: str) -> WarehousePincode:
        """Soft-remove a division pincode assignment."""
        warehouse = await self.get_warehouse(warehouse_id)
        if not warehouse.is_division:
            raise ValidationError("Only division warehouses have pincode assignments")

        result = await self.db.execute(
            select(WarehousePincode).where(
                and_(
                    WarehousePincode.warehouse_id == warehouse_id,
                    WarehousePincode.pincode == pincode,
                    WarehousePincode.is_active == True,
                )
            )
        )
        row = result.scalar_one_or_none()
        if not row:
            raise NotFoundError("Pincode assignment not found")
        row.is_active = False
        await self.db.flush()
        logger.info(f"Removed pincode {pincode} from division {warehouse.code}")
        return row

    # ==================== Zones ====================

    async def get_zone(self, zone_id: uuid.UUID, with_pincodes: bool = False) -> DeliveryZone:
        query = select(DeliveryZone).where(DeliveryZone.id == zone_id)
        if with_pincodes:
            query = query.options(
                selectinload(DeliveryZone.pincodes),
                selectinload(DeliveryZone.warehouse_mappings),
            ).execution_options(populate_existing=True)
        result = await self.db.execute(query)
        zone = result.scalar_one_or_none()
        if not zone:
            raise NotFoundError("Delivery zone not found")
        return zone

    async def list_zones(self, is_active: Optional[bool] = None) -> List[Dict[str, Any]]:
        pincode_count = (
            select(func.count(ZonePincode.id))
            .where(ZonePincode.zone_id == DeliveryZone.id)
            .correlate(DeliveryZone)
            .scalar_subquery()
        )
        warehouse_count = (
            select(func.count(WarehouseZone.id))
            .where(WarehouseZone.zone_id == DeliveryZone.id)
            .correlate(DeliveryZone)
            .scalar_subquery()
        )
        query = select(DeliveryZone, pincode_count.label("pincode_count"), warehouse_count.label("warehouse_count"))
        if is_active is not None:
            query = query.where(DeliveryZone.is_active == is_active)
        result = await self.db.execute(query.order_by(DeliveryZone.code))
        return [
            {"zone": row[0], "pincode_count": row.pincode_count, "warehouse_count": row.warehouse_count}
            for row in result.all()
        ]

    async def create_zone(self, data: ZoneCreate) -> DeliveryZone:
        existing = await self.db.execute(select(DeliveryZone.id).where(DeliveryZone.code == data.code))
        if existing.first():
            raise ValidationError(f"Zone code {data.code} already exists")

        zone = DeliveryZone(code=data.code, name=data.name, description=data.description)
        self.db.add(zone)
        await self.db.flush()
        if data.pincodes:
            await self.add_zone_pincodes(zone.id, data.pincodes)
        logger.info(f"Created delivery zone {zone.code}")
        return zone

    async def update_zone(self, zone_id: uuid.UUID, data: ZoneUpdate) -> DeliveryZone:
        zone = await self.get_zone(zone_id)
        update_data = data.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            setattr(zone, field, value)
        await self.db.flush()
        if "is_active" in update_data:
            await self.serviceability.invalidate_pincode_cache()
        return zone

    async def delete_zone(self, zone_id: uuid.UUID) -> None:
        zone = await self.get_zone(zone_id)
        await self.db.execute(delete(ZonePincode).where(ZonePincode.zone_id == zone_id))
        await self.db.execute(delete(WarehouseZone).where(WarehouseZone.zone_id == zone_id))
        await self.db.execute(delete(DeliveryZone).where(DeliveryZone.id == zone_id))
        await self.serviceability.invalidate_pincode_cache()
        logger.info(f"Deleted delivery zone {zone.code}")

    async def add_zone_pincodes(self, zone_id: uuid.UUID, pincodes: List[PincodeEntry]) -> Dict[str, Any]:
        """Bulk add; pincodes already in the zone are skipped."""
        await self.get_zone(zone_id)
        result = await self.db.execute(select(ZonePincode.pincode).where(ZonePincode.zone_id == zone_id))
        present: Set[str] = set(result.scalars().all())

        added = []
        for entry in pincodes:
            if entry.pincode in present:
                continue
            present.add(entry.pincode)
            self.db.add(ZonePincode(zone_id=zone_id, pincode=entry.pincode, city=entry.city, state=entry.state))
            added.append(entry.pincode)
        await self.db.flush()

        for pincode in added:
            await self.serviceability.invalidate_pincode_cache(pincode)
        return {"added": len(added), "skipped": len(pincodes) - len(added), "pincodes": added}

    async def remove_zone_pincode(self, zone_id: uuid.UUID, pincode: str) -> None:
        await self.get_zone(zone_id)
        result = await self.db.execute(
            delete(ZonePincode).where(
                and_(ZonePincode.zone_id == zone_id, ZonePincode.pincode == pincode)
            )
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Pincode {pincode} is not in this zone")
        await self.serviceability.invalidate_pincode_cache(pincode)

    async def get_zone_ids_for_pincode(self, pincode: str) -> List[uuid.UUID]:
        return await self.serviceability.get_zone_ids_for_pincode(pincode)

    async def validate_pincode(self, pincode: str, product_id: Optional[uuid.UUID] = None) -> Dict[str, Any]:
        """Which zones, divisions and zonal warehouses cover a pincode."""
        zone_ids = await self.get_zone_ids_for_pincode(pincode)
        zones = []
        if zone_ids:
            result = await self.db.execute(
                select(DeliveryZone).where(DeliveryZone.id.in_(zone_ids)).order_by(DeliveryZone.code)
            )
            zones = [{"id": str(z.id), "code": z.code, "name": z.name} for z in result.scalars().all()]

        assigned = await self._active_assignments([pincode])
        response: Dict[str, Any] = {
            "pincode": pincode,
            "serviceable": bool(zones) or pincode in assigned,
            "zones": zones,
            "division_warehouse_id": str(assigned[pincode]) if pincode in assigned else None,
            "candidates": await self.serviceability.find_candidate_warehouses(
                pincode, product_id=product_id
            ),
        }
        if product_id is not None:
            resolution = await self.serviceability.resolve_warehouse(product_id, pincode)
            response["resolution"] = resolution.to_dict()
        return response

    async def get_zone_statistics(self) -> Dict[str, int]:
        total_zones = await self.db.scalar(select(func.count(DeliveryZone.id)))
        active_zones = await self.db.scalar(
            select(func.count(DeliveryZone.id)).where(DeliveryZone.is_active == True)
        )
        total_pincodes = await self.db.scalar(select(func.count(func.distinct(ZonePincode.pincode))))
        mapped_zones = await self.db.scalar(select(func.count(func.distinct(WarehouseZone.zone_id))))
        zonal_warehouses = await self.db.scalar(
            select(func.count(func.distinct(WarehouseZone.warehouse_id)))
        )
        division_pincodes = await self.db.scalar(
            select(func.count(WarehousePincode.id)).where(WarehousePincode.is_active == True)
        )
        return {
            "total_zones": total_zones or 0,
            "active_zones": active_zones or 0,
            "total_pincodes": total_pincodes or 0,
            "mapped_zones": mapped_zones or 0,
            "unmapped_zones": (total_zones or 0) - (mapped_zones or 0),
            "zonal_warehouses": zonal_warehouses or 0,
            "division_pincodes": division_pincodes or 0,
        }

    # ==================== Product stock rows ====================

    async def list_warehouse_products(self, warehouse_id: uuid.UUID) -> List[ProductWarehouseStock]:
        await self.get_warehouse(warehouse_id)
        result = await self.db.execute(
            select(ProductWarehouseStock)
            .where(
                and_(
                    ProductWarehouseStock.warehouse_id == warehouse_id,
                    ProductWarehouseStock.is_active == True,
                )
            )
            .order_by(ProductWarehouseStock.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def map_product(self, warehouse_id: uuid.UUID, data: ProductStockCreate) -> ProductWarehouseStock:
        """Create (or reactivate) a stock row and set its initial level."""
        warehouse = await self.get_warehouse(warehouse_id)
        if not warehouse.is_active:
            raise ValidationError("Cannot map products to an inactive warehouse")
        product = await self.db.get(Product, data.product_id)
        if not product:
            raise NotFoundError("Product not found")

        row = await self.ledger.get_stock_row(data.product_id, warehouse_id, data.variant_id)
        if row and row.is_active:
            raise ValidationError("Product is already mapped to this warehouse")

        if row is None:
            self.db.add(ProductWarehouseStock(
                product_id=data.product_id,
                variant_id=data.variant_id,
                warehouse_id=warehouse_id,
                stock_quantity=0,
                reserved_quantity=0,
                minimum_threshold=data.minimum_threshold,
            ))
            await self.db.flush()
        else:
            await self.db.execute(
                update(ProductWarehouseStock)
                .where(ProductWarehouseStock.id == row.id)
                .values(is_active=True, version=ProductWarehouseStock.version + 1)
                .execution_options(synchronize_session=False)
            )

        logger.info(f"Mapped product {product.sku} to warehouse {warehouse.code}")
        return await self.ledger.set_stock_level(
            data.product_id,
            warehouse_id,
            data.stock_quantity,
            variant_id=data.variant_id,
            minimum_threshold=data.minimum_threshold,
            notes="Initial stock",
        )

    async def update_product_stock(
        self,
        warehouse_id: uuid.UUID,
        product_id: uuid.UUID,
        data: ProductStockUpdate,
    ) -> ProductWarehouseStock:
        await self.get_warehouse(warehouse_id)
        return await self.ledger.set_stock_level(
            product_id,
            warehouse_id,
            data.stock_quantity,
            variant_id=data.variant_id,
            minimum_threshold=data.minimum_threshold,
            notes=data.notes,
        )

    async def remove_product(
        self,
        warehouse_id: uuid.UUID,
        product_id: uuid.UUID,
        variant_id: Optional[uuid.UUID] = None,
    ) -> None:
        """Deactivate a stock row; refused while any of it is reserved."""
        await self.get_warehouse(warehouse_id)
        result = await self.db.execute(
            update(ProductWarehouseStock)
            .where(
                and_(
                    *StockLedgerService._stock_filter(product_id, warehouse_id, variant_id),
                    ProductWarehouseStock.is_active == True,
                    ProductWarehouseStock.reserved_quantity == 0,
                )
            )
            .values(is_active=False, version=ProductWarehouseStock.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            row = await self.ledger.get_stock_row(product_id, warehouse_id, variant_id)
            if row is None or not row.is_active:
                raise NotFoundError("Product is not mapped to this warehouse")
            raise ValidationError(
                f"Cannot remove product with {row.reserved_quantity} reserved unit(s)",
                details={"reserved_quantity": row.reserved_quantity},
            )
        logger.info(f"Removed product {product_id} from warehouse {warehouse_id}")

    async def get_product_stock_summary(self, product_id: uuid.UUID) -> Dict[str, Any]:
        product = await self.db.get(Product, product_id)
        if not product:
            raise NotFoundError("Product not found")

        result = await self.db.execute(
            select(ProductWarehouseStock, Warehouse)
            .join(Warehouse, Warehouse.id == ProductWarehouseStock.warehouse_id)
            .where(
                and_(
                    ProductWarehouseStock.product_id == product_id,
                    ProductWarehouseStock.is_active == True,
                )
            )
            .order_by(Warehouse.warehouse_type, Warehouse.code)
            .execution_options(populate_existing=True)
        )
        warehouses = []
        totals = {"stock_quantity": 0, "reserved_quantity": 0, "available_quantity": 0}
        for stock, warehouse in result.all():
            warehouses.append({
                "warehouse_id": str(warehouse.id),
                "warehouse_code": warehouse.code,
                "warehouse_type": warehouse.warehouse_type,
                "variant_id": str(stock.variant_id) if stock.variant_id else None,
                "stock_quantity": stock.stock_quantity,
                "reserved_quantity": stock.reserved_quantity,
                "available_quantity": stock.available_quantity,
                "minimum_threshold": stock.minimum_threshold,
            })
            totals["stock_quantity"] += stock.stock_quantity
            totals["reserved_quantity"] += stock.reserved_quantity
            totals["available_quantity"] += stock.available_quantity

        return {
            "product_id": str(product.id),
            "sku": product.sku,
            "name": product.name,
            "totals": totals,
            "warehouses": warehouses,
        }
