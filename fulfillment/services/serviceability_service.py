"""
Serviceability Service (Delivery Resolver).

Picks the warehouse that should fulfil a (product, pincode) pair.
Tiers are tried in a fixed order and the first warehouse whose
available stock covers the quantity wins:

1. Division  - active division directly assigned the pincode (1 day)
2. Zonal     - zonal warehouses mapped to a zone containing the pincode,
               lowest priority value first (3-4 days)
3. Nationwide - only for nationwide products, most available first (5-7 days)
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.exceptions import NotFoundError, ValidationError
from fulfillment.models.inventory import ProductWarehouseStock
from fulfillment.models.product import Product
from fulfillment.models.serviceability import DeliveryZone, ZonePincode, WarehouseZone
from fulfillment.models.warehouse import Warehouse, WarehousePincode, WarehouseType
from fulfillment.services.cache_service import get_cache

logger = logging.getLogger(__name__)


TIER_DELIVERY = {
    WarehouseType.DIVISION.value: (1, "1 day"),
    WarehouseType.ZONAL.value: (3, "3-4 days"),
    WarehouseType.NATIONWIDE.value: (5, "5-7 days"),
}


@dataclass
class DeliveryResolution:
    """Outcome of resolving a warehouse for one product line."""
    deliverable: bool
    pincode: str
    product_id: str
    quantity: int = 1
    tier: Optional[str] = None
    warehouse_id: Optional[uuid.UUID] = None
    warehouse_code: Optional[str] = None
    warehouse_name: Optional[str] = None
    delivery_days: Optional[int] = None
    delivery_label: Optional[str] = None
    available_quantity: int = 0
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deliverable": self.deliverable,
            "pincode": self.pincode,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "tier": self.tier,
            "warehouse_id": str(self.warehouse_id) if self.warehouse_id else None,
            "warehouse_code": self.warehouse_code,
            "warehouse_name": self.warehouse_name,
            "delivery_days": self.delivery_days,
            "delivery_label": self.delivery_label,
            "available_quantity": self.available_quantity,
            "message": self.message,
        }


@dataclass
class CartLine:
    """Line to check in a multi-item availability request."""
    product_id: uuid.UUID
    quantity: int = 1
    variant_id: Optional[uuid.UUID] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class ServiceabilityService:
    """Service for resolving which warehouse delivers to a pincode."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.cache = get_cache()

    # ==================== Zone lookups ====================

    async def get_zone_ids_for_pincode(self, pincode: str) -> List[uuid.UUID]:
        """Active zone ids containing the pincode (cached)."""
        cached = await self.cache.get_pincode_zones(pincode)
        if cached is not None:
            return [uuid.UUID(z) for z in cached]

        result = await self.db.execute(
            select(ZonePincode.zone_id)
            .join(DeliveryZone, DeliveryZone.id == ZonePincode.zone_id)
            .where(
                and_(
                    ZonePincode.pincode == pincode,
                    DeliveryZone.is_active == True,
                )
            )
        )
        zone_ids = list(dict.fromkeys(result.scalars().all()))
        await self.cache.set_pincode_zones(pincode, [str(z) for z in zone_ids])
        return zone_ids

    async def invalidate_pincode_cache(self, pincode: Optional[str] = None) -> int:
        return await self.cache.invalidate_pincode_zones(pincode)

    # ==================== Candidate queries ====================

    @staticmethod
    def _with_stock(stmt, product_id: Optional[uuid.UUID], variant_id: Optional[uuid.UUID]):
        """Attach available quantity (0 when unmapped) for the product."""
        if product_id is None:
            return stmt
        variant_cond = (
            ProductWarehouseStock.variant_id.is_(None)
            if variant_id is None
            else ProductWarehouseStock.variant_id == variant_id
        )
        available = func.coalesce(
            ProductWarehouseStock.stock_quantity - ProductWarehouseStock.reserved_quantity, 0
        ).label("available")
        return stmt.add_columns(available).outerjoin(
            ProductWarehouseStock,
            and_(
                ProductWarehouseStock.warehouse_id == Warehouse.id,
                ProductWarehouseStock.product_id == product_id,
                ProductWarehouseStock.is_active == True,
                variant_cond,
            ),
        )

    @staticmethod
    def _rows(result, with_stock: bool) -> List[Tuple[Warehouse, Optional[int]]]:
        rows = []
        seen = set()
        for row in result.all():
            warehouse = row[0]
            if warehouse.id in seen:
                continue
            seen.add(warehouse.id)
            rows.append((warehouse, int(row.available) if with_stock else None))
        return rows

    async def _division_candidates(
        self,
        pincode: str,
        product_id: Optional[uuid.UUID] = None,
        variant_id: Optional[uuid.UUID] = None,
    ) -> List[Tuple[Warehouse, Optional[int]]]:
        stmt = (
            select(Warehouse)
            .join(WarehousePincode, WarehousePincode.warehouse_id == Warehouse.id)
            .where(
                and_(
                    WarehousePincode.pincode == pincode,
                    WarehousePincode.is_active == True,
                    Warehouse.is_active == True,
                    Warehouse.warehouse_type == WarehouseType.DIVISION.value,
                )
            )
            .order_by(Warehouse.code)
        )
        result = await self.db.execute(self._with_stock(stmt, product_id, variant_id))
        return self._rows(result, product_id is not None)

    async def _zonal_candidates(
        self,
        pincode: str,
        product_id: Optional[uuid.UUID] = None,
        variant_id: Optional[uuid.UUID] = None,
        allowed_zone_ids: Optional[List[str]] = None,
    ) -> List[Tuple[Warehouse, Optional[int]]]:
        zone_ids = await self.get_zone_ids_for_pincode(pincode)
        if allowed_zone_ids:
            allowed = {str(z) for z in allowed_zone_ids}
            zone_ids = [z for z in zone_ids if str(z) in allowed]
        if not zone_ids:
            return []

        stmt = (
            select(Warehouse)
            .join(WarehouseZone, WarehouseZone.warehouse_id == Warehouse.id)
            .where(
                and_(
                    WarehouseZone.zone_id.in_(zone_ids),
                    Warehouse.is_active == True,
                    Warehouse.warehouse_type == WarehouseType.ZONAL.value,
                )
            )
            .order_by(WarehouseZone.priority, Warehouse.code)
        )
        result = await self.db.execute(self._with_stock(stmt, product_id, variant_id))
        return self._rows(result, product_id is not None)

    async def _nationwide_candidates(
        self,
        product_id: Optional[uuid.UUID] = None,
        variant_id: Optional[uuid.UUID] = None,
    ) -> List[Tuple[Warehouse, Optional[int]]]:
        stmt = select(Warehouse).where(
            and_(
                Warehouse.is_active == True,
                Warehouse.warehouse_type == WarehouseType.NATIONWIDE.value,
            )
        )
        stmt = self._with_stock(stmt, product_id, variant_id)
        if product_id is not None:
            stmt = stmt.order_by(
                func.coalesce(
                    ProductWarehouseStock.stock_quantity - ProductWarehouseStock.reserved_quantity, 0
                ).desc(),
                Warehouse.code,
            )
        else:
            stmt = stmt.order_by(Warehouse.code)
        result = await self.db.execute(stmt)
        return self._rows(result, product_id is not None)

    async def _get_product(self, product_id: uuid.UUID) -> Product:
        result = await self.db.execute(
            select(Product).where(
                and_(Product.id == product_id, Product.is_active == True)
            )
        )
        product = result.scalar_one_or_none()
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    # ==================== Resolution ====================

    async def resolve_warehouse(
        self,
        product_id: uuid.UUID,
        pincode: str,
        quantity: int = 1,
        variant_id: Optional[uuid.UUID] = None,
    ) -> DeliveryResolution:
        """
        Resolve the fulfilling warehouse for a product line.

        Returns a non-deliverable resolution when no tier has enough stock;
        raises NotFoundError for unknown or inactive products.
        """
        if quantity is None or quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if not pincode:
            raise ValidationError("Pincode is required")

        product = await self._get_product(product_id)

        tiers = [
            (WarehouseType.DIVISION.value, await self._division_candidates(pincode, product.id, variant_id)),
            (
                WarehouseType.ZONAL.value,
                await self._zonal_candidates(pincode, product.id, variant_id, product.allowed_zone_ids),
            ),
        ]
        if product.ships_nationwide:
            tiers.append(
                (WarehouseType.NATIONWIDE.value, await self._nationwide_candidates(product.id, variant_id))
            )

        for tier, candidates in tiers:
            for warehouse, available in candidates:
                if available >= quantity:
                    days, label = TIER_DELIVERY[tier]
                    logger.info(
                        f"Resolved {product.sku} x{quantity} for {pincode} -> "
                        f"{warehouse.code} ({tier}, available={available})"
                    )
                    return DeliveryResolution(
                        deliverable=True,
                        pincode=pincode,
                        product_id=str(product.id),
                        quantity=quantity,
                        tier=tier,
                        warehouse_id=warehouse.id,
                        warehouse_code=warehouse.code,
                        warehouse_name=warehouse.name,
                        delivery_days=days,
                        delivery_label=label,
                        available_quantity=available,
                        message=f"Deliverable in {label}",
                    )

        logger.info(f"No warehouse can deliver {product.sku} x{quantity} to {pincode}")
        return DeliveryResolution(
            deliverable=False,
            pincode=pincode,
            product_id=str(product.id),
            quantity=quantity,
            message="Product is not deliverable to this pincode",
        )

    async def find_candidate_warehouses(
        self,
        pincode: str,
        product_type: str = "zonal",
        product_id: Optional[uuid.UUID] = None,
    ) -> List[Dict[str, Any]]:
        """Ordered candidates across all tiers, with stock when a product is given."""
        allowed_zone_ids = None
        if product_id is not None:
            product = await self._get_product(product_id)
            allowed_zone_ids = product.allowed_zone_ids
            product_type = product.delivery_type

        tiers = [(WarehouseType.DIVISION.value, await self._division_candidates(pincode, product_id))]
        tiers.append((
            WarehouseType.ZONAL.value,
            await self._zonal_candidates(pincode, product_id, allowed_zone_ids=allowed_zone_ids),
        ))
        if product_type == WarehouseType.NATIONWIDE.value:
            tiers.append((WarehouseType.NATIONWIDE.value, await self._nationwide_candidates(product_id)))

        results = []
        for tier, rows in tiers:
            days, label = TIER_DELIVERY[tier]
            for warehouse, available in rows:
                results.append({
                    "warehouse_id": str(warehouse.id),
                    "code": warehouse.code,
                    "name": warehouse.name,
                    "tier": tier,
                    "delivery_days": days,
                    "delivery_label": label,
                    "available_quantity": available,
                })
        return results

    async def find_max_available_warehouse(
        self,
        product_id: uuid.UUID,
        quantity: int = 1,
        variant_id: Optional[uuid.UUID] = None,
    ) -> Optional[Tuple[Warehouse, int]]:
        """Active warehouse with the most available stock covering ``quantity``."""
        available = (
            ProductWarehouseStock.stock_quantity - ProductWarehouseStock.reserved_quantity
        ).label("available")
        variant_cond = (
            ProductWarehouseStock.variant_id.is_(None)
            if variant_id is None
            else ProductWarehouseStock.variant_id == variant_id
        )
        result = await self.db.execute(
            select(Warehouse, available)
            .join(ProductWarehouseStock, ProductWarehouseStock.warehouse_id == Warehouse.id)
            .where(
                and_(
                    ProductWarehouseStock.product_id == product_id,
                    ProductWarehouseStock.is_active == True,
                    variant_cond,
                    Warehouse.is_active == True,
                    ProductWarehouseStock.stock_quantity - ProductWarehouseStock.reserved_quantity >= quantity,
                )
            )
            .order_by(available.desc(), Warehouse.code)
            .limit(1)
        )
        row = result.first()
        if row is None:
            return None
        return row[0], int(row.available)

    async def check_cart_availability(
        self,
        items: List[CartLine],
        pincode: str,
    ) -> Dict[str, Any]:
        """Resolve several lines for one pincode without reserving anything."""
        resolutions = []
        for item in items:
            try:
                resolution = await self.resolve_warehouse(
                    item.product_id, pincode, item.quantity, item.variant_id
                )
            except NotFoundError as e:
                resolution = DeliveryResolution(
                    deliverable=False,
                    pincode=pincode,
                    product_id=str(item.product_id),
                    quantity=item.quantity,
                    message=e.message,
                )
            payload = resolution.to_dict()
            payload.update(item.extra)
            resolutions.append(payload)

        return {
            "pincode": pincode,
            "all_deliverable": all(r["deliverable"] for r in resolutions) if resolutions else False,
            "items": resolutions,
        }
