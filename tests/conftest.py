import os
import tempfile
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Iterable, Optional, Tuple

# Settings are read at import time, so point them at a throwaway database first
_TEST_DB_DIR = tempfile.mkdtemp(prefix="fulfillment-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select, and_

from fulfillment import models  # noqa: F401
from fulfillment.database import Base, engine, async_session_factory
from fulfillment.models.bid import ProductEnquiry, EnquiryBid, BidProduct, EnquiryStatus, BidStatus
from fulfillment.models.inventory import ProductWarehouseStock, StockReservation, ReservationStatus
from fulfillment.models.product import Product, DeliveryType
from fulfillment.models.serviceability import DeliveryZone, ZonePincode, WarehouseZone
from fulfillment.models.warehouse import Warehouse, WarehousePincode, WarehouseType
from fulfillment.services.cache_service import reset_cache
from fulfillment.core.clock import utc_now


@pytest.fixture(autouse=True)
def fresh_cache():
    reset_cache()
    yield
    reset_cache()


@pytest.fixture
async def db_engine():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(db_engine):
    async with async_session_factory() as s:
        yield s
        await s.rollback()


@pytest.fixture
async def client(db_engine):
    from fulfillment.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class Seeder:
    """Direct inserts for test data, bypassing service validation."""

    def __init__(self, session):
        self.session = session

    async def product(
        self,
        sku: str,
        delivery_type: str = DeliveryType.ZONAL.value,
        allowed_zone_ids: Optional[list] = None,
        gst_percentage: Decimal = Decimal("18"),
        is_active: bool = True,
    ) -> Product:
        product = Product(
            id=uuid.uuid4(),
            sku=sku,
            name=f"Product {sku}",
            delivery_type=delivery_type,
            allowed_zone_ids=allowed_zone_ids,
            price=Decimal("100.00"),
            gst_percentage=gst_percentage,
            is_active=is_active,
        )
        self.session.add(product)
        await self.session.flush()
        return product

    async def warehouse(
        self,
        code: str,
        warehouse_type: str,
        parent: Optional[Warehouse] = None,
        is_active: bool = True,
    ) -> Warehouse:
        warehouse = Warehouse(
            id=uuid.uuid4(),
            code=code,
            name=f"Warehouse {code}",
            warehouse_type=warehouse_type,
            parent_warehouse_id=parent.id if parent else None,
            is_active=is_active,
        )
        self.session.add(warehouse)
        await self.session.flush()
        return warehouse

    async def zone(self, code: str, pincodes: Iterable[str], is_active: bool = True) -> DeliveryZone:
        zone = DeliveryZone(id=uuid.uuid4(), code=code, name=f"Zone {code}", is_active=is_active)
        self.session.add(zone)
        await self.session.flush()
        for pincode in pincodes:
            self.session.add(ZonePincode(zone_id=zone.id, pincode=pincode, city="City", state="State"))
        await self.session.flush()
        return zone

    async def map_zone(self, warehouse: Warehouse, zone: DeliveryZone, priority: int = 100) -> None:
        self.session.add(WarehouseZone(warehouse_id=warehouse.id, zone_id=zone.id, priority=priority))
        await self.session.flush()

    async def assign_pincode(self, division: Warehouse, pincode: str) -> None:
        self.session.add(WarehousePincode(warehouse_id=division.id, pincode=pincode, is_active=True))
        await self.session.flush()

    async def stock(
        self,
        product: Product,
        warehouse: Warehouse,
        quantity: int,
        reserved: int = 0,
        minimum_threshold: int = 0,
        variant_id: Optional[uuid.UUID] = None,
    ) -> None:
        self.session.add(ProductWarehouseStock(
            product_id=product.id,
            variant_id=variant_id,
            warehouse_id=warehouse.id,
            stock_quantity=quantity,
            reserved_quantity=reserved,
            minimum_threshold=minimum_threshold,
            version=0,
        ))
        await self.session.flush()

    async def levels(self, product_id: uuid.UUID, warehouse_id: uuid.UUID) -> Tuple[int, int]:
        """(stock_quantity, reserved_quantity) read straight from the table."""
        result = await self.session.execute(
            select(ProductWarehouseStock.stock_quantity, ProductWarehouseStock.reserved_quantity).where(
                and_(
                    ProductWarehouseStock.product_id == product_id,
                    ProductWarehouseStock.warehouse_id == warehouse_id,
                    ProductWarehouseStock.variant_id.is_(None),
                )
            )
        )
        row = result.first()
        return (row.stock_quantity, row.reserved_quantity) if row else (0, 0)

    async def active_held(self, reference_type: str, reference_id) -> int:
        result = await self.session.execute(
            select(StockReservation.quantity).where(
                and_(
                    StockReservation.reference_type == reference_type,
                    StockReservation.reference_id == str(reference_id),
                    StockReservation.status == ReservationStatus.ACTIVE.value,
                )
            )
        )
        return sum(result.scalars().all())

    async def accepted_bid(
        self,
        user_id: uuid.UUID,
        lines: Iterable[Tuple[Product, int, Decimal]],
        delivery_pincode: Optional[str] = None,
    ) -> EnquiryBid:
        """Enquiry in NEGOTIATING with one ACCEPTED bid."""
        enquiry = ProductEnquiry(
            id=uuid.uuid4(),
            user_id=user_id,
            delivery_pincode=delivery_pincode,
            status=EnquiryStatus.NEGOTIATING.value,
        )
        self.session.add(enquiry)
        await self.session.flush()

        bid = EnquiryBid(
            id=uuid.uuid4(),
            enquiry_id=enquiry.id,
            status=BidStatus.ACCEPTED.value,
            validity_hours=24,
            expires_at=utc_now() + timedelta(days=1),
        )
        self.session.add(bid)
        await self.session.flush()
        for product, quantity, unit_price in lines:
            self.session.add(BidProduct(
                bid_id=bid.id,
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                unit_price=unit_price,
                total_price=unit_price * quantity,
                gst_percentage=product.gst_percentage,
            ))
        await self.session.flush()
        return bid


@pytest.fixture
def seed(session):
    return Seeder(session)


class Network:
    """
    Standard topology.

    WEST zone: 400001, 400002 served by ZONAL-A (priority 10) and ZONAL-B (20).
    NORTH zone: 110001 served by nobody.
    DIV-A1 is a division of ZONAL-A holding 400001.
    NATION-1 is nationwide.
    """


@pytest.fixture
async def network(seed, session):
    net = Network()
    net.west = await seed.zone("WEST", ["400001", "400002"])
    net.north = await seed.zone("NORTH", ["110001"])
    net.zonal_a = await seed.warehouse("ZONAL-A", WarehouseType.ZONAL.value)
    net.zonal_b = await seed.warehouse("ZONAL-B", WarehouseType.ZONAL.value)
    await seed.map_zone(net.zonal_a, net.west, priority=10)
    await seed.map_zone(net.zonal_b, net.west, priority=20)
    net.division = await seed.warehouse("DIV-A1", WarehouseType.DIVISION.value, parent=net.zonal_a)
    await seed.assign_pincode(net.division, "400001")
    net.nationwide = await seed.warehouse("NATION-1", WarehouseType.NATIONWIDE.value)
    net.product = await seed.product("SKU-ZONAL")
    net.national_product = await seed.product("SKU-NATION", delivery_type=DeliveryType.NATIONWIDE.value)
    await session.commit()
    return net
