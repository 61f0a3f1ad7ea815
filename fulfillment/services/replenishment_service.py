"""
Replenishment Service.

Tops up division warehouses from their parent zonal warehouse when a
product runs low. Runs hourly from the scheduler and on demand through
the availability API. All moves go through StockLedgerService.transfer.
"""
import logging
import uuid
from typing import Optional, List, Dict, Any

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.config import settings
from fulfillment.core.exceptions import InsufficientStock, NotFoundError, ValidationError
from fulfillment.models.inventory import ProductWarehouseStock
from fulfillment.models.warehouse import Warehouse, WarehouseType
from fulfillment.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)


class ReplenishmentService:
    """Zonal -> division stock transfers."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = StockLedgerService(db)

    async def _get_division(self, division_id: uuid.UUID) -> Warehouse:
        warehouse = await self.db.get(Warehouse, division_id)
        if not warehouse or not warehouse.is_division:
            raise NotFoundError("Division warehouse not found")
        if not warehouse.parent_warehouse_id:
            raise ValidationError("Division warehouse has no parent zonal warehouse")
        return warehouse

    async def transfer_to_division(
        self,
        product_id: uuid.UUID,
        division_id: uuid.UUID,
        quantity: Optional[int] = None,
        variant_id: Optional[uuid.UUID] = None,
    ) -> Dict[str, Any]:
        """
        Move stock from the division's parent into the division.

        Quantity defaults to the division row's minimum_threshold, then
        DEFAULT_TRANSFER_QUANTITY.
        """
        division = await self._get_division(division_id)
        row = await self.ledger.get_stock_row(product_id, division.id, variant_id)
        if row is None or not row.is_active:
            raise NotFoundError("Product not found in division warehouse")

        transfer_qty = quantity or row.minimum_threshold or settings.DEFAULT_TRANSFER_QUANTITY
        result = await self.ledger.transfer(
            product_id,
            division.parent_warehouse_id,
            division.id,
            transfer_qty,
            variant_id=variant_id,
            notes=f"Replenish {division.code} from parent",
        )
        logger.info(f"Replenished {division.code} with {transfer_qty} of {product_id}")
        return result

    async def monitor_and_transfer(self) -> Dict[str, List[Dict[str, Any]]]:
        """
        Top up every low division row whose parent can cover the transfer.

        Rows are skipped (and reported) when the parent lacks stock.
        """
        result = await self.db.execute(
            select(ProductWarehouseStock, Warehouse)
            .join(Warehouse, Warehouse.id == ProductWarehouseStock.warehouse_id)
            .where(
                and_(
                    ProductWarehouseStock.is_active == True,
                    ProductWarehouseStock.stock_quantity <= settings.LOW_STOCK_LEVEL,
                    Warehouse.warehouse_type == WarehouseType.DIVISION.value,
                    Warehouse.is_active == True,
                    Warehouse.parent_warehouse_id.isnot(None),
                )
            )
            .execution_options(populate_existing=True)
        )
        low_rows = result.all()

        transfers = []
        skipped = []
        for stock, division in low_rows:
            transfer_qty = stock.minimum_threshold or settings.DEFAULT_TRANSFER_QUANTITY
            try:
                moved = await self.ledger.transfer(
                    stock.product_id,
                    division.parent_warehouse_id,
                    division.id,
                    transfer_qty,
                    variant_id=stock.variant_id,
                    notes=f"Auto replenish {division.code}",
                )
            except InsufficientStock as e:
                skipped.append({
                    "product_id": str(stock.product_id),
                    "division_id": str(division.id),
                    "quantity": transfer_qty,
                    "reason": e.message,
                })
                continue
            transfers.append(moved)

        logger.info(f"Replenishment: {len(transfers)} transfer(s), {len(skipped)} skipped")
        return {"transfers": transfers, "skipped": skipped}
