"""
Stock Ledger Service.

Owns every change to ProductWarehouseStock.reserved_quantity:

1. reserve()  - hold stock for a reference (cart item, order, locked bid)
2. confirm()  - turn a hold into a permanent deduction
3. release()  - return a hold to available stock

Each mutation is one conditional UPDATE on the stock row, so two
concurrent reservations can never both succeed against the same units.
The guard lives in the WHERE clause and an UPDATE that returns no row
means the guard failed. Every mutation bumps ``version``, maintains the
StockReservation row and appends a StockMovement carrying the levels
the UPDATE returned.
"""
import logging
import uuid
from typing import Optional, List, Dict, Tuple

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.exceptions import (
    InsufficientStock,
    NotFoundError,
    ReservationMismatch,
    ValidationError,
)
from fulfillment.models.inventory import (
    ProductWarehouseStock,
    StockReservation,
    StockMovement,
    ReservationStatus,
    MovementType,
)

logger = logging.getLogger(__name__)


class StockLedgerService:
    """Reserve / confirm / release against per-warehouse stock rows."""

    # Post-update levels, read back from every conditional UPDATE
    _LEVELS = (ProductWarehouseStock.stock_quantity, ProductWarehouseStock.reserved_quantity)

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Helpers ====================

    @staticmethod
    def _stock_filter(
        product_id: uuid.UUID,
        warehouse_id: uuid.UUID,
        variant_id: Optional[uuid.UUID] = None,
    ) -> list:
        conditions = [
            ProductWarehouseStock.product_id == product_id,
            ProductWarehouseStock.warehouse_id == warehouse_id,
        ]
        if variant_id is None:
            conditions.append(ProductWarehouseStock.variant_id.is_(None))
        else:
            conditions.append(ProductWarehouseStock.variant_id == variant_id)
        return conditions

    async def _log_movement(
        self,
        movement_type: MovementType,
        product_id: uuid.UUID,
        warehouse_id: uuid.UUID,
        quantity: int,
        levels: Tuple[int, int],
        variant_id: Optional[uuid.UUID] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> StockMovement:
        stock_after, reserved_after = levels
        movement = StockMovement(
            movement_type=movement_type.value,
            product_id=product_id,
            variant_id=variant_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            stock_after=stock_after,
            reserved_after=reserved_after,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
        )
        self.db.add(movement)
        await self.db.flush()
        return movement

    async def _get_active_reservation(
        self,
        reference_type: str,
        reference_id: str,
        product_id: uuid.UUID,
        warehouse_id: uuid.UUID,
        variant_id: Optional[uuid.UUID] = None,
    ) -> Optional[StockReservation]:
        conditions = [
            StockReservation.reference_type == reference_type,
            StockReservation.reference_id == str(reference_id),
            StockReservation.product_id == product_id,
            StockReservation.warehouse_id == warehouse_id,
            StockReservation.status == ReservationStatus.ACTIVE.value,
        ]
        if variant_id is None:
            conditions.append(StockReservation.variant_id.is_(None))
        else:
            conditions.append(StockReservation.variant_id == variant_id)

        result = await self.db.execute(
            select(StockReservation).where(and_(*conditions))
        )
        return result.scalars().first()

    @staticmethod
    def _check_quantity(quantity: int) -> None:
        if quantity is None or quantity < 1:
            raise ValidationError("Quantity must be at least 1")

    # ==================== Reads ====================

    async def get_stock_row(
        self,
        product_id: uuid.UUID,
        warehouse_id: uuid.UUID,
        variant_id: Optional[uuid.UUID] = None,
    ) -> Optional[ProductWarehouseStock]:
        result = await self.db.execute(
            select(ProductWarehouseStock)
            .where(and_(*self._stock_filter(product_id, warehouse_id, variant_id)))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_available(
        self,
        product_id: uuid.UUID,
        warehouse_id: uuid.UUID,
        variant_id: Optional[uuid.UUID] = None,
    ) -> int:
        """Available = stock - reserved on an active row, else 0."""
        result = await self.db.execute(
            select(
                ProductWarehouseStock.stock_quantity - ProductWarehouseStock.reserved_quantity
            ).where(
                and_(
                    *self._stock_filter(product_id, warehouse_id, variant_id),
                    ProductWarehouseStock.is_active == True,
                )
            )
        )
        available = result.scalar()
        return max(available or 0, 0)

    async def get_active_reservations(
        self,
        reference_type: str,
        reference_id: str,
    ) -> List[StockReservation]:
        result = await self.db.execute(
            select(StockReservation).where(
                and_(
                    StockReservation.reference_type == reference_type,
                    StockReservation.reference_id == str(reference_id),
                    StockReservation.status == ReservationStatus.ACTIVE.value,
                )
            ).order_by(StockReservation.created_at)
        )
        return list(result.scalars().all())

    # ==================== Mutations ====================

    async def reserve(
        self,
        product_id: uuid.UUID,
        warehouse_id: uuid.UUID,
        quantity: int,
        reference_type: str,
        reference_id: str,
        variant_id: Optional[uuid.UUID] = None,
    ) -> StockReservation:
        """
        Hold ``quantity`` units for a reference.

        Raises InsufficientStock when the active row's available quantity
        does not cover the request. Repeated reserves for the same key
        accumulate into a single ACTIVE reservation.
        """
        self._check_quantity(quantity)
        reference_id = str(reference_id)

        result = await self.db.execute(
            update(ProductWarehouseStock)
            .where(
                and_(
                    *self._stock_filter(product_id, warehouse_id, variant_id),
                    ProductWarehouseStock.is_active == True,
                    ProductWarehouseStock.stock_quantity - ProductWarehouseStock.reserved_quantity >= quantity,
                )
            )
            .values(
                reserved_quantity=ProductWarehouseStock.reserved_quantity + quantity,
                version=ProductWarehouseStock.version + 1,
            )
            .returning(*self._LEVELS)
            .execution_options(synchronize_session=False)
        )
        levels = result.first()
        if levels is None:
            available = await self.get_available(product_id, warehouse_id, variant_id)
            logger.warning(
                f"Reserve rejected: product {product_id} at {warehouse_id} "
                f"requested {quantity}, available {available}"
            )
            raise InsufficientStock(
                f"Insufficient stock: requested {quantity}, available {available}",
                details={
                    "product_id": str(product_id),
                    "warehouse_id": str(warehouse_id),
                    "requested": quantity,
                    "available": available,
                },
            )

        reservation = await self._get_active_reservation(
            reference_type, reference_id, product_id, warehouse_id, variant_id
        )
        if reservation:
            reservation.quantity += quantity
        else:
            reservation = StockReservation(
                reference_type=reference_type,
                reference_id=reference_id,
                product_id=product_id,
                variant_id=variant_id,
                warehouse_id=warehouse_id,
                quantity=quantity,
                status=ReservationStatus.ACTIVE.value,
            )
            self.db.add(reservation)
        await self.db.flush()

        await self._log_movement(
            MovementType.RESERVE, product_id, warehouse_id, quantity, levels,
            variant_id=variant_id, reference_type=reference_type, reference_id=reference_id,
        )
        logger.info(f"Reserved {quantity} of {product_id} at {warehouse_id} for {reference_type}:{reference_id}")
        return reservation

    async def confirm(
        self,
        product_id: uuid.UUID,
        warehouse_id: uuid.UUID,
        quantity: int,
        reference_type: str,
        reference_id: str,
        variant_id: Optional[uuid.UUID] = None,
    ) -> StockReservation:
        """
        Permanently deduct ``quantity`` previously reserved for a reference.

        stock and reserved drop together, so available is unchanged.
        """
        self._check_quantity(quantity)
        reference_id = str(reference_id)

        reservation = await self._get_active_reservation(
            reference_type, reference_id, product_id, warehouse_id, variant_id
        )
        if reservation is None or reservation.quantity < quantity:
            held = reservation.quantity if reservation else 0
            logger.warning(
                f"Confirm rejected for {reference_type}:{reference_id}: "
                f"requested {quantity}, reserved {held}"
            )
            raise ReservationMismatch(
                f"Cannot confirm {quantity} units: only {held} reserved",
                details={"requested": quantity, "reserved": held},
            )

        result = await self.db.execute(
            update(ProductWarehouseStock)
            .where(
                and_(
                    *self._stock_filter(product_id, warehouse_id, variant_id),
                    ProductWarehouseStock.reserved_quantity >= quantity,
                    ProductWarehouseStock.stock_quantity >= quantity,
                )
            )
            .values(
                stock_quantity=ProductWarehouseStock.stock_quantity - quantity,
                reserved_quantity=ProductWarehouseStock.reserved_quantity - quantity,
                version=ProductWarehouseStock.version + 1,
            )
            .returning(*self._LEVELS)
            .execution_options(synchronize_session=False)
        )
        levels = result.first()
        if levels is None:
            raise ReservationMismatch(
                f"Stock row no longer holds {quantity} reserved units",
                details={"product_id": str(product_id), "warehouse_id": str(warehouse_id)},
            )

        if reservation.quantity == quantity:
            reservation.status = ReservationStatus.CONFIRMED.value
        else:
            reservation.quantity -= quantity
        await self.db.flush()

        await self._log_movement(
            MovementType.CONFIRM, product_id, warehouse_id, quantity, levels,
            variant_id=variant_id, reference_type=reference_type, reference_id=reference_id,
        )
        logger.info(f"Confirmed {quantity} of {product_id} at {warehouse_id} for {reference_type}:{reference_id}")
        return reservation

    async def release(
        self,
        product_id: uuid.UUID,
        warehouse_id: uuid.UUID,
        reference_type: str,
        reference_id: str,
        quantity: Optional[int] = None,
        variant_id: Optional[uuid.UUID] = None,
    ) -> int:
        """
        Return held units to available stock.

        Releases ``min(quantity, held)``, or everything held when quantity
        is None. Returns the number of units released; 0 when nothing is
        held, so releasing twice is harmless.
        """
        reference_id = str(reference_id)
        reservation = await self._get_active_reservation(
            reference_type, reference_id, product_id, warehouse_id, variant_id
        )
        if reservation is None:
            logger.debug(f"Release no-op: nothing held for {reference_type}:{reference_id}")
            return 0

        held = reservation.quantity
        to_release = held if quantity is None else min(quantity, held)
        if to_release <= 0:
            return 0

        result = await self.db.execute(
            update(ProductWarehouseStock)
            .where(
                and_(
                    *self._stock_filter(product_id, warehouse_id, variant_id),
                    ProductWarehouseStock.reserved_quantity >= to_release,
                )
            )
            .values(
                reserved_quantity=ProductWarehouseStock.reserved_quantity - to_release,
                version=ProductWarehouseStock.version + 1,
            )
            .returning(*self._LEVELS)
            .execution_options(synchronize_session=False)
        )
        levels = result.first()
        if levels is None:
            raise ReservationMismatch(
                f"Stock row holds fewer than {to_release} reserved units",
                details={"product_id": str(product_id), "warehouse_id": str(warehouse_id)},
            )

        if to_release == held:
            reservation.status = ReservationStatus.RELEASED.value
        else:
            reservation.quantity -= to_release
        await self.db.flush()

        await self._log_movement(
            MovementType.RELEASE, product_id, warehouse_id, to_release, levels,
            variant_id=variant_id, reference_type=reference_type, reference_id=reference_id,
        )
        logger.info(f"Released {to_release} of {product_id} at {warehouse_id} for {reference_type}:{reference_id}")
        return to_release

    async def release_reference(self, reference_type: str, reference_id: str) -> int:
        """Release every ACTIVE reservation held by a reference."""
        total = 0
        for reservation in await self.get_active_reservations(reference_type, reference_id):
            total += await self.release(
                reservation.product_id,
                reservation.warehouse_id,
                reference_type,
                reference_id,
                variant_id=reservation.variant_id,
            )
        return total

    async def confirm_reference(self, reference_type: str, reference_id: str) -> List[Dict]:
        """Confirm every ACTIVE reservation held by a reference in full."""
        confirmed = []
        for reservation in await self.get_active_reservations(reference_type, reference_id):
            quantity = reservation.quantity
            await self.confirm(
                reservation.product_id,
                reservation.warehouse_id,
                quantity,
                reference_type,
                reference_id,
                variant_id=reservation.variant_id,
            )
            confirmed.append({
                "product_id": str(reservation.product_id),
                "variant_id": str(reservation.variant_id) if reservation.variant_id else None,
                "warehouse_id": str(reservation.warehouse_id),
                "quantity": quantity,
            })
        return confirmed

    async def transfer(
        self,
        product_id: uuid.UUID,
        from_warehouse_id: uuid.UUID,
        to_warehouse_id: uuid.UUID,
        quantity: int,
        variant_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
    ) -> Dict:
        """Move unreserved stock between warehouses, creating the destination row if needed."""
        self._check_quantity(quantity)
        if from_warehouse_id == to_warehouse_id:
            raise ValidationError("Source and destination warehouse must differ")

        result = await self.db.execute(
            update(ProductWarehouseStock)
            .where(
                and_(
                    *self._stock_filter(product_id, from_warehouse_id, variant_id),
                    ProductWarehouseStock.stock_quantity - ProductWarehouseStock.reserved_quantity >= quantity,
                )
            )
            .values(
                stock_quantity=ProductWarehouseStock.stock_quantity - quantity,
                version=ProductWarehouseStock.version + 1,
            )
            .returning(*self._LEVELS)
            .execution_options(synchronize_session=False)
        )
        source_levels = result.first()
        if source_levels is None:
            available = await self.get_available(product_id, from_warehouse_id, variant_id)
            raise InsufficientStock(
                f"Insufficient stock to transfer: requested {quantity}, available {available}",
                details={"requested": quantity, "available": available},
            )

        result = await self.db.execute(
            update(ProductWarehouseStock)
            .where(and_(*self._stock_filter(product_id, to_warehouse_id, variant_id)))
            .values(
                stock_quantity=ProductWarehouseStock.stock_quantity + quantity,
                is_active=True,
                version=ProductWarehouseStock.version + 1,
            )
            .returning(*self._LEVELS)
            .execution_options(synchronize_session=False)
        )
        target_levels = result.first()
        if target_levels is None:
            self.db.add(ProductWarehouseStock(
                product_id=product_id,
                variant_id=variant_id,
                warehouse_id=to_warehouse_id,
                stock_quantity=quantity,
                reserved_quantity=0,
                version=1,
            ))
            await self.db.flush()
            target_levels = (quantity, 0)

        transfer_ref = str(uuid.uuid4())
        await self._log_movement(
            MovementType.TRANSFER_OUT, product_id, from_warehouse_id, quantity, source_levels,
            variant_id=variant_id, reference_type="transfer", reference_id=transfer_ref, notes=notes,
        )
        await self._log_movement(
            MovementType.TRANSFER_IN, product_id, to_warehouse_id, quantity, target_levels,
            variant_id=variant_id, reference_type="transfer", reference_id=transfer_ref, notes=notes,
        )
        logger.info(f"Transferred {quantity} of {product_id} from {from_warehouse_id} to {to_warehouse_id}")

        return {
            "transfer_id": transfer_ref,
            "product_id": str(product_id),
            "from_warehouse_id": str(from_warehouse_id),
            "to_warehouse_id": str(to_warehouse_id),
            "quantity": quantity,
        }

    async def set_stock_level(
        self,
        product_id: uuid.UUID,
        warehouse_id: uuid.UUID,
        stock_quantity: int,
        variant_id: Optional[uuid.UUID] = None,
        minimum_threshold: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> ProductWarehouseStock:
        """Admin adjustment. The new level may not drop below what is reserved."""
        if stock_quantity is None or stock_quantity < 0:
            raise ValidationError("Stock quantity cannot be negative")

        values = {
            "stock_quantity": stock_quantity,
            "version": ProductWarehouseStock.version + 1,
        }
        if minimum_threshold is not None:
            values["minimum_threshold"] = minimum_threshold

        result = await self.db.execute(
            update(ProductWarehouseStock)
            .where(
                and_(
                    *self._stock_filter(product_id, warehouse_id, variant_id),
                    ProductWarehouseStock.reserved_quantity <= stock_quantity,
                )
            )
            .values(**values)
            .returning(*self._LEVELS)
            .execution_options(synchronize_session=False)
        )
        levels = result.first()
        if levels is None:
            row = await self.get_stock_row(product_id, warehouse_id, variant_id)
            if row is None:
                raise NotFoundError("Product is not mapped to this warehouse")
            raise ValidationError(
                f"Stock quantity {stock_quantity} is below reserved quantity {row.reserved_quantity}",
                details={"reserved_quantity": row.reserved_quantity},
            )

        await self._log_movement(
            MovementType.ADJUSTMENT, product_id, warehouse_id, stock_quantity, levels,
            variant_id=variant_id, notes=notes or "Stock level set",
        )
        logger.info(f"Stock level of {product_id} at {warehouse_id} set to {stock_quantity}")
        return await self.get_stock_row(product_id, warehouse_id, variant_id)
