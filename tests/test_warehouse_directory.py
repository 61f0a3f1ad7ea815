"""Warehouse hierarchy, zones, pincode coverage and replenishment."""
import uuid

import pytest

from fulfillment.core.exceptions import InsufficientStock, NotFoundError, ValidationError
from fulfillment.models.warehouse import WarehouseType
from fulfillment.schemas.inventory import ProductStockCreate
from fulfillment.schemas.serviceability import ZoneCreate, ZoneUpdate
from fulfillment.schemas.warehouse import WarehouseCreate, WarehouseUpdate, PincodeEntry, ZoneAssignment
from fulfillment.services.replenishment_service import ReplenishmentService
from fulfillment.services.stock_ledger_service import StockLedgerService
from fulfillment.services.warehouse_service import WarehouseService


def _division(code, parent_id, *pincodes):
    return WarehouseCreate(
        code=code,
        name=f"Division {code}",
        warehouse_type=WarehouseType.DIVISION,
        parent_warehouse_id=parent_id,
        pincode_assignments=[PincodeEntry(pincode=p) for p in pincodes],
    )


class TestHierarchyRules:

    async def test_division_needs_zonal_parent(self, session, network):
        service = WarehouseService(session)

        with pytest.raises(ValidationError):
            await service.create_warehouse(_division("DIV-X", None))
        with pytest.raises(ValidationError):
            await service.create_warehouse(_division("DIV-X", network.nationwide.id))
        with pytest.raises(NotFoundError):
            await service.create_warehouse(_division("DIV-X", uuid.uuid4()))

    async def test_only_divisions_take_a_parent(self, session, network):
        with pytest.raises(ValidationError):
            await WarehouseService(session).create_warehouse(WarehouseCreate(
                code="ZONAL-C", name="Zonal C", parent_warehouse_id=network.zonal_a.id,
            ))

    async def test_codes_are_unique(self, session, network):
        with pytest.raises(ValidationError):
            await WarehouseService(session).create_warehouse(WarehouseCreate(code="ZONAL-A", name="Again"))

    async def test_zonal_created_with_zone_mappings(self, session, network):
        service = WarehouseService(session)
        warehouse = await service.create_warehouse(WarehouseCreate(
            code="ZONAL-N",
            name="Zonal North",
            zones=[ZoneAssignment(zone_id=network.north.id, priority=5)],
        ))

        candidates = await service.serviceability.find_candidate_warehouses("110001")
        assert [c["warehouse_id"] for c in candidates] == [str(warehouse.id)]

    async def test_only_zonal_warehouses_map_zones(self, session, network):
        with pytest.raises(ValidationError):
            await WarehouseService(session).set_warehouse_zones(
                network.nationwide.id, [ZoneAssignment(zone_id=network.west.id)]
            )

    async def test_hierarchy_groups_divisions_under_parents(self, session, network):
        hierarchy = await WarehouseService(session).get_hierarchy()

        assert [wh.code for wh in hierarchy["nationwide"]] == ["NATION-1"]
        zonal = {wh.code: [d.code for d in divisions] for wh, divisions in hierarchy["zonal"]}
        assert zonal == {"ZONAL-A": ["DIV-A1"], "ZONAL-B": []}


class TestPincodeCoverage:

    async def test_division_created_with_pincodes(self, session, network):
        service = WarehouseService(session)
        division = await service.create_warehouse(_division("DIV-A2", network.zonal_a.id, "400002"))

        rows = await service.list_warehouse_pincodes(division.id)
        assert [(r.pincode, r.city) for r in rows] == [("400002", "City")]

    async def test_pincodes_outside_parent_coverage_are_rejected(self, session, network):
        service = WarehouseService(session)

        with pytest.raises(ValidationError) as exc:
            await service.assign_pincodes(network.division.id, [PincodeEntry(pincode="110001")])
        assert exc.value.details["invalid_pincodes"] == ["110001"]

    async def test_pincode_belongs_to_one_division(self, session, network):
        service = WarehouseService(session)
        other = await service.create_warehouse(_division("DIV-A2", network.zonal_a.id))

        with pytest.raises(ValidationError) as exc:
            await service.assign_pincodes(other.id, [PincodeEntry(pincode="400001")])
        assert exc.value.details["conflicting_pincodes"] == ["400001"]

        await service.remove_pincode(network.division.id, "400001")
        saved = await service.assign_pincodes(other.id, [PincodeEntry(pincode="400001")])
        assert [r.pincode for r in saved] == ["400001"]

    async def test_reassigning_own_pincode_is_a_no_op(self, session, network):
        service = WarehouseService(session)

        await service.assign_pincodes(network.division.id, [PincodeEntry(pincode="400001")])

        rows = await service.list_warehouse_pincodes(network.division.id, include_inactive=True)
        assert len(rows) == 1

    async def test_removed_pincode_is_soft_deleted(self, session, network):
        service = WarehouseService(session)

        await service.remove_pincode(network.division.id, "400001")

        assert await service.list_warehouse_pincodes(network.division.id) == []
        rows = await service.list_warehouse_pincodes(network.division.id, include_inactive=True)
        assert [r.is_active for r in rows] == [False]
        with pytest.raises(NotFoundError):
            await service.remove_pincode(network.division.id, "400001")

    async def test_available_pincodes(self, session, network):
        service = WarehouseService(session)

        pincodes = await service.get_available_pincodes(network.zonal_a.id)

        assert [(p["pincode"], p["is_available"]) for p in pincodes] == [("400001", False), ("400002", True)]
        assert pincodes[0]["assigned_to_division"] == network.division.id
        assert await service.get_available_pincodes(network.division.id) == pincodes

        with pytest.raises(ValidationError):
            await service.get_available_pincodes(network.nationwide.id)


class TestDeactivation:

    async def test_zonal_with_active_division_stays_active(self, session, network):
        service = WarehouseService(session)

        with pytest.raises(ValidationError):
            await service.deactivate_warehouse(network.zonal_a.id)

        await service.deactivate_warehouse(network.division.id)
        zonal = await service.deactivate_warehouse(network.zonal_a.id)
        assert zonal.is_active is False

    async def test_reserved_stock_blocks_deactivation(self, session, seed, network):
        await seed.stock(network.product, network.zonal_b, 5, reserved=1)
        service = WarehouseService(session)

        with pytest.raises(ValidationError):
            await service.update_warehouse(network.zonal_b.id, WarehouseUpdate(is_active=False))

    async def test_update_keeps_unset_fields(self, session, network):
        warehouse = await WarehouseService(session).update_warehouse(
            network.zonal_b.id, WarehouseUpdate(city="Pune")
        )

        assert warehouse.city == "Pune"
        assert warehouse.name == "Warehouse ZONAL-B"


class TestZones:

    async def test_create_zone_with_pincodes(self, session, network):
        service = WarehouseService(session)

        zone = await service.create_zone(ZoneCreate(
            code="SOUTH",
            name="South",
            pincodes=[PincodeEntry(pincode="560001"), PincodeEntry(pincode="560001")],
        ))

        detail = await service.get_zone(zone.id, with_pincodes=True)
        assert [p.pincode for p in detail.pincodes] == ["560001"]

        with pytest.raises(ValidationError):
            await service.create_zone(ZoneCreate(code="SOUTH", name="South again"))

    async def test_adding_pincodes_skips_existing(self, session, network):
        result = await WarehouseService(session).add_zone_pincodes(
            network.west.id, [PincodeEntry(pincode="400001"), PincodeEntry(pincode="400003")]
        )

        assert result == {"added": 1, "skipped": 1, "pincodes": ["400003"]}

    async def test_membership_changes_invalidate_cached_lookups(self, session, network):
        service = WarehouseService(session)
        assert await service.get_zone_ids_for_pincode("400003") == []

        await service.add_zone_pincodes(network.west.id, [PincodeEntry(pincode="400003")])
        assert await service.get_zone_ids_for_pincode("400003") == [network.west.id]

        await service.remove_zone_pincode(network.west.id, "400003")
        assert await service.get_zone_ids_for_pincode("400003") == []

        with pytest.raises(NotFoundError):
            await service.remove_zone_pincode(network.west.id, "400003")

    async def test_deactivating_zone_clears_cache(self, session, network):
        service = WarehouseService(session)
        assert await service.get_zone_ids_for_pincode("400002") == [network.west.id]

        await service.update_zone(network.west.id, ZoneUpdate(is_active=False))

        assert await service.get_zone_ids_for_pincode("400002") == []

    async def test_delete_zone_removes_mappings(self, session, network):
        service = WarehouseService(session)

        await service.delete_zone(network.west.id)

        assert await service.get_zone_ids_for_pincode("400002") == []
        assert await service.serviceability.find_candidate_warehouses("400002") == []
        with pytest.raises(NotFoundError):
            await service.get_zone(network.west.id)

    async def test_validate_pincode(self, session, seed, network):
        await seed.stock(network.product, network.division, 3)

        result = await WarehouseService(session).validate_pincode("400001", product_id=network.product.id)

        assert result["serviceable"] is True
        assert [z["code"] for z in result["zones"]] == ["WEST"]
        assert result["division_warehouse_id"] == str(network.division.id)
        assert result["resolution"]["tier"] == "division"

    async def test_statistics(self, session, network):
        stats = await WarehouseService(session).get_zone_statistics()

        assert stats == {
            "total_zones": 2,
            "active_zones": 2,
            "total_pincodes": 3,
            "mapped_zones": 1,
            "unmapped_zones": 1,
            "zonal_warehouses": 2,
            "division_pincodes": 1,
        }


class TestProductStockRows:

    async def test_map_product_sets_initial_level(self, session, seed, network):
        service = WarehouseService(session)

        row = await service.map_product(
            network.zonal_b.id,
            ProductStockCreate(product_id=network.product.id, stock_quantity=12, minimum_threshold=4),
        )

        assert (row.stock_quantity, row.minimum_threshold) == (12, 4)
        with pytest.raises(ValidationError):
            await service.map_product(network.zonal_b.id, ProductStockCreate(product_id=network.product.id))

    async def test_remove_product_with_reservations_is_refused(self, session, seed, network):
        await seed.stock(network.product, network.zonal_a, 10)
        await StockLedgerService(session).reserve(network.product.id, network.zonal_a.id, 2, "order", "ORD-1")
        service = WarehouseService(session)

        with pytest.raises(ValidationError) as exc:
            await service.remove_product(network.zonal_a.id, network.product.id)
        assert exc.value.details["reserved_quantity"] == 2

    async def test_removed_product_can_be_mapped_again(self, session, seed, network):
        await seed.stock(network.product, network.zonal_a, 10)
        service = WarehouseService(session)

        await service.remove_product(network.zonal_a.id, network.product.id)
        assert await service.list_warehouse_products(network.zonal_a.id) == []
        with pytest.raises(NotFoundError):
            await service.remove_product(network.zonal_a.id, network.product.id)

        row = await service.map_product(
            network.zonal_a.id, ProductStockCreate(product_id=network.product.id, stock_quantity=3)
        )
        assert row.is_active is True
        assert row.stock_quantity == 3

    async def test_stock_summary_totals(self, session, seed, network):
        await seed.stock(network.product, network.zonal_a, 10, reserved=4)
        await seed.stock(network.product, network.division, 2)

        summary = await WarehouseService(session).get_product_stock_summary(network.product.id)

        assert summary["totals"] == {"stock_quantity": 12, "reserved_quantity": 4, "available_quantity": 8}
        assert {w["warehouse_code"] for w in summary["warehouses"]} == {"ZONAL-A", "DIV-A1"}


class TestReplenishment:

    async def test_transfer_to_division_defaults_to_threshold(self, session, seed, network):
        await seed.stock(network.product, network.zonal_a, 20)
        await seed.stock(network.product, network.division, 0, minimum_threshold=6)

        result = await ReplenishmentService(session).transfer_to_division(network.product.id, network.division.id)

        assert result["quantity"] == 6
        assert await seed.levels(network.product.id, network.division.id) == (6, 0)
        assert await seed.levels(network.product.id, network.zonal_a.id) == (14, 0)

    async def test_transfer_needs_a_division(self, session, seed, network):
        await seed.stock(network.product, network.zonal_a, 20)

        with pytest.raises(NotFoundError):
            await ReplenishmentService(session).transfer_to_division(network.product.id, network.zonal_a.id)

    async def test_transfer_limited_by_parent_stock(self, session, seed, network):
        await seed.stock(network.product, network.zonal_a, 3, reserved=2)
        await seed.stock(network.product, network.division, 0)

        with pytest.raises(InsufficientStock):
            await ReplenishmentService(session).transfer_to_division(
                network.product.id, network.division.id, quantity=2
            )

    async def test_monitor_skips_rows_the_parent_cannot_cover(self, session, seed, network):
        await seed.stock(network.product, network.zonal_a, 50)
        await seed.stock(network.product, network.division, 2, minimum_threshold=5)
        await seed.stock(network.national_product, network.zonal_a, 1)
        await seed.stock(network.national_product, network.division, 0)
        await seed.stock(network.national_product, network.zonal_b, 0)

        result = await ReplenishmentService(session).monitor_and_transfer()

        assert [t["product_id"] for t in result["transfers"]] == [str(network.product.id)]
        assert [s["product_id"] for s in result["skipped"]] == [str(network.national_product.id)]
        assert await seed.levels(network.product.id, network.division.id) == (7, 0)
        assert await seed.levels(network.national_product.id, network.division.id) == (0, 0)
