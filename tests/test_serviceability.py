"""Delivery resolution across division, zonal and nationwide tiers."""
import uuid

import pytest
from sqlalchemy import update

from fulfillment.core.exceptions import NotFoundError, ValidationError
from fulfillment.models.serviceability import DeliveryZone
from fulfillment.services.serviceability_service import CartLine, ServiceabilityService


async def test_division_is_preferred(session, seed, network):
    await seed.stock(network.product, network.division, 5)
    await seed.stock(network.product, network.zonal_a, 50)

    resolution = await ServiceabilityService(session).resolve_warehouse(network.product.id, "400001", 2)

    assert resolution.deliverable
    assert resolution.tier == "division"
    assert resolution.warehouse_id == network.division.id
    assert resolution.delivery_days == 1
    assert resolution.available_quantity == 5


async def test_empty_division_falls_back_to_parent_zonal(session, seed, network):
    await seed.stock(network.product, network.division, 0)
    await seed.stock(network.product, network.zonal_a, 5)

    resolution = await ServiceabilityService(session).resolve_warehouse(network.product.id, "400001", 1)

    assert resolution.tier == "zonal"
    assert resolution.warehouse_id == network.zonal_a.id


async def test_falls_back_to_zonal_by_priority(session, seed, network):
    await seed.stock(network.product, network.division, 1)
    await seed.stock(network.product, network.zonal_a, 3)
    await seed.stock(network.product, network.zonal_b, 30)

    service = ServiceabilityService(session)
    first = await service.resolve_warehouse(network.product.id, "400001", 3)
    second = await service.resolve_warehouse(network.product.id, "400001", 4)

    assert (first.tier, first.warehouse_id) == ("zonal", network.zonal_a.id)
    assert (second.tier, second.warehouse_id) == ("zonal", network.zonal_b.id)
    assert second.delivery_label == "3-4 days"


async def test_reserved_units_do_not_count(session, seed, network):
    await seed.stock(network.product, network.zonal_a, 10, reserved=9)

    resolution = await ServiceabilityService(session).resolve_warehouse(network.product.id, "400002", 2)

    assert not resolution.deliverable
    assert resolution.warehouse_id is None


async def test_zonal_product_never_ships_nationwide(session, seed, network):
    await seed.stock(network.product, network.nationwide, 100)

    resolution = await ServiceabilityService(session).resolve_warehouse(network.product.id, "400002", 1)

    assert not resolution.deliverable


async def test_nationwide_product_reaches_any_pincode(session, seed, network):
    await seed.stock(network.national_product, network.nationwide, 100)

    resolution = await ServiceabilityService(session).resolve_warehouse(
        network.national_product.id, "999999", 10
    )

    assert resolution.deliverable
    assert resolution.tier == "nationwide"
    assert resolution.delivery_days == 5
    assert resolution.to_dict()["warehouse_id"] == str(network.nationwide.id)


async def test_nationwide_tier_prefers_most_stock(session, seed, network):
    other = await seed.warehouse("NATION-2", "nationwide")
    await seed.stock(network.national_product, network.nationwide, 5)
    await seed.stock(network.national_product, other, 50)

    resolution = await ServiceabilityService(session).resolve_warehouse(network.national_product.id, "110001", 1)

    assert resolution.warehouse_id == other.id


async def test_unknown_or_inactive_product(session, seed, network):
    inactive = await seed.product("SKU-OFF", is_active=False)
    service = ServiceabilityService(session)

    with pytest.raises(NotFoundError):
        await service.resolve_warehouse(uuid.uuid4(), "400001", 1)
    with pytest.raises(NotFoundError):
        await service.resolve_warehouse(inactive.id, "400001", 1)


async def test_quantity_must_be_positive(session, network):
    with pytest.raises(ValidationError):
        await ServiceabilityService(session).resolve_warehouse(network.product.id, "400001", 0)


async def test_allowed_zones_restrict_zonal_tier(session, seed, network):
    restricted = await seed.product("SKU-NORTH-ONLY", allowed_zone_ids=[str(network.north.id)])
    await seed.stock(restricted, network.zonal_a, 20)

    resolution = await ServiceabilityService(session).resolve_warehouse(restricted.id, "400002", 1)

    assert not resolution.deliverable


async def test_inactive_zone_is_ignored(session, seed, network):
    await seed.stock(network.product, network.zonal_a, 20)
    await session.execute(
        update(DeliveryZone).where(DeliveryZone.id == network.west.id).values(is_active=False)
    )

    resolution = await ServiceabilityService(session).resolve_warehouse(network.product.id, "400002", 1)

    assert not resolution.deliverable


async def test_pincode_zones_are_cached_until_invalidated(session, seed, network):
    service = ServiceabilityService(session)
    assert await service.get_zone_ids_for_pincode("560001") == []

    south = await seed.zone("SOUTH", ["560001"])
    assert await service.get_zone_ids_for_pincode("560001") == []

    await service.invalidate_pincode_cache("560001")
    assert await service.get_zone_ids_for_pincode("560001") == [south.id]


async def test_candidates_are_listed_in_tier_order(session, seed, network):
    await seed.stock(network.national_product, network.zonal_b, 4)

    candidates = await ServiceabilityService(session).find_candidate_warehouses(
        "400001", product_id=network.national_product.id
    )

    assert [c["code"] for c in candidates] == ["DIV-A1", "ZONAL-A", "ZONAL-B", "NATION-1"]
    assert [c["available_quantity"] for c in candidates] == [0, 0, 4, 0]
    assert candidates[0]["delivery_days"] == 1


async def test_candidates_without_product(session, network):
    candidates = await ServiceabilityService(session).find_candidate_warehouses("400002")

    assert [c["tier"] for c in candidates] == ["zonal", "zonal"]
    assert all(c["available_quantity"] is None for c in candidates)


async def test_max_available_warehouse(session, seed, network):
    await seed.stock(network.product, network.zonal_a, 4)
    await seed.stock(network.product, network.zonal_b, 9, reserved=2)
    service = ServiceabilityService(session)

    warehouse, available = await service.find_max_available_warehouse(network.product.id, 3)
    assert warehouse.id == network.zonal_b.id
    assert available == 7

    assert await service.find_max_available_warehouse(network.product.id, 8) is None


async def test_cart_availability_reports_each_line(session, seed, network):
    await seed.stock(network.product, network.division, 5)
    service = ServiceabilityService(session)

    result = await service.check_cart_availability(
        [
            CartLine(product_id=network.product.id, quantity=2),
            CartLine(product_id=network.product.id, quantity=6),
            CartLine(product_id=uuid.uuid4(), quantity=1),
        ],
        "400001",
    )

    assert result["all_deliverable"] is False
    assert [item["deliverable"] for item in result["items"]] == [True, False, False]
    assert result["items"][0]["tier"] == "division"
    assert "not found" in result["items"][2]["message"]
