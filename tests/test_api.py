"""HTTP surface: envelopes, status codes and the bid flow end to end."""
import uuid
from decimal import Decimal

from fulfillment.models.warehouse import WarehouseType
from fulfillment.services.bid_service import BidService
from fulfillment.services.warehouse_service import WarehouseService


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"] == "connected"


async def test_malformed_pincode_is_a_validation_error(client):
    response = await client.post("/api/zones/validate-pincode", json={"pincode": "12AB"})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "VALIDATION_ERROR"
    assert "pincode" in body["error"]


async def test_unknown_warehouse_is_not_found(client):
    response = await client.get(f"/api/warehouse/{uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Warehouse not found", "code": "NOT_FOUND"}


async def test_create_division_over_http(client, network):
    response = await client.post("/api/warehouse", json={
        "code": "DIV-A2",
        "name": "Division A2",
        "warehouse_type": "division",
        "parent_warehouse_id": str(network.zonal_a.id),
        "pincode_assignments": [{"pincode": "400002"}],
    })
    assert response.status_code == 201
    division_id = response.json()["data"]["id"]

    conflict = await client.post(f"/api/warehouse/{division_id}/pincodes", json={"pincodes": [{"pincode": "400001"}]})
    assert conflict.status_code == 400
    assert conflict.json()["details"]["conflicting_pincodes"] == ["400001"]

    listed = await client.get("/api/warehouse", params={"warehouse_type": WarehouseType.DIVISION.value})
    assert [w["code"] for w in listed.json()["data"]] == ["DIV-A1", "DIV-A2"]

    hierarchy = (await client.get("/api/warehouse/hierarchy")).json()["data"]
    zonal_a = next(node for node in hierarchy["zonal"] if node["code"] == "ZONAL-A")
    assert sorted(d["code"] for d in zonal_a["divisions"]) == ["DIV-A1", "DIV-A2"]


async def test_availability_lookup(client, seed, session, network):
    await seed.stock(network.product, network.division, 5)
    await session.commit()

    response = await client.get(
        f"/api/product-availability/400001/{network.product.id}", params={"quantity": 2}
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["deliverable"] is True
    assert data["tier"] == "division"
    assert data["warehouse_id"] == str(network.division.id)

    missing = await client.get(f"/api/product-availability/400001/{uuid.uuid4()}")
    assert missing.status_code == 404


async def test_find_for_order_lists_candidates(client, network):
    response = await client.get("/api/warehouse/find-for-order", params={"pincode": "400002"})

    body = response.json()
    assert body["deliverable"] is True
    assert [c["code"] for c in body["data"]] == ["ZONAL-A", "ZONAL-B"]


async def test_cart_add_without_stock(client, network):
    response = await client.post("/api/cart/add", json={
        "user_id": str(uuid.uuid4()),
        "product_id": str(network.product.id),
        "quantity": 1,
        "pincode": "400001",
    })

    assert response.status_code == 400
    assert response.json()["code"] == "INSUFFICIENT_STOCK"


async def test_checkout_over_http(client, seed, session, network):
    await seed.stock(network.product, network.zonal_a, 10)
    await session.commit()
    user_id = str(uuid.uuid4())

    added = await client.post("/api/cart/add", json={
        "user_id": user_id, "product_id": str(network.product.id), "quantity": 3,
    })
    assert added.status_code == 201

    undeliverable = await client.post("/api/cart/reserve-stock", json={
        "user_id": user_id, "pincode": "110001", "order_id": "ORD-X",
    })
    assert undeliverable.json()["success"] is True
    assert undeliverable.json()["all_reserved"] is False

    reserved = await client.post("/api/cart/reserve-stock", json={
        "user_id": user_id, "pincode": "400002", "order_id": "ORD-1",
    })
    assert reserved.json()["all_reserved"] is True

    confirmed = await client.post("/api/cart/confirm-stock-deduction", json={"order_id": "ORD-1"})
    assert confirmed.status_code == 200
    assert confirmed.json()["removed_cart_items"] == 1

    cart = (await client.get(f"/api/cart/{user_id}")).json()
    assert cart["count"] == 0
    assert await seed.levels(network.product.id, network.zonal_a.id) == (7, 0)


async def test_bid_flow_over_http(client, seed, session, network):
    await seed.stock(network.product, network.division, 10)
    await session.commit()
    user_id = str(uuid.uuid4())

    enquiry = await client.post("/api/enquiries", json={"user_id": user_id, "delivery_pincode": "400001"})
    assert enquiry.status_code == 201
    enquiry_id = enquiry.json()["data"]["id"]

    bid = await client.post("/api/bids", json={
        "enquiry_id": enquiry_id,
        "products": [{"product_id": str(network.product.id), "quantity": 2, "unit_price": "100.00"}],
    })
    assert bid.status_code == 201
    bid_id = bid.json()["data"]["id"]

    accepted = await client.post(f"/api/enquiries/{enquiry_id}/accept-bid", json={
        "bid_id": bid_id, "user_id": user_id,
    })
    assert accepted.json()["data"]["status"] == "ACCEPTED"

    locked = await client.post(f"/api/bids/{bid_id}/lock")
    assert locked.status_code == 201
    lock = locked.json()["data"]
    assert Decimal(str(lock["final_amount"])) == Decimal("236.00")

    has_bid = (await client.get(f"/api/cart/{user_id}/has-bid-products")).json()
    assert has_bid["has_bid_products"] is True
    assert has_bid["locked_bid_ids"] == [lock["id"]]

    again = await client.post(f"/api/bids/{bid_id}/lock")
    assert again.status_code == 400
    assert again.json()["code"] == "INVALID_STATE_TRANSITION"

    validation = await client.get(f"/api/bids/{lock['id']}/validate", params={"user_id": user_id})
    assert validation.json()["valid"] is True

    stranger = await client.post(f"/api/bids/{lock['id']}/pay", json={
        "user_id": str(uuid.uuid4()), "payment_reference": "PAY-1",
    })
    assert stranger.status_code == 403
    assert stranger.json()["code"] == "FORBIDDEN"

    paid = await client.post(f"/api/bids/{lock['id']}/pay", json={"user_id": user_id, "payment_reference": "PAY-1"})
    assert paid.status_code == 200
    assert paid.json()["data"]["status"] == "PAID"
    assert paid.json()["confirmed"][0]["quantity"] == 2

    locks = (await client.get("/api/bids/locked", params={"user_id": user_id})).json()["data"]
    assert [lk["status"] for lk in locks] == ["PAID"]
    assert await seed.levels(network.product.id, network.division.id) == (8, 0)


async def test_cancel_over_http_releases_stock(client, seed, session, network):
    await seed.stock(network.product, network.zonal_a, 10)
    user_id = uuid.uuid4()
    bid = await seed.accepted_bid(user_id, [(network.product, 4, Decimal("10"))])
    await session.commit()

    lock = (await client.post(f"/api/bids/{bid.id}/lock", json={})).json()["data"]
    assert await seed.levels(network.product.id, network.zonal_a.id) == (10, 4)

    cancelled = await client.post(f"/api/bids/{lock['id']}/cancel", json={"user_id": str(user_id)})

    assert cancelled.json()["data"]["status"] == "CANCELLED"
    assert await seed.levels(network.product.id, network.zonal_a.id) == (10, 0)


async def test_job_endpoints(client, network):
    status = (await client.get("/api/jobs/status")).json()
    assert status["success"] is True
    assert status["running"] is False

    expired = (await client.post("/api/jobs/run-expiry")).json()
    assert expired["expired"] == {"locked_bids": 0, "bids": 0, "enquiries": 0}


async def test_racing_lock_hits_the_pending_lock_constraint(client, seed, session, network, monkeypatch):
    await seed.stock(network.product, network.zonal_a, 10)
    user_id = uuid.uuid4()
    first = await seed.accepted_bid(user_id, [(network.product, 1, Decimal("10"))])
    second = await seed.accepted_bid(user_id, [(network.product, 2, Decimal("10"))])
    first_id, second_id = first.id, second.id
    product_id, zonal_a_id = network.product.id, network.zonal_a.id
    await session.commit()

    assert (await client.post(f"/api/bids/{first_id}/lock")).status_code == 201

    # A concurrent request passes the pending-lock lookup before the first lock is visible
    async def _no_pending_lock(self, user_id):
        return None

    monkeypatch.setattr(BidService, "_pending_lock_for_user", _no_pending_lock)
    response = await client.post(f"/api/bids/{second_id}/lock")

    assert response.status_code == 400
    assert response.json()["code"] == "DUPLICATE_ACTIVE_LOCK"
    assert await seed.levels(product_id, zonal_a_id) == (10, 1)


async def test_racing_pincode_assignment_hits_the_active_pincode_constraint(client, network, monkeypatch):
    created = await client.post("/api/warehouse", json={
        "code": "DIV-A2",
        "name": "Division A2",
        "warehouse_type": "division",
        "parent_warehouse_id": str(network.zonal_a.id),
    })
    division_id = created.json()["data"]["id"]

    # A concurrent request sees no active owner for the pincode
    async def _no_assignments(self, pincodes):
        return {}

    monkeypatch.setattr(WarehouseService, "_active_assignments", _no_assignments)
    response = await client.post(f"/api/warehouse/{division_id}/pincodes", json={"pincodes": [{"pincode": "400001"}]})

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
    assert response.json()["details"]["conflicting_pincodes"] == ["400001"]

    monkeypatch.undo()
    assigned = (await client.get(f"/api/warehouse/{division_id}/pincodes")).json()["data"]
    assert assigned == []


async def test_available_pincodes_over_http(client, network):
    response = await client.get(f"/api/warehouse/{network.zonal_a.id}/available-pincodes")

    body = response.json()
    assert [(p["pincode"], p["is_available"]) for p in body["data"]] == [("400001", False), ("400002", True)]
    assert body["data"][0]["assigned_to_division"] == str(network.division.id)
    assert (body["total_available"], body["total_assigned"]) == (1, 1)
