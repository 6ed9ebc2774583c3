from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import ADDRESS
from common.exceptions import InvalidStateError
from common.helpers import now_utc
from modules.cart.models import Cart
from modules.catalog.models import Product
from modules.order.models import Order
from modules.order.service import order_service


def set_status(client, admin_headers, order_id, status, note=None):
    return client.put("/admin/orders/status", json={"orderId": order_id, "status": status, "note": note},
                      headers=admin_headers)


# ==========================================
# Creation
# ==========================================

def test_create_order_snapshots_cart(client, user_headers, place_order):
    order = place_order()
    assert order["status"] == "pending"
    assert order["paymentStatus"] == "pending"
    assert order["orderNumber"] is None
    assert order["total"] == "32.50"
    assert [(it["productName"], it["quantity"], it["price"]) for it in order["items"]] == [
        ("Jollof Rice", 2, "12.50"), ("Suya Skewers", 1, "7.50"),
    ]
    assert order["deliveryAddress"] == "12 Brixton Road, London, Greater London, SW9 6BU"
    assert order["estimatedDeliveryAt"] is not None

    history = order["statusHistory"]
    assert len(history) == 1
    assert history[0]["status"] == "pending"
    assert history[0]["actor"].startswith("user:")

    cart = client.get("/cart", headers=user_headers).json()
    assert cart["items"] == []
    assert cart["total"] == "0.00"


def test_create_order_with_empty_cart(client, user_headers, address):
    resp = client.post("/orders/create", headers=user_headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Cart is empty"


def test_empty_cart_is_reported_before_address_problems(client, user_headers, other_headers):
    resp = client.post("/orders/create", json={}, headers=user_headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Cart is empty"

    foreign = client.post("/addresses", json=ADDRESS, headers=other_headers).json()
    for address_id in (foreign["id"], 999):
        resp = client.post("/orders/create", json={"addressId": address_id}, headers=user_headers)
        assert resp.status_code == 400
        assert resp.json()["message"] == "Cart is empty"


def test_create_order_requires_address(client, user_headers, products):
    client.post("/cart/add", json={"productId": products["jollof"]}, headers=user_headers)
    resp = client.post("/orders/create", json={}, headers=user_headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Delivery address is required"
    # Cart untouched
    assert len(client.get("/cart", headers=user_headers).json()["items"]) == 1


def test_foreign_address_keeps_cart(client, user_headers, other_headers, address, products):
    client.post("/cart/add", json={"productId": products["jollof"]}, headers=user_headers)
    foreign = client.post("/addresses", json=ADDRESS, headers=other_headers).json()

    resp = client.post("/orders/create", json={"addressId": foreign["id"]}, headers=user_headers)
    assert resp.status_code == 404
    assert resp.json()["message"] == "Address not found"
    cart = client.get("/cart", headers=user_headers).json()
    assert len(cart["items"]) == 1
    assert cart["total"] == "12.50"


def test_create_order_with_explicit_address(client, user_headers, address, products):
    work = client.post("/addresses", json=dict(ADDRESS, label="Work", street="1 Office Park"),
                       headers=user_headers).json()
    client.post("/cart/add", json={"productId": products["suya"]}, headers=user_headers)
    resp = client.post("/orders/create", json={"addressId": work["id"]}, headers=user_headers)
    assert resp.status_code == 201
    assert resp.json()["addressId"] == work["id"]
    assert resp.json()["deliveryAddress"].startswith("1 Office Park")


def test_unavailable_product_blocks_order_and_keeps_cart(client, user_headers, address, products, session):
    client.post("/cart/add", json={"productId": products["jollof"]}, headers=user_headers)
    product = session.get(Product, products["jollof"])
    product.is_available = False
    session.commit()

    resp = client.post("/orders/create", json={}, headers=user_headers)
    assert resp.status_code == 400
    assert "no longer available" in resp.json()["message"]
    assert len(client.get("/cart", headers=user_headers).json()["items"]) == 1
    assert session.query(Order).count() == 0


def test_second_checkout_of_same_cart_fails(client, user_headers, address, products, database):
    client.post("/cart/add", json={"productId": products["jollof"], "quantity": 2}, headers=user_headers)
    user_id = client.get("/auth/me", headers=user_headers).json()["id"]

    first, second = database.session(), database.session()
    try:
        # Both requests have already seen the full cart
        assert len(first.query(Cart).filter(Cart.user_id == user_id).one().items) == 1
        assert len(second.query(Cart).filter(Cart.user_id == user_id).one().items) == 1

        order_service.create_order(second, user_id)
        second.commit()

        with pytest.raises(InvalidStateError, match="Cart is empty"):
            order_service.create_order(first, user_id)
        first.rollback()
    finally:
        first.close()
        second.close()

    orders = client.get("/orders", headers=user_headers).json()
    assert len(orders) == 1
    assert orders[0]["total"] == "25.00"


# ==========================================
# Reads
# ==========================================

def test_orders_are_private(client, user_headers, other_headers, place_order):
    order = place_order()
    assert client.get(f"/orders/{order['id']}", headers=other_headers).status_code == 404
    assert client.get("/orders/list", headers=other_headers).json() == []
    assert client.get(f"/orders/{order['id']}", headers=user_headers).status_code == 200


def test_list_filters(client, user_headers, admin_headers, place_order):
    first = place_order()
    second = place_order([("suya", 1)])
    set_status(client, admin_headers, second["id"], "confirmed")

    ids = [o["id"] for o in client.get("/orders", headers=user_headers).json()]
    assert ids == [second["id"], first["id"]]

    pending = client.get("/orders?status=pending", headers=user_headers).json()
    assert [o["id"] for o in pending] == [first["id"]]

    ongoing = client.get("/orders/ongoing", headers=user_headers).json()
    assert [o["id"] for o in ongoing] == [second["id"]]

    assert client.get("/orders/paid", headers=user_headers).json() == []
    assert client.get("/orders?status=bogus", headers=user_headers).status_code == 400


# ==========================================
# Status transitions
# ==========================================

def test_full_fulfilment_path(client, admin_headers, place_order):
    order = place_order()
    for status in ("confirmed", "preparing", "ready", "delivered"):
        resp = set_status(client, admin_headers, order["id"], status)
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == status

    history = client.get(f"/admin/orders/{order['id']}/history", headers=admin_headers).json()
    assert [h["status"] for h in history] == ["pending", "confirmed", "preparing", "ready", "delivered"]
    assert history[-1]["actor"].startswith("admin:")

    resp = set_status(client, admin_headers, order["id"], "cancelled")
    assert resp.status_code == 400


def test_illegal_transitions(client, admin_headers, place_order):
    order = place_order()
    assert set_status(client, admin_headers, order["id"], "delivered").status_code == 400
    assert set_status(client, admin_headers, order["id"], "pending").status_code == 400
    resp = set_status(client, admin_headers, order["id"], "teleported")
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid status: teleported"
    assert set_status(client, admin_headers, 9999, "confirmed").status_code == 404


def test_customer_cancel(client, user_headers, admin_headers, place_order):
    order = place_order()
    resp = client.post(f"/orders/{order['id']}/cancel", headers=user_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert resp.json()["statusHistory"][-1]["note"] == "Cancelled by customer"

    resp = client.post(f"/orders/{order['id']}/cancel", headers=user_headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Only pending orders can be cancelled"

    confirmed = place_order([("suya", 1)])
    set_status(client, admin_headers, confirmed["id"], "confirmed")
    assert client.post(f"/orders/{confirmed['id']}/cancel", headers=user_headers).status_code == 400


# ==========================================
# Admin
# ==========================================

def test_admin_delete_only_pending(client, admin_headers, place_order):
    pending = place_order()
    confirmed = place_order([("suya", 1)])
    set_status(client, admin_headers, confirmed["id"], "confirmed")

    resp = client.delete(f"/admin/orders/{pending['id']}", headers=admin_headers)
    assert resp.json() == {"message": "Order deleted successfully"}
    assert client.get(f"/admin/orders/{pending['id']}", headers=admin_headers).status_code == 404

    resp = client.delete(f"/admin/orders/{confirmed['id']}", headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Can only delete pending orders"


def test_admin_edit(client, user_headers, other_headers, admin_headers, place_order, products):
    order = place_order()

    resp = client.put(f"/admin/orders/{order['id']}", json={"total": "1.00"}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid fields: total"

    resp = client.put(f"/admin/orders/{order['id']}", json={
        "items": [{"productId": products["suya"], "quantity": 3}],
        "status": "confirmed",
    }, headers=admin_headers)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["total"] == "22.50"
    assert [(it["productId"], it["quantity"]) for it in body["items"]] == [(products["suya"], 3)]
    assert body["status"] == "confirmed"
    assert body["customer"]["fullName"] == "Ada Obi"

    work = client.post("/addresses", json=dict(ADDRESS, label="Work", street="1 Office Park"),
                       headers=user_headers).json()
    resp = client.put(f"/admin/orders/{order['id']}", json={"deliveryAddress": work["id"]}, headers=admin_headers)
    assert resp.json()["deliveryAddress"].startswith("1 Office Park")

    foreign = client.post("/addresses", json=ADDRESS, headers=other_headers).json()
    resp = client.put(f"/admin/orders/{order['id']}", json={"deliveryAddress": foreign["id"]},
                      headers=admin_headers)
    assert resp.status_code == 404


def test_price_change_keeps_order_snapshot_until_admin_edit(client, user_headers, admin_headers, place_order,
                                                            products, session):
    order = place_order([("jollof", 2)])
    assert order["total"] == "25.00"

    product = session.get(Product, products["jollof"])
    product.price = Decimal("15.00")
    session.commit()

    stored = client.get(f"/orders/{order['id']}", headers=user_headers).json()
    assert [(it["productId"], it["price"]) for it in stored["items"]] == [(products["jollof"], "12.50")]
    assert stored["total"] == "25.00"

    resp = client.put(f"/admin/orders/{order['id']}", json={
        "items": [{"productId": products["jollof"], "quantity": 3}],
    }, headers=admin_headers)
    assert resp.status_code == 200, resp.text
    assert [(it["quantity"], it["price"]) for it in resp.json()["items"]] == [(3, "15.00")]
    assert resp.json()["total"] == "45.00"


def test_admin_list_search_and_pagination(client, admin_headers, other_headers, place_order, products):
    for _ in range(3):
        place_order([("suya", 1)])
    client.post("/addresses", json=dict(ADDRESS, isDefault=True), headers=other_headers)
    place_order([("jollof", 1)], headers=other_headers)

    resp = client.get("/admin/orders?limit=2&page=1", headers=admin_headers).json()
    assert resp["pagination"] == {"total": 4, "page": 1, "pages": 2, "hasMore": True}
    assert len(resp["items"]) == 2

    resp = client.get("/admin/orders?search=bola", headers=admin_headers).json()
    assert resp["pagination"]["total"] == 1
    assert resp["items"][0]["customer"]["email"] == "bola@example.com"

    resp = client.get("/admin/orders?sort=total", headers=admin_headers).json()
    assert [o["total"] for o in resp["items"]] == ["7.50", "7.50", "7.50", "12.50"]

    assert client.get("/admin/orders?sort=password", headers=admin_headers).status_code == 400


def test_admin_stats(client, admin_headers, place_order):
    place_order()
    cancelled = place_order([("suya", 1)])
    set_status(client, admin_headers, cancelled["id"], "cancelled")

    stats = client.get("/admin/orders/stats", headers=admin_headers).json()
    assert stats["byStatus"]["pending"] == 1
    assert stats["byStatus"]["cancelled"] == 1
    assert stats["byPaymentStatus"]["pending"] == 2
    assert len(stats["daily"]) == 7
    assert stats["daily"][-1]["orders"] == 2
    assert stats["daily"][-1]["revenue"] == "0.00"


# ==========================================
# Stale order cleanup
# ==========================================

def test_cancel_stale_orders(client, user_headers, place_order, session):
    stale = place_order()
    fresh = place_order([("suya", 1)])

    order = session.get(Order, stale["id"])
    order.created_at = now_utc() - timedelta(hours=3)
    session.commit()

    assert order_service.cancel_stale_orders(session, 60) == 1
    session.commit()
    assert order_service.cancel_stale_orders(session, 0) == 0

    stale_now = client.get(f"/orders/{stale['id']}", headers=user_headers).json()
    assert stale_now["status"] == "cancelled"
    assert stale_now["statusHistory"][-1]["actor"] == "system"
    assert client.get(f"/orders/{fresh['id']}", headers=user_headers).json()["status"] == "pending"
