from decimal import Decimal

from modules.catalog.models import Product


def add(client, headers, product_id, quantity=1):
    return client.post("/cart/add", json={"productId": product_id, "quantity": quantity}, headers=headers)


def test_empty_cart_is_created_on_first_view(client, user_headers):
    resp = client.get("/cart", headers=user_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["items"] == []
    assert body["total"] == "0.00"
    assert body["itemCount"] == 0


def test_add_items_and_total(client, user_headers, products):
    add(client, user_headers, products["jollof"], 2)
    resp = add(client, user_headers, products["suya"])
    body = resp.json()
    assert resp.status_code == 200
    assert [it["productName"] for it in body["items"]] == ["Jollof Rice", "Suya Skewers"]
    assert body["items"][0]["lineTotal"] == "25.00"
    assert body["total"] == "32.50"
    assert body["itemCount"] == 3


def test_adding_same_product_increments_and_refreshes_price(client, user_headers, products, session):
    add(client, user_headers, products["jollof"], 1)

    product = session.get(Product, products["jollof"])
    product.price = Decimal("13.00")
    session.commit()

    body = add(client, user_headers, products["jollof"], 2).json()
    assert len(body["items"]) == 1
    assert body["items"][0]["quantity"] == 3
    assert body["items"][0]["price"] == "13.00"
    assert body["total"] == "39.00"


def test_add_rejects_bad_quantity_and_products(client, user_headers, products):
    assert add(client, user_headers, products["jollof"], 0).status_code == 400
    assert add(client, user_headers, 9999).status_code == 404
    resp = add(client, user_headers, products["zobo"])
    assert resp.status_code == 400
    assert resp.json()["message"] == "Product is not available"


def test_update_quantity(client, user_headers, products):
    add(client, user_headers, products["jollof"], 1)
    resp = client.put("/cart/update", json={"productId": products["jollof"], "quantity": 4}, headers=user_headers)
    assert resp.json()["total"] == "50.00"


def test_update_to_zero_removes_line(client, user_headers, products):
    add(client, user_headers, products["jollof"], 1)
    add(client, user_headers, products["suya"], 1)
    resp = client.put("/cart/update", json={"productId": products["jollof"], "quantity": 0}, headers=user_headers)
    body = resp.json()
    assert [it["productId"] for it in body["items"]] == [products["suya"]]
    assert body["total"] == "7.50"


def test_update_missing_line(client, user_headers, products):
    add(client, user_headers, products["jollof"], 1)
    resp = client.put("/cart/update", json={"productId": products["suya"], "quantity": 2}, headers=user_headers)
    assert resp.status_code == 404
    assert resp.json()["message"] == "Item not found in cart"

    # Dropping an absent line is a no-op
    resp = client.put("/cart/update", json={"productId": products["suya"], "quantity": 0}, headers=user_headers)
    assert resp.status_code == 200


def test_update_without_cart(client, user_headers, products):
    resp = client.put("/cart/update", json={"productId": products["suya"], "quantity": 2}, headers=user_headers)
    assert resp.status_code == 404
    assert resp.json()["message"] == "Cart not found"


def test_remove_is_idempotent(client, user_headers, products):
    add(client, user_headers, products["jollof"], 2)
    first = client.delete(f"/cart/remove/{products['jollof']}", headers=user_headers)
    second = client.delete(f"/cart/remove/{products['jollof']}", headers=user_headers)
    assert first.status_code == second.status_code == 200
    assert second.json()["items"] == []
    assert second.json()["total"] == "0.00"


def test_carts_are_per_user(client, user_headers, other_headers, products):
    add(client, user_headers, products["jollof"], 2)
    assert client.get("/cart", headers=other_headers).json()["items"] == []
