def deliver(client, admin_headers, order_id):
    client.put(f"/admin/orders/{order_id}/payment-status", json={"paymentStatus": "completed"}, headers=admin_headers)
    for status in ("preparing", "ready", "delivered"):
        resp = client.put("/admin/orders/status", json={"orderId": order_id, "status": status}, headers=admin_headers)
        assert resp.status_code == 200, resp.text


def submit(client, headers, order_id, *entries):
    return client.post("/reviews", json={"orderId": order_id, "reviews": list(entries)}, headers=headers)


def entry(product_id, rating=5, comment="Lovely", **extra):
    return dict(productId=product_id, rating=rating, comment=comment, **extra)


def product(client, product_id):
    return client.get(f"/products/{product_id}").json()


def test_review_delivered_order(client, user_headers, admin_headers, place_order, products):
    order = place_order()
    deliver(client, admin_headers, order["id"])

    resp = submit(client, user_headers, order["id"],
                  entry(products["jollof"], 5, "Best jollof in London"),
                  entry(products["suya"], 4, "Spicy!", images=["https://img.example/suya.jpg"]))
    assert resp.status_code == 201, resp.text
    reviews = resp.json()
    assert len(reviews) == 2
    assert reviews[0]["isVerifiedPurchase"] is True
    assert reviews[0]["user"]["fullName"] == "Ada Obi"
    assert reviews[1]["images"] == ["https://img.example/suya.jpg"]

    jollof = product(client, products["jollof"])
    assert jollof["ratingAverage"] == "5.00"
    assert jollof["ratingCount"] == 1

    dup = submit(client, user_headers, order["id"], entry(products["jollof"]))
    assert dup.status_code == 409


def test_review_requires_delivered_own_order(client, user_headers, other_headers, admin_headers, place_order, products):
    order = place_order()
    resp = submit(client, user_headers, order["id"], entry(products["jollof"]))
    assert resp.status_code == 404

    deliver(client, admin_headers, order["id"])
    assert submit(client, other_headers, order["id"], entry(products["jollof"])).status_code == 404


def test_review_validation(client, user_headers, admin_headers, place_order, products):
    order = place_order([("jollof", 1)])
    deliver(client, admin_headers, order["id"])
    oid = order["id"]

    resp = submit(client, user_headers, oid, entry(products["suya"]))
    assert resp.json()["message"] == "Product does not belong to this order"
    assert submit(client, user_headers, oid, entry(products["jollof"], rating=6)).status_code == 400
    assert submit(client, user_headers, oid, entry(products["jollof"], rating=0)).status_code == 400
    assert submit(client, user_headers, oid, entry(products["jollof"], comment="   ")).status_code == 400
    assert submit(client, user_headers, oid, entry(products["jollof"], comment="x" * 501)).status_code == 400
    resp = submit(client, user_headers, oid, entry(products["jollof"]), entry(products["jollof"], 3))
    assert resp.json()["message"] == "Duplicate product in review request"
    assert submit(client, user_headers, oid).status_code == 400


def test_batch_is_all_or_nothing(client, user_headers, admin_headers, place_order, products):
    order = place_order()
    deliver(client, admin_headers, order["id"])

    resp = submit(client, user_headers, order["id"],
                  entry(products["jollof"]), entry(products["suya"], rating=9))
    assert resp.status_code == 400
    assert client.get("/reviews/me", headers=user_headers).json() == []
    assert product(client, products["jollof"])["ratingCount"] == 0


def test_average_across_users_and_edits(client, user_headers, other_headers, admin_headers, place_order, products):
    mine = place_order([("jollof", 1)])
    client.post("/addresses", json={
        "street": "3 Peckham High St", "city": "London", "state": "Greater London",
        "zipCode": "SE15 5DT", "isDefault": True,
    }, headers=other_headers)
    theirs = place_order([("jollof", 1)], headers=other_headers)
    deliver(client, admin_headers, mine["id"])
    deliver(client, admin_headers, theirs["id"])

    my_review = submit(client, user_headers, mine["id"], entry(products["jollof"], 5)).json()[0]
    submit(client, other_headers, theirs["id"], entry(products["jollof"], 4, "Nice"))
    assert product(client, products["jollof"])["ratingAverage"] == "4.50"
    assert product(client, products["jollof"])["ratingCount"] == 2

    resp = client.put(f"/reviews/{my_review['id']}", json={"rating": 2, "comment": "Cold on arrival"},
                      headers=user_headers)
    assert resp.status_code == 200
    assert resp.json()["comment"] == "Cold on arrival"
    assert product(client, products["jollof"])["ratingAverage"] == "3.00"

    assert client.put(f"/reviews/{my_review['id']}", json={"rating": 1}, headers=other_headers).status_code == 404
    assert client.put(f"/reviews/{my_review['id']}", json={"rating": 7}, headers=user_headers).status_code == 400
    assert client.delete(f"/reviews/{my_review['id']}", headers=other_headers).status_code == 404

    assert client.delete(f"/reviews/{my_review['id']}", headers=user_headers).status_code == 200
    jollof = product(client, products["jollof"])
    assert jollof["ratingAverage"] == "4.00"
    assert jollof["ratingCount"] == 1


def test_list_product_reviews(client, user_headers, admin_headers, place_order, products):
    order = place_order()
    deliver(client, admin_headers, order["id"])
    submit(client, user_headers, order["id"], entry(products["jollof"]), entry(products["suya"], 3, "Ok"))

    page = client.get(f"/reviews/product/{products['suya']}?limit=1").json()
    assert page["pagination"] == {"total": 1, "page": 1, "pages": 1, "hasMore": False}
    assert page["items"][0]["rating"] == 3
    assert client.get("/reviews/product/9999").status_code == 404

    mine = client.get("/reviews/me", headers=user_headers).json()
    assert {r["productId"] for r in mine} == {products["jollof"], products["suya"]}
