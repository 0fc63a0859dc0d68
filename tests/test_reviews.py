import pytest

from database import create_document, oid


@pytest.fixture
def delivered_order(db, customer, make_product):
    user, _ = customer
    product_id = make_product(name="Blender")
    order_id = create_document(db, "order", {
        "user_id": str(user["_id"]),
        "items": [{"product_id": product_id, "name": "Blender", "price": 50, "quantity": 1}],
        "status": "delivered",
        "total": 50,
        "payments": [],
        "paid_amount": 0,
        "payment_status": "pending",
    })
    return order_id, product_id


def review_payload(order_id, product_id, rating=4):
    return {"order_id": order_id, "product_id": product_id, "rating": rating, "title": "Nice", "comment": "Works"}


def test_review_starts_pending_and_verified(client, customer_headers, delivered_order):
    order_id, product_id = delivered_order
    res = client.post("/api/reviews", json=review_payload(order_id, product_id), headers=customer_headers)
    assert res.status_code == 201
    review = res.json()["review"]
    assert review["status"] == "pending"
    assert review["verified"] is True

    again = client.post("/api/reviews", json=review_payload(order_id, product_id), headers=customer_headers)
    assert again.status_code == 400


def test_cannot_review_someone_elses_order(client, make_user, delivered_order):
    order_id, product_id = delivered_order
    _, stranger = make_user("customer", email="stranger@example.com")
    res = client.post("/api/reviews", json=review_payload(order_id, product_id), headers=stranger)
    assert res.status_code == 403


def test_cannot_review_product_missing_from_order(client, customer_headers, delivered_order, make_product):
    order_id, _ = delivered_order
    res = client.post("/api/reviews", json=review_payload(order_id, make_product()), headers=customer_headers)
    assert res.status_code == 400


def test_moderation_recomputes_product_rating(client, db, make_user, admin_headers, make_product):
    product_id = make_product()
    review_ids = []
    for rating in (5, 2):
        user, headers = make_user("customer")
        order_id = create_document(db, "order", {
            "user_id": str(user["_id"]), "status": "delivered",
            "items": [{"product_id": product_id, "name": "Widget", "price": 50, "quantity": 1}],
        })
        res = client.post("/api/reviews", json=review_payload(order_id, product_id, rating), headers=headers)
        review_ids.append(res.json()["review"]["id"])

    res = client.patch(f"/api/reviews/{review_ids[0]}/status", json={"status": "approved"}, headers=admin_headers)
    assert res.json()["product_rating"] == {"rating": 5, "num_reviews": 1}

    client.patch(f"/api/reviews/{review_ids[1]}/status", json={"status": "approved"}, headers=admin_headers)
    product = db["product"].find_one({"_id": oid(product_id)})
    assert product["rating"] == 3.5
    assert product["num_reviews"] == 2

    public = client.get(f"/api/reviews/product/{product_id}").json()
    assert public["stats"]["total_reviews"] == 2
    assert public["stats"]["distribution"]["5"] == 1

    client.patch(f"/api/reviews/{review_ids[0]}/status", json={"status": "rejected"}, headers=admin_headers)
    assert db["product"].find_one({"_id": oid(product_id)})["rating"] == 2

    client.delete(f"/api/reviews/{review_ids[1]}", headers=admin_headers)
    product = db["product"].find_one({"_id": oid(product_id)})
    assert (product["rating"], product["num_reviews"]) == (0, 0)


def test_product_scoped_review_alias(client, customer_headers, delivered_order):
    order_id, product_id = delivered_order
    res = client.post(f"/api/products/{product_id}/reviews", json=review_payload(order_id, product_id),
                      headers=customer_headers)
    assert res.status_code == 201
    assert client.get(f"/api/products/{product_id}/reviews").json()["reviews"] == []


def test_admin_response(client, admin_headers, customer_headers, delivered_order):
    order_id, product_id = delivered_order
    review = client.post("/api/reviews", json=review_payload(order_id, product_id),
                         headers=customer_headers).json()["review"]
    res = client.post(f"/api/reviews/{review['id']}/response", json={"message": "Thanks!"}, headers=admin_headers)
    assert res.json()["review"]["admin_response"] == "Thanks!"


def test_testimonials_need_approval(client, admin_headers, customer_headers):
    res = client.post("/api/testimonials", json={"name": "Ana", "content": "Great shop", "status": "approved"},
                      headers=customer_headers)
    testimonial = res.json()["testimonial"]
    assert testimonial["status"] == "pending"
    assert client.get("/api/testimonials").json()["testimonials"] == []

    client.patch(f"/api/testimonials/{testimonial['id']}/status", json={"status": "approved"}, headers=admin_headers)
    listed = client.get("/api/testimonials").json()["testimonials"]
    assert [t["name"] for t in listed] == ["Ana"]
