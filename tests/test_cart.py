from datetime import timedelta

from database import create_document, utcnow

VARIANTS = [
    {"id": "red", "sku": "TEE-RED", "price": 15, "stock": 2, "options": [{"type": "Color", "value": "Red"}]},
    {"id": "blue", "sku": "TEE-BLUE", "price": 18, "stock": 5, "options": [{"type": "Color", "value": "Blue"}]},
]


def add(client, headers, product_id, quantity=1, variation_id=None):
    return client.post("/api/cart/items", json={
        "product_id": product_id, "quantity": quantity, "variation_id": variation_id,
    }, headers=headers)


def test_empty_cart_is_created_on_first_read(client, customer_headers):
    cart = client.get("/api/cart", headers=customer_headers).json()["cart"]
    assert cart["items"] == []
    assert cart["total"] == 0


def test_add_merges_same_product_and_checks_stock(client, customer_headers, make_product):
    product_id = make_product(price=50, stock=3)
    add(client, customer_headers, product_id, 2)
    res = add(client, customer_headers, product_id, 1)
    cart = res.json()["cart"]
    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 3
    assert cart["subtotal"] == 150

    res = add(client, customer_headers, product_id, 1)
    assert res.status_code == 400
    assert res.json()["message"] == "Not enough stock available"


def test_variants_are_separate_lines_priced_by_variant(client, customer_headers, make_product):
    product_id = make_product(price=10, has_variations=True, variants=VARIANTS)
    assert add(client, customer_headers, product_id).status_code == 400

    add(client, customer_headers, product_id, 2, "red")
    cart = add(client, customer_headers, product_id, 1, "blue").json()["cart"]
    assert len(cart["items"]) == 2
    assert cart["subtotal"] == 2 * 15 + 18
    assert cart["items"][0]["variation"]["sku"] == "TEE-RED"

    assert add(client, customer_headers, product_id, 1, "red").status_code == 400
    assert add(client, customer_headers, product_id, 1, "green").status_code == 404


def test_flash_price_is_charged_in_cart(client, customer_headers, make_product):
    now = utcnow()
    product_id = make_product(price=40, is_flash_sale=True, flash_sale_price=30,
                              flash_sale_start_date=now - timedelta(hours=1),
                              flash_sale_end_date=now + timedelta(hours=1))
    cart = add(client, customer_headers, product_id, 2).json()["cart"]
    assert cart["subtotal"] == 60


def test_update_and_remove_items(client, customer_headers, make_product):
    product_id = make_product(stock=10)
    add(client, customer_headers, product_id)
    res = client.put("/api/cart/items", json={"product_id": product_id, "quantity": 4}, headers=customer_headers)
    assert res.json()["cart"]["total_items"] == 4

    res = client.request("DELETE", "/api/cart/items", json={"product_id": product_id}, headers=customer_headers)
    assert res.json()["cart"]["items"] == []

    res = client.request("DELETE", "/api/cart/items", json={"product_id": product_id}, headers=customer_headers)
    assert res.status_code == 404


def test_coupon_caps_discount_at_subtotal(client, db, customer_headers, make_product):
    create_document(db, "coupon", {"code": "BIG200", "type": "fixed", "value": 200, "is_active": True,
                                   "expires_at": None})
    product_id = make_product(price=50)
    add(client, customer_headers, product_id, 2)
    cart = client.post("/api/cart/coupon", json={"code": "big200"}, headers=customer_headers).json()["cart"]
    assert (cart["subtotal"], cart["discount"], cart["total"]) == (100, 100, 0)
    assert cart["coupon"]["code"] == "BIG200"

    cart = client.delete("/api/cart/coupon", headers=customer_headers).json()["cart"]
    assert cart["total"] == 100


def test_expired_coupon_is_rejected(client, db, customer_headers):
    create_document(db, "coupon", {"code": "OLD", "type": "percentage", "value": 10, "is_active": True,
                                   "expires_at": utcnow() - timedelta(days=1)})
    res = client.post("/api/cart/coupon", json={"code": "OLD"}, headers=customer_headers)
    assert res.status_code == 400


def test_sync_merges_guest_cart_and_skips_unknown(client, customer_headers, make_product):
    product_id = make_product()
    add(client, customer_headers, product_id, 1)
    res = client.post("/api/cart/sync", json={"items": [
        {"product_id": product_id, "quantity": 2},
        {"product_id": "64b7f0f0f0f0f0f0f0f0f0f0", "quantity": 1},
    ]}, headers=customer_headers)
    body = res.json()
    assert body["skipped"] == 1
    assert body["cart"]["items"][0]["quantity"] == 3


def test_clear_cart(client, customer_headers, make_product):
    add(client, customer_headers, make_product())
    cart = client.delete("/api/cart", headers=customer_headers).json()["cart"]
    assert cart["items"] == []


def test_wishlist(client, customer_headers, make_product):
    product_id = make_product(name="Kettle")
    res = client.post("/api/wishlist", json={"product_id": product_id}, headers=customer_headers)
    assert res.json()["wishlist"]["products"][0]["name"] == "Kettle"
    assert client.post("/api/wishlist", json={"product_id": product_id}, headers=customer_headers).status_code == 400
    assert client.get(f"/api/wishlist/check/{product_id}", headers=customer_headers).json()["in_wishlist"] is True

    client.delete(f"/api/wishlist/{product_id}", headers=customer_headers)
    assert client.get("/api/wishlist", headers=customer_headers).json()["wishlist"]["count"] == 0
