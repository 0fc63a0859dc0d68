import pytest

from database import oid


@pytest.fixture
def supplier_id(client, admin_headers):
    res = client.post("/api/suppliers", json={"name": "Wholesale Co", "email": "sales@wholesale.com"},
                      headers=admin_headers)
    return res.json()["supplier"]["id"]


def stock_of(db, product_id):
    return db["product"].find_one({"_id": oid(product_id)})["stock"]


def purchase_payload(supplier_id, product_id, **overrides):
    payload = {
        "invoice_number": "INV-1",
        "supplier_id": supplier_id,
        "items": [{"product_id": product_id, "quantity": 10, "unit_cost": 4.5}],
        "paid_amount": 20,
    }
    payload.update(overrides)
    return payload


def test_purchase_adds_stock_and_derives_totals(client, db, admin_headers, supplier_id, make_product):
    product_id = make_product(stock=2)
    res = client.post("/api/purchases", json=purchase_payload(supplier_id, product_id), headers=admin_headers)
    assert res.status_code == 201
    purchase = res.json()["purchase"]
    assert purchase["total_amount"] == 45
    assert purchase["payment_status"] == "partial"
    assert purchase["due_amount"] == 25
    assert purchase["supplier"]["name"] == "Wholesale Co"
    assert stock_of(db, product_id) == 12

    dup = client.post("/api/purchases", json=purchase_payload(supplier_id, product_id), headers=admin_headers)
    assert dup.status_code == 409


def test_purchase_update_rederives_payment_status(client, admin_headers, supplier_id, make_product):
    product_id = make_product()
    purchase = client.post("/api/purchases", json=purchase_payload(supplier_id, product_id),
                           headers=admin_headers).json()["purchase"]
    res = client.put(f"/api/purchases/{purchase['id']}", json={"paid_amount": 45}, headers=admin_headers)
    assert res.json()["purchase"]["payment_status"] == "paid"


def test_purchase_needs_known_supplier_and_product(client, db, admin_headers, supplier_id, make_product):
    product_id = make_product(stock=2)
    res = client.post("/api/purchases", json=purchase_payload("64b7f0f0f0f0f0f0f0f0f0f0", product_id),
                      headers=admin_headers)
    assert res.status_code == 400

    res = client.post("/api/purchases", json=purchase_payload(supplier_id, product_id, items=[
        {"product_id": product_id, "quantity": 1, "unit_cost": 1},
        {"product_id": "64b7f0f0f0f0f0f0f0f0f0f0", "quantity": 1, "unit_cost": 1},
    ]), headers=admin_headers)
    assert res.status_code == 404
    assert stock_of(db, product_id) == 2
    assert db["purchase"].count_documents({}) == 0


def test_delete_purchase_reverts_stock_with_guard(client, db, admin_headers, supplier_id, make_product):
    product_id = make_product(stock=0)
    purchase = client.post("/api/purchases", json=purchase_payload(supplier_id, product_id),
                           headers=admin_headers).json()["purchase"]
    db["product"].update_one({"_id": oid(product_id)}, {"$set": {"stock": 3}})

    res = client.delete(f"/api/purchases/{purchase['id']}", headers=admin_headers)
    assert res.status_code == 400
    assert stock_of(db, product_id) == 3

    db["product"].update_one({"_id": oid(product_id)}, {"$set": {"stock": 10}})
    assert client.delete(f"/api/purchases/{purchase['id']}", headers=admin_headers).status_code == 200
    assert stock_of(db, product_id) == 0


def test_supplier_stats_and_delete_guard(client, admin_headers, supplier_id, make_product):
    client.post("/api/purchases", json=purchase_payload(supplier_id, make_product()), headers=admin_headers)
    stats = client.get(f"/api/suppliers/stats/{supplier_id}", headers=admin_headers).json()["stats"]
    assert stats == {"total_purchases": 1, "total_amount": 45, "total_paid": 20, "total_due": 25}
    assert client.delete(f"/api/suppliers/{supplier_id}", headers=admin_headers).status_code == 400


def test_cash_sale(client, db, make_user, make_product):
    _, cashier = make_user("cashier")
    product_id = make_product(price=12.5, stock=10)
    res = client.post("/api/sales", json={
        "items": [{"product_id": product_id, "quantity": 4}],
        "discount": 5,
        "tax": 2.5,
        "payment_method": "cash",
        "amount_received": 60,
    }, headers=cashier)
    assert res.status_code == 201
    sale = res.json()["sale"]
    assert sale["sale_number"].startswith("SALE-")
    assert sale["sale_number"].endswith("-0001")
    assert (sale["subtotal"], sale["total"], sale["change"]) == (50, 47.5, 12.5)
    assert stock_of(db, product_id) == 6


def test_cash_sale_must_cover_total(client, db, make_user, make_product):
    _, cashier = make_user("cashier")
    product_id = make_product(price=30, stock=10)
    res = client.post("/api/sales", json={
        "items": [{"product_id": product_id, "quantity": 1}],
        "payment_method": "cash",
        "amount_received": 10,
    }, headers=cashier)
    assert res.status_code == 400
    assert stock_of(db, product_id) == 10


def test_card_sale_has_no_change_and_customers_cannot_sell(client, make_user, customer_headers, make_product):
    _, cashier = make_user("cashier")
    payload = {
        "items": [{"product_id": make_product(price=30), "quantity": 1, "price": 25}],
        "payment_method": "card",
        "amount_received": 100,
    }
    sale = client.post("/api/sales", json=payload, headers=cashier).json()["sale"]
    assert sale["total"] == 25
    assert sale["change"] == 0
    assert client.post("/api/sales", json=payload, headers=customer_headers).status_code == 403


def test_sales_listing_and_analytics(client, admin_headers, make_product):
    product_id = make_product(name="Pen", price=2, stock=100)
    for quantity in (1, 3):
        client.post("/api/sales", json={
            "items": [{"product_id": product_id, "quantity": quantity}],
            "payment_method": "card",
            "amount_received": 0,
        }, headers=admin_headers)

    listing = client.get("/api/sales", headers=admin_headers).json()
    assert listing["pagination"]["total_items"] == 2

    analytics = client.get("/api/sales/analytics", headers=admin_headers).json()["analytics"]
    assert analytics["total_sales"] == 2
    assert analytics["total_revenue"] == 8
    assert analytics["top_products"][0]["total_quantity"] == 4


def test_stock_moves_on_variation_products_name_the_variant(client, db, admin_headers, supplier_id, make_product):
    product_id = make_product(stock=0, has_variations=True, variants=[
        {"id": "red", "sku": "CAP-R", "price": 9, "stock": 1},
    ])
    res = client.post("/api/purchases", json=purchase_payload(supplier_id, product_id), headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["message"] == "Please select a variation for Widget"
    assert db["purchase"].count_documents({}) == 0

    items = [{"product_id": product_id, "variant_id": "red", "quantity": 10, "unit_cost": 4.5}]
    res = client.post("/api/purchases", json=purchase_payload(supplier_id, product_id, items=items),
                      headers=admin_headers)
    assert res.status_code == 201

    sale = {"items": [{"product_id": product_id, "quantity": 1}], "payment_method": "card", "amount_received": 0}
    assert client.post("/api/sales", json=sale, headers=admin_headers).status_code == 400

    sale["items"][0]["variant_id"] = "red"
    res = client.post("/api/sales", json=sale, headers=admin_headers)
    assert res.json()["sale"]["items"][0]["price"] == 9
    product = db["product"].find_one({"_id": oid(product_id)})
    assert (product["stock"], product["variants"][0]["stock"]) == (0, 10)


def test_sales_search_treats_input_literally(client, admin_headers, make_product):
    client.post("/api/sales", json={
        "items": [{"product_id": make_product(), "quantity": 1}],
        "customer": {"name": "Rahim (Wholesale)"},
        "payment_method": "card",
        "amount_received": 0,
    }, headers=admin_headers)
    res = client.get("/api/sales", params={"search": "(wholesale"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["pagination"]["total_items"] == 1
    assert client.get("/api/purchases", params={"search": "[INV"}, headers=admin_headers).status_code == 200
