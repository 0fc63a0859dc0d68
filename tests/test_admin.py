from database import create_document


def test_root_and_database_report(client):
    assert client.get("/").json()["success"] is True
    report = client.get("/test").json()
    assert report["database"] == "✅ Connected & Working"


def test_seed_is_idempotent(client, db):
    first = client.post("/api/seed").json()["created"]
    assert first == {"categories": 3, "brands": 2, "products": 3}
    assert client.post("/api/seed").json()["created"] == {"categories": 0, "brands": 0, "products": 0}
    assert db["product"].count_documents({"status": "published"}) == 3


def test_site_settings_singleton(client, admin_headers, customer_headers):
    settings = client.get("/api/site-settings").json()["settings"]
    assert settings["site_name"] == "Storefront"

    assert client.put("/api/site-settings", json={"site_name": "Shop"}, headers=customer_headers).status_code == 403
    res = client.put("/api/site-settings", json={"site_name": "Shop", "announcement": "Sale!"}, headers=admin_headers)
    assert res.json()["settings"]["site_name"] == "Shop"
    assert client.get("/api/site-settings").json()["settings"]["id"] == settings["id"]


def test_coupon_admin(client, admin_headers):
    res = client.post("/api/coupons", json={"code": " spring ", "type": "percentage", "value": 15},
                      headers=admin_headers)
    assert res.status_code == 201
    coupon = res.json()["coupon"]
    assert coupon["code"] == "SPRING"

    dup = client.post("/api/coupons", json={"code": "SPRING", "type": "fixed", "value": 5}, headers=admin_headers)
    assert dup.status_code == 409
    too_much = client.post("/api/coupons", json={"code": "ALL", "type": "percentage", "value": 150},
                           headers=admin_headers)
    assert too_much.status_code == 400

    assert client.get("/api/coupons", headers=admin_headers).json()["count"] == 1
    assert client.delete(f"/api/coupons/{coupon['id']}", headers=admin_headers).status_code == 200


def test_dashboard_counts_revenue_from_paid_amount(client, db, admin_headers, customer, make_product):
    user, _ = customer
    make_product(stock=3)
    for total, paid, status in ((100, 100, "paid"), (80, 30, "partial"), (50, 0, "pending")):
        create_document(db, "order", {
            "user_id": str(user["_id"]), "status": "processing", "total": total,
            "paid_amount": paid, "payment_status": status, "items": [],
        })

    data = client.get("/api/analytics/dashboard", headers=admin_headers).json()["data"]
    assert data["overview"]["total_orders"] == 3
    assert data["overview"]["total_revenue"] == 130
    assert data["overview"]["total_due"] == 50
    assert len(data["low_stock_products"]) == 1
    assert len(data["recent_orders"]) == 3

    top = client.get("/api/analytics/top-customers", headers=admin_headers).json()["data"]
    assert top[0]["email"] == "shopper@example.com"
    assert top[0]["total_spent"] == 130

    report = client.get("/api/analytics/sales-report", params={"group_by": "month"}, headers=admin_headers).json()
    assert report["data"][0]["total_revenue"] == 130


def test_analytics_requires_permission(client, make_user):
    _, cashier = make_user("cashier")
    assert client.get("/api/analytics/dashboard", headers=cashier).status_code == 403
