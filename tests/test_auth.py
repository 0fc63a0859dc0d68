def register(client, email="new@example.com", password="secret123"):
    return client.post("/api/auth/register", json={"name": "New User", "email": email, "password": password})


def test_register_returns_token_and_customer(client):
    res = register(client, email="New@Example.com")
    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    assert body["token"]
    assert body["user"]["email"] == "new@example.com"
    assert body["user"]["role"] == "customer"
    assert body["user"]["permissions"] == []
    assert "password_hash" not in body["user"]


def test_register_rejects_duplicate_email(client):
    register(client)
    res = register(client)
    assert res.status_code == 400
    assert res.json() == {"success": False, "message": "Email already registered"}


def test_register_validates_payload(client):
    res = client.post("/api/auth/register", json={"name": "X", "email": "not-an-email", "password": "123"})
    assert res.status_code == 400
    assert res.json()["success"] is False
    assert res.json()["errors"]


def test_login_and_me(client, db):
    register(client)
    res = client.post("/api/auth/login", json={"email": "new@example.com", "password": "secret123"})
    assert res.status_code == 200
    token = res.json()["token"]
    assert db["user"].find_one({"email": "new@example.com"})["last_login"] is not None

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["user"]["name"] == "New User"


def test_login_with_wrong_password(client):
    register(client)
    res = client.post("/api/auth/login", json={"email": "new@example.com", "password": "nope-nope"})
    assert res.status_code == 401
    assert res.json()["message"] == "Invalid credentials"


def test_protected_route_requires_valid_token(client):
    assert client.get("/api/auth/me").status_code == 401
    res = client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"})
    assert res.status_code == 401


def test_disabled_account_is_rejected(client, db, customer):
    user, headers = customer
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"is_active": False}})
    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_permission_gate(client, customer_headers, admin_headers):
    assert client.get("/api/users", headers=customer_headers).status_code == 403
    res = client.get("/api/users", headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["pagination"]["total_items"] == 2


def test_role_assignment(client, make_user, customer):
    _, super_headers = make_user("super_admin", email="root@example.com")
    user, _ = customer
    res = client.put(f"/api/users/{user['_id']}/role", json={"role": "Cashier"}, headers=super_headers)
    assert res.status_code == 200
    assert res.json()["user"]["role"] == "cashier"
    assert "process_sales" in res.json()["user"]["permissions"]

    res = client.put(f"/api/users/{user['_id']}/role", json={"role": "pirate"}, headers=super_headers)
    assert res.status_code == 400


def test_addresses_keep_one_default(client, customer_headers):
    address = {"name": "Home", "phone": "1", "street": "Road 1", "city": "Dhaka"}
    first = client.post("/api/users/profile/addresses", json=address, headers=customer_headers).json()
    assert first["addresses"][0]["is_default"] is True

    second = client.post(
        "/api/users/profile/addresses", json={**address, "name": "Office", "is_default": True},
        headers=customer_headers,
    ).json()
    defaults = [a["name"] for a in second["addresses"] if a["is_default"]]
    assert defaults == ["Office"]
