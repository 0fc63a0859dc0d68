import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from auth import create_access_token, hash_password
from config import settings
from database import create_document, oid


@pytest.fixture
def db(monkeypatch, tmp_path):
    mock_db = mongomock.MongoClient()["storefront_test"]
    monkeypatch.setattr(database, "_db", mock_db)
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))
    return mock_db


@pytest.fixture
def client(db):
    from main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(db):
    def _make(role="customer", email=None, name="Test User", password="secret123"):
        email = email or f"{role}-{db['user'].count_documents({})}@example.com"
        user_id = create_document(db, "user", {
            "name": name,
            "email": email,
            "password_hash": hash_password(password),
            "role": role,
            "addresses": [],
            "is_active": True,
        })
        user = db["user"].find_one({"_id": oid(user_id)})
        return user, {"Authorization": f"Bearer {create_access_token(user)}"}
    return _make


@pytest.fixture
def admin_headers(make_user):
    return make_user("admin", email="admin@example.com")[1]


@pytest.fixture
def customer(make_user):
    return make_user("customer", email="shopper@example.com")


@pytest.fixture
def customer_headers(customer):
    return customer[1]


@pytest.fixture
def category_id(db):
    return create_document(db, "category", {"name": "Gadgets", "slug": "gadgets", "parent_id": None, "is_active": True})


@pytest.fixture
def make_product(db, category_id):
    def _make(**overrides):
        data = {
            "name": "Widget",
            "slug": f"widget-{db['product'].count_documents({})}",
            "description": "A widget",
            "price": 50.0,
            "sale_price": None,
            "category_id": category_id,
            "brand_id": None,
            "stock": 10,
            "images": [],
            "status": "published",
            "featured": False,
            "tags": [],
            "has_variations": False,
            "variants": [],
            "is_flash_sale": False,
            "rating": 0,
            "num_reviews": 0,
            "views": 0,
        }
        data.update(overrides)
        return create_document(db, "product", data)
    return _make
