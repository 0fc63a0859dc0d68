import pytest

from database import oid
from inventory import (
    InsufficientStock,
    ProductNotFound,
    StockReservation,
    VariantNotFound,
    VariantRequired,
    bulk_set_stock,
    release,
    reserve,
    set_stock,
)


def stock_of(db, product_id, variant_id=None):
    product = db["product"].find_one({"_id": oid(product_id)})
    if variant_id:
        return next(v["stock"] for v in product["variants"] if v["id"] == variant_id)
    return product["stock"]


def test_reserve_decrements_and_returns_updated_product(db, make_product):
    product_id = make_product(stock=5)
    product = reserve(db, product_id, 3)
    assert product["stock"] == 2
    assert stock_of(db, product_id) == 2


def test_reserve_refuses_to_oversell(db, make_product):
    product_id = make_product(name="Lamp", stock=2)
    with pytest.raises(InsufficientStock) as exc:
        reserve(db, product_id, 3)
    assert str(exc.value) == "Not enough stock for Lamp. Available: 2"
    assert stock_of(db, product_id) == 2


def test_reserve_variant_stock(db, make_product):
    product_id = make_product(
        has_variations=True,
        variants=[{"id": "v1", "sku": "S", "price": 10, "stock": 4}, {"id": "v2", "sku": "M", "price": 12, "stock": 1}],
    )
    reserve(db, product_id, 1, "v2")
    assert stock_of(db, product_id, "v2") == 0
    assert stock_of(db, product_id, "v1") == 4
    with pytest.raises(InsufficientStock):
        reserve(db, product_id, 1, "v2")
    with pytest.raises(VariantNotFound):
        reserve(db, product_id, 1, "missing")


def test_variant_movements_land_on_the_named_variant(db, make_product):
    product_id = make_product(
        has_variations=True,
        variants=[
            {"id": "v1", "sku": "S", "price": 10, "stock": 4},
            {"id": "v2", "sku": "M", "price": 12, "stock": 1},
            {"id": "v3", "sku": "L", "price": 14, "stock": 0},
        ],
    )
    assert release(db, product_id, 2, "v3")
    assert set_stock(db, product_id, 9, "v2")
    reserve(db, product_id, 3, "v2")
    assert [stock_of(db, product_id, v) for v in ("v1", "v2", "v3")] == [4, 6, 2]
    assert not release(db, product_id, 1, "missing")
    assert not set_stock(db, product_id, 1, "missing")


def test_variation_product_needs_a_variant(db, make_product):
    product_id = make_product(
        name="Tee", stock=5, has_variations=True,
        variants=[{"id": "red", "sku": "TEE-R", "price": 15, "stock": 2}],
    )
    with pytest.raises(VariantRequired) as exc:
        reserve(db, product_id, 1)
    assert str(exc.value) == "Please select a variation for Tee"
    with pytest.raises(VariantRequired):
        with StockReservation(db) as stock:
            stock.put(product_id, 3)
    assert stock_of(db, product_id) == 5
    assert stock_of(db, product_id, "red") == 2


def test_unknown_product(db):
    with pytest.raises(ProductNotFound):
        reserve(db, "64b7f0f0f0f0f0f0f0f0f0f0", 1)
    with pytest.raises(ProductNotFound):
        reserve(db, "not-an-id", 1)


def test_release_puts_stock_back(db, make_product):
    product_id = make_product(stock=1)
    assert release(db, product_id, 4)
    assert stock_of(db, product_id) == 5
    assert not release(db, "64b7f0f0f0f0f0f0f0f0f0f0", 1)


def test_reservation_rolls_back_on_failure(db, make_product):
    first = make_product(stock=5)
    second = make_product(stock=1)
    with pytest.raises(InsufficientStock):
        with StockReservation(db) as stock:
            stock.take(first, 2)
            stock.take(second, 2)
    assert stock_of(db, first) == 5
    assert stock_of(db, second) == 1


def test_reservation_keeps_movements_on_success(db, make_product):
    first = make_product(stock=5)
    second = make_product(stock=0)
    with StockReservation(db) as stock:
        stock.take(first, 2)
        stock.put(second, 7)
    assert stock_of(db, first) == 3
    assert stock_of(db, second) == 7


def test_bulk_set_stock_reports_missing(db, make_product):
    product_id = make_product(stock=5)
    updated, missing = bulk_set_stock(db, [
        {"product_id": product_id, "stock": 42},
        {"product_id": "64b7f0f0f0f0f0f0f0f0f0f0", "stock": 1},
        {"product_id": "bogus", "stock": 1},
    ])
    assert updated == 1
    assert missing == ["64b7f0f0f0f0f0f0f0f0f0f0", "bogus"]
    assert stock_of(db, product_id) == 42
