"""
Stock movements.

Decrements are single guarded updates: the availability check and the
decrement happen in one ``find_one_and_update``, so two concurrent checkouts
can never both take the last unit. Multi-line movements go through
``StockReservation`` which puts back whatever it took if the block fails.

Products with variations keep their stock on the variants, so a movement on
such a product must name the variant.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database

from database import utcnow

logger = logging.getLogger(__name__)

VARIANT_WRITE_ATTEMPTS = 3


class StockError(Exception):
    pass


class ProductNotFound(StockError):
    def __init__(self, product_id: str):
        super().__init__(f"Product not found: {product_id}")
        self.product_id = product_id


class VariantNotFound(StockError):
    def __init__(self, product_id: str, variant_id: str):
        super().__init__(f"Variant {variant_id} not found for product {product_id}")
        self.product_id = product_id
        self.variant_id = variant_id


class VariantRequired(StockError):
    def __init__(self, name: str):
        super().__init__(f"Please select a variation for {name}")
        self.name = name


class InsufficientStock(StockError):
    def __init__(self, name: str, available: int):
        super().__init__(f"Not enough stock for {name}. Available: {available}")
        self.name = name
        self.available = available


def _product_oid(product_id: str) -> ObjectId:
    if not ObjectId.is_valid(product_id):
        raise ProductNotFound(product_id)
    return ObjectId(product_id)


def _load_product(db: Database, product_id: str) -> Dict[str, Any]:
    product = db["product"].find_one({"_id": _product_oid(product_id)})
    if not product:
        raise ProductNotFound(product_id)
    return product


def _variant_index(product: Dict[str, Any], variant_id: str) -> int:
    for index, variant in enumerate(product.get("variants", [])):
        if variant.get("id") == variant_id:
            return index
    raise VariantNotFound(str(product["_id"]), variant_id)


def update_variant_fields(db: Database, product_id: str, variant_id: str, changes: Dict[str, Dict[str, Any]],
                          min_stock: Optional[int] = None) -> Optional[Dict[str, Any]]:
    """
    Apply ``changes`` to one embedded variant and return the updated product.

    ``changes`` is an update document whose field names are relative to the
    variant, e.g. ``{"$inc": {"stock": -2}}``. Only the named fields are
    written. The variant is addressed by its array index with its id in the
    filter: if a concurrent push or pull shifts the array the write misses
    and the index is looked up again. Returns None when the variant holds
    less than ``min_stock``.
    """
    for _ in range(VARIANT_WRITE_ATTEMPTS):
        product = _load_product(db, product_id)
        index = _variant_index(product, variant_id)
        path = f"variants.{index}"
        query: Dict[str, Any] = {"_id": product["_id"], f"{path}.id": variant_id}
        if min_stock is not None:
            if product["variants"][index].get("stock", 0) < min_stock:
                return None
            query[f"{path}.stock"] = {"$gte": min_stock}
        update = {op: {f"{path}.{field}": value for field, value in fields.items()} for op, fields in changes.items()}
        update.setdefault("$set", {})["updated_at"] = utcnow()
        updated = db["product"].find_one_and_update(query, update, return_document=ReturnDocument.AFTER)
        if updated is not None:
            return updated
    logger.warning("Variant %s/%s kept moving, gave up after %d attempts", product_id, variant_id,
                   VARIANT_WRITE_ATTEMPTS)
    return None


def _explain_failure(db: Database, product_id: str, variant_id: Optional[str]):
    product = _load_product(db, product_id)
    if variant_id:
        variant = product["variants"][_variant_index(product, variant_id)]
        raise InsufficientStock(f"{product['name']} ({variant.get('sku')})", variant.get("stock", 0))
    if product.get("has_variations"):
        raise VariantRequired(product["name"])
    raise InsufficientStock(product["name"], product.get("stock", 0))


def reserve(db: Database, product_id: str, quantity: int, variant_id: Optional[str] = None) -> Dict[str, Any]:
    """Take ``quantity`` units off the product (or variant). Returns the updated product."""
    if quantity < 1:
        raise ValueError("quantity must be positive")
    if variant_id:
        product = update_variant_fields(db, product_id, variant_id, {"$inc": {"stock": -quantity}},
                                        min_stock=quantity)
    else:
        product = db["product"].find_one_and_update(
            {"_id": _product_oid(product_id), "has_variations": {"$ne": True}, "stock": {"$gte": quantity}},
            {"$inc": {"stock": -quantity}, "$set": {"updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
    if product is None:
        _explain_failure(db, product_id, variant_id)
    return product


def release(db: Database, product_id: str, quantity: int, variant_id: Optional[str] = None) -> bool:
    """Put ``quantity`` units back. Returns False when the product or variant no longer exists."""
    if variant_id:
        try:
            found = update_variant_fields(db, product_id, variant_id, {"$inc": {"stock": quantity}}) is not None
        except (ProductNotFound, VariantNotFound):
            found = False
    else:
        update = {"$inc": {"stock": quantity}, "$set": {"updated_at": utcnow()}}
        found = db["product"].update_one({"_id": _product_oid(product_id)}, update).matched_count == 1
    if not found:
        logger.warning("Could not return %s unit(s) of %s/%s to stock", quantity, product_id, variant_id)
    return found


class StockReservation:
    """
    Context manager grouping several stock movements.

    >>> with StockReservation(db) as stock:
    ...     stock.take(product_id, 2)
    ...     stock.put(other_id, 5)

    If the block raises, every movement already made is reversed.
    """

    def __init__(self, db: Database):
        self.db = db
        self._taken: List[Tuple[str, int, Optional[str]]] = []
        self._put: List[Tuple[str, int, Optional[str]]] = []

    def take(self, product_id: str, quantity: int, variant_id: Optional[str] = None) -> Dict[str, Any]:
        product = reserve(self.db, product_id, quantity, variant_id)
        self._taken.append((product_id, quantity, variant_id))
        return product

    def put(self, product_id: str, quantity: int, variant_id: Optional[str] = None) -> None:
        product = _load_product(self.db, product_id)
        if variant_id:
            _variant_index(product, variant_id)
        elif product.get("has_variations"):
            raise VariantRequired(product["name"])
        if not release(self.db, product_id, quantity, variant_id):
            raise ProductNotFound(product_id)
        self._put.append((product_id, quantity, variant_id))

    def rollback(self) -> None:
        for product_id, quantity, variant_id in reversed(self._taken):
            release(self.db, product_id, quantity, variant_id)
        for product_id, quantity, variant_id in reversed(self._put):
            try:
                reserve(self.db, product_id, quantity, variant_id)
            except StockError:
                logger.error("Rollback could not remove %s unit(s) of %s/%s", quantity, product_id, variant_id)
        logger.info("Rolled back %d stock movement(s)", len(self._taken) + len(self._put))
        self._taken.clear()
        self._put.clear()

    def __enter__(self) -> "StockReservation":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self.rollback()
        return False


def set_stock(db: Database, product_id: str, stock: int, variant_id: Optional[str] = None) -> bool:
    if variant_id:
        try:
            return update_variant_fields(db, product_id, variant_id, {"$set": {"stock": stock}}) is not None
        except VariantNotFound:
            return False
    update = {"$set": {"stock": stock, "updated_at": utcnow()}}
    return db["product"].update_one({"_id": _product_oid(product_id)}, update).matched_count == 1


def bulk_set_stock(db: Database, items: Iterable[Dict[str, Any]]) -> Tuple[int, List[str]]:
    """Apply absolute stock levels. Returns the update count and the ids that matched nothing."""
    updated, missing = 0, []
    for item in items:
        try:
            found = set_stock(db, item["product_id"], item["stock"], item.get("variant_id"))
        except ProductNotFound:
            found = False
        if found:
            updated += 1
        else:
            missing.append(item["product_id"])
    return updated, missing
