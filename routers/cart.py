import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

from auth import get_current_user
from database import get_db, utcnow
from pricing import (
    available_stock,
    calculate_cart_totals,
    coupon_is_usable,
    find_variant,
    is_flash_sale_active,
)
from schemas import ApplyCouponRequest, CartItemRemove, CartItemRequest, CartSyncRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cart", tags=["cart"])


def load_cart(db: Database, user_id: str) -> Dict[str, Any]:
    cart = db["cart"].find_one({"user_id": user_id})
    if cart is None:
        now = utcnow()
        cart = {"user_id": user_id, "items": [], "coupon_id": None, "created_at": now, "updated_at": now}
        cart["_id"] = db["cart"].insert_one(cart).inserted_id
    return cart


def save_cart(db: Database, cart: Dict[str, Any]) -> None:
    cart["updated_at"] = utcnow()
    db["cart"].update_one(
        {"_id": cart["_id"]},
        {"$set": {"items": cart["items"], "coupon_id": cart.get("coupon_id"), "updated_at": cart["updated_at"]}},
    )


def find_coupon(db: Database, code: str) -> Optional[Dict[str, Any]]:
    return db["coupon"].find_one({"code": code.strip().upper()})


def _item_key(item: Dict[str, Any]):
    variation = item.get("variation") or {}
    return item["product_id"], variation.get("id")


def _product_for_item(product: Dict[str, Any], variation: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """The product as the cart prices it: variant price, or flash/sale price on the root."""
    view = {
        "id": str(product["_id"]),
        "name": product.get("name"),
        "slug": product.get("slug"),
        "images": product.get("images", []),
        "price": product.get("price", 0),
        "sale_price": product.get("sale_price"),
        "stock": product.get("stock", 0),
    }
    if variation:
        variant = find_variant(product, variation.get("id")) or variation
        view.update(price=variant.get("price", 0), sale_price=None, stock=variant.get("stock", 0))
    elif is_flash_sale_active(product) and product.get("flash_sale_price") is not None:
        view["sale_price"] = product["flash_sale_price"]
    return view


def populate_items(db: Database, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    ids = [ObjectId(i["product_id"]) for i in items if ObjectId.is_valid(i["product_id"])]
    products = {str(p["_id"]): p for p in db["product"].find({"_id": {"$in": ids}})}
    populated = []
    for item in items:
        product = products.get(item["product_id"])
        if product is None:
            continue
        populated.append({
            "product": _product_for_item(product, item.get("variation")),
            "quantity": item["quantity"],
            "variation": item.get("variation"),
        })
    return populated


def cart_response(db: Database, cart: Dict[str, Any]) -> Dict[str, Any]:
    items = populate_items(db, cart.get("items", []))
    coupon = None
    if cart.get("coupon_id"):
        coupon = db["coupon"].find_one({"_id": ObjectId(cart["coupon_id"])})
        if not coupon_is_usable(coupon):
            coupon = None
    totals = calculate_cart_totals(items, coupon)
    return {
        "id": str(cart["_id"]),
        "items": items,
        "coupon": {"code": coupon["code"], "type": coupon["type"], "value": coupon["value"]} if coupon else None,
        **totals,
    }


def _resolve(db: Database, product_id: str, variation_id: Optional[str]):
    if not ObjectId.is_valid(product_id):
        raise HTTPException(400, "Invalid product ID")
    product = db["product"].find_one({"_id": ObjectId(product_id)})
    if not product:
        raise HTTPException(404, "Product not found")
    variant = None
    if variation_id:
        variant = find_variant(product, variation_id)
        if variant is None:
            raise HTTPException(404, "Variation not found")
    elif product.get("has_variations"):
        raise HTTPException(400, "Please select a variation")
    return product, variant


def _snapshot(variant: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if variant is None:
        return None
    return {k: variant.get(k) for k in ("id", "sku", "price", "options")}


def _find_index(cart: Dict[str, Any], product_id: str, variation_id: Optional[str]) -> int:
    for index, item in enumerate(cart["items"]):
        if _item_key(item) == (product_id, variation_id):
            return index
    return -1


@router.get("")
def get_cart(current=Depends(get_current_user), db: Database = Depends(get_db)):
    cart = load_cart(db, str(current["_id"]))
    return {"success": True, "cart": cart_response(db, cart)}


@router.post("/items")
def add_to_cart(req: CartItemRequest, current=Depends(get_current_user), db: Database = Depends(get_db)):
    product, variant = _resolve(db, req.product_id, req.variation_id)
    cart = load_cart(db, str(current["_id"]))
    index = _find_index(cart, req.product_id, req.variation_id)
    quantity = req.quantity + (cart["items"][index]["quantity"] if index != -1 else 0)
    if available_stock(product, variant) < quantity:
        raise HTTPException(400, "Not enough stock available")

    if index != -1:
        cart["items"][index]["quantity"] = quantity
    else:
        cart["items"].append({
            "product_id": req.product_id,
            "quantity": req.quantity,
            "variation": _snapshot(variant),
            "added_at": utcnow(),
        })
    save_cart(db, cart)
    return {"success": True, "message": "Item added to cart", "cart": cart_response(db, cart)}


@router.put("/items")
def update_cart_item(req: CartItemRequest, current=Depends(get_current_user), db: Database = Depends(get_db)):
    cart = db["cart"].find_one({"user_id": str(current["_id"])})
    if not cart:
        raise HTTPException(404, "Cart not found")
    index = _find_index(cart, req.product_id, req.variation_id)
    if index == -1:
        raise HTTPException(404, "Item not found in cart")
    product, variant = _resolve(db, req.product_id, req.variation_id)
    if available_stock(product, variant) < req.quantity:
        raise HTTPException(400, "Not enough stock available")
    cart["items"][index]["quantity"] = req.quantity
    save_cart(db, cart)
    return {"success": True, "message": "Cart updated", "cart": cart_response(db, cart)}


@router.delete("/items")
def remove_from_cart(req: CartItemRemove, current=Depends(get_current_user), db: Database = Depends(get_db)):
    cart = db["cart"].find_one({"user_id": str(current["_id"])})
    if not cart:
        raise HTTPException(404, "Cart not found")
    index = _find_index(cart, req.product_id, req.variation_id)
    if index == -1:
        raise HTTPException(404, "Item not found in cart")
    cart["items"].pop(index)
    save_cart(db, cart)
    return {"success": True, "message": "Item removed from cart", "cart": cart_response(db, cart)}


@router.delete("")
def clear_cart(current=Depends(get_current_user), db: Database = Depends(get_db)):
    cart = db["cart"].find_one({"user_id": str(current["_id"])})
    if not cart:
        raise HTTPException(404, "Cart not found")
    cart["items"] = []
    cart["coupon_id"] = None
    save_cart(db, cart)
    return {"success": True, "message": "Cart cleared", "cart": cart_response(db, cart)}


@router.post("/sync")
def sync_cart(req: CartSyncRequest, current=Depends(get_current_user), db: Database = Depends(get_db)):
    """Merge a guest (local storage) cart into the server cart. Unknown items are skipped."""
    cart = load_cart(db, str(current["_id"]))
    skipped = 0
    for incoming in req.items:
        try:
            _, variant = _resolve(db, incoming.product_id, incoming.variation_id)
        except HTTPException:
            skipped += 1
            continue
        index = _find_index(cart, incoming.product_id, incoming.variation_id)
        if index != -1:
            cart["items"][index]["quantity"] += incoming.quantity
        else:
            cart["items"].append({
                "product_id": incoming.product_id,
                "quantity": incoming.quantity,
                "variation": _snapshot(variant),
                "added_at": utcnow(),
            })
    save_cart(db, cart)
    if skipped:
        logger.info("Cart sync for %s skipped %d item(s)", current["_id"], skipped)
    return {"success": True, "message": "Cart synced", "skipped": skipped, "cart": cart_response(db, cart)}


@router.post("/coupon")
def apply_coupon(req: ApplyCouponRequest, current=Depends(get_current_user), db: Database = Depends(get_db)):
    coupon = find_coupon(db, req.code)
    if not coupon_is_usable(coupon):
        raise HTTPException(400, "Invalid or expired coupon")
    cart = load_cart(db, str(current["_id"]))
    cart["coupon_id"] = str(coupon["_id"])
    save_cart(db, cart)
    return {"success": True, "message": "Coupon applied", "cart": cart_response(db, cart)}


@router.delete("/coupon")
def remove_coupon(current=Depends(get_current_user), db: Database = Depends(get_db)):
    cart = load_cart(db, str(current["_id"]))
    cart["coupon_id"] = None
    save_cart(db, cart)
    return {"success": True, "message": "Coupon removed", "cart": cart_response(db, cart)}
