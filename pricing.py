"""
Price, discount and payment arithmetic.

Everything here is a pure function over plain dicts as they are stored in
MongoDB, so routers and tests can share it without a database.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from config import settings
from database import as_utc, utcnow

PAYMENT_PENDING = "pending"
PAYMENT_PARTIAL = "partial"
PAYMENT_PAID = "paid"
PAYMENT_FAILED = "failed"
PAYMENT_REFUNDED = "refunded"

# Set only by an explicit admin action, never produced by the derivation
MANUAL_PAYMENT_STATUSES = frozenset({PAYMENT_FAILED, PAYMENT_REFUNDED})


def status_for_amount(paid_amount: float, total: float) -> str:
    if paid_amount == 0:
        return PAYMENT_PENDING
    if paid_amount >= total:
        return PAYMENT_PAID
    return PAYMENT_PARTIAL


def derive_payment_status(payments: Iterable[Dict[str, Any]], total: float) -> Tuple[float, str]:
    """Sum confirmed payments and map the ratio to pending / partial / paid."""
    paid_amount = sum(p.get("amount", 0) for p in payments if p.get("status") == "confirmed")
    return paid_amount, status_for_amount(paid_amount, total)


def apply_payment_derivation(order: Dict[str, Any]) -> Dict[str, Any]:
    """
    Re-derive ``paid_amount`` and ``payment_status`` on an order in place.

    Runs before every order write. A manual ``failed``/``refunded`` status is
    kept as long as nothing is confirmed; ``paid_amount`` is always recomputed.
    """
    paid_amount, status = derive_payment_status(order.get("payments", []), order.get("total", 0))
    order["paid_amount"] = paid_amount
    if not (paid_amount == 0 and order.get("payment_status") in MANUAL_PAYMENT_STATUSES):
        order["payment_status"] = status
    return order


def due_amount(total: float, paid_amount: float) -> float:
    return round(total - paid_amount, 2)


# ---------- Cart ----------

def cart_unit_price(product: Dict[str, Any]) -> float:
    sale_price = product.get("sale_price")
    return sale_price if sale_price is not None else product.get("price", 0)


def coupon_discount(subtotal: float, coupon: Optional[Dict[str, Any]]) -> float:
    if not coupon:
        return 0
    if coupon.get("type") == "percentage":
        discount = subtotal * (coupon.get("value", 0) / 100)
    elif coupon.get("type") == "fixed":
        discount = coupon.get("value", 0)
    else:
        discount = 0
    return min(discount, subtotal)


def calculate_cart_totals(items: Iterable[Dict[str, Any]], coupon: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    subtotal = 0
    total_items = 0
    for item in items:
        subtotal += cart_unit_price(item["product"]) * item["quantity"]
        total_items += item["quantity"]
    discount = coupon_discount(subtotal, coupon)
    return {
        "subtotal": subtotal,
        "discount": discount,
        "total": subtotal - discount,
        "total_items": total_items,
    }


def coupon_is_usable(coupon: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> bool:
    if not coupon or not coupon.get("is_active", True):
        return False
    expires_at = as_utc(coupon.get("expires_at"))
    return expires_at is None or (now or utcnow()) <= expires_at


# ---------- Products ----------

def is_flash_sale_active(product: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    start = as_utc(product.get("flash_sale_start_date"))
    end = as_utc(product.get("flash_sale_end_date"))
    if not product.get("is_flash_sale") or start is None or end is None:
        return False
    now = as_utc(now) if now else utcnow()
    return start <= now <= end


def current_price(product: Dict[str, Any], now: Optional[datetime] = None) -> float:
    if is_flash_sale_active(product, now) and product.get("flash_sale_price") is not None:
        return product["flash_sale_price"]
    return product.get("price", 0)


def with_current_price(product: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    product["is_flash_sale_active"] = is_flash_sale_active(product, now)
    product["current_price"] = current_price(product, now)
    return product


def find_variant(product: Dict[str, Any], variant_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not variant_id:
        return None
    for variant in product.get("variants", []):
        if variant.get("id") == variant_id:
            return variant
    return None


def variant_label(variant: Optional[Dict[str, Any]]) -> Optional[str]:
    if not variant:
        return None
    options = variant.get("options") or []
    if not options:
        return variant.get("sku")
    return ", ".join(f"{o['type']}: {o['value']}" for o in options)


def unit_price(product: Dict[str, Any], variant: Optional[Dict[str, Any]] = None,
               now: Optional[datetime] = None) -> float:
    """Price charged for one unit at checkout."""
    if variant is not None:
        return variant.get("price", 0)
    if is_flash_sale_active(product, now) and product.get("flash_sale_price") is not None:
        return product["flash_sale_price"]
    return cart_unit_price(product)


def available_stock(product: Dict[str, Any], variant: Optional[Dict[str, Any]] = None) -> int:
    if variant is not None:
        return variant.get("stock", 0)
    return product.get("stock", 0)


# ---------- Orders / purchases / sales ----------

def order_charges(subtotal: float) -> Dict[str, float]:
    tax = round(subtotal * settings.TAX_RATE, 2)
    shipping_cost = 0 if subtotal > settings.FREE_SHIPPING_THRESHOLD else settings.SHIPPING_COST
    return {"tax": tax, "shipping_cost": shipping_cost}


def purchase_totals(items: List[Dict[str, Any]]) -> float:
    return round(sum(i["quantity"] * i["unit_cost"] for i in items), 2)


def sale_change(payment_method: str, amount_received: float, total: float) -> float:
    if payment_method != "cash":
        return 0
    return round(max(0, amount_received - total), 2)
