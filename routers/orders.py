import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pymongo import ReturnDocument
from pymongo.database import Database

from auth import get_current_user, require_permission
from database import create_document, find_or_404, get_db, new_id, oid, paginate, serialize_doc, utcnow
from inventory import StockError, StockReservation, release
from permissions import PROCESS_ORDERS, VIEW_ORDERS, has_permission
from pricing import (
    PAYMENT_FAILED,
    PAYMENT_REFUNDED,
    apply_payment_derivation,
    coupon_discount,
    coupon_is_usable,
    due_amount,
    find_variant,
    order_charges,
    unit_price,
    variant_label,
)
from routers.cart import find_coupon
from routers.common import stock_http_error
from schemas import (
    Order as OrderSchema,
    OrderCreate,
    OrderItem,
    OrderStatusUpdate,
    Payment,
    PaymentCreate,
    PaymentStatusUpdate,
)
from uploads import remove_uploads, save_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

MAX_PAYMENT_IMAGES = 5


def order_view(order: Dict[str, Any]) -> Dict[str, Any]:
    order = serialize_doc(order)
    order["due_amount"] = due_amount(order.get("total", 0), order.get("paid_amount", 0))
    return order


def save_order(db: Database, order: Dict[str, Any], expected: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Persist an order after re-deriving its payment fields.

    ``expected`` narrows the write to an order still in that state; a miss
    means another request changed it first and answers 409.
    """
    apply_payment_derivation(order)
    order["updated_at"] = utcnow()
    fields = {k: v for k, v in order.items() if k != "_id"}
    result = db["order"].update_one({"_id": order["_id"], **(expected or {})}, {"$set": fields})
    if result.matched_count == 0:
        raise HTTPException(409, "Order was changed by another request, please retry")
    return order


def _load_order(db: Database, order_id: str) -> Dict[str, Any]:
    return find_or_404(db, "order", order_id, "Order")


def _is_owner(user: Dict[str, Any], order: Dict[str, Any]) -> bool:
    return order.get("user_id") == str(user["_id"])


def _new_payment(amount: float, method: str, status: str = "pending", transaction_id: Optional[str] = None,
                 note: Optional[str] = None) -> Dict[str, Any]:
    payment = Payment(
        id=new_id(), amount=amount, method=method, status=status,
        transaction_id=transaction_id, note=note, paid_at=utcnow(),
    )
    return payment.model_dump()


def _settle_due(order: Dict[str, Any], note: str, transaction_id: Optional[str] = None) -> None:
    """Record a confirmed payment covering whatever is still due."""
    paid = sum(p["amount"] for p in order.get("payments", []) if p.get("status") == "confirmed")
    due = due_amount(order["total"], paid)
    if due > 0:
        order.setdefault("payments", []).append(
            _new_payment(due, order.get("payment_method", "cash"), "confirmed", transaction_id, note)
        )
    # settling overrides a manual failed/refunded mark
    order["payment_status"] = None


def _cancel_and_restock(db: Database, order: Dict[str, Any]) -> Dict[str, Any]:
    """Claim the cancellation, then put the items back on the shelf."""
    claimed = db["order"].find_one_and_update(
        {"_id": order["_id"], "status": {"$nin": ["cancelled", "delivered"]}, "stock_restored": {"$ne": True}},
        {"$set": {"status": "cancelled", "stock_restored": True, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if claimed is None:
        raise HTTPException(400, "Order has already been cancelled")
    for item in claimed.get("items", []):
        release(db, item["product_id"], item["quantity"], item.get("variant_id"))
    logger.info("Stock restored for order %s", claimed["_id"])
    return claimed


@router.post("", status_code=201)
def create_order(req: OrderCreate, current=Depends(get_current_user), db: Database = Depends(get_db)):
    coupon = None
    if req.coupon_code:
        coupon = find_coupon(db, req.coupon_code)
        if not coupon_is_usable(coupon):
            raise HTTPException(400, "Invalid or expired coupon")

    try:
        with StockReservation(db) as stock:
            items = []
            for line in req.items:
                product = stock.take(line.product_id, line.quantity, line.variant_id)
                variant = find_variant(product, line.variant_id)
                images = (variant or {}).get("images") or product.get("images") or [None]
                items.append(OrderItem(
                    product_id=line.product_id,
                    name=product["name"],
                    price=unit_price(product, variant),
                    quantity=line.quantity,
                    image=images[0],
                    variant_id=line.variant_id,
                    variant_label=variant_label(variant),
                ))

            subtotal = round(sum(i.price * i.quantity for i in items), 2)
            discount = round(coupon_discount(subtotal, coupon), 2)
            charges = order_charges(subtotal - discount)
            order = OrderSchema(
                user_id=str(current["_id"]),
                items=items,
                shipping_address=req.shipping_address,
                payment_method=req.payment_method,
                subtotal=subtotal,
                discount=discount,
                coupon_code=coupon["code"] if coupon else None,
                total=round(subtotal - discount + charges["tax"] + charges["shipping_cost"], 2),
                notes=req.notes,
                **charges,
            ).model_dump()
            apply_payment_derivation(order)
            order["stock_restored"] = False
            order["status_history"] = [{"status": order["status"], "at": utcnow()}]
            order_id = create_document(db, "order", order)
    except StockError as exc:
        raise stock_http_error(exc)

    if req.clear_cart:
        db["cart"].update_one({"user_id": str(current["_id"])}, {"$set": {"items": [], "coupon_id": None}})
    logger.info("Order %s placed by %s for %.2f", order_id, current["_id"], order["total"])
    return {"success": True, "order": order_view(db["order"].find_one({"_id": oid(order_id)}))}


@router.get("")
def list_orders(
    status: Optional[str] = None,
    user: Optional[str] = None,
    payment_status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    admin=Depends(require_permission(VIEW_ORDERS)),
    db: Database = Depends(get_db),
):
    query: Dict[str, Any] = {}
    if status:
        query["status"] = status
    if user:
        query["user_id"] = user
    if payment_status:
        query["payment_status"] = payment_status
    orders, pagination = paginate(db, "order", query, page, limit)
    for o in orders:
        o["due_amount"] = due_amount(o.get("total", 0), o.get("paid_amount", 0))
    return {"success": True, "orders": orders, "pagination": pagination}


@router.get("/my-orders")
def my_orders(page: int = 1, limit: int = 10, current=Depends(get_current_user), db: Database = Depends(get_db)):
    orders, pagination = paginate(db, "order", {"user_id": str(current["_id"])}, page, limit)
    for o in orders:
        o["due_amount"] = due_amount(o.get("total", 0), o.get("paid_amount", 0))
    return {"success": True, "orders": orders, "pagination": pagination}


@router.get("/{order_id}")
def get_order(order_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    order = _load_order(db, order_id)
    if not _is_owner(current, order) and not has_permission(current.get("role"), VIEW_ORDERS):
        raise HTTPException(403, "Not authorized to view this order")
    return {"success": True, "order": order_view(order)}


@router.post("/{order_id}/payments", status_code=201)
def add_payment(order_id: str, req: PaymentCreate, current=Depends(get_current_user),
                db: Database = Depends(get_db)):
    order = _load_order(db, order_id)
    if not _is_owner(current, order):
        raise HTTPException(403, "Not authorized to pay for this order")
    if order["status"] == "cancelled":
        raise HTTPException(400, "Cannot pay for a cancelled order")
    due = due_amount(order["total"], order.get("paid_amount", 0))
    if due <= 0:
        raise HTTPException(400, "Order is already paid")
    if req.amount > due:
        raise HTTPException(400, f"Payment amount cannot exceed the due amount of {due:.2f}")
    payment = _new_payment(req.amount, req.method, transaction_id=req.transaction_id, note=req.note)
    order.setdefault("payments", []).append(payment)
    save_order(db, order)
    logger.info("Payment %s of %.2f submitted for order %s", payment["id"], req.amount, order_id)
    return {"success": True, "payment": payment, "order": order_view(order)}


@router.post("/{order_id}/payments/{payment_id}/images", status_code=201)
def upload_payment_proof(order_id: str, payment_id: str, files: List[UploadFile] = File(...),
                         current=Depends(get_current_user), db: Database = Depends(get_db)):
    """Attach screenshots or receipts to a payment still awaiting review."""
    order = _load_order(db, order_id)
    if not _is_owner(current, order):
        raise HTTPException(403, "Not authorized to pay for this order")
    payments = order.get("payments", [])
    index = next((i for i, p in enumerate(payments) if p["id"] == payment_id), None)
    if index is None:
        raise HTTPException(404, "Payment not found")
    if payments[index]["status"] != "pending":
        raise HTTPException(400, "Only pending payments accept proof images")
    if len(payments[index].get("images", [])) + len(files) > MAX_PAYMENT_IMAGES:
        raise HTTPException(400, f"A payment can carry at most {MAX_PAYMENT_IMAGES} images")

    urls = [save_upload(f) for f in files]
    result = db["order"].update_one(
        {"_id": order["_id"], f"payments.{index}.id": payment_id, f"payments.{index}.status": "pending"},
        {"$push": {f"payments.{index}.images": {"$each": urls}}, "$set": {"updated_at": utcnow()}},
    )
    if result.matched_count == 0:
        remove_uploads(urls)
        raise HTTPException(409, "Payment changed while uploading, please retry")
    payment = db["order"].find_one({"_id": order["_id"]})["payments"][index]
    return {"success": True, "payment": payment}


def _review_payment(db: Database, order_id: str, payment_id: str, new_status: str) -> Dict[str, Any]:
    order = _load_order(db, order_id)
    payment = next((p for p in order.get("payments", []) if p["id"] == payment_id), None)
    if payment is None:
        raise HTTPException(404, "Payment not found")
    if payment["status"] != "pending":
        raise HTTPException(400, f"Payment is already {payment['status']}")
    if new_status == "confirmed" and payment["amount"] > due_amount(order["total"], order.get("paid_amount", 0)):
        raise HTTPException(400, "Payment exceeds the amount due")
    payment["status"] = new_status
    save_order(db, order)
    logger.info("Payment %s on order %s %s", payment_id, order_id, new_status)
    return order


@router.patch("/{order_id}/payments/{payment_id}/confirm")
def confirm_payment(order_id: str, payment_id: str, admin=Depends(require_permission(PROCESS_ORDERS)),
                    db: Database = Depends(get_db)):
    order = _review_payment(db, order_id, payment_id, "confirmed")
    return {"success": True, "message": "Payment confirmed", "order": order_view(order)}


@router.patch("/{order_id}/payments/{payment_id}/reject")
def reject_payment(order_id: str, payment_id: str, admin=Depends(require_permission(PROCESS_ORDERS)),
                   db: Database = Depends(get_db)):
    order = _review_payment(db, order_id, payment_id, "rejected")
    return {"success": True, "message": "Payment rejected", "order": order_view(order)}


@router.patch("/{order_id}/status")
def update_order_status(order_id: str, req: OrderStatusUpdate, admin=Depends(require_permission(PROCESS_ORDERS)),
                        db: Database = Depends(get_db)):
    order = _load_order(db, order_id)
    if order["status"] == "cancelled":
        raise HTTPException(400, "Cannot change the status of a cancelled order")
    if req.status == "cancelled" and order["status"] == "delivered":
        raise HTTPException(400, "Delivered orders cannot be cancelled")

    if req.status == "cancelled":
        order = _cancel_and_restock(db, order)
    elif req.status == "delivered":
        _settle_due(order, "Settled on delivery")
    order["status"] = req.status
    if req.tracking_number:
        order["tracking_number"] = req.tracking_number
    order.setdefault("status_history", []).append({"status": req.status, "at": utcnow()})
    save_order(db, order, None if req.status == "cancelled" else {"status": {"$ne": "cancelled"}})
    logger.info("Order %s moved to %s", order_id, req.status)
    return {"success": True, "order": order_view(order)}


@router.patch("/{order_id}/payment")
def update_payment_status(order_id: str, req: PaymentStatusUpdate,
                          admin=Depends(require_permission(PROCESS_ORDERS)), db: Database = Depends(get_db)):
    order = _load_order(db, order_id)
    if req.payment_status == "paid":
        _settle_due(order, "Marked paid by admin", req.transaction_id)
    elif req.payment_status == PAYMENT_FAILED:
        if order.get("paid_amount", 0) > 0:
            raise HTTPException(400, "Order already has confirmed payments")
        order["payment_status"] = PAYMENT_FAILED
    else:
        for payment in order.get("payments", []):
            if payment["status"] == "confirmed":
                payment["status"] = "refunded"
        order["payment_status"] = PAYMENT_REFUNDED
    save_order(db, order)
    logger.info("Order %s payment marked %s", order_id, req.payment_status)
    return {"success": True, "order": order_view(order)}
