import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

from auth import require_permission
from database import as_utc, create_document, find_or_404, get_db, oid, paginate, serialize_doc, utcnow
from inventory import StockError, StockReservation
from permissions import MANAGE_INVENTORY, VIEW_INVENTORY
from pricing import due_amount, purchase_totals, status_for_amount
from routers.common import contains, stock_http_error, strip_unset
from schemas import PurchaseCreate, PurchaseUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/purchases", tags=["purchases"])


def purchase_view(db: Database, purchase: Dict[str, Any]) -> Dict[str, Any]:
    purchase = serialize_doc(purchase)
    purchase["due_amount"] = due_amount(purchase["total_amount"], purchase.get("paid_amount", 0))
    supplier_id = purchase.get("supplier_id")
    supplier = db["supplier"].find_one({"_id": ObjectId(supplier_id)}) if ObjectId.is_valid(supplier_id) else None
    purchase["supplier"] = {"id": supplier_id, "name": supplier["name"]} if supplier else None
    return purchase


@router.get("")
def list_purchases(
    search: Optional[str] = None,
    status: Optional[str] = None,
    supplier: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    admin=Depends(require_permission(VIEW_INVENTORY)),
    db: Database = Depends(get_db),
):
    query: Dict[str, Any] = {}
    if search:
        query["invoice_number"] = contains(search)
    if status:
        query["status"] = status
    if supplier:
        query["supplier_id"] = supplier
    purchases, pagination = paginate(db, "purchase", query, page, limit, sort=[("purchase_date", -1)])
    for p in purchases:
        p["due_amount"] = due_amount(p["total_amount"], p.get("paid_amount", 0))
    return {"success": True, "purchases": purchases, "pagination": pagination}


@router.get("/{purchase_id}")
def get_purchase(purchase_id: str, admin=Depends(require_permission(VIEW_INVENTORY)),
                 db: Database = Depends(get_db)):
    purchase = find_or_404(db, "purchase", purchase_id, "Purchase")
    return {"success": True, "purchase": purchase_view(db, purchase)}


@router.post("", status_code=201)
def create_purchase(req: PurchaseCreate, admin=Depends(require_permission(MANAGE_INVENTORY)),
                    db: Database = Depends(get_db)):
    if db["purchase"].find_one({"invoice_number": req.invoice_number}):
        raise HTTPException(409, "Invoice number already exists")
    if not db["supplier"].find_one({"_id": oid(req.supplier_id)}):
        raise HTTPException(400, "Supplier not found")

    items = [
        {**item.model_dump(), "total_cost": round(item.quantity * item.unit_cost, 2)}
        for item in req.items
    ]
    total_amount = req.total_amount if req.total_amount is not None else purchase_totals(items)
    purchase = {
        "invoice_number": req.invoice_number,
        "supplier_id": req.supplier_id,
        "purchase_date": as_utc(req.purchase_date) or utcnow(),
        "items": items,
        "total_amount": total_amount,
        "paid_amount": req.paid_amount,
        "payment_status": status_for_amount(req.paid_amount, total_amount),
        "payment_method": req.payment_method,
        "status": "pending",
        "notes": req.notes,
        "created_by": str(admin["_id"]),
    }
    try:
        with StockReservation(db) as stock:
            for item in items:
                stock.put(item["product_id"], item["quantity"], item.get("variant_id"))
            purchase_id = create_document(db, "purchase", purchase)
    except StockError as exc:
        raise stock_http_error(exc)

    logger.info("Purchase %s received, %d line(s)", req.invoice_number, len(items))
    return {"success": True, "purchase": purchase_view(db, db["purchase"].find_one({"_id": oid(purchase_id)}))}


@router.put("/{purchase_id}")
def update_purchase(purchase_id: str, req: PurchaseUpdate, admin=Depends(require_permission(MANAGE_INVENTORY)),
                    db: Database = Depends(get_db)):
    purchase = find_or_404(db, "purchase", purchase_id, "Purchase")
    updates = strip_unset(req.model_dump())
    paid_amount = updates.get("paid_amount", purchase.get("paid_amount", 0))
    updates["payment_status"] = status_for_amount(paid_amount, purchase["total_amount"])
    updates["updated_at"] = utcnow()
    db["purchase"].update_one({"_id": purchase["_id"]}, {"$set": updates})
    return {"success": True, "purchase": purchase_view(db, db["purchase"].find_one({"_id": purchase["_id"]}))}


@router.delete("/{purchase_id}")
def delete_purchase(purchase_id: str, admin=Depends(require_permission(MANAGE_INVENTORY)),
                    db: Database = Depends(get_db)):
    purchase = find_or_404(db, "purchase", purchase_id, "Purchase")
    if purchase["status"] != "pending":
        raise HTTPException(400, "Only pending purchases can be deleted")
    try:
        with StockReservation(db) as stock:
            # stock already sold cannot be taken back; the whole revert fails instead
            for item in purchase["items"]:
                stock.take(item["product_id"], item["quantity"], item.get("variant_id"))
            db["purchase"].delete_one({"_id": purchase["_id"]})
    except StockError as exc:
        raise stock_http_error(exc)
    logger.info("Purchase %s deleted and stock reverted", purchase["invoice_number"])
    return {"success": True, "message": "Purchase deleted successfully"}
