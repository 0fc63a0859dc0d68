import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

from auth import require_any_permission, require_permission
from database import as_utc, create_document, find_or_404, get_db, oid, paginate, serialize_doc, utcnow
from inventory import StockError, StockReservation
from permissions import PROCESS_SALES, VIEW_ANALYTICS, VIEW_REPORTS
from pricing import find_variant, sale_change, unit_price, variant_label
from routers.common import contains, stock_http_error
from schemas import SaleCreate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sales", tags=["sales"])


def next_sale_number(db: Database) -> str:
    sequence = db["sale"].count_documents({}) + 1
    return f"SALE-{int(time.time() * 1000)}-{sequence:04d}"


def _date_filter(start_date: Optional[datetime], end_date: Optional[datetime]) -> Dict[str, Any]:
    bounds = {}
    if start_date:
        bounds["$gte"] = as_utc(start_date)
    if end_date:
        bounds["$lte"] = as_utc(end_date)
    return {"sale_date": bounds} if bounds else {}


@router.post("", status_code=201)
def create_sale(req: SaleCreate, cashier=Depends(require_permission(PROCESS_SALES)), db: Database = Depends(get_db)):
    try:
        with StockReservation(db) as stock:
            items = []
            for line in req.items:
                product = stock.take(line.product_id, line.quantity, line.variant_id)
                variant = find_variant(product, line.variant_id)
                price = line.price if line.price is not None else unit_price(product, variant)
                items.append({
                    "product_id": line.product_id,
                    "variant_id": line.variant_id,
                    "variant_label": variant_label(variant),
                    "name": product["name"],
                    "quantity": line.quantity,
                    "price": price,
                    "total_price": round(price * line.quantity, 2),
                })

            subtotal = round(sum(i["total_price"] for i in items), 2)
            total = round(subtotal - req.discount + req.tax, 2)
            if total < 0:
                raise HTTPException(400, "Discount cannot exceed the sale amount")
            if req.payment_method == "cash" and req.amount_received < total:
                raise HTTPException(400, "Amount received is less than the total")

            sale = {
                "sale_number": next_sale_number(db),
                "items": items,
                "customer": req.customer.model_dump(),
                "subtotal": subtotal,
                "discount": req.discount,
                "tax": req.tax,
                "total": total,
                "payment_method": req.payment_method,
                "amount_received": req.amount_received,
                "change": sale_change(req.payment_method, req.amount_received, total),
                "notes": req.notes,
                "cashier_id": str(cashier["_id"]),
                "sale_date": utcnow(),
            }
            sale_id = create_document(db, "sale", sale)
    except StockError as exc:
        raise stock_http_error(exc)

    logger.info("Sale %s completed for %.2f", sale["sale_number"], total)
    return {"success": True, "sale": serialize_doc(db["sale"].find_one({"_id": oid(sale_id)}))}


@router.get("")
def list_sales(
    search: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    payment_method: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    admin=Depends(require_permission(VIEW_REPORTS)),
    db: Database = Depends(get_db),
):
    query = _date_filter(start_date, end_date)
    if search:
        query["$or"] = [
            {"sale_number": contains(search)},
            {"customer.name": contains(search)},
            {"customer.phone": contains(search)},
        ]
    if payment_method:
        query["payment_method"] = payment_method
    sales, pagination = paginate(db, "sale", query, page, limit, sort=[("sale_date", -1)])
    return {"success": True, "sales": sales, "pagination": pagination}


@router.get("/analytics")
def sales_analytics(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    admin=Depends(require_any_permission(VIEW_REPORTS, VIEW_ANALYTICS)),
    db: Database = Depends(get_db),
):
    match = _date_filter(start_date, end_date)
    revenue = list(db["sale"].aggregate([
        {"$match": match},
        {"$group": {"_id": None, "total_revenue": {"$sum": "$total"}}},
    ]))
    payment_methods = list(db["sale"].aggregate([
        {"$match": match},
        {"$group": {"_id": "$payment_method", "count": {"$sum": 1}, "total_amount": {"$sum": "$total"}}},
    ]))
    top_products = list(db["sale"].aggregate([
        {"$match": match},
        {"$unwind": "$items"},
        {"$group": {
            "_id": "$items.product_id",
            "product_name": {"$first": "$items.name"},
            "total_quantity": {"$sum": "$items.quantity"},
            "total_revenue": {"$sum": "$items.total_price"},
        }},
        {"$sort": {"total_quantity": -1}},
        {"$limit": 10},
    ]))
    daily = list(db["sale"].aggregate([
        {"$match": {"sale_date": {"$gte": utcnow() - timedelta(days=30)}}},
        {"$group": {
            "_id": {
                "year": {"$year": "$sale_date"},
                "month": {"$month": "$sale_date"},
                "day": {"$dayOfMonth": "$sale_date"},
            },
            "total_sales": {"$sum": 1},
            "total_revenue": {"$sum": "$total"},
        }},
        {"$sort": {"_id.year": 1, "_id.month": 1, "_id.day": 1}},
    ]))
    return {
        "success": True,
        "analytics": {
            "total_sales": db["sale"].count_documents(match),
            "total_revenue": revenue[0]["total_revenue"] if revenue else 0,
            "payment_method_stats": payment_methods,
            "top_products": top_products,
            "daily_sales": daily,
        },
    }


@router.get("/{sale_id}")
def get_sale(sale_id: str, admin=Depends(require_permission(VIEW_REPORTS)), db: Database = Depends(get_db)):
    return {"success": True, "sale": serialize_doc(find_or_404(db, "sale", sale_id, "Sale"))}
