from datetime import datetime, timedelta
from typing import Any, Dict, List, Literal, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends
from pymongo.database import Database

from auth import require_permission
from config import settings
from database import as_utc, get_db, get_documents, utcnow
from permissions import VIEW_ANALYTICS
from pricing import due_amount

router = APIRouter(prefix="/api/analytics", tags=["analytics"])

# orders that have brought in money
EARNING = {"payment_status": {"$in": ["paid", "partial"]}}

GROUPINGS = {
    "day": {"year": {"$year": "$created_at"}, "month": {"$month": "$created_at"}, "day": {"$dayOfMonth": "$created_at"}},
    "week": {"year": {"$year": "$created_at"}, "week": {"$week": "$created_at"}},
    "month": {"year": {"$year": "$created_at"}, "month": {"$month": "$created_at"}},
}


def _revenue_totals(db: Database) -> Dict[str, float]:
    revenue, due, count = 0.0, 0.0, 0
    for order in db["order"].find(EARNING, {"total": 1, "paid_amount": 1}):
        revenue += order.get("paid_amount", 0)
        due += due_amount(order.get("total", 0), order.get("paid_amount", 0))
        count += 1
    return {"total_revenue": round(revenue, 2), "total_due": round(due, 2), "paying_orders": count}


def _best_sellers(db: Database, limit: int = 10) -> List[Dict[str, Any]]:
    return list(db["order"].aggregate([
        {"$match": {"status": {"$ne": "cancelled"}}},
        {"$unwind": "$items"},
        {"$group": {
            "_id": "$items.product_id",
            "name": {"$first": "$items.name"},
            "total_sold": {"$sum": "$items.quantity"},
            "revenue": {"$sum": {"$multiply": ["$items.price", "$items.quantity"]}},
        }},
        {"$sort": {"total_sold": -1}},
        {"$limit": limit},
    ]))


def _distribution(db: Database, field: str) -> List[Dict[str, Any]]:
    return list(db["order"].aggregate([
        {"$group": {"_id": f"${field}", "count": {"$sum": 1}, "total_amount": {"$sum": "$total"}}},
    ]))


@router.get("/dashboard")
def dashboard(period: int = 30, admin=Depends(require_permission(VIEW_ANALYTICS)), db: Database = Depends(get_db)):
    start = utcnow() - timedelta(days=period)
    overview = {
        "total_products": db["product"].count_documents({"status": "published"}),
        "total_orders": db["order"].count_documents({}),
        "total_users": db["user"].count_documents({"role": {"$in": ["customer", "user"]}}),
        "total_categories": db["category"].count_documents({}),
        "total_brands": db["brand"].count_documents({}),
        **_revenue_totals(db),
    }
    revenue_by_day = list(db["order"].aggregate([
        {"$match": {**EARNING, "created_at": {"$gte": start}}},
        {"$group": {"_id": GROUPINGS["day"], "total_revenue": {"$sum": "$paid_amount"}, "total_orders": {"$sum": 1}}},
        {"$sort": {"_id.year": 1, "_id.month": 1, "_id.day": 1}},
    ]))
    return {
        "success": True,
        "data": {
            "overview": overview,
            "revenue_data": revenue_by_day,
            "best_selling_products": _best_sellers(db),
            "order_status_distribution": _distribution(db, "status"),
            "payment_status_distribution": _distribution(db, "payment_status"),
            "low_stock_products": get_documents(
                db, "product",
                {"status": "published", "stock": {"$lte": settings.LOW_STOCK_THRESHOLD}},
                limit=10, sort=[("stock", 1)],
            ),
            "recent_orders": get_documents(db, "order", {}, limit=10, sort=[("created_at", -1)]),
        },
    }


@router.get("/sales-report")
def sales_report(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    group_by: Literal["day", "week", "month"] = "day",
    admin=Depends(require_permission(VIEW_ANALYTICS)),
    db: Database = Depends(get_db),
):
    match = dict(EARNING)
    if start_date and end_date:
        match["created_at"] = {"$gte": as_utc(start_date), "$lte": as_utc(end_date)}
    rows = list(db["order"].aggregate([
        {"$match": match},
        {"$group": {
            "_id": GROUPINGS[group_by],
            "total_orders": {"$sum": 1},
            "total_revenue": {"$sum": "$paid_amount"},
            "total_amount": {"$sum": "$total"},
            "average_order_value": {"$avg": "$total"},
        }},
        {"$sort": {"_id.year": 1, "_id.month": 1, "_id.week": 1, "_id.day": 1}},
    ]))
    for row in rows:
        row["total_due"] = due_amount(row["total_amount"], row["total_revenue"])
    return {"success": True, "data": rows}


@router.get("/top-customers")
def top_customers(limit: int = 10, admin=Depends(require_permission(VIEW_ANALYTICS)),
                  db: Database = Depends(get_db)):
    rows = list(db["order"].aggregate([
        {"$match": EARNING},
        {"$group": {
            "_id": "$user_id",
            "total_orders": {"$sum": 1},
            "total_spent": {"$sum": "$paid_amount"},
            "average_order_value": {"$avg": "$total"},
        }},
        {"$sort": {"total_spent": -1}},
        {"$limit": limit},
    ]))
    ids = [ObjectId(r["_id"]) for r in rows if ObjectId.is_valid(r["_id"])]
    users = {str(u["_id"]): u for u in db["user"].find({"_id": {"$in": ids}}, {"name": 1, "email": 1, "phone": 1})}
    customers = []
    for row in rows:
        user = users.get(row["_id"])
        if user is None:
            continue
        customers.append({
            "user_id": row["_id"],
            "name": user.get("name"),
            "email": user.get("email"),
            "phone": user.get("phone"),
            "total_orders": row["total_orders"],
            "total_spent": row["total_spent"],
            "average_order_value": row["average_order_value"],
        })
    return {"success": True, "data": customers}
