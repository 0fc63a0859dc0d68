import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

from auth import get_current_user, require_permission
from database import create_document, find_or_404, get_db, oid, paginate, serialize_doc, utcnow
from permissions import MODERATE_REVIEWS, VIEW_REVIEWS
from schemas import AdminResponse, ModerationUpdate, Review as ReviewSchema, ReviewCreate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reviews", tags=["reviews"])


def recompute_product_rating(db: Database, product_id: str) -> Dict[str, Any]:
    """Refresh ``rating``/``num_reviews`` on the product from its approved reviews."""
    ratings = [r["rating"] for r in db["review"].find({"product_id": product_id, "status": "approved"}, {"rating": 1})]
    summary = {
        "rating": round(sum(ratings) / len(ratings), 2) if ratings else 0,
        "num_reviews": len(ratings),
    }
    db["product"].update_one({"_id": oid(product_id)}, {"$set": summary})
    return summary


def create_review(db: Database, user: Dict[str, Any], req: ReviewCreate) -> Dict[str, Any]:
    order = db["order"].find_one({"_id": oid(req.order_id)})
    if not order:
        raise HTTPException(404, "Order not found")
    if order["user_id"] != str(user["_id"]):
        raise HTTPException(403, "Not authorized to review this order")
    if not any(item["product_id"] == req.product_id for item in order.get("items", [])):
        raise HTTPException(400, "Product not found in this order")
    if order.get("status") == "cancelled":
        raise HTTPException(400, "Cancelled orders cannot be reviewed")
    existing = db["review"].find_one({"user_id": str(user["_id"]), "product_id": req.product_id, "order_id": req.order_id})
    if existing:
        raise HTTPException(400, "You have already reviewed this product for this order")

    review = ReviewSchema(
        user_id=str(user["_id"]),
        user_name=user.get("name", ""),
        verified=True,
        **req.model_dump(),
    )
    review_id = create_document(db, "review", review)
    logger.info("Review %s submitted for product %s", review_id, req.product_id)
    return serialize_doc(db["review"].find_one({"_id": oid(review_id)}))


@router.post("", status_code=201)
def submit_review(req: ReviewCreate, current=Depends(get_current_user), db: Database = Depends(get_db)):
    return {"success": True, "review": create_review(db, current, req)}


@router.get("/product/{product_id}")
def product_reviews(product_id: str, page: int = 1, limit: int = 10, db: Database = Depends(get_db)):
    query = {"product_id": product_id, "status": "approved"}
    reviews, pagination = paginate(db, "review", query, page, limit)
    distribution = {str(star): 0 for star in range(1, 6)}
    for r in db["review"].find(query, {"rating": 1}):
        distribution[str(r["rating"])] += 1
    total = sum(distribution.values())
    average = round(sum(int(k) * v for k, v in distribution.items()) / total, 2) if total else 0
    return {
        "success": True,
        "reviews": reviews,
        "pagination": pagination,
        "stats": {"average_rating": average, "total_reviews": total, "distribution": distribution},
    }


@router.get("")
def list_reviews(
    status: Optional[str] = None,
    product_id: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    admin=Depends(require_permission(VIEW_REVIEWS)),
    db: Database = Depends(get_db),
):
    query = {}
    if status:
        query["status"] = status
    if product_id:
        query["product_id"] = product_id
    reviews, pagination = paginate(db, "review", query, page, limit)
    return {"success": True, "reviews": reviews, "pagination": pagination}


@router.patch("/{review_id}/status")
def moderate_review(
    review_id: str,
    req: ModerationUpdate,
    admin=Depends(require_permission(MODERATE_REVIEWS)),
    db: Database = Depends(get_db),
):
    review = find_or_404(db, "review", review_id, "Review")
    db["review"].update_one({"_id": review["_id"]}, {"$set": {"status": req.status, "updated_at": utcnow()}})
    summary = recompute_product_rating(db, review["product_id"])
    logger.info("Review %s marked %s", review_id, req.status)
    review = serialize_doc(db["review"].find_one({"_id": review["_id"]}))
    return {"success": True, "review": review, "product_rating": summary}


@router.post("/{review_id}/response")
def respond_to_review(
    review_id: str,
    req: AdminResponse,
    admin=Depends(require_permission(MODERATE_REVIEWS)),
    db: Database = Depends(get_db),
):
    review = find_or_404(db, "review", review_id, "Review")
    db["review"].update_one(
        {"_id": review["_id"]},
        {"$set": {"admin_response": req.message, "updated_at": utcnow()}},
    )
    return {"success": True, "review": serialize_doc(db["review"].find_one({"_id": review["_id"]}))}


@router.delete("/{review_id}")
def delete_review(review_id: str, admin=Depends(require_permission(MODERATE_REVIEWS)),
                  db: Database = Depends(get_db)):
    review = find_or_404(db, "review", review_id, "Review")
    db["review"].delete_one({"_id": review["_id"]})
    recompute_product_rating(db, review["product_id"])
    return {"success": True, "message": "Review deleted successfully"}
