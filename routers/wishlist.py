from typing import Any, Dict

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

from auth import get_current_user
from database import get_db, oid, serialize_doc, utcnow
from pricing import with_current_price
from schemas import WishlistAdd

router = APIRouter(prefix="/api/wishlist", tags=["wishlist"])


def _load(db: Database, user_id: str) -> Dict[str, Any]:
    wishlist = db["wishlist"].find_one({"user_id": user_id})
    if wishlist is None:
        now = utcnow()
        wishlist = {"user_id": user_id, "product_ids": [], "created_at": now, "updated_at": now}
        wishlist["_id"] = db["wishlist"].insert_one(wishlist).inserted_id
    return wishlist


def _response(db: Database, wishlist: Dict[str, Any]) -> Dict[str, Any]:
    ids = [ObjectId(p) for p in wishlist.get("product_ids", []) if ObjectId.is_valid(p)]
    products = {str(p["_id"]): p for p in db["product"].find({"_id": {"$in": ids}})}
    # keep the order items were added in
    items = [with_current_price(serialize_doc(products[p])) for p in wishlist.get("product_ids", []) if p in products]
    return {"id": str(wishlist["_id"]), "products": items, "count": len(items)}


@router.get("")
def get_wishlist(current=Depends(get_current_user), db: Database = Depends(get_db)):
    return {"success": True, "wishlist": _response(db, _load(db, str(current["_id"])))}


@router.post("")
def add_to_wishlist(req: WishlistAdd, current=Depends(get_current_user), db: Database = Depends(get_db)):
    if not db["product"].find_one({"_id": oid(req.product_id)}, {"_id": 1}):
        raise HTTPException(404, "Product not found")
    wishlist = _load(db, str(current["_id"]))
    if req.product_id in wishlist["product_ids"]:
        raise HTTPException(400, "Product already in wishlist")
    db["wishlist"].update_one(
        {"_id": wishlist["_id"]},
        {"$addToSet": {"product_ids": req.product_id}, "$set": {"updated_at": utcnow()}},
    )
    wishlist = db["wishlist"].find_one({"_id": wishlist["_id"]})
    return {"success": True, "message": "Added to wishlist", "wishlist": _response(db, wishlist)}


@router.delete("/{product_id}")
def remove_from_wishlist(product_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    wishlist = _load(db, str(current["_id"]))
    if product_id not in wishlist["product_ids"]:
        raise HTTPException(404, "Product not in wishlist")
    db["wishlist"].update_one(
        {"_id": wishlist["_id"]},
        {"$pull": {"product_ids": product_id}, "$set": {"updated_at": utcnow()}},
    )
    wishlist = db["wishlist"].find_one({"_id": wishlist["_id"]})
    return {"success": True, "message": "Removed from wishlist", "wishlist": _response(db, wishlist)}


@router.delete("")
def clear_wishlist(current=Depends(get_current_user), db: Database = Depends(get_db)):
    wishlist = _load(db, str(current["_id"]))
    db["wishlist"].update_one({"_id": wishlist["_id"]}, {"$set": {"product_ids": [], "updated_at": utcnow()}})
    return {"success": True, "message": "Wishlist cleared"}


@router.get("/check/{product_id}")
def check_wishlist(product_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    wishlist = db["wishlist"].find_one({"user_id": str(current["_id"])})
    return {"success": True, "in_wishlist": bool(wishlist and product_id in wishlist.get("product_ids", []))}
