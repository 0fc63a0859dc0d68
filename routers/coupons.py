from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

from auth import require_admin
from database import as_utc, create_document, find_or_404, get_db, get_documents, oid, serialize_doc
from schemas import Coupon as CouponSchema

router = APIRouter(prefix="/api/coupons", tags=["coupons"])


@router.get("")
def list_coupons(active: Optional[bool] = None, admin=Depends(require_admin), db: Database = Depends(get_db)):
    query = {} if active is None else {"is_active": active}
    coupons = get_documents(db, "coupon", query, sort=[("created_at", -1)])
    return {"success": True, "count": len(coupons), "coupons": coupons}


@router.post("", status_code=201)
def create_coupon(coupon: CouponSchema, admin=Depends(require_admin), db: Database = Depends(get_db)):
    data = coupon.model_dump()
    data["code"] = data["code"].strip().upper()
    data["expires_at"] = as_utc(data["expires_at"])
    if coupon.type == "percentage" and coupon.value > 100:
        raise HTTPException(400, "Percentage coupons cannot exceed 100")
    if db["coupon"].find_one({"code": data["code"]}):
        raise HTTPException(409, "Coupon code already exists")
    coupon_id = create_document(db, "coupon", data)
    return {"success": True, "coupon": serialize_doc(db["coupon"].find_one({"_id": oid(coupon_id)}))}


@router.delete("/{coupon_id}")
def delete_coupon(coupon_id: str, admin=Depends(require_admin), db: Database = Depends(get_db)):
    coupon = find_or_404(db, "coupon", coupon_id, "Coupon")
    db["coupon"].delete_one({"_id": coupon["_id"]})
    db["cart"].update_many({"coupon_id": coupon_id}, {"$set": {"coupon_id": None}})
    return {"success": True, "message": "Coupon deleted successfully"}
