import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

from auth import require_permission
from database import create_document, find_or_404, get_db, oid, paginate, serialize_doc, utcnow
from permissions import MANAGE_SUPPLIERS, VIEW_SUPPLIERS
from routers.common import contains, strip_unset
from schemas import Supplier as SupplierSchema, SupplierUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/suppliers", tags=["suppliers"])


def supplier_stats(db: Database, supplier_id: Optional[str] = None) -> Dict[str, Any]:
    match = {"supplier_id": supplier_id} if supplier_id else {}
    pipeline = [
        {"$match": match},
        {"$group": {
            "_id": None,
            "total_purchases": {"$sum": 1},
            "total_amount": {"$sum": "$total_amount"},
            "total_paid": {"$sum": "$paid_amount"},
        }},
    ]
    rows = list(db["purchase"].aggregate(pipeline))
    stats = rows[0] if rows else {"total_purchases": 0, "total_amount": 0, "total_paid": 0}
    stats.pop("_id", None)
    stats["total_due"] = round(stats["total_amount"] - stats["total_paid"], 2)
    return stats


@router.get("")
def list_suppliers(
    search: Optional[str] = None,
    active: Optional[bool] = None,
    page: int = 1,
    limit: int = 20,
    admin=Depends(require_permission(VIEW_SUPPLIERS)),
    db: Database = Depends(get_db),
):
    query: Dict[str, Any] = {}
    if search:
        query["$or"] = [
            {"name": contains(search)},
            {"email": contains(search)},
            {"phone": contains(search)},
        ]
    if active is not None:
        query["is_active"] = active
    suppliers, pagination = paginate(db, "supplier", query, page, limit, sort=[("name", 1)])
    return {"success": True, "suppliers": suppliers, "pagination": pagination}


@router.get("/stats")
def all_supplier_stats(admin=Depends(require_permission(VIEW_SUPPLIERS)), db: Database = Depends(get_db)):
    stats = supplier_stats(db)
    stats["total_suppliers"] = db["supplier"].count_documents({})
    stats["active_suppliers"] = db["supplier"].count_documents({"is_active": True})
    return {"success": True, "stats": stats}


@router.get("/stats/{supplier_id}")
def one_supplier_stats(supplier_id: str, admin=Depends(require_permission(VIEW_SUPPLIERS)),
                       db: Database = Depends(get_db)):
    find_or_404(db, "supplier", supplier_id, "Supplier")
    return {"success": True, "stats": supplier_stats(db, supplier_id)}


@router.get("/{supplier_id}")
def get_supplier(supplier_id: str, admin=Depends(require_permission(VIEW_SUPPLIERS)),
                 db: Database = Depends(get_db)):
    return {"success": True, "supplier": serialize_doc(find_or_404(db, "supplier", supplier_id, "Supplier"))}


@router.post("", status_code=201)
def create_supplier(supplier: SupplierSchema, admin=Depends(require_permission(MANAGE_SUPPLIERS)),
                    db: Database = Depends(get_db)):
    supplier_id = create_document(db, "supplier", supplier)
    logger.info("Supplier %s created", supplier_id)
    return {"success": True, "supplier": serialize_doc(db["supplier"].find_one({"_id": oid(supplier_id)}))}


@router.put("/{supplier_id}")
def update_supplier(supplier_id: str, req: SupplierUpdate, admin=Depends(require_permission(MANAGE_SUPPLIERS)),
                    db: Database = Depends(get_db)):
    supplier = find_or_404(db, "supplier", supplier_id, "Supplier")
    updates = strip_unset(req.model_dump())
    updates["updated_at"] = utcnow()
    db["supplier"].update_one({"_id": supplier["_id"]}, {"$set": updates})
    return {"success": True, "supplier": serialize_doc(db["supplier"].find_one({"_id": supplier["_id"]}))}


@router.delete("/{supplier_id}")
def delete_supplier(supplier_id: str, admin=Depends(require_permission(MANAGE_SUPPLIERS)),
                    db: Database = Depends(get_db)):
    supplier = find_or_404(db, "supplier", supplier_id, "Supplier")
    if db["purchase"].count_documents({"supplier_id": supplier_id}) > 0:
        raise HTTPException(400, "Cannot delete supplier with existing purchases")
    db["supplier"].delete_one({"_id": supplier["_id"]})
    return {"success": True, "message": "Supplier deleted successfully"}
