from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

from auth import require_permission
from database import create_document, find_or_404, get_db, get_documents, oid, serialize_doc, utcnow
from permissions import MANAGE_PRODUCT_BRANDS
from routers.common import contains, strip_unset, unique_slug
from schemas import Brand as BrandSchema, BrandUpdate

router = APIRouter(prefix="/api/brands", tags=["brands"])


@router.get("")
def list_brands(active: Optional[bool] = None, search: Optional[str] = None, db: Database = Depends(get_db)):
    query = {}
    if active is not None:
        query["is_active"] = active
    if search:
        query["name"] = contains(search)
    brands = get_documents(db, "brand", query, sort=[("name", 1)])
    return {"success": True, "count": len(brands), "brands": brands}


@router.get("/{brand_id}")
def get_brand(brand_id: str, db: Database = Depends(get_db)):
    brand = serialize_doc(find_or_404(db, "brand", brand_id, "Brand"))
    brand["product_count"] = db["product"].count_documents({"brand_id": brand_id})
    return {"success": True, "brand": brand}


@router.post("", status_code=201)
def create_brand(brand: BrandSchema, admin=Depends(require_permission(MANAGE_PRODUCT_BRANDS)),
                 db: Database = Depends(get_db)):
    data = brand.model_dump()
    data["slug"] = unique_slug(db, "brand", brand.slug or brand.name)
    brand_id = create_document(db, "brand", data)
    return {"success": True, "brand": serialize_doc(db["brand"].find_one({"_id": oid(brand_id)}))}


@router.put("/{brand_id}")
def update_brand(brand_id: str, req: BrandUpdate, admin=Depends(require_permission(MANAGE_PRODUCT_BRANDS)),
                 db: Database = Depends(get_db)):
    find_or_404(db, "brand", brand_id, "Brand")
    updates = strip_unset(req.model_dump())
    if "slug" in updates or "name" in updates:
        updates["slug"] = unique_slug(db, "brand", updates.get("slug") or updates["name"], exclude_id=brand_id)
    updates["updated_at"] = utcnow()
    db["brand"].update_one({"_id": oid(brand_id)}, {"$set": updates})
    return {"success": True, "brand": serialize_doc(db["brand"].find_one({"_id": oid(brand_id)}))}


@router.delete("/{brand_id}")
def delete_brand(brand_id: str, admin=Depends(require_permission(MANAGE_PRODUCT_BRANDS)),
                 db: Database = Depends(get_db)):
    brand = find_or_404(db, "brand", brand_id, "Brand")
    if db["product"].count_documents({"brand_id": brand_id}) > 0:
        raise HTTPException(400, "Cannot delete brand that still has products")
    db["brand"].delete_one({"_id": brand["_id"]})
    return {"success": True, "message": "Brand deleted successfully"}
