import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from pymongo import ReturnDocument
from pymongo.database import Database

from auth import get_current_user, require_permission
from database import as_utc, create_document, find_or_404, get_db, new_id, oid, paginate, serialize_doc, utcnow
from inventory import StockError, bulk_set_stock, update_variant_fields
from permissions import CREATE_PRODUCTS, DELETE_PRODUCTS, EDIT_PRODUCTS, MANAGE_INVENTORY
from pricing import find_variant, with_current_price
from routers.common import contains, stock_http_error, strip_unset, unique_slug
from routers.reviews import create_review
from schemas import (
    BulkStockUpdate,
    Product as ProductSchema,
    ProductStatusUpdate,
    ProductUpdate,
    ReviewCreate,
    Variant,
    VariantUpdate,
)
from uploads import remove_uploads, save_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])

SORT_FIELDS = {"created_at", "price", "name", "rating", "stock", "views", "num_reviews"}


def product_view(doc: Dict[str, Any]) -> Dict[str, Any]:
    return with_current_price(serialize_doc(doc))


def _check_references(db: Database, category_id: Optional[str], brand_id: Optional[str]):
    if category_id and not db["category"].find_one({"_id": oid(category_id)}):
        raise HTTPException(400, "Category not found")
    if brand_id and not db["brand"].find_one({"_id": oid(brand_id)}):
        raise HTTPException(400, "Brand not found")


def _normalize_dates(data: Dict[str, Any]) -> Dict[str, Any]:
    for key in ("flash_sale_start_date", "flash_sale_end_date"):
        if data.get(key) is not None:
            data[key] = as_utc(data[key])
    return data


def _check_flash_sale(data: Dict[str, Any]):
    start, end = data.get("flash_sale_start_date"), data.get("flash_sale_end_date")
    if data.get("is_flash_sale"):
        if data.get("flash_sale_price") is None or start is None or end is None:
            raise HTTPException(400, "Flash sale needs a price, start date and end date")
    if start and end and start > end:
        raise HTTPException(400, "Flash sale start date must be before end date")


def _variant_doc(variant: Variant) -> Dict[str, Any]:
    return {"id": new_id(), **variant.model_dump()}


# ---------- Read ----------

@router.get("")
def list_products(
    page: int = 1,
    limit: int = 12,
    search: Optional[str] = None,
    category: Optional[str] = None,
    brand: Optional[str] = None,
    status: Optional[str] = None,
    featured: Optional[bool] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    tags: Optional[str] = None,
    is_flash_sale: Optional[bool] = None,
    is_best_sale: Optional[bool] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    db: Database = Depends(get_db),
):
    query: Dict[str, Any] = {}
    if search:
        query["$or"] = [
            {"name": contains(search)},
            {"description": contains(search)},
            {"short_description": contains(search)},
            {"tags": contains(search)},
        ]
    if category:
        query["category_id"] = category
    if brand:
        query["brand_id"] = brand
    if status:
        query["status"] = status
    if featured is not None:
        query["featured"] = featured
    if is_flash_sale is not None:
        query["is_flash_sale"] = is_flash_sale
        if is_flash_sale:
            # Only windows that are running right now
            now = utcnow()
            query["flash_sale_start_date"] = {"$lte": now}
            query["flash_sale_end_date"] = {"$gte": now}
    if is_best_sale is not None:
        query["is_best_sale"] = is_best_sale
    if min_price is not None or max_price is not None:
        price_filter = {}
        if min_price is not None:
            price_filter["$gte"] = min_price
        if max_price is not None:
            price_filter["$lte"] = max_price
        query["price"] = price_filter
    if tags:
        query["tags"] = {"$in": [t.strip() for t in tags.split(",") if t.strip()]}

    if sort_by not in SORT_FIELDS:
        raise HTTPException(400, f"Cannot sort by {sort_by}")
    sort = [(sort_by, -1 if sort_order == "desc" else 1)]
    products, pagination = paginate(db, "product", query, page, limit, sort)
    return {"success": True, "products": [with_current_price(p) for p in products], "pagination": pagination}


@router.get("/search")
def search_suggestions(q: str = Query(..., min_length=1), limit: int = 8, db: Database = Depends(get_db)):
    cursor = db["product"].find(
        {"status": "published", "name": contains(q)},
        {"name": 1, "slug": 1, "price": 1, "images": 1},
    ).limit(limit)
    suggestions = [
        {"id": str(d["_id"]), "name": d.get("name"), "slug": d.get("slug"), "price": d.get("price"),
         "image": (d.get("images") or [None])[0]}
        for d in cursor
    ]
    return {"success": True, "products": suggestions}


@router.get("/featured")
def featured_products(limit: int = 8, db: Database = Depends(get_db)):
    cursor = db["product"].find({"featured": True, "status": "published"}).sort([("created_at", -1)]).limit(limit)
    return {"success": True, "products": [product_view(d) for d in cursor]}


@router.get("/slug/{slug}")
def get_product_by_slug(slug: str, db: Database = Depends(get_db)):
    product = db["product"].find_one_and_update(
        {"slug": slug, "status": "published"}, {"$inc": {"views": 1}}, return_document=ReturnDocument.AFTER
    )
    if not product:
        raise HTTPException(404, "Product not found")
    return {"success": True, "product": _with_reviews(db, product_view(product))}


def _with_reviews(db: Database, product: Dict[str, Any]) -> Dict[str, Any]:
    reviews = db["review"].find({"product_id": product["id"], "status": "approved"}).sort([("created_at", -1)]).limit(10)
    product["reviews"] = [serialize_doc(r) for r in reviews]
    return product


@router.put("/bulk-stock-update")
def bulk_stock_update(req: BulkStockUpdate, admin=Depends(require_permission(MANAGE_INVENTORY)),
                      db: Database = Depends(get_db)):
    updated, missing = bulk_set_stock(db, [item.model_dump() for item in req.items])
    logger.info("Bulk stock update: %d updated, %d missing", updated, len(missing))
    return {"success": True, "updated": updated, "not_found": missing}


@router.get("/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    product = db["product"].find_one_and_update(
        {"_id": oid(product_id)}, {"$inc": {"views": 1}}, return_document=ReturnDocument.AFTER
    )
    if not product:
        raise HTTPException(404, "Product not found")
    return {"success": True, "product": _with_reviews(db, product_view(product))}


@router.get("/{product_id}/related")
def related_products(product_id: str, limit: int = 8, db: Database = Depends(get_db)):
    product = find_or_404(db, "product", product_id, "Product")
    cursor = db["product"].find({
        "_id": {"$ne": product["_id"]},
        "category_id": product.get("category_id"),
        "status": "published",
    }).limit(limit)
    return {"success": True, "products": [product_view(d) for d in cursor]}


@router.get("/{product_id}/variants")
def product_variants(product_id: str, db: Database = Depends(get_db)):
    product = find_or_404(db, "product", product_id, "Product")
    return {
        "success": True,
        "has_variations": product.get("has_variations", False),
        "variation_types": product.get("variation_types", []),
        "variants": product.get("variants", []),
    }


@router.get("/{product_id}/reviews")
def product_reviews(product_id: str, db: Database = Depends(get_db)):
    find_or_404(db, "product", product_id, "Product")
    reviews = db["review"].find({"product_id": product_id, "status": "approved"}).sort([("created_at", -1)])
    return {"success": True, "reviews": [serialize_doc(r) for r in reviews]}


@router.post("/{product_id}/reviews", status_code=201)
def add_product_review(product_id: str, req: ReviewCreate, current=Depends(get_current_user),
                       db: Database = Depends(get_db)):
    if req.product_id != product_id:
        raise HTTPException(400, "Mismatched product id")
    find_or_404(db, "product", product_id, "Product")
    return {"success": True, "review": create_review(db, current, req)}


# ---------- Write ----------

@router.post("", status_code=201)
def create_product(product: ProductSchema, admin=Depends(require_permission(CREATE_PRODUCTS)),
                   db: Database = Depends(get_db)):
    _check_references(db, product.category_id, product.brand_id)
    data = _normalize_dates(product.model_dump())
    _check_flash_sale(data)
    if data["has_variations"] and not data["variants"]:
        raise HTTPException(400, "Products with variations need at least one variant")
    data["slug"] = unique_slug(db, "product", product.slug or product.name)
    data["variants"] = [_variant_doc(v) for v in product.variants]
    data.update({"rating": 0, "num_reviews": 0, "views": 0, "created_by": str(admin["_id"])})
    product_id = create_document(db, "product", data)
    logger.info("Product %s created by %s", product_id, admin["_id"])
    return {"success": True, "product": product_view(db["product"].find_one({"_id": oid(product_id)}))}


@router.put("/{product_id}")
def update_product(product_id: str, req: ProductUpdate, admin=Depends(require_permission(EDIT_PRODUCTS)),
                   db: Database = Depends(get_db)):
    existing = find_or_404(db, "product", product_id, "Product")
    updates = _normalize_dates(strip_unset(req.model_dump()))
    if not updates:
        raise HTTPException(400, "No updates provided")
    _check_references(db, updates.get("category_id"), updates.get("brand_id"))
    _check_flash_sale({**existing, **updates})
    if "slug" in updates or "name" in updates:
        updates["slug"] = unique_slug(db, "product", updates.get("slug") or updates["name"], exclude_id=product_id)
    if "images" in updates:
        dropped = set(existing.get("images", [])) - set(updates["images"])
        remove_uploads(dropped)
    updates["updated_at"] = utcnow()
    db["product"].update_one({"_id": existing["_id"]}, {"$set": updates})
    return {"success": True, "product": product_view(db["product"].find_one({"_id": existing["_id"]}))}


@router.patch("/{product_id}/status")
def update_product_status(product_id: str, req: ProductStatusUpdate,
                          admin=Depends(require_permission(EDIT_PRODUCTS)), db: Database = Depends(get_db)):
    product = find_or_404(db, "product", product_id, "Product")
    db["product"].update_one({"_id": product["_id"]}, {"$set": {"status": req.status, "updated_at": utcnow()}})
    return {"success": True, "product": product_view(db["product"].find_one({"_id": product["_id"]}))}


@router.delete("/{product_id}")
def delete_product(product_id: str, admin=Depends(require_permission(DELETE_PRODUCTS)),
                   db: Database = Depends(get_db)):
    product = find_or_404(db, "product", product_id, "Product")
    files: List[str] = list(product.get("images", []))
    for variant in product.get("variants", []):
        files.extend(variant.get("images", []))
    db["product"].delete_one({"_id": product["_id"]})
    removed = remove_uploads(files)
    db["cart"].update_many({}, {"$pull": {"items": {"product_id": product_id}}})
    db["wishlist"].update_many({}, {"$pull": {"product_ids": product_id}})
    logger.info("Product %s deleted, %d file(s) removed", product_id, removed)
    return {"success": True, "message": "Product deleted successfully"}


@router.post("/{product_id}/images", status_code=201)
def upload_product_images(product_id: str, files: List[UploadFile] = File(...),
                          admin=Depends(require_permission(EDIT_PRODUCTS)), db: Database = Depends(get_db)):
    product = find_or_404(db, "product", product_id, "Product")
    urls = [save_upload(f) for f in files]
    db["product"].update_one(
        {"_id": product["_id"]},
        {"$push": {"images": {"$each": urls}}, "$set": {"updated_at": utcnow()}},
    )
    return {"success": True, "images": product.get("images", []) + urls}


# ---------- Variants ----------

@router.post("/{product_id}/variants", status_code=201)
def add_variant(product_id: str, variant: Variant, admin=Depends(require_permission(EDIT_PRODUCTS)),
                db: Database = Depends(get_db)):
    product = find_or_404(db, "product", product_id, "Product")
    if any(v.get("sku") == variant.sku for v in product.get("variants", [])):
        raise HTTPException(409, f"Variant SKU {variant.sku} already exists")
    doc = _variant_doc(variant)
    db["product"].update_one(
        {"_id": product["_id"]},
        {"$push": {"variants": doc}, "$set": {"has_variations": True, "updated_at": utcnow()}},
    )
    return {"success": True, "variant": doc}


@router.put("/{product_id}/variants/{variant_id}")
def update_variant(product_id: str, variant_id: str, req: VariantUpdate,
                   admin=Depends(require_permission(EDIT_PRODUCTS)), db: Database = Depends(get_db)):
    product = find_or_404(db, "product", product_id, "Product")
    if find_variant(product, variant_id) is None:
        raise HTTPException(404, "Variant not found")
    changes = strip_unset(req.model_dump())
    sku = changes.get("sku")
    if sku and any(v.get("sku") == sku and v.get("id") != variant_id for v in product.get("variants", [])):
        raise HTTPException(409, f"Variant SKU {sku} already exists")
    try:
        updated = update_variant_fields(db, product_id, variant_id, {"$set": changes})
    except StockError as exc:
        raise stock_http_error(exc)
    if updated is None:
        raise HTTPException(409, "Variant is being modified, please retry")
    return {"success": True, "variant": find_variant(updated, variant_id)}


@router.delete("/{product_id}/variants/{variant_id}")
def delete_variant(product_id: str, variant_id: str, admin=Depends(require_permission(EDIT_PRODUCTS)),
                   db: Database = Depends(get_db)):
    product = find_or_404(db, "product", product_id, "Product")
    target = find_variant(product, variant_id)
    if target is None:
        raise HTTPException(404, "Variant not found")
    db["product"].update_one(
        {"_id": product["_id"]},
        {"$pull": {"variants": {"id": variant_id}}, "$set": {"updated_at": utcnow()}},
    )
    db["product"].update_one({"_id": product["_id"], "variants": {"$size": 0}}, {"$set": {"has_variations": False}})
    remove_uploads(target.get("images", []))
    return {"success": True, "message": "Variant deleted successfully"}
