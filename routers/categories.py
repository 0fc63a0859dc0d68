import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

from auth import require_permission
from database import create_document, find_or_404, get_db, get_documents, oid, serialize_doc, utcnow
from permissions import MANAGE_PRODUCT_CATEGORIES
from routers.common import strip_unset, unique_slug
from schemas import Category as CategorySchema, CategoryUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/categories", tags=["categories"])


def build_tree(categories: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Nest categories under their parents. Orphans are treated as roots."""
    by_id = {c["id"]: {**c, "children": []} for c in categories}
    roots = []
    for node in by_id.values():
        parent = by_id.get(node.get("parent_id"))
        if parent is not None:
            parent["children"].append(node)
        else:
            roots.append(node)
    return roots


def _check_parent(db: Database, parent_id: Optional[str], category_id: Optional[str] = None):
    if not parent_id:
        return
    if parent_id == category_id:
        raise HTTPException(400, "A category cannot be its own parent")
    # Walk up from the new parent; meeting ourselves would close a loop
    current = db["category"].find_one({"_id": oid(parent_id)})
    if not current:
        raise HTTPException(400, "Parent category not found")
    while current and current.get("parent_id"):
        if current["parent_id"] == category_id:
            raise HTTPException(400, "Parent would create a category cycle")
        current = db["category"].find_one({"_id": oid(current["parent_id"])})


@router.get("")
def list_categories(parent: Optional[str] = None, active: Optional[bool] = None, db: Database = Depends(get_db)):
    query: Dict[str, Any] = {}
    if parent is not None:
        query["parent_id"] = None if parent in ("", "root", "null") else parent
    if active is not None:
        query["is_active"] = active
    categories = get_documents(db, "category", query, sort=[("name", 1)])
    for c in categories:
        c["product_count"] = db["product"].count_documents({"category_id": c["id"]})
    return {"success": True, "count": len(categories), "categories": categories}


@router.get("/tree")
def category_tree(db: Database = Depends(get_db)):
    categories = get_documents(db, "category", {"is_active": True}, sort=[("name", 1)])
    return {"success": True, "categories": build_tree(categories)}


@router.get("/slug/{slug}")
def get_category_by_slug(slug: str, db: Database = Depends(get_db)):
    category = db["category"].find_one({"slug": slug})
    if not category:
        raise HTTPException(404, "Category not found")
    category = serialize_doc(category)
    category["subcategories"] = get_documents(db, "category", {"parent_id": category["id"]})
    return {"success": True, "category": category}


@router.get("/{category_id}")
def get_category(category_id: str, db: Database = Depends(get_db)):
    category = serialize_doc(find_or_404(db, "category", category_id, "Category"))
    category["subcategories"] = get_documents(db, "category", {"parent_id": category_id})
    return {"success": True, "category": category}


@router.post("", status_code=201)
def create_category(
    category: CategorySchema,
    admin=Depends(require_permission(MANAGE_PRODUCT_CATEGORIES)),
    db: Database = Depends(get_db),
):
    _check_parent(db, category.parent_id)
    data = category.model_dump()
    data["slug"] = unique_slug(db, "category", category.slug or category.name)
    category_id = create_document(db, "category", data)
    logger.info("Category %s created", category_id)
    return {"success": True, "category": serialize_doc(db["category"].find_one({"_id": oid(category_id)}))}


@router.put("/{category_id}")
def update_category(
    category_id: str,
    req: CategoryUpdate,
    admin=Depends(require_permission(MANAGE_PRODUCT_CATEGORIES)),
    db: Database = Depends(get_db),
):
    find_or_404(db, "category", category_id, "Category")
    updates = strip_unset(req.model_dump())
    if "parent_id" in req.model_fields_set and req.parent_id is None:
        updates["parent_id"] = None
    if updates.get("parent_id"):
        _check_parent(db, updates["parent_id"], category_id)
    if "slug" in updates or "name" in updates:
        updates["slug"] = unique_slug(db, "category", updates.get("slug") or updates["name"], exclude_id=category_id)
    updates["updated_at"] = utcnow()
    db["category"].update_one({"_id": oid(category_id)}, {"$set": updates})
    return {"success": True, "category": serialize_doc(db["category"].find_one({"_id": oid(category_id)}))}


@router.delete("/{category_id}")
def delete_category(
    category_id: str,
    admin=Depends(require_permission(MANAGE_PRODUCT_CATEGORIES)),
    db: Database = Depends(get_db),
):
    category = find_or_404(db, "category", category_id, "Category")
    if db["category"].count_documents({"parent_id": category_id}) > 0:
        raise HTTPException(
            400, "Cannot delete category with subcategories. Please delete or reassign subcategories first."
        )
    if db["product"].count_documents({"category_id": category_id}) > 0:
        raise HTTPException(400, "Cannot delete category that still has products")
    db["category"].delete_one({"_id": category["_id"]})
    logger.info("Category %s deleted", category_id)
    return {"success": True, "message": "Category deleted successfully"}
