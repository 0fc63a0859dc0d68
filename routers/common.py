import re
from typing import Any, Dict, Optional

from fastapi import HTTPException
from pymongo.database import Database

from database import oid
from inventory import ProductNotFound, StockError, VariantNotFound


def slugify(name: str) -> str:
    slug = re.sub(r"[^\w ]+", "", name.lower()).strip()
    return re.sub(r" +", "-", slug)


def unique_slug(db: Database, collection_name: str, source: str, exclude_id: Optional[str] = None) -> str:
    """Slug for ``source``; raises 409 when another document already owns it."""
    slug = slugify(source)
    if not slug:
        raise HTTPException(status_code=400, detail="Slug cannot be empty")
    query: Dict[str, Any] = {"slug": slug}
    if exclude_id:
        query["_id"] = {"$ne": oid(exclude_id)}
    if db[collection_name].find_one(query):
        raise HTTPException(status_code=409, detail=f"Slug '{slug}' is already in use")
    return slug


def contains(text: str) -> Dict[str, Any]:
    """Case-insensitive substring match on user supplied text."""
    return {"$regex": re.escape(text), "$options": "i"}


def stock_http_error(exc: StockError) -> HTTPException:
    if isinstance(exc, (ProductNotFound, VariantNotFound)):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def strip_unset(update: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in update.items() if v is not None}
