"""
MongoDB access helpers.

Collections use the lowercase singular entity name ("product", "order", ...).
References between documents are stored as id strings; only the top-level
``_id`` is an ObjectId.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import settings

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None
_db: Optional[Database] = None


def get_db() -> Database:
    global _client, _db
    if _db is None:
        _client = MongoClient(settings.DATABASE_URL)
        _db = _client[settings.DATABASE_NAME]
        logger.info("Connected to MongoDB database %s", settings.DATABASE_NAME)
    return _db


def utcnow() -> datetime:
    # BSON datetimes come back naive (UTC), keep ours comparable with them
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(ObjectId())


def oid(id_str: str) -> ObjectId:
    if not ObjectId.is_valid(id_str):
        raise HTTPException(status_code=400, detail="Invalid id")
    return ObjectId(id_str)


def serialize_doc(doc: Optional[Dict[str, Any]]):
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc


def find_or_404(db: Database, collection_name: str, id_str: str, label: str) -> Dict[str, Any]:
    doc = db[collection_name].find_one({"_id": oid(id_str)})
    if not doc:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return doc


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    now = utcnow()
    result = db[collection_name].insert_one({**data, "created_at": now, "updated_at": now})
    return str(result.inserted_id)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List[Tuple[str, int]]] = None,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return [serialize_doc(d) for d in cursor]


def paginate(
    db: Database,
    collection_name: str,
    query: Dict[str, Any],
    page: int = 1,
    limit: int = 10,
    sort: Optional[List[Tuple[str, int]]] = None,
) -> Tuple[List[Dict[str, Any]], Dict[str, int]]:
    page = max(page, 1)
    limit = max(limit, 1)
    total = db[collection_name].count_documents(query)
    cursor = db[collection_name].find(query).sort(sort or [("created_at", -1)])
    cursor = cursor.skip((page - 1) * limit).limit(limit)
    items = [serialize_doc(d) for d in cursor]
    pagination = {
        "current_page": page,
        "total_pages": math.ceil(total / limit),
        "total_items": total,
        "items_per_page": limit,
    }
    return items, pagination


def ensure_indexes(db: Database) -> None:
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["product"].create_index([("slug", ASCENDING)], unique=True)
    db["category"].create_index([("slug", ASCENDING)], unique=True)
    db["brand"].create_index([("slug", ASCENDING)], unique=True)
    db["purchase"].create_index([("invoice_number", ASCENDING)], unique=True)
    db["cart"].create_index([("user_id", ASCENDING)], unique=True)
    db["wishlist"].create_index([("user_id", ASCENDING)], unique=True)
    db["coupon"].create_index([("code", ASCENDING)], unique=True)
    db["review"].create_index([("product_id", ASCENDING), ("status", ASCENDING)])
    db["banner"].create_index([("enabled", ASCENDING), ("position", ASCENDING)])
    logger.info("MongoDB indexes ensured")
