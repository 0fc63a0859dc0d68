from typing import Any, Dict

from fastapi import APIRouter, Depends
from pymongo.database import Database

from auth import require_permission
from database import get_db, serialize_doc, utcnow
from permissions import MANAGE_SITE_SETTINGS
from routers.common import strip_unset
from schemas import SiteSettings as SiteSettingsSchema, SiteSettingsUpdate

router = APIRouter(prefix="/api/site-settings", tags=["site-settings"])


def load_site_settings(db: Database) -> Dict[str, Any]:
    """The single settings document, created with defaults on first read."""
    doc = db["sitesettings"].find_one({})
    if doc is None:
        now = utcnow()
        doc = {**SiteSettingsSchema().model_dump(), "created_at": now, "updated_at": now}
        doc["_id"] = db["sitesettings"].insert_one(doc).inserted_id
    return doc


@router.get("")
def get_site_settings(db: Database = Depends(get_db)):
    return {"success": True, "settings": serialize_doc(load_site_settings(db))}


@router.put("")
def update_site_settings(req: SiteSettingsUpdate, admin=Depends(require_permission(MANAGE_SITE_SETTINGS)),
                         db: Database = Depends(get_db)):
    doc = load_site_settings(db)
    updates = strip_unset(req.model_dump())
    updates["updated_at"] = utcnow()
    db["sitesettings"].update_one({"_id": doc["_id"]}, {"$set": updates})
    return {
        "success": True,
        "message": "Site settings updated successfully",
        "settings": serialize_doc(db["sitesettings"].find_one({"_id": doc["_id"]})),
    }
