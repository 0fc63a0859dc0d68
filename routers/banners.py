import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pymongo.database import Database

from auth import require_permission
from database import as_utc, create_document, find_or_404, get_db, get_documents, oid, serialize_doc, utcnow
from permissions import MANAGE_BANNERS
from routers.common import strip_unset
from schemas import Banner as BannerSchema, BannerUpdate
from uploads import remove_upload, save_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/banners", tags=["banners"])

DISPLAY_ORDER = [("position", 1), ("created_at", -1)]


def _check_window(start_date, end_date):
    if start_date and end_date and start_date > end_date:
        raise HTTPException(400, "Banner start date must be before end date")


@router.get("")
def list_banners(db: Database = Depends(get_db)):
    """Banners currently on air, in slide order."""
    now = utcnow()
    query = {
        "enabled": True,
        "start_date": {"$lte": now},
        "$or": [{"end_date": None}, {"end_date": {"$gte": now}}],
    }
    banners = get_documents(db, "banner", query, sort=DISPLAY_ORDER)
    return {"success": True, "count": len(banners), "banners": banners}


@router.get("/all")
def list_all_banners(enabled: Optional[bool] = None, admin=Depends(require_permission(MANAGE_BANNERS)),
                     db: Database = Depends(get_db)):
    query: Dict[str, Any] = {} if enabled is None else {"enabled": enabled}
    banners = get_documents(db, "banner", query, sort=DISPLAY_ORDER)
    return {"success": True, "count": len(banners), "banners": banners}


@router.get("/{banner_id}")
def get_banner(banner_id: str, db: Database = Depends(get_db)):
    return {"success": True, "banner": serialize_doc(find_or_404(db, "banner", banner_id, "Banner"))}


@router.post("", status_code=201)
def create_banner(banner: BannerSchema, admin=Depends(require_permission(MANAGE_BANNERS)),
                  db: Database = Depends(get_db)):
    data = banner.model_dump()
    data["start_date"] = as_utc(data["start_date"]) or utcnow()
    data["end_date"] = as_utc(data["end_date"])
    _check_window(data["start_date"], data["end_date"])
    banner_id = create_document(db, "banner", data)
    logger.info("Banner %s created", banner_id)
    return {"success": True, "banner": serialize_doc(db["banner"].find_one({"_id": oid(banner_id)}))}


@router.put("/{banner_id}")
def update_banner(banner_id: str, req: BannerUpdate, admin=Depends(require_permission(MANAGE_BANNERS)),
                  db: Database = Depends(get_db)):
    banner = find_or_404(db, "banner", banner_id, "Banner")
    updates = strip_unset(req.model_dump())
    for key in ("start_date", "end_date"):
        if key in updates:
            updates[key] = as_utc(updates[key])
    _check_window(updates.get("start_date", banner.get("start_date")), updates.get("end_date", banner.get("end_date")))
    updates["updated_at"] = utcnow()
    db["banner"].update_one({"_id": banner["_id"]}, {"$set": updates})
    if "image" in updates and updates["image"] != banner.get("image"):
        remove_upload(banner.get("image"))
    return {"success": True, "banner": serialize_doc(db["banner"].find_one({"_id": banner["_id"]}))}


@router.put("/{banner_id}/image")
def replace_banner_image(banner_id: str, file: UploadFile = File(...),
                         admin=Depends(require_permission(MANAGE_BANNERS)), db: Database = Depends(get_db)):
    banner = find_or_404(db, "banner", banner_id, "Banner")
    url = save_upload(file)
    db["banner"].update_one({"_id": banner["_id"]}, {"$set": {"image": url, "updated_at": utcnow()}})
    remove_upload(banner.get("image"))
    return {"success": True, "banner": serialize_doc(db["banner"].find_one({"_id": banner["_id"]}))}


@router.delete("/{banner_id}")
def delete_banner(banner_id: str, admin=Depends(require_permission(MANAGE_BANNERS)), db: Database = Depends(get_db)):
    banner = find_or_404(db, "banner", banner_id, "Banner")
    db["banner"].delete_one({"_id": banner["_id"]})
    remove_upload(banner.get("image"))
    return {"success": True, "message": "Banner deleted successfully"}
