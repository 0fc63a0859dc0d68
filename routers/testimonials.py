from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

from auth import get_current_user, require_permission
from database import create_document, find_or_404, get_db, get_documents, oid, serialize_doc, utcnow
from permissions import MANAGE_HOME_SETTINGS
from routers.common import strip_unset
from schemas import ModerationUpdate, Testimonial as TestimonialSchema, TestimonialUpdate

router = APIRouter(prefix="/api/testimonials", tags=["testimonials"])


@router.get("")
def list_testimonials(featured: Optional[bool] = None, limit: Optional[int] = None, db: Database = Depends(get_db)):
    query = {"status": "approved"}
    if featured is not None:
        query["is_featured"] = featured
    testimonials = get_documents(db, "testimonial", query, limit=limit, sort=[("created_at", -1)])
    return {"success": True, "count": len(testimonials), "testimonials": testimonials}


@router.get("/all")
def list_all_testimonials(status: Optional[str] = None, admin=Depends(require_permission(MANAGE_HOME_SETTINGS)),
                          db: Database = Depends(get_db)):
    query = {"status": status} if status else {}
    testimonials = get_documents(db, "testimonial", query, sort=[("created_at", -1)])
    return {"success": True, "count": len(testimonials), "testimonials": testimonials}


@router.get("/{testimonial_id}")
def get_testimonial(testimonial_id: str, db: Database = Depends(get_db)):
    testimonial = find_or_404(db, "testimonial", testimonial_id, "Testimonial")
    if testimonial.get("status") != "approved":
        raise HTTPException(404, "Testimonial not found")
    return {"success": True, "testimonial": serialize_doc(testimonial)}


@router.post("", status_code=201)
def submit_testimonial(testimonial: TestimonialSchema, current=Depends(get_current_user),
                       db: Database = Depends(get_db)):
    data = testimonial.model_dump()
    # submissions always wait for moderation
    data.update(user_id=str(current["_id"]), status="pending", is_featured=False)
    testimonial_id = create_document(db, "testimonial", data)
    return {
        "success": True,
        "message": "Thank you! Your testimonial will appear once approved.",
        "testimonial": serialize_doc(db["testimonial"].find_one({"_id": oid(testimonial_id)})),
    }


@router.put("/{testimonial_id}")
def update_testimonial(testimonial_id: str, req: TestimonialUpdate,
                       admin=Depends(require_permission(MANAGE_HOME_SETTINGS)), db: Database = Depends(get_db)):
    testimonial = find_or_404(db, "testimonial", testimonial_id, "Testimonial")
    updates = strip_unset(req.model_dump())
    updates["updated_at"] = utcnow()
    db["testimonial"].update_one({"_id": testimonial["_id"]}, {"$set": updates})
    return {"success": True, "testimonial": serialize_doc(db["testimonial"].find_one({"_id": testimonial["_id"]}))}


@router.patch("/{testimonial_id}/status")
def moderate_testimonial(testimonial_id: str, req: ModerationUpdate,
                         admin=Depends(require_permission(MANAGE_HOME_SETTINGS)), db: Database = Depends(get_db)):
    testimonial = find_or_404(db, "testimonial", testimonial_id, "Testimonial")
    db["testimonial"].update_one({"_id": testimonial["_id"]}, {"$set": {"status": req.status, "updated_at": utcnow()}})
    return {"success": True, "testimonial": serialize_doc(db["testimonial"].find_one({"_id": testimonial["_id"]}))}


@router.delete("/{testimonial_id}")
def delete_testimonial(testimonial_id: str, admin=Depends(require_permission(MANAGE_HOME_SETTINGS)),
                       db: Database = Depends(get_db)):
    testimonial = find_or_404(db, "testimonial", testimonial_id, "Testimonial")
    db["testimonial"].delete_one({"_id": testimonial["_id"]})
    return {"success": True, "message": "Testimonial deleted successfully"}
