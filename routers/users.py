import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

from auth import get_current_user, public_user, require_permission
from database import find_or_404, get_db, new_id, oid, paginate, utcnow
from permissions import (
    DELETE_USERS,
    MANAGE_USER_ROLES,
    VIEW_USERS,
    is_known_role,
    normalize_role,
    permissions_for,
)
from routers.common import contains, strip_unset
from schemas import Address, ProfileUpdate, RoleAssign

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/profile")
def get_profile(current=Depends(get_current_user)):
    return {"success": True, "user": public_user(current)}


@router.put("/profile")
def update_profile(req: ProfileUpdate, current=Depends(get_current_user), db: Database = Depends(get_db)):
    updates = strip_unset(req.model_dump())
    if not updates:
        raise HTTPException(400, "No updates provided")
    updates["updated_at"] = utcnow()
    db["user"].update_one({"_id": current["_id"]}, {"$set": updates})
    user = db["user"].find_one({"_id": current["_id"]}, {"password_hash": 0})
    return {"success": True, "user": public_user(user)}


@router.post("/profile/addresses", status_code=201)
def add_address(address: Address, current=Depends(get_current_user), db: Database = Depends(get_db)):
    addresses = list(current.get("addresses", []))
    data = address.model_dump()
    data["id"] = new_id()
    if data["is_default"]:
        # Only one default address per user
        for existing in addresses:
            existing["is_default"] = False
    elif not addresses:
        data["is_default"] = True
    addresses.append(data)
    db["user"].update_one({"_id": current["_id"]}, {"$set": {"addresses": addresses, "updated_at": utcnow()}})
    return {"success": True, "addresses": addresses}


@router.delete("/profile/addresses/{address_id}")
def remove_address(address_id: str, current=Depends(get_current_user), db: Database = Depends(get_db)):
    addresses = [a for a in current.get("addresses", []) if a.get("id") != address_id]
    if len(addresses) == len(current.get("addresses", [])):
        raise HTTPException(404, "Address not found")
    if addresses and not any(a.get("is_default") for a in addresses):
        addresses[0]["is_default"] = True
    db["user"].update_one({"_id": current["_id"]}, {"$set": {"addresses": addresses, "updated_at": utcnow()}})
    return {"success": True, "addresses": addresses}


@router.get("/me/permissions")
def my_permissions(current=Depends(get_current_user)):
    return {
        "success": True,
        "role": normalize_role(current.get("role")),
        "permissions": sorted(permissions_for(current.get("role"))),
    }


@router.get("")
def list_users(
    role: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    admin=Depends(require_permission(VIEW_USERS)),
    db: Database = Depends(get_db),
):
    query = {}
    if role:
        query["role"] = {"$regex": f"^{re.escape(role)}$", "$options": "i"}
    if search:
        query["$or"] = [
            {"name": contains(search)},
            {"email": contains(search)},
        ]
    users, pagination = paginate(db, "user", query, page, limit)
    for u in users:
        u.pop("password_hash", None)
    return {"success": True, "users": users, "pagination": pagination}


@router.get("/{user_id}")
def get_user(user_id: str, admin=Depends(require_permission(VIEW_USERS)), db: Database = Depends(get_db)):
    user = find_or_404(db, "user", user_id, "User")
    return {"success": True, "user": public_user(user)}


@router.put("/{user_id}/role")
def assign_role(
    user_id: str,
    req: RoleAssign,
    admin=Depends(require_permission(MANAGE_USER_ROLES)),
    db: Database = Depends(get_db),
):
    if not is_known_role(req.role):
        raise HTTPException(400, f"Unknown role: {req.role}")
    user = find_or_404(db, "user", user_id, "User")
    if user["_id"] == admin["_id"]:
        raise HTTPException(400, "You cannot change your own role")
    role = normalize_role(req.role).lower()
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"role": role, "updated_at": utcnow()}})
    logger.info("User %s role set to %s by %s", user_id, role, admin["_id"])
    user["role"] = role
    return {"success": True, "user": public_user(user)}


@router.delete("/{user_id}")
def delete_user(user_id: str, admin=Depends(require_permission(DELETE_USERS)), db: Database = Depends(get_db)):
    if oid(user_id) == admin["_id"]:
        raise HTTPException(400, "You cannot delete your own account")
    result = db["user"].delete_one({"_id": oid(user_id)})
    if result.deleted_count == 0:
        raise HTTPException(404, "User not found")
    db["cart"].delete_one({"user_id": user_id})
    db["wishlist"].delete_one({"user_id": user_id})
    return {"success": True, "message": "User deleted successfully"}
