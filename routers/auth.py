import logging

from fastapi import APIRouter, Depends, HTTPException
from pymongo.database import Database

from auth import create_access_token, get_current_user, hash_password, public_user, verify_password
from database import create_document, get_db, oid, utcnow
from schemas import LoginRequest, RegisterRequest, User as UserSchema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=201)
def register(req: RegisterRequest, db: Database = Depends(get_db)):
    email = req.email.lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(400, "Email already registered")
    user = UserSchema(
        name=req.name.strip(),
        email=email,
        password_hash=hash_password(req.password),
        phone=req.phone,
    )
    user_id = create_document(db, "user", user)
    created = db["user"].find_one({"_id": oid(user_id)})
    logger.info("Registered user %s", user_id)
    return {"success": True, "token": create_access_token(created), "user": public_user(created)}


@router.post("/login")
def login(req: LoginRequest, db: Database = Depends(get_db)):
    user = db["user"].find_one({"email": req.email.lower()})
    if not user or not verify_password(req.password, user.get("password_hash", "")):
        raise HTTPException(401, "Invalid credentials")
    if not user.get("is_active", True):
        raise HTTPException(401, "Account is disabled")
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"last_login": utcnow()}})
    return {"success": True, "token": create_access_token(user), "user": public_user(user)}


@router.get("/me")
def me(current=Depends(get_current_user)):
    return {"success": True, "user": public_user(current)}
