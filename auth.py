import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

from config import settings
from database import get_db
from permissions import has_any_permission, has_permission, is_admin_role, normalize_role, permissions_for

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=settings.JWT_EXPIRE_DAYS))
    payload = {"sub": str(user["_id"]), "role": user.get("role", "customer"), "exp": expire}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "role": user.get("role", "customer"),
        "phone": user.get("phone"),
        "avatar_url": user.get("avatar_url"),
        "addresses": user.get("addresses", []),
        "permissions": sorted(permissions_for(user.get("role"))),
    }


def _user_from_token(token: str, db: Database) -> Dict[str, Any]:
    credentials_exception = HTTPException(status_code=401, detail="Not authorized to access this route")
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        user_id = payload.get("sub")
    except JWTError:
        logger.warning("Rejected invalid or expired token")
        raise credentials_exception
    if not user_id or not ObjectId.is_valid(user_id):
        raise credentials_exception
    user = db["user"].find_one({"_id": ObjectId(user_id)}, {"password_hash": 0})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="Account is disabled")
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Database = Depends(get_db),
) -> Dict[str, Any]:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Not authorized to access this route")
    return _user_from_token(credentials.credentials, db)


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Database = Depends(get_db),
) -> Optional[Dict[str, Any]]:
    if credentials is None or not credentials.credentials:
        return None
    try:
        return _user_from_token(credentials.credentials, db)
    except HTTPException:
        return None


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if not is_admin_role(user.get("role")):
        raise HTTPException(status_code=403, detail="Access denied. Admin only.")
    return user


def require_permission(permission: str):
    def checker(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        if not has_permission(user.get("role"), permission):
            logger.warning("Role %s denied %s", normalize_role(user.get("role")), permission)
            raise HTTPException(status_code=403, detail=f"Missing permission: {permission}")
        return user
    return checker


def require_any_permission(*permissions: str):
    def checker(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        if not has_any_permission(user.get("role"), *permissions):
            logger.warning("Role %s denied any of %s", normalize_role(user.get("role")), permissions)
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user
    return checker
