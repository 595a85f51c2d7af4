"""
Password hashing, JWT handling and the auth dependencies used by the routers.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

import bcrypt
import jwt
from bson import ObjectId
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database

from attendance_server.config import settings
from attendance_server.database import get_db
from attendance_server.errors import ForbiddenError, UnauthorizedError
from attendance_server.schemas import UserRole

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # malformed stored hash or a password over 72 bytes
        return False


def create_access_token(user_id: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    now = datetime.utcnow()
    expire = now + (expires_delta or timedelta(minutes=settings.JWT_EXPIRES_MINUTES))
    payload = {"sub": str(user_id), "role": role, "iat": now, "exp": expire}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token has expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid token")


def protect(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Database = Depends(get_db),
) -> Dict[str, Any]:
    """Resolve the bearer token to the stored user document."""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Not authorized, no token")

    payload = decode_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id or not ObjectId.is_valid(user_id):
        raise UnauthorizedError("Invalid token")

    user = db.users.find_one({"_id": ObjectId(user_id)})
    if not user:
        raise UnauthorizedError("User belonging to this token no longer exists")
    return user


def allow_to(*roles: UserRole) -> Callable[..., Dict[str, Any]]:
    allowed = {role.value if isinstance(role, UserRole) else role for role in roles}

    def checker(user: Dict[str, Any] = Depends(protect)) -> Dict[str, Any]:
        if user.get("role") not in allowed:
            logger.info("User %s with role %s denied, needs one of %s", user["_id"], user.get("role"), sorted(allowed))
            raise ForbiddenError("You do not have permission to perform this action")
        return user

    return checker
