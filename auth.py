import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

import bcrypt
from bson import ObjectId
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from config import Settings
from database import Database, get_db, utcnow
from errors import Forbidden, Unauthorized

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    id: str
    name: str
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


# ------------- Passwords & tokens -------------

def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(user_id: Any, settings: Settings) -> str:
    now = utcnow()
    claims = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(days=settings.jwt_expires_days),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> str:
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        logger.warning(f"Rejected bearer token: {exc}", extra={"event_type": "auth_failed"})
        raise Unauthorized("Not authorized, token failed")
    subject = claims.get("sub")
    if not subject or not ObjectId.is_valid(subject):
        raise Unauthorized("Not authorized, token failed")
    return subject


# ------------- Dependencies -------------

def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> Identity:
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Not authorized, no token")

    user_id = decode_access_token(credentials.credentials, settings)
    user = db.users.find_one({"_id": ObjectId(user_id)}, {"password": 0})
    if not user:
        raise Unauthorized("Not authorized, user not found")

    identity = Identity(
        id=str(user["_id"]),
        name=user.get("name", ""),
        email=user.get("email", ""),
        role=user.get("role", "user"),
    )
    request.state.user = identity
    return identity


def require_admin(identity: Identity = Depends(get_current_user)) -> Identity:
    if not identity.is_admin:
        raise Forbidden("Not authorized as an admin")
    return identity


def ensure_owner_or_admin(identity: Identity, owner_id: Any, action: str = "access this resource") -> None:
    """Owner-or-admin rule; handlers call this themselves after loading the resource."""
    if identity.is_admin or str(owner_id) == identity.id:
        return
    logger.warning(f"User {identity.id} denied: {action}", extra={
        "event_type": "ownership_denied",
        "user_id": identity.id,
        "owner_id": str(owner_id),
    })
    raise Forbidden(f"Not authorized to {action}")
