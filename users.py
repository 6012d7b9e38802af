import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from pymongo import ReturnDocument

from auth import Identity, get_app_settings, hash_password, require_admin
from config import Settings
from database import USERS, Database, create_document, get_db, parse_object_id, serialize, touch, utcnow
from errors import NotFound, ValidationError
from listing import build_filter, paginate
from schemas import UserCreate, UserUpdate, validate_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/users", tags=["users"])

PAGE_SIZE = 10
NO_PASSWORD = {"password": 0}
PUBLIC_FIELDS = ("_id", "name", "email", "role", "createdAt")


def public_user(doc: dict) -> dict:
    """The only shape a user document ever leaves the API in."""
    return serialize({k: doc[k] for k in PUBLIC_FIELDS if k in doc})


def ensure_email_free(db: Database, email: str, exclude_id=None) -> None:
    query: Dict[str, Any] = {"email": email}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if db.users.find_one(query, {"_id": 1}):
        raise ValidationError("User already exists")


@router.get("", dependencies=[Depends(require_admin)])
def list_users(
    search: Optional[str] = None,
    role: Optional[str] = None,
    page_number: Optional[str] = Query(None, alias="pageNumber"),
    page_size: Optional[str] = Query(None, alias="pageSize"),
    db: Database = Depends(get_db),
):
    filter_dict = build_filter(
        {"search": search, "role": role},
        text_param="search",
        text_fields=("name", "email"),
        exact=("role",),
    )
    page = paginate(db.users, filter_dict, page_number, page_size, default_size=PAGE_SIZE, projection=NO_PASSWORD)
    return page.to_response("users", public_user)


@router.get("/stats/overview", dependencies=[Depends(require_admin)])
def user_stats(db: Database = Depends(get_db)):
    since = utcnow() - timedelta(days=30)
    return {
        "totalUsers": db.users.count_documents({}),
        "totalAdmins": db.users.count_documents({"role": "admin"}),
        "totalCustomers": db.users.count_documents({"role": "user"}),
        "recentUsers": db.users.count_documents({"createdAt": {"$gte": since}}),
    }


@router.get("/{user_id}", dependencies=[Depends(require_admin)])
def get_user(user_id: str, db: Database = Depends(get_db)):
    doc = db.users.find_one({"_id": parse_object_id(user_id, "User")}, NO_PASSWORD)
    if not doc:
        raise NotFound("User not found")
    return public_user(doc)


@router.post("", status_code=201)
def create_user(
    payload: Dict[str, Any] = Body(...),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    admin: Identity = Depends(require_admin),
):
    errors = validate_user(payload)
    if errors:
        raise ValidationError("Invalid user data", errors)
    user = UserCreate.model_validate(payload)
    ensure_email_free(db, user.email)

    data = user.model_dump(by_alias=True)
    data["password"] = hash_password(user.password, settings.bcrypt_rounds)
    doc = create_document(db, USERS, data)
    logger.info(f"User created by admin {admin.id}", extra={
        "event_type": "user_created",
        "user_id": str(doc["_id"]),
        "role": doc["role"],
    })
    return public_user(doc)


@router.put("/{user_id}")
def update_user(
    user_id: str,
    payload: Dict[str, Any] = Body(...),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    admin: Identity = Depends(require_admin),
):
    oid = parse_object_id(user_id, "User")
    errors = validate_user(payload, partial=True)
    if errors:
        raise ValidationError("Invalid user data", errors)
    changes = UserUpdate.model_validate(payload).model_dump(by_alias=True, exclude_none=True)
    if "email" in changes:
        ensure_email_free(db, changes["email"], exclude_id=oid)
    if "password" in changes:
        changes["password"] = hash_password(changes["password"], settings.bcrypt_rounds)

    doc = db.users.find_one_and_update(
        {"_id": oid},
        {"$set": touch(changes)},
        projection=NO_PASSWORD,
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise NotFound("User not found")
    logger.info(f"User {user_id} updated by admin {admin.id}", extra={"event_type": "user_updated"})
    return public_user(doc)


@router.delete("/{user_id}")
def delete_user(user_id: str, db: Database = Depends(get_db), admin: Identity = Depends(require_admin)):
    oid = parse_object_id(user_id, "User")
    if not db.users.find_one({"_id": oid}, {"_id": 1}):
        raise NotFound("User not found")
    if str(oid) == admin.id:
        raise ValidationError("Cannot delete your own account")

    db.users.delete_one({"_id": oid})
    logger.info(f"User {user_id} removed by admin {admin.id}", extra={"event_type": "user_deleted"})
    return {"message": "User removed successfully"}
