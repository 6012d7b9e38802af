import logging
from typing import Any, Dict

from bson import ObjectId
from fastapi import APIRouter, Body, Depends
from pymongo import ReturnDocument

from auth import Identity, create_access_token, get_app_settings, get_current_user, hash_password, verify_password
from config import Settings
from database import USERS, Database, create_document, get_db, touch
from errors import NotFound, Unauthorized, ValidationError
from schemas import LoginIn, ProfileUpdate, RegisterIn, collect_errors
from users import NO_PASSWORD, ensure_email_free, public_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _with_token(doc: dict, settings: Settings) -> dict:
    body = public_user(doc)
    body["token"] = create_access_token(doc["_id"], settings)
    return body


@router.post("/register", status_code=201)
def register(
    payload: Dict[str, Any] = Body(...),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    errors = collect_errors(RegisterIn, payload)
    if errors:
        raise ValidationError("Invalid registration data", errors)
    account = RegisterIn.model_validate(payload)
    ensure_email_free(db, account.email)

    doc = create_document(db, USERS, {
        "name": account.name,
        "email": account.email,
        "password": hash_password(account.password, settings.bcrypt_rounds),
        "role": "user",
    })
    logger.info("New account registered", extra={"event_type": "user_registered", "user_id": str(doc["_id"])})
    return _with_token(doc, settings)


@router.post("/login")
def login(
    payload: Dict[str, Any] = Body(...),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    errors = collect_errors(LoginIn, payload)
    if errors:
        raise ValidationError("Invalid login data", errors)
    credentials = LoginIn.model_validate(payload)

    doc = db.users.find_one({"email": credentials.email})
    if not doc or not verify_password(credentials.password, doc.get("password")):
        logger.warning("Login failed", extra={"event_type": "login_failed"})
        raise Unauthorized("Invalid email or password")
    logger.info(f"Login successful for user {doc['_id']}", extra={"event_type": "login_success"})
    return _with_token(doc, settings)


@router.get("/profile")
def get_profile(db: Database = Depends(get_db), identity: Identity = Depends(get_current_user)):
    doc = db.users.find_one({"_id": ObjectId(identity.id)}, NO_PASSWORD)
    if not doc:
        raise NotFound("User not found")
    return public_user(doc)


@router.put("/profile")
def update_profile(
    payload: Dict[str, Any] = Body(...),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    identity: Identity = Depends(get_current_user),
):
    errors = collect_errors(ProfileUpdate, payload)
    if errors:
        raise ValidationError("Invalid profile data", errors)
    changes = ProfileUpdate.model_validate(payload).model_dump(by_alias=True, exclude_none=True)
    oid = ObjectId(identity.id)
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
    return _with_token(doc, settings)
