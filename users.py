import logging
import os
from typing import Optional

from pymongo.errors import DuplicateKeyError

from database import collection, create_document, now, serialize_doc, to_object_id
from errors import Conflict, Forbidden, InvalidCredential, NotFound
from schemas import RegisterRequest, User, UserUpdate, normalize_email
from security import Principal, create_access_token, get_password_hash, verify_password

logger = logging.getLogger(__name__)

PUBLIC_FIELDS = {"password_hash": 0}


def public_user(doc: dict) -> dict:
    doc = dict(doc)
    doc.pop("password_hash", None)
    return serialize_doc(doc)


def register(req: RegisterRequest, current: Optional[Principal] = None) -> dict:
    if req.role == "admin" and not (current and current.is_admin):
        raise Forbidden("Only an admin can create admin accounts")
    if collection("user").find_one({"email": req.email}):
        raise Conflict("Email already registered")
    data = User(name=req.name.strip(), email=req.email, password_hash=get_password_hash(req.password), role=req.role)
    try:
        user_id = create_document("user", data)
    except DuplicateKeyError:
        raise Conflict("Email already registered")
    logger.info("Registered %s account %s", req.role, user_id)
    return public_user(collection("user").find_one({"_id": to_object_id(user_id)}))


def login(email: str, password: str) -> dict:
    user = collection("user").find_one({"email": normalize_email(email)})
    if not user:
        raise NotFound("User not found")
    if not verify_password(password, user.get("password_hash", "")):
        raise InvalidCredential("Wrong password")
    token = create_access_token({"sub": str(user["_id"]), "role": user.get("role", "user")})
    logger.info("User %s logged in", user["_id"])
    return {**public_user(user), "access_token": token, "token_type": "bearer"}


def list_users():
    return [serialize_doc(u) for u in collection("user").find({}, PUBLIC_FIELDS).sort("created_at", -1)]


def get_user(user_id: str) -> dict:
    user = collection("user").find_one({"_id": to_object_id(user_id)}, PUBLIC_FIELDS)
    if not user:
        raise NotFound("User not found")
    return serialize_doc(user)


def update_user(current: Principal, user_id: str, patch: UserUpdate) -> dict:
    if current.id != user_id and not current.is_admin:
        raise Forbidden("Access denied")
    data = patch.model_dump(exclude_none=True)
    if "role" in data and not current.is_admin:
        raise Forbidden("Only an admin can change roles")
    if "password" in data:
        data["password_hash"] = get_password_hash(data.pop("password"))
    if "email" in data:
        clash = collection("user").find_one({"email": data["email"], "_id": {"$ne": to_object_id(user_id)}})
        if clash:
            raise Conflict("Email already registered")
    if not data:
        return get_user(user_id)
    data["updated_at"] = now()
    try:
        res = collection("user").update_one({"_id": to_object_id(user_id)}, {"$set": data})
    except DuplicateKeyError:
        raise Conflict("Email already registered")
    if res.matched_count == 0:
        raise NotFound("User not found")
    return get_user(user_id)


def delete_user(user_id: str):
    # orders, carts and reviews keep their reference to the deleted id
    res = collection("user").delete_one({"_id": to_object_id(user_id)})
    if res.deleted_count == 0:
        raise NotFound("User not found")
    logger.info("Deleted user %s", user_id)


def bootstrap_admin():
    email = normalize_email(os.getenv("ADMIN_EMAIL"))
    password = os.getenv("ADMIN_PASSWORD")
    if not email or not password:
        return
    if collection("user").find_one({"email": email}):
        return
    create_document("user", User(
        name=os.getenv("ADMIN_NAME", "Administrator"),
        email=email,
        password_hash=get_password_hash(password),
        role="admin",
    ))
    logger.info("Created bootstrap admin account %s", email)
