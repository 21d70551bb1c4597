"""
Identity & access: password hashing, signed tokens and role checks.
"""
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr

from database import collection, is_object_id, to_object_id
from errors import Forbidden, Unauthenticated
from schemas import Role

logger = logging.getLogger(__name__)

SECRET_KEY = os.getenv("SECRET_KEY", "supersecretkey")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 3)))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/user/login", auto_error=False)


class Principal(BaseModel):
    id: str
    name: str
    email: EmailStr
    role: Role = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def principal_from_user(user: dict) -> Principal:
    return Principal(id=str(user["_id"]), name=user.get("name"), email=user.get("email"), role=user.get("role", "user"))


def authenticate(token: Optional[str]) -> Principal:
    if not token:
        raise Unauthenticated("No token, authorization denied")
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise Unauthenticated("Could not validate credentials")
    user_id = payload.get("sub")
    if not user_id or not is_object_id(user_id):
        raise Unauthenticated("Could not validate credentials")
    user = collection("user").find_one({"_id": to_object_id(user_id)})
    if not user:
        raise Unauthenticated("User not found")
    return principal_from_user(user)


def authorize(principal: Principal, required_role: str) -> bool:
    # vendor-only operations are open to admins as well
    if required_role == "vendor":
        return principal.role in ("vendor", "admin")
    return principal.role == required_role


def ensure_self_or_admin(principal: Principal, user_id: str):
    if principal.id != user_id and not principal.is_admin:
        raise Forbidden("Access denied")


def get_current_user(token: Optional[str] = Depends(oauth2_scheme)) -> Principal:
    return authenticate(token)


def get_optional_user(token: Optional[str] = Depends(oauth2_scheme)) -> Optional[Principal]:
    if not token:
        return None
    return authenticate(token)


def require_role(role: str):
    def dependency(current: Principal = Depends(get_current_user)) -> Principal:
        if not authorize(current, role):
            logger.warning("User %s (%s) denied %s-only access", current.id, current.role, role)
            raise Forbidden(f"Access denied! {role.capitalize()}s only.")
        return current
    return dependency


require_admin = require_role("admin")
require_vendor = require_role("vendor")
