"""
Database Schemas for the furniture store

Each Pydantic model represents a collection in MongoDB.
Collection name is the lowercase of the class name.

Request payloads are validated here too. Form-encoded clients send lists as
comma separated strings and booleans as "true"/"false"; the validators below
are the only place that coercion happens.
"""
import json
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, EmailStr, Field, ValidationError as PydanticValidationError, field_validator, model_validator

from errors import ValidationError

Role = Literal["user", "vendor", "admin"]
OrderStatus = Literal["Processing", "Shipped", "Delivered", "Cancelled"]
PaymentStatus = Literal["Pending", "Completed", "Failed"]
PaymentMethod = Literal["Card", "UPI", "COD"]

TRUE_STRINGS = {"true", "1", "yes", "on"}
FALSE_STRINGS = {"false", "0", "no", "off"}


def ensure_list(value: Any) -> List[str]:
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple)) else [value]
    out = []
    for item in items:
        if item is None:
            continue
        for token in str(item).split(","):
            token = token.strip()
            if token:
                out.append(token)
    return out


def normalize_email(value: Optional[str]) -> Optional[str]:
    return value.strip().lower() if isinstance(value, str) else value


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_STRINGS:
        return True
    if text in FALSE_STRINGS:
        return False
    raise ValueError("must be a boolean")


def to_numbers(value: Any) -> List[Union[int, float]]:
    numbers = []
    for token in ensure_list(value):
        try:
            n = float(token)
        except ValueError:
            continue
        if n != n or n in (float("inf"), float("-inf")):
            continue
        numbers.append(int(n) if n.is_integer() else n)
    return numbers


def _error_message(exc: PydanticValidationError) -> str:
    missing = [str(e["loc"][0]) for e in exc.errors() if e["type"] == "missing" and e["loc"]]
    if missing:
        return "Missing fields: " + ", ".join(missing)
    parts = []
    for e in exc.errors():
        loc = ".".join(str(p) for p in e["loc"])
        parts.append(f"{loc}: {e['msg']}" if loc else e["msg"])
    return "; ".join(parts)


def parse_payload(model, data: Dict[str, Any]):
    """Validate raw request data into `model`, raising the store's ValidationError."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(_error_message(exc))


# ---------- Users ----------

class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password_hash: str = Field(..., description="Hashed password")
    role: Role = Field("user")
    avatar_url: Optional[str] = Field(None)

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        return normalize_email(v)


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Role = "user"

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        return normalize_email(v)


class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    avatar_url: Optional[str] = None
    role: Optional[Role] = None

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        return normalize_email(v)


# ---------- Catalog ----------

class Dimensions(BaseModel):
    length: Optional[str] = None
    width: Optional[str] = None
    height: Optional[str] = None

    @field_validator("length", "width", "height", mode="before")
    @classmethod
    def _as_text(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class _ProductFields(BaseModel):
    @model_validator(mode="before")
    @classmethod
    def _drop_blank(cls, data):
        # blank or null fields count as not supplied
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None and not (isinstance(v, str) and not v.strip())}
        return data

    @field_validator("name", "main_category", "sub_category", "description", "material", mode="before", check_fields=False)
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("colors", "images", mode="before", check_fields=False)
    @classmethod
    def _list(cls, v):
        return ensure_list(v)

    @field_validator("seat", mode="before", check_fields=False)
    @classmethod
    def _seat(cls, v):
        return to_numbers(v)

    @field_validator("is_featured", "is_best_seller", "is_active", mode="before", check_fields=False)
    @classmethod
    def _flag(cls, v):
        return to_bool(v)

    @field_validator("dimensions", mode="before", check_fields=False)
    @classmethod
    def _dimensions(cls, v):
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except ValueError:
                raise ValueError("must be a JSON object")
        if not isinstance(v, dict):
            raise ValueError("must be an object")
        return v


class ProductDraft(_ProductFields):
    name: str
    main_category: str
    sub_category: str
    description: str = ""
    price: float = Field(0, ge=0)
    offer_price: Optional[float] = Field(None, ge=0)
    material: str = ""
    stock: int = Field(0, ge=0)
    dimensions: Dimensions = Field(default_factory=Dimensions)
    colors: List[str] = Field(default_factory=list)
    seat: List[Union[int, float]] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    is_featured: bool = False
    is_best_seller: bool = False
    is_active: bool = True


class ProductPatch(_ProductFields):
    name: Optional[str] = None
    main_category: Optional[str] = None
    sub_category: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    offer_price: Optional[float] = Field(None, ge=0)
    material: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    dimensions: Optional[Dimensions] = None
    colors: Optional[List[str]] = None
    seat: Optional[List[Union[int, float]]] = None
    existing_images: Optional[List[str]] = None
    is_featured: Optional[bool] = None
    is_best_seller: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("existing_images", mode="before")
    @classmethod
    def _existing(cls, v):
        return ensure_list(v)


class Product(ProductDraft):
    slug: str = Field(..., description="URL-safe unique identifier")
    vendor: str = Field(..., description="Id of the owning vendor")
    rating: float = 0.0
    rating_count: int = 0


class ProductFilter(BaseModel):
    main_category: Optional[str] = None
    sub_category: Optional[str] = None
    featured: Optional[bool] = None
    best_seller: Optional[bool] = None
    has_offer: Optional[bool] = None
    is_active: Optional[bool] = None
    vendor: Optional[str] = None
    q: Optional[str] = None


# ---------- Cart ----------

class CartItem(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class Cart(BaseModel):
    user_id: str
    items: List[CartItem] = Field(default_factory=list)


class CartAddRequest(CartItem):
    user_id: Optional[str] = Field(None, description="Defaults to the caller; admins may act for another user")


# ---------- Orders ----------

class OrderItem(BaseModel):
    product_id: str
    name: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price frozen at purchase time")


class Order(BaseModel):
    user_id: str
    items: List[OrderItem]
    total_amount: float
    shipping_address: str
    payment_status: PaymentStatus = "Pending"
    order_status: OrderStatus = "Processing"
    transaction_id: Optional[str] = None


class OrderCreate(BaseModel):
    shipping_address: str = Field(..., min_length=1)
    items: Optional[List[CartItem]] = Field(None, description="Omit to check out the caller's cart")

    @field_validator("shipping_address")
    @classmethod
    def _address(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class OrderStatusUpdate(BaseModel):
    order_status: OrderStatus


class Payment(BaseModel):
    order_id: str
    transaction_id: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    amount: float
    status: PaymentStatus


class PaymentRequest(BaseModel):
    order_id: str
    status: PaymentStatus
    transaction_id: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None


# ---------- Reviews ----------

class Review(BaseModel):
    product_id: Optional[str] = Field(None, description="None for a general store review")
    user_id: Optional[str] = Field(None, description="None for a guest review")
    name: str = "Anonymous"
    rating: int = Field(..., ge=1, le=5)
    comment: str
    images: List[str] = Field(default_factory=list)
    reply: Optional[str] = None


class ReviewCreate(BaseModel):
    product_id: Optional[str] = None
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1)
    images: List[str] = Field(default_factory=list)
    guest_name: Optional[str] = None

    @field_validator("images", mode="before")
    @classmethod
    def _images(cls, v):
        return ensure_list(v)

    @field_validator("product_id", "guest_name", mode="before")
    @classmethod
    def _blank_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v


class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, min_length=1)
    images: Optional[List[str]] = None
    reply: Optional[str] = None

    @field_validator("images", mode="before")
    @classmethod
    def _images(cls, v):
        return None if v is None else ensure_list(v)
