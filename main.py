import logging
import os
import traceback
from contextlib import asynccontextmanager
from typing import List, Optional, Tuple

from fastapi import Depends, FastAPI, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import PyMongoError
from starlette.datastructures import UploadFile as StarletteUploadFile

import cart
import catalog
import database
import orders
import reviews
import storage
import users
from errors import AppError, ValidationError
from schemas import (
    CartAddRequest,
    OrderCreate,
    OrderStatusUpdate,
    PaymentRequest,
    ProductDraft,
    ProductFilter,
    ProductPatch,
    RegisterRequest,
    ReviewCreate,
    ReviewUpdate,
    UserUpdate,
    parse_payload,
)
from security import (
    Principal,
    ensure_self_or_admin,
    get_current_user,
    get_optional_user,
    require_admin,
    require_vendor,
)

ENVIRONMENT = os.getenv("ENVIRONMENT", "production")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - [%(levelname)s] - %(message)s",
)
logger = logging.getLogger("store")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        database.ensure_indexes()
        users.bootstrap_admin()
    else:
        logger.warning("DATABASE_URL/DATABASE_NAME not set; running without a database")
    yield


app = FastAPI(title="Furniture Store API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount(storage.UPLOAD_URL_PREFIX, StaticFiles(directory=str(storage.UPLOAD_DIR), check_dir=False), name="uploads")


# Error handlers

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(PydanticValidationError)
async def payload_error_handler(request: Request, exc: PydanticValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(PyMongoError)
async def store_error_handler(request: Request, exc: PyMongoError):
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": f"Database error: {exc}"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content = {"detail": str(exc)}
    if ENVIRONMENT == "development":
        content["trace"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return JSONResponse(status_code=500, content=content)


# Helpers

async def product_payload(request: Request) -> Tuple[dict, List[UploadFile]]:
    """Collect product fields from a JSON body or a multipart form with image files."""
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError("Malformed JSON body")
        if not isinstance(body, dict):
            raise ValidationError("Expected a JSON object")
        return body, []
    form = await request.form()
    fields = {}
    files = []
    for key, value in form.multi_items():
        if isinstance(value, StarletteUploadFile):
            if value.filename:
                files.append(value)
            continue
        fields.setdefault(key, []).append(value)
    data = {k: v[0] if len(v) == 1 else v for k, v in fields.items()}
    return data, files


@app.get("/")
def read_root():
    return {"message": "Furniture store backend is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "collections": [],
    }
    if database.db is not None:
        try:
            response["collections"] = database.db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
        except Exception as e:
            response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
    return response


# Users

@app.post("/api/user/register", status_code=201)
def register(req: RegisterRequest, current: Optional[Principal] = Depends(get_optional_user)):
    return users.register(req, current)


@app.post("/api/user/login")
def login(form_data: OAuth2PasswordRequestForm = Depends()):
    return users.login(form_data.username, form_data.password)


@app.get("/api/user")
def list_users(current: Principal = Depends(require_admin)):
    return users.list_users()


@app.get("/api/user/me")
def me(current: Principal = Depends(get_current_user)):
    return users.get_user(current.id)


@app.get("/api/user/{user_id}")
def get_user(user_id: str, current: Principal = Depends(get_current_user)):
    ensure_self_or_admin(current, user_id)
    return users.get_user(user_id)


@app.put("/api/user/{user_id}")
def update_user(user_id: str, patch: UserUpdate, current: Principal = Depends(get_current_user)):
    return users.update_user(current, user_id, patch)


@app.delete("/api/user/{user_id}")
def delete_user(user_id: str, current: Principal = Depends(require_admin)):
    users.delete_user(user_id)
    return {"message": "User deleted"}


# Catalog

@app.get("/api/products")
def list_products(
    main_category: Optional[str] = None,
    sub_category: Optional[str] = None,
    featured: Optional[bool] = None,
    best_seller: Optional[bool] = None,
    has_offer: Optional[bool] = None,
    is_active: Optional[bool] = None,
    vendor: Optional[str] = None,
    q: Optional[str] = None,
    current: Optional[Principal] = Depends(get_optional_user),
):
    flt = ProductFilter(
        main_category=main_category,
        sub_category=sub_category,
        featured=featured,
        best_seller=best_seller,
        has_offer=has_offer,
        is_active=is_active,
        vendor=vendor,
        q=q,
    )
    return catalog.list_products(flt, current)


@app.get("/api/products/{id_or_slug}")
def get_product(id_or_slug: str, current: Optional[Principal] = Depends(get_optional_user)):
    return catalog.get_product(id_or_slug, current)


@app.post("/api/products", status_code=201)
def create_product(payload: Tuple[dict, list] = Depends(product_payload), current: Principal = Depends(require_vendor)):
    data, files = payload
    draft = parse_payload(ProductDraft, data)
    return catalog.create_product(current, draft, files)


@app.put("/api/products/{product_id}")
def update_product(product_id: str, payload: Tuple[dict, list] = Depends(product_payload), current: Principal = Depends(require_vendor)):
    data, files = payload
    patch = parse_payload(ProductPatch, data)
    return catalog.update_product(current, product_id, patch, files)


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, current: Principal = Depends(require_vendor)):
    catalog.delete_product(current, product_id)
    return {"message": "Product deleted successfully"}


# Cart

@app.post("/api/cart/add")
def cart_add(req: CartAddRequest, current: Principal = Depends(get_current_user)):
    user_id = req.user_id or current.id
    ensure_self_or_admin(current, user_id)
    return cart.add_item(user_id, req.product_id, req.quantity)


@app.get("/api/cart")
def my_cart(current: Principal = Depends(get_current_user)):
    return cart.get_cart(current.id)


@app.get("/api/cart/{user_id}")
def get_cart(user_id: str, current: Principal = Depends(get_current_user)):
    ensure_self_or_admin(current, user_id)
    return cart.get_cart(user_id)


@app.delete("/api/cart/remove/{user_id}/{product_id}")
def cart_remove(user_id: str, product_id: str, current: Principal = Depends(get_current_user)):
    ensure_self_or_admin(current, user_id)
    return cart.remove_item(user_id, product_id)


@app.delete("/api/cart/clear/{user_id}")
def cart_clear(user_id: str, current: Principal = Depends(get_current_user)):
    ensure_self_or_admin(current, user_id)
    cart.clear_cart(user_id)
    return {"message": "Cart cleared"}


# Orders

@app.post("/api/order", status_code=201)
def create_order(req: OrderCreate, current: Principal = Depends(get_current_user)):
    return orders.create_order(current, req.shipping_address, req.items)


@app.get("/api/order/all")
def all_orders(current: Principal = Depends(require_admin)):
    return orders.list_orders()


@app.get("/api/order/user/{user_id}")
def user_orders(user_id: str, current: Principal = Depends(get_current_user)):
    ensure_self_or_admin(current, user_id)
    return orders.user_orders(user_id)


@app.get("/api/order/vendor/{vendor_id}")
def vendor_orders(vendor_id: str, current: Principal = Depends(require_vendor)):
    ensure_self_or_admin(current, vendor_id)
    return orders.vendor_orders(vendor_id)


@app.post("/api/order/payment/process")
def process_payment(req: PaymentRequest, current: Principal = Depends(get_current_user)):
    return orders.process_payment(current, req)


@app.get("/api/order/{order_id}")
def get_order(order_id: str, current: Principal = Depends(get_current_user)):
    return orders.get_order(current, order_id)


@app.put("/api/order/{order_id}")
def update_order_status(order_id: str, req: OrderStatusUpdate, current: Principal = Depends(require_admin)):
    return orders.update_order_status(current, order_id, req.order_status)


@app.delete("/api/order/{order_id}")
def delete_order(order_id: str, current: Principal = Depends(require_admin)):
    orders.delete_order(current, order_id)
    return {"message": "Order deleted successfully"}


# Reviews

@app.post("/api/reviews", status_code=201)
@app.post("/api/reviews/general", status_code=201)
def create_review(req: ReviewCreate, current: Optional[Principal] = Depends(get_optional_user)):
    return reviews.create_review(current, req)


@app.get("/api/reviews")
def list_reviews():
    return reviews.list_reviews()


@app.get("/api/reviews/general")
def general_reviews():
    return reviews.general_reviews()


@app.get("/api/reviews/product/{product_id}")
def product_reviews(product_id: str):
    return reviews.product_reviews(product_id)


@app.get("/api/reviews/{review_id}")
def get_review(review_id: str):
    return reviews.get_review(review_id)


@app.put("/api/reviews/{review_id}")
def update_review(review_id: str, patch: ReviewUpdate, current: Principal = Depends(get_current_user)):
    return reviews.update_review(current, review_id, patch)


@app.delete("/api/reviews/{review_id}")
def delete_review(review_id: str, current: Principal = Depends(get_current_user)):
    reviews.delete_review(current, review_id)
    return {"message": "Review deleted successfully"}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
