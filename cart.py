"""
Per-user shopping carts.

A cart document holds only product ids and quantities. Every write is a
single atomic update on one document, so two concurrent additions to the same
cart cannot overwrite each other.
"""
import logging
from typing import List

from pymongo.errors import DuplicateKeyError

from catalog import effective_price
from database import collection, is_object_id, now, serialize_doc, to_object_id
from errors import NotFound, StoreError, ValidationError
from schemas import Cart, CartItem

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3


def _require_product(product_id: str) -> dict:
    product = collection("product").find_one({"_id": to_object_id(product_id)})
    if not product or product.get("is_active") is False:
        raise NotFound("Product not found")
    return product


def _increment(carts, user_id: str, product_id: str, quantity: int) -> bool:
    res = carts.update_one(
        {"user_id": user_id, "items.product_id": product_id},
        {"$inc": {"items.$.quantity": quantity}, "$set": {"updated_at": now()}},
    )
    return res.matched_count > 0


def _append(carts, user_id: str, product_id: str, quantity: int) -> bool:
    res = carts.update_one(
        {"user_id": user_id, "items.product_id": {"$ne": product_id}},
        {"$push": {"items": {"product_id": product_id, "quantity": quantity}}, "$set": {"updated_at": now()}},
    )
    return res.matched_count > 0


def add_item(user_id: str, product_id: str, quantity: int = 1) -> dict:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    _require_product(product_id)
    carts = collection("cart")
    for _ in range(MAX_ATTEMPTS):
        if _increment(carts, user_id, product_id, quantity):
            break
        if _append(carts, user_id, product_id, quantity):
            break
        try:
            doc = Cart(user_id=user_id, items=[CartItem(product_id=product_id, quantity=quantity)]).model_dump()
            ts = now()
            carts.insert_one({**doc, "created_at": ts, "updated_at": ts})
            break
        except DuplicateKeyError:
            # another request created the cart first; retry against it
            continue
    else:
        raise StoreError("Could not update cart")
    logger.debug("Added %s x %s to cart of %s", quantity, product_id, user_id)
    return get_cart(user_id)


def remove_item(user_id: str, product_id: str) -> dict:
    res = collection("cart").update_one(
        {"user_id": user_id},
        {"$pull": {"items": {"product_id": product_id}}, "$set": {"updated_at": now()}},
    )
    if res.matched_count == 0:
        raise NotFound("Cart not found")
    return get_cart(user_id)


def clear_cart(user_id: str):
    collection("cart").delete_one({"user_id": user_id})


def cart_items(user_id: str) -> List[dict]:
    cart = collection("cart").find_one({"user_id": user_id})
    return list(cart.get("items", [])) if cart else []


def _products_by_id(product_ids) -> dict:
    oids = [to_object_id(pid) for pid in product_ids if is_object_id(pid)]
    if not oids:
        return {}
    return {str(p["_id"]): p for p in collection("product").find({"_id": {"$in": oids}})}


def get_cart(user_id: str) -> dict:
    """Return the cart joined against current catalog prices and availability."""
    cart = collection("cart").find_one({"user_id": user_id})
    if not cart:
        return {"id": None, "user_id": user_id, "items": [], "subtotal": 0.0}
    products = _products_by_id(item["product_id"] for item in cart.get("items", []))
    items = []
    subtotal = 0.0
    for item in cart.get("items", []):
        product = products.get(item["product_id"])
        line = {"product_id": item["product_id"], "quantity": item["quantity"], "product": None, "available": False}
        if product:
            price = effective_price(product)
            available = product.get("is_active", True) and product.get("stock", 0) >= item["quantity"]
            line["product"] = {
                "id": str(product["_id"]),
                "name": product.get("name"),
                "slug": product.get("slug"),
                "price": product.get("price"),
                "offer_price": product.get("offer_price"),
                "stock": product.get("stock", 0),
                "images": product.get("images", []),
                "is_active": product.get("is_active", True),
            }
            line["unit_price"] = price
            line["available"] = bool(available)
            if product.get("is_active", True):
                subtotal += price * item["quantity"]
        items.append(line)
    cart = serialize_doc(cart)
    cart["items"] = items
    cart["subtotal"] = round(subtotal, 2)
    return cart
