"""
Order lifecycle and payments.

orderStatus:   Processing -> Shipped -> Delivered
               Processing | Shipped -> Cancelled
paymentStatus: Pending -> Completed | Failed, Failed -> Pending (retry)

Shipping progress and payment are tracked independently. Line prices are
frozen when the order is created.
"""
import logging
from typing import Dict, List, Optional

import cart
from catalog import effective_price
from database import collection, create_document, get_documents, is_object_id, now, serialize_doc, to_object_id
from errors import Conflict, Forbidden, NotFound, ValidationError
from schemas import CartItem, Order, OrderItem, Payment, PaymentRequest
from security import Principal

logger = logging.getLogger(__name__)

ORDER_TRANSITIONS: Dict[str, set] = {
    "Processing": {"Shipped", "Cancelled"},
    "Shipped": {"Delivered", "Cancelled"},
    "Delivered": set(),
    "Cancelled": set(),
}

PAYMENT_TRANSITIONS: Dict[str, set] = {
    "Pending": {"Completed", "Failed"},
    "Failed": {"Pending"},
    "Completed": set(),
}


def _merge_lines(items: List[CartItem]) -> Dict[str, int]:
    merged: Dict[str, int] = {}
    for item in items:
        merged[item.product_id] = merged.get(item.product_id, 0) + item.quantity
    return merged


def _price_lines(quantities: Dict[str, int]) -> List[OrderItem]:
    bad_ids = [pid for pid in quantities if not is_object_id(pid)]
    if bad_ids:
        raise ValidationError(f"Invalid product id: {', '.join(bad_ids)}")
    products = {
        str(p["_id"]): p
        for p in collection("product").find({"_id": {"$in": [to_object_id(pid) for pid in quantities]}})
    }
    lines = []
    for pid, qty in quantities.items():
        product = products.get(pid)
        if not product or product.get("is_active") is False:
            raise ValidationError(f"Product {pid} is not available")
        if product.get("stock", 0) < qty:
            raise ValidationError(f"Insufficient stock for {product.get('name')}")
        lines.append(OrderItem(product_id=pid, name=product.get("name", ""), quantity=qty, price=effective_price(product)))
    return lines


def _find(order_id: str) -> dict:
    order = collection("order").find_one({"_id": to_object_id(order_id)})
    if not order:
        raise NotFound("Order not found")
    return order


def _ensure_owner_or_admin(principal: Principal, order: dict):
    if order.get("user_id") != principal.id and not principal.is_admin:
        raise Forbidden("Access denied")


def create_order(principal: Principal, shipping_address: str, items: Optional[List[CartItem]] = None) -> dict:
    from_cart = items is None
    if from_cart:
        items = [CartItem(**i) for i in cart.cart_items(principal.id)]
    if not items:
        raise ValidationError("Order has no items")

    lines = _price_lines(_merge_lines(items))
    total = round(sum(line.price * line.quantity for line in lines), 2)
    order = Order(user_id=principal.id, items=lines, total_amount=total, shipping_address=shipping_address)
    order_id = create_document("order", order)

    if from_cart:
        # not atomic with the insert above; a failure here leaves the cart intact
        cart.clear_cart(principal.id)
    logger.info("User %s placed order %s for %.2f", principal.id, order_id, total)
    return serialize_doc(_find(order_id))


def get_order(principal: Principal, order_id: str) -> dict:
    order = _find(order_id)
    _ensure_owner_or_admin(principal, order)
    return serialize_doc(order)


def list_orders(query: Optional[dict] = None) -> List[dict]:
    return get_documents("order", query, sort=[("created_at", -1)])


def user_orders(user_id: str) -> List[dict]:
    return list_orders({"user_id": user_id})


def vendor_orders(vendor_id: str) -> List[dict]:
    product_ids = [str(p["_id"]) for p in collection("product").find({"vendor": vendor_id}, {"_id": 1})]
    if not product_ids:
        return []
    return list_orders({"items.product_id": {"$in": product_ids}})


def update_order_status(principal: Principal, order_id: str, new_status: str) -> dict:
    order = _find(order_id)
    current = order.get("order_status", "Processing")
    if new_status not in ORDER_TRANSITIONS.get(current, set()):
        logger.warning("Rejected order %s transition %s -> %s", order_id, current, new_status)
        raise ValidationError(f"Cannot change order status from {current} to {new_status}")
    res = collection("order").update_one(
        {"_id": order["_id"], "order_status": current},
        {"$set": {"order_status": new_status, "updated_at": now()}},
    )
    if res.matched_count == 0:
        raise Conflict("Order status changed concurrently, reload and retry")
    logger.info("Admin %s moved order %s from %s to %s", principal.id, order_id, current, new_status)
    return serialize_doc(_find(order_id))


def process_payment(principal: Principal, req: PaymentRequest) -> dict:
    order = _find(req.order_id)
    _ensure_owner_or_admin(principal, order)
    current = order.get("payment_status", "Pending")
    if req.status not in PAYMENT_TRANSITIONS.get(current, set()):
        logger.warning("Rejected payment %s transition %s -> %s", req.order_id, current, req.status)
        raise ValidationError(f"Cannot change payment status from {current} to {req.status}")

    update = {"payment_status": req.status, "updated_at": now()}
    if req.transaction_id is not None:
        update["transaction_id"] = req.transaction_id
    res = collection("order").update_one({"_id": order["_id"], "payment_status": current}, {"$set": update})
    if res.matched_count == 0:
        raise Conflict("Payment status changed concurrently, reload and retry")

    payment = Payment(
        order_id=req.order_id,
        transaction_id=req.transaction_id,
        payment_method=req.payment_method,
        amount=order.get("total_amount", 0),
        status=req.status,
    )
    create_document("payment", payment)
    logger.info("Order %s payment %s -> %s (txn %s)", req.order_id, current, req.status, req.transaction_id)
    return serialize_doc(_find(req.order_id))


def delete_order(principal: Principal, order_id: str):
    res = collection("order").delete_one({"_id": to_object_id(order_id)})
    if res.deleted_count == 0:
        raise NotFound("Order not found")
    logger.info("Admin %s deleted order %s", principal.id, order_id)
