import logging
from typing import List, Optional

from database import collection, create_document, get_documents, is_object_id, now, serialize_doc, to_object_id
from errors import Forbidden, NotFound
from schemas import Review, ReviewCreate, ReviewUpdate
from security import Principal

logger = logging.getLogger(__name__)

GUEST_NAME = "Anonymous"


def _find(review_id: str) -> dict:
    review = collection("review").find_one({"_id": to_object_id(review_id)})
    if not review:
        raise NotFound("Review not found")
    return review


def _ensure_owner_or_admin(principal: Principal, review: dict):
    if principal.is_admin:
        return
    if review.get("user_id") is None or review.get("user_id") != principal.id:
        raise Forbidden("Not allowed to modify this review")


def refresh_product_rating(product_id: Optional[str]):
    if not product_id or not is_object_id(product_id):
        return
    ratings = [r.get("rating", 0) for r in collection("review").find({"product_id": product_id}, {"rating": 1})]
    avg = round(sum(ratings) / len(ratings), 2) if ratings else 0.0
    collection("product").update_one(
        {"_id": to_object_id(product_id)},
        {"$set": {"rating": avg, "rating_count": len(ratings)}},
    )


def create_review(current: Optional[Principal], req: ReviewCreate) -> dict:
    if req.product_id is not None:
        if not is_object_id(req.product_id) or not collection("product").find_one({"_id": to_object_id(req.product_id)}, {"_id": 1}):
            raise NotFound("Product not found")
    review = Review(
        product_id=req.product_id,
        user_id=current.id if current else None,
        name=current.name if current else (req.guest_name or GUEST_NAME),
        rating=req.rating,
        comment=req.comment,
        images=req.images,
    )
    review_id = create_document("review", review)
    refresh_product_rating(req.product_id)
    logger.info("Review %s created by %s", review_id, current.id if current else "guest")
    return serialize_doc(_find(review_id))


def list_reviews(query: Optional[dict] = None) -> List[dict]:
    return get_documents("review", query, sort=[("created_at", -1)])


def general_reviews() -> List[dict]:
    return list_reviews({"product_id": None})


def product_reviews(product_id: str) -> List[dict]:
    return list_reviews({"product_id": product_id})


def get_review(review_id: str) -> dict:
    return serialize_doc(_find(review_id))


def update_review(principal: Principal, review_id: str, patch: ReviewUpdate) -> dict:
    review = _find(review_id)
    data = patch.model_dump(exclude_none=True)
    if "reply" in data and not principal.is_admin:
        raise Forbidden("Only an admin can reply to reviews")
    _ensure_owner_or_admin(principal, review)
    if not data:
        return serialize_doc(review)
    if "reply" in data:
        data["replied_at"] = now()
    data["updated_at"] = now()
    collection("review").update_one({"_id": review["_id"]}, {"$set": data})
    if "rating" in data:
        refresh_product_rating(review.get("product_id"))
    logger.info("User %s updated review %s", principal.id, review_id)
    return serialize_doc(_find(review_id))


def delete_review(principal: Principal, review_id: str):
    review = _find(review_id)
    _ensure_owner_or_admin(principal, review)
    collection("review").delete_one({"_id": review["_id"]})
    refresh_product_rating(review.get("product_id"))
    logger.info("User %s deleted review %s", principal.id, review_id)
